"""Shared fixtures: listing factories and an in-memory content store."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from jobsync.config import Credentials, PipelineConfig
from jobsync.models import EnrichedListing, RawListing
from jobsync.webflow import ContentStore, item_from_webflow

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class InMemoryStore(ContentStore):
    """A ContentStore kept in a dict, recording every write."""

    def __init__(self, page_size: int = 100):
        self.page_size = page_size
        self.items: dict[str, dict[str, Any]] = {}
        self.writes: list[tuple[str, str]] = []
        self.fail_ids: set[str] = set()
        self.fail_creates_for: set[str] = set()
        self.publish_error: Exception | None = None
        self.published = 0
        self._next_id = 1

    def add(self, is_draft: bool = False, **field_data: Any) -> str:
        item_id = f"item-{self._next_id}"
        self._next_id += 1
        self.items[item_id] = {"id": item_id, "isDraft": is_draft, "fieldData": dict(field_data)}
        return item_id

    def field(self, item_id: str, name: str) -> Any:
        return self.items[item_id]["fieldData"].get(name)

    def list_items(self, offset, limit):
        raws = list(self.items.values())[offset:offset + limit]
        return [item_from_webflow(raw) for raw in raws]

    def create_item(self, field_data):
        if field_data.get("source-url") in self.fail_creates_for:
            raise RuntimeError("create rejected")
        item_id = self.add(**field_data)
        self.writes.append(("create", item_id))
        return item_id

    def update_item(self, item_id, field_data):
        if item_id in self.fail_ids:
            raise RuntimeError("update rejected")
        self.items[item_id]["fieldData"] = dict(field_data)
        self.items[item_id]["isDraft"] = False
        self.writes.append(("update", item_id))

    def set_draft(self, item_id):
        if item_id in self.fail_ids:
            raise RuntimeError("draft rejected")
        self.items[item_id]["isDraft"] = True
        self.writes.append(("draft", item_id))

    def delete_item(self, item_id):
        if item_id in self.fail_ids:
            raise RuntimeError("delete rejected")
        del self.items[item_id]
        self.writes.append(("delete", item_id))

    def publish(self):
        if self.publish_error is not None:
            raise self.publish_error
        self.published += 1


def make_raw(
    title: str = "Project Manager",
    company: str = "Acme",
    location: str = "New York, NY",
    source: str = "adzuna",
    url: str | None = None,
    description: str = "",
    **kwargs: Any,
) -> RawListing:
    return RawListing(
        title=title,
        company=company,
        location=location,
        source=source,
        source_url=url or f"https://example.com/{source}/{title}-{company}".replace(" ", "-"),
        description=description,
        **kwargs,
    )


def make_enriched(
    title: str = "Project Manager",
    company: str = "Acme",
    location: str = "New York, NY",
    url: str = "https://example.com/jobs/1",
    slug: str | None = None,
    posted_date: str | None = None,
    **fields: Any,
) -> EnrichedListing:
    return EnrichedListing(
        title=title,
        company=company,
        location=location,
        source_url=url,
        source="greenhouse",
        slug=slug or f"{title}-{company}".lower().replace(" ", "-"),
        description="A description.",
        posted_date=posted_date or NOW.isoformat(),
        fields=fields,
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def pipeline_config(tmp_path) -> PipelineConfig:
    return PipelineConfig(
        sources=[],
        data_dir=str(tmp_path / "data"),
        credentials=Credentials(adzuna_app_id="id", adzuna_app_key="key"),
    )


def no_sleep(_seconds: float) -> None:
    return None
