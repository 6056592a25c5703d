"""Data models for the job sync pipeline."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Optional

_NON_ALNUM = re.compile(r"[^a-z0-9 ]")
_WHITESPACE = re.compile(r"\s+")


def normalize(value: str | None) -> str:
    """Lowercase, drop everything but ASCII letters, digits and spaces,
    then collapse runs of whitespace."""
    if not value:
        return ""
    text = _WHITESPACE.sub(" ", value.lower())
    text = _NON_ALNUM.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def fingerprint(company: str | None, title: str | None, location: str | None) -> str:
    """Identity key shared by the deduplicator and the reconciler."""
    return f"{normalize(company)}|{normalize(title)}|{normalize(location)}"


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO 8601 date or datetime string into an aware UTC datetime.

    Returns None for empty or unparseable input. Naive values are taken
    to be UTC.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class RawListing:
    """A single posting as returned by one source adapter.

    `source` is stable across runs (e.g. "adzuna", "greenhouse",
    "lever"); the deduplicator groups on it.
    """

    title: str
    company: str
    source_url: str
    source: str
    location: str = ""
    description: str = ""
    posted_date: Optional[str] = None
    salary_min: Optional[float] = None
    salary_max: Optional[float] = None
    salary_is_predicted: bool = False
    contract_type: Optional[str] = None
    contract_time: Optional[str] = None
    category: Optional[str] = None
    external_id: Optional[str] = None

    @property
    def fingerprint(self) -> str:
        return fingerprint(self.company, self.title, self.location)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["fingerprint"] = self.fingerprint
        return d

    def __repr__(self) -> str:
        return (
            f"RawListing(title={self.title!r}, company={self.company!r}, "
            f"source={self.source!r}, location={self.location!r})"
        )


@dataclass
class EnrichedListing:
    """A canonical listing ready to be written to the content store.

    `fields` carries everything attached by enrichment and scoring,
    keyed by store field name. The reconciler writes it through as-is.
    """

    title: str
    company: str
    location: str
    source_url: str
    source: str
    slug: str
    description: str = ""
    posted_date: Optional[str] = None
    salary_min: Optional[float] = None
    salary_max: Optional[float] = None
    contract_type: Optional[str] = None
    fields: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: RawListing, slug: str, **fields: Any) -> EnrichedListing:
        return cls(
            title=raw.title,
            company=raw.company,
            location=raw.location,
            source_url=raw.source_url,
            source=raw.source,
            slug=slug,
            description=raw.description,
            posted_date=raw.posted_date,
            salary_min=raw.salary_min,
            salary_max=raw.salary_max,
            contract_type=raw.contract_type,
            fields=dict(fields),
        )

    @property
    def fingerprint(self) -> str:
        return fingerprint(self.company, self.title, self.location)


@dataclass
class RemoteItem:
    """The content store's view of a previously synchronized listing."""

    id: str
    slug: str = ""
    name: str = ""
    pipeline_managed: bool = False
    source_url: str = ""
    company: str = ""
    title: str = ""
    location: str = ""
    expiration_date: Optional[datetime] = None
    is_draft: bool = False

    @property
    def fingerprint(self) -> str:
        return fingerprint(self.company, self.title, self.location)
