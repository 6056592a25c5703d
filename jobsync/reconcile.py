"""Reconciliation engine: converge the content store toward this run's
listings.

A run is strictly sequential:

  1. Snapshot the collection once, indexing pipeline-managed items by
     source URL and by fingerprint.
  2. For each listing, match by source URL, then by fingerprint; update
     the match or create a new item.
  3. Soft-expire (draft) pipeline-managed items past their expiration.
  4. Collect, then hard-delete, pipeline-managed items more than 30 days
     past their expiration.
  5. Publish the site.

Precondition: this engine is the only writer to the collection for the
duration of a run. Overlapping runs can create duplicate items.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from jobsync.models import EnrichedListing, RemoteItem, parse_timestamp
from jobsync.webflow import (
    FIELD_COMPANY,
    FIELD_CONTRACT_TYPE,
    FIELD_DATE_POSTED,
    FIELD_DESCRIPTION,
    FIELD_EXPIRATION,
    FIELD_LOCATION,
    FIELD_NAME,
    FIELD_PIPELINE_MANAGED,
    FIELD_SALARY_MAX,
    FIELD_SALARY_MIN,
    FIELD_SLUG,
    FIELD_SOURCE_URL,
    FIELD_TITLE,
    ContentStore,
)

logger = logging.getLogger(__name__)

REFRESH_WINDOW = timedelta(days=7)
MAX_AGE = timedelta(days=60)
HARD_DELETE_GRACE = timedelta(days=30)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_expiration(posted_date: str | None, now: datetime) -> datetime:
    """Whichever comes first: `now` + 7 days, or posting date + 60 days.

    Listings still present on later runs keep sliding forward, but never
    past the 60-day cap. An unparseable posting date leaves only the
    refresh window.
    """
    refresh = now + REFRESH_WINDOW
    posted = parse_timestamp(posted_date)
    if posted is None:
        return refresh
    return min(refresh, posted + MAX_AGE)


def build_field_data(
    listing: EnrichedListing,
    now: datetime,
    slug: str | None = None,
) -> dict[str, Any]:
    """Full field payload for a create or update.

    Enrichment fields pass through untouched; identity and lifecycle
    fields are set last so they always win.
    """
    data = dict(listing.fields)
    data.update({
        FIELD_NAME: f"{listing.title} at {listing.company}",
        FIELD_SLUG: slug or listing.slug,
        FIELD_TITLE: listing.title,
        FIELD_COMPANY: listing.company,
        FIELD_LOCATION: listing.location,
        FIELD_DESCRIPTION: listing.description,
        FIELD_SOURCE_URL: listing.source_url,
        FIELD_DATE_POSTED: listing.posted_date or "",
        FIELD_SALARY_MIN: listing.salary_min,
        FIELD_SALARY_MAX: listing.salary_max,
        FIELD_CONTRACT_TYPE: listing.contract_type or "",
        FIELD_EXPIRATION: compute_expiration(listing.posted_date, now).isoformat(),
        FIELD_PIPELINE_MANAGED: True,
    })
    return data


@dataclass
class SnapshotIndex:
    """Pipeline-managed items as of the start of the run."""

    by_source_url: dict[str, RemoteItem] = field(default_factory=dict)
    by_fingerprint: dict[str, RemoteItem] = field(default_factory=dict)

    @classmethod
    def build(cls, items) -> SnapshotIndex:
        index = cls()
        for item in items:
            if not item.pipeline_managed:
                continue
            if item.source_url:
                index.by_source_url.setdefault(item.source_url, item)
            if item.company and item.title:
                index.by_fingerprint.setdefault(item.fingerprint, item)
        return index

    def __len__(self) -> int:
        ids = {i.id for i in self.by_source_url.values()}
        ids.update(i.id for i in self.by_fingerprint.values())
        return len(ids)


@dataclass
class ReconcileResult:
    created: int = 0
    updated: int = 0
    expired: int = 0
    deleted: int = 0
    errors: int = 0
    published: bool = False


class Reconciler:
    """Diffs enriched listings against a `ContentStore` and applies the changes.

    Only one writer per collection is supported. Passing
    `single_writer=False` (conditional writes for concurrent runs) is
    reserved and raises NotImplementedError.
    """

    def __init__(
        self,
        store: ContentStore,
        clock: Callable[[], datetime] = _utcnow,
        single_writer: bool = True,
    ):
        if not single_writer:
            raise NotImplementedError("Conditional writes for concurrent runs are not supported")
        self.store = store
        self._clock = clock

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def snapshot(self) -> SnapshotIndex:
        index = SnapshotIndex.build(self.store.iter_items())
        logger.info("Snapshot: %d pipeline-managed items in the collection", len(index))
        return index

    def match(
        self,
        listing: EnrichedListing,
        index: SnapshotIndex,
        reserved_urls: frozenset[str] = frozenset(),
        claimed: Optional[set[str]] = None,
    ) -> Optional[RemoteItem]:
        """Find the item a listing should update, or None for a new opening.

        The fingerprint fallback skips items that belong to another
        listing in this run (by source URL) or were already targeted, so
        distinct openings sharing a fingerprint never overwrite each other.
        """
        item = index.by_source_url.get(listing.source_url)
        if item is not None:
            return item

        item = index.by_fingerprint.get(listing.fingerprint)
        if item is None:
            return None
        if item.source_url in reserved_urls or (claimed and item.id in claimed):
            return None

        logger.info(
            "Fingerprint match (cross-source): %s at %s; updating %s instead of creating",
            listing.title, listing.company, item.id,
        )
        return item

    def push(self, listings: list[EnrichedListing], index: SnapshotIndex) -> ReconcileResult:
        """Create or update every listing; failures are logged and counted."""
        result = ReconcileResult()
        reserved_urls = frozenset(
            listing.source_url for listing in listings
            if listing.source_url in index.by_source_url
        )
        claimed: set[str] = set()

        for listing in listings:
            try:
                target = self.match(listing, index, reserved_urls, claimed)
                now = self._clock()
                if target is not None:
                    fields = build_field_data(listing, now, slug=target.slug or None)
                    self.store.update_item(target.id, fields)
                    claimed.add(target.id)
                    result.updated += 1
                    logger.info("Updated: %s at %s [%s]", listing.title, listing.company, target.id)
                else:
                    item_id = self.store.create_item(build_field_data(listing, now))
                    result.created += 1
                    logger.info("Created: %s at %s [%s]", listing.title, listing.company, item_id)
            except Exception as exc:
                result.errors += 1
                logger.error("Failed to push %s at %s: %s", listing.title, listing.company, exc)

        return result

    def expire_stale(self) -> tuple[int, int]:
        """Draft every live pipeline-managed item past its expiration.

        Returns (expired, errors).
        """
        now = self._clock()
        expired = errors = 0
        for item in self.store.iter_items():
            if not item.pipeline_managed or item.is_draft:
                continue
            if item.expiration_date is None or item.expiration_date >= now:
                continue
            try:
                self.store.set_draft(item.id)
            except Exception as exc:
                errors += 1
                logger.error("Failed to expire item %s: %s", item.id, exc)
                continue
            expired += 1
            logger.info("Expired: %s [%s]", item.name or item.id, item.id)
        return expired, errors

    def collect_deletable(self) -> list[RemoteItem]:
        """Pipeline-managed items more than the grace period past expiration.

        Nothing is mutated while paging, so offsets stay stable.
        """
        cutoff = self._clock() - HARD_DELETE_GRACE
        return [
            item for item in self.store.iter_items()
            if item.pipeline_managed
            and item.expiration_date is not None
            and item.expiration_date < cutoff
        ]

    def delete_stale(self) -> tuple[int, int]:
        """Hard-delete everything `collect_deletable` finds. Returns (deleted, errors)."""
        deleted = errors = 0
        for item in self.collect_deletable():
            try:
                self.store.delete_item(item.id)
            except Exception as exc:
                errors += 1
                logger.error("Failed to delete item %s: %s", item.id, exc)
                continue
            deleted += 1
            logger.info("Deleted: %s [%s]", item.name or item.id, item.id)

        if deleted:
            logger.info(
                "Hard-deleted %d pipeline-managed items (expired %d+ days)",
                deleted, HARD_DELETE_GRACE.days,
            )
        return deleted, errors

    def publish(self) -> bool:
        try:
            self.store.publish()
        except Exception as exc:
            logger.warning("Site publish failed (items remain unpublished): %s", exc)
            return False
        logger.info("Site published successfully")
        return True

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    def reconcile(self, listings: list[EnrichedListing]) -> ReconcileResult:
        """Run every step in order. A failed snapshot propagates."""
        index = self.snapshot()
        result = self.push(listings, index)

        expired, expire_errors = self.expire_stale()
        deleted, delete_errors = self.delete_stale()
        result.expired = expired
        result.deleted = deleted
        result.errors += expire_errors + delete_errors

        result.published = self.publish()
        return result
