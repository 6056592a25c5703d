"""Sync orchestrator: runs the adapters and converges the content store.

This is the core pipeline:
  1. Ingest from every enabled source, in config order (failures isolated)
  2. Deduplicate the union into one listing per opening
  3. Apply the relevance filter, if one is configured
  4. Enrich each listing and assign it a unique slug
  5. Reconcile the content store (skipped on dry runs)
  6. Log the run summary and append it to the run history
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from jobsync.ats import PROVIDERS, DetectionStats, Firm, detect_all, detected_boards
from jobsync.cache import open_cache
from jobsync.config import PipelineConfig, SourceConfig
from jobsync.dedup import deduplicate_listings
from jobsync.enrich import CompanyEnricher, company_cache_key
from jobsync.history import append_run_history
from jobsync.models import EnrichedListing, RawListing
from jobsync.reconcile import Reconciler
from jobsync.scrapers.adzuna import AdzunaScraper
from jobsync.scrapers.base import BaseScraper, Endpoint
from jobsync.scrapers.greenhouse import GreenhouseScraper
from jobsync.scrapers.lever import LeverScraper
from jobsync.webflow import ContentStore, WebflowStore

logger = logging.getLogger(__name__)

# Map scraper_type strings to classes
SCRAPER_REGISTRY: dict[str, type[BaseScraper]] = {
    "adzuna": AdzunaScraper,
    "greenhouse": GreenhouseScraper,
    "lever": LeverScraper,
}

MAX_SLUG_LENGTH = 100

ListingFilter = Callable[[RawListing], bool]


@dataclass
class RunSummary:
    total_ingested: int = 0
    after_dedup: int = 0
    after_filter: int = 0
    skipped: int = 0
    enriched: int = 0
    created: int = 0
    updated: int = 0
    expired: int = 0
    deleted: int = 0
    errors: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    published: bool = False
    failed: bool = False
    duration_seconds: float = 0.0
    by_source: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:MAX_SLUG_LENGTH].rstrip("-")


def unique_slug(base: str, taken: set[str]) -> str:
    """`base`, or `base-2`, `base-3`, ... whichever is free; claims it."""
    slug = base
    n = 2
    while slug in taken:
        slug = f"{base}-{n}"
        n += 1
    taken.add(slug)
    return slug


class SyncPipeline:
    """Orchestrates ingestion, dedup, enrichment and store reconciliation."""

    def __init__(
        self,
        config: PipelineConfig,
        data_dir: str | Path | None = None,
        scrapers: Optional[list[BaseScraper]] = None,
        store: Optional[ContentStore] = None,
        enricher: Optional[CompanyEnricher] = None,
        listing_filter: Optional[ListingFilter] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.config = config
        self.data_dir = Path(data_dir) if data_dir else Path(config.data_dir)
        self.listing_filter = listing_filter
        self._clock = clock

        self.ats_cache = open_cache("ats", self.data_dir)
        self.scrapers = scrapers if scrapers is not None else self._build_scrapers()

        if enricher is None:
            enricher = CompanyEnricher(
                open_cache("enrichment", self.data_dir, key_func=company_cache_key),
                api_key=config.credentials.pdl_api_key,
                timeout=config.request_timeout_seconds,
            )
        self.enricher = enricher

        if store is None and config.credentials.has_webflow:
            store = WebflowStore.from_credentials(
                config.credentials, timeout=config.request_timeout_seconds
            )
        self.store = store

    def _build_scrapers(self) -> list[BaseScraper]:
        """Instantiate an adapter for each enabled source in config."""
        scrapers: list[BaseScraper] = []
        for source in self.config.enabled_sources:
            scraper_cls = SCRAPER_REGISTRY.get(source.scraper_type)
            if not scraper_cls:
                logger.warning(
                    "Unknown scraper type '%s' for source '%s'; skipping",
                    source.scraper_type, source.name,
                )
                continue
            try:
                scrapers.append(scraper_cls(source, self.config))
                logger.info("Initialized scraper: %s (%s)", source.name, source.scraper_type)
            except Exception as exc:
                logger.error("Failed to initialize scraper '%s': %s", source.name, exc)
        return scrapers

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def endpoints_for(self, scraper: BaseScraper) -> list[Endpoint]:
        """Configured endpoints plus boards found by detection, without repeats."""
        endpoints = scraper.configured_endpoints()
        if self.config.use_detected_boards and scraper.source in PROVIDERS:
            endpoints += detected_boards(self.ats_cache, scraper.source)

        seen: set[str] = set()
        unique = []
        for endpoint in endpoints:
            key = endpoint.name.lower()
            if key not in seen:
                seen.add(key)
                unique.append(endpoint)
        return unique

    def ingest(self, limit: int | None = None) -> tuple[list[RawListing], dict[str, int]]:
        """Run every adapter in order. Returns (listings, counts per adapter)."""
        all_listings: list[RawListing] = []
        stats: dict[str, int] = {}

        for scraper in self.scrapers:
            remaining = None if limit is None else limit - len(all_listings)
            if remaining is not None and remaining <= 0:
                logger.info("Limit of %d reached; skipping %s", limit, scraper.name)
                break

            logger.info("Running scraper: %s", scraper.name)
            try:
                listings = scraper.scrape(self.endpoints_for(scraper), limit=remaining)
            except Exception as exc:
                logger.error("  -> %s: FAILED: %s", scraper.name, exc)
                listings = []

            stats[scraper.name] = len(listings)
            all_listings.extend(listings)

        return all_listings, stats

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------

    def enrich(
        self,
        listings: list[RawListing],
        existing_slugs: set[str],
        summary: RunSummary,
    ) -> list[EnrichedListing]:
        """Attach company facts and a unique slug to each listing."""
        taken = set(existing_slugs)
        enriched: list[EnrichedListing] = []

        for i, listing in enumerate(listings, start=1):
            try:
                logger.debug("[%d/%d] Enriching: %s at %s", i, len(listings), listing.title, listing.company)
                lookup = self.enricher.lookup(listing.company)
                if lookup.cache_hit:
                    summary.cache_hits += 1
                else:
                    summary.cache_misses += 1

                company = lookup.data or {}
                base = slugify(f"{listing.title} {listing.company} {listing.location}")
                enriched.append(
                    EnrichedListing.from_raw(
                        listing,
                        slug=unique_slug(base or "job", taken),
                        **{
                            "company-size": company.get("employee_count", ""),
                            "company-hq": company.get("hq", ""),
                            "industry": company.get("industry", ""),
                        },
                    )
                )
            except Exception as exc:
                summary.errors += 1
                logger.error("Error enriching %s at %s: %s", listing.title, listing.company, exc)

        return enriched

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    def run(self, dry_run: bool = False, limit: int | None = None) -> RunSummary:
        """Execute one sync run. Never raises; failures are in the summary."""
        summary = RunSummary()
        started = time.monotonic()
        companies: set[str] = set()

        if dry_run:
            logger.info("DRY RUN: no content store writes")
        logger.info("Starting sync with %d scrapers", len(self.scrapers))

        try:
            raw, summary.by_source = self.ingest(limit)
            summary.total_ingested = len(raw)

            canonical = deduplicate_listings(raw)
            summary.after_dedup = len(canonical)

            if self.listing_filter is not None:
                canonical = [listing for listing in canonical if self.listing_filter(listing)]
            summary.after_filter = len(canonical)
            summary.skipped = summary.after_dedup - summary.after_filter
            companies = {listing.company for listing in canonical}

            if not canonical:
                logger.warning("No listings left after filtering")

            write = not dry_run and self.store is not None
            if not dry_run and self.store is None:
                logger.warning("Webflow credentials not set; skipping CMS push")

            existing_slugs: set[str] = set()
            if write:
                try:
                    existing_slugs = {item.slug for item in self.store.iter_items() if item.slug}
                except Exception as exc:
                    logger.warning("Could not fetch existing slugs: %s", exc)

            enriched = self.enrich(canonical, existing_slugs, summary)
            summary.enriched = len(enriched)

            if dry_run:
                for listing in enriched:
                    logger.info("  would push: %s at %s (%s) slug=%s",
                                listing.title, listing.company, listing.location, listing.slug)
                logger.info("DRY RUN complete: %d items would be pushed", len(enriched))
            elif write:
                result = Reconciler(self.store, clock=self._clock).reconcile(enriched)
                summary.created = result.created
                summary.updated = result.updated
                summary.expired = result.expired
                summary.deleted = result.deleted
                summary.errors += result.errors
                summary.published = result.published
        except Exception:
            logger.exception("Pipeline failed")
            summary.errors += 1
            summary.failed = True
        finally:
            summary.duration_seconds = round(time.monotonic() - started, 1)
            self._log_summary(summary)
            self._record_history(summary, companies)

        return summary

    def detect_boards(
        self,
        firms: list[Firm],
        force: bool = False,
        limit: int | None = None,
    ) -> DetectionStats:
        """Probe employer boards for `firms` and cache the results."""
        probers: dict[str, BaseScraper] = {}
        for provider in PROVIDERS:
            existing = next((s for s in self.scrapers if s.source == provider), None)
            if existing is None:
                source = SourceConfig(name=provider, scraper_type=provider)
                existing = SCRAPER_REGISTRY[provider](source, self.config)
            probers[provider] = existing
        return detect_all(firms, self.ats_cache, probers, force=force, limit=limit)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _log_summary(self, summary: RunSummary) -> None:
        logger.info("=== Sync Summary ===")
        for name, count in summary.by_source.items():
            logger.info("  %s: %d listings", name, count)
        logger.info("  Ingested:       %d", summary.total_ingested)
        logger.info("  After dedup:    %d", summary.after_dedup)
        logger.info("  After filter:   %d", summary.after_filter)
        logger.info("  Skipped:        %d", summary.skipped)
        logger.info("  Created:        %d", summary.created)
        logger.info("  Updated:        %d", summary.updated)
        logger.info("  Expired:        %d", summary.expired)
        logger.info("  Deleted:        %d", summary.deleted)
        logger.info("  Errors:         %d", summary.errors)
        logger.info("  Cache hit/miss: %d/%d", summary.cache_hits, summary.cache_misses)
        logger.info("  Duration:       %.1fs", summary.duration_seconds)

    def _record_history(self, summary: RunSummary, companies: set[str]) -> None:
        record = {
            "timestamp": self._clock().isoformat(),
            "duration_seconds": summary.duration_seconds,
            "summary": summary.to_dict(),
            "unique_companies": len(companies),
        }
        try:
            append_run_history(record, self.data_dir, now=self._clock())
        except Exception as exc:
            logger.warning("Could not write run history: %s", exc)
