"""Greenhouse job board adapter.

Greenhouse provides a public JSON API at:
  https://boards-api.greenhouse.io/v1/boards/{board_token}/jobs

With `content=true` each job carries its full description as
entity-escaped HTML. The endpoint returns the whole board in a single
response, so one request exhausts it; there is no pagination.
"""

from __future__ import annotations

import html
import logging

from jobsync.models import RawListing
from jobsync.scrapers.base import BaseScraper, Endpoint, SourceError, html_to_text

logger = logging.getLogger(__name__)

API_BASE = "https://boards-api.greenhouse.io/v1/boards"


class GreenhouseScraper(BaseScraper):
    """Fetches postings from Greenhouse boards, one board token per endpoint."""

    source = "greenhouse"
    rate_limit = (10, 1.0)

    def probe(self, slug: str) -> bool:
        """True if `slug` is a live Greenhouse board token."""
        try:
            resp = self._get(f"{API_BASE}/{slug}")
        except Exception as exc:
            logger.debug("[%s] probe %s failed: %s", self.name, slug, exc)
            return False
        return resp.ok

    def fetch(self, endpoint: Endpoint) -> list[RawListing]:
        """Fetch every job on one board."""
        url = f"{API_BASE}/{endpoint.name}/jobs"
        resp = self._get(url, params={"content": "true"})

        if resp.status_code == 404:
            logger.warning("[%s] board %s not found", self.name, endpoint.name)
            return []
        if not resp.ok:
            raise SourceError(
                f"Greenhouse API error {resp.status_code} for {endpoint.name}",
                status=resp.status_code,
            )

        raw_jobs = resp.json().get("jobs", [])
        company = endpoint.company or endpoint.name

        jobs: list[RawListing] = []
        for raw in raw_jobs:
            job = self._parse_job(raw, company)
            if job:
                jobs.append(job)
        return jobs

    def _parse_job(self, raw: dict, company: str) -> RawListing | None:
        """Convert a single Greenhouse API job object into a RawListing."""
        title = (raw.get("title") or "").strip()
        if not title:
            return None

        # Location falls back to the office list
        location = (raw.get("location") or {}).get("name") or ""
        if not location:
            offices = raw.get("offices") or []
            location = ", ".join(o.get("name", "") for o in offices if o.get("name"))

        departments = raw.get("departments") or []
        category = ", ".join(d.get("name", "") for d in departments if d.get("name")) or None

        # Content arrives entity-escaped: "&lt;p&gt;..."
        content = html.unescape(raw.get("content") or "")

        return RawListing(
            title=title,
            company=company,
            source_url=raw.get("absolute_url", ""),
            source=self.source,
            location=location.strip(),
            description=html_to_text(content),
            posted_date=raw.get("updated_at") or None,
            category=category,
            external_id=str(raw["id"]) if raw.get("id") is not None else None,
        )
