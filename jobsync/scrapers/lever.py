"""Lever postings adapter.

Lever exposes public postings at:
  https://api.lever.co/v0/postings/{company_slug}?mode=json

Pagination is by `skip`/`limit`; an empty or short page means the
company's postings are exhausted.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from jobsync.models import RawListing
from jobsync.scrapers.base import BaseScraper, Endpoint, SourceError, html_to_text

logger = logging.getLogger(__name__)

API_BASE = "https://api.lever.co/v0/postings"
DEFAULT_PAGE_SIZE = 100


class LeverScraper(BaseScraper):
    """Fetches postings from Lever, one company slug per endpoint."""

    source = "lever"
    rate_limit = (10, 1.0)

    def __init__(self, source_config, pipeline_config, **kwargs):
        super().__init__(source_config, pipeline_config, **kwargs)
        self.page_size = source_config.params.get("page_size", DEFAULT_PAGE_SIZE)

    def probe(self, slug: str) -> bool:
        """True if `slug` has at least one public Lever posting."""
        try:
            resp = self._get(f"{API_BASE}/{slug}", params={"mode": "json", "limit": 1})
            if not resp.ok:
                return False
            data = resp.json()
        except Exception as exc:
            logger.debug("[%s] probe %s failed: %s", self.name, slug, exc)
            return False
        return isinstance(data, list) and len(data) > 0

    def fetch(self, endpoint: Endpoint) -> list[RawListing]:
        """Fetch all postings for one company, page by page."""
        url = f"{API_BASE}/{endpoint.name}"
        company = endpoint.company or endpoint.name
        postings: list[dict] = []
        skip = 0

        while True:
            params = {"mode": "json", "limit": self.page_size, "skip": skip}
            resp = self._get(url, params=params)

            if resp.status_code == 404:
                break
            if not resp.ok:
                raise SourceError(
                    f"Lever API error {resp.status_code} for {endpoint.name}",
                    status=resp.status_code,
                )

            page = resp.json()
            if not isinstance(page, list) or not page:
                break

            postings.extend(page)
            if len(page) < self.page_size:
                break
            skip += self.page_size

        jobs = []
        for raw in postings:
            job = self._parse_posting(raw, company)
            if job:
                jobs.append(job)
        return jobs

    def _parse_posting(self, raw: dict, company: str) -> RawListing | None:
        title = (raw.get("text") or "").strip()
        if not title:
            return None

        categories = raw.get("categories") or {}
        contract_type, contract_time = _map_commitment(categories.get("commitment"))

        salary_min = salary_max = None
        salary = raw.get("salaryRange") or {}
        if "year" in (salary.get("interval") or ""):
            salary_min = salary.get("min")
            salary_max = salary.get("max")

        created = raw.get("createdAt")
        if created:
            posted = datetime.fromtimestamp(created / 1000, tz=timezone.utc)
        else:
            posted = datetime.now(timezone.utc)

        return RawListing(
            title=title,
            company=company,
            source_url=raw.get("hostedUrl", ""),
            source=self.source,
            location=(categories.get("location") or "").strip(),
            description=_build_description(raw),
            posted_date=posted.isoformat(),
            salary_min=salary_min,
            salary_max=salary_max,
            contract_type=contract_type,
            contract_time=contract_time,
            category=categories.get("team") or categories.get("department"),
            external_id=raw.get("id"),
        )


def _build_description(raw: dict) -> str:
    """Join the intro, every list section and the closing text."""
    parts = [raw.get("descriptionPlain") or html_to_text(raw.get("description") or "")]
    for section in raw.get("lists") or []:
        parts.append(f"{section.get('text', '')}:\n{html_to_text(section.get('content') or '')}")
    closing = raw.get("additionalPlain") or html_to_text(raw.get("additional") or "")
    if closing:
        parts.append(closing)
    return "\n\n".join(p.strip() for p in parts if p and p.strip())


def _map_commitment(commitment: str | None) -> tuple[str | None, str | None]:
    """Map Lever's free-text commitment to (contract_type, contract_time)."""
    text = (commitment or "").lower()
    contract_type = contract_time = None
    if "contract" in text:
        contract_type = "contract"
    elif "permanent" in text or "full" in text:
        contract_type = "permanent"
    if "full" in text:
        contract_time = "full_time"
    elif "part" in text:
        contract_time = "part_time"
    return contract_type, contract_time
