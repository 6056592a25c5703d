"""Adzuna keyword-search adapter.

Adzuna's search API is paginated by page number:
  https://api.adzuna.com/v1/api/jobs/us/search/{page}?what=...

Each search query is one endpoint. Results are snippets rather than full
descriptions, which is why employer-board copies usually win dedup.
Requires ADZUNA_APP_ID and ADZUNA_APP_KEY; without them the adapter
returns nothing.
"""

from __future__ import annotations

import logging

from jobsync.models import RawListing
from jobsync.scrapers.base import BaseScraper, Endpoint, SourceError, html_to_text

logger = logging.getLogger(__name__)

API_BASE = "https://api.adzuna.com/v1/api/jobs/us/search"
DEFAULT_RESULTS_PER_PAGE = 50
DEFAULT_MAX_PAGES = 5

DEFAULT_SEARCH_QUERIES = [
    # Project management
    "project manager architecture",
    "project manager engineering firm",
    "project manager AEC",
    "project director architecture",
    "project engineer design firm",
    "senior project manager construction",
    "project coordinator architecture",
    # Resource management
    "resource manager architecture",
    "resource manager engineering",
    "resource planner AEC",
    "capacity planning manager",
    "workforce planning manager engineering",
    "utilization manager",
    # Operations
    "operations manager architecture firm",
    "operations manager engineering",
    "director of operations architecture",
    "studio director architecture",
    "office director engineering",
    "PMO director construction",
]


class AdzunaScraper(BaseScraper):
    """Searches Adzuna once per configured query."""

    source = "adzuna"
    rate_limit = (4, 1.0)

    def __init__(self, source_config, pipeline_config, **kwargs):
        super().__init__(source_config, pipeline_config, **kwargs)
        params = source_config.params
        self.results_per_page = params.get("results_per_page", DEFAULT_RESULTS_PER_PAGE)
        self.max_pages = params.get("max_pages", DEFAULT_MAX_PAGES)
        self.credentials = pipeline_config.credentials
        self._seen: set[str] = set()

    def configured_endpoints(self) -> list[Endpoint]:
        queries = self.source_config.keywords or DEFAULT_SEARCH_QUERIES
        return [Endpoint(name=q) for q in queries]

    def scrape(self, endpoints=None, limit=None) -> list[RawListing]:
        if not self.credentials.has_adzuna:
            logger.warning("[%s] ADZUNA_APP_ID or ADZUNA_APP_KEY not set; skipping", self.name)
            return []
        self._seen = set()
        return super().scrape(endpoints, limit=limit)

    def probe(self, slug: str) -> bool:
        """True if the query `slug` matches at least one posting."""
        if not self.credentials.has_adzuna:
            return False
        try:
            resp = self._search(slug, page=1, results_per_page=1)
            if not resp.ok:
                return False
            return resp.json().get("count", 0) > 0
        except Exception as exc:
            logger.debug("[%s] probe %r failed: %s", self.name, slug, exc)
            return False

    def fetch(self, endpoint: Endpoint) -> list[RawListing]:
        """Page through one search query until a short or empty page."""
        logger.info("[%s] searching %r", self.name, endpoint.name)
        listings: list[RawListing] = []

        for page in range(1, self.max_pages + 1):
            resp = self._search(endpoint.name, page=page, results_per_page=self.results_per_page)
            if not resp.ok:
                raise SourceError(
                    f"Adzuna API error {resp.status_code}: {resp.text[:200]}",
                    status=resp.status_code,
                )

            results = resp.json().get("results") or []
            if not results:
                break

            for raw in results:
                key = str(raw.get("id") or raw.get("redirect_url") or "")
                if not key or key in self._seen:
                    continue
                self._seen.add(key)
                listings.append(self._parse_result(raw))

            logger.debug(
                "[%s] page %d: %d results, %d new so far",
                self.name, page, len(results), len(listings),
            )
            if len(results) < self.results_per_page:
                break

        return listings

    def _search(self, query: str, page: int, results_per_page: int):
        params = {
            "app_id": self.credentials.adzuna_app_id,
            "app_key": self.credentials.adzuna_app_key,
            "results_per_page": results_per_page,
            "what": query,
            "content-type": "application/json",
        }
        return self._get(f"{API_BASE}/{page}", params=params)

    def _parse_result(self, raw: dict) -> RawListing:
        company = (raw.get("company") or {}).get("display_name") or "Unknown"
        location = (raw.get("location") or {}).get("display_name") or ""
        category = (raw.get("category") or {}).get("label")

        return RawListing(
            title=(raw.get("title") or "").strip(),
            company=company.strip(),
            source_url=raw.get("redirect_url", ""),
            source=self.source,
            location=location.strip(),
            description=html_to_text(raw.get("description") or ""),
            posted_date=raw.get("created") or None,
            salary_min=raw.get("salary_min"),
            salary_max=raw.get("salary_max"),
            salary_is_predicted=str(raw.get("salary_is_predicted", "0")) == "1",
            contract_type=raw.get("contract_type"),
            contract_time=raw.get("contract_time"),
            category=category,
            external_id=str(raw["id"]) if raw.get("id") is not None else None,
        )
