"""Company enrichment via People Data Labs, cached for 30 days.

Lookups report whether they were served from cache so the caller can
aggregate hit/miss counts for the run summary.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Optional

import requests

from jobsync.cache import TTLCache
from jobsync.resilience import DEFAULT_RETRY_POLICY, RateLimiter, RetryPolicy, request_with_retry

logger = logging.getLogger(__name__)

PDL_URL = "https://api.peopledatalabs.com/v5/company/enrich"

_COMPANY_NOISE = re.compile(
    r"[,.]|\b(inc|llc|corp|lp|llp|ltd|group|co|pc|pllc|associates)\b",
    re.IGNORECASE,
)

_EMPLOYEE_BANDS = [
    (50, "1-50 employees"),
    (200, "50-200 employees"),
    (500, "200-500 employees"),
    (1000, "500-1,000 employees"),
    (5000, "1,000-5,000 employees"),
]


class EnrichmentError(RuntimeError):
    """The enrichment API answered with an unusable status."""


@dataclass
class CompanyLookup:
    """Result of one enrichment lookup."""

    data: Optional[dict]
    cache_hit: bool = False


def company_cache_key(name: str) -> str:
    """Case-folded company name without commas, periods or legal suffixes.

    Everything else is kept, non-ASCII letters and "&" included, so
    "Smith & Partners" and "Smith Partners" stay distinct.
    """
    return re.sub(r"\s+", " ", _COMPANY_NOISE.sub("", (name or "").casefold())).strip()


def employee_band(count: int | None) -> str:
    if not count:
        return ""
    for upper, label in _EMPLOYEE_BANDS:
        if count < upper:
            return label
    return "5,000+ employees"


class CompanyEnricher:
    """Looks up company facts, consulting the cache before the API.

    `cache` should be opened with `key_func=company_cache_key` so stored
    keys are exactly the keys computed here.
    """

    def __init__(
        self,
        cache: TTLCache,
        api_key: str = "",
        session: Optional[requests.Session] = None,
        limiter: Optional[RateLimiter] = None,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        sleep: Callable[[float], None] = time.sleep,
        timeout: float = 30.0,
    ):
        self.cache = cache
        self.api_key = api_key
        self.session = session or requests.Session()
        self.limiter = limiter or RateLimiter(10, 60.0, name="PDL", sleep=sleep)
        self.retry_policy = retry_policy
        self._sleep = sleep
        self.timeout = timeout
        if not api_key:
            logger.warning("PDL_API_KEY not set; company enrichment uses cache only")

    def lookup(self, company: str) -> CompanyLookup:
        key = company_cache_key(company)
        if not key:
            logger.debug("No usable company name in %r; skipping enrichment", company)
            return CompanyLookup(data=None)

        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Enrichment cache hit: %s", company)
            return CompanyLookup(data=cached, cache_hit=True)

        if not self.api_key:
            return CompanyLookup(data=None)

        try:
            data = self._fetch(company)
        except (requests.RequestException, EnrichmentError, ValueError) as exc:
            logger.error("Enrichment failed for %s: %s", company, exc)
            return CompanyLookup(data=None)

        if data is not None:
            self.cache.put(key, data)
            logger.debug("Enriched: %s", company)
        return CompanyLookup(data=data)

    def _fetch(self, company: str) -> Optional[dict]:
        resp = request_with_retry(
            self.session, "GET", PDL_URL,
            policy=self.retry_policy, sleep=self._sleep, limiter=self.limiter,
            params={"name": company},
            headers={"X-Api-Key": self.api_key, "Accept": "application/json"},
            timeout=self.timeout,
        )
        if resp.status_code == 404:
            return None
        if not resp.ok:
            raise EnrichmentError(f"PDL API error {resp.status_code}: {resp.text[:200]}")

        raw = resp.json()
        location = raw.get("location") or {}
        hq = ", ".join(p for p in (location.get("locality"), location.get("region")) if p)
        return {
            "employee_count": employee_band(raw.get("employee_count")),
            "industry": raw.get("industry") or "",
            "hq": hq,
            "summary": raw.get("summary") or "",
            "founded": str(raw["founded"]) if raw.get("founded") else "",
            "company_type": raw.get("type") or "",
        }
