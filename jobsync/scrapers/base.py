"""Abstract base class for all source adapters."""

from __future__ import annotations

import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

import requests
from bs4 import BeautifulSoup

from jobsync.config import PipelineConfig, SourceConfig
from jobsync.models import RawListing
from jobsync.resilience import DEFAULT_RETRY_POLICY, RateLimiter, RetryPolicy, request_with_retry

logger = logging.getLogger(__name__)

_BLOCK_TAGS = [
    "p", "div", "li", "ul", "ol", "tr", "table", "section",
    "h1", "h2", "h3", "h4", "h5", "h6",
]


class SourceError(RuntimeError):
    """A source API answered with a status the adapter cannot use."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class Endpoint:
    """One fetchable unit of a source: a search query or an employer board."""

    name: str
    company: str = ""


def html_to_text(markup: str) -> str:
    """Convert HTML to plain text: block tags and <br> become line breaks,
    entities are decoded, runs of blank lines are collapsed."""
    if not markup:
        return ""
    soup = BeautifulSoup(markup, "html.parser")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for tag in soup.find_all(_BLOCK_TAGS):
        tag.insert_before("\n")
        tag.insert_after("\n")
    text = soup.get_text().replace("\xa0", " ")
    text = re.sub(r"[ \t]+\n", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


class BaseScraper(ABC):
    """Base class that every platform adapter extends.

    Provides the session, the per-API rate limiter and retrying HTTP
    helpers, plus `scrape()`, which fetches a list of endpoints and
    isolates failures so one bad endpoint never aborts the others.
    Subclasses implement `fetch()` and `probe()`.
    """

    #: Stable tag written to every listing; the deduplicator groups on it.
    source: str = ""
    #: (max requests, window seconds) for this platform's API.
    rate_limit: tuple[int, float] = (10, 1.0)

    def __init__(
        self,
        source_config: SourceConfig,
        pipeline_config: PipelineConfig,
        limiter: Optional[RateLimiter] = None,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.source_config = source_config
        self.pipeline_config = pipeline_config
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": pipeline_config.user_agent})
        self.retry_policy = retry_policy
        self._sleep = sleep
        if limiter is None:
            max_requests, window = self.rate_limit
            limiter = RateLimiter(max_requests, window, name=self.source.title(), sleep=sleep)
        self.limiter = limiter

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    @abstractmethod
    def fetch(self, endpoint: Endpoint) -> list[RawListing]:
        """Fetch every listing behind one endpoint, following pagination."""
        ...

    @abstractmethod
    def probe(self, slug: str) -> bool:
        """Cheap existence check used when onboarding new endpoints."""
        ...

    def configured_endpoints(self) -> list[Endpoint]:
        """Endpoints listed for this source in config.yaml."""
        endpoints = []
        for board in self.source_config.params.get("boards", []):
            token = board.get("token", "")
            if token:
                endpoints.append(Endpoint(name=token, company=board.get("company", token)))
        return endpoints

    def scrape(
        self,
        endpoints: Iterable[Endpoint] | None = None,
        limit: int | None = None,
    ) -> list[RawListing]:
        """Fetch all endpoints in order, skipping any that fail.

        Stops early once `limit` listings have been collected.
        """
        targets = list(endpoints) if endpoints is not None else self.configured_endpoints()
        listings: list[RawListing] = []

        for endpoint in targets:
            try:
                found = self.fetch(endpoint)
            except Exception as exc:
                logger.error("[%s] %s failed: %s", self.name, endpoint.name, exc)
                continue

            if found:
                logger.info(
                    "[%s] %s: %d listings%s",
                    self.name, endpoint.name, len(found),
                    f" from {endpoint.company}" if endpoint.company else "",
                )
            listings.extend(found)

            if limit is not None and len(listings) >= limit:
                break

        if limit is not None:
            listings = listings[:limit]
        logger.info("[%s] total: %d listings from %d endpoints", self.name, len(listings), len(targets))
        return listings

    @property
    def name(self) -> str:
        return self.source_config.name

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _get(self, url: str, **kwargs) -> requests.Response:
        """Rate-limited GET with retries. The status is not checked."""
        return self._request("GET", url, **kwargs)

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        kwargs.setdefault("timeout", self.pipeline_config.request_timeout_seconds)
        return request_with_retry(
            self.session, method, url,
            policy=self.retry_policy, sleep=self._sleep, limiter=self.limiter,
            **kwargs,
        )
