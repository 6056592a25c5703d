"""Remote content store: the interface the reconciler talks to, and its
Webflow CMS (API v2) implementation.

Items written by this pipeline carry `pipeline-managed: true` and an
`expiration-date`; anything else in the collection is left alone.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterator, Optional

import requests

from jobsync.config import Credentials
from jobsync.models import RemoteItem, parse_timestamp
from jobsync.resilience import DEFAULT_RETRY_POLICY, RateLimiter, RetryPolicy, request_with_retry

logger = logging.getLogger(__name__)

WEBFLOW_API = "https://api.webflow.com/v2"
PAGE_SIZE = 100

# Field slugs in the jobs collection
FIELD_NAME = "name"
FIELD_SLUG = "slug"
FIELD_TITLE = "job-title"
FIELD_COMPANY = "company-name"
FIELD_LOCATION = "location"
FIELD_DESCRIPTION = "description"
FIELD_SOURCE_URL = "source-url"
FIELD_DATE_POSTED = "date-posted"
FIELD_SALARY_MIN = "salary-min"
FIELD_SALARY_MAX = "salary-max"
FIELD_CONTRACT_TYPE = "contract-type"
FIELD_EXPIRATION = "expiration-date"
FIELD_PIPELINE_MANAGED = "pipeline-managed"


class WebflowError(RuntimeError):
    """The Webflow API answered with a non-2xx status."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


def item_from_webflow(raw: dict) -> RemoteItem:
    """Convert a Webflow collection item into a RemoteItem."""
    data = raw.get("fieldData") or {}
    return RemoteItem(
        id=raw["id"],
        slug=data.get(FIELD_SLUG) or "",
        name=data.get(FIELD_NAME) or "",
        pipeline_managed=bool(data.get(FIELD_PIPELINE_MANAGED)),
        source_url=data.get(FIELD_SOURCE_URL) or "",
        company=data.get(FIELD_COMPANY) or "",
        title=data.get(FIELD_TITLE) or "",
        location=data.get(FIELD_LOCATION) or "",
        expiration_date=parse_timestamp(data.get(FIELD_EXPIRATION)),
        is_draft=bool(raw.get("isDraft")),
    )


class ContentStore(ABC):
    """Paginated item CRUD plus a publish action."""

    page_size: int = PAGE_SIZE

    @abstractmethod
    def list_items(self, offset: int, limit: int) -> list[RemoteItem]:
        ...

    @abstractmethod
    def create_item(self, field_data: dict[str, Any]) -> str:
        """Create a live item and return its id."""
        ...

    @abstractmethod
    def update_item(self, item_id: str, field_data: dict[str, Any]) -> None:
        """Overwrite the item's fields and make it live."""
        ...

    @abstractmethod
    def set_draft(self, item_id: str) -> None:
        ...

    @abstractmethod
    def delete_item(self, item_id: str) -> None:
        ...

    @abstractmethod
    def publish(self) -> None:
        ...

    def iter_items(self) -> Iterator[RemoteItem]:
        """Page through the whole collection."""
        offset = 0
        while True:
            page = self.list_items(offset, self.page_size)
            yield from page
            if len(page) < self.page_size:
                break
            offset += self.page_size


class WebflowStore(ContentStore):
    """Webflow CMS collection accessed through the v2 REST API."""

    def __init__(
        self,
        api_token: str,
        collection_id: str,
        site_id: str,
        session: Optional[requests.Session] = None,
        limiter: Optional[RateLimiter] = None,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        sleep: Callable[[float], None] = time.sleep,
        timeout: float = 30.0,
    ):
        if not (api_token and collection_id and site_id):
            raise ValueError("Webflow API token, collection id and site id are all required")
        self.collection_id = collection_id
        self.site_id = site_id
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {api_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        })
        # 60 requests per minute; keep two in reserve
        self.limiter = limiter or RateLimiter(58, 60.0, name="Webflow", sleep=sleep)
        self.retry_policy = retry_policy
        self._sleep = sleep
        self.timeout = timeout

    @classmethod
    def from_credentials(cls, credentials: Credentials, **kwargs) -> WebflowStore:
        return cls(
            credentials.webflow_api_token,
            credentials.webflow_collection_id,
            credentials.webflow_site_id,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # ContentStore
    # ------------------------------------------------------------------

    def list_items(self, offset: int, limit: int) -> list[RemoteItem]:
        data = self._api(
            "GET",
            f"/collections/{self.collection_id}/items",
            params={"offset": offset, "limit": limit},
        )
        return [item_from_webflow(raw) for raw in data.get("items", [])]

    def create_item(self, field_data: dict[str, Any]) -> str:
        data = self._api(
            "POST",
            f"/collections/{self.collection_id}/items",
            json={"isDraft": False, "fieldData": field_data},
        )
        return data["id"]

    def update_item(self, item_id: str, field_data: dict[str, Any]) -> None:
        self._api(
            "PATCH",
            f"/collections/{self.collection_id}/items/{item_id}",
            json={"isDraft": False, "fieldData": field_data},
        )

    def set_draft(self, item_id: str) -> None:
        self._api(
            "PATCH",
            f"/collections/{self.collection_id}/items/{item_id}",
            json={"isDraft": True},
        )

    def delete_item(self, item_id: str) -> None:
        self._api("DELETE", f"/collections/{self.collection_id}/items/{item_id}")

    def publish(self) -> None:
        self._api("POST", f"/sites/{self.site_id}/publish", json={})

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _api(self, method: str, path: str, **kwargs) -> dict:
        kwargs.setdefault("timeout", self.timeout)
        resp = request_with_retry(
            self.session, method, f"{WEBFLOW_API}{path}",
            policy=self.retry_policy, sleep=self._sleep, limiter=self.limiter,
            **kwargs,
        )
        if not resp.ok:
            raise WebflowError(
                f"Webflow API {method} {path} returned {resp.status_code}: {resp.text[:300]}",
                status=resp.status_code,
            )
        if not resp.content:
            return {}
        return resp.json()
