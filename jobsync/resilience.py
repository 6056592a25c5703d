"""Rate limiting and retrying HTTP calls shared by every outbound client.

One `RateLimiter` exists per external API and assumes this process is
its only caller; there is no cross-process coordination. Call
`acquire()` immediately before the request it guards.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

import requests

logger = logging.getLogger(__name__)

# Added to every computed wait so the oldest timestamp has left the window
SAFETY_BUFFER_SECONDS = 0.1

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY_SECONDS = 1.0


class RateLimiter:
    """Sliding-window limiter: at most `max_requests` per `window_seconds`."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        name: str = "API",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._timestamps: deque[float] = deque()

    def acquire(self) -> float:
        """Block until a request slot is free, then claim it.

        Returns the total number of seconds spent waiting.
        """
        waited = 0.0
        while True:
            now = self._clock()
            while self._timestamps and now - self._timestamps[0] >= self.window_seconds:
                self._timestamps.popleft()

            if len(self._timestamps) < self.max_requests:
                self._timestamps.append(now)
                return waited

            oldest = self._timestamps[0]
            wait = self.window_seconds - (now - oldest) + SAFETY_BUFFER_SECONDS
            logger.info("%s rate limit reached, waiting %.1fs", self.name, wait)
            self._sleep(wait)
            waited += wait


@dataclass(frozen=True)
class RetryPolicy:
    """When to retry a request and how long to back off before doing so.

    `attempt` is zero-based: attempt 0 is the first request.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    initial_delay_seconds: float = DEFAULT_INITIAL_DELAY_SECONDS

    def should_retry(self, status: int | None, attempt: int) -> bool:
        """`status` is None for a transport-level failure."""
        if attempt >= self.max_retries:
            return False
        if status is None:
            return True
        return status == 429 or status >= 500

    def backoff_for(self, attempt: int) -> float:
        return self.initial_delay_seconds * (2 ** attempt)


DEFAULT_RETRY_POLICY = RetryPolicy()


def request_with_retry(
    session: requests.Session,
    method: str,
    url: str,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    sleep: Callable[[float], None] = time.sleep,
    limiter: Optional[RateLimiter] = None,
    **kwargs,
) -> requests.Response:
    """Issue one HTTP request, retrying 5xx, 429 and transport failures.

    Any other status is handed back untouched. When retries run out on a
    retryable status the last response is returned; when they run out on
    a transport failure the exception propagates. If `limiter` is given
    a slot is acquired before every attempt.
    """
    attempt = 0
    while True:
        if limiter is not None:
            limiter.acquire()
        try:
            resp = session.request(method, url, **kwargs)
        except requests.RequestException as exc:
            if not policy.should_retry(None, attempt):
                raise
            delay = policy.backoff_for(attempt)
            logger.warning(
                "%s %s attempt %d failed: %s; retrying in %.1fs",
                method, url, attempt + 1, exc, delay,
            )
            sleep(delay)
            attempt += 1
            continue

        if not policy.should_retry(resp.status_code, attempt):
            return resp

        delay = policy.backoff_for(attempt)
        logger.warning(
            "%s %s returned %d on attempt %d; retrying in %.1fs",
            method, url, resp.status_code, attempt + 1, delay,
        )
        sleep(delay)
        attempt += 1
