"""Client-side sliding-window rate limiter.

The assessment gateway allows a handful of requests per minute per client and
answers HTTP 429 beyond that. Checking locally first keeps the dashboard from
burning its allowance on requests that would be refused anyway.
"""

import logging
import math
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

from erflow_core.exceptions import RateLimitedError

logger = logging.getLogger(__name__)


class RateLimiter:
    """Sliding-window limiter keyed by an identifier (endpoint name, client id).

    Usage:
        limiter = RateLimiter(limit=10, window_seconds=60)
        limiter.acquire("triage-assessment")   # raises RateLimitedError when exhausted
    """

    def __init__(
        self,
        limit: int = 10,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def _prune(self, identifier: str, now: float) -> Deque[float]:
        requests = self._requests.setdefault(identifier, deque())
        while requests and now - requests[0] >= self.window_seconds:
            requests.popleft()
        return requests

    def check(self, identifier: str) -> bool:
        """Record a request if allowed.

        Returns:
            True if the request is allowed, False if the limit is exhausted
        """
        with self._lock:
            now = self._clock()
            requests = self._prune(identifier, now)
            if len(requests) >= self.limit:
                return False
            requests.append(now)
            return True

    def retry_after(self, identifier: str) -> float:
        """Seconds until the oldest request leaves the window (0 if free)."""
        with self._lock:
            now = self._clock()
            requests = self._prune(identifier, now)
            if len(requests) < self.limit:
                return 0.0
            return max(0.0, self.window_seconds - (now - requests[0]))

    def acquire(self, identifier: str) -> None:
        """Record a request or raise.

        Raises:
            RateLimitedError: If the limit for ``identifier`` is exhausted
        """
        if not self.check(identifier):
            wait = math.ceil(self.retry_after(identifier))
            logger.warning(f"[RateLimit] Local limit reached for {identifier}, retry in {wait}s")
            raise RateLimitedError(
                f"Rate limit exceeded for {identifier}. Please try again later.",
                retry_after=wait,
            )

    def reset(self, identifier: Optional[str] = None) -> None:
        """Forget recorded requests for one identifier, or all of them."""
        with self._lock:
            if identifier is None:
                self._requests.clear()
            else:
                self._requests.pop(identifier, None)
