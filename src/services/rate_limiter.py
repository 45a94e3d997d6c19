"""Fixed-window request rate limiter.

Each key gets a counter that resets ``window_seconds`` after its first hit.
Counts live in process memory behind a lock, so limits are per server
process; expired windows are dropped by ``cleanup()`` and lazily on the
next hit.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable
from datetime import UTC, datetime

from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 60
DEFAULT_WINDOW_SECONDS = 60


class RateLimitResult(BaseModel):
    allowed: bool
    remaining: int
    limit: int
    reset_at: float
    retry_after: int = 0

    def headers(self) -> dict[str, str]:
        """``Retry-After`` / ``X-RateLimit-*`` response headers."""
        return {
            "Retry-After": str(self.retry_after),
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": datetime.fromtimestamp(self.reset_at, UTC).isoformat(),
        }


class RateLimiter:
    """Thread-safe fixed-window counters keyed by caller."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._windows: dict[str, tuple[int, float]] = {}  # key → (count, reset_at)
        self._lock = threading.Lock()

    def check(
        self,
        key: str,
        limit: int = DEFAULT_LIMIT,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
    ) -> RateLimitResult:
        """Count one request for *key* and report whether it is allowed."""
        now = self._clock()
        with self._lock:
            count, reset_at = self._windows.get(key, (0, 0.0))
            if now >= reset_at:
                count, reset_at = 0, now + window_seconds
            count += 1
            self._windows[key] = (count, reset_at)

        allowed = count <= limit
        if not allowed:
            logger.info("Rate limit exceeded for %s (%d/%d)", key, count, limit)
        return RateLimitResult(
            allowed=allowed,
            remaining=max(0, limit - count),
            limit=limit,
            reset_at=reset_at,
            retry_after=0 if allowed else math.ceil(reset_at - now),
        )

    def reset(self, key: str) -> None:
        with self._lock:
            self._windows.pop(key, None)

    def cleanup(self) -> int:
        """Drop expired windows.  Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, reset_at) in self._windows.items() if now >= reset_at]
            for key in expired:
                del self._windows[key]
        return len(expired)
