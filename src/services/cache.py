"""Thread-safe in-memory cache with idle expiry and an entry ceiling.

Design decisions
────────────────
• **OrderedDict** for O(1) LRU eviction and promotion.
• **Idle TTL**: every read or write pushes the entry's expiry out by
  ``ttl_seconds``; expired entries are dropped lazily on access and in bulk
  by ``purge_expired()``.
• **threading.Lock** for thread safety (FastAPI runs sync work on a
  thread pool, and chat turns are offloaded with ``asyncio.to_thread``).
• The clock is injectable so expiry can be tested without sleeping.
• Purely ephemeral: data is lost on process restart.

Usage
─────
>>> cache = TTLCache(ttl_seconds=300)
>>> cache.put("agent:42", {"name": "Front desk"})
>>> cache.get("agent:42")
{'name': 'Front desk'}
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 10_000


class TTLCache:
    """Least-Recently-Used cache whose entries expire after a period of disuse."""

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        # key → (value, expires_at)
        self._store: OrderedDict[Hashable, tuple[Any, float]] = OrderedDict()
        self._lock = threading.Lock()

    # ── Core operations ──────────────────────────────────────────────

    def get(self, key: Hashable) -> Any | None:
        """Return the live value (refreshing its expiry) or ``None``."""
        now = self._clock()
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= now:
                del self._store[key]
                logger.debug("Cache: expired %s", key)
                return None
            self._store[key] = (value, now + self._ttl)
            self._store.move_to_end(key)
            return value

    def put(self, key: Hashable, value: Any) -> None:
        """Insert or overwrite *key*.  Evicts LRU entries past the ceiling."""
        now = self._clock()
        with self._lock:
            self._store.pop(key, None)
            self._store[key] = (value, now + self._ttl)
            while len(self._store) > self._max_entries:
                evicted_key, _ = self._store.popitem(last=False)
                logger.debug("Cache: evicted %s", evicted_key)

    def invalidate(self, key: Hashable) -> bool:
        """Remove a single key.  Returns ``True`` if the key existed."""
        with self._lock:
            return self._store.pop(key, None) is not None

    def purge_expired(self) -> int:
        """Drop every expired entry.  Returns count removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, expires_at) in self._store.items() if expires_at <= now]
            for key in expired:
                del self._store[key]
            return len(expired)

    def clear(self) -> None:
        """Drop all entries."""
        with self._lock:
            self._store.clear()

    # ── Introspection ────────────────────────────────────────────────

    @property
    def entry_count(self) -> int:
        """Number of entries currently stored (expired ones included)."""
        return len(self._store)

    def has(self, key: Hashable) -> bool:
        """Check for a live key *without* promoting it."""
        entry = self._store.get(key)
        return entry is not None and entry[1] > self._clock()
