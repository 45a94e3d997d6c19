"""Explicit per-session store for accumulated booking state.

Each (agent, session) pair maps to one ``BookingState`` that expires after
``ttl_seconds`` without activity.  ``lock()`` hands out one lock per pair so
that two chat turns for the same session run one after the other: both
would otherwise read the same prior state and could each create a booking.

Locks are reference-counted and dropped as soon as the last holder or
waiter leaves, so sessions that never save state leave nothing behind.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from src.booking.models import BookingState
from src.services.cache import DEFAULT_MAX_ENTRIES, TTLCache

logger = logging.getLogger(__name__)

SessionKey = tuple[str, str]


class _SessionLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class BookingSessionStore(TTLCache):
    """``(agent_id, session_id) → BookingState`` with idle expiry."""

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        **kwargs,
    ) -> None:
        super().__init__(ttl_seconds, max_entries, **kwargs)
        self._session_locks: dict[SessionKey, _SessionLock] = {}
        self._session_locks_guard = threading.Lock()

    def load(self, agent_id: str, session_id: str) -> BookingState | None:
        state = self.get((agent_id, session_id))
        # hand out copies so callers cannot mutate the stored state in place
        return state.model_copy(deep=True) if state is not None else None

    def save(self, agent_id: str, session_id: str, state: BookingState) -> None:
        self.put((agent_id, session_id), state.model_copy(deep=True))

    @contextmanager
    def lock(self, agent_id: str, session_id: str) -> Iterator[None]:
        """Serialise booking-flow turns for one session."""
        key: SessionKey = (agent_id, session_id)
        with self._session_locks_guard:
            entry = self._session_locks.get(key)
            if entry is None:
                entry = self._session_locks[key] = _SessionLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._session_locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._session_locks[key]

    @property
    def lock_count(self) -> int:
        """Sessions with a turn in progress or waiting."""
        with self._session_locks_guard:
            return len(self._session_locks)
