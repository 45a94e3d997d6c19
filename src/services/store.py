"""Record store for agents, calendars, conversations, bookings and analytics.

Production deployments put these records in a managed database; the chat
pipeline and the booking service only rely on the ``RecordStore`` protocol.
``InMemoryRecordStore`` is the process-local implementation used by the
server by default, the CLI and the tests.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import UTC, datetime
from typing import Any, Protocol

logger = logging.getLogger(__name__)


def now_iso() -> str:
    return datetime.now(UTC).isoformat()


class RecordStore(Protocol):
    def get_agent(self, agent_id: str) -> dict[str, Any] | None: ...

    def save_agent(self, agent_id: str, agent: dict[str, Any]) -> dict[str, Any]: ...

    def get_agent_calendar(self, agent_id: str) -> dict[str, Any] | None: ...

    def save_agent_calendar(self, agent_id: str, calendar: dict[str, Any]) -> dict[str, Any]: ...

    def get_conversations(
        self, agent_id: str, session_id: str, limit: int = 10,
    ) -> list[dict[str, Any]]: ...

    def save_conversation(
        self,
        agent_id: str,
        session_id: str,
        user_message: str,
        agent_response: str,
        metadata: dict[str, Any],
    ) -> dict[str, Any]: ...

    def insert_booking(self, booking: dict[str, Any]) -> dict[str, Any]: ...

    def update_booking(self, booking_id: str, changes: dict[str, Any]) -> dict[str, Any] | None: ...

    def get_booking(self, agent_id: str, booking_id: str) -> dict[str, Any] | None: ...

    def list_bookings(
        self,
        agent_id: str,
        *,
        status: str | None = None,
        email: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]: ...

    def find_confirmed_booking(
        self, agent_id: str, booking_date: str, booking_time: str,
    ) -> dict[str, Any] | None: ...

    def log_analytics(
        self,
        agent_id: str,
        event_type: str,
        event_data: dict[str, Any],
        tokens_used: int = 0,
        success: bool = True,
    ) -> None: ...

    def add_knowledge_chunk(
        self,
        agent_id: str,
        content: str,
        *,
        source_id: str | None = None,
        source_name: str = "Uploaded Document",
    ) -> dict[str, Any]: ...

    def list_knowledge_chunks(self, agent_id: str) -> list[dict[str, Any]]: ...


class InMemoryRecordStore:
    """Lock-guarded dictionaries implementing ``RecordStore``."""

    def __init__(self) -> None:
        self._agents: dict[str, dict[str, Any]] = {}
        self._calendars: dict[str, dict[str, Any]] = {}
        self._conversations: list[dict[str, Any]] = []
        self._bookings: dict[str, dict[str, Any]] = {}
        self._analytics: list[dict[str, Any]] = []
        self._knowledge: dict[str, list[dict[str, Any]]] = {}
        self._lock = threading.Lock()

    # ── Agents & calendars ───────────────────────────────────────────

    def get_agent(self, agent_id: str) -> dict[str, Any] | None:
        with self._lock:
            agent = self._agents.get(agent_id)
            return dict(agent) if agent else None

    def save_agent(self, agent_id: str, agent: dict[str, Any]) -> dict[str, Any]:
        record = {"is_active": True, **agent, "id": agent_id}
        with self._lock:
            self._agents[agent_id] = record
        return dict(record)

    def get_agent_calendar(self, agent_id: str) -> dict[str, Any] | None:
        with self._lock:
            calendar = self._calendars.get(agent_id)
            return dict(calendar) if calendar else None

    def save_agent_calendar(self, agent_id: str, calendar: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            existing = self._calendars.get(agent_id, {})
            record = {**existing, **calendar, "agent_id": agent_id}
            record.setdefault("id", str(uuid.uuid4()))
            self._calendars[agent_id] = record
        return dict(record)

    # ── Conversations ────────────────────────────────────────────────

    def get_conversations(
        self, agent_id: str, session_id: str, limit: int = 10,
    ) -> list[dict[str, Any]]:
        """Most recent first."""
        with self._lock:
            matching = [
                c for c in reversed(self._conversations)
                if c["agent_id"] == agent_id and c["session_id"] == session_id
            ]
        return [dict(c) for c in matching[:limit]]

    def save_conversation(
        self,
        agent_id: str,
        session_id: str,
        user_message: str,
        agent_response: str,
        metadata: dict[str, Any],
    ) -> dict[str, Any]:
        record = {
            "id": str(uuid.uuid4()),
            "agent_id": agent_id,
            "session_id": session_id,
            "user_message": user_message,
            "agent_response": agent_response,
            "metadata": metadata,
            "created_at": now_iso(),
        }
        with self._lock:
            self._conversations.append(record)
        return dict(record)

    # ── Bookings ─────────────────────────────────────────────────────

    def insert_booking(self, booking: dict[str, Any]) -> dict[str, Any]:
        record = {**booking, "id": str(uuid.uuid4()), "created_at": now_iso()}
        with self._lock:
            self._bookings[record["id"]] = record
        return dict(record)

    def update_booking(self, booking_id: str, changes: dict[str, Any]) -> dict[str, Any] | None:
        with self._lock:
            record = self._bookings.get(booking_id)
            if record is None:
                return None
            record.update(changes, updated_at=now_iso())
            return dict(record)

    def get_booking(self, agent_id: str, booking_id: str) -> dict[str, Any] | None:
        with self._lock:
            record = self._bookings.get(booking_id)
            if record is None or record["agent_id"] != agent_id:
                return None
            return dict(record)

    def list_bookings(
        self,
        agent_id: str,
        *,
        status: str | None = None,
        email: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        with self._lock:
            rows = [dict(b) for b in self._bookings.values() if b["agent_id"] == agent_id]
        if status:
            rows = [b for b in rows if b.get("status") == status]
        if email:
            rows = [b for b in rows if b.get("customer_email") == email]
        if date_from:
            rows = [b for b in rows if b["booking_date"] >= date_from]
        if date_to:
            rows = [b for b in rows if b["booking_date"] <= date_to]
        rows.sort(key=lambda b: (b["booking_date"], b["booking_time"]))
        return rows[:limit]

    def find_confirmed_booking(
        self, agent_id: str, booking_date: str, booking_time: str,
    ) -> dict[str, Any] | None:
        with self._lock:
            for record in self._bookings.values():
                if (
                    record["agent_id"] == agent_id
                    and record["booking_date"] == booking_date
                    and record["booking_time"] == booking_time
                    and record.get("status") == "confirmed"
                ):
                    return dict(record)
        return None

    # ── Analytics & knowledge ────────────────────────────────────────

    def log_analytics(
        self,
        agent_id: str,
        event_type: str,
        event_data: dict[str, Any],
        tokens_used: int = 0,
        success: bool = True,
    ) -> None:
        with self._lock:
            self._analytics.append({
                "agent_id": agent_id,
                "event_type": event_type,
                "event_data": event_data,
                "tokens_used": tokens_used,
                "success": success,
                "created_at": now_iso(),
            })

    def analytics_events(self, agent_id: str) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(e) for e in self._analytics if e["agent_id"] == agent_id]

    def add_knowledge_chunk(
        self,
        agent_id: str,
        content: str,
        *,
        source_id: str | None = None,
        source_name: str = "Uploaded Document",
    ) -> dict[str, Any]:
        chunk = {
            "id": str(uuid.uuid4()),
            "knowledge_source_id": source_id or str(uuid.uuid4()),
            "source_name": source_name,
            "content": content,
        }
        with self._lock:
            self._knowledge.setdefault(agent_id, []).append(chunk)
        return dict(chunk)

    def list_knowledge_chunks(self, agent_id: str) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(c) for c in self._knowledge.get(agent_id, [])]
