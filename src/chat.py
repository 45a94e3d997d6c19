"""One chat turn, end to end.

``ChatService.handle_message`` validates the message, applies the rate
limit, loads the agent (cached), its calendar and the recent conversation,
then runs the chat graph while holding the session's booking lock.  The
turn is saved with its ``booking_context`` so that the booking flow can be
rebuilt from history if the session store loses it.
"""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime
from typing import Any

from src.agent import inactive_turn
from src.booking.flow import FlowTurn
from src.booking.models import CalendarConfig, FlowStage
from src.booking.session_store import BookingSessionStore
from src.config import (
    AGENT_CACHE_TTL_SECONDS,
    BOOKING_HISTORY_WINDOW,
    CHAT_RATE_LIMIT,
    CHAT_RATE_WINDOW_SECONDS,
    MAX_MESSAGE_LENGTH,
)
from src.services.cache import TTLCache
from src.services.knowledge import KnowledgeLookup
from src.services.metrics import metrics
from src.services.rate_limiter import RateLimiter, RateLimitResult
from src.services.store import RecordStore

logger = logging.getLogger(__name__)


# ── Errors ───────────────────────────────────────────────────────────


class ChatError(Exception):
    """A chat request the caller must fix; ``status_code`` is the HTTP mapping."""

    status_code = 400


class InvalidChatRequest(ChatError):
    status_code = 400


class AgentNotFound(ChatError):
    status_code = 404

    def __init__(self, agent_id: str):
        super().__init__(f"Agent {agent_id} not found")


class AgentInactive(ChatError):
    status_code = 400

    def __init__(self) -> None:
        super().__init__("Agent is currently inactive")


class RateLimited(ChatError):
    status_code = 429

    def __init__(self, result: RateLimitResult):
        self.result = result
        super().__init__("Rate limit exceeded. Please try again later.")


# ── Service ──────────────────────────────────────────────────────────


class ChatService:
    def __init__(
        self,
        store: RecordStore,
        graph: Any,
        sessions: BookingSessionStore,
        rate_limiter: RateLimiter,
        *,
        agent_cache: TTLCache | None = None,
        rate_limit: int = CHAT_RATE_LIMIT,
        rate_window_seconds: int = CHAT_RATE_WINDOW_SECONDS,
    ) -> None:
        self._store = store
        self._graph = graph
        self._sessions = sessions
        self._rate_limiter = rate_limiter
        self._agents = agent_cache or TTLCache(AGENT_CACHE_TTL_SECONDS)
        self._rate_limit = rate_limit
        self._rate_window_seconds = rate_window_seconds

    def _load_agent(self, agent_id: str) -> dict[str, Any]:
        agent = self._agents.get(agent_id)
        if agent is None:
            agent = self._store.get_agent(agent_id)
            if agent is None:
                raise AgentNotFound(agent_id)
            self._agents.put(agent_id, agent)
        if not agent.get("is_active", True):
            raise AgentInactive()
        return agent

    def forget_agent(self, agent_id: str) -> None:
        """Drop a cached agent record after it has been edited."""
        self._agents.invalidate(agent_id)

    def _load_calendar(self, agent_id: str) -> CalendarConfig | None:
        record = self._store.get_agent_calendar(agent_id)
        return CalendarConfig(**record) if record else None

    def handle_message(
        self,
        agent_id: str,
        session_id: str,
        message: str,
        *,
        user_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        use_knowledge_base: bool = True,
    ) -> dict[str, Any]:
        started = time.perf_counter()

        if not message or not message.strip() or not session_id:
            raise InvalidChatRequest("Message and sessionId are required")
        if len(message) > MAX_MESSAGE_LENGTH:
            raise InvalidChatRequest(
                f"Message too long. Maximum {MAX_MESSAGE_LENGTH} characters."
            )

        rate = self._rate_limiter.check(
            f"chat:{user_id or session_id}", self._rate_limit, self._rate_window_seconds,
        )
        if not rate.allowed:
            raise RateLimited(rate)

        agent = self._load_agent(agent_id)
        calendar = self._load_calendar(agent_id)

        with self._sessions.lock(agent_id, session_id):
            history = self._store.get_conversations(agent_id, session_id, BOOKING_HISTORY_WINDOW)
            result = self._graph.invoke({
                "agent_id": agent_id,
                "session_id": session_id,
                "agent": agent,
                "calendar": calendar,
                "history": history,
                "message": message,
                "use_knowledge_base": use_knowledge_base,
            })
            booking: FlowTurn = result.get("booking") or inactive_turn()
            knowledge: KnowledgeLookup = result.get("knowledge") or KnowledgeLookup()
            response = result["response"]
            tokens_used = result.get("tokens_used", 0)
            response_time_ms = int((time.perf_counter() - started) * 1000)

            conversation_metadata = {
                **(metadata or {}),
                "model": agent.get("model"),
                "tokens_used": tokens_used,
                "response_time_ms": response_time_ms,
                "user_id": user_id,
                "vector_search_performed": knowledge.performed,
                "knowledge_sources_used": len(knowledge.results),
            }
            if booking.context is not None:
                conversation_metadata["booking_context"] = booking.context
            conversation = self._store.save_conversation(
                agent_id, session_id, message, response, conversation_metadata,
            )

        self._store.log_analytics(
            agent_id,
            "booking_interaction" if booking.active else "conversation",
            {
                "session_id": session_id,
                "user_id": user_id,
                "message_length": len(message),
                "response_length": len(response),
                "response_time_ms": response_time_ms,
                "booking_flow": booking.active,
                "booking_stage": booking.stage.value,
                "booking_created": booking.creation_attempted and booking.stage is FlowStage.BOOKED,
                "vector_search_performed": knowledge.performed,
                "knowledge_sources_used": len(knowledge.results),
            },
            tokens_used,
            True,
        )
        metrics.record_chat_turn(agent_id, response_time_ms, tokens_used)
        if booking.active:
            metrics.record_booking_stage(booking.stage.value, agent_id)

        logger.info(
            "Chat turn for agent %s session %s: %dms, %d tokens, booking=%s",
            agent_id, session_id, response_time_ms, tokens_used, booking.stage.value,
        )
        return {
            "response": response,
            "conversationId": conversation["id"],
            "tokensUsed": tokens_used,
            "responseTimeMs": response_time_ms,
            "agentId": agent_id,
            "timestamp": datetime.now(UTC).isoformat(),
            "knowledge": {
                "searchPerformed": knowledge.performed,
                "sourcesFound": len(knowledge.results),
                "sources": [r.source_summary() for r in knowledge.results],
            },
            "bookingContext": booking.context,
        }

    def history(self, agent_id: str, session_id: str, limit: int = 50) -> list[dict[str, Any]]:
        return self._store.get_conversations(agent_id, session_id, limit)
