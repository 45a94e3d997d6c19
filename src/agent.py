"""LangGraph chat pipeline for booking-aware agents.

Architecture:
  One chat turn runs a linear StateGraph with three nodes:

    1. **knowledge**: similarity search over the agent's documents
                       (skipped when the caller disables it)
    2. **booking**:   the booking flow controller: extract fields,
                       accumulate, check availability, create the booking
    3. **chatbot**:   Anthropic LLM call with the assembled system prompt

    knowledge → booking → chatbot → END

  Memory:
    Nothing is checkpointed inside the graph.  The caller passes the
    recent conversation rows in ``history`` and the booking flow keeps its
    own per-session state (``BookingSessionStore``), so any server process
    can serve any turn.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Mapping
from typing import Any

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, AnyMessage, HumanMessage, SystemMessage
from langgraph.graph import END, StateGraph
from typing_extensions import NotRequired, TypedDict

from src.booking.flow import BookingFlowController, FlowTurn
from src.booking.models import CalendarConfig, FlowStage
from src.config import ANTHROPIC_API_KEY, DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE, MODEL_NAME
from src.prompts import build_system_prompt
from src.services.knowledge import KnowledgeBase, KnowledgeLookup
from src.services.metrics import metrics

logger = logging.getLogger(__name__)

# Prior messages (not turns) sent to the model with each request.
MAX_HISTORY_MESSAGES = 10


# ── State schema ─────────────────────────────────────────────────────


class ChatState(TypedDict):
    """The state that flows through the graph.

    The caller supplies everything up to ``use_knowledge_base``; the nodes
    fill in ``knowledge``, ``booking`` and the LLM outputs.
    """

    agent_id: str
    session_id: str
    agent: dict[str, Any]
    calendar: CalendarConfig | None
    history: list[dict[str, Any]]
    message: str
    use_knowledge_base: bool
    knowledge: NotRequired[KnowledgeLookup]
    booking: NotRequired[FlowTurn]
    system_prompt: NotRequired[str]
    response: NotRequired[str]
    tokens_used: NotRequired[int]


# ── LLM builder ─────────────────────────────────────────────────────


def _build_llm(model: str, temperature: float, max_tokens: int) -> ChatAnthropic:
    """Build the Anthropic chat model for one agent configuration."""
    return ChatAnthropic(
        model=model,
        api_key=ANTHROPIC_API_KEY,
        temperature=temperature,
        max_tokens=max_tokens,
    )


def _llm_settings(agent: Mapping[str, Any]) -> tuple[str, float, int]:
    model = agent.get("model") or MODEL_NAME
    temperature = agent.get("temperature")
    max_tokens = agent.get("max_tokens")
    return (
        model,
        DEFAULT_TEMPERATURE if temperature is None else float(temperature),
        max_tokens or DEFAULT_MAX_TOKENS,
    )


# ── Message helpers ──────────────────────────────────────────────────


def history_messages(history: list[Mapping[str, Any]]) -> list[AnyMessage]:
    """Turn most-recent-first conversation rows into chronological messages."""
    messages: list[AnyMessage] = []
    for conversation in reversed(history):
        messages.append(HumanMessage(content=conversation["user_message"]))
        messages.append(AIMessage(content=conversation["agent_response"]))
    return messages[-MAX_HISTORY_MESSAGES:]


def message_text(message: AnyMessage) -> str:
    """Plain text of an LLM reply (Anthropic may return content blocks)."""
    content = message.content
    if isinstance(content, str):
        return content
    return "".join(
        block.get("text", "") if isinstance(block, dict) else str(block)
        for block in content
    )


def _tokens_used(message: AnyMessage) -> int:
    usage = getattr(message, "usage_metadata", None) or {}
    return int(usage.get("total_tokens", 0))


# ── Nodes ───────────────────────────────────────────────────────────


def _make_knowledge_node(knowledge_base: KnowledgeBase):
    def knowledge_node(state: ChatState) -> dict:
        """Retrieve knowledge for the latest message."""
        if not state["use_knowledge_base"]:
            return {"knowledge": KnowledgeLookup()}
        try:
            lookup = knowledge_base.lookup(state["agent_id"], state["message"])
        except Exception:
            # Answering without knowledge beats failing the turn.
            logger.exception("Knowledge search failed for agent %s", state["agent_id"])
            lookup = KnowledgeLookup()
        return {"knowledge": lookup}

    return knowledge_node


def _make_booking_node(booking_flow: BookingFlowController):
    def booking_node(state: ChatState) -> dict:
        """Run the booking flow controller for this turn."""
        turn = booking_flow.process_turn(
            state["agent_id"],
            state["session_id"],
            state["message"],
            state["calendar"],
            state["history"],
        )
        if turn.active:
            logger.debug(
                "booking node: stage=%s collected=%s", turn.stage.value, turn.collected_fields,
            )
        return {"booking": turn}

    return booking_node


def _make_chatbot_node():
    """Create the chatbot node.

    LLM clients are cached per (model, temperature, max_tokens) so agents
    sharing a configuration share one client.
    """
    clients: dict[tuple[str, float, int], ChatAnthropic] = {}
    clients_lock = threading.Lock()

    def _client(settings: tuple[str, float, int]) -> ChatAnthropic:
        with clients_lock:
            if settings not in clients:
                clients[settings] = _build_llm(*settings)
            return clients[settings]

    def chatbot_node(state: ChatState) -> dict:
        """Invoke the LLM with the system prompt, history and new message."""
        booking = state.get("booking")
        system_prompt = build_system_prompt(
            state["agent"],
            state["calendar"],
            state.get("knowledge"),
            booking.context if booking is not None else None,
        )
        settings = _llm_settings(state["agent"])
        llm = _client(settings)
        messages = [
            SystemMessage(content=system_prompt),
            *history_messages(state["history"]),
            HumanMessage(content=state["message"]),
        ]

        t0 = time.perf_counter()
        try:
            response = llm.invoke(messages)
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(
                "anthropic", "llm_invoke",
                error_type=type(exc).__name__, latency_ms=elapsed,
            )
            raise
        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_success("anthropic", "llm_invoke", latency_ms=elapsed)
        logger.debug("chatbot (%s) responded in %.0fms", settings[0], elapsed)

        return {
            "system_prompt": system_prompt,
            "response": message_text(response),
            "tokens_used": _tokens_used(response),
        }

    return chatbot_node


# ── Graph assembly ───────────────────────────────────────────────────


def create_chat_agent(
    knowledge_base: KnowledgeBase,
    booking_flow: BookingFlowController,
):
    """Build and compile the chat graph.

    Returns a compiled graph that can be invoked with a ``ChatState``:
        graph.invoke({"agent_id": ..., "session_id": ..., "agent": {...},
                      "calendar": calendar, "history": rows,
                      "message": "...", "use_knowledge_base": True})
    """
    graph = StateGraph(ChatState)

    graph.add_node("knowledge", _make_knowledge_node(knowledge_base))
    graph.add_node("booking", _make_booking_node(booking_flow))
    graph.add_node("chatbot", _make_chatbot_node())

    graph.set_entry_point("knowledge")
    graph.add_edge("knowledge", "booking")
    graph.add_edge("booking", "chatbot")
    graph.add_edge("chatbot", END)

    compiled = graph.compile()
    logger.debug("Chat agent compiled (default model: %s)", MODEL_NAME)
    return compiled


def inactive_turn() -> FlowTurn:
    """The booking outcome used when the graph did not reach the booking node."""
    return FlowTurn(active=False, stage=FlowStage.NOT_BOOKING)
