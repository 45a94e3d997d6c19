"""FastAPI route definitions for the agent booking API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from src.api.schemas import (
    AgentUpsertRequest,
    BookingUpdateRequest,
    CalendarUpsertRequest,
    ChatRequest,
    HealthResponse,
    KnowledgeDocumentRequest,
)
from src.chat import ChatError, ChatService, RateLimited
from src.services.bookings import BookingError, BookingRequest, BookingService
from src.services.store import RecordStore

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_HISTORY_LIMIT = 100


def _state(request: Request, name: str) -> Any:
    """Retrieve a service built during the FastAPI lifespan (see ``server.py``)."""
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=503,
            detail="The service is still starting up. Please try again in a moment.",
        )
    return service


def _chat_service(request: Request) -> ChatService:
    return _state(request, "chat_service")


def _booking_service(request: Request) -> BookingService:
    return _state(request, "booking_service")


def _store(request: Request) -> RecordStore:
    return _state(request, "store")


def _error(
    status_code: int,
    error: str,
    reason: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = {"error": error}
    if reason:
        body["reason"] = reason
    return JSONResponse(body, status_code=status_code, headers=headers)


def _booking_error(exc: BookingError) -> JSONResponse:
    return _error(exc.status_code, exc.args[0], exc.reason)


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


# ── Agents ───────────────────────────────────────────────────────────


@router.put("/agents/{agent_id}")
def upsert_agent(agent_id: str, body: AgentUpsertRequest, http_request: Request):
    """Create or replace an agent's settings."""
    agent = _store(http_request).save_agent(agent_id, body.model_dump())
    _chat_service(http_request).forget_agent(agent_id)
    return {"success": True, "agent": agent}


@router.put("/agents/{agent_id}/calendar")
def upsert_calendar(agent_id: str, body: CalendarUpsertRequest, http_request: Request):
    """Create or update an agent's calendar."""
    store = _store(http_request)
    if store.get_agent(agent_id) is None:
        return _error(404, f"Agent {agent_id} not found")
    calendar = store.save_agent_calendar(agent_id, body.model_dump())
    return {"success": True, "calendar": calendar}


@router.post("/agents/{agent_id}/knowledge", status_code=201)
def add_knowledge(agent_id: str, body: KnowledgeDocumentRequest, http_request: Request):
    """Attach a document to an agent's knowledge base."""
    store = _store(http_request)
    if store.get_agent(agent_id) is None:
        return _error(404, f"Agent {agent_id} not found")
    chunk = store.add_knowledge_chunk(agent_id, body.content, source_name=body.source_name)
    return {"success": True, "source": {"id": chunk["knowledge_source_id"], "name": chunk["source_name"]}}


# ── Chat ─────────────────────────────────────────────────────────────


@router.post("/agents/{agent_id}/chat")
async def chat(agent_id: str, body: ChatRequest, http_request: Request):
    """Send a message to an agent and get its reply.

    The session ID ties turns together: conversation history and the
    accumulated booking details are both keyed on it.

    **Implementation note**: the turn is synchronous (it calls the
    Anthropic API and may create a booking), so it runs on a worker
    thread via ``asyncio.to_thread`` to keep the event loop responsive.
    """
    service = _chat_service(http_request)
    request_id = getattr(http_request.state, "request_id", "?")

    try:
        result = await asyncio.to_thread(
            service.handle_message,
            agent_id,
            body.session_id,
            body.message,
            user_id=body.user_id,
            metadata=body.metadata,
            use_knowledge_base=body.use_knowledge_base,
        )
    except RateLimited as exc:
        logger.info("[%s] Chat rate limited for agent %s", request_id, agent_id)
        return _error(429, str(exc), headers=exc.result.headers())
    except ChatError as exc:
        logger.info("[%s] Chat request rejected: %s", request_id, exc)
        return _error(exc.status_code, str(exc))
    except HTTPException:
        raise
    except Exception as e:
        # Full traceback stays server-side; the client gets a generic message.
        logger.exception("[%s] Error processing chat request", request_id)
        raise HTTPException(
            status_code=500,
            detail="An internal error occurred. Please try again.",
        ) from e

    return JSONResponse(
        result,
        headers={
            "Cache-Control": "no-store, max-age=0",
            "X-Response-Time": f"{result['responseTimeMs']}ms",
            "X-Tokens-Used": str(result["tokensUsed"]),
            "X-Knowledge-Used": str(result["knowledge"]["searchPerformed"]).lower(),
        },
    )


@router.get("/agents/{agent_id}/chat")
def chat_history(
    agent_id: str,
    http_request: Request,
    session_id: str | None = Query(None, alias="sessionId"),
    limit: int = Query(50, ge=1),
):
    """Conversation history for one session, most recent first."""
    if not session_id:
        return _error(400, "sessionId is required")
    conversations = _chat_service(http_request).history(
        agent_id, session_id, min(limit, MAX_HISTORY_LIMIT),
    )
    return {"conversations": conversations, "count": len(conversations), "sessionId": session_id}


# ── Bookings ─────────────────────────────────────────────────────────


@router.post("/agents/{agent_id}/bookings", status_code=201)
def create_booking(agent_id: str, body: BookingRequest, http_request: Request):
    """Create a booking directly (outside a chat)."""
    try:
        booking = _booking_service(http_request).create_booking(agent_id, body)
    except BookingError as exc:
        return _booking_error(exc)
    message = (
        "Please complete your booking using the provided link"
        if booking["external_url"]
        else "Booking confirmed successfully"
    )
    return {"success": True, "booking": booking, "message": message}


@router.get("/agents/{agent_id}/bookings")
def list_bookings(
    agent_id: str,
    http_request: Request,
    status: str | None = None,
    email: str | None = None,
    date_from: str | None = Query(None, alias="from"),
    date_to: str | None = Query(None, alias="to"),
    limit: int = Query(50, ge=1),
):
    bookings = _booking_service(http_request).list_bookings(
        agent_id,
        status=status,
        email=email,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
    )
    return {"bookings": bookings, "count": len(bookings)}


@router.patch("/agents/{agent_id}/bookings")
def update_booking(agent_id: str, body: BookingUpdateRequest, http_request: Request):
    """Cancel or reschedule a booking."""
    try:
        booking = _booking_service(http_request).update_booking(
            agent_id,
            body.booking_id,
            body.action,
            new_date=body.new_date,
            new_time=body.new_time,
            cancellation_reason=body.cancellation_reason,
        )
    except BookingError as exc:
        return _booking_error(exc)
    message = (
        "Booking cancelled successfully"
        if body.action == "cancel"
        else "Booking rescheduled successfully"
    )
    return {"success": True, "booking": booking, "message": message}
