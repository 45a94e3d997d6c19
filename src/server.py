"""FastAPI server for the agent booking backend.

Run with:
    uv run uvicorn src.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from src.agent import create_chat_agent
from src.api.routes import router
from src.booking.flow import BookingCreator, BookingFlowController
from src.booking.session_store import BookingSessionStore
from src.chat import ChatService
from src.config import (
    BOOKING_API_URL,
    BOOKING_SESSION_TTL_SECONDS,
    CORS_ORIGINS,
    SERVER_HOST,
    SERVER_PORT,
)
from src.services.booking_api import BookingAPIClient
from src.services.bookings import BookingService
from src.services.knowledge import KnowledgeBase
from src.services.rate_limiter import RateLimiter
from src.services.store import InMemoryRecordStore

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Start-up: build the store, services and chat graph once.

    Everything lives on ``app.state`` so routes never touch module-level
    globals and tests can swap in their own services.
    """
    store = InMemoryRecordStore()
    booking_service = BookingService(store)
    sessions = BookingSessionStore(BOOKING_SESSION_TTL_SECONDS)

    api_client: BookingAPIClient | None = None
    creator: BookingCreator = booking_service
    if BOOKING_API_URL:
        api_client = BookingAPIClient(BOOKING_API_URL)
        creator = api_client
        logger.info("Bookings will be created via %s", BOOKING_API_URL)

    flow = BookingFlowController(creator, sessions)
    logger.info("Compiling chat graph…")
    graph = create_chat_agent(KnowledgeBase(store), flow)

    application.state.store = store
    application.state.booking_service = booking_service
    application.state.chat_service = ChatService(store, graph, sessions, RateLimiter())
    logger.info("Agent booking service ready.")
    yield
    if api_client is not None:
        api_client.close()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="Agent Booking API",
    description=(
        "Conversational agents that answer from a knowledge base and "
        "collect appointment bookings over several chat turns."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a unique request ID to every request for log correlation.

    The ID is echoed in the ``X-Request-ID`` response header (a client-sent
    one is reused) and prefixes every route log line for the request.
    """
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info(
        "[%s] %s %s", request_id, request.method, request.url.path,
    )
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Agent Booking API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


# ── CLI entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    logger.info("Starting Agent Booking API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "src.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
