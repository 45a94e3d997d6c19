"""Tests for the FastAPI endpoints."""

from __future__ import annotations

from datetime import date
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from langchain_core.messages import AIMessage

from src.agent import create_chat_agent
from src.booking.flow import BookingFlowController
from src.booking.session_store import BookingSessionStore
from src.chat import ChatService
from src.server import app
from src.services.bookings import BookingService
from src.services.knowledge import KnowledgeBase
from src.services.rate_limiter import RateLimiter
from src.services.store import InMemoryRecordStore

MONDAY = date(2026, 10, 19)
AGENT_ID = "agent-1"


@pytest.fixture
def mock_llm():
    llm = MagicMock()
    llm.invoke.return_value = AIMessage(
        content="Hello! I'm the front desk assistant. How can I help you?",
        usage_metadata={"input_tokens": 20, "output_tokens": 5, "total_tokens": 25},
    )
    with patch("src.agent._build_llm", return_value=llm):
        yield llm


@pytest.fixture
def store(calendar_record) -> InMemoryRecordStore:
    store = InMemoryRecordStore()
    store.save_agent(AGENT_ID, {"name": "Front Desk", "purpose": "calendar"})
    store.save_agent_calendar(AGENT_ID, calendar_record)
    return store


@pytest.fixture
def client(store, mock_llm):
    """Test client with services attached to app state (mirrors the lifespan)."""
    sessions = BookingSessionStore(ttl_seconds=600)
    booking_service = BookingService(store)
    flow = BookingFlowController(booking_service, sessions, today=lambda tz: MONDAY)
    graph = create_chat_agent(KnowledgeBase(store), flow)

    app.state.store = store
    app.state.booking_service = booking_service
    app.state.chat_service = ChatService(store, graph, sessions, RateLimiter(), rate_limit=5)
    yield TestClient(app)
    # Clean up
    app.state.store = None
    app.state.booking_service = None
    app.state.chat_service = None


def _book(client, **overrides):
    body = {
        "date": "2026-10-20",
        "time": "14:00",
        "customer_name": "John Smith",
        "customer_email": "john@example.com",
    }
    body.update(overrides)
    return client.post(f"/api/agents/{AGENT_ID}/bookings", json=body)


class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["service"] == "agent-booking"

    def test_request_id_is_echoed(self, client):
        response = client.get("/api/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_services_unavailable_before_startup(self):
        app.state.chat_service = None
        response = TestClient(app).post(
            f"/api/agents/{AGENT_ID}/chat", json={"message": "hi", "sessionId": "s1"},
        )
        assert response.status_code == 503


# ── Agent administration ─────────────────────────────────────────────


class TestAgentEndpoints:
    def test_upsert_agent(self, client, store):
        response = client.put("/api/agents/agent-2", json={"name": "Sales", "tone": "casual"})
        assert response.status_code == 200
        assert response.json()["agent"]["name"] == "Sales"
        assert store.get_agent("agent-2")["tone"] == "casual"

    def test_upsert_agent_validates(self, client):
        response = client.put("/api/agents/agent-2", json={"name": "Sales", "temperature": 3})
        assert response.status_code == 422

    def test_upsert_calendar(self, client, store):
        response = client.put(f"/api/agents/{AGENT_ID}/calendar", json={
            "booking_duration": 45,
            "availability_rules": {"Friday": [{"start": "10:00", "end": "12:00"}]},
        })
        assert response.status_code == 200
        calendar = store.get_agent_calendar(AGENT_ID)
        assert calendar["booking_duration"] == 45
        assert calendar["availability_rules"] == {"Friday": [{"start": "10:00", "end": "12:00"}]}

    def test_calendar_for_unknown_agent(self, client):
        response = client.put("/api/agents/nobody/calendar", json={})
        assert response.status_code == 404
        assert response.json() == {"error": "Agent nobody not found"}

    def test_add_knowledge(self, client, store):
        response = client.post(f"/api/agents/{AGENT_ID}/knowledge", json={
            "content": "Parking is free in the garage behind the building.",
            "source_name": "Visitor guide",
        })
        assert response.status_code == 201
        assert response.json()["source"]["name"] == "Visitor guide"
        assert len(store.list_knowledge_chunks(AGENT_ID)) == 1


# ── Chat ─────────────────────────────────────────────────────────────


class TestChatEndpoint:
    def test_chat_returns_response(self, client):
        response = client.post(
            f"/api/agents/{AGENT_ID}/chat",
            json={"message": "Hello!", "sessionId": "test-session-1"},
        )
        assert response.status_code == 200
        data = response.json()
        assert "front desk" in data["response"]
        assert data["agentId"] == AGENT_ID
        assert data["tokensUsed"] == 25
        assert data["bookingContext"] is None
        assert response.headers["X-Tokens-Used"] == "25"
        assert response.headers["X-Knowledge-Used"] == "false"
        assert response.headers["Cache-Control"] == "no-store, max-age=0"

    def test_chat_books_appointment(self, client, store):
        response = client.post(f"/api/agents/{AGENT_ID}/chat", json={
            "message": "I'd like to book a meeting tomorrow at 2pm, I'm John Smith, john@example.com",
            "sessionId": "test-session-2",
        })
        assert response.status_code == 200
        context = response.json()["bookingContext"]
        assert context["isBookingFlow"] is True
        assert context["bookingCreated"] is True
        assert len(store.list_bookings(AGENT_ID)) == 1

    def test_missing_message(self, client):
        response = client.post(f"/api/agents/{AGENT_ID}/chat", json={"sessionId": "s1"})
        assert response.status_code == 400
        assert response.json() == {"error": "Message and sessionId are required"}

    def test_unknown_agent(self, client):
        response = client.post("/api/agents/nobody/chat", json={"message": "hi", "sessionId": "s1"})
        assert response.status_code == 404

    def test_rate_limit_headers(self, client):
        for _ in range(5):
            client.post(f"/api/agents/{AGENT_ID}/chat", json={"message": "hi", "sessionId": "s1"})
        response = client.post(f"/api/agents/{AGENT_ID}/chat", json={"message": "hi", "sessionId": "s1"})
        assert response.status_code == 429
        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert int(response.headers["Retry-After"]) > 0

    def test_chat_handles_agent_error(self, client, mock_llm):
        mock_llm.invoke.side_effect = RuntimeError("LLM unavailable")
        response = client.post(
            f"/api/agents/{AGENT_ID}/chat",
            json={"message": "Hello!", "sessionId": "test-session-err"},
        )
        assert response.status_code == 500
        assert response.json()["detail"] == "An internal error occurred. Please try again."

    def test_chat_history(self, client):
        client.post(f"/api/agents/{AGENT_ID}/chat", json={"message": "first", "sessionId": "s1"})
        client.post(f"/api/agents/{AGENT_ID}/chat", json={"message": "second", "sessionId": "s1"})

        response = client.get(f"/api/agents/{AGENT_ID}/chat", params={"sessionId": "s1", "limit": 1})
        data = response.json()
        assert data["count"] == 1
        assert data["conversations"][0]["user_message"] == "second"
        assert data["sessionId"] == "s1"

    def test_chat_history_requires_session(self, client):
        response = client.get(f"/api/agents/{AGENT_ID}/chat")
        assert response.status_code == 400


# ── Bookings ─────────────────────────────────────────────────────────


class TestBookingEndpoints:
    def test_create_booking(self, client):
        response = _book(client)
        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["booking"]["status"] == "confirmed"
        assert data["message"] == "Booking confirmed successfully"

    def test_missing_fields(self, client):
        response = _book(client, customer_email=None)
        assert response.status_code == 400
        assert response.json() == {"error": "Missing required booking information"}

    def test_unavailable_slot(self, client):
        response = _book(client, date="2026-10-23")
        assert response.status_code == 409
        assert response.json() == {
            "error": "Time slot not available",
            "reason": "No availability on this day",
        }

    def test_slot_already_booked(self, client):
        _book(client)
        response = _book(client, customer_email="jane@example.com")
        assert response.status_code == 409
        assert response.json() == {"error": "Time slot already booked"}

    def test_list_bookings(self, client):
        _book(client, time="15:00")
        _book(client, time="10:00")
        response = client.get(f"/api/agents/{AGENT_ID}/bookings", params={"from": "2026-10-20"})
        data = response.json()
        assert data["count"] == 2
        assert [b["booking_time"] for b in data["bookings"]] == ["10:00", "15:00"]

    def test_cancel_booking(self, client):
        booking_id = _book(client).json()["booking"]["id"]
        response = client.patch(f"/api/agents/{AGENT_ID}/bookings", json={
            "booking_id": booking_id, "action": "cancel",
        })
        assert response.status_code == 200
        assert response.json()["message"] == "Booking cancelled successfully"
        assert response.json()["booking"]["status"] == "cancelled"

    def test_reschedule_booking(self, client):
        booking_id = _book(client).json()["booking"]["id"]
        response = client.patch(f"/api/agents/{AGENT_ID}/bookings", json={
            "booking_id": booking_id,
            "action": "reschedule",
            "new_date": "2026-10-21",
            "new_time": "11:00",
        })
        assert response.status_code == 200
        assert response.json()["message"] == "Booking rescheduled successfully"

    def test_update_unknown_booking(self, client):
        response = client.patch(f"/api/agents/{AGENT_ID}/bookings", json={
            "booking_id": "missing", "action": "cancel",
        })
        assert response.status_code == 404
        assert response.json() == {"error": "Booking not found"}
