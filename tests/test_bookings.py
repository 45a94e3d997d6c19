"""Tests for the booking service and the in-memory record store."""

from __future__ import annotations

import threading
import time

import pytest

from src.booking.flow import CreatedBooking
from src.booking.models import BookingFields, CalendarConfig
from src.services.bookings import (
    BookingNotFound,
    BookingRequest,
    BookingService,
    CalendarNotFound,
    InvalidBookingRequest,
    SlotAlreadyBooked,
    SlotUnavailable,
)
from src.services.store import InMemoryRecordStore

AGENT = "agent-1"
TUESDAY = "2026-10-20"
FRIDAY = "2026-10-23"


class SlowLookupStore:
    """Delegates to a real store but pauses in the double-booking lookup."""

    def __init__(self, store: InMemoryRecordStore):
        self._store = store

    def find_confirmed_booking(self, *args):
        found = self._store.find_confirmed_booking(*args)
        time.sleep(0.02)
        return found

    def __getattr__(self, name):
        return getattr(self._store, name)


@pytest.fixture
def store(calendar_record) -> InMemoryRecordStore:
    store = InMemoryRecordStore()
    store.save_agent(AGENT, {"name": "Front Desk"})
    store.save_agent_calendar(AGENT, calendar_record)
    return store


@pytest.fixture
def service(store) -> BookingService:
    return BookingService(store)


def _request(**overrides) -> BookingRequest:
    values = {
        "date": TUESDAY,
        "time": "14:00",
        "customer_name": "John Smith",
        "customer_email": "john@example.com",
    }
    values.update(overrides)
    return BookingRequest(**values)


# ── Creation ─────────────────────────────────────────────────────────


class TestCreateBooking:
    def test_creates_confirmed_booking(self, service):
        booking = service.create_booking(AGENT, _request())
        assert booking["date"] == TUESDAY
        assert booking["time"] == "14:00"
        assert booking["timezone"] == "UTC"
        assert booking["duration"] == 30
        assert booking["status"] == "confirmed"
        assert booking["external_url"] is None

    def test_missing_fields_are_rejected(self, service):
        with pytest.raises(InvalidBookingRequest) as exc_info:
            service.create_booking(AGENT, _request(customer_email=None))
        assert exc_info.value.status_code == 400
        assert str(exc_info.value) == "Missing required booking information"

    def test_requires_an_active_calendar(self, store, service, calendar_record):
        store.save_agent_calendar(AGENT, {**calendar_record, "is_active": False})
        with pytest.raises(CalendarNotFound) as exc_info:
            service.create_booking(AGENT, _request())
        assert exc_info.value.status_code == 404

    def test_unknown_agent_has_no_calendar(self, service):
        with pytest.raises(CalendarNotFound):
            service.create_booking("unknown", _request())

    def test_unavailable_slot(self, service):
        with pytest.raises(SlotUnavailable) as exc_info:
            service.create_booking(AGENT, _request(date=FRIDAY))
        assert exc_info.value.status_code == 409
        assert exc_info.value.reason == "No availability on this day"
        assert str(exc_info.value) == "Time slot not available: No availability on this day"

    def test_double_booking_is_rejected(self, service):
        service.create_booking(AGENT, _request())
        with pytest.raises(SlotAlreadyBooked) as exc_info:
            service.create_booking(AGENT, _request(customer_email="jane@example.com"))
        assert str(exc_info.value) == "Time slot already booked"

    def test_concurrent_sessions_cannot_double_book(self, store):
        service = BookingService(SlowLookupStore(store))
        outcomes: list[str] = []

        def book(session: str) -> None:
            try:
                service.create_booking(AGENT, _request(session_id=session))
            except SlotAlreadyBooked:
                outcomes.append("rejected")
            else:
                outcomes.append("booked")

        threads = [threading.Thread(target=book, args=(f"session-{n}",)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ["booked", "rejected", "rejected", "rejected"]
        assert len(store.list_bookings(AGENT)) == 1

    def test_calendly_booking_is_pending_with_link(self, store, service, calendar_record):
        store.save_agent_calendar(AGENT, {
            **calendar_record,
            "integration_type": "calendly",
            "calendly_url": "https://calendly.com/front-desk",
        })
        booking = service.create_booking(AGENT, _request())
        assert booking["status"] == "pending"
        assert booking["external_url"] == "https://calendly.com/front-desk"

    def test_creation_is_logged(self, store, service):
        booking = service.create_booking(AGENT, _request())
        events = store.analytics_events(AGENT)
        assert events[-1]["event_type"] == "booking_interaction"
        assert events[-1]["event_data"]["booking_id"] == booking["id"]
        assert events[-1]["event_data"]["action"] == "created"

    def test_create_from_flow_fields(self, store, service, calendar_record):
        fields = BookingFields(
            date=TUESDAY, time="10:00", timezone="America/New_York",
            name="Jane Doe", email="jane@x.com", notes="first visit",
        )
        created = service.create(AGENT, "session-9", fields, CalendarConfig(**calendar_record))
        assert isinstance(created, CreatedBooking)
        assert created.status == "confirmed"

        record = store.get_booking(AGENT, created.id)
        assert record["session_id"] == "session-9"
        assert record["timezone"] == "America/New_York"
        assert record["customer_notes"] == "first visit"


# ── Listing ──────────────────────────────────────────────────────────


class TestListBookings:
    def test_sorted_by_date_and_time(self, service):
        service.create_booking(AGENT, _request(date="2026-10-21", time="09:30"))
        service.create_booking(AGENT, _request(date=TUESDAY, time="15:00"))
        service.create_booking(AGENT, _request(date=TUESDAY, time="10:00"))

        rows = service.list_bookings(AGENT)
        assert [(b["booking_date"], b["booking_time"]) for b in rows] == [
            (TUESDAY, "10:00"), (TUESDAY, "15:00"), ("2026-10-21", "09:30"),
        ]

    def test_filters(self, service):
        service.create_booking(AGENT, _request(time="10:00"))
        service.create_booking(AGENT, _request(
            date="2026-10-21", time="10:00", customer_email="jane@example.com",
        ))

        assert len(service.list_bookings(AGENT, email="jane@example.com")) == 1
        assert len(service.list_bookings(AGENT, date_from="2026-10-21")) == 1
        assert len(service.list_bookings(AGENT, date_to=TUESDAY)) == 1
        assert service.list_bookings(AGENT, status="cancelled") == []

    def test_limit(self, service):
        for hour in ("10:00", "11:00", "12:00"):
            service.create_booking(AGENT, _request(time=hour))
        assert len(service.list_bookings(AGENT, limit=2)) == 2


# ── Updates ──────────────────────────────────────────────────────────


class TestUpdateBooking:
    def test_cancel(self, store, service):
        booking = service.create_booking(AGENT, _request())
        updated = service.update_booking(
            AGENT, booking["id"], "cancel", cancellation_reason="Changed plans",
        )
        assert updated["status"] == "cancelled"
        assert updated["cancellation_reason"] == "Changed plans"
        assert updated["cancelled_at"]
        # a cancelled booking frees the slot
        assert store.find_confirmed_booking(AGENT, TUESDAY, "14:00") is None

    def test_reschedule(self, service):
        booking = service.create_booking(AGENT, _request())
        updated = service.update_booking(
            AGENT, booking["id"], "reschedule", new_date="2026-10-21", new_time="11:00",
        )
        assert updated["booking_date"] == "2026-10-21"
        assert updated["booking_time"] == "11:00"
        assert updated["status"] == "rescheduled"

    def test_reschedule_needs_date_and_time(self, service):
        booking = service.create_booking(AGENT, _request())
        with pytest.raises(InvalidBookingRequest):
            service.update_booking(AGENT, booking["id"], "reschedule", new_date="2026-10-21")

    def test_reschedule_into_unavailable_slot(self, service):
        booking = service.create_booking(AGENT, _request())
        with pytest.raises(SlotUnavailable) as exc_info:
            service.update_booking(
                AGENT, booking["id"], "reschedule", new_date=FRIDAY, new_time="11:00",
            )
        assert str(exc_info.value) == "New time slot not available: No availability on this day"

    def test_unknown_action(self, service):
        booking = service.create_booking(AGENT, _request())
        with pytest.raises(InvalidBookingRequest) as exc_info:
            service.update_booking(AGENT, booking["id"], "archive")
        assert str(exc_info.value) == "Unknown action: archive"

    def test_booking_of_another_agent_is_not_found(self, store, service, calendar_record):
        booking = service.create_booking(AGENT, _request())
        store.save_agent_calendar("agent-2", calendar_record)
        with pytest.raises(BookingNotFound):
            service.update_booking("agent-2", booking["id"], "cancel")
