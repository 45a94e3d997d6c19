"""Booking records: create, list, cancel and reschedule.

``BookingService`` is also the in-process ``BookingCreator`` used by the
chat flow, so a booking made from a conversation goes through exactly the
same checks as one posted to ``/api/agents/{id}/bookings``.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from pydantic import BaseModel, Field

from src.booking.availability import is_slot_available
from src.booking.flow import BookingCreationError, CreatedBooking
from src.booking.models import DEFAULT_TIMEZONE, BookingFields, CalendarConfig
from src.services.store import RecordStore, now_iso

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 100


# ── Errors ───────────────────────────────────────────────────────────


class BookingError(BookingCreationError):
    """Base class for booking failures; ``status_code`` is the HTTP mapping."""

    status_code = 500

    def __init__(self, message: str, reason: str | None = None):
        self.reason = reason
        super().__init__(message)


class InvalidBookingRequest(BookingError):
    status_code = 400


class CalendarNotFound(BookingError):
    status_code = 404

    def __init__(self) -> None:
        super().__init__("Calendar booking not available for this agent")


class BookingNotFound(BookingError):
    status_code = 404

    def __init__(self) -> None:
        super().__init__("Booking not found")


class SlotUnavailable(BookingError):
    status_code = 409

    def __init__(self, reason: str | None, message: str = "Time slot not available"):
        super().__init__(message, reason=reason)

    def __str__(self) -> str:
        return f"{self.args[0]}: {self.reason}" if self.reason else self.args[0]


class SlotAlreadyBooked(BookingError):
    status_code = 409

    def __init__(self) -> None:
        super().__init__("Time slot already booked")


# ── Request shapes ───────────────────────────────────────────────────


class BookingRequest(BaseModel):
    """Body of a booking creation request."""

    date: str | None = None
    time: str | None = None
    timezone: str = DEFAULT_TIMEZONE
    customer_name: str | None = None
    customer_email: str | None = None
    customer_phone: str | None = None
    customer_notes: str | None = None
    session_id: str | None = None
    duration_minutes: int | None = None
    custom_fields: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_fields(cls, fields: BookingFields, session_id: str, calendar: CalendarConfig) -> BookingRequest:
        return cls(
            date=fields.date,
            time=fields.time,
            timezone=fields.timezone or DEFAULT_TIMEZONE,
            customer_name=fields.name,
            customer_email=fields.email,
            customer_phone=fields.phone,
            customer_notes=fields.notes,
            session_id=session_id,
            duration_minutes=calendar.booking_duration,
        )


def booking_summary(booking: dict[str, Any]) -> dict[str, Any]:
    """The public view of a booking record."""
    return {
        "id": booking["id"],
        "date": booking["booking_date"],
        "time": booking["booking_time"],
        "timezone": booking["timezone"],
        "duration": booking["duration_minutes"],
        "status": booking["status"],
        "external_url": booking.get("external_booking_url"),
    }


# ── Service ──────────────────────────────────────────────────────────


class BookingService:
    def __init__(self, store: RecordStore):
        self._store = store
        # held from the double-booking check until the insert lands
        self._slot_lock = threading.Lock()

    def _active_calendar(self, agent_id: str) -> CalendarConfig:
        record = self._store.get_agent_calendar(agent_id)
        if not record or not record.get("is_active"):
            raise CalendarNotFound()
        return CalendarConfig(**record)

    def create_booking(self, agent_id: str, request: BookingRequest) -> dict[str, Any]:
        """Validate and store a booking, returning its summary."""
        if not (request.date and request.time and request.customer_name and request.customer_email):
            raise InvalidBookingRequest("Missing required booking information")

        calendar = self._active_calendar(agent_id)
        duration = request.duration_minutes or calendar.booking_duration

        availability = is_slot_available(calendar, request.date, request.time, duration)
        if not availability.available:
            raise SlotUnavailable(availability.reason)

        external_url = None
        if calendar.integration_type == "calendly" and calendar.calendly_url:
            # the customer finishes the booking on Calendly
            external_url = calendar.calendly_url

        with self._slot_lock:
            if self._store.find_confirmed_booking(agent_id, request.date, request.time):
                raise SlotAlreadyBooked()
            booking = self._store.insert_booking({
                "agent_id": agent_id,
                "agent_calendar_id": calendar.id,
                "session_id": request.session_id or "direct",
                "booking_date": request.date,
                "booking_time": request.time,
                "duration_minutes": duration,
                "timezone": request.timezone,
                "customer_name": request.customer_name,
                "customer_email": request.customer_email,
                "customer_phone": request.customer_phone,
                "customer_notes": request.customer_notes,
                "custom_fields": request.custom_fields,
                "status": "pending" if external_url else "confirmed",
                "external_booking_id": None,
                "external_booking_url": external_url,
            })
        self._store.log_analytics(agent_id, "booking_interaction", {
            "booking_id": booking["id"],
            "action": "created",
            "integration_type": calendar.integration_type,
        })
        logger.info("Booking %s stored for agent %s (%s)", booking["id"], agent_id, booking["status"])
        return booking_summary(booking)

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
        return self._store.list_bookings(
            agent_id,
            status=status,
            email=email,
            date_from=date_from,
            date_to=date_to,
            limit=min(limit, MAX_LIST_LIMIT),
        )

    def update_booking(
        self,
        agent_id: str,
        booking_id: str,
        action: str,
        *,
        new_date: str | None = None,
        new_time: str | None = None,
        cancellation_reason: str | None = None,
    ) -> dict[str, Any]:
        """Cancel or reschedule an existing booking."""
        booking = self._store.get_booking(agent_id, booking_id)
        if booking is None:
            raise BookingNotFound()

        if action == "cancel":
            changes = {
                "status": "cancelled",
                "cancelled_at": now_iso(),
                "cancellation_reason": cancellation_reason,
            }
        elif action == "reschedule":
            if not new_date or not new_time:
                raise InvalidBookingRequest("new_date and new_time required for rescheduling")
            record = self._store.get_agent_calendar(agent_id)
            if not record:
                raise CalendarNotFound()
            availability = is_slot_available(
                CalendarConfig(**record), new_date, new_time, booking["duration_minutes"],
            )
            if not availability.available:
                raise SlotUnavailable(availability.reason, message="New time slot not available")
            changes = {"booking_date": new_date, "booking_time": new_time, "status": "rescheduled"}
        else:
            raise InvalidBookingRequest(f"Unknown action: {action}")

        updated = self._store.update_booking(booking_id, changes)
        if updated is None:
            raise BookingNotFound()
        self._store.log_analytics(agent_id, "booking_interaction", {
            "booking_id": booking_id,
            "action": action,
        })
        return updated

    # ── BookingCreator ───────────────────────────────────────────────

    def create(
        self,
        agent_id: str,
        session_id: str,
        fields: BookingFields,
        calendar: CalendarConfig,
    ) -> CreatedBooking:
        summary = self.create_booking(agent_id, BookingRequest.from_fields(fields, session_id, calendar))
        return CreatedBooking(
            id=summary["id"], external_url=summary["external_url"], status=summary["status"],
        )
