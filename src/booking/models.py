"""Data shapes shared by the booking core.

``BookingState`` is what survives between chat turns.  Its persisted form
(``to_context``) is the ``booking_context`` blob stored in conversation
metadata, so the camelCase key names are a compatibility contract with
records written by earlier versions and must not change.
"""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.booking.scoring import calculate_confidence

# Fields a booking cannot be created without, in completeness-check order.
REQUIRED_FIELDS: tuple[str, ...] = ("date", "time", "name", "email")

FIELD_NAMES: tuple[str, ...] = (
    "date", "time", "timezone", "name", "email", "phone", "notes",
)

DEFAULT_TIMEZONE = "UTC"


class FlowStage(str, enum.Enum):
    """Where a session is in the booking conversation."""

    NOT_BOOKING = "not_booking"
    COLLECTING = "collecting"
    COMPLETE_UNCONFIRMED = "complete_unconfirmed"
    BOOKED = "booked"
    FAILED = "failed"


class BookingFields(BaseModel):
    """Booking details pulled out of free text.

    Every field is independently optional; ``None`` means "not provided".
    The extractor always fills ``timezone`` (``UTC`` when there is no cue),
    the accumulated state starts with it empty.
    """

    date: str | None = None
    time: str | None = None
    timezone: str | None = None
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    notes: str | None = None

    @property
    def confidence(self) -> float:
        return calculate_confidence(self)

    @property
    def is_complete(self) -> bool:
        return all(getattr(self, name) is not None for name in REQUIRED_FIELDS)

    @property
    def missing_fields(self) -> list[str]:
        return [name for name in REQUIRED_FIELDS if getattr(self, name) is None]

    def merged_with(self, update: BookingFields) -> tuple[BookingFields, list[str]]:
        """Sticky merge: non-null values in *update* win, nulls never clear.

        Returns the merged fields and the names *update* supplied a value
        for, whether or not it differs from what was already known.
        """
        values = self.model_dump()
        collected: list[str] = []
        for name in FIELD_NAMES:
            new_value = getattr(update, name)
            if new_value is not None:
                values[name] = new_value
                collected.append(name)
        return BookingFields(**values), collected


class AvailabilityWindow(BaseModel):
    """One ``{start, end}`` window in 24-hour ``HH:MM``."""

    start: str
    end: str


class AvailabilityResult(BaseModel):
    available: bool
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class CalendarConfig(BaseModel):
    """An agent's calendar settings, as read from the record store."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    agent_id: str | None = None
    is_active: bool = False
    integration_type: str | None = None
    calendly_url: str | None = None
    booking_duration: int = 30
    timezone: str = DEFAULT_TIMEZONE
    buffer_time: int = 0
    send_confirmations: bool = False
    availability_rules: dict[str, list[AvailabilityWindow]] = Field(default_factory=dict)

    @field_validator("availability_rules", mode="before")
    @classmethod
    def _lowercase_weekdays(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(day).lower(): rules or [] for day, rules in value.items()}
        return value or {}

    def summary(self) -> dict[str, Any]:
        """The subset echoed back inside ``booking_context``."""
        return {
            "integration_type": self.integration_type,
            "calendly_url": self.calendly_url,
            "booking_duration": self.booking_duration,
        }


class BookingState(BaseModel):
    """Accumulated booking data for one (agent, session) pair."""

    extracted: BookingFields = Field(default_factory=BookingFields)
    booking_created: bool = False
    booking_id: str | None = None
    external_url: str | None = None
    booking_error: str | None = None
    availability: AvailabilityResult | None = None

    @property
    def is_complete(self) -> bool:
        return self.extracted.is_complete

    @property
    def confidence(self) -> float:
        return self.extracted.confidence

    @property
    def stage(self) -> FlowStage:
        if self.booking_created:
            return FlowStage.BOOKED
        if self.booking_error:
            return FlowStage.FAILED
        if self.is_complete:
            return FlowStage.COMPLETE_UNCONFIRMED
        return FlowStage.COLLECTING

    # ── Persisted form ───────────────────────────────────────────────

    def to_context(self, calendar: CalendarConfig | None = None) -> dict[str, Any]:
        """Serialise to the ``booking_context`` metadata shape."""
        context: dict[str, Any] = {
            "isBookingFlow": True,
            "extractedData": self.extracted.model_dump(),
            "isComplete": self.is_complete,
            "confidence": self.confidence,
            "calendarConfig": calendar.summary() if calendar else {},
            "bookingCreated": self.booking_created,
        }
        if self.booking_id is not None:
            context["bookingId"] = self.booking_id
        if self.external_url is not None:
            context["externalUrl"] = self.external_url
        if self.booking_error is not None:
            context["bookingError"] = self.booking_error
        if self.availability is not None:
            context["availability"] = self.availability.to_dict()
        return context

    @classmethod
    def from_context(cls, context: dict[str, Any]) -> BookingState:
        """Rebuild a state from a persisted ``booking_context`` blob.

        Unknown keys are ignored; ``isComplete`` and ``confidence`` are
        derived from the fields rather than trusted.
        """
        data = context.get("extractedData") or {}
        fields = BookingFields(**{name: data.get(name) for name in FIELD_NAMES})
        availability = context.get("availability")
        return cls(
            extracted=fields,
            booking_created=bool(context.get("bookingCreated", False)),
            booking_id=context.get("bookingId"),
            external_url=context.get("externalUrl"),
            booking_error=context.get("bookingError"),
            availability=AvailabilityResult(**availability) if availability else None,
        )
