"""Tests for booking state, sticky merging and the persisted context shape."""

from __future__ import annotations

from src.booking.models import (
    AvailabilityResult,
    BookingFields,
    BookingState,
    CalendarConfig,
    FlowStage,
)

COMPLETE = BookingFields(
    date="2026-10-20", time="14:00", timezone="UTC",
    name="John Smith", email="john@example.com",
)


class TestBookingFields:
    def test_complete_needs_all_four_required_fields(self):
        assert COMPLETE.is_complete
        assert not COMPLETE.model_copy(update={"email": None}).is_complete

    def test_optional_fields_never_complete_a_booking(self):
        fields = BookingFields(phone="5551234567", notes="anything", timezone="UTC")
        assert not fields.is_complete
        assert fields.missing_fields == ["date", "time", "name", "email"]


class TestStickyMerge:
    def test_nulls_never_clear(self):
        merged, collected = COMPLETE.merged_with(BookingFields())
        assert merged == COMPLETE
        assert collected == []

    def test_new_values_win(self):
        merged, collected = COMPLETE.merged_with(BookingFields(time="15:30", phone="+4412345678"))
        assert merged.time == "15:30"
        assert merged.phone == "+4412345678"
        assert merged.date == "2026-10-20"
        assert collected == ["time", "phone"]

    def test_repeated_values_still_count_as_collected(self):
        merged, collected = COMPLETE.merged_with(BookingFields(timezone="UTC", name="John Smith"))
        assert merged == COMPLETE
        assert collected == ["timezone", "name"]

    def test_merge_does_not_mutate_inputs(self):
        before = BookingFields(date="2026-10-20")
        before.merged_with(BookingFields(date="2026-10-21"))
        assert before.date == "2026-10-20"


class TestBookingState:
    def test_stages(self):
        assert BookingState().stage is FlowStage.COLLECTING
        assert BookingState(extracted=COMPLETE).stage is FlowStage.COMPLETE_UNCONFIRMED
        assert BookingState(extracted=COMPLETE, booking_error="boom").stage is FlowStage.FAILED
        assert BookingState(extracted=COMPLETE, booking_created=True).stage is FlowStage.BOOKED

    def test_confidence_follows_accumulated_fields(self):
        assert BookingState(extracted=COMPLETE).confidence == 0.95

    def test_context_shape(self):
        calendar = CalendarConfig(
            is_active=True, integration_type="calendly",
            calendly_url="https://calendly.com/front-desk", booking_duration=45,
        )
        state = BookingState(
            extracted=COMPLETE, booking_created=True,
            booking_id="b-1", external_url="https://calendly.com/front-desk",
        )
        context = state.to_context(calendar)
        assert context["isBookingFlow"] is True
        assert context["isComplete"] is True
        assert context["bookingCreated"] is True
        assert context["bookingId"] == "b-1"
        assert context["externalUrl"] == "https://calendly.com/front-desk"
        assert context["calendarConfig"] == {
            "integration_type": "calendly",
            "calendly_url": "https://calendly.com/front-desk",
            "booking_duration": 45,
        }
        assert list(context["extractedData"]) == [
            "date", "time", "timezone", "name", "email", "phone", "notes",
        ]
        assert "bookingError" not in context

    def test_round_trip_through_context(self):
        state = BookingState(
            extracted=COMPLETE.model_copy(update={"notes": "first visit"}),
            booking_error="Time slot already booked",
            availability=AvailabilityResult(available=False, reason="Outside available hours"),
        )
        assert BookingState.from_context(state.to_context()) == state

    def test_from_context_ignores_stored_derived_values(self):
        context = {
            "extractedData": {"date": "2026-10-20"},
            "isComplete": True,
            "confidence": 1.0,
            "somethingElse": "ignored",
        }
        state = BookingState.from_context(context)
        assert not state.is_complete
        assert state.confidence == 0.25
