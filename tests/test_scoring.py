"""Tests for the advisory confidence score."""

from __future__ import annotations

from src.booking.models import BookingFields
from src.booking.scoring import FIELD_WEIGHTS, calculate_confidence


class TestCalculateConfidence:
    def test_empty_fields_score_zero(self):
        assert calculate_confidence(BookingFields()) == 0.0

    def test_all_weighted_fields_score_one(self):
        fields = BookingFields(
            date="2026-10-20", time="14:00", timezone="UTC",
            name="John Smith", email="john@example.com", phone="5551234567",
        )
        assert calculate_confidence(fields) == 1.0

    def test_required_fields_only(self):
        fields = BookingFields(
            date="2026-10-20", time="14:00", name="John Smith", email="john@example.com",
        )
        assert calculate_confidence(fields) == 0.9

    def test_notes_carry_no_weight(self):
        assert calculate_confidence(BookingFields(notes="bring the contract")) == 0.0

    def test_weights_sum_to_one_hundred(self):
        assert sum(FIELD_WEIGHTS.values()) == 100

    def test_score_never_decreases_as_fields_are_added(self):
        values = {
            "date": "2026-10-20", "time": "14:00", "name": "John Smith",
            "email": "john@example.com", "phone": "5551234567", "timezone": "UTC",
        }
        collected: dict[str, str] = {}
        previous = 0.0
        for name, value in values.items():
            collected[name] = value
            score = calculate_confidence(BookingFields(**collected))
            assert previous <= score <= 1.0
            previous = score
        assert previous == 1.0
