"""Shared test fixtures for the agent booking test suite."""

from __future__ import annotations

import os
from datetime import date
from unittest.mock import MagicMock

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ.pop("BOOKING_API_URL", None)


# 19 October 2026 is a Monday.
TODAY = date(2026, 10, 19)

WEEKDAY_HOURS = [{"start": "09:00", "end": "17:00"}]


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def calendar_record() -> dict:
    """An active calendar: Mon-Thu 09:00-17:00, closed Friday and weekends."""
    return {
        "is_active": True,
        "integration_type": "internal",
        "booking_duration": 30,
        "timezone": "UTC",
        "buffer_time": 0,
        "availability_rules": {
            "monday": WEEKDAY_HOURS,
            "tuesday": WEEKDAY_HOURS,
            "wednesday": WEEKDAY_HOURS,
            "thursday": WEEKDAY_HOURS,
            "friday": [],
        },
    }


@pytest.fixture
def mock_http_response():
    """Factory fixture for creating mock httpx responses."""

    def _make(data: dict, status_code: int = 200):
        mock = MagicMock()
        mock.status_code = status_code
        mock.json.return_value = data
        mock.text = str(data)
        return mock

    return _make
