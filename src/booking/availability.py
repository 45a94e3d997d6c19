"""Check a requested slot against an agent's weekly availability rules."""

from __future__ import annotations

import logging
from datetime import date, datetime, time

from src.booking.extraction import WEEKDAYS
from src.booking.models import AvailabilityResult, CalendarConfig

logger = logging.getLogger(__name__)

NO_AVAILABILITY_ON_DAY = "No availability on this day"
OUTSIDE_AVAILABLE_HOURS = "Outside available hours"
INVALID_DATE_OR_TIME = "Invalid date or time"


def _parse_clock(value: str) -> time:
    hours, minutes = value.strip().split(":")[:2]
    return time(int(hours), int(minutes))


def is_slot_available(
    calendar: CalendarConfig,
    requested_date: str,
    requested_time: str,
    duration: int | None = None,
) -> AvailabilityResult:
    """Return whether *requested_time* on *requested_date* can be booked.

    A time is bookable when it falls strictly inside one of that weekday's
    ``{start, end}`` windows: a request at exactly ``start`` or ``end`` is
    rejected.  ``duration`` is accepted for callers but not checked against
    the window length or ``buffer_time``.
    """
    try:
        day = date.fromisoformat(requested_date)
        requested = datetime.combine(day, _parse_clock(requested_time))
    except ValueError:
        logger.debug("Unparseable slot %r %r", requested_date, requested_time)
        return AvailabilityResult(available=False, reason=INVALID_DATE_OR_TIME)

    weekday = WEEKDAYS[day.weekday()]
    windows = calendar.availability_rules.get(weekday) or []
    if not windows:
        return AvailabilityResult(available=False, reason=NO_AVAILABILITY_ON_DAY)

    for window in windows:
        try:
            window_start = datetime.combine(day, _parse_clock(window.start))
            window_end = datetime.combine(day, _parse_clock(window.end))
        except ValueError:
            logger.warning("Ignoring malformed %s window %s-%s", weekday, window.start, window.end)
            continue
        if window_start < requested < window_end:
            return AvailabilityResult(available=True)

    return AvailabilityResult(available=False, reason=OUTSIDE_AVAILABLE_HOURS)
