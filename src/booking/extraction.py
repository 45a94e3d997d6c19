"""Free-text extraction of booking details.

Each ``extract_*`` function looks at one message and returns the value it
found or ``None``.  Nothing here raises on odd input: a literal that looks
like a date but is not a real one (``13/45/2026``) is skipped and the next
candidate is tried.

Precedence inside each field is part of the behaviour callers rely on:

* date: relative keywords, then the absolute formats in ``DATE_STRATEGIES``
  order.
* time: strict 24-hour, then 12-hour am/pm, then day-part words.
* timezone: ``TIMEZONE_PATTERNS`` order, ``UTC`` when nothing matches.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import date, timedelta
from typing import NamedTuple

from src.booking.models import DEFAULT_TIMEZONE, BookingFields

logger = logging.getLogger(__name__)

WEEKDAYS: tuple[str, ...] = (
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
)

_MONTHS: dict[str, int] = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

_MONTH_RE = (
    r"(jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?"
    r"|aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\.?"
)


# ── Date ─────────────────────────────────────────────────────────────


def days_until_weekday(today: date, weekday: int) -> int:
    """Days from *today* to the next *weekday* (Monday=0), never zero."""
    return (weekday - today.weekday()) % 7 or 7


def _relative_keywords(today: date) -> list[tuple[str, int]]:
    """Keyword → day offset, in match order."""
    table = [("today", 0), ("tomorrow", 1)]
    table += [(f"next {day}", days_until_weekday(today, i)) for i, day in enumerate(WEEKDAYS)]
    table += [(day, days_until_weekday(today, i)) for i, day in enumerate(WEEKDAYS)]
    return table


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _month_number(token: str) -> int:
    return _MONTHS[token[:3].lower()]


class DateStrategy(NamedTuple):
    """One absolute date format: a pattern and how to turn a match into a date."""

    name: str
    pattern: re.Pattern[str]
    build: Callable[[re.Match[str], date], date | None]


DATE_STRATEGIES: tuple[DateStrategy, ...] = (
    DateStrategy(
        "mm/dd/yyyy",
        re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{4})\b"),
        lambda m, _: _safe_date(int(m[3]), int(m[1]), int(m[2])),
    ),
    DateStrategy(
        "mm/dd/yy",
        re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{2})\b"),
        lambda m, _: _safe_date(2000 + int(m[3]), int(m[1]), int(m[2])),
    ),
    DateStrategy(
        "mm-dd-yyyy",
        re.compile(r"\b(\d{1,2})-(\d{1,2})-(\d{4})\b"),
        lambda m, _: _safe_date(int(m[3]), int(m[1]), int(m[2])),
    ),
    DateStrategy(
        "yyyy-mm-dd",
        re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b"),
        lambda m, _: _safe_date(int(m[1]), int(m[2]), int(m[3])),
    ),
    DateStrategy(
        "dd month yyyy",
        re.compile(
            rf"\b(\d{{1,2}})(?:st|nd|rd|th)?\s+(?:of\s+)?{_MONTH_RE}(?:,?\s+(\d{{4}}))?\b",
            re.IGNORECASE,
        ),
        lambda m, today: _safe_date(
            int(m[3]) if m[3] else today.year, _month_number(m[2]), int(m[1]),
        ),
    ),
    DateStrategy(
        "month dd, yyyy",
        re.compile(
            rf"\b{_MONTH_RE}\s+(\d{{1,2}})(?:st|nd|rd|th)?(?:,?\s+(\d{{4}}))?\b",
            re.IGNORECASE,
        ),
        lambda m, today: _safe_date(
            int(m[3]) if m[3] else today.year, _month_number(m[1]), int(m[2]),
        ),
    ),
)


def extract_date(message: str, today: date | None = None) -> str | None:
    """Return the requested day as ``YYYY-MM-DD``, or ``None``.

    A bare weekday and ``next <weekday>`` both mean the next occurrence
    after today, so "wednesday" said on a Wednesday is a week out.  Month
    names without a year are read as the current year.
    """
    today = today or date.today()
    normalized = message.lower()

    for keyword, offset in _relative_keywords(today):
        if re.search(rf"\b{keyword}\b", normalized):
            return (today + timedelta(days=offset)).isoformat()

    for strategy in DATE_STRATEGIES:
        for match in strategy.pattern.finditer(message):
            parsed = strategy.build(match, today)
            if parsed is not None:
                return parsed.isoformat()
            logger.debug("Skipping invalid %s literal %r", strategy.name, match[0])
    return None


# ── Time ─────────────────────────────────────────────────────────────

_TIME_24H = re.compile(r"\b(\d{1,2}):(\d{2})\b(?!\s*[ap]\.?m\b)", re.IGNORECASE)
_TIME_12H = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*([ap])\.?m\b", re.IGNORECASE)

DAY_PART_TIMES: dict[str, str] = {
    "morning": "09:00",
    "afternoon": "14:00",
    "evening": "18:00",
    "noon": "12:00",
    "midnight": "00:00",
}


def to_24_hour(hour: int, minute: int, period: str) -> str | None:
    """Convert a 12-hour clock reading; ``None`` if it is not a valid one."""
    if not 1 <= hour <= 12 or not 0 <= minute < 60:
        return None
    period = period.lower()
    if period == "p" and hour != 12:
        hour += 12
    elif period == "a" and hour == 12:
        hour = 0
    return f"{hour:02d}:{minute:02d}"


def extract_time(message: str) -> str | None:
    """Return the requested time as 24-hour ``HH:MM``, or ``None``."""
    for match in _TIME_24H.finditer(message):
        hour, minute = int(match[1]), int(match[2])
        if hour < 24 and minute < 60:
            return f"{hour:02d}:{minute:02d}"

    for match in _TIME_12H.finditer(message):
        converted = to_24_hour(int(match[1]), int(match[2] or 0), match[3])
        if converted:
            return converted

    normalized = message.lower()
    for keyword, value in DAY_PART_TIMES.items():
        if re.search(rf"\b{keyword}\b", normalized):
            return value
    return None


# ── Timezone ─────────────────────────────────────────────────────────

TIMEZONE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(EST|EDT|CST|CDT|MST|MDT|PST|PDT)\b", re.IGNORECASE),
    re.compile(r"\b(UTC|GMT)(?:\s*[+-]\d{1,2})?\b", re.IGNORECASE),
    re.compile(r"\btimezone:?\s*([A-Z]{3,4})\b", re.IGNORECASE),
    re.compile(r"\btimezone[-:\s]+(india|ist|asia)\b", re.IGNORECASE),
    re.compile(r"\b(eastern|central|mountain|pacific)\s+time\b", re.IGNORECASE),
    re.compile(r"\b(india|indian)\s*(?:standard\s*)?time\b", re.IGNORECASE),
)

TIMEZONE_ALIASES: dict[str, str] = {
    "est": "America/New_York",
    "edt": "America/New_York",
    "eastern": "America/New_York",
    "cst": "America/Chicago",
    "cdt": "America/Chicago",
    "central": "America/Chicago",
    "mst": "America/Denver",
    "mdt": "America/Denver",
    "mountain": "America/Denver",
    "pst": "America/Los_Angeles",
    "pdt": "America/Los_Angeles",
    "pacific": "America/Los_Angeles",
    "utc": "UTC",
    "gmt": "UTC",
    "india": "Asia/Kolkata",
    "indian": "Asia/Kolkata",
    "ist": "Asia/Kolkata",
    "asia": "Asia/Kolkata",
}


def extract_timezone(message: str) -> str:
    """Return an IANA zone name; ``UTC`` when the message has no cue."""
    for pattern in TIMEZONE_PATTERNS:
        match = pattern.search(message)
        if match:
            return TIMEZONE_ALIASES.get(match[1].lower(), DEFAULT_TIMEZONE)
    return DEFAULT_TIMEZONE


# ── Name ─────────────────────────────────────────────────────────────

_NAME_WORD = r"[a-z][a-z'-]*"
# Cue matching ignores case; _clean_name title-cases whatever follows.
_NAME_CUE = re.compile(
    rf"\b(?:my name is|i['’]?m|this is|name:?|call me)\s+({_NAME_WORD}(?:[ \t]+{_NAME_WORD})*)",
    re.IGNORECASE,
)
_NAME_LABEL = re.compile(r"\bname\s*[-:]\s*([a-z][a-z'-]*(?:[ \t]+[a-z][a-z'-]*)*)", re.IGNORECASE)
_NAME_SEGMENT = re.compile(r"^[A-Z][a-z'-]+(?:\s+[A-Z][a-z'-]+){1,2}$")

# Words that end a captured name (labels of the next field) ...
_NAME_STOP_WORDS = frozenset({
    "email", "e-mail", "phone", "mobile", "number", "date", "time", "timezone",
    "notes", "note", "at", "on", "and", "for", "tomorrow", "today",
})
# ... and capitalised words that are never the start of a name.
_NOT_NAMES = frozenset(set(WEEKDAYS) | {
    "january", "february", "march", "april", "may", "june", "july", "august",
    "september", "october", "november", "december", "i", "interested",
    "looking", "available", "free", "here", "not", "sorry", "trying",
    "wondering", "calling", "writing", "booking", "good", "fine", "ok", "okay",
    "hi", "hello", "hey", "thanks", "thank", "yes", "no", "please", "next",
    "a", "an", "the", "going", "just", "so", "very", "really", "also", "still",
    "hoping", "wanting", "ready", "sure", "in", "with", "from", "afraid", "new",
})


def _clean_name(raw: str) -> str | None:
    words: list[str] = []
    for word in raw.split():
        if word.lower() in _NAME_STOP_WORDS:
            break
        words.append(word)
    if not words or words[0].lower() in _NOT_NAMES:
        return None
    return " ".join(w[:1].upper() + w[1:].lower() for w in words)


def extract_name(message: str) -> str | None:
    """Return the sender's name, title-cased, or ``None``.

    Tries "my name is …"-style cues, then ``name: value`` labels, then a
    comma-separated segment made only of two or three capitalised words
    (``"tomorrow at 3pm, Jane Doe, jane@x.com"``).
    """
    for pattern in (_NAME_CUE, _NAME_LABEL):
        for match in pattern.finditer(message):
            name = _clean_name(match[1])
            if name:
                return name

    for segment in re.split(r"[,;\n]", message):
        segment = segment.strip()
        if _NAME_SEGMENT.match(segment):
            name = _clean_name(segment)
            if name and not any(w.lower() in _NOT_NAMES for w in segment.split()):
                return name
    return None


# ── Contact details ──────────────────────────────────────────────────

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9-]+(?:\.[a-zA-Z0-9-]+)*\.[a-zA-Z]{2,}")

_PHONE_NUMBER = r"(?:\+?\d{1,3}[-.\s]?)?\(?\d{3,4}\)?[-.\s]?\d{3,4}[-.\s]?\d{4}"
_PHONE_LABELLED = re.compile(
    rf"\b(?:phone|mobile|cell|tel|contact|number)(?:\s*:?\s*|-)({_PHONE_NUMBER})(?!\d)",
    re.IGNORECASE,
)
_PHONE_BARE = re.compile(rf"(?<![\w+])({_PHONE_NUMBER})(?!\d)")


def extract_email(message: str) -> str | None:
    match = EMAIL_PATTERN.search(message)
    return match[0].lower() if match else None


def extract_phone(message: str) -> str | None:
    """Return the phone number with everything but digits and ``+`` removed."""
    for pattern in (_PHONE_LABELLED, _PHONE_BARE):
        match = pattern.search(message)
        if match:
            digits = re.sub(r"[^\d+]", "", match[1])
            # only a leading plus survives
            return digits[:1] + digits[1:].replace("+", "")
    return None


# ── Notes ────────────────────────────────────────────────────────────

_NOTE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(?:notes?|comments?|details?|reason|about|regarding)\b:?\s*(.+)", re.IGNORECASE),
    re.compile(r"\b(?:i need|looking for|interested in)\s+(.+)", re.IGNORECASE),
)


def extract_notes(message: str) -> str | None:
    for pattern in _NOTE_PATTERNS:
        match = pattern.search(message)
        if match and match[1].strip():
            return match[1].strip()
    return None


# ── Whole message ────────────────────────────────────────────────────


def parse_booking_request(message: str, today: date | None = None) -> BookingFields:
    """Run every extractor over *message*.

    ``timezone`` is always set: a message with no zone cue reads as ``UTC``.
    """
    return BookingFields(
        date=extract_date(message, today),
        time=extract_time(message),
        timezone=extract_timezone(message),
        name=extract_name(message),
        email=extract_email(message),
        phone=extract_phone(message),
        notes=extract_notes(message),
    )
