"""Pattern-based detection of booking and confirmation messages.

Both predicates look at the raw message only.  Whether a turn continues an
earlier booking attempt is decided by the flow controller, which combines
these with the session's stored state.
"""

from __future__ import annotations

import re

_WEEKDAY = r"(?:monday|tuesday|wednesday|thursday|friday|saturday|sunday)"

# A single hit on any of these is enough.
STRONG_BOOKING_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(book|schedule|appointment|meeting|reserve|set up|arrange)\b", re.IGNORECASE),
    re.compile(r"\b(available|availability|free time|open slot)\b", re.IGNORECASE),
    re.compile(r"\b(calendar|date|time|when can)\b", re.IGNORECASE),
)

# Weaker signals: two of the full set (strong included) are needed.
WEAK_BOOKING_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(today|tomorrow|tonight)\b", re.IGNORECASE),
    re.compile(rf"\bnext (week|month|{_WEEKDAY})\b", re.IGNORECASE),
    re.compile(rf"\bon {_WEEKDAY}\b", re.IGNORECASE),
    re.compile(rf"\bthis {_WEEKDAY}\b", re.IGNORECASE),
    re.compile(r"\b\d{1,2}:\d{2}\s*(am|pm)?\b", re.IGNORECASE),
    re.compile(r"\b\d{1,2}\s*(am|pm)\b", re.IGNORECASE),
    re.compile(r"\b(morning|afternoon|evening|noon|midnight)\b", re.IGNORECASE),
    re.compile(r"\b\d{1,2}/\d{1,2}(/\d{2,4})?\b"),
    re.compile(r"\b\d{4}-\d{1,2}-\d{1,2}\b"),
    re.compile(r"[a-zA-Z0-9._-]+@[a-zA-Z0-9._-]+\.[a-zA-Z0-9_-]+"),
    re.compile(r"\b(name|email|phone|mobile|contact|number)[-:\s]", re.IGNORECASE),
    re.compile(r"\b(timezone|tz|time zone|utc|gmt|est|pst|cst|mst|ist)\b", re.IGNORECASE),
    re.compile(r"\b(confirm|yes|proceed|book it|that'?s correct|looks good)\b", re.IGNORECASE),
)

ALL_BOOKING_PATTERNS = STRONG_BOOKING_PATTERNS + WEAK_BOOKING_PATTERNS

_CONFIRM_WORDS = r"(yes|yep|yeah|yup|sure|ok|okay|correct|right|confirm|confirmed|confirm it|book it|proceed)"
_POLITENESS = r"(please|thanks?|thank you)"

CONFIRMATION_PATTERNS: tuple[re.Pattern[str], ...] = (
    # "yes", "ok", "confirm it!", "book it, thanks"
    re.compile(rf"^{_CONFIRM_WORDS}[\s!.,]*(?:{_POLITENESS}[\s!.]*)?$"),
    # confirmation phrase anywhere in a longer message
    re.compile(r"\b(yes|confirm|book it|proceed|go ahead|looks good|that'?s (right|correct|good|fine))\b"),
    # "no notes, confirm"
    re.compile(r"^(no notes?|no additional|nothing else),?\s*(confirm|yes|proceed|book it)"),
    re.compile(rf"^(confirm|yes|proceed|book it).*\b{_POLITENESS}\b"),
)


def booking_signal_count(message: str) -> int:
    """Number of booking patterns that match *message*."""
    return sum(1 for pattern in ALL_BOOKING_PATTERNS if pattern.search(message))


def is_booking_intent(message: str) -> bool:
    """True for one strong booking signal or any two signals together.

    A lone weak signal (just an email address, just "tomorrow") is not
    enough to switch the conversation into booking mode.
    """
    if any(pattern.search(message) for pattern in STRONG_BOOKING_PATTERNS):
        return True
    return booking_signal_count(message) >= 2


def is_confirmation_intent(message: str) -> bool:
    """True when the user is agreeing to go ahead with a pending booking."""
    normalized = message.lower().strip()
    return any(pattern.search(normalized) for pattern in CONFIRMATION_PATTERNS)
