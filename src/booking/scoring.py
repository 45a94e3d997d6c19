"""Advisory completeness score for extracted booking fields.

The score is surfaced to the prompt and the API response only; booking
creation is gated on the four required fields, never on this number.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.booking.models import BookingFields

FIELD_WEIGHTS: dict[str, int] = {
    "date": 25,
    "time": 25,
    "name": 20,
    "email": 20,
    "phone": 5,
    "timezone": 5,
}

_MAX_SCORE = sum(FIELD_WEIGHTS.values())


def calculate_confidence(fields: BookingFields) -> float:
    """Return the weighted share of present fields, in ``[0, 1]``.

    A present field earns its full weight; there is no partial credit.
    """
    score = sum(
        weight for name, weight in FIELD_WEIGHTS.items()
        if getattr(fields, name)
    )
    return score / _MAX_SCORE
