"""Multi-turn booking flow.

One call to ``BookingFlowController.process_turn`` handles one inbound chat
message:

  1. load the session's prior state (session store first, then the most
     recent ``booking_context`` found in conversation history);
  2. decide whether this turn belongs to a booking flow;
  3. extract fields from the message and sticky-merge them into the state;
  4. check the slot against the calendar when date and time are known;
  5. create the booking when the state is complete and either the user
     confirmed or the message supplied any field at all;
  6. save the state and hand back the ``booking_context`` to persist.

The controller does no locking itself.  Callers that can see concurrent
turns for one session must hold ``BookingSessionStore.lock`` around
``process_turn`` (``ChatService`` does).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime
from typing import Any, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field

from src.booking.availability import is_slot_available
from src.booking.extraction import parse_booking_request
from src.booking.intent import is_booking_intent, is_confirmation_intent
from src.booking.models import BookingFields, BookingState, CalendarConfig, FlowStage
from src.booking.session_store import BookingSessionStore

logger = logging.getLogger(__name__)

GENERIC_CREATION_ERROR = "Failed to create booking"


class BookingCreationError(Exception):
    """A booking collaborator refused or failed to create the booking.

    The message is stored verbatim as ``bookingError`` and shown to the
    user, so it must be human-readable.
    """


class CreatedBooking(BaseModel):
    id: str
    external_url: str | None = None
    status: str | None = None


class BookingCreator(Protocol):
    """Anything that can turn a complete booking state into a booking."""

    def create(
        self,
        agent_id: str,
        session_id: str,
        fields: BookingFields,
        calendar: CalendarConfig,
    ) -> CreatedBooking: ...


class FlowTurn(BaseModel):
    """Outcome of one message as seen by the booking flow."""

    active: bool
    stage: FlowStage
    state: BookingState | None = None
    collected_fields: list[str] = Field(default_factory=list)
    confirmation: bool = False
    creation_attempted: bool = False
    context: dict[str, Any] | None = None


def latest_booking_context(history: Iterable[Mapping[str, Any]]) -> dict[str, Any] | None:
    """Return the newest ``booking_context`` in *history* (most-recent-first)."""
    for conversation in history:
        metadata = conversation.get("metadata") or {}
        context = metadata.get("booking_context")
        if context:
            return context
    return None


def _awaiting_details(state: BookingState) -> bool:
    """Whether any follow-up message should keep feeding *state*.

    True while required fields are missing, and while a complete request is
    parked on a rejected slot so the user can offer another date or time.
    """
    if state.booking_created:
        return False
    if not state.is_complete:
        return True
    return state.availability is not None and not state.availability.available


def today_in(timezone: str) -> date:
    """Today's date on the calendar's wall clock (UTC for unknown zones)."""
    try:
        zone = ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        zone = ZoneInfo("UTC")
    return datetime.now(zone).date()


class BookingFlowController:
    """Drives the booking conversation for every (agent, session) pair."""

    def __init__(
        self,
        creator: BookingCreator,
        sessions: BookingSessionStore,
        *,
        today: Callable[[str], date] = today_in,
    ) -> None:
        self._creator = creator
        self._sessions = sessions
        self._today = today

    # ── State reconstruction ─────────────────────────────────────────

    def prior_state(
        self,
        agent_id: str,
        session_id: str,
        history: Iterable[Mapping[str, Any]] = (),
    ) -> BookingState | None:
        state = self._sessions.load(agent_id, session_id)
        if state is not None:
            return state
        context = latest_booking_context(history)
        if context is None:
            return None
        logger.debug("Rebuilt booking state for %s/%s from history", agent_id, session_id)
        return BookingState.from_context(context)

    # ── One turn ─────────────────────────────────────────────────────

    def process_turn(
        self,
        agent_id: str,
        session_id: str,
        message: str,
        calendar: CalendarConfig | None,
        history: Iterable[Mapping[str, Any]] = (),
    ) -> FlowTurn:
        prior = self.prior_state(agent_id, session_id, history)
        confirmation = is_confirmation_intent(message)
        was_in_flow = prior is not None and _awaiting_details(prior)

        if calendar is None or not calendar.is_active or not (
            is_booking_intent(message) or was_in_flow
        ):
            return FlowTurn(active=False, stage=FlowStage.NOT_BOOKING, state=prior)

        # A finished booking is never reopened; a new request starts over.
        if prior is None or prior.booking_created:
            state = BookingState()
        else:
            state = prior

        extracted = parse_booking_request(message, today=self._today(calendar.timezone))
        state.extracted, collected = state.extracted.merged_with(extracted)

        fields = state.extracted
        if fields.date and fields.time:
            state.availability = is_slot_available(
                calendar, fields.date, fields.time, calendar.booking_duration,
            )
        else:
            state.availability = None

        should_create = state.is_complete and (confirmation or bool(collected))
        attempted = False
        if should_create:
            if state.availability is not None and not state.availability.available:
                logger.info(
                    "Not booking %s/%s: %s", agent_id, session_id, state.availability.reason,
                )
            else:
                attempted = True
                self._create(agent_id, session_id, state, calendar)

        logger.debug(
            "Booking flow %s/%s: %s (collected=%s, confirmation=%s)",
            agent_id, session_id, state.stage.value, collected, confirmation,
        )
        self._sessions.save(agent_id, session_id, state)
        return FlowTurn(
            active=True,
            stage=state.stage,
            state=state,
            collected_fields=collected,
            confirmation=confirmation,
            creation_attempted=attempted,
            context=state.to_context(calendar),
        )

    def _create(
        self,
        agent_id: str,
        session_id: str,
        state: BookingState,
        calendar: CalendarConfig,
    ) -> None:
        """Create the booking; failures are recorded on *state*, never raised."""
        try:
            created = self._creator.create(agent_id, session_id, state.extracted, calendar)
        except BookingCreationError as exc:
            state.booking_error = str(exc) or GENERIC_CREATION_ERROR
            logger.warning("Booking creation failed for %s/%s: %s", agent_id, session_id, exc)
            return
        except Exception:
            state.booking_error = GENERIC_CREATION_ERROR
            logger.exception("Booking creation error for %s/%s", agent_id, session_id)
            return

        state.booking_created = True
        state.booking_id = created.id
        state.external_url = created.external_url
        state.booking_error = None
        logger.info("Booking %s created for %s/%s", created.id, agent_id, session_id)
