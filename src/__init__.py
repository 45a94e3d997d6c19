"""Agent Booking: conversational agents that take appointment bookings.

Architecture Overview
=====================

Each chat turn runs a **LangGraph** StateGraph with three nodes:

1. **knowledge**: searches the agent's uploaded documents and falls back
   to the full documents when nothing is relevant enough.

2. **booking**: the booking flow controller.  It pulls dates, times,
   timezones, names, emails, phones and notes out of the message with
   regular expressions, merges them into the session's accumulated state,
   checks the requested slot against the calendar's weekday rules and
   creates the booking once everything is known.

3. **chatbot**: Claude, with a system prompt describing the agent and
   what the booking flow has collected so far.

Routing: knowledge → booking → chatbot → END

Key Design Decisions
--------------------
- **Deterministic extraction**: booking fields come from pattern matching,
  never from the LLM, so the same message always yields the same booking.
- **Explicit session state**: accumulated booking data lives in a
  ``BookingSessionStore`` with an idle TTL.  Each saved conversation also
  carries a ``booking_context`` snapshot so the flow survives restarts.
- **One turn per session at a time**: the session store hands out a lock
  per (agent, session) so concurrent messages cannot double-book.
- **Pluggable booking creation**: in-process ``BookingService`` or the HTTP
  ``BookingAPIClient`` (exponential backoff retries on timeouts and 5xx).
- **Dual Interface**: FastAPI server (production) + CLI chat loop (development/testing).

Package Structure
-----------------
- ``src/booking/``: extraction, intent, scoring, availability, flow state
- ``src/agent.py``: LangGraph StateGraph definition
- ``src/chat.py``: one chat turn end to end (validation, limits, persistence)
- ``src/config.py``: Centralized configuration from environment variables
- ``src/prompts.py``: System prompt assembly
- ``src/server.py``: FastAPI application
- ``src/main.py``: CLI chat interface
- ``src/services/``: record store, bookings, knowledge search, rate limiting, metrics
- ``src/api/``: FastAPI routes and Pydantic schemas
"""
