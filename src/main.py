"""CLI entry point for trying a booking agent in the terminal.

Starts a demo agent ("Front Desk") with a Monday-Friday 09:00-17:00
calendar in an in-memory store.  For production, use the FastAPI server
(src/server.py).

Usage:
    uv run python -m src.main            # normal mode (quiet)
    uv run python -m src.main --debug    # debug mode (shows flow state)
"""

from __future__ import annotations

import argparse
import logging
import uuid

from dotenv import load_dotenv

from src.agent import create_chat_agent
from src.booking.flow import BookingFlowController
from src.booking.session_store import BookingSessionStore
from src.chat import ChatError, ChatService
from src.config import BOOKING_SESSION_TTL_SECONDS
from src.services.bookings import BookingService
from src.services.knowledge import KnowledgeBase
from src.services.rate_limiter import RateLimiter
from src.services.store import InMemoryRecordStore

logger = logging.getLogger(__name__)

DEMO_AGENT_ID = "demo-agent"
OFFICE_HOURS = [{"start": "09:00", "end": "17:00"}]


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    root_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )

    if not debug:
        # Silence chatty HTTP loggers even if root is WARNING
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("src").setLevel(logging.DEBUG if debug else logging.INFO)


def _demo_store() -> InMemoryRecordStore:
    store = InMemoryRecordStore()
    store.save_agent(DEMO_AGENT_ID, {
        "name": "Front Desk",
        "purpose": "calendar",
        "tone": "friendly",
    })
    store.save_agent_calendar(DEMO_AGENT_ID, {
        "is_active": True,
        "integration_type": "internal",
        "booking_duration": 30,
        "timezone": "UTC",
        "availability_rules": {
            day: OFFICE_HOURS
            for day in ("monday", "tuesday", "wednesday", "thursday", "friday")
        },
    })
    return store


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="Agent booking CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including booking-flow state",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    print("\n" + "=" * 60)
    print("  Agent Booking - CLI Chat")
    print("=" * 60)
    print("  Type your message and press Enter.")
    print("  Commands: 'quit' to exit, 'new' for a new session.")
    print("=" * 60 + "\n")

    store = _demo_store()
    sessions = BookingSessionStore(BOOKING_SESSION_TTL_SECONDS)
    flow = BookingFlowController(BookingService(store), sessions)
    graph = create_chat_agent(KnowledgeBase(store), flow)
    service = ChatService(store, graph, sessions, RateLimiter())

    session_id = str(uuid.uuid4())
    logger.info("Started new session: %s", session_id)

    while True:
        try:
            user_input = input("You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            break

        if not user_input:
            continue

        if user_input.lower() in ("exit", "quit", "q"):
            print("\nGoodbye!")
            break

        if user_input.lower() == "new":
            session_id = str(uuid.uuid4())
            print(f"\n>> New session started: {session_id[:8]}...\n")
            continue

        try:
            result = service.handle_message(DEMO_AGENT_ID, session_id, user_input)
        except KeyboardInterrupt:
            print("\n\nGoodbye!")
            break
        except ChatError as e:
            print(f"\n!! {e}\n")
            continue
        except Exception as e:
            logger.exception("Error processing message")
            print(f"\nAgent: I'm sorry, something went wrong: {e}")
            print("       Please try again or type 'new' to start a fresh session.\n")
            continue

        print(f"\nAgent: {result['response']}\n")
        booking = result["bookingContext"]
        if booking and booking.get("bookingCreated"):
            print(f"   [booking {booking['bookingId']} created]\n")


if __name__ == "__main__":
    main()
