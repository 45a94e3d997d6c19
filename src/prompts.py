"""System prompt assembly for booking-aware agents.

The prompt is built per turn from three parts: the agent's persona (and
calendar capabilities when its calendar is active), any knowledge-base
context retrieved for the message, and a BOOKING FLOW ACTIVE section
describing what the booking flow has collected so far.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from src.booking.models import REQUIRED_FIELDS, CalendarConfig
from src.services.knowledge import KnowledgeLookup

PURPOSE_INSTRUCTIONS = {
    "instagram": "You are an Instagram DM assistant. Respond professionally and help users with their inquiries.",
    "messenger": "You are a Messenger chatbot. Provide helpful responses and guide users.",
    "calendar": "You are a calendar booking assistant. Help users schedule appointments efficiently.",
    "website": "You are a website customer support agent. Answer questions and provide assistance.",
    "general": "You are a helpful AI assistant. Provide accurate and useful information.",
}

TONE_INSTRUCTIONS = {
    "friendly": "Use a warm, approachable, and friendly tone.",
    "professional": "Maintain a formal and business-like tone.",
    "casual": "Use a relaxed and conversational tone.",
    "enthusiastic": "Be energetic, excited, and positive.",
    "helpful": "Focus on being solution-oriented and supportive.",
}

BASE_PROMPT_TEMPLATE = """You are {name}, an AI assistant. {purpose}

{tone}

## Current Date
Today is **{current_date}** ({current_day_of_week}).
Use this to resolve relative dates like "tomorrow" or "next Monday".
"""

CALENDAR_TEMPLATE = """
=== CALENDAR BOOKING CAPABILITIES ===
You have access to a calendar booking system:
- Integration: {integration_type}
- Default duration: {booking_duration} minutes
- Timezone: {timezone}
{calendly_line}
When users want to schedule appointments, collect: date, time, name, email.
Be conversational and confirm all details before finalizing.
"""


def generate_system_prompt(
    agent: Mapping[str, Any],
    calendar: CalendarConfig | None = None,
    *,
    now: datetime | None = None,
) -> str:
    """Build the agent's base prompt (persona, calendar, custom instructions)."""
    now = now or datetime.now(UTC)
    prompt = BASE_PROMPT_TEMPLATE.format(
        name=agent.get("name") or "Assistant",
        purpose=PURPOSE_INSTRUCTIONS.get(agent.get("purpose"), PURPOSE_INSTRUCTIONS["general"]),
        tone=TONE_INSTRUCTIONS.get(agent.get("tone"), TONE_INSTRUCTIONS["friendly"]),
        current_date=now.strftime("%d %B %Y"),
        current_day_of_week=now.strftime("%A"),
    )

    if agent.get("persona"):
        prompt += f"\nYour personality: {agent['persona']}\n"

    if calendar is not None and calendar.is_active:
        prompt += CALENDAR_TEMPLATE.format(
            integration_type=calendar.integration_type or "internal",
            booking_duration=calendar.booking_duration,
            timezone=calendar.timezone,
            calendly_line=f"- Calendly URL: {calendar.calendly_url}\n" if calendar.calendly_url else "",
        )

    if agent.get("system_prompt"):
        prompt += f"\nAdditional Instructions:\n{agent['system_prompt']}\n"

    return prompt


def knowledge_section(lookup: KnowledgeLookup) -> str:
    """Render retrieved knowledge as a prompt section ("" when empty)."""
    if not lookup.results:
        return ""

    if lookup.full_documents:
        lines = ["=== KNOWLEDGE BASE CONTEXT (FULL DOCUMENTS) ==="]
        for index, result in enumerate(lookup.results, start=1):
            lines.append(f"[Document {index}] {result.source_name}")
            lines.append(result.content)
            lines.append("")
    else:
        lines = [
            "=== KNOWLEDGE BASE CONTEXT ===",
            "The following information is from documents the user has provided. "
            "This is THE SOURCE OF TRUTH - prioritize this information over your "
            "general knowledge:",
            "",
        ]
        for index, result in enumerate(lookup.results, start=1):
            lines.append(
                f"[Document {index}] ({result.source_name}) - "
                f"Relevance: {result.similarity * 100:.1f}%"
            )
            lines.append(result.content)
            lines.append("")
    lines.append("=== END KNOWLEDGE BASE CONTEXT ===")
    return "\n".join(lines)


def _missing_fields(extracted: Mapping[str, Any]) -> Sequence[str]:
    return [name for name in REQUIRED_FIELDS if not extracted.get(name)]


def booking_flow_section(context: Mapping[str, Any] | None) -> str:
    """Describe the booking flow's progress for the model ("" when inactive)."""
    if not context or not context.get("isBookingFlow"):
        return ""

    extracted = context.get("extractedData") or {}
    lines = [
        "=== BOOKING FLOW ACTIVE ===",
        "Current booking data extracted:",
        json.dumps(extracted, indent=2),
        "",
        f"Completion status: {'COMPLETE' if context.get('isComplete') else 'INCOMPLETE'}",
        f"Confidence: {context.get('confidence', 0) * 100:.0f}%",
    ]

    if not context.get("isComplete"):
        lines.append("")
        lines.append("MISSING INFORMATION:")
        lines.extend(f"- {name.capitalize()}" for name in _missing_fields(extracted))

    availability = context.get("availability") or {}
    if availability and not availability.get("available", True):
        lines.append("")
        lines.append(
            f"REQUESTED TIME NOT AVAILABLE: {availability.get('reason')}. "
            "Ask the user for a different date or time."
        )
    elif context.get("bookingCreated"):
        lines.append("")
        lines.append("✅ BOOKING CONFIRMED!")
        lines.append(f"Booking ID: {context.get('bookingId')}")
        if context.get("externalUrl"):
            lines.append(f"The user must finish the booking at: {context['externalUrl']}")
    elif context.get("bookingError"):
        lines.append("")
        lines.append(
            f"BOOKING FAILED: {context['bookingError']}. "
            "Apologise and offer to try again or pick another time."
        )
    elif context.get("isComplete"):
        lines.append("")
        lines.append("ALL INFORMATION COLLECTED! Please confirm.")

    return "\n".join(lines)


def build_system_prompt(
    agent: Mapping[str, Any],
    calendar: CalendarConfig | None,
    knowledge: KnowledgeLookup | None,
    booking_context: Mapping[str, Any] | None,
) -> str:
    """The full system prompt for one chat turn."""
    sections = [generate_system_prompt(agent, calendar)]
    if knowledge is not None:
        sections.append(knowledge_section(knowledge))
    sections.append(booking_flow_section(booking_context))
    return "\n\n".join(s for s in sections if s)
