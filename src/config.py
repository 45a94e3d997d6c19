"""Centralized configuration for the agent booking backend.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/agent-booking/<VARIABLE_NAME>``.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or the lookup fails.
    Errors are logged but never raised so that the local fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415  boto3 is only needed on AWS

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/agent-booking/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /agent-booking/{name} (AWS)."
    )


def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


# ── LLM ─────────────────────────────────────────────────────────────
ANTHROPIC_API_KEY: str = _require_env("ANTHROPIC_API_KEY")
MODEL_NAME: str = os.getenv("MODEL_NAME", "claude-haiku-4-5")
DEFAULT_TEMPERATURE: float = float(os.getenv("DEFAULT_TEMPERATURE", "0.7"))
DEFAULT_MAX_TOKENS: int = _int_env("DEFAULT_MAX_TOKENS", 1000)

# ── Booking flow ────────────────────────────────────────────────────
# When set, bookings are created over HTTP against this base URL instead of
# the in-process BookingService.
BOOKING_API_URL: str | None = os.getenv("BOOKING_API_URL") or None
BOOKING_SESSION_TTL_SECONDS: int = _int_env("BOOKING_SESSION_TTL_SECONDS", 30 * 60)
BOOKING_HISTORY_WINDOW: int = _int_env("BOOKING_HISTORY_WINDOW", 10)

# ── Chat limits ─────────────────────────────────────────────────────
MAX_MESSAGE_LENGTH: int = _int_env("MAX_MESSAGE_LENGTH", 5000)
CHAT_RATE_LIMIT: int = _int_env("CHAT_RATE_LIMIT", 20)
CHAT_RATE_WINDOW_SECONDS: int = _int_env("CHAT_RATE_WINDOW_SECONDS", 60)
AGENT_CACHE_TTL_SECONDS: int = _int_env("AGENT_CACHE_TTL_SECONDS", 5 * 60)

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = _int_env("SERVER_PORT", 8000)
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")
