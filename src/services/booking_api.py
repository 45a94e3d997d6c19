"""HTTP client for a remote bookings endpoint, with retry logic and
timeout handling.

Used as the flow controller's ``BookingCreator`` when bookings live in a
separate deployment (``BOOKING_API_URL``).  It posts the same payload the
``POST /api/agents/{id}/bookings`` route accepts.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from src.booking.flow import BookingCreationError, CreatedBooking
from src.booking.models import BookingFields, CalendarConfig
from src.services.bookings import BookingRequest
from src.services.metrics import metrics

logger = logging.getLogger(__name__)

# ── Retry configuration ─────────────────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 15.0


class BookingAPIError(BookingCreationError):
    """Raised when a bookings API call fails after all retries."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


def _error_text(response: httpx.Response) -> str:
    """Pull the human-readable ``error``/``reason`` out of an error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    error = body.get("error") or f"HTTP {response.status_code}"
    reason = body.get("reason")
    return f"{error}: {reason}" if reason else error


class BookingAPIClient:
    """Thin wrapper around the bookings REST endpoint with automatic retries."""

    def __init__(self, base_url: str, *, timeout: float = REQUEST_TIMEOUT_SECONDS):
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )

    # ── Internal helpers ─────────────────────────────────────────────

    def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Execute an HTTP request with exponential-backoff retries."""
        last_error: Exception | None = None
        for attempt in range(1, MAX_RETRIES + 1):
            t0 = time.perf_counter()
            try:
                response = self._client.request(method, path, json=json_body)
                if response.status_code >= 500:
                    raise BookingAPIError(
                        f"Server error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                if response.status_code >= 400:
                    raise BookingAPIError(_error_text(response), status_code=response.status_code)
                metrics.record_success(
                    "booking_api", f"{method} {path}",
                    latency_ms=(time.perf_counter() - t0) * 1000,
                )
                return response.json()

            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                last_error = exc
                metrics.record_failure("booking_api", f"{method} {path}", error_type=type(exc).__name__)
                logger.warning(
                    "Bookings API attempt %d/%d failed (%s). Retrying in %.1fs…",
                    attempt,
                    MAX_RETRIES,
                    type(exc).__name__,
                    INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)),
                )
            except BookingAPIError as exc:
                metrics.record_failure("booking_api", f"{method} {path}", error_type=str(exc.status_code))
                if exc.status_code and exc.status_code >= 500:
                    last_error = exc
                    logger.warning(
                        "Bookings API server error on attempt %d/%d. Retrying…",
                        attempt,
                        MAX_RETRIES,
                    )
                else:
                    raise  # 4xx errors are not retried

            backoff = INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1))
            time.sleep(backoff)

        raise BookingAPIError(
            f"Bookings API request failed after {MAX_RETRIES} retries: {last_error}"
        )

    # ── Public API ───────────────────────────────────────────────────

    def create_booking(self, agent_id: str, request: BookingRequest) -> dict[str, Any]:
        """POST a booking and return the ``booking`` summary from the response."""
        data = self._request(
            "POST",
            f"/api/agents/{agent_id}/bookings",
            json_body=request.model_dump(),
        )
        return data["booking"]

    def create(
        self,
        agent_id: str,
        session_id: str,
        fields: BookingFields,
        calendar: CalendarConfig,
    ) -> CreatedBooking:
        booking = self.create_booking(agent_id, BookingRequest.from_fields(fields, session_id, calendar))
        return CreatedBooking(
            id=booking["id"],
            external_url=booking.get("external_url"),
            status=booking.get("status"),
        )

    def close(self) -> None:
        self._client.close()
