"""CloudWatch custom metrics for the agent booking backend.

Two families of data points are buffered and shipped in batches:

* ``ExternalAPI/*``: count, latency and errors per outbound call
  (Anthropic, the remote bookings API).
* ``Chat/*`` and ``BookingFlow/*``: per-turn business counters, so booking
  conversion can be graphed per agent without querying the record store.

Locally (``METRICS_ENABLED != "true"``) data points are still buffered and
logged at DEBUG level, but ``flush`` drops them instead of calling AWS.
When enabled, a daemon thread flushes every ``FLUSH_INTERVAL_SECONDS`` and
once more at interpreter exit.

Usage
-----
>>> from src.services.metrics import metrics
>>> metrics.record_success("booking_api", "POST /api/agents/a1/bookings", latency_ms=123.4)
>>> metrics.record_booking_stage("booked", "a1")
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "AgentBooking"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # PutMetricData limit per call

Dimensions = list[dict[str, str]]


def _dims(**values: str) -> Dimensions:
    return [{"Name": name, "Value": value} for name, value in values.items()]


class MetricsClient:
    """Buffers metric data points and publishes them to CloudWatch."""

    def __init__(self) -> None:
        self._enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None
        self._stop = threading.Event()

        if self._enabled:
            self._start_flush_thread()

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Outbound calls ────────────────────────────────────────────────

    def record_success(self, service: str, operation: str, latency_ms: float) -> None:
        """Record a successful call to *service*."""
        now = datetime.now(UTC)
        self._add("ExternalAPI/RequestCount", _dims(Service=service, Status="success"), 1, now=now)
        self._add(
            "ExternalAPI/Latency", _dims(Service=service, Operation=operation),
            latency_ms, unit="Milliseconds", now=now,
        )
        logger.debug("Metric: %s %s ok in %.1fms", service, operation, latency_ms)

    def record_failure(
        self,
        service: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        """Record a failed call; latency is only kept when it was measured."""
        now = datetime.now(UTC)
        self._add("ExternalAPI/RequestCount", _dims(Service=service, Status="failure"), 1, now=now)
        self._add("ExternalAPI/ErrorCount", _dims(Service=service, ErrorType=error_type), 1, now=now)
        if latency_ms > 0:
            self._add(
                "ExternalAPI/Latency", _dims(Service=service, Operation=operation),
                latency_ms, unit="Milliseconds", now=now,
            )
        logger.debug("Metric: %s %s failed (%s)", service, operation, error_type)

    # ── Chat turns ────────────────────────────────────────────────────

    def record_chat_turn(self, agent_id: str, response_time_ms: float, tokens_used: int) -> None:
        """Record one answered chat message."""
        now = datetime.now(UTC)
        dims = _dims(AgentId=agent_id)
        self._add("Chat/ResponseTime", dims, response_time_ms, unit="Milliseconds", now=now)
        self._add("Chat/TokensUsed", dims, tokens_used, now=now)

    def record_booking_stage(self, stage: str, agent_id: str) -> None:
        """Count one chat turn that ended in booking-flow *stage*."""
        self._add("BookingFlow/TurnCount", _dims(Stage=stage, AgentId=agent_id), 1)
        logger.debug("Metric: booking flow stage=%s agent=%s", stage, agent_id)

    # ── Publishing ────────────────────────────────────────────────────

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._buffer)

    def flush(self) -> int:
        """Publish buffered data points.  Returns how many were sent."""
        with self._lock:
            batch, self._buffer = self._buffer, []
        if not batch:
            return 0
        if not self._enabled:
            logger.debug("Dropping %d metric(s): CloudWatch publishing disabled", len(batch))
            return 0

        sent = 0
        try:
            cw = self._get_cw_client()
            for start in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[start:start + MAX_BATCH_SIZE]
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
        except Exception:
            logger.exception("Failed to publish metrics to CloudWatch (%d sent)", sent)
        else:
            logger.info("Published %d metric(s) to CloudWatch", sent)
        return sent

    def close(self) -> None:
        """Stop the flush thread and publish whatever is left."""
        self._stop.set()
        self.flush()

    # ── Internal ──────────────────────────────────────────────────────

    def _add(
        self,
        name: str,
        dimensions: Dimensions,
        value: float,
        *,
        unit: str = "Count",
        now: datetime | None = None,
    ) -> None:
        datum = {
            "MetricName": name,
            "Dimensions": dimensions,
            "Timestamp": now or datetime.now(UTC),
            "Value": value,
            "Unit": unit,
        }
        with self._lock:
            self._buffer.append(datum)

    def _start_flush_thread(self) -> None:
        def _loop():
            while not self._stop.wait(FLUSH_INTERVAL_SECONDS):
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        threading.Thread(target=_loop, daemon=True, name="metrics-flush").start()
        atexit.register(self.close)
        logger.info("Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS)


metrics = MetricsClient()
