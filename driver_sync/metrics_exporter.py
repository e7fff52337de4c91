"""OpenTelemetry metrics for the driver sync core.

The instruments are created against the global meter provider. Without an
SDK installed (tests, embedded use) they are no-ops; ``main`` installs an
OTLP exporter when an endpoint is configured.
"""

from __future__ import annotations

from opentelemetry import metrics

# ---------------------------------------------------------------------------
# Meter
# ---------------------------------------------------------------------------
meter = metrics.get_meter("driver-sync")

# ---------------------------------------------------------------------------
# Counters
# ---------------------------------------------------------------------------
poll_fetches_total = meter.create_counter(
    name="driver_sync_poll_fetches_total",
    description="Fetches issued by poll subscriptions",
    unit="1",
)

poll_failures_total = meter.create_counter(
    name="driver_sync_poll_failures_total",
    description="Poll fetches that raised",
    unit="1",
)

poll_skipped_ticks_total = meter.create_counter(
    name="driver_sync_poll_skipped_ticks_total",
    description="Ticks suppressed because a fetch was still in flight",
    unit="1",
)

status_transitions_total = meter.create_counter(
    name="driver_sync_status_transitions_total",
    description="Driver status submissions by outcome",
    unit="1",
)

chat_sends_total = meter.create_counter(
    name="driver_sync_chat_sends_total",
    description="Chat message submissions by outcome",
    unit="1",
)

# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------


def record_poll_fetch(subscription: str) -> None:
    poll_fetches_total.add(1, {"subscription": subscription})


def record_poll_failure(subscription: str) -> None:
    poll_failures_total.add(1, {"subscription": subscription})


def record_skipped_tick(subscription: str, count: int = 1) -> None:
    poll_skipped_ticks_total.add(count, {"subscription": subscription})


def record_transition(outcome: str) -> None:
    """Count a status submission; outcome is success, rejected or transport."""
    status_transitions_total.add(1, {"outcome": outcome})


def record_chat_send(outcome: str) -> None:
    chat_sends_total.add(1, {"outcome": outcome})
