"""
Prometheus metrics for reservations, holds, quotes and calendar sync.

Metrics are exposed via the /metrics endpoint for scraping by Prometheus.

Example:
    >>> from booking_engine.metrics import sync_duration, sync_runs
    >>> with sync_duration.labels(platform="airbnb").time():
    ...     outcome = engine.sync_calendar(calendar_id)
    >>> sync_runs.labels(platform="airbnb", status=outcome.status.value).inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# =============================================================================
# Sync Metrics
# =============================================================================

sync_runs = Counter(
    "booking_engine_sync_runs_total",
    "Total number of external calendar sync runs by outcome",
    ["platform", "status"],
)
"""
Counter for sync runs.

Labels:
    platform: airbnb, vrbo, booking, homeaway, other
    status: success, error or timeout
"""

sync_duration = Histogram(
    "booking_engine_sync_duration_seconds",
    "Duration of external calendar sync runs in seconds",
    ["platform"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, float("inf")),
)
"""
Histogram for sync run duration, fetch through diff-apply.

Labels:
    platform: External platform of the calendar
"""

reservations_synced = Counter(
    "booking_engine_external_reservations_synced_total",
    "External reservation rows changed by sync",
    ["platform", "change"],
)
"""
Counter for external reservation changes.

Labels:
    platform: External platform of the calendar
    change: imported, updated, deleted or skipped
"""

# =============================================================================
# Feed Metrics
# =============================================================================

feed_requests = Counter(
    "booking_engine_feed_requests_total",
    "Total iCal feed requests made",
    ["status_code"],
)
"""
Counter for outbound feed requests.

Labels:
    status_code: HTTP status code ("200", "304", "500") or "timeout"/"error"
"""

feed_latency = Histogram(
    "booking_engine_feed_latency_seconds",
    "iCal feed request latency in seconds",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float("inf")),
)
"""Histogram for feed download latency, headers through last body chunk."""

# =============================================================================
# Reservation Metrics
# =============================================================================

reserve_attempts = Counter(
    "booking_engine_reserve_attempts_total",
    "Reservation attempts by kind and result",
    ["kind", "result"],
)
"""
Counter for try_reserve calls.

Labels:
    kind: booking or hold
    result: created, replayed or conflict
"""

booking_transitions = Counter(
    "booking_engine_booking_transitions_total",
    "Booking status changes",
    ["status"],
)
"""
Counter for booking status changes.

Labels:
    status: confirmed or canceled
"""

holds_swept = Counter(
    "booking_engine_holds_swept_total",
    "Expired holds deleted by the sweeper",
)
"""Counter for holds removed by sweep_expired."""

quotes = Counter(
    "booking_engine_quotes_total",
    "Price quotes computed",
    ["result"],
)
"""
Counter for quotes.

Labels:
    result: ok or unavailable
"""
