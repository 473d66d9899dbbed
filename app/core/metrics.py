"""Application metrics using the Prometheus client library.

Single inventory of everything the service measures.  Other modules
import specific metrics and increment/observe them at the point of
action.  Prometheus scrapes them from GET /metrics.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    # List endpoints pay one progress aggregation per row, so the upper
    # buckets matter more here than for point lookups.
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Enrollment metrics
# ---------------------------------------------------------------------------

ENROLLMENT_TRANSITIONS = Counter(
    "enrollment_transitions_total",
    "Enrollment lifecycle transitions applied",
    # create|confirm_payment|activate|suspend|complete|extend|update|remove
    ["transition"],
)

ACCESS_DECISIONS = Counter(
    "enrollment_access_decisions_total",
    "Access decisions by scope and reason",
    ["scope", "reason"],  # scope: course|lesson
)

SWEEP_EXPIRED = Counter(
    "enrollment_sweep_expired_total",
    "Enrollments transitioned to EXPIRED by the sweeper",
)

BULK_ITEMS = Counter(
    "enrollment_bulk_items_total",
    "Bulk enrollment items by outcome",
    ["result"],  # successful|failed
)

NOTIFICATION_FAILURES = Counter(
    "enrollment_notification_failures_total",
    "Enrollment notifications that could not be dispatched",
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],
)
