"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Registration metrics
registration_attempts = Counter(
    'registration_attempts_total',
    'Registration and cancellation requests by outcome',
    ['outcome']  # confirmed, waitlisted, cancelled, rejected, error
)

registration_latency = Histogram(
    'registration_latency_seconds',
    'Time spent inside the registration transaction, retries included',
    ['operation'],  # register, cancel
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

# Capacity ledger metrics
ledger_operations = Counter(
    'ledger_operations_total',
    'Capacity ledger operations',
    ['operation', 'result']  # reserve/release, reserved/full/released/noop
)

ledger_retries = Counter(
    'ledger_retry_attempts_total',
    'Transaction retries caused by ledger contention'
)

waitlist_promotions = Counter(
    'waitlist_promotions_total',
    'Waitlisted registrations promoted to confirmed'
)

# Notification metrics
notification_deliveries = Counter(
    'notification_deliveries_total',
    'Outbox deliveries to the notification sink',
    ['sink', 'result']  # delivered, failed
)

# HTTP metrics
http_request_duration = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency',
    ['method', 'status_code'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_registration_outcome(outcome: str):
    """Outcome: confirmed, waitlisted, cancelled, rejected, error"""
    registration_attempts.labels(outcome=outcome).inc()


def record_ledger_operation(operation: str, result: str):
    ledger_operations.labels(operation=operation, result=result).inc()


def record_notification_delivery(sink: str, delivered: bool):
    result = "delivered" if delivered else "failed"
    notification_deliveries.labels(sink=sink, result=result).inc()
