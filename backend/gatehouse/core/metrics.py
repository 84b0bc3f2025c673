"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking metrics
booking_admissions = Counter(
    'booking_admissions_total',
    'Booking admission attempts',
    ['result']  # admitted, slot_full, duplicate, error
)

booking_transitions = Counter(
    'booking_transitions_total',
    'Booking lifecycle transitions',
    ['transition']  # approved, rejected, cancelled
)

admission_latency = Histogram(
    'booking_admission_latency_seconds',
    'Booking admission latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

slot_claim_retries = Counter(
    'slot_claim_retries_total',
    'Admission retries after losing the slot claim compare-and-set'
)

# Visitor pass metrics
passes_issued = Counter(
    'visitor_passes_issued_total',
    'Visitor passes issued',
    ['code_source']  # generated, explicit
)

pass_verifications = Counter(
    'visitor_pass_verifications_total',
    'Visitor pass verification outcomes',
    ['outcome']  # verified, already_verified, expired, cancelled
)

# Store metrics
transient_store_errors = Counter(
    'store_transient_errors_total',
    'Transactions aborted by connection loss, deadlock or lock timeout'
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)


def metrics_endpoint() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_admission(result: str):
    """Result: admitted, slot_full, duplicate, error"""
    booking_admissions.labels(result=result).inc()


def record_transition(transition: str):
    booking_transitions.labels(transition=transition).inc()


def record_verification(outcome: str):
    pass_verifications.labels(outcome=outcome).inc()


def record_cache_operation(operation: str, hit: bool):
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
