"""Prometheus metrics for monitoring approval throughput, refusals, and notification delivery"""

from decimal import Decimal
from prometheus_client import Counter, Histogram

# Workflow metrics
request_created_counter = Counter(
    "coop_request_created_total",
    "Approval requests created",
    ["request_type"],
)

eligibility_failure_counter = Counter(
    "coop_eligibility_failures_total",
    "Request creations refused by eligibility checks",
    ["request_type", "reason"],
)

transition_counter = Counter(
    "coop_transition_total",
    "Approval decisions applied",
    ["request_type", "decision"],
)

transition_failure_counter = Counter(
    "coop_transition_failures_total",
    "Approval decisions refused",
    ["code"],
)

completed_amount_counter = Counter(
    "coop_completed_amount_total",
    "Sum of amounts moved by completed requests",
    ["request_type"],
)

# Notification webhook metrics
webhook_latency_histogram = Histogram(
    "notification_webhook_latency_seconds",
    "Notification webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

webhook_failure_counter = Counter(
    "notification_webhook_failures_total",
    "Failed notification deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_transition(request_type: str, decision: str, amount: Decimal | None = None) -> None:
    """Record an applied decision; completions also add their amount"""
    transition_counter.labels(request_type=request_type, decision=decision).inc()
    if decision == "COMPLETED" and amount is not None:
        completed_amount_counter.labels(request_type=request_type).inc(float(amount))
