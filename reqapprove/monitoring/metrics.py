"""
Prometheus metrics for reqapprove.
"""

from prometheus_client import Counter, Histogram, start_http_server

_metrics_started = False

rest_requests_total = Counter(
    "reqapprove_rest_requests_total",
    "Total REST requests",
    ["method", "path", "status"]
)

rest_request_latency_seconds = Histogram(
    "reqapprove_rest_request_latency_seconds",
    "REST request latency in seconds",
    ["method", "path"]
)

rest_errors_total = Counter(
    "reqapprove_rest_errors_total",
    "Total unhandled REST errors",
    ["method", "path", "error_type"]
)

decisions_recorded_total = Counter(
    "reqapprove_decisions_recorded_total",
    "Decisions written to the sheet",
    ["stage", "decision"]
)

action_failures_total = Counter(
    "reqapprove_action_failures_total",
    "Approval link clicks that were rejected",
    ["error_type"]
)

emails_total = Counter(
    "reqapprove_emails_total",
    "Notification emails by template and outcome",
    ["template", "outcome"]
)


def start_metrics_server(port: int = 9090, addr: str = "0.0.0.0"):
    """Start Prometheus metrics server if not already running."""
    global _metrics_started

    if _metrics_started:
        return

    start_http_server(port, addr=addr)
    _metrics_started = True


def track_rest_request(method: str, path: str, status: str):
    """Track REST request count by method, path, and status."""
    rest_requests_total.labels(method=method, path=path, status=status).inc()


def track_rest_latency(method: str, path: str, duration_seconds: float):
    """Track REST request latency."""
    rest_request_latency_seconds.labels(method=method, path=path).observe(duration_seconds)


def track_rest_error(method: str, path: str, error_type: str):
    """Track REST errors by type."""
    rest_errors_total.labels(method=method, path=path, error_type=error_type).inc()


def track_decision(stage: int, decision: str):
    decisions_recorded_total.labels(stage=str(stage), decision=decision).inc()


def track_action_failure(error_type: str):
    action_failures_total.labels(error_type=error_type).inc()


def track_email(template: str, outcome: str):
    emails_total.labels(template=template, outcome=outcome).inc()
