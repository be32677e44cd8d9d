"""
Monitoring utilities for reqapprove.
"""

from .metrics import (
    start_metrics_server,
    track_action_failure,
    track_decision,
    track_email,
    track_rest_error,
    track_rest_latency,
    track_rest_request
)

__all__ = [
    "start_metrics_server",
    "track_action_failure",
    "track_decision",
    "track_email",
    "track_rest_error",
    "track_rest_latency",
    "track_rest_request"
]
