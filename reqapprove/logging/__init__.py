"""
Logging Module

Provides structured JSON logging.
"""

from .logger import (
    StructuredFormatter,
    WorkflowLogAdapter,
    configure_logging,
    get_logger,
    redact_tokens,
    with_context
)

__all__ = [
    'configure_logging',
    'get_logger',
    'redact_tokens',
    'StructuredFormatter',
    'with_context',
    'WorkflowLogAdapter'
]
