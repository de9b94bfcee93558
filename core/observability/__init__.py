"""
Observability Module for the Reconciliation Engine

Provides:
- Structured logging with correlation IDs (invoice, line item, operation)
- JSON or human-readable output selected by configuration
"""

from core.observability.logging import (
    get_logger,
    configure_logging,
    CorrelationContext,
    CorrelatedLogger,
    with_correlation,
    get_correlation_context,
    log_operation_complete,
    log_operation_rejected,
)

__all__ = [
    "get_logger",
    "configure_logging",
    "CorrelationContext",
    "CorrelatedLogger",
    "with_correlation",
    "get_correlation_context",
    "log_operation_complete",
    "log_operation_rejected",
]
