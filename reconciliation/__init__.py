"""Reviewer-facing checks for invoices awaiting approval."""

from reconciliation.engine import (
    AMOUNT_TOLERANCE,
    CheckResult,
    CheckStatus,
    ReviewReport,
    Severity,
    amounts_match,
    format_review,
    review_invoice,
)

__all__ = [
    "AMOUNT_TOLERANCE",
    "CheckResult",
    "CheckStatus",
    "ReviewReport",
    "Severity",
    "amounts_match",
    "format_review",
    "review_invoice",
]
