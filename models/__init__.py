"""Models Package.

Canonical data models for the reconciliation engine:
- Invoices and line items with their category decisions
- Entity attribution (single, split, unresolved)
- Unmatched-name resolution records
"""

from models.canonical import (
    Invoice,
    LineItem,
    EntityAttribution,
    EntityShare,
    UnmatchedName,
    ApprovalState,
    AttributionKind,
    ConfirmationKind,
    UnmatchedStatus,
    DecimalValue,
    DateValue,
    validate_split,
    new_id,
)

__all__ = [
    # Invoice models
    "Invoice",
    "LineItem",
    "EntityAttribution",
    "EntityShare",
    "UnmatchedName",

    # Enums
    "ApprovalState",
    "AttributionKind",
    "ConfirmationKind",
    "UnmatchedStatus",

    # Helpers
    "DecimalValue",
    "DateValue",
    "validate_split",
    "new_id",
]
