"""Reconciliation engine errors.

Every failure surfaced to the presentation layer is a ReconciliationError
subclass carrying a stable ``code`` so the caller can show the error kind and
let the reviewer retry after fixing the underlying condition. None of these
are retried inside the engine.
"""

from typing import Any, Dict, List, Optional


class ReconciliationError(Exception):
    """Base exception for reconciliation engine errors."""
    code = "reconciliation_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(ReconciliationError):
    """Malformed input (bad split shares, too-short entity name, blank reason)."""
    code = "validation_error"


class NotFoundError(ReconciliationError):
    """Referenced invoice, line item, entity or category does not exist."""
    code = "not_found"


class InvalidStateError(ReconciliationError):
    """Operation not legal in the invoice's current approval state."""
    code = "invalid_state"


class UnresolvedEntitiesError(ReconciliationError):
    """Approval blocked by unmatched entity names."""
    code = "unresolved_entities"

    def __init__(self, message: str, raw_names: List[str]):
        super().__init__(message, {"raw_names": list(raw_names)})
        self.raw_names = list(raw_names)


class ImmutableSuggestionError(ReconciliationError):
    """A suggested category was already recorded for the line item."""
    code = "immutable_suggestion"


class AlreadyResolvedError(ReconciliationError):
    """The raw name has no outstanding unresolved occurrences."""
    code = "already_resolved"


class AlreadyApprovedError(ReconciliationError):
    """Invoice was approved already; approval is not repeatable."""
    code = "already_approved"


class ConflictError(ReconciliationError):
    """Invoice changed between snapshot and commit."""
    code = "conflict"

    def __init__(self, message: str, expected_version: int = 0):
        super().__init__(message, {"expected_version": expected_version})
        self.expected_version = expected_version
