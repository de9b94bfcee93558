"""Invoice operation boundary.

Every state-changing engine call on an invoice runs through
``invoice_operation``: it holds the per-invoice lock, sets the logging
correlation context, opens a BEGIN IMMEDIATE transaction, logs domain
failures once before they propagate and logs success after commit.
``commit_version`` is the last write of an operation and fails with
ConflictError if the invoice moved on since it was loaded.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from core.errors import ConflictError, InvalidStateError, NotFoundError, ReconciliationError
from core.observability import (
    CorrelatedLogger,
    log_operation_complete,
    log_operation_rejected,
    with_correlation,
)
from models.canonical import ApprovalState, Invoice
from storage.invoice_store import load_invoice, update_invoice_header
from storage.locks import InvoiceLockRegistry, get_lock_registry
from storage.sqlite import transaction


@contextmanager
def invoice_operation(
    invoice_id: str,
    operation: str,
    db_path: Path,
    logger: CorrelatedLogger,
    timeout: float = 5.0,
    locks: Optional[InvoiceLockRegistry] = None,
    **context,
) -> Iterator[sqlite3.Connection]:
    """Lock, correlate and transact one operation on ``invoice_id``."""
    locks = locks or get_lock_registry()
    with locks.hold(invoice_id), with_correlation(invoice_id=invoice_id, operation=operation, **context):
        try:
            with transaction(db_path, timeout) as conn:
                yield conn
        except ReconciliationError as exc:
            log_operation_rejected(logger, operation, exc)
            raise
        log_operation_complete(logger, operation)


def require_invoice(conn: sqlite3.Connection, invoice_id: str) -> Invoice:
    invoice = load_invoice(conn, invoice_id)
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_id} not found", {"invoice_id": invoice_id})
    return invoice


def require_pending_invoice(conn: sqlite3.Connection, invoice_id: str) -> Invoice:
    """Load an invoice that can still be edited.

    Raises:
        NotFoundError: unknown invoice
        InvalidStateError: invoice already approved or rejected
    """
    invoice = require_invoice(conn, invoice_id)
    if invoice.approval_state != ApprovalState.PENDING:
        raise InvalidStateError(
            f"Invoice {invoice_id} is {invoice.approval_state.value}",
            {"invoice_id": invoice_id, "approval_state": invoice.approval_state.value},
        )
    return invoice


def commit_version(conn: sqlite3.Connection, invoice: Invoice, expected_version: Optional[int] = None) -> None:
    """Write the invoice header and bump its version.

    Raises:
        ConflictError: the stored version no longer equals ``expected_version``
            (defaults to the version the invoice was loaded with)
    """
    expected = invoice.version if expected_version is None else expected_version
    if not update_invoice_header(conn, invoice, expected):
        raise ConflictError(
            f"Invoice {invoice.id} was modified concurrently",
            expected_version=expected,
        )
