"""Storage Package.

SQLite persistence for invoices under reconciliation, transaction helpers
and per-invoice locking.
"""

from storage.sqlite import connect, transaction, use_connection
from storage.locks import InvoiceLockRegistry, get_lock_registry
from storage.operations import (
    invoice_operation,
    require_invoice,
    require_pending_invoice,
    commit_version,
)
from storage.invoice_store import (
    init_invoice_db,
    load_invoice,
    get_invoice,
    list_invoices,
    insert_invoice,
    insert_line_item,
    update_line_item,
    delete_line_items,
    upsert_unmatched_name,
    update_invoice_header,
    find_invoice_id_for_line_item,
    find_source_invoice_id,
)

__all__ = [
    # Connections
    "connect",
    "transaction",
    "use_connection",
    # Locks
    "InvoiceLockRegistry",
    "get_lock_registry",
    # Operations
    "invoice_operation",
    "require_invoice",
    "require_pending_invoice",
    "commit_version",
    # Invoices
    "init_invoice_db",
    "load_invoice",
    "get_invoice",
    "list_invoices",
    "insert_invoice",
    "insert_line_item",
    "update_line_item",
    "delete_line_items",
    "upsert_unmatched_name",
    "update_invoice_header",
    "find_invoice_id_for_line_item",
    "find_source_invoice_id",
]
