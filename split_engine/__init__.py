"""Invoice Split Engine - approval and rejection of reconciled invoices.

Usage:
    from split_engine import InvoiceSplitEngine

    engine = InvoiceSplitEngine(db_path="reconciliation.db")
    result = engine.approve(invoice_id)
    engine.reject(other_id, reason="Duplicate of INV-1042")
"""

from split_engine.models import ApprovalResult, SiblingInvoice
from split_engine.engine import InvoiceSplitEngine, pending_entity_names

__all__ = [
    "ApprovalResult",
    "SiblingInvoice",
    "InvoiceSplitEngine",
    "pending_entity_names",
]
