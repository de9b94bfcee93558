"""Invoice Split Engine.

Approval state machine for invoices under reconciliation:

    pending -> approved   (terminal)
    pending -> rejected   (terminal)

Approving executes the reviewer's reclassification decisions exactly once:
every group of items with the same effective target becomes a new pending
sibling invoice in that category, and the source invoice keeps only the
remaining items. Sibling creation and the source update commit in a single
transaction, so a failure leaves the invoice exactly as it was.

Retained total rule: the source keeps ``original_total - sum(moved
subtotals)``, where original_total is the extracted invoice total when
present and the line-item sum otherwise. Any difference between the
extracted total and the line sum therefore stays with the source invoice.
"""

from datetime import datetime
from pathlib import Path
from typing import List, Optional

from core.config import ReconciliationConfig, get_config
from core.errors import (
    AlreadyApprovedError,
    ConflictError,
    InvalidStateError,
    UnresolvedEntitiesError,
    ValidationError,
)
from core.observability import get_logger
from entity_matcher.normalize import normalize_name
from models.canonical import (
    ApprovalState,
    ConfirmationKind,
    Invoice,
    LineItem,
    new_id,
)
from reclassifier import ReclassificationSummary, summarize
from split_engine.models import ApprovalResult, SiblingInvoice
from storage import (
    InvoiceLockRegistry,
    commit_version,
    delete_line_items,
    init_invoice_db,
    insert_invoice,
    invoice_operation,
    require_invoice,
    require_pending_invoice,
)

logger = get_logger(__name__)


def pending_entity_names(invoice: Invoice) -> List[str]:
    """Unresolved names blocking approval, from records and attributions."""
    names: List[str] = []
    seen = set()

    candidates = list(invoice.unresolved_names())
    attributions = [invoice.entity] + [item.entity for item in invoice.line_items]
    candidates += [a.raw_name for a in attributions if a is not None and a.is_unresolved and a.raw_name]

    for raw_name in candidates:
        key = normalize_name(raw_name)
        if key and key not in seen:
            seen.add(key)
            names.append(raw_name)
    return names


def _relocated_copy(item: LineItem, invoice_id: str, category: str, position: int) -> LineItem:
    """Copy of a moved item: new identity, new home, no pending reclassification."""
    return item.model_copy(
        deep=True,
        update={
            "id": new_id(),
            "invoice_id": invoice_id,
            "position": position,
            "current_category": category,
            "suggested_category": None,
            "confirmation": ConfirmationKind.UNSET,
            "confirmed_category": None,
        },
    )


class InvoiceSplitEngine:
    """Approves (splitting by reclassification target) or rejects invoices.

    Example:
        engine = InvoiceSplitEngine(db_path="reconciliation.db")
        result = engine.approve(invoice_id)
        for sibling in result.siblings:
            print(f"{sibling.category}: {sibling.item_count} items, {sibling.total}")
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        config: Optional[ReconciliationConfig] = None,
        locks: Optional[InvoiceLockRegistry] = None,
    ):
        self.config = config or get_config()
        self.db_path = Path(db_path) if db_path else self.config.db_path
        self.locks = locks
        init_invoice_db(self.db_path)

    def approve(
        self,
        invoice_id: str,
        expected_version: Optional[int] = None,
        actor: str = "reviewer",
    ) -> ApprovalResult:
        """Approve a pending invoice and split off reclassified items.

        Args:
            invoice_id: Invoice to approve
            expected_version: Version the reviewer previewed; approval fails
                if the invoice changed since
            actor: Who approved

        Raises:
            NotFoundError: unknown invoice
            AlreadyApprovedError: invoice was approved before
            InvalidStateError: invoice was rejected
            ConflictError: invoice changed since ``expected_version``
            UnresolvedEntitiesError: unmatched names still pending
        """
        with invoice_operation(
            invoice_id, "approve", self.db_path, logger,
            timeout=self.config.busy_timeout_seconds, locks=self.locks, actor=actor,
        ) as conn:
            invoice = require_invoice(conn, invoice_id)
            if invoice.approval_state == ApprovalState.APPROVED:
                raise AlreadyApprovedError(
                    f"Invoice {invoice_id} is already approved",
                    {"invoice_id": invoice_id, "approved_at": str(invoice.approved_at)},
                )
            if invoice.approval_state != ApprovalState.PENDING:
                raise InvalidStateError(
                    f"Invoice {invoice_id} is {invoice.approval_state.value}",
                    {"invoice_id": invoice_id, "approval_state": invoice.approval_state.value},
                )
            if expected_version is not None and invoice.version != expected_version:
                raise ConflictError(
                    f"Invoice {invoice_id} changed since version {expected_version} "
                    f"(now {invoice.version})",
                    expected_version=expected_version,
                )

            unresolved = pending_entity_names(invoice)
            if unresolved:
                raise UnresolvedEntitiesError(
                    f"Invoice {invoice_id} has {len(unresolved)} unresolved entity name(s)",
                    unresolved,
                )

            snapshot_version = invoice.version
            summary = summarize(invoice, self.config.total_tolerance)
            siblings = self._create_siblings(conn, invoice, summary)

            moved_ids = [sid for s in siblings for sid in s.source_line_item_ids]
            delete_line_items(conn, moved_ids)

            moved = set(moved_ids)
            invoice.line_items = [item for item in invoice.line_items if item.id not in moved]
            invoice.invoice_total = summary.remaining_total
            invoice.approval_state = ApprovalState.APPROVED
            invoice.approved_at = datetime.utcnow()
            commit_version(conn, invoice, snapshot_version)

            logger.info(
                f"Invoice approved with {len(siblings)} sibling invoice(s)",
                extra_fields={
                    "retained_total": str(summary.remaining_total),
                    "moved_total": str(summary.moved_total),
                    "has_discrepancy": summary.has_discrepancy,
                },
            )

        return ApprovalResult(
            invoice_id=invoice.id,
            approved_at=invoice.approved_at,
            original_total=summary.original_total,
            retained_total=summary.remaining_total,
            retained_item_count=summary.remaining_count,
            siblings=siblings,
            invoice_version=invoice.version,
        )

    def reject(self, invoice_id: str, reason: str, actor: str = "reviewer") -> Invoice:
        """Reject a pending invoice. Line items are left untouched.

        Raises:
            NotFoundError: unknown invoice
            InvalidStateError: invoice is not pending
            ValidationError: blank reason
        """
        with invoice_operation(
            invoice_id, "reject", self.db_path, logger,
            timeout=self.config.busy_timeout_seconds, locks=self.locks, actor=actor,
        ) as conn:
            invoice = require_pending_invoice(conn, invoice_id)
            if not reason or not reason.strip():
                raise ValidationError("A rejection reason is required", {"invoice_id": invoice_id})

            invoice.approval_state = ApprovalState.REJECTED
            invoice.rejection_reason = reason.strip()
            commit_version(conn, invoice)
        return invoice

    def _create_siblings(self, conn, invoice: Invoice, summary: ReclassificationSummary) -> List[SiblingInvoice]:
        items_by_id = {item.id: item for item in invoice.line_items}
        created: List[SiblingInvoice] = []

        for group in summary.groups:
            sibling_id = new_id()
            source_ids = [entry.line_item_id for entry in group.items]
            copies = [
                _relocated_copy(items_by_id[source_id], sibling_id, group.category, position)
                for position, source_id in enumerate(source_ids)
            ]
            sibling = Invoice(
                id=sibling_id,
                category=group.category,
                provider_id=invoice.provider_id,
                provider_name=invoice.provider_name,
                invoice_number=invoice.invoice_number,
                invoice_date=invoice.invoice_date,
                invoice_total=group.subtotal,
                currency=invoice.currency,
                source_document=invoice.source_document,
                entity=invoice.entity.model_copy(deep=True) if invoice.entity else None,
                approval_state=ApprovalState.PENDING,
                parent_invoice_id=invoice.id,
                line_items=copies,
            )
            insert_invoice(conn, sibling)

            created.append(SiblingInvoice(
                invoice_id=sibling_id,
                category=group.category,
                item_count=group.item_count,
                total=group.subtotal,
                line_item_ids=[c.id for c in copies],
                source_line_item_ids=source_ids,
            ))

        return created
