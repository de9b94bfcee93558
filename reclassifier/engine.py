"""Line-Item Reclassifier.

Each line item carries three category facts:
- current_category: the category of the invoice that owns it
- suggested_category: proposed once by extraction, never overwritten
- a reviewer confirmation: unset, a target category, or an explicit keep

The effective target is ``confirmed ?? suggested``; a target equal to the
current category (or none at all) means the item stays. An explicit keep is
a confirmation too, so it always beats a suggestion and survives re-running
extraction. ``effective_target`` and ``summarize`` are pure and drive both
the reviewer preview and the split performed at approval.
"""

from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional

from category_registry import CategoryRegistry, normalize_category_key
from core.config import ReconciliationConfig, get_config
from core.errors import ImmutableSuggestionError, NotFoundError
from core.observability import get_logger
from models.canonical import CENT, ConfirmationKind, Invoice, LineItem
from reclassifier.models import ReclassificationGroup, ReclassificationSummary, ReclassifiedItem
from storage import (
    InvoiceLockRegistry,
    commit_version,
    connect,
    find_invoice_id_for_line_item,
    get_invoice,
    init_invoice_db,
    invoice_operation,
    require_pending_invoice,
    update_line_item,
)

logger = get_logger(__name__)


# =============================================================================
# Pure projections
# =============================================================================

def effective_target(item: LineItem) -> Optional[str]:
    """Category key the item moves to on approval, or None if it stays."""
    if item.confirmation == ConfirmationKind.KEEP:
        return None
    if item.confirmation == ConfirmationKind.TARGET:
        candidate = item.confirmed_category
    else:
        candidate = item.suggested_category

    target = normalize_category_key(candidate)
    if target is None or target == normalize_category_key(item.current_category):
        return None
    return target


def _as_item(item: LineItem) -> ReclassifiedItem:
    return ReclassifiedItem(line_item_id=item.id, description=item.description, amount=item.amount)


def summarize(invoice: Invoice, total_tolerance: Decimal = CENT) -> ReclassificationSummary:
    """Group an invoice's items by effective target without touching state.

    Groups are ordered by subtotal (largest first), ties by first appearance.
    """
    groups: Dict[str, ReclassificationGroup] = {}
    remaining: List[ReclassifiedItem] = []

    for item in sorted(invoice.line_items, key=lambda i: i.position):
        target = effective_target(item)
        if target is None:
            remaining.append(_as_item(item))
            continue
        group = groups.setdefault(target, ReclassificationGroup(category=target))
        group.items.append(_as_item(item))
        group.item_count += 1
        group.subtotal += item.amount

    ordered = sorted(groups.values(), key=lambda g: g.subtotal, reverse=True)
    moved_total = sum((g.subtotal for g in ordered), Decimal("0"))

    original_total = invoice.original_total()
    line_sum = invoice.line_sum()
    discrepancy = original_total - line_sum

    return ReclassificationSummary(
        invoice_id=invoice.id,
        current_category=normalize_category_key(invoice.category),
        groups=ordered,
        moved_count=sum(g.item_count for g in ordered),
        moved_total=moved_total,
        remaining_count=len(remaining),
        remaining_total=original_total - moved_total,
        remaining_items=remaining,
        original_total=original_total,
        line_sum=line_sum,
        discrepancy=discrepancy,
        has_discrepancy=abs(discrepancy) > total_tolerance,
    )


# =============================================================================
# Reclassifier
# =============================================================================

class LineItemReclassifier:
    """Records category suggestions and reviewer confirmations on line items."""

    def __init__(
        self,
        db_path: Optional[Path] = None,
        config: Optional[ReconciliationConfig] = None,
        categories: Optional[CategoryRegistry] = None,
        locks: Optional[InvoiceLockRegistry] = None,
    ):
        self.config = config or get_config()
        self.db_path = Path(db_path) if db_path else self.config.db_path
        self.categories = categories or CategoryRegistry(self.db_path, self.config)
        self.locks = locks
        init_invoice_db(self.db_path)

    def suggest(self, line_item_id: str, category: str) -> LineItem:
        """Record the extraction pipeline's category suggestion (once per item).

        Raises:
            NotFoundError: unknown line item or category
            InvalidStateError: invoice is no longer pending
            ImmutableSuggestionError: the item already has a suggestion
        """
        invoice_id = self._invoice_id_for(line_item_id)
        with invoice_operation(
            invoice_id, "suggest", self.db_path, logger,
            timeout=self.config.busy_timeout_seconds, locks=self.locks,
            line_item_id=line_item_id, category=category, actor="extraction",
        ) as conn:
            invoice = require_pending_invoice(conn, invoice_id)
            item = self._require_item(invoice, line_item_id)
            if item.suggested_category is not None:
                raise ImmutableSuggestionError(
                    f"Line item {line_item_id} already has suggestion '{item.suggested_category}'",
                    {"line_item_id": line_item_id, "suggested_category": item.suggested_category},
                )
            item.suggested_category = self.categories.require(category, conn=conn).key
            update_line_item(conn, item)
            commit_version(conn, invoice)
        return item

    def confirm(self, line_item_id: str, category: Optional[str], actor: str = "reviewer") -> LineItem:
        """Record the reviewer's decision; ``None`` means keep in the current category.

        Raises:
            NotFoundError: unknown line item or category
            InvalidStateError: invoice is no longer pending
        """
        invoice_id = self._invoice_id_for(line_item_id)
        with invoice_operation(
            invoice_id, "confirm", self.db_path, logger,
            timeout=self.config.busy_timeout_seconds, locks=self.locks,
            line_item_id=line_item_id, category=category, actor=actor,
        ) as conn:
            invoice = require_pending_invoice(conn, invoice_id)
            item = self._require_item(invoice, line_item_id)
            if category is None:
                item.confirmation = ConfirmationKind.KEEP
                item.confirmed_category = None
            else:
                item.confirmation = ConfirmationKind.TARGET
                item.confirmed_category = self.categories.require(category, conn=conn).key
            update_line_item(conn, item)
            commit_version(conn, invoice)
        return item

    def preview(self, invoice_id: str) -> ReclassificationSummary:
        """Load an invoice and summarize it."""
        invoice = get_invoice(invoice_id, self.db_path)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found", {"invoice_id": invoice_id})
        return summarize(invoice, self.config.total_tolerance)

    def _invoice_id_for(self, line_item_id: str) -> str:
        with connect(self.db_path) as conn:
            invoice_id = find_invoice_id_for_line_item(conn, line_item_id)
        if invoice_id is None:
            raise NotFoundError(f"Line item {line_item_id} not found", {"line_item_id": line_item_id})
        return invoice_id

    @staticmethod
    def _require_item(invoice: Invoice, line_item_id: str) -> LineItem:
        item = invoice.get_line_item(line_item_id)
        if item is None:
            # Moved to a sibling invoice after the id lookup
            raise NotFoundError(f"Line item {line_item_id} not found", {"line_item_id": line_item_id})
        return item
