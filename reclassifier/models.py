"""Reclassification preview models."""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from models.canonical import DecimalValue


class ReclassifiedItem(BaseModel):
    line_item_id: str
    description: Optional[str] = None
    amount: DecimalValue


class ReclassificationGroup(BaseModel):
    """Line items that will move to one target category on approval."""
    category: str = Field(..., description="Target category key")
    item_count: int = 0
    subtotal: DecimalValue = Decimal("0")
    items: List[ReclassifiedItem] = Field(default_factory=list)


class ReclassificationSummary(BaseModel):
    """Read-only preview of what approval will do to an invoice.

    remaining_total is the original total minus every moved subtotal, so
    remaining_total + sum(group subtotals) == original_total exactly.
    """
    invoice_id: str
    current_category: str
    groups: List[ReclassificationGroup] = Field(default_factory=list)

    moved_count: int = 0
    moved_total: DecimalValue = Decimal("0")

    remaining_count: int = 0
    remaining_total: DecimalValue = Decimal("0")
    remaining_items: List[ReclassifiedItem] = Field(default_factory=list)

    # Extracted total vs line-item sum, surfaced to the reviewer
    original_total: DecimalValue = Decimal("0")
    line_sum: DecimalValue = Decimal("0")
    discrepancy: DecimalValue = Decimal("0")
    has_discrepancy: bool = False

    def group_for(self, category: str) -> Optional[ReclassificationGroup]:
        for group in self.groups:
            if group.category == category:
                return group
        return None
