"""Invoice Split Engine result models."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from models.canonical import ApprovalState, DecimalValue


class SiblingInvoice(BaseModel):
    """A pending invoice created from reclassified line items."""
    invoice_id: str
    category: str
    item_count: int
    total: DecimalValue
    line_item_ids: List[str] = Field(default_factory=list, description="Ids of the copied items")
    source_line_item_ids: List[str] = Field(default_factory=list, description="Ids the copies replaced")


class ApprovalResult(BaseModel):
    """What approve() committed."""
    invoice_id: str
    approval_state: ApprovalState = ApprovalState.APPROVED
    approved_at: Optional[datetime] = None
    original_total: DecimalValue = Decimal("0")
    retained_total: DecimalValue = Decimal("0")
    retained_item_count: int = 0
    siblings: List[SiblingInvoice] = Field(default_factory=list)
    invoice_version: int = 0

    @property
    def moved_total(self) -> Decimal:
        return sum((s.total for s in self.siblings), Decimal("0"))
