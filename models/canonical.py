"""Canonical reconciliation models.

These models describe invoices as the reconciliation engine sees them:
extracted line items, their category decisions and their entity (horse)
attribution, plus the per-invoice record of names that failed to match the
roster. They are storage-agnostic; persistence lives in /storage/.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated

from core.errors import ValidationError


# =============================================================================
# Value Parsers (handle various input formats from extraction)
# =============================================================================

CENT = Decimal("0.01")


def _parse_decimal(value):
    """Parse decimal from various formats (string with $ or commas, floats, etc.)."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        s = s.replace("$", "").replace(",", "")
        if s.startswith("(") and s.endswith(")"):
            s = "-" + s[1:-1]
        try:
            return Decimal(s)
        except InvalidOperation:
            raise ValueError(f"Cannot parse amount: {value}")
    return value


def _parse_date(value):
    """Parse date from various string formats."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        for fmt in ("%Y-%m-%d", "%m/%d/%Y", "%m-%d-%Y", "%d/%m/%Y"):
            try:
                return datetime.strptime(s, fmt).date()
            except ValueError:
                continue
        raise ValueError(f"Cannot parse date: {s}")
    return value


DecimalValue = Annotated[Decimal, BeforeValidator(_parse_decimal)]
DateValue = Annotated[date, BeforeValidator(_parse_date)]


def new_id() -> str:
    return uuid.uuid4().hex


# =============================================================================
# Enums
# =============================================================================

class ApprovalState(str, Enum):
    """Invoice approval lifecycle. approved and rejected are terminal."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ConfirmationKind(str, Enum):
    """Reviewer decision on a line item's category."""
    UNSET = "unset"      # Never confirmed; the suggestion (if any) applies
    TARGET = "target"    # Move to confirmed_category
    KEEP = "keep"        # Explicitly keep in current category


class AttributionKind(str, Enum):
    RESOLVED = "resolved"
    SPLIT = "split"
    UNRESOLVED = "unresolved"


class UnmatchedStatus(str, Enum):
    UNRESOLVED = "unresolved"
    RESOLVED_EXISTING = "resolved_existing"
    RESOLVED_CREATED = "resolved_created"


# =============================================================================
# Base Model
# =============================================================================

class CanonicalBase(BaseModel):
    """Base model for all canonical data structures."""
    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Entity Attribution
# =============================================================================

def validate_split(
    shares: List["EntityShare"],
    amount: Decimal,
    tolerance: Decimal = CENT,
) -> None:
    """Check a split attribution against the line item amount.

    A split needs at least two distinct entities, every share non-zero
    with the sign of the amount (credits split into negative shares), and
    the shares must add up to the item amount within ``tolerance``.

    Raises:
        ValidationError: describing the first rule that fails
    """
    if len(shares) < 2:
        raise ValidationError(
            "A split needs at least two entities",
            {"share_count": len(shares)},
        )

    entity_ids = [s.entity_id for s in shares]
    if len(set(entity_ids)) != len(entity_ids):
        raise ValidationError(
            "A split cannot list the same entity twice",
            {"entity_ids": entity_ids},
        )

    # Credits split into credits: each share carries the item's sign
    credit = Decimal(amount) < 0
    for s in shares:
        if s.share == 0 or (s.share < 0) != credit:
            raise ValidationError(
                f"Share for entity {s.entity_id} must be non-zero with the same sign as the amount",
                {"entity_id": s.entity_id, "share": str(s.share), "amount": str(amount)},
            )

    total = sum((s.share for s in shares), Decimal("0"))
    if abs(total - Decimal(amount)) > tolerance:
        raise ValidationError(
            f"Split shares sum to {total}, expected {amount}",
            {"shares_total": str(total), "amount": str(amount), "tolerance": str(tolerance)},
        )


class EntityShare(CanonicalBase):
    """One entity's portion of a split line item."""
    entity_id: str
    share: DecimalValue


class EntityAttribution(CanonicalBase):
    """Who a cost belongs to: one entity, a split, or a name still pending resolution."""
    kind: AttributionKind
    entity_id: Optional[str] = None
    shares: List[EntityShare] = Field(default_factory=list)
    raw_name: Optional[str] = None

    @classmethod
    def resolved(cls, entity_id: str) -> "EntityAttribution":
        return cls(kind=AttributionKind.RESOLVED, entity_id=entity_id)

    @classmethod
    def unresolved(cls, raw_name: str) -> "EntityAttribution":
        return cls(kind=AttributionKind.UNRESOLVED, raw_name=raw_name)

    @classmethod
    def split(
        cls,
        shares: List[EntityShare],
        amount: Decimal,
        tolerance: Decimal = CENT,
    ) -> "EntityAttribution":
        """Build a validated split. Raises ValidationError on malformed shares."""
        validate_split(shares, amount, tolerance)
        return cls(kind=AttributionKind.SPLIT, shares=list(shares))

    @property
    def is_unresolved(self) -> bool:
        return self.kind == AttributionKind.UNRESOLVED

    def entity_ids(self) -> List[str]:
        if self.kind == AttributionKind.RESOLVED and self.entity_id:
            return [self.entity_id]
        if self.kind == AttributionKind.SPLIT:
            return [s.entity_id for s in self.shares]
        return []


# =============================================================================
# Invoice Models
# =============================================================================

class LineItem(CanonicalBase):
    """A single charge on an invoice."""
    id: str = Field(default_factory=new_id)
    invoice_id: Optional[str] = None
    position: int = 0
    description: Optional[str] = None
    amount: DecimalValue = Decimal("0")

    # Category decisions
    current_category: str
    suggested_category: Optional[str] = None
    confirmation: ConfirmationKind = ConfirmationKind.UNSET
    confirmed_category: Optional[str] = None

    entity: Optional[EntityAttribution] = None


class UnmatchedName(CanonicalBase):
    """Resolution record for a raw name that did not bind to the roster."""
    invoice_id: str
    raw_name: str
    status: UnmatchedStatus = UnmatchedStatus.UNRESOLVED
    entity_id: Optional[str] = None
    suggested_entity_id: Optional[str] = Field(
        default=None, description="Closest roster match, shown to the reviewer only"
    )
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class Invoice(CanonicalBase):
    """A vendor bill under reconciliation."""
    id: str = Field(default_factory=new_id)
    category: str

    # Provider
    provider_id: Optional[str] = None
    provider_name: Optional[str] = None

    # Extracted fields
    invoice_number: Optional[str] = None
    invoice_date: Optional[DateValue] = None
    invoice_total: Optional[DecimalValue] = None
    currency: Optional[str] = None
    source_document: Optional[str] = None

    # Invoice-level attribution (when the whole bill belongs to one name)
    entity: Optional[EntityAttribution] = None

    approval_state: ApprovalState = ApprovalState.PENDING
    parent_invoice_id: Optional[str] = None
    rejection_reason: Optional[str] = None
    approved_at: Optional[datetime] = None
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    line_items: List[LineItem] = Field(default_factory=list)
    unmatched_names: List[UnmatchedName] = Field(default_factory=list)

    def line_sum(self) -> Decimal:
        return sum((item.amount for item in self.line_items), Decimal("0"))

    def original_total(self) -> Decimal:
        """Extracted invoice total if present, else the sum of line items."""
        if self.invoice_total is not None:
            return self.invoice_total
        return self.line_sum()

    def unresolved_names(self) -> List[str]:
        return [
            u.raw_name for u in self.unmatched_names
            if u.status == UnmatchedStatus.UNRESOLVED
        ]

    def get_line_item(self, line_item_id: str) -> Optional[LineItem]:
        for item in self.line_items:
            if item.id == line_item_id:
                return item
        return None
