"""
Canonical Model Tests

Validates the data contracts shared by every component:
1. Split attribution validation (shares vs item amount, tolerance)
2. Money parsing from extraction strings
3. Invoice totals and unresolved-name helpers
"""

from decimal import Decimal

import pydantic
import pytest

from core.errors import ValidationError
from models import (
    AttributionKind,
    EntityAttribution,
    EntityShare,
    Invoice,
    LineItem,
    UnmatchedName,
    UnmatchedStatus,
    validate_split,
)


def _shares(*pairs):
    return [EntityShare(entity_id=eid, share=share) for eid, share in pairs]


class TestSplitAttribution:
    """A split must name two or more entities whose shares sum to the amount."""

    def test_valid_split(self):
        """60/40 on a 100 line item is accepted."""
        attribution = EntityAttribution.split(_shares(("a", "60"), ("b", "40")), Decimal("100"))
        assert attribution.kind == AttributionKind.SPLIT
        assert attribution.entity_ids() == ["a", "b"]

    def test_shares_not_summing_to_amount_fail(self):
        """60/30 on a 100 line item is rejected."""
        with pytest.raises(ValidationError) as exc:
            EntityAttribution.split(_shares(("a", "60"), ("b", "30")), Decimal("100"))
        assert exc.value.code == "validation_error"
        assert exc.value.details["shares_total"] == "90"

    def test_within_tolerance_accepted(self):
        """A one-cent rounding difference is tolerated."""
        validate_split(_shares(("a", "33.33"), ("b", "66.66")), Decimal("100.00"))

    def test_beyond_tolerance_rejected(self):
        with pytest.raises(ValidationError):
            validate_split(_shares(("a", "33.33"), ("b", "66.65")), Decimal("100.00"))

    def test_custom_tolerance(self):
        validate_split(_shares(("a", "50"), ("b", "49.90")), Decimal("100"), tolerance=Decimal("0.10"))

    def test_single_entity_rejected(self):
        with pytest.raises(ValidationError):
            validate_split(_shares(("a", "100")), Decimal("100"))

    def test_duplicate_entity_rejected(self):
        with pytest.raises(ValidationError):
            validate_split(_shares(("a", "50"), ("a", "50")), Decimal("100"))

    def test_mixed_sign_shares_rejected(self):
        with pytest.raises(ValidationError):
            validate_split(_shares(("a", "110"), ("b", "-10")), Decimal("100"))
        with pytest.raises(ValidationError) as exc:
            validate_split(_shares(("a", "-60"), ("b", "40")), Decimal("-20"))
        assert exc.value.details["entity_id"] == "b"

    def test_zero_share_rejected(self):
        with pytest.raises(ValidationError):
            validate_split(_shares(("a", "100"), ("b", "0")), Decimal("100"))

    def test_credit_split(self):
        """A credit line splits into negative shares."""
        attribution = EntityAttribution.split(_shares(("a", "-60"), ("b", "-40")), Decimal("-100"))
        assert attribution.entity_ids() == ["a", "b"]


class TestValueParsing:
    """Amounts arrive as strings from extraction."""

    def test_currency_strings(self):
        item = LineItem(current_category="stabling", amount="$1,200.50")
        assert item.amount == Decimal("1200.50")

    def test_parenthesized_negative(self):
        item = LineItem(current_category="stabling", amount="(10.00)")
        assert item.amount == Decimal("-10.00")

    def test_float_amount_is_exact(self):
        item = LineItem(current_category="stabling", amount=0.1)
        assert item.amount == Decimal("0.1")

    def test_unparseable_amount(self):
        with pytest.raises(pydantic.ValidationError):
            LineItem(current_category="admin", amount="N/A")

    def test_invoice_date_formats(self):
        assert str(Invoice(category="farrier", invoice_date="03/15/2024").invoice_date) == "2024-03-15"


class TestInvoiceHelpers:

    def test_original_total_prefers_extracted_total(self):
        invoice = Invoice(
            category="feed_bedding",
            invoice_total="100.00",
            line_items=[LineItem(current_category="feed_bedding", amount="99.99")],
        )
        assert invoice.original_total() == Decimal("100.00")
        assert invoice.line_sum() == Decimal("99.99")

    def test_original_total_falls_back_to_line_sum(self):
        invoice = Invoice(
            category="feed_bedding",
            line_items=[
                LineItem(current_category="feed_bedding", amount="10"),
                LineItem(current_category="feed_bedding", amount="5.25"),
            ],
        )
        assert invoice.original_total() == Decimal("15.25")

    def test_unresolved_names(self):
        invoice = Invoice(category="veterinary")
        invoice.unmatched_names = [
            UnmatchedName(invoice_id=invoice.id, raw_name="Valentina"),
            UnmatchedName(invoice_id=invoice.id, raw_name="Cosmo", status=UnmatchedStatus.RESOLVED_EXISTING),
        ]
        assert invoice.unresolved_names() == ["Valentina"]

    def test_line_item_ids_are_unique(self):
        a = LineItem(current_category="admin")
        b = LineItem(current_category="admin")
        assert a.id != b.id
