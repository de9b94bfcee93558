"""
Review Check Tests

Validates the read-only checks a reviewer sees before approving:
R1 line sum vs total, R2 unresolved names, R3 split balance,
R4 registered targets, R5 reclassification preview.
"""

from decimal import Decimal

from models import (
    ConfirmationKind,
    EntityAttribution,
    EntityShare,
    Invoice,
    LineItem,
)
from reconciliation import CheckStatus, format_review, review_invoice
from reconciliation.engine import check_r1_line_sum, check_r3_splits_balanced


def _invoice(total=None, amounts=("100", "50")):
    return Invoice(
        category="feed_bedding",
        invoice_total=total,
        line_items=[
            LineItem(position=i, current_category="feed_bedding", amount=a)
            for i, a in enumerate(amounts)
        ],
    )


class TestChecks:

    def test_r1_matching_total(self):
        assert check_r1_line_sum(_invoice(total="150.00")).passed

    def test_r1_mismatch_warns(self):
        result = check_r1_line_sum(_invoice(total="160.00"))
        assert not result.passed
        assert result.severity.value == "WARN"
        assert result.evidence["difference"] == "10.00"

    def test_r1_without_total(self):
        assert check_r1_line_sum(_invoice()).passed

    def test_r3_unbalanced_split(self):
        # Built directly, skipping share validation
        invoice = _invoice()
        invoice.line_items[0].entity = EntityAttribution(
            kind="split",
            shares=[EntityShare(entity_id="a", share="60"), EntityShare(entity_id="b", share="30")],
        )
        result = check_r3_splits_balanced(invoice)
        assert not result.passed
        assert result.evidence["items"][0]["shares_total"] == "90"


class TestReviewInvoice:

    def test_clean_invoice_passes(self, categories):
        report = review_invoice(_invoice(total="150"), categories)
        assert report.status == CheckStatus.PASS
        assert report.can_approve
        assert report.summary["blocking_issues"] == 0

    def test_unresolved_name_blocks(self, categories):
        invoice = _invoice()
        invoice.line_items[1].entity = EntityAttribution.unresolved("Valentna")
        report = review_invoice(invoice, categories)

        assert report.status == CheckStatus.FAIL
        assert not report.can_approve
        r2 = next(c for c in report.checks if c["check_id"] == "R2_ENTITIES_RESOLVED")
        assert r2["evidence"]["raw_names"] == ["Valentna"]

    def test_unknown_target_blocks(self, categories):
        invoice = _invoice()
        invoice.line_items[0].confirmation = ConfirmationKind.TARGET
        invoice.line_items[0].confirmed_category = "spa_days"
        report = review_invoice(invoice, categories)
        assert report.status == CheckStatus.FAIL

    def test_reclassification_preview(self, categories):
        invoice = _invoice(total="150")
        invoice.line_items[1].suggested_category = "stabling"
        report = review_invoice(invoice, categories)

        assert report.status == CheckStatus.PASS
        assert report.reclassification.group_for("stabling").subtotal == Decimal("50")
        text = format_review(report)
        assert "stabling: 1 item(s), 50" in text
        assert "Remaining: 1 item(s), 100" in text
