"""
Invoice Split Engine Tests

Validates:
1. Approval splits reclassified items into pending sibling invoices
2. Totals are conserved (retained + moved == original)
3. Approval happens at most once and is blocked by unresolved names
4. Optimistic version checks and all-or-nothing writes
5. Rejection rules
"""

import sqlite3
import threading
from decimal import Decimal
from unittest.mock import patch

import pytest

from core.errors import (
    AlreadyApprovedError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    UnresolvedEntitiesError,
    ValidationError,
)
from models import ApprovalState, ConfirmationKind
from storage import get_invoice, insert_invoice, list_invoices


class TestApprove:

    def test_split_scenario(self, make_invoice, reclassifier, split_engine, temp_db):
        """feed_bedding 100/50/25 with the 50.00 item confirmed to stabling."""
        invoice = make_invoice("feed_bedding", [(100,), (50,), (25,)])
        moved_id = invoice.line_items[1].id
        reclassifier.confirm(moved_id, "stabling")

        result = split_engine.approve(invoice.id)

        assert result.approval_state == ApprovalState.APPROVED
        assert result.retained_total == Decimal("125")
        assert result.retained_item_count == 2
        assert len(result.siblings) == 1

        source = get_invoice(invoice.id, temp_db)
        assert source.approval_state == ApprovalState.APPROVED
        assert source.approved_at is not None
        assert source.invoice_total == Decimal("125")
        assert [i.amount for i in source.line_items] == [Decimal("100"), Decimal("25")]

        sibling = get_invoice(result.siblings[0].invoice_id, temp_db)
        assert sibling.category == "stabling"
        assert sibling.approval_state == ApprovalState.PENDING
        assert sibling.parent_invoice_id == invoice.id
        assert sibling.invoice_total == Decimal("50")
        assert sibling.invoice_number == "INV-1001"
        assert len(sibling.line_items) == 1

        copy = sibling.line_items[0]
        assert copy.id != moved_id
        assert copy.amount == Decimal("50")
        assert copy.current_category == "stabling"
        assert copy.suggested_category is None
        assert copy.confirmation == ConfirmationKind.UNSET
        assert result.siblings[0].source_line_item_ids == [moved_id]

    def test_conservation_across_groups(self, make_invoice, reclassifier, split_engine, temp_db):
        invoice = make_invoice(
            "feed_bedding",
            [(12.5, None, "stabling"), (7.25, None, "farrier"), (30,), (2.25, None, "stabling")],
            invoice_total="52.00",
        )
        reclassifier.confirm(invoice.line_items[2].id, None)

        result = split_engine.approve(invoice.id)

        assert [s.category for s in result.siblings] == ["stabling", "farrier"]
        assert result.siblings[0].total == Decimal("14.75")
        assert result.retained_total + result.moved_total == Decimal("52.00")

        children = list_invoices(temp_db, parent_invoice_id=invoice.id)
        assert sorted(c.category for c in children) == ["farrier", "stabling"]
        assert all(c.approval_state == ApprovalState.PENDING for c in children)

    def test_retained_total_keeps_rounding_difference(self, make_invoice, reclassifier, split_engine, temp_db):
        """100.00 billed as 3 x 33.33: the source keeps 66.67, not the 66.66 line sum."""
        invoice = make_invoice("feed_bedding", [(33.33,), (33.33,), (33.33,)], invoice_total="100.00")
        reclassifier.confirm(invoice.line_items[2].id, "stabling")

        result = split_engine.approve(invoice.id)

        source = get_invoice(invoice.id, temp_db)
        assert result.original_total == Decimal("100.00")
        assert source.invoice_total == Decimal("66.67")
        assert source.line_sum() == Decimal("66.66")
        assert result.siblings[0].total == Decimal("33.33")
        assert source.invoice_total + result.moved_total == Decimal("100.00")

    def test_nothing_to_move(self, make_invoice, split_engine, temp_db):
        invoice = make_invoice("farrier", [(80,), (20,)])
        result = split_engine.approve(invoice.id)

        assert result.siblings == []
        assert result.retained_total == Decimal("100")
        assert list_invoices(temp_db, parent_invoice_id=invoice.id) == []

    def test_sibling_can_be_approved(self, make_invoice, split_engine):
        invoice = make_invoice("feed_bedding", [(100,), (50, None, "stabling")])
        sibling_id = split_engine.approve(invoice.id).siblings[0].invoice_id

        result = split_engine.approve(sibling_id)
        assert result.siblings == []
        assert result.retained_total == Decimal("50")

    def test_second_approve_is_already_approved(self, make_invoice, split_engine, temp_db):
        invoice = make_invoice("feed_bedding", [(100,), (50, None, "stabling")])
        split_engine.approve(invoice.id)

        with pytest.raises(AlreadyApprovedError):
            split_engine.approve(invoice.id)
        assert len(list_invoices(temp_db, parent_invoice_id=invoice.id)) == 1

    def test_unresolved_names_block_approval(self, roster, matcher, make_invoice, split_engine, temp_db):
        invoice = make_invoice("veterinary", [(100, "Valentna"), (50, "Mystery", "stabling")])

        with pytest.raises(UnresolvedEntitiesError) as exc:
            split_engine.approve(invoice.id)
        assert exc.value.raw_names == ["Valentna", "Mystery"]
        assert exc.value.code == "unresolved_entities"

        stored = get_invoice(invoice.id, temp_db)
        assert stored.approval_state == ApprovalState.PENDING
        assert len(stored.line_items) == 2

        horse = roster.register("Valentina")
        matcher.resolve_to_existing(invoice.id, "Valentna", horse.id)
        matcher.resolve_by_creating(invoice.id, "Mystery", "Mystery Horse")
        assert len(split_engine.approve(invoice.id).siblings) == 1

    def test_unknown_invoice(self, split_engine):
        with pytest.raises(NotFoundError):
            split_engine.approve("missing")

    def test_stale_version_conflicts(self, make_invoice, reclassifier, split_engine, temp_db):
        invoice = make_invoice("feed_bedding", [(100,), (50,)])
        previewed = get_invoice(invoice.id, temp_db).version
        reclassifier.confirm(invoice.line_items[1].id, "stabling")

        with pytest.raises(ConflictError) as exc:
            split_engine.approve(invoice.id, expected_version=previewed)
        assert exc.value.code == "conflict"
        assert get_invoice(invoice.id, temp_db).approval_state == ApprovalState.PENDING

        result = split_engine.approve(invoice.id, expected_version=previewed + 1)
        assert len(result.siblings) == 1

    def test_failure_leaves_invoice_unchanged(self, make_invoice, split_engine, temp_db):
        """A failure while creating siblings rolls back every write."""
        invoice = make_invoice(
            "feed_bedding",
            [(10, None, "stabling"), (20, None, "farrier"), (30,)],
        )
        calls = []

        def flaky_insert(conn, sibling):
            calls.append(sibling.id)
            if len(calls) == 2:
                raise sqlite3.OperationalError("disk I/O error")
            return insert_invoice(conn, sibling)

        with patch("split_engine.engine.insert_invoice", side_effect=flaky_insert):
            with pytest.raises(sqlite3.OperationalError):
                split_engine.approve(invoice.id)

        assert list_invoices(temp_db, parent_invoice_id=invoice.id) == []
        stored = get_invoice(invoice.id, temp_db)
        assert stored.approval_state == ApprovalState.PENDING
        assert len(stored.line_items) == 3
        assert stored.version == 0

    def test_concurrent_approvals_split_once(self, make_invoice, split_engine, temp_db):
        invoice = make_invoice("feed_bedding", [(100,), (50, None, "stabling")])
        outcomes = []

        def _approve():
            try:
                split_engine.approve(invoice.id)
                outcomes.append("approved")
            except AlreadyApprovedError:
                outcomes.append("already")

        threads = [threading.Thread(target=_approve) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ["already", "already", "already", "approved"]
        assert len(list_invoices(temp_db, parent_invoice_id=invoice.id)) == 1


class TestReject:

    def test_reject(self, make_invoice, split_engine, temp_db):
        invoice = make_invoice("feed_bedding", [(100,), (50, None, "stabling")])
        rejected = split_engine.reject(invoice.id, "  Duplicate of INV-1000 ")

        assert rejected.approval_state == ApprovalState.REJECTED
        stored = get_invoice(invoice.id, temp_db)
        assert stored.rejection_reason == "Duplicate of INV-1000"
        assert len(stored.line_items) == 2
        assert list_invoices(temp_db, parent_invoice_id=invoice.id) == []

    def test_blank_reason(self, make_invoice, split_engine, temp_db):
        invoice = make_invoice("feed_bedding", [(100,)])
        with pytest.raises(ValidationError):
            split_engine.reject(invoice.id, "   ")
        assert get_invoice(invoice.id, temp_db).approval_state == ApprovalState.PENDING

    def test_reject_twice(self, make_invoice, split_engine):
        invoice = make_invoice("feed_bedding", [(100,)])
        split_engine.reject(invoice.id, "wrong vendor")
        with pytest.raises(InvalidStateError):
            split_engine.reject(invoice.id, "wrong vendor")

    def test_approve_after_reject(self, make_invoice, split_engine):
        invoice = make_invoice("feed_bedding", [(100,)])
        split_engine.reject(invoice.id, "wrong vendor")
        with pytest.raises(InvalidStateError):
            split_engine.approve(invoice.id)

    def test_reject_after_approve(self, make_invoice, split_engine):
        invoice = make_invoice("feed_bedding", [(100,)])
        split_engine.approve(invoice.id)
        with pytest.raises(InvalidStateError):
            split_engine.reject(invoice.id, "too late")
