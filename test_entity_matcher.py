"""
Entity Matcher Tests

Validates:
1. Automatic matching rules (exact, alias, partial, fuzzy, none)
2. Candidate name extraction is ordered, deduplicated and repeatable
3. Reviewer resolution to existing and newly created entities
4. Alias learning on resolution
5. Split and single-entity attribution edits
"""

from decimal import Decimal

import pytest

from core.errors import (
    AlreadyResolvedError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from entity_matcher import MatchConfidence, MatchingConfig, match_entity_name
from models import AttributionKind, UnmatchedStatus
from roster_registry import RosterEntity
from storage import get_invoice


def _entities(*names):
    return [RosterEntity(name=name) for name in names]


class TestMatchEntityName:
    """Pure matching against an in-memory roster."""

    def test_exact_ignores_case_and_whitespace(self):
        roster = _entities("Valentina", "Cosmo")
        match = match_entity_name("  VALENTINA ", roster)
        assert match.confidence == MatchConfidence.EXACT
        assert match.entity_id == roster[0].id
        assert match.is_auto_bound

    def test_learned_alias_auto_binds(self):
        roster = _entities("Valentina")
        match = match_entity_name("Val", roster, aliases={"val": roster[0].id})
        assert match.confidence == MatchConfidence.ALIAS
        assert match.is_auto_bound

    def test_static_alias(self):
        roster = _entities("Sir Galahad")
        config = MatchingConfig(static_aliases={"gally": "Sir Galahad"})
        match = match_entity_name("Gally", roster, config=config)
        assert match.confidence == MatchConfidence.ALIAS
        assert match.entity_id == roster[0].id

    def test_partial_is_suggestion_only(self):
        roster = _entities("Valentina Z", "Cosmo")
        match = match_entity_name("Valentina", roster)
        assert match.confidence == MatchConfidence.PARTIAL
        assert match.entity_id == roster[0].id
        assert not match.is_auto_bound

    def test_fuzzy_is_suggestion_only(self):
        """A typo suggests the closest entity but never binds on its own."""
        roster = _entities("Valentina", "Cosmo")
        match = match_entity_name("Valentna", roster)
        assert match.confidence == MatchConfidence.FUZZY
        assert match.entity_id == roster[0].id
        assert match.candidates[0].distance == 1
        assert not match.is_auto_bound

    def test_fuzzy_outside_budget_is_no_match(self):
        roster = _entities("Valentina")
        match = match_entity_name("Bob", roster)
        assert match.confidence == MatchConfidence.NONE
        assert match.entity_id is None

    def test_fuzzy_disabled(self):
        roster = _entities("Valentina")
        match = match_entity_name("Valentna", roster, config=MatchingConfig(enable_fuzzy=False))
        assert match.confidence == MatchConfidence.NONE

    def test_empty_name(self):
        match = match_entity_name("   ", _entities("Valentina"))
        assert match.confidence == MatchConfidence.NONE
        assert not match.is_auto_bound


class TestIntakeBinding:
    """Names are matched when an invoice is ingested."""

    def test_exact_name_binds_at_intake(self, roster, make_invoice):
        horse = roster.register("Valentina")
        invoice = make_invoice("veterinary", [(100, " valentina ")])

        item = invoice.line_items[0]
        assert item.entity.kind == AttributionKind.RESOLVED
        assert item.entity.entity_id == horse.id
        assert invoice.unmatched_names == []

    def test_typo_recorded_with_suggestion(self, roster, make_invoice):
        horse = roster.register("Valentina")
        invoice = make_invoice("veterinary", [(100, "Valentna")])

        assert invoice.line_items[0].entity.is_unresolved
        assert len(invoice.unmatched_names) == 1
        record = invoice.unmatched_names[0]
        assert record.raw_name == "Valentna"
        assert record.status == UnmatchedStatus.UNRESOLVED
        assert record.suggested_entity_id == horse.id

    def test_spellings_share_one_record(self, make_invoice):
        invoice = make_invoice("veterinary", [(10, "New Pony"), (20, "new  pony"), (30, "Other")])
        assert [u.raw_name for u in invoice.unmatched_names] == ["New Pony", "Other"]


class TestExtractCandidateNames:

    def test_order_and_dedup(self, matcher, make_invoice):
        invoice = make_invoice(
            "veterinary",
            [(10, "Bravo"), (20, "Alpha"), (30, "BRAVO")],
            horse_name="Zulu",
        )
        assert matcher.extract_candidate_names(invoice) == ["Zulu", "Bravo", "Alpha"]

    def test_is_idempotent(self, matcher, make_invoice, temp_db):
        invoice = make_invoice("veterinary", [(10, "Bravo"), (20, "Alpha")])
        first = matcher.extract_candidate_names(get_invoice(invoice.id, temp_db))
        second = matcher.extract_candidate_names(get_invoice(invoice.id, temp_db))
        assert first == second == ["Bravo", "Alpha"]


class TestResolveToExisting:

    def test_binds_every_occurrence(self, roster, matcher, make_invoice, temp_db):
        horse = roster.register("Valentina")
        invoice = make_invoice("veterinary", [(10, "Valentna"), (20, "Valentna"), (30,)], horse_name="Valentna")

        result = matcher.resolve_to_existing(invoice.id, "Valentna", horse.id)
        assert result.status == UnmatchedStatus.RESOLVED_EXISTING
        assert len(result.line_item_ids) == 2
        assert result.invoice_level_bound

        stored = get_invoice(invoice.id, temp_db)
        assert stored.entity.entity_id == horse.id
        assert [i.entity.entity_id for i in stored.line_items if i.entity] == [horse.id, horse.id]
        assert stored.unresolved_names() == []
        assert stored.unmatched_names[0].entity_id == horse.id
        assert stored.version == result.invoice_version == 1

    def test_second_resolution_is_already_resolved(self, roster, matcher, make_invoice):
        horse = roster.register("Valentina")
        invoice = make_invoice("veterinary", [(10, "Valentna")])
        matcher.resolve_to_existing(invoice.id, "Valentna", horse.id)

        with pytest.raises(AlreadyResolvedError):
            matcher.resolve_to_existing(invoice.id, "Valentna", horse.id)

    def test_unknown_entity(self, matcher, make_invoice):
        invoice = make_invoice("veterinary", [(10, "Valentna")])
        with pytest.raises(NotFoundError):
            matcher.resolve_to_existing(invoice.id, "Valentna", "missing")

    def test_retired_entity_needs_reactivation(self, roster, matcher, make_invoice):
        horse = roster.register("Valentina")
        roster.retire(horse.id)
        invoice = make_invoice("veterinary", [(10, "Valentina")])

        # Past entities are not matched at intake either
        assert invoice.line_items[0].entity.is_unresolved

        with pytest.raises(NotFoundError):
            matcher.resolve_to_existing(invoice.id, "Valentina", horse.id)

        roster.reactivate(horse.id)
        result = matcher.resolve_to_existing(invoice.id, "Valentina", horse.id)
        assert result.entity_id == horse.id

    def test_learns_alias_for_future_invoices(self, roster, matcher, make_invoice):
        horse = roster.register("Valentina")
        first = make_invoice("veterinary", [(10, "Valentna")])
        matcher.resolve_to_existing(first.id, "Valentna", horse.id)

        assert roster.lookup_alias("  VALENTNA ").entity_id == horse.id
        second = make_invoice("veterinary", [(10, "  valentna ")])
        assert second.line_items[0].entity.entity_id == horse.id
        assert second.unmatched_names == []

    def test_rejected_invoice_is_not_editable(self, roster, matcher, split_engine, make_invoice):
        horse = roster.register("Valentina")
        invoice = make_invoice("veterinary", [(10, "Valentna")])
        split_engine.reject(invoice.id, "duplicate upload")

        with pytest.raises(InvalidStateError):
            matcher.resolve_to_existing(invoice.id, "Valentna", horse.id)


class TestResolveByCreating:

    def test_round_trip(self, roster, matcher, make_invoice, temp_db):
        """Created entity is active, findable by name, and nothing is left unresolved."""
        invoice = make_invoice("veterinary", [(10, "New Pony"), (20, "New Pony")])

        result = matcher.resolve_by_creating(invoice.id, "New Pony", "  New Pony ", owner="J. Smith")
        created = result.created_entity
        assert created.is_active
        assert created.name == "New Pony"
        assert created.owner == "J. Smith"
        assert roster.find_by_name("new pony").id == created.id

        stored = get_invoice(invoice.id, temp_db)
        assert stored.unresolved_names() == []
        assert stored.unmatched_names[0].status == UnmatchedStatus.RESOLVED_CREATED
        assert all(i.entity.entity_id == created.id for i in stored.line_items)

    def test_short_name_rejected(self, roster, matcher, make_invoice):
        invoice = make_invoice("veterinary", [(10, "New Pony")])
        with pytest.raises(ValidationError):
            matcher.resolve_by_creating(invoice.id, "New Pony", " X ")
        assert roster.list() == []

    def test_failed_binding_leaves_no_entity(self, roster, matcher, make_invoice):
        invoice = make_invoice("veterinary", [(10, "New Pony")])
        with pytest.raises(AlreadyResolvedError):
            matcher.resolve_by_creating(invoice.id, "Someone Else", "Someone Else")
        assert roster.find_by_name("Someone Else") is None


class TestAttributionEdits:

    def test_assign_split(self, roster, matcher, make_invoice, temp_db):
        a = roster.register("Valentina")
        b = roster.register("Cosmo")
        invoice = make_invoice("stabling", [(100,)])
        item_id = invoice.line_items[0].id

        matcher.assign_split(invoice.id, item_id, [
            {"entity_id": a.id, "share": "60"},
            {"entity_id": b.id, "share": "40"},
        ])

        stored = get_invoice(invoice.id, temp_db).get_line_item(item_id)
        assert stored.entity.kind == AttributionKind.SPLIT
        assert [s.share for s in stored.entity.shares] == [Decimal("60"), Decimal("40")]

    def test_assign_split_on_credit(self, roster, matcher, make_invoice, temp_db):
        a = roster.register("Valentina")
        b = roster.register("Cosmo")
        invoice = make_invoice("stabling", [(-100,)])
        item_id = invoice.line_items[0].id

        matcher.assign_split(invoice.id, item_id, [
            {"entity_id": a.id, "share": "-60"},
            {"entity_id": b.id, "share": "-40"},
        ])

        stored = get_invoice(invoice.id, temp_db).get_line_item(item_id)
        assert stored.entity.kind == AttributionKind.SPLIT
        assert sum(s.share for s in stored.entity.shares) == stored.amount

    def test_unbalanced_split_writes_nothing(self, roster, matcher, make_invoice, temp_db):
        a = roster.register("Valentina")
        b = roster.register("Cosmo")
        invoice = make_invoice("stabling", [(100,)])
        item_id = invoice.line_items[0].id

        with pytest.raises(ValidationError):
            matcher.assign_split(invoice.id, item_id, [
                {"entity_id": a.id, "share": "60"},
                {"entity_id": b.id, "share": "30"},
            ])

        stored = get_invoice(invoice.id, temp_db)
        assert stored.get_line_item(item_id).entity is None
        assert stored.version == 0

    def test_assign_entity_settles_unmatched_record(self, roster, matcher, make_invoice, temp_db):
        horse = roster.register("Valentina")
        invoice = make_invoice("veterinary", [(10, "Mystery")])

        matcher.assign_entity(invoice.id, invoice.line_items[0].id, horse.id)

        stored = get_invoice(invoice.id, temp_db)
        assert stored.line_items[0].entity.entity_id == horse.id
        assert stored.unresolved_names() == []

    def test_assign_split_settles_unmatched_record(self, roster, matcher, make_invoice, temp_db):
        a = roster.register("Valentina")
        b = roster.register("Cosmo")
        invoice = make_invoice("veterinary", [(100, "Mystery")])

        matcher.assign_split(invoice.id, invoice.line_items[0].id, [
            {"entity_id": a.id, "share": "60"},
            {"entity_id": b.id, "share": "40"},
        ])

        stored = get_invoice(invoice.id, temp_db)
        assert stored.unresolved_names() == []
        record = stored.unmatched_names[0]
        assert record.status == UnmatchedStatus.RESOLVED_EXISTING
        assert record.entity_id is None
        assert stored.line_items[0].entity.entity_ids() == [a.id, b.id]
