"""Entity Matcher.

This module ties free-text entity names found on invoices to the roster:
1. During intake, names are matched automatically (exact, alias, then
   partial / fuzzy suggestions) and weak matches are left for review
2. Names that did not bind are recorded per invoice as unmatched names
3. A reviewer resolves each name to an existing entity or to a newly
   created one; every occurrence on the invoice is bound at once and the
   spelling is learned as an alias for future documents

Resolutions are explicit overrides: automatic matching never touches an
attribution a reviewer has resolved.
"""

import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from core.config import ReconciliationConfig, get_config
from core.errors import AlreadyResolvedError, NotFoundError, ValidationError
from core.observability import get_logger
from entity_matcher.models import (
    DEFAULT_MATCHING_CONFIG,
    EntityCandidate,
    EntityMatch,
    MatchConfidence,
    MatchingConfig,
    ResolutionResult,
)
from entity_matcher.normalize import (
    is_partial_match,
    levenshtein,
    max_edit_distance,
    normalize_name,
    split_words,
)
from models.canonical import (
    AttributionKind,
    EntityAttribution,
    EntityShare,
    Invoice,
    LineItem,
    UnmatchedName,
    UnmatchedStatus,
)
from roster_registry import RosterEntity, RosterRegistry
from storage import (
    InvoiceLockRegistry,
    commit_version,
    init_invoice_db,
    invoice_operation,
    require_pending_invoice,
    update_line_item,
    upsert_unmatched_name,
)

logger = get_logger(__name__)


# =============================================================================
# Automatic Matching
# =============================================================================

def match_entity_name(
    raw_name: str,
    roster: List[RosterEntity],
    aliases: Optional[Dict[str, str]] = None,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> EntityMatch:
    """Match one extracted name against roster entities.

    Order: exact normalized name, configured alias, learned alias, unique
    partial match, unique whole-word match, smallest edit distance within
    the length-dependent budget. The first rule that hits wins.

    Args:
        raw_name: Name as extracted
        roster: Entities eligible for matching (normally the active roster)
        aliases: Learned aliases, normalized alias -> entity id
        config: Matching configuration

    Returns:
        EntityMatch; ``is_auto_bound`` tells whether the match may be applied
        without review
    """
    cleaned = normalize_name(raw_name)
    now = datetime.utcnow()
    if not cleaned:
        return EntityMatch(
            raw_name=raw_name or "",
            normalized_name="",
            reasons=["Empty entity name"],
            matched_at=now,
        )

    by_id = {entity.id: entity for entity in roster}
    named = [(entity, normalize_name(entity.name)) for entity in roster]

    def _hit(entity: RosterEntity, confidence: MatchConfidence, reason: str,
             candidates: Optional[List[EntityCandidate]] = None) -> EntityMatch:
        return EntityMatch(
            raw_name=raw_name,
            normalized_name=cleaned,
            confidence=confidence,
            entity_id=entity.id,
            entity_name=entity.name,
            candidates=candidates or [],
            reasons=[reason],
            is_auto_bound=confidence in config.auto_bind_confidences,
            matched_at=now,
        )

    for entity, name in named:
        if name == cleaned:
            return _hit(entity, MatchConfidence.EXACT, f"Exact name match: '{entity.name}'")

    static_target = config.static_aliases.get(cleaned)
    if static_target:
        target = normalize_name(static_target)
        for entity, name in named:
            if name == target:
                return _hit(entity, MatchConfidence.ALIAS, f"Known alias of '{entity.name}'")

    learned = by_id.get((aliases or {}).get(cleaned, ""))
    if learned:
        return _hit(learned, MatchConfidence.ALIAS, f"Learned alias of '{learned.name}'")

    if config.enable_partial:
        partial = [entity for entity, name in named if is_partial_match(cleaned, name)]
        if len(partial) == 1:
            return _hit(partial[0], MatchConfidence.PARTIAL, f"Partial name match: '{partial[0].name}'")

        whole_word = [entity for entity, name in named if cleaned in split_words(name)]
        if len(whole_word) == 1:
            return _hit(whole_word[0], MatchConfidence.PARTIAL, f"Whole-word match: '{whole_word[0].name}'")

    if config.enable_fuzzy and named:
        scored = []
        for entity, name in named:
            distance = min(
                [levenshtein(cleaned, name)] + [levenshtein(cleaned, w) for w in split_words(name)]
            )
            scored.append(EntityCandidate(entity_id=entity.id, entity_name=entity.name, distance=distance))
        # Stable: ties keep roster order
        scored.sort(key=lambda c: c.distance)

        budget = max_edit_distance(cleaned)
        candidates = [c for c in scored if c.distance <= budget][:config.max_candidates]
        if candidates:
            best = candidates[0]
            return _hit(
                by_id[best.entity_id],
                MatchConfidence.FUZZY,
                f"Closest roster name '{best.entity_name}' (edit distance {best.distance})",
                candidates,
            )

    return EntityMatch(
        raw_name=raw_name,
        normalized_name=cleaned,
        confidence=MatchConfidence.NONE,
        reasons=["No roster entity matched"],
        matched_at=now,
    )


def _attribution_sources(invoice: Invoice) -> List[Tuple[Optional[LineItem], EntityAttribution]]:
    """Invoice-level attribution first, then line items in position order."""
    sources: List[Tuple[Optional[LineItem], EntityAttribution]] = []
    if invoice.entity is not None:
        sources.append((None, invoice.entity))
    for item in sorted(invoice.line_items, key=lambda i: i.position):
        if item.entity is not None:
            sources.append((item, item.entity))
    return sources


# =============================================================================
# Entity Matcher
# =============================================================================

class EntityMatcher:
    """Matches extracted entity names to the roster and applies reviewer resolutions.

    Example:
        matcher = EntityMatcher(db_path="reconciliation.db")

        for raw_name in matcher.extract_candidate_names(invoice):
            print(raw_name, matcher.match(raw_name).candidates)

        matcher.resolve_to_existing(invoice.id, "Valentna", horse.id)
        matcher.resolve_by_creating(invoice.id, "New Pony", "New Pony", owner="J. Smith")
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        config: Optional[ReconciliationConfig] = None,
        matching: MatchingConfig = DEFAULT_MATCHING_CONFIG,
        roster: Optional[RosterRegistry] = None,
        locks: Optional[InvoiceLockRegistry] = None,
    ):
        """Initialize the matcher.

        Args:
            db_path: Path to SQLite database (defaults to the configured one)
            config: Engine configuration
            matching: Automatic matching configuration
            roster: Roster registry (created on the same database if omitted)
            locks: Per-invoice lock registry (process-wide by default)
        """
        self.config = config or get_config()
        self.db_path = Path(db_path) if db_path else self.config.db_path
        self.matching = matching
        self.roster = roster or RosterRegistry(self.db_path, self.config)
        self.locks = locks
        init_invoice_db(self.db_path)

    # =========================================================================
    # Read-only projections
    # =========================================================================

    def match(self, raw_name: str, conn: Optional[sqlite3.Connection] = None) -> EntityMatch:
        """Match a name against the active roster and learned aliases."""
        return match_entity_name(
            raw_name,
            self.roster.list_active(conn=conn),
            self.roster.alias_map(conn=conn),
            self.matching,
        )

    def extract_candidate_names(self, invoice: Invoice) -> List[str]:
        """Raw names on the invoice still waiting for resolution.

        Ordered by first appearance (invoice-level attribution, then line
        items by position); spellings that normalize the same are reported
        once. Pure: same invoice data, same result.
        """
        names: List[str] = []
        seen = set()
        for _, attribution in _attribution_sources(invoice):
            if not attribution.is_unresolved or not attribution.raw_name:
                continue
            key = normalize_name(attribution.raw_name)
            if key and key not in seen:
                seen.add(key)
                names.append(attribution.raw_name)
        return names

    # =========================================================================
    # Intake
    # =========================================================================

    def auto_bind(self, invoice: Invoice, conn: Optional[sqlite3.Connection] = None) -> List[EntityMatch]:
        """Bind unresolved names on an in-memory invoice where matching is confident.

        Names that do not auto-bind get an UnmatchedName record (keyed by the
        first spelling seen), carrying the best candidate as a suggestion.
        Resolved and split attributions are left untouched.

        Returns:
            One EntityMatch per distinct name examined, in first-appearance order
        """
        roster = self.roster.list_active(conn=conn)
        aliases = self.roster.alias_map(conn=conn)
        existing = {normalize_name(u.raw_name): u for u in invoice.unmatched_names}

        matches: Dict[str, EntityMatch] = {}
        for item, attribution in _attribution_sources(invoice):
            if not attribution.is_unresolved:
                continue
            key = normalize_name(attribution.raw_name or "")
            if not key:
                continue

            if key not in matches:
                matches[key] = match_entity_name(attribution.raw_name, roster, aliases, self.matching)
            result = matches[key]

            if result.is_auto_bound and key not in existing:
                bound = EntityAttribution.resolved(result.entity_id)
                if item is None:
                    invoice.entity = bound
                else:
                    item.entity = bound
                continue

            record = existing.get(key)
            if record is None:
                record = UnmatchedName(
                    invoice_id=invoice.id,
                    raw_name=attribution.raw_name,
                    suggested_entity_id=result.entity_id,
                    created_at=datetime.utcnow(),
                )
                existing[key] = record
                invoice.unmatched_names.append(record)
            # Later spellings point at the recorded key
            attribution.raw_name = record.raw_name

        return list(matches.values())

    # =========================================================================
    # Resolution
    # =========================================================================

    def resolve_to_existing(
        self,
        invoice_id: str,
        raw_name: str,
        entity_id: str,
        actor: str = "reviewer",
    ) -> ResolutionResult:
        """Bind every occurrence of ``raw_name`` on the invoice to ``entity_id``.

        Raises:
            NotFoundError: invoice unknown, entity unknown or retired
            InvalidStateError: invoice is no longer pending
            AlreadyResolvedError: no outstanding occurrence of ``raw_name``
        """
        with invoice_operation(
            invoice_id, "resolve_to_existing", self.db_path, logger,
            timeout=self.config.busy_timeout_seconds, locks=self.locks,
            raw_name=raw_name, actor=actor,
        ) as conn:
            invoice = require_pending_invoice(conn, invoice_id)
            entity = self.roster.require_active(entity_id, conn=conn)
            result = self._bind(conn, invoice, raw_name, entity.id, UnmatchedStatus.RESOLVED_EXISTING, actor)

        return result

    def resolve_by_creating(
        self,
        invoice_id: str,
        raw_name: str,
        new_name: str,
        owner: Optional[str] = None,
        actor: str = "reviewer",
    ) -> ResolutionResult:
        """Register a new active entity named ``new_name`` and bind ``raw_name`` to it.

        Creation and binding share one transaction; when binding fails no
        entity is left behind.

        Raises:
            ValidationError: ``new_name`` trims to fewer than 2 characters
            NotFoundError: invoice unknown
            InvalidStateError: invoice is no longer pending
            AlreadyResolvedError: no outstanding occurrence of ``raw_name``
        """
        with invoice_operation(
            invoice_id, "resolve_by_creating", self.db_path, logger,
            timeout=self.config.busy_timeout_seconds, locks=self.locks,
            raw_name=raw_name, actor=actor,
        ) as conn:
            clean = (new_name or "").strip()
            if len(clean) < self.config.min_entity_name_length:
                raise ValidationError(
                    f"New entity name must be at least {self.config.min_entity_name_length} characters",
                    {"new_name": new_name},
                )
            invoice = require_pending_invoice(conn, invoice_id)
            self._require_outstanding(invoice, raw_name)

            entity = self.roster.register(clean, owner=owner, conn=conn)
            result = self._bind(conn, invoice, raw_name, entity.id, UnmatchedStatus.RESOLVED_CREATED, actor)
            result.created_entity = entity

        return result

    # =========================================================================
    # Attribution editing
    # =========================================================================

    def assign_entity(self, invoice_id: str, line_item_id: str, entity_id: str) -> LineItem:
        """Attribute one line item to a single active entity."""
        with invoice_operation(
            invoice_id, "assign_entity", self.db_path, logger,
            timeout=self.config.busy_timeout_seconds, locks=self.locks,
            line_item_id=line_item_id,
        ) as conn:
            invoice = require_pending_invoice(conn, invoice_id)
            item = self._require_item(invoice, line_item_id)
            self.roster.require_active(entity_id, conn=conn)
            self._reattribute(conn, invoice, item, EntityAttribution.resolved(entity_id))

        return item

    def assign_split(self, invoice_id: str, line_item_id: str, shares: Iterable[EntityShare]) -> LineItem:
        """Split one line item's cost across several active entities.

        Raises:
            ValidationError: fewer than two entities, duplicate entity, a
                zero share or one whose sign differs from the item amount, or
                shares not summing to the item amount within the configured
                tolerance (nothing is written)
            NotFoundError: invoice, line item or an entity is unknown or retired
        """
        shares = [s if isinstance(s, EntityShare) else EntityShare.model_validate(s) for s in shares]
        with invoice_operation(
            invoice_id, "assign_split", self.db_path, logger,
            timeout=self.config.busy_timeout_seconds, locks=self.locks,
            line_item_id=line_item_id,
        ) as conn:
            invoice = require_pending_invoice(conn, invoice_id)
            item = self._require_item(invoice, line_item_id)
            attribution = EntityAttribution.split(shares, item.amount, self.config.share_tolerance)
            for share in shares:
                self.roster.require_active(share.entity_id, conn=conn)
            self._reattribute(conn, invoice, item, attribution)

        return item

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _require_item(invoice: Invoice, line_item_id: str) -> LineItem:
        item = invoice.get_line_item(line_item_id)
        if item is None:
            raise NotFoundError(
                f"Line item {line_item_id} not found on invoice {invoice.id}",
                {"line_item_id": line_item_id, "invoice_id": invoice.id},
            )
        return item

    @staticmethod
    def _outstanding(invoice: Invoice, raw_name: str) -> Tuple[bool, List[LineItem], List[UnmatchedName]]:
        """Unresolved occurrences of a name: (invoice level, line items, records)."""
        key = normalize_name(raw_name)

        def _is_open(attribution: Optional[EntityAttribution]) -> bool:
            return (
                attribution is not None
                and attribution.is_unresolved
                and normalize_name(attribution.raw_name or "") == key
            )

        invoice_level = _is_open(invoice.entity)
        items = [item for item in invoice.line_items if _is_open(item.entity)]
        records = [
            u for u in invoice.unmatched_names
            if normalize_name(u.raw_name) == key and u.status == UnmatchedStatus.UNRESOLVED
        ]
        return invoice_level, items, records

    def _require_outstanding(self, invoice: Invoice, raw_name: str):
        invoice_level, items, records = self._outstanding(invoice, raw_name)
        if not (invoice_level or items or records):
            raise AlreadyResolvedError(
                f"'{raw_name}' has no unresolved occurrences on invoice {invoice.id}",
                {"invoice_id": invoice.id, "raw_name": raw_name},
            )
        return invoice_level, items, records

    def _bind(
        self,
        conn: sqlite3.Connection,
        invoice: Invoice,
        raw_name: str,
        entity_id: str,
        status: UnmatchedStatus,
        actor: str,
    ) -> ResolutionResult:
        invoice_level, items, records = self._require_outstanding(invoice, raw_name)
        bound = EntityAttribution.resolved(entity_id)

        if invoice_level:
            invoice.entity = bound
        for item in items:
            item.entity = bound
            update_line_item(conn, item)

        now = datetime.utcnow()
        if not records:
            records = [UnmatchedName(invoice_id=invoice.id, raw_name=raw_name, created_at=now)]
        for record in records:
            record.status = status
            record.entity_id = entity_id
            record.resolved_at = now
            upsert_unmatched_name(conn, record)

        self.roster.add_alias(raw_name, entity_id, created_by=actor, conn=conn)
        commit_version(conn, invoice)

        return ResolutionResult(
            invoice_id=invoice.id,
            raw_name=raw_name,
            entity_id=entity_id,
            status=status,
            line_item_ids=[item.id for item in items],
            invoice_level_bound=invoice_level,
            invoice_version=invoice.version,
        )

    def _reattribute(
        self,
        conn: sqlite3.Connection,
        invoice: Invoice,
        item: LineItem,
        attribution: EntityAttribution,
    ) -> None:
        """Replace one item's attribution and settle its unmatched record.

        When this was the last unresolved occurrence of a name, the record is
        marked resolved. A single-entity attribution is stored on the record;
        a split names several entities, so the record's ``entity_id`` stays
        unset and the shares on the line item are authoritative.
        """
        previous = item.entity
        item.entity = attribution
        update_line_item(conn, item)

        # Settle the unmatched record once its last occurrence is attributed
        if previous is not None and previous.kind == AttributionKind.UNRESOLVED and previous.raw_name:
            invoice_level, items, records = self._outstanding(invoice, previous.raw_name)
            if not invoice_level and not items:
                now = datetime.utcnow()
                for record in records:
                    record.status = UnmatchedStatus.RESOLVED_EXISTING
                    record.entity_id = attribution.entity_id if attribution.kind == AttributionKind.RESOLVED else None
                    record.resolved_at = now
                    upsert_unmatched_name(conn, record)

        commit_version(conn, invoice)
