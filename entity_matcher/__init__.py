"""Entity Matcher - ties extracted entity names to the roster.

This package matches free-text names found on invoices against the roster of
cost-bearing entities, records names that fail to match, and applies reviewer
resolutions (to an existing entity or a newly created one).

Key Features:
- Case- and whitespace-insensitive exact matching
- Learned aliases: every resolution binds the same spelling automatically next time
- Partial and edit-distance candidates offered as suggestions, never auto-applied
- Split attribution of one line item across several entities

Usage:
    from entity_matcher import EntityMatcher

    matcher = EntityMatcher(db_path="reconciliation.db")
    for raw_name in matcher.extract_candidate_names(invoice):
        match = matcher.match(raw_name)
        if match.entity_id:
            matcher.resolve_to_existing(invoice.id, raw_name, match.entity_id)
"""

from entity_matcher.models import (
    MatchConfidence,
    EntityCandidate,
    EntityMatch,
    ResolutionResult,
    MatchingConfig,
    DEFAULT_MATCHING_CONFIG,
)
from entity_matcher.matcher import EntityMatcher, match_entity_name
from entity_matcher.normalize import (
    normalize_name,
    levenshtein,
    max_edit_distance,
)

__all__ = [
    # Models
    "MatchConfidence",
    "EntityCandidate",
    "EntityMatch",
    "ResolutionResult",
    "MatchingConfig",
    "DEFAULT_MATCHING_CONFIG",
    # Matcher
    "EntityMatcher",
    "match_entity_name",
    # Normalization
    "normalize_name",
    "levenshtein",
    "max_edit_distance",
]
