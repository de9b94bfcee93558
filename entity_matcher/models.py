"""Entity Matcher Data Models.

This module defines the Pydantic models for entity name matching:
- MatchConfidence: how a raw name was tied to the roster
- EntityCandidate: a roster entity considered for a raw name
- EntityMatch: result of automatic matching
- ResolutionResult: outcome of a reviewer's resolution
- MatchingConfig: which confidences auto-bind, fuzzy matching switches
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from models.canonical import UnmatchedStatus
from roster_registry.models import RosterEntity


class MatchConfidence(str, Enum):
    """How an extracted name was matched to a roster entity."""
    EXACT = "exact"        # Normalized name equality
    ALIAS = "alias"        # Configured or learned alias
    PARTIAL = "partial"    # Unique substring / whole-word overlap
    FUZZY = "fuzzy"        # Within the edit-distance budget
    NONE = "none"          # No match


class EntityCandidate(BaseModel):
    """A roster entity considered for an extracted name."""
    entity_id: str
    entity_name: str
    distance: int = Field(default=0, description="Edit distance to the closest name or word")


class EntityMatch(BaseModel):
    """Result of matching one extracted name against the roster.

    Only confidences listed in MatchingConfig.auto_bind_confidences bind
    automatically; anything weaker is kept as a suggestion for the reviewer.
    """
    raw_name: str = Field(..., description="Name as extracted")
    normalized_name: str = Field(..., description="Normalized name used for matching")
    confidence: MatchConfidence = Field(default=MatchConfidence.NONE)
    entity_id: Optional[str] = None
    entity_name: Optional[str] = None
    candidates: List[EntityCandidate] = Field(default_factory=list)
    reasons: List[str] = Field(default_factory=list)
    is_auto_bound: bool = Field(default=False)
    matched_at: Optional[datetime] = None


class ResolutionResult(BaseModel):
    """Outcome of resolve_to_existing / resolve_by_creating."""
    invoice_id: str
    raw_name: str
    entity_id: str
    status: UnmatchedStatus
    line_item_ids: List[str] = Field(default_factory=list, description="Line items bound")
    invoice_level_bound: bool = Field(default=False)
    created_entity: Optional[RosterEntity] = None
    invoice_version: int = 0


class MatchingConfig(BaseModel):
    """Configuration for automatic name matching during intake."""

    auto_bind_confidences: List[MatchConfidence] = Field(
        default_factory=lambda: [MatchConfidence.EXACT, MatchConfidence.ALIAS],
        description="Confidences that bind without review",
    )
    enable_partial: bool = Field(default=True, description="Try substring / whole-word matches")
    enable_fuzzy: bool = Field(default=True, description="Try edit-distance matches")
    max_candidates: int = Field(default=3, description="Max candidates to return")

    # Known nicknames, normalized alias -> registered entity name
    static_aliases: Dict[str, str] = Field(default_factory=dict)


# Default matching config
DEFAULT_MATCHING_CONFIG = MatchingConfig()
