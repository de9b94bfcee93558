"""Roster Registry - canonical list of cost-bearing entities (horses).

Entities are looked up by id or by name (case- and whitespace-insensitive),
retired with an effective date and reactivated on demand. Reviewer
resolutions are remembered as aliases for future automatic matching.

Usage:
    from roster_registry import RosterRegistry

    roster = RosterRegistry(db_path="reconciliation.db")
    horse = roster.register("Valentina", owner="Wellington Stables")
    roster.retire(horse.id)
"""

from roster_registry.models import EntityAlias, RosterEntity, RosterStatus
from roster_registry.normalize import normalize_name
from roster_registry.registry import RosterRegistry
from roster_registry.db import (
    init_roster_db,
    seed_sample_data,
    get_roster_entity,
    get_all_roster_entities,
    find_roster_entities_by_name,
    insert_roster_entity,
)

__all__ = [
    # Models
    "RosterEntity",
    "RosterStatus",
    "EntityAlias",
    # Registry
    "RosterRegistry",
    "normalize_name",
    # Database
    "init_roster_db",
    "seed_sample_data",
    "get_roster_entity",
    "get_all_roster_entities",
    "find_roster_entities_by_name",
    "insert_roster_entity",
]
