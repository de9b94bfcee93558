"""Roster Registry.

The canonical list of cost-bearing entities. Entities are registered
explicitly or created while resolving an unmatched name, retired by marking
them past with an effective date, and may be reactivated later. Retired
entities stay in the roster so historical attributions keep pointing at them.
"""

import sqlite3
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional

from core.config import ReconciliationConfig, get_config
from core.errors import NotFoundError, ValidationError
from core.observability import get_logger, with_correlation
from roster_registry.db import (
    find_roster_entities_by_name,
    get_alias_map,
    get_all_roster_entities,
    get_entity_alias,
    get_roster_entity,
    init_roster_db,
    insert_roster_entity,
    update_roster_status,
    upsert_entity_alias,
)
from roster_registry.models import EntityAlias, RosterEntity, RosterStatus
from roster_registry.normalize import normalize_name

logger = get_logger(__name__)


class RosterRegistry:
    """Lookup and lifecycle operations on roster entities."""

    def __init__(
        self,
        db_path: Optional[Path] = None,
        config: Optional[ReconciliationConfig] = None,
    ):
        self.config = config or get_config()
        self.db_path = Path(db_path) if db_path else self.config.db_path
        init_roster_db(self.db_path)

    # =========================================================================
    # Lookup
    # =========================================================================

    def get(self, entity_id: str, conn: Optional[sqlite3.Connection] = None) -> Optional[RosterEntity]:
        return get_roster_entity(entity_id, self.db_path, conn=conn)

    def require_active(self, entity_id: str, conn: Optional[sqlite3.Connection] = None) -> RosterEntity:
        """Return the entity if it exists and is active.

        Raises:
            NotFoundError: unknown id, or the entity is retired (reactivate first)
        """
        entity = self.get(entity_id, conn=conn)
        if entity is None:
            raise NotFoundError(f"Roster entity {entity_id} not found", {"entity_id": entity_id})
        if not entity.is_active:
            raise NotFoundError(
                f"Roster entity {entity.name} is retired; reactivate it first",
                {"entity_id": entity_id, "status": entity.status.value},
            )
        return entity

    def find_by_name(self, name: str, include_past: bool = False) -> Optional[RosterEntity]:
        """First entity whose name matches case- and whitespace-insensitively."""
        status = None if include_past else RosterStatus.ACTIVE
        matches = find_roster_entities_by_name(name, status=status, db_path=self.db_path)
        return matches[0] if matches else None

    def list(
        self,
        status: Optional[RosterStatus] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> List[RosterEntity]:
        return get_all_roster_entities(status=status, db_path=self.db_path, conn=conn)

    def list_active(self, conn: Optional[sqlite3.Connection] = None) -> List[RosterEntity]:
        return self.list(RosterStatus.ACTIVE, conn=conn)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def register(
        self,
        name: str,
        owner: Optional[str] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> RosterEntity:
        """Create a new active entity.

        Raises:
            ValidationError: if the name trims to fewer than the minimum length
        """
        clean = (name or "").strip()
        if len(clean) < self.config.min_entity_name_length:
            raise ValidationError(
                f"Entity name must be at least {self.config.min_entity_name_length} characters",
                {"name": name},
            )

        owner = owner.strip() if owner and owner.strip() else None
        entity = insert_roster_entity(
            RosterEntity(name=clean, owner=owner),
            self.db_path,
            conn=conn,
        )
        logger.info(
            f"Registered roster entity: {entity.name}",
            extra_fields={"entity_id": entity.id},
        )
        return entity

    def retire(self, entity_id: str, effective_date: Optional[date] = None) -> RosterEntity:
        """Mark an entity past as of ``effective_date`` (default today)."""
        entity = self.get(entity_id)
        if entity is None:
            raise NotFoundError(f"Roster entity {entity_id} not found", {"entity_id": entity_id})

        retired_on = effective_date or date.today()
        update_roster_status(entity_id, RosterStatus.PAST, retired_on, self.db_path)
        with with_correlation(operation="retire"):
            logger.info(
                f"Retired roster entity: {entity.name}",
                extra_fields={"entity_id": entity_id, "retired_on": retired_on.isoformat()},
            )
        return self.get(entity_id)

    def reactivate(self, entity_id: str) -> RosterEntity:
        """Return a past entity to active status."""
        entity = self.get(entity_id)
        if entity is None:
            raise NotFoundError(f"Roster entity {entity_id} not found", {"entity_id": entity_id})

        update_roster_status(entity_id, RosterStatus.ACTIVE, None, self.db_path)
        with with_correlation(operation="reactivate"):
            logger.info(
                f"Reactivated roster entity: {entity.name}",
                extra_fields={"entity_id": entity_id},
            )
        return self.get(entity_id)

    # =========================================================================
    # Aliases
    # =========================================================================

    def add_alias(
        self,
        raw_name: str,
        entity_id: str,
        created_by: str = "system",
        conn: Optional[sqlite3.Connection] = None,
    ) -> EntityAlias:
        """Remember that ``raw_name`` refers to ``entity_id``."""
        alias = EntityAlias(
            alias_normalized=normalize_name(raw_name),
            alias_original=raw_name,
            entity_id=entity_id,
            created_by=created_by,
        )
        return upsert_entity_alias(alias, self.db_path, conn=conn)

    def lookup_alias(self, raw_name: str) -> Optional[EntityAlias]:
        return get_entity_alias(normalize_name(raw_name), self.db_path)

    def alias_map(self, conn: Optional[sqlite3.Connection] = None) -> Dict[str, str]:
        return get_alias_map(self.db_path, conn=conn)
