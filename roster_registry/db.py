"""Roster Registry Database Operations.

This module handles all database operations for the roster:
- Schema initialization (roster_entities, entity_aliases)
- CRUD operations for entities and aliases
- Sample data seeding for local runs

Every function accepts an optional ``conn`` so it can take part in a caller's
transaction (an entity created while resolving a name must roll back with the
binding).
"""

import sqlite3
from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Optional

from core.config import DEFAULT_DB_PATH
from roster_registry.models import EntityAlias, RosterEntity, RosterStatus
from roster_registry.normalize import normalize_name
from storage.sqlite import connect, use_connection


def init_roster_db(db_path: Path = DEFAULT_DB_PATH) -> None:
    """Initialize roster tables.

    Creates:
    - roster_entities: canonical entities with status and retirement date
    - entity_aliases: learned raw-name spellings keyed by normalized alias

    Args:
        db_path: Path to SQLite database file
    """
    with connect(db_path) as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS roster_entities (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                name_normalized TEXT NOT NULL,
                owner TEXT,
                status TEXT NOT NULL DEFAULT 'active',
                retired_on TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_roster_entities_name
            ON roster_entities(name_normalized)
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_roster_entities_status
            ON roster_entities(status)
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS entity_aliases (
                alias_normalized TEXT PRIMARY KEY,
                alias_original TEXT,
                entity_id TEXT NOT NULL REFERENCES roster_entities(id),
                created_by TEXT NOT NULL DEFAULT 'system',
                created_at TEXT NOT NULL
            )
        """)


# =============================================================================
# CRUD Operations: Roster Entity
# =============================================================================

def insert_roster_entity(
    entity: RosterEntity,
    db_path: Path = DEFAULT_DB_PATH,
    conn: Optional[sqlite3.Connection] = None,
) -> RosterEntity:
    """Add a new roster entity.

    Args:
        entity: RosterEntity to add
        db_path: Path to database
        conn: Open connection to write through (caller commits)

    Returns:
        RosterEntity with timestamps populated
    """
    now = datetime.utcnow().isoformat()
    with use_connection(db_path, conn) as c:
        c.execute("""
            INSERT INTO roster_entities
            (id, name, name_normalized, owner, status, retired_on, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            entity.id,
            entity.name,
            normalize_name(entity.name),
            entity.owner,
            entity.status.value,
            entity.retired_on.isoformat() if entity.retired_on else None,
            now,
            now,
        ))
    entity.created_at = datetime.fromisoformat(now)
    entity.updated_at = datetime.fromisoformat(now)
    return entity


def get_roster_entity(
    entity_id: str,
    db_path: Path = DEFAULT_DB_PATH,
    conn: Optional[sqlite3.Connection] = None,
) -> Optional[RosterEntity]:
    """Get a roster entity by id, or None."""
    with use_connection(db_path, conn) as c:
        row = c.execute(
            "SELECT * FROM roster_entities WHERE id = ?", (entity_id,)
        ).fetchone()
        return _row_to_roster_entity(row) if row else None


def get_all_roster_entities(
    status: Optional[RosterStatus] = None,
    db_path: Path = DEFAULT_DB_PATH,
    conn: Optional[sqlite3.Connection] = None,
) -> List[RosterEntity]:
    """List roster entities ordered by name.

    Args:
        status: Only return entities with this status (None = all)
        db_path: Path to database
        conn: Optional open connection
    """
    with use_connection(db_path, conn) as c:
        if status is not None:
            rows = c.execute("""
                SELECT * FROM roster_entities WHERE status = ?
                ORDER BY name_normalized, created_at
            """, (status.value,))
        else:
            rows = c.execute("""
                SELECT * FROM roster_entities ORDER BY name_normalized, created_at
            """)
        return [_row_to_roster_entity(r) for r in rows]


def find_roster_entities_by_name(
    name: str,
    status: Optional[RosterStatus] = None,
    db_path: Path = DEFAULT_DB_PATH,
    conn: Optional[sqlite3.Connection] = None,
) -> List[RosterEntity]:
    """Find entities whose normalized name equals the normalized ``name``."""
    query = "SELECT * FROM roster_entities WHERE name_normalized = ?"
    params: list = [normalize_name(name)]
    if status is not None:
        query += " AND status = ?"
        params.append(status.value)
    query += " ORDER BY created_at"

    with use_connection(db_path, conn) as c:
        return [_row_to_roster_entity(r) for r in c.execute(query, params)]


def update_roster_status(
    entity_id: str,
    status: RosterStatus,
    retired_on: Optional[date] = None,
    db_path: Path = DEFAULT_DB_PATH,
    conn: Optional[sqlite3.Connection] = None,
) -> bool:
    """Set status (and retirement date). Returns False if the entity does not exist."""
    with use_connection(db_path, conn) as c:
        cursor = c.execute("""
            UPDATE roster_entities
            SET status = ?, retired_on = ?, updated_at = ?
            WHERE id = ?
        """, (
            status.value,
            retired_on.isoformat() if retired_on else None,
            datetime.utcnow().isoformat(),
            entity_id,
        ))
        return cursor.rowcount == 1


def _row_to_roster_entity(row: sqlite3.Row) -> RosterEntity:
    return RosterEntity(
        id=row["id"],
        name=row["name"],
        owner=row["owner"],
        status=RosterStatus(row["status"]),
        retired_on=date.fromisoformat(row["retired_on"]) if row["retired_on"] else None,
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


# =============================================================================
# CRUD Operations: Entity Alias
# =============================================================================

def upsert_entity_alias(
    alias: EntityAlias,
    db_path: Path = DEFAULT_DB_PATH,
    conn: Optional[sqlite3.Connection] = None,
) -> EntityAlias:
    """Create or repoint an alias. The latest reviewer decision wins."""
    now = datetime.utcnow().isoformat()
    with use_connection(db_path, conn) as c:
        c.execute("""
            INSERT INTO entity_aliases
            (alias_normalized, alias_original, entity_id, created_by, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(alias_normalized) DO UPDATE SET
                alias_original = excluded.alias_original,
                entity_id = excluded.entity_id,
                created_by = excluded.created_by
        """, (
            alias.alias_normalized,
            alias.alias_original,
            alias.entity_id,
            alias.created_by,
            now,
        ))
    alias.created_at = datetime.fromisoformat(now)
    return alias


def get_entity_alias(
    alias_normalized: str,
    db_path: Path = DEFAULT_DB_PATH,
    conn: Optional[sqlite3.Connection] = None,
) -> Optional[EntityAlias]:
    with use_connection(db_path, conn) as c:
        row = c.execute(
            "SELECT * FROM entity_aliases WHERE alias_normalized = ?", (alias_normalized,)
        ).fetchone()
        return _row_to_entity_alias(row) if row else None


def get_alias_map(
    db_path: Path = DEFAULT_DB_PATH,
    conn: Optional[sqlite3.Connection] = None,
) -> Dict[str, str]:
    """All aliases as {normalized alias: entity id}."""
    with use_connection(db_path, conn) as c:
        return {
            r["alias_normalized"]: r["entity_id"]
            for r in c.execute("SELECT alias_normalized, entity_id FROM entity_aliases")
        }


def _row_to_entity_alias(row: sqlite3.Row) -> EntityAlias:
    return EntityAlias(
        alias_normalized=row["alias_normalized"],
        alias_original=row["alias_original"],
        entity_id=row["entity_id"],
        created_by=row["created_by"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


# =============================================================================
# Sample Data
# =============================================================================

SAMPLE_ROSTER = [
    # (name, owner)
    ("Valentina", "Wellington Stables"),
    ("Duke of Earl", "Wellington Stables"),
    ("Cosmo", None),
    ("Bella Luna", "R. Alvarez"),
]


def seed_sample_data(db_path: Path = DEFAULT_DB_PATH) -> dict:
    """Seed a few roster entities for local runs (skips names already present).

    Returns:
        Dict with counts of created and skipped entities
    """
    init_roster_db(db_path)
    created = 0
    skipped = 0
    with connect(db_path) as conn:
        for name, owner in SAMPLE_ROSTER:
            if find_roster_entities_by_name(name, conn=conn):
                skipped += 1
                continue
            insert_roster_entity(RosterEntity(name=name, owner=owner), conn=conn)
            created += 1
    return {"created": created, "skipped": skipped}
