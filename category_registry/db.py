"""Category Registry Database Operations.

This module handles all database operations for spend categories:
- Schema initialization
- CRUD operations for categories and subcategories
- Default category seeding
"""

import sqlite3
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from category_registry.models import Category, normalize_category_key
from core.config import DEFAULT_DB_PATH
from storage.sqlite import connect, use_connection


def init_category_db(db_path: Path = DEFAULT_DB_PATH) -> None:
    """Initialize the categories table.

    Args:
        db_path: Path to SQLite database file
    """
    with connect(db_path) as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS categories (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                slug TEXT NOT NULL,
                key TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL,
                description TEXT,
                parent_key TEXT,
                is_active INTEGER DEFAULT 1,
                created_at TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_categories_parent
            ON categories(parent_key)
        """)


def add_category(
    category: Category,
    db_path: Path = DEFAULT_DB_PATH,
    conn: Optional[sqlite3.Connection] = None,
) -> Category:
    """Add a category.

    Raises:
        sqlite3.IntegrityError: If a category with the same key exists
    """
    now = datetime.utcnow().isoformat()
    with use_connection(db_path, conn) as c:
        cursor = c.execute("""
            INSERT INTO categories (slug, key, name, description, parent_key, is_active, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            category.slug,
            category.key,
            category.name,
            category.description,
            category.parent_key,
            1 if category.is_active else 0,
            now,
        ))
        category.id = cursor.lastrowid
    category.created_at = datetime.fromisoformat(now)
    return category


def get_category_by_id(
    category_id: int,
    db_path: Path = DEFAULT_DB_PATH,
    conn: Optional[sqlite3.Connection] = None,
) -> Optional[Category]:
    with use_connection(db_path, conn) as c:
        row = c.execute("SELECT * FROM categories WHERE id = ?", (category_id,)).fetchone()
        return _row_to_category(row) if row else None


def get_category_by_key(
    slug_or_key: str,
    db_path: Path = DEFAULT_DB_PATH,
    conn: Optional[sqlite3.Connection] = None,
) -> Optional[Category]:
    """Look up by slug or key; both normalize to the same key."""
    key = normalize_category_key(slug_or_key)
    if key is None:
        return None
    with use_connection(db_path, conn) as c:
        row = c.execute("SELECT * FROM categories WHERE key = ?", (key,)).fetchone()
        return _row_to_category(row) if row else None


def get_all_categories(
    parent_key: Optional[str] = None,
    top_level_only: bool = False,
    active_only: bool = True,
    db_path: Path = DEFAULT_DB_PATH,
    conn: Optional[sqlite3.Connection] = None,
) -> List[Category]:
    """List categories in registration order.

    Args:
        parent_key: Only subcategories of this category
        top_level_only: Only categories without a parent
        active_only: Skip deactivated categories
    """
    query = "SELECT * FROM categories WHERE 1=1"
    params: list = []
    if parent_key is not None:
        query += " AND parent_key = ?"
        params.append(normalize_category_key(parent_key))
    elif top_level_only:
        query += " AND parent_key IS NULL"
    if active_only:
        query += " AND is_active = 1"
    query += " ORDER BY id"

    with use_connection(db_path, conn) as c:
        return [_row_to_category(r) for r in c.execute(query, params)]


def _row_to_category(row: sqlite3.Row) -> Category:
    return Category(
        id=row["id"],
        slug=row["slug"],
        name=row["name"],
        description=row["description"],
        parent_key=row["parent_key"],
        is_active=bool(row["is_active"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


# =============================================================================
# Default Categories
# =============================================================================

DEFAULT_CATEGORIES = [
    # (slug, name)
    ("veterinary", "Veterinary"),
    ("feed-bedding", "Feed & Bedding"),
    ("stabling", "Stabling"),
    ("farrier", "Farrier"),
    ("bodywork", "Bodywork"),
    ("therapeutic-care", "Therapeutic Care"),
    ("travel", "Travel"),
    ("housing", "Housing"),
    ("riding-training", "Riding & Training"),
    ("commissions", "Commissions"),
    ("horse-purchases", "Horse Purchases"),
    ("supplies", "Supplies"),
    ("marketing", "Marketing"),
    ("dues-registrations", "Dues & Registrations"),
    ("admin", "Admin"),
    ("horse-transport", "Horse Transport"),
    ("show-expenses", "Show Expenses"),
]

DEFAULT_SUBCATEGORIES = [
    # (parent slug, slug, name)
    ("travel", "flights", "Flights"),
    ("travel", "trains", "Trains"),
    ("travel", "rental-car", "Rental Car"),
    ("travel", "gas", "Gas"),
    ("travel", "meals", "Meals"),
    ("travel", "hotels", "Hotels"),
    ("horse-transport", "ground-transport", "Ground Transport"),
    ("horse-transport", "air-transport", "Air Transport"),
]


def seed_default_categories(db_path: Path = DEFAULT_DB_PATH) -> dict:
    """Insert the default categories and subcategories that are missing.

    Returns:
        Dict with counts of created and skipped rows
    """
    init_category_db(db_path)
    created = 0
    skipped = 0
    with connect(db_path) as conn:
        rows = [(slug, name, None) for slug, name in DEFAULT_CATEGORIES]
        rows += [(slug, name, parent) for parent, slug, name in DEFAULT_SUBCATEGORIES]
        for slug, name, parent in rows:
            if get_category_by_key(slug, conn=conn):
                skipped += 1
                continue
            add_category(Category(slug=slug, name=name, parent_key=parent), conn=conn)
            created += 1
    return {"created": created, "skipped": skipped}
