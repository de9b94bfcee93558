"""Category Registry.

Read-side access to spend categories for the reclassifier: lookup by id,
by slug or key, and subcategory listing. The engine never creates or
deletes categories; seeding is an operator task (scripts/seed_registries.py).
"""

import sqlite3
from pathlib import Path
from typing import List, Optional

from category_registry.db import (
    get_all_categories,
    get_category_by_id,
    get_category_by_key,
    init_category_db,
    seed_default_categories,
)
from category_registry.models import Category
from core.config import ReconciliationConfig, get_config
from core.errors import NotFoundError


class CategoryRegistry:
    """Lookup operations on the category table."""

    def __init__(
        self,
        db_path: Optional[Path] = None,
        config: Optional[ReconciliationConfig] = None,
    ):
        self.config = config or get_config()
        self.db_path = Path(db_path) if db_path else self.config.db_path
        init_category_db(self.db_path)

    def get(self, category_id: int) -> Optional[Category]:
        return get_category_by_id(category_id, self.db_path)

    def get_by_slug(self, slug: str, conn: Optional[sqlite3.Connection] = None) -> Optional[Category]:
        return get_category_by_key(slug, self.db_path, conn=conn)

    def require(self, slug: str, conn: Optional[sqlite3.Connection] = None) -> Category:
        """Return an active category or raise NotFoundError."""
        category = self.get_by_slug(slug, conn=conn) if slug else None
        if category is None or not category.is_active:
            raise NotFoundError(f"Category '{slug}' not found", {"category": slug})
        return category

    def list(self, include_subcategories: bool = False) -> List[Category]:
        return get_all_categories(top_level_only=not include_subcategories, db_path=self.db_path)

    def subcategories(self, slug: str) -> List[Category]:
        parent = self.require(slug)
        return get_all_categories(parent_key=parent.key, db_path=self.db_path)

    def seed_defaults(self) -> dict:
        return seed_default_categories(self.db_path)
