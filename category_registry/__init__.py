"""Category Registry - canonical spend categories and subcategories.

Usage:
    from category_registry import CategoryRegistry

    categories = CategoryRegistry(db_path="reconciliation.db")
    categories.seed_defaults()
    stabling = categories.require("stabling")
    travel_kinds = categories.subcategories("travel")
"""

from category_registry.models import Category, normalize_category_key
from category_registry.registry import CategoryRegistry
from category_registry.db import (
    init_category_db,
    add_category,
    get_category_by_id,
    get_category_by_key,
    get_all_categories,
    seed_default_categories,
    DEFAULT_CATEGORIES,
    DEFAULT_SUBCATEGORIES,
)

__all__ = [
    # Models
    "Category",
    "normalize_category_key",
    # Registry
    "CategoryRegistry",
    # Database
    "init_category_db",
    "add_category",
    "get_category_by_id",
    "get_category_by_key",
    "get_all_categories",
    "seed_default_categories",
    "DEFAULT_CATEGORIES",
    "DEFAULT_SUBCATEGORIES",
]
