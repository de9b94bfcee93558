"""Category Registry Models.

Spend categories and their subcategories. Line items refer to categories by
normalized key, so "feed-bedding", "Feed_Bedding" and " feed-bedding " all
name the same category.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


def normalize_category_key(value: Optional[str]) -> Optional[str]:
    """Trim, lowercase and use underscores: "Feed-Bedding" -> "feed_bedding"."""
    if value is None:
        return None
    key = value.strip().lower().replace("-", "_")
    return key or None


@dataclass
class Category:
    """
    A spend category (or subcategory when parent_key is set).

    Attributes:
        slug: URL-style identifier as registered (e.g. "feed-bedding")
        name: Display name
        key: Normalized slug used on invoices and line items
        parent_key: Key of the parent category for subcategories
        id: Database ID
    """
    slug: str
    name: str
    description: Optional[str] = None
    parent_key: Optional[str] = None
    is_active: bool = True
    key: str = ""
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.slug = self.slug.strip().lower()
        self.key = normalize_category_key(self.slug)
        self.parent_key = normalize_category_key(self.parent_key)

    @property
    def is_subcategory(self) -> bool:
        return self.parent_key is not None
