"""Roster Registry Data Models.

This module defines the Pydantic models for the roster of cost-bearing
entities (horses):
- RosterStatus: active or past (retired)
- RosterEntity: a canonical entity invoice costs can be attributed to
- EntityAlias: a learned raw-name spelling that maps to an entity
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from models.canonical import new_id


class RosterStatus(str, Enum):
    """Lifecycle status of a roster entity."""
    ACTIVE = "active"
    PAST = "past"      # Retired/sold; not a valid resolution target


class RosterEntity(BaseModel):
    """A canonical cost-bearing entity.

    Attributes:
        id: Stable identifier referenced by line-item attributions
        name: Display name as registered
        owner: Optional owner or free-form metadata
        status: active or past
        retired_on: Effective date of retirement (past entities only)
    """
    id: str = Field(default_factory=new_id)
    name: str = Field(..., description="Registered name")
    owner: Optional[str] = Field(default=None, description="Owner or other metadata")
    status: RosterStatus = Field(default=RosterStatus.ACTIVE)
    retired_on: Optional[date] = Field(default=None, description="Effective retirement date")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @property
    def is_active(self) -> bool:
        return self.status == RosterStatus.ACTIVE


class EntityAlias(BaseModel):
    """A raw name, as seen on documents, bound to a roster entity.

    Aliases are learned whenever a reviewer resolves an unmatched name, so the
    next document carrying the same spelling binds automatically.
    """
    alias_normalized: str = Field(..., description="Normalized raw name for lookup")
    alias_original: Optional[str] = Field(default=None, description="Raw name as extracted")
    entity_id: str = Field(..., description="Roster entity id")
    created_by: str = Field(default="system", description="Who created this alias")
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
