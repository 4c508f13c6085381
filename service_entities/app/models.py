"""
Entity data models for the Entity Service.
"""

from typing import Optional, Tuple
from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Entity(BaseModel):
    """A named record; ``id`` is assigned by the store and never changes."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Store-assigned identifier (24 hex characters)")
    title: str = Field(..., description="Display title")


@dataclass(frozen=True)
class Snapshot:
    """All entities as of one successful refresh."""
    entities: Tuple[Entity, ...] = ()
    version: int = 0
    refreshed_at: Optional[datetime] = None

    def __len__(self) -> int:
        return len(self.entities)

    def __iter__(self):
        return iter(self.entities)


class EntityWriteRequest(BaseModel):
    """Request body for creating or renaming an entity."""

    model_config = ConfigDict(extra="ignore")

    title: str = Field(..., description="Display title")
