"""
Persistence-layer schema for learning maps.

The upstream parser only guarantees structure; these models are where
resource types, levels and required text fields are enforced before a map
is stored.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class LearningLevel(str, Enum):
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"


class ResourceType(str, Enum):
    ARTICLE = "article"
    VIDEO = "video"
    BOOK = "book"


class LearningResource(BaseModel):
    type: ResourceType
    title: str
    url: str


class SubTopic(BaseModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    resources: List[LearningResource] = Field(default_factory=list)
    subtopics: List["SubTopic"] = Field(default_factory=list)


class MainBranch(BaseModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    subtopics: List[SubTopic]


class LearningMap(BaseModel):
    """
    Stored learning map.
    camelCase field names are the wire format; the ``created_at`` alias maps
    to the database column.
    """

    id: Optional[str] = None
    topic: str = Field(min_length=1)
    level: LearningLevel
    branches: List[MainBranch]
    createdAt: Optional[datetime] = Field(default=None, alias="created_at")

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)
