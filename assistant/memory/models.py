"""
Memory data model.

A memory is a normalized, classified fact about the assistant's owner,
persisted in the hosted ``memories`` table. Rows are soft-deleted
(``is_active=false`` + ``deleted_at``) rather than removed.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class Category(str, Enum):
    """Top-level subject area of a memory."""

    BIOGRAPHICAL = "biographical"
    PREFERENCE = "preference"
    SCHEDULE = "schedule"
    CONTACT = "contact"
    WORK = "work"
    PERSONAL = "personal"
    HEALTH = "health"
    FINANCE = "finance"
    HOBBY = "hobby"
    GOAL = "goal"
    RELATIONSHIP = "relationship"
    SKILL = "skill"
    GENERAL = "general"


class MemoryType(str, Enum):
    """Kind of statement a memory records."""

    FACT = "fact"
    ROUTINE = "routine"
    HABIT = "habit"
    PREFERENCE = "preference"
    RELATIONSHIP = "relationship"
    EVENT = "event"
    GOAL = "goal"
    SKILL = "skill"
    CONTACT_INFO = "contact_info"
    SCHEDULE = "schedule"
    NOTE = "note"


class ImportanceLevel(str, Enum):
    """How much weight the assistant should give a memory."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


def coerce_enum(enum_cls: type[Enum], value: Any, default: Enum) -> Enum:
    """Map a raw value onto ``enum_cls``, falling back to ``default``.

    Empty values and values outside the enum both resolve to the default;
    the latter is logged since it usually means the LLM ignored the prompt.
    """
    if value is None or value == "":
        return default
    if isinstance(value, enum_cls):
        return value
    normalized = str(value).strip().lower().replace(" ", "_")
    try:
        return enum_cls(normalized)
    except ValueError:
        logger.warning(f"[MEMORY] Unknown {enum_cls.__name__} '{value}', using '{default.value}'")
        return default


def normalize_tags(value: Any) -> list[str]:
    """Lowercase, strip and de-duplicate tags, preserving order."""
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(",")
    tags: list[str] = []
    for raw in value:
        tag = str(raw).strip().lower()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def normalize_entities(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        value = [value]
    return [str(item).strip() for item in value if str(item).strip()]


class Memory(BaseModel):
    """A stored memory row."""

    model_config = ConfigDict(extra="ignore")

    id: str
    content: str
    raw_input: str | None = None
    category: Category = Category.GENERAL
    memory_type: MemoryType = MemoryType.FACT
    importance_level: ImportanceLevel = ImportanceLevel.MEDIUM
    tags: list[str] = Field(default_factory=list)
    related_entities: list[str] = Field(default_factory=list)
    context: str | None = None
    is_active: bool = True
    created_at: datetime | None = None
    deleted_at: datetime | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str:
        return str(value)

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, value: Any) -> Category:
        return coerce_enum(Category, value, Category.GENERAL)

    @field_validator("memory_type", mode="before")
    @classmethod
    def _memory_type(cls, value: Any) -> MemoryType:
        return coerce_enum(MemoryType, value, MemoryType.FACT)

    @field_validator("importance_level", mode="before")
    @classmethod
    def _importance(cls, value: Any) -> ImportanceLevel:
        return coerce_enum(ImportanceLevel, value, ImportanceLevel.MEDIUM)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, value: Any) -> list[str]:
        return normalize_tags(value)

    @field_validator("related_entities", mode="before")
    @classmethod
    def _entities(cls, value: Any) -> list[str]:
        return normalize_entities(value)


class MemoryFilter(BaseModel):
    """Equality / containment filters for listing memories (AND semantics)."""

    category: str | None = None
    importance: str | None = None
    tag: str | None = None

    @field_validator("category", "importance", "tag", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        if value is None:
            return None
        value = str(value).strip().lower()
        return value or None
