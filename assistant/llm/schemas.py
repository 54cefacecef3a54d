"""
Pydantic schemas for structured LLM output.

Every JSON response the gateway consumes is validated against one of these
models; a mismatch triggers one retry before surfacing as
``MalformedResponseError``.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..memory.models import (
    Category,
    ImportanceLevel,
    MemoryType,
    coerce_enum,
    normalize_entities,
    normalize_tags,
)


class MemoryClassification(BaseModel):
    """Normalized memory text plus metadata returned by the classifier."""

    model_config = ConfigDict(extra="ignore")

    content: str = Field(..., min_length=1)
    category: Category = Category.GENERAL
    memory_type: MemoryType = MemoryType.FACT
    importance_level: ImportanceLevel = ImportanceLevel.MEDIUM
    tags: list[str] = Field(default_factory=list)
    related_entities: list[str] = Field(default_factory=list)
    context: str | None = None

    @field_validator("content", mode="before")
    @classmethod
    def _strip_content(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

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

    @field_validator("context", mode="before")
    @classmethod
    def _context(cls, value: Any) -> str | None:
        if value is None:
            return None
        value = str(value).strip()
        return value or None


class EmailDraft(BaseModel):
    """Drafted email."""

    model_config = ConfigDict(extra="ignore")

    to: str = ""
    subject: str
    body: str

    @field_validator("to", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> str:
        return value or ""


class ParsedEvent(BaseModel):
    """Calendar event as understood by the LLM; times are naive local strings."""

    model_config = ConfigDict(extra="ignore")

    title: str | None = None
    notes: str | None = None
    start: str | None = None
    end: str | None = None
    reminderMinutesBefore: int | None = None
    error: str | None = None


class SearchRanking(BaseModel):
    """Indices of relevant memories plus a short explanation."""

    model_config = ConfigDict(extra="ignore")

    relevantIndices: list[int] = Field(default_factory=list)
    explanation: str = ""


class ExtractedMemories(BaseModel):
    """Candidate memory statements pulled out of a document."""

    model_config = ConfigDict(extra="ignore")

    memories: list[str]

    @field_validator("memories", mode="before")
    @classmethod
    def _drop_blank(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [str(item).strip() for item in value if item is not None and str(item).strip()]
        return value
