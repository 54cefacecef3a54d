"""
Pydantic models for the assistant HTTP API.

Request bodies accept the camelCase keys the web client sends; response
models serialize with the same keys. Memory rows are returned as stored
(snake_case columns).
"""

from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .memory.models import Category, ImportanceLevel, Memory, MemoryType


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# AI Models
# =============================================================================


class TextRequest(BaseModel):
    """Message to rewrite."""

    message: str | None = Field(None, description="Raw message text")


class PromptRequest(BaseModel):
    """Free-form description for email drafting or event parsing."""

    prompt: str | None = Field(None, description="Natural language description")


class TextResponse(BaseModel):
    success: bool = True
    original: str
    rewritten: str


class EmailResponse(BaseModel):
    type: str = "email"
    to: str = ""
    subject: str
    body: str


class CalendarParseResponse(CamelModel):
    type: str = "calendar"
    title: str
    notes: str | None = None
    start: str = Field(..., description="Local wall-clock ISO-8601, no offset")
    end: str = Field(..., description="Local wall-clock ISO-8601, no offset")
    reminder_minutes_before: int | None = Field(None, alias="reminderMinutesBefore")


# =============================================================================
# Memory Models
# =============================================================================


class MemoryAddRequest(CamelModel):
    raw_input: str | None = Field(None, alias="rawInput", description="Rough notes to remember")


class MemorySearchRequest(BaseModel):
    query: str | None = Field(None, description="Natural language search query")


class MemoryMetadata(BaseModel):
    category: Category
    memory_type: MemoryType
    importance_level: ImportanceLevel
    tags: list[str] = Field(default_factory=list)
    related_entities: list[str] = Field(default_factory=list)
    context: str | None = None


class MemoryAddResponse(CamelModel):
    success: bool = True
    id: str
    original: str
    formatted: str
    metadata: MemoryMetadata
    total_memories: int = Field(..., alias="totalMemories")


class MemoryListResponse(BaseModel):
    type: str = "memory_dump"
    memories: list[Memory]
    count: int


class CategoriesResponse(BaseModel):
    categories: dict[str, int]


class TagsResponse(BaseModel):
    tags: dict[str, int]


class MemorySearchResponse(BaseModel):
    type: str = "memory_search"
    query: str
    results: list[Memory]
    count: int
    explanation: str | None = None
    message: str | None = None


class MemoryDeleteResponse(CamelModel):
    success: bool = True
    id: str
    deleted_at: datetime | None = Field(None, alias="deletedAt")
    message: str = "Memory deleted"


class SuccessResponse(BaseModel):
    success: bool = True
    message: str


class DocumentParseResponse(CamelModel):
    success: bool = True
    filename: str
    memories_extracted: int = Field(..., alias="memoriesExtracted")
    memories_added: int = Field(..., alias="memoriesAdded")
    memories_failed: int = Field(0, alias="memoriesFailed")
    memories: list[Memory]
    message: str


# =============================================================================
# Calendar Models
# =============================================================================


class CalendarCreateRequest(CamelModel):
    title: str | None = None
    start: str | None = Field(None, description="ISO-8601 start; naive values are local time")
    end: str | None = Field(None, description="ISO-8601 end; defaults to one hour after start")
    notes: str | None = None
    reminder_minutes: int | None = Field(
        None,
        validation_alias=AliasChoices("reminderMinutes", "reminderMinutesBefore", "reminder_minutes"),
    )
    provider: str | None = Field(None, description='"google" or "outlook"')


class CalendarCreateResponse(CamelModel):
    success: bool
    provider: str
    event_id: str | None = Field(None, alias="eventId")
    link: str | None = None
    needs_auth: bool | None = Field(None, alias="needsAuth")
    auth_url: str | None = Field(None, alias="authUrl")
    message: str | None = None


class AuthStatusResponse(CamelModel):
    authorized: bool
    provider: str
    state: str
    auth_url: str | None = Field(None, alias="authUrl")
    error: str | None = None


class AuthUrlResponse(CamelModel):
    auth_url: str = Field(..., alias="authUrl")
    provider: str


class AuthCallbackRequest(BaseModel):
    code: str | None = None
    state: str | None = None
    provider: str | None = None


# =============================================================================
# Transcription / Health
# =============================================================================


class TranscriptionResponse(BaseModel):
    transcription: str


class HealthResponse(BaseModel):
    status: str
    service: str
    store: str
    version: str
