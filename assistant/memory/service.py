"""
Memory operations.

Combines the LLM gateway (classification and ranking) with the PostgREST
store. Routers call this layer; it owns input validation and the shape of
what gets inserted.
"""

import logging
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime

from shared.errors import NotFoundError, ValidationError

from ..config import Settings
from ..llm.gateway import LLMGateway
from ..llm.prompts import memory_classification_prompt, memory_search_prompt
from ..llm.schemas import MemoryClassification, SearchRanking
from .models import Memory, MemoryFilter
from .store import MemoryStore

logger = logging.getLogger(__name__)


@dataclass
class AddResult:
    memory: Memory
    total_memories: int


@dataclass
class SearchResult:
    query: str
    results: list[Memory] = field(default_factory=list)
    explanation: str = ""
    message: str | None = None


class MemoryService:
    """Add, list, search and delete memories."""

    def __init__(self, store: MemoryStore, llm: LLMGateway, owner_name: str, owner_full_name: str):
        self.store = store
        self.llm = llm
        self.owner_name = owner_name
        self.owner_full_name = owner_full_name

    @classmethod
    def from_settings(cls, settings: Settings, store: MemoryStore, llm: LLMGateway) -> "MemoryService":
        return cls(store, llm, settings.OWNER_NAME, settings.OWNER_FULL_NAME)

    async def classify(self, raw_input: str) -> MemoryClassification:
        """Rewrite raw notes as a third-person memory and extract metadata."""
        prompt = memory_classification_prompt(self.owner_name, self.owner_full_name)
        return await self.llm.complete_model(prompt, raw_input, MemoryClassification)

    async def store_candidate(self, raw_input: str) -> Memory:
        """Classify ``raw_input`` and insert it as an active memory."""
        classification = await self.classify(raw_input)
        record = {
            "content": classification.content,
            "raw_input": raw_input,
            "category": classification.category.value,
            "memory_type": classification.memory_type.value,
            "importance_level": classification.importance_level.value,
            "tags": classification.tags,
            "related_entities": classification.related_entities,
            "context": classification.context,
            "is_active": True,
            "deleted_at": None,
        }
        memory = await self.store.insert(record)
        logger.info(
            f"[MEMORY] Stored {memory.id} ({memory.category.value}/{memory.importance_level.value})",
            extra={"memory_id": memory.id},
        )
        return memory

    async def add(self, raw_input: str | None) -> AddResult:
        if not raw_input or not raw_input.strip():
            raise ValidationError("Missing rawInput")
        memory = await self.store_candidate(raw_input.strip())
        total = await self.store.count(active_only=True)
        return AddResult(memory=memory, total_memories=total)

    async def list(
        self,
        category: str | None = None,
        importance: str | None = None,
        tag: str | None = None,
    ) -> list[Memory]:
        filters = MemoryFilter(category=category, importance=importance, tag=tag)
        return await self.store.select(filters)

    async def categories(self) -> dict[str, int]:
        rows = await self.store.select_rows(columns="category")
        return dict(Counter(row.get("category") or "general" for row in rows))

    async def tags(self) -> dict[str, int]:
        rows = await self.store.select_rows(columns="tags")
        counts: Counter[str] = Counter()
        for row in rows:
            counts.update(tag for tag in (row.get("tags") or []) if tag)
        return dict(counts)

    async def search(self, query: str | None) -> SearchResult:
        """LLM-ranked search over all active memories."""
        if not query or not query.strip():
            raise ValidationError("Missing query")
        query = query.strip()

        memories = await self.store.select()
        if not memories:
            return SearchResult(query=query, message="No memories found in database")

        prompt = memory_search_prompt(self.owner_name, self.owner_full_name, memories)
        ranking = await self.llm.complete_model(prompt, query, SearchRanking)

        results: list[Memory] = []
        seen: set[int] = set()
        for idx in ranking.relevantIndices:
            if 0 <= idx < len(memories) and idx not in seen:
                seen.add(idx)
                results.append(memories[idx])
        dropped = len(ranking.relevantIndices) - len(results)
        if dropped:
            logger.debug(f"[MEMORY] Dropped {dropped} out-of-range or duplicate search indices")

        return SearchResult(query=query, results=results, explanation=ranking.explanation)

    async def search_text(self, query: str | None) -> SearchResult:
        """Substring search on memory content."""
        if not query or not query.strip():
            raise ValidationError("Missing query")
        query = query.strip()
        results = await self.store.search_content(query)
        return SearchResult(
            query=query,
            results=results,
            explanation=f'Found {len(results)} memories matching "{query}"',
        )

    async def delete(self, memory_id: str | None) -> Memory:
        """Soft-delete one memory.

        Raises:
            ValidationError: If no id was given.
            NotFoundError: If no active memory has this id.
        """
        if not memory_id or not memory_id.strip():
            raise ValidationError("Missing memory id")
        try:
            memory_id = str(uuid.UUID(memory_id.strip()))
        except ValueError as e:
            raise NotFoundError(f"Memory not found: {memory_id}") from e

        deleted = await self.store.soft_delete(memory_id, datetime.now(UTC))
        if deleted is None:
            raise NotFoundError(f"Memory not found: {memory_id}")
        logger.info(f"[MEMORY] Soft-deleted {memory_id}", extra={"memory_id": memory_id})
        return deleted

    async def clear(self) -> None:
        """Hard-delete every memory."""
        await self.store.delete_all()
        logger.warning("[MEMORY] All memories cleared")
