"""
Document ingestion.

Decodes an uploaded text document, asks the LLM to pull out candidate
memory statements, then stores each candidate through the same
classification path as a manually added memory. One failing candidate is
logged and counted; it never aborts the batch.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from shared.errors import ValidationError

from ..config import Settings
from ..llm.gateway import LLMGateway
from ..llm.prompts import document_extraction_prompt
from ..llm.schemas import ExtractedMemories
from ..memory.models import Memory
from ..memory.service import MemoryService

logger = logging.getLogger(__name__)


@dataclass
class DocumentParseResult:
    filename: str
    memories_extracted: int
    memories: list[Memory] = field(default_factory=list)
    failed: int = 0

    @property
    def memories_added(self) -> int:
        return len(self.memories)

    @property
    def message(self) -> str:
        return (
            f"Successfully extracted and stored {self.memories_added} memories from {self.filename}"
            + (f" ({self.failed} failed)" if self.failed else "")
        )


class DocumentParser:
    """Extract and store memories from a document."""

    def __init__(
        self,
        memory_service: MemoryService,
        llm: LLMGateway,
        max_chars: int = 15000,
        batch_timeout: float = 60.0,
    ):
        self.memory_service = memory_service
        self.llm = llm
        self.max_chars = max_chars
        self.batch_timeout = batch_timeout

    @classmethod
    def from_settings(cls, settings: Settings, memory_service: MemoryService, llm: LLMGateway) -> "DocumentParser":
        return cls(
            memory_service,
            llm,
            max_chars=settings.DOCUMENT_MAX_CHARS,
            batch_timeout=settings.DOCUMENT_BATCH_TIMEOUT_SEC,
        )

    @staticmethod
    def read_text(data: bytes) -> str:
        """Decode document bytes as UTF-8 (undecodable bytes replaced)."""
        return data.decode("utf-8", errors="replace")

    async def extract_candidates(self, text: str) -> list[str]:
        excerpt = text[: self.max_chars]
        if len(text) > self.max_chars:
            logger.info(f"[DOCUMENT] Truncated document from {len(text)} to {self.max_chars} chars")
        extracted = await self.llm.complete_model(
            document_extraction_prompt(),
            f"Document content:\n{excerpt}",
            ExtractedMemories,
        )
        return extracted.memories

    async def parse(self, data: bytes, filename: str) -> DocumentParseResult:
        """Extract candidate memories from a document and store each one.

        Raises:
            ValidationError: If the document has no text.
        """
        text = self.read_text(data)
        if not text.strip():
            raise ValidationError("Document is empty")

        candidates = await self.extract_candidates(text)
        logger.info(f"[DOCUMENT] Extracted {len(candidates)} candidate memories from {filename}")

        result = DocumentParseResult(filename=filename, memories_extracted=len(candidates))
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.batch_timeout

        for index, candidate in enumerate(candidates):
            remaining = deadline - loop.time()
            if remaining <= 0:
                skipped = len(candidates) - index
                logger.warning(f"[DOCUMENT] Batch deadline reached, {skipped} candidates not processed")
                result.failed += skipped
                break
            try:
                memory = await asyncio.wait_for(self.memory_service.store_candidate(candidate), timeout=remaining)
            except TimeoutError:
                skipped = len(candidates) - index
                logger.warning(f"[DOCUMENT] Batch deadline reached at candidate {index}, {skipped} not stored")
                result.failed += skipped
                break
            except Exception as e:
                logger.warning(f"[DOCUMENT] Candidate {index} failed: {e}", exc_info=True)
                result.failed += 1
                continue
            result.memories.append(memory)

        logger.info(
            f"[DOCUMENT] Stored {result.memories_added}/{result.memories_extracted} memories from {filename}"
        )
        return result
