"""
Memory Router - add, list, search, delete and document ingestion.
"""

import logging

from fastapi import APIRouter, Depends, File, Query, UploadFile

from ..config import Settings, get_settings
from ..dependencies import get_document_parser, get_memory_service
from ..ingestion.documents import DocumentParser
from ..ingestion.uploads import read_upload
from ..memory.service import MemoryService
from ..models import (
    CategoriesResponse,
    DocumentParseResponse,
    MemoryAddRequest,
    MemoryAddResponse,
    MemoryDeleteResponse,
    MemoryListResponse,
    MemoryMetadata,
    MemorySearchRequest,
    MemorySearchResponse,
    SuccessResponse,
    TagsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/memory", tags=["memory"])


@router.post("/add", response_model=MemoryAddResponse)
async def add_memory(request: MemoryAddRequest, service: MemoryService = Depends(get_memory_service)):
    """Classify rough notes and store them as a memory."""
    result = await service.add(request.raw_input)
    memory = result.memory
    return MemoryAddResponse(
        id=memory.id,
        original=memory.raw_input or request.raw_input,
        formatted=memory.content,
        metadata=MemoryMetadata(
            category=memory.category,
            memory_type=memory.memory_type,
            importance_level=memory.importance_level,
            tags=memory.tags,
            related_entities=memory.related_entities,
            context=memory.context,
        ),
        total_memories=result.total_memories,
    )


@router.get("/list", response_model=MemoryListResponse)
async def list_memories(
    category: str | None = Query(None, description="Filter by category"),
    importance: str | None = Query(None, description="Filter by importance level"),
    tag: str | None = Query(None, description="Only memories carrying this tag"),
    service: MemoryService = Depends(get_memory_service),
):
    """List active memories, newest first."""
    memories = await service.list(category=category, importance=importance, tag=tag)
    return MemoryListResponse(memories=memories, count=len(memories))


@router.get("/categories", response_model=CategoriesResponse)
async def memory_categories(service: MemoryService = Depends(get_memory_service)):
    """Count active memories per category."""
    return CategoriesResponse(categories=await service.categories())


@router.get("/tags", response_model=TagsResponse)
async def memory_tags(service: MemoryService = Depends(get_memory_service)):
    """Count active memories per tag."""
    return TagsResponse(tags=await service.tags())


@router.post("/search", response_model=MemorySearchResponse)
async def search_memories(request: MemorySearchRequest, service: MemoryService = Depends(get_memory_service)):
    """LLM-ranked search over active memories."""
    result = await service.search(request.query)
    return MemorySearchResponse(
        query=result.query,
        results=result.results,
        count=len(result.results),
        explanation=result.explanation,
        message=result.message,
    )


@router.get("/search", response_model=MemorySearchResponse)
async def search_memories_text(
    q: str | None = Query(None, description="Substring to look for"),
    service: MemoryService = Depends(get_memory_service),
):
    """Case-insensitive substring search on memory content."""
    result = await service.search_text(q)
    return MemorySearchResponse(
        query=result.query,
        results=result.results,
        count=len(result.results),
        explanation=result.explanation,
    )


@router.post("/parse-document", response_model=DocumentParseResponse)
async def parse_document(
    file: UploadFile | None = File(None),
    parser: DocumentParser = Depends(get_document_parser),
    settings: Settings = Depends(get_settings),
):
    """Extract memories from an uploaded text document."""
    data = await read_upload(file, settings.document_max_bytes, label="file")
    result = await parser.parse(data, file.filename)
    return DocumentParseResponse(
        filename=result.filename,
        memories_extracted=result.memories_extracted,
        memories_added=result.memories_added,
        memories_failed=result.failed,
        memories=result.memories,
        message=result.message,
    )


# Declared before /{memory_id} so "clear" is not taken as an id
@router.delete("/clear", response_model=SuccessResponse)
async def clear_memories(service: MemoryService = Depends(get_memory_service)):
    """Hard-delete every memory."""
    await service.clear()
    return SuccessResponse(message="All memories cleared")


@router.delete("/{memory_id}", response_model=MemoryDeleteResponse)
async def delete_memory(memory_id: str, service: MemoryService = Depends(get_memory_service)):
    """Soft-delete one memory."""
    memory = await service.delete(memory_id)
    return MemoryDeleteResponse(id=memory.id, deleted_at=memory.deleted_at)
