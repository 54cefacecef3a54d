"""
FastAPI dependencies.

Network clients are process-wide singletons created on first use (so a
missing variable only fails the routes that need it); request-scoped
services are cheap wrappers built per request. Tests replace any of these
through ``app.dependency_overrides``.
"""

import logging

from fastapi import Depends

from .calendar.registry import ConnectorRegistry
from .config import Settings, get_settings
from .ingestion.documents import DocumentParser
from .ingestion.transcription import Transcriber
from .llm.assistants import AssistantTasks
from .llm.gateway import LLMGateway
from .memory.service import MemoryService
from .memory.store import MemoryStore

logger = logging.getLogger(__name__)

_llm_gateway: LLMGateway | None = None
_memory_store: MemoryStore | None = None
_transcriber: Transcriber | None = None
_connector_registry: ConnectorRegistry | None = None


def get_llm_gateway() -> LLMGateway:
    global _llm_gateway
    if _llm_gateway is None:
        _llm_gateway = LLMGateway.from_settings(get_settings())
    return _llm_gateway


def get_memory_store() -> MemoryStore:
    global _memory_store
    if _memory_store is None:
        _memory_store = MemoryStore.from_settings(get_settings())
    return _memory_store


def get_transcriber() -> Transcriber:
    global _transcriber
    if _transcriber is None:
        _transcriber = Transcriber.from_settings(get_settings())
    return _transcriber


def get_connector_registry() -> ConnectorRegistry:
    global _connector_registry
    if _connector_registry is None:
        _connector_registry = ConnectorRegistry.from_settings(get_settings())
    return _connector_registry


def get_assistant_tasks(
    llm: LLMGateway = Depends(get_llm_gateway),
    settings: Settings = Depends(get_settings),
) -> AssistantTasks:
    return AssistantTasks.from_settings(settings, llm)


def get_memory_service(
    store: MemoryStore = Depends(get_memory_store),
    llm: LLMGateway = Depends(get_llm_gateway),
    settings: Settings = Depends(get_settings),
) -> MemoryService:
    return MemoryService.from_settings(settings, store, llm)


def get_document_parser(
    memory_service: MemoryService = Depends(get_memory_service),
    llm: LLMGateway = Depends(get_llm_gateway),
    settings: Settings = Depends(get_settings),
) -> DocumentParser:
    return DocumentParser.from_settings(settings, memory_service, llm)


async def close_dependencies() -> None:
    """Close every client created so far and forget it."""
    global _llm_gateway, _memory_store, _transcriber, _connector_registry
    for client in (_llm_gateway, _memory_store, _transcriber, _connector_registry):
        if client is not None:
            await client.close()
    _llm_gateway = _memory_store = _transcriber = _connector_registry = None
    logger.info("HTTP clients closed")
