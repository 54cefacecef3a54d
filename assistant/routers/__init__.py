"""API Routers Package.

Usage in main.py:
    from .routers import ai_router, calendar_router, health_router, memory_router, whisper_router

    app.include_router(memory_router)
    app.include_router(memory_router, prefix="/api")
"""

from .ai import router as ai_router
from .calendar import router as calendar_router
from .health import router as health_router
from .memory import router as memory_router
from .whisper import router as whisper_router

__all__ = [
    "ai_router",
    "calendar_router",
    "health_router",
    "memory_router",
    "whisper_router",
]
