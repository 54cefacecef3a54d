"""
AI Router - text rewrite, email drafting and calendar event parsing.
"""

import logging

from fastapi import APIRouter, Depends

from ..dependencies import get_assistant_tasks
from ..llm.assistants import AssistantTasks
from ..models import CalendarParseResponse, EmailResponse, PromptRequest, TextRequest, TextResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/text", response_model=TextResponse)
async def rewrite_text(request: TextRequest, tasks: AssistantTasks = Depends(get_assistant_tasks)):
    """Rewrite a text message in a casual but professional tone."""
    rewritten = await tasks.rewrite_text(request.message)
    return TextResponse(original=request.message, rewritten=rewritten)


@router.post("/email", response_model=EmailResponse)
async def draft_email(request: PromptRequest, tasks: AssistantTasks = Depends(get_assistant_tasks)):
    """Draft a complete email from a short description."""
    draft = await tasks.draft_email(request.prompt)
    return EmailResponse(to=draft.to, subject=draft.subject, body=draft.body)


@router.post("/calendar", response_model=CalendarParseResponse)
async def parse_calendar_event(request: PromptRequest, tasks: AssistantTasks = Depends(get_assistant_tasks)):
    """Parse a natural-language event description.

    Returns 400 ``{"error": "Could not parse event"}`` when the model cannot
    make sense of the request.
    """
    return CalendarParseResponse(**await tasks.parse_event(request.prompt))
