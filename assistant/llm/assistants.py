"""
Single-shot assistant tasks: text rewrite, email drafting and calendar
event parsing.
"""

import logging
from dataclasses import dataclass
from typing import Any

from shared.errors import ValidationError

from ..calendar.base import CalendarEvent, format_wall_clock
from ..config import Settings
from .gateway import LLMGateway
from .prompts import calendar_prompt, email_prompt, text_rewrite_prompt
from .schemas import EmailDraft, ParsedEvent

logger = logging.getLogger(__name__)

PARSE_FAILURE = "Could not parse event"


@dataclass
class AssistantTasks:
    llm: LLMGateway
    owner_full_name: str
    timezone: str

    @classmethod
    def from_settings(cls, settings: Settings, llm: LLMGateway) -> "AssistantTasks":
        return cls(llm=llm, owner_full_name=settings.OWNER_FULL_NAME, timezone=settings.CALENDAR_TIMEZONE)

    async def rewrite_text(self, message: str | None) -> str:
        if not message or not message.strip():
            raise ValidationError("Missing message")
        rewritten = await self.llm.complete(text_rewrite_prompt(), message)
        return rewritten.strip().strip('"').strip()

    async def draft_email(self, prompt: str | None) -> EmailDraft:
        if not prompt or not prompt.strip():
            raise ValidationError("Missing prompt")
        return await self.llm.complete_model(email_prompt(self.owner_full_name), prompt, EmailDraft)

    async def parse_event(self, prompt: str | None) -> dict[str, Any]:
        """Turn a natural-language description into event fields.

        Start/end come back as naive local ISO strings (no ``Z``); a missing
        end defaults to one hour after start.

        Raises:
            ValidationError: If the model could not parse the event.
        """
        if not prompt or not prompt.strip():
            raise ValidationError("Missing prompt")

        parsed = await self.llm.complete_model(calendar_prompt(self.timezone), prompt, ParsedEvent)
        if parsed.error or not parsed.start or not parsed.title:
            logger.info(f"[AI] Calendar parse rejected: {parsed.error or 'missing title/start'}")
            raise ValidationError(parsed.error or PARSE_FAILURE)

        try:
            event = CalendarEvent.build(
                title=parsed.title,
                start=parsed.start,
                end=parsed.end,
                timezone=self.timezone,
                notes=parsed.notes,
                reminder_minutes=parsed.reminderMinutesBefore,
            )
        except ValidationError as e:
            logger.info(f"[AI] Calendar parse produced an invalid event: {e.message}")
            raise ValidationError(PARSE_FAILURE, details={"reason": e.message}) from e

        return {
            "type": "calendar",
            "title": event.title,
            "notes": event.notes,
            "start": format_wall_clock(event.start),
            "end": format_wall_clock(event.end),
            "reminderMinutesBefore": event.reminder_minutes,
        }
