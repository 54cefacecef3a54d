"""
Tests for text rewrite, email drafting and calendar parsing tasks.
"""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from assistant.llm.assistants import AssistantTasks
from assistant.llm.prompts import calendar_prompt
from assistant.llm.schemas import EmailDraft, ParsedEvent
from shared.errors import MalformedResponseError, ValidationError


@pytest.fixture
def tasks(mock_llm) -> AssistantTasks:
    return AssistantTasks(llm=mock_llm, owner_full_name="Brandon Hinrichs", timezone="America/Chicago")


@pytest.mark.unit
class TestRewriteText:
    """Text rewrite."""

    @pytest.mark.asyncio
    async def test_strips_wrapping_quotes(self, tasks, mock_llm):
        mock_llm.complete.return_value = '  "Hey, I\'m running a few minutes late!"  '

        result = await tasks.rewrite_text("im running late")

        assert result == "Hey, I'm running a few minutes late!"
        assert mock_llm.complete.call_args.args[1] == "im running late"

    @pytest.mark.asyncio
    async def test_missing_message(self, tasks, mock_llm):
        with pytest.raises(ValidationError) as exc_info:
            await tasks.rewrite_text("")

        assert exc_info.value.message == "Missing message"
        mock_llm.complete.assert_not_called()


@pytest.mark.unit
class TestDraftEmail:
    """Email drafting."""

    @pytest.mark.asyncio
    async def test_returns_draft(self, tasks, mock_llm):
        mock_llm.complete_model.return_value = EmailDraft(
            to="sam@example.com",
            subject="Lunch Thursday",
            body="Hi, Sam.\n\nLunch Thursday?\n\nThanks,\nBrandon Hinrichs",
        )

        draft = await tasks.draft_email("ask sam to lunch thursday")

        assert draft.subject == "Lunch Thursday"
        prompt, _, schema = mock_llm.complete_model.call_args.args
        assert "Brandon Hinrichs" in prompt
        assert schema is EmailDraft

    @pytest.mark.asyncio
    async def test_missing_prompt(self, tasks):
        with pytest.raises(ValidationError) as exc_info:
            await tasks.draft_email(None)

        assert exc_info.value.message == "Missing prompt"

    @pytest.mark.asyncio
    async def test_malformed_output_propagates(self, tasks, mock_llm):
        mock_llm.complete_model.side_effect = MalformedResponseError("AI returned invalid JSON")

        with pytest.raises(MalformedResponseError):
            await tasks.draft_email("write something")


@pytest.mark.unit
class TestParseEvent:
    """Calendar event parsing."""

    @pytest.mark.asyncio
    async def test_default_duration_is_one_hour(self, tasks, mock_llm):
        mock_llm.complete_model.return_value = ParsedEvent(title="Dentist", start="2025-03-10T15:00:00")

        result = await tasks.parse_event("dentist monday at 3pm")

        assert result == {
            "type": "calendar",
            "title": "Dentist",
            "notes": None,
            "start": "2025-03-10T15:00:00",
            "end": "2025-03-10T16:00:00",
            "reminderMinutesBefore": None,
        }

    @pytest.mark.asyncio
    async def test_utc_output_is_converted_to_local(self, tasks, mock_llm):
        mock_llm.complete_model.return_value = ParsedEvent(
            title="Standup",
            start="2025-03-10T14:00:00.000Z",
            end="2025-03-10T14:15:00.000Z",
            reminderMinutesBefore=10,
        )

        result = await tasks.parse_event("standup monday 9am")

        assert result["start"] == "2025-03-10T09:00:00"
        assert result["end"] == "2025-03-10T09:15:00"
        assert not result["start"].endswith("Z")
        assert result["reminderMinutesBefore"] == 10

    @pytest.mark.asyncio
    async def test_model_reported_error(self, tasks, mock_llm):
        mock_llm.complete_model.return_value = ParsedEvent(error="Could not parse event")

        with pytest.raises(ValidationError) as exc_info:
            await tasks.parse_event("banana")

        assert exc_info.value.message == "Could not parse event"
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_start(self, tasks, mock_llm):
        mock_llm.complete_model.return_value = ParsedEvent(title="Something")

        with pytest.raises(ValidationError) as exc_info:
            await tasks.parse_event("something sometime")

        assert exc_info.value.message == "Could not parse event"

    @pytest.mark.asyncio
    async def test_end_before_start(self, tasks, mock_llm):
        mock_llm.complete_model.return_value = ParsedEvent(
            title="Backwards",
            start="2025-03-10T15:00:00",
            end="2025-03-10T14:00:00",
        )

        with pytest.raises(ValidationError) as exc_info:
            await tasks.parse_event("backwards meeting")

        assert exc_info.value.message == "Could not parse event"
        assert exc_info.value.details == {"reason": "Event end must be after start"}

    def test_prompt_names_timezone_and_today(self):
        now = datetime(2025, 3, 10, 8, 30, tzinfo=ZoneInfo("America/Chicago"))

        prompt = calendar_prompt("America/Chicago", now=now)

        assert "America/Chicago" in prompt
        assert "Monday, March 10, 2025" in prompt
        assert '"2025-03-10T15:00:00"' in prompt
