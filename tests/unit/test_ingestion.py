"""
Tests for document ingestion, upload handling and transcription.
"""

import asyncio
import io
import tempfile
from unittest.mock import patch

import httpx
import pytest
from fastapi import UploadFile

from assistant.ingestion.documents import DocumentParser
from assistant.ingestion.transcription import Transcriber
from assistant.ingestion.uploads import read_upload, staged_file
from assistant.llm.schemas import ExtractedMemories, MemoryClassification
from assistant.memory.service import MemoryService
from shared.errors import MalformedResponseError, UpstreamError, ValidationError

# ============================================================
# Fixtures
# ============================================================


@pytest.fixture
def isolated_tmp(tmp_path, monkeypatch):
    """Point tempfile at an empty directory so leftovers are visible."""
    staging = tmp_path / "staging"
    staging.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(staging))
    return staging


@pytest.fixture
def memory_service(fake_store, mock_llm) -> MemoryService:
    return MemoryService(fake_store, mock_llm, owner_name="Brandon", owner_full_name="Brandon Hinrichs")


def scripted_llm(candidates, failing=()):
    """complete_model side effect: extraction returns ``candidates``; classification echoes the text."""

    async def complete_model(system_prompt, user_message, schema):
        if schema is ExtractedMemories:
            return ExtractedMemories(memories=candidates)
        if user_message in failing:
            raise MalformedResponseError("AI returned invalid JSON")
        return MemoryClassification(content=f"Brandon: {user_message}")

    return complete_model


# ============================================================
# Uploads
# ============================================================


@pytest.mark.unit
class TestUploads:
    """Upload validation and temp-file staging."""

    @pytest.mark.asyncio
    async def test_reads_upload(self):
        upload = UploadFile(file=io.BytesIO(b"hello"), filename="notes.txt")

        assert await read_upload(upload, max_bytes=1024) == b"hello"

    @pytest.mark.asyncio
    async def test_missing_upload(self):
        with pytest.raises(ValidationError) as exc_info:
            await read_upload(None, max_bytes=1024, label="audio file")

        assert exc_info.value.message == "No audio file uploaded"

    @pytest.mark.asyncio
    async def test_empty_upload(self):
        upload = UploadFile(file=io.BytesIO(b""), filename="notes.txt")

        with pytest.raises(ValidationError) as exc_info:
            await read_upload(upload, max_bytes=1024)

        assert exc_info.value.message == "Uploaded file is empty"

    @pytest.mark.asyncio
    async def test_oversized_upload(self):
        limit = 1024 * 1024
        upload = UploadFile(file=io.BytesIO(b"x" * (limit + 1)), filename="big.txt")

        with pytest.raises(ValidationError) as exc_info:
            await read_upload(upload, max_bytes=limit)

        assert exc_info.value.message == "File too large (max 1MB)"

    def test_staged_file_removed_after_use(self, isolated_tmp):
        with staged_file(b"data", "notes.txt", "text/plain") as staged:
            assert staged.path.exists()
            assert staged.path.suffix == ".txt"
            assert staged.size == 4

        assert not staged.path.exists()
        assert list(isolated_tmp.iterdir()) == []

    def test_staged_file_removed_on_error(self, isolated_tmp):
        with pytest.raises(RuntimeError):
            with staged_file(b"data", "notes.txt"):
                raise RuntimeError("boom")

        assert list(isolated_tmp.iterdir()) == []


# ============================================================
# Documents
# ============================================================


@pytest.mark.unit
class TestDocumentParser:
    """Extract-then-store pipeline."""

    @pytest.mark.asyncio
    async def test_stores_every_candidate(self, memory_service, mock_llm, fake_store):
        mock_llm.complete_model.side_effect = scripted_llm(["likes tea", "has a dog"])
        parser = DocumentParser(memory_service, mock_llm)

        result = await parser.parse(b"Brandon likes tea. He has a dog.", "about.txt")

        assert result.memories_extracted == 2
        assert result.memories_added == 2
        assert result.failed == 0
        assert len(fake_store.rows) == 2
        assert result.message == "Successfully extracted and stored 2 memories from about.txt"

    @pytest.mark.asyncio
    async def test_failed_candidate_does_not_abort_batch(self, memory_service, mock_llm, fake_store):
        mock_llm.complete_model.side_effect = scripted_llm(["a", "b", "c"], failing={"b"})
        parser = DocumentParser(memory_service, mock_llm)

        result = await parser.parse(b"some notes", "notes.txt")

        assert result.memories_extracted == 3
        assert result.memories_added == 2
        assert result.failed == 1
        assert [row["raw_input"] for row in fake_store.rows] == ["a", "c"]
        assert result.message.endswith("(1 failed)")

    @pytest.mark.asyncio
    async def test_text_is_truncated(self, memory_service, mock_llm):
        mock_llm.complete_model.side_effect = scripted_llm([])
        parser = DocumentParser(memory_service, mock_llm, max_chars=10)

        await parser.parse(b"0123456789abcdef", "long.txt")

        user_message = mock_llm.complete_model.call_args.args[1]
        assert user_message == "Document content:\n0123456789"

    @pytest.mark.asyncio
    async def test_empty_document(self, memory_service, mock_llm):
        parser = DocumentParser(memory_service, mock_llm)

        with pytest.raises(ValidationError) as exc_info:
            await parser.parse(b"  \n ", "blank.txt")

        assert exc_info.value.message == "Document is empty"
        mock_llm.complete_model.assert_not_called()

    def test_undecodable_bytes_are_replaced(self):
        assert DocumentParser.read_text(b"caf\xe9 time") == "caf\ufffd time"

    @pytest.mark.asyncio
    async def test_batch_deadline_counts_remaining_as_failed(self, memory_service, mock_llm):
        mock_llm.complete_model.side_effect = scripted_llm(["a", "b", "c"])
        parser = DocumentParser(memory_service, mock_llm, batch_timeout=0.05)

        async def slow_store(candidate):
            await asyncio.sleep(1)

        with patch.object(memory_service, "store_candidate", side_effect=slow_store):
            result = await parser.parse(b"notes", "notes.txt")

        assert result.memories_extracted == 3
        assert result.memories_added == 0
        assert result.failed == 3


# ============================================================
# Transcription
# ============================================================


@pytest.mark.unit
class TestTranscriber:
    """Audio transcription client."""

    @pytest.mark.asyncio
    async def test_transcribe_posts_multipart(self, isolated_tmp):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = request.content
            return httpx.Response(200, json={"text": "Pick up milk"})

        transcriber = Transcriber(api_key="sk-test", transport=httpx.MockTransport(handler))
        text = await transcriber.transcribe(b"RIFFaudio", filename="note.wav", content_type="audio/wav")

        assert text == "Pick up milk"
        assert captured["url"] == "https://api.openai.com/v1/audio/transcriptions"
        assert captured["auth"] == "Bearer sk-test"
        assert b"whisper-1" in captured["body"]
        assert b'filename="note.wav"' in captured["body"]
        assert b"RIFFaudio" in captured["body"]
        assert list(isolated_tmp.iterdir()) == []
        await transcriber.close()

    @pytest.mark.asyncio
    async def test_provider_error_cleans_up(self, isolated_tmp):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": {"message": "Invalid file format"}})

        transcriber = Transcriber(api_key="sk-test", transport=httpx.MockTransport(handler))
        with pytest.raises(UpstreamError) as exc_info:
            await transcriber.transcribe(b"garbage")

        assert exc_info.value.message == "Transcription API error: Invalid file format"
        assert list(isolated_tmp.iterdir()) == []

    @pytest.mark.asyncio
    async def test_missing_text(self, isolated_tmp):
        transcriber = Transcriber(
            api_key="sk-test",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})),
        )

        with pytest.raises(UpstreamError):
            await transcriber.transcribe(b"audio")

    @pytest.mark.asyncio
    async def test_empty_audio(self):
        transcriber = Transcriber(api_key="sk-test")

        with pytest.raises(ValidationError):
            await transcriber.transcribe(b"")
