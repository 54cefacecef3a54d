"""Speech-to-text via the OpenAI-compatible audio transcription endpoint."""

import logging
import time

import httpx

from shared.errors import UpstreamError, UpstreamTimeoutError, ValidationError

from ..config import Settings
from ..llm.gateway import provider_error_message
from .uploads import staged_file

logger = logging.getLogger(__name__)

DEFAULT_AUDIO_FILENAME = "recording.webm"


class Transcriber:
    """Async client for ``/audio/transcriptions``."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "whisper-1",
        language: str = "en",
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.language = language
        self.timeout = timeout
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Transcriber":
        settings.require("OPENAI_API_KEY")
        return cls(
            api_key=settings.OPENAI_API_KEY,
            base_url=settings.OPENAI_BASE_URL,
            model=settings.TRANSCRIPTION_MODEL,
            language=settings.TRANSCRIPTION_LANGUAGE,
            timeout=settings.TRANSCRIPTION_TIMEOUT_SEC,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def transcribe(
        self,
        audio: bytes,
        filename: str | None = None,
        content_type: str | None = None,
    ) -> str:
        """Transcribe an audio clip and return the text.

        Raises:
            ValidationError: If ``audio`` is empty.
            UpstreamError: If the provider rejects the request.
            UpstreamTimeoutError: If the provider does not answer in time.
        """
        if not audio:
            raise ValidationError("No audio file provided")

        filename = filename or DEFAULT_AUDIO_FILENAME
        content_type = content_type or "audio/webm"
        client = await self._get_client()
        start_time = time.monotonic()

        with staged_file(audio, filename, content_type) as staged, staged.path.open("rb") as audio_file:
            try:
                response = await client.post(
                    f"{self.base_url}/audio/transcriptions",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    data={"model": self.model, "language": self.language},
                    files={"file": (staged.filename, audio_file, staged.content_type)},
                )
            except httpx.TimeoutException as e:
                logger.error(f"[TRANSCRIBE] Request timed out after {self.timeout:.0f}s")
                raise UpstreamTimeoutError(f"Transcription timed out after {self.timeout:.0f}s") from e
            except httpx.HTTPError as e:
                logger.error(f"[TRANSCRIBE] Request failed: {e}")
                raise UpstreamError(f"Transcription request failed: {e}") from e

        if not response.is_success:
            message = provider_error_message(response)
            logger.error(f"[TRANSCRIBE] API error {response.status_code}: {message}")
            raise UpstreamError(f"Transcription API error: {message}", details={"status": response.status_code})

        try:
            text = response.json()["text"]
        except (ValueError, KeyError, TypeError) as e:
            raise UpstreamError("Transcription API response has no text") from e

        elapsed_ms = (time.monotonic() - start_time) * 1000
        logger.info(f"[TRANSCRIBE] {len(audio)} bytes -> {len(text)} chars in {elapsed_ms:.0f}ms")
        return text
