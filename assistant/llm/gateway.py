"""
LLM Gateway.

Thin async client for an OpenAI-compatible chat-completions API. Every
assistant feature (text rewrite, email drafting, calendar parsing, memory
classification and search, document extraction) goes through one of:

- ``complete``: plain text completion
- ``complete_json``: JSON-mode completion, code fences stripped, parsed
- ``complete_model``: ``complete_json`` validated against a pydantic schema
"""

import json
import logging
import re
import time
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from shared.errors import MalformedResponseError, UpstreamError, UpstreamTimeoutError

from ..config import Settings

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?```$", re.DOTALL)

# Attempts for complete_model (initial call + one retry)
SCHEMA_ATTEMPTS = 2
# Raw model output is truncated to this many characters in log lines
LOG_RAW_CHARS = 500


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence (```json ... ```), if any."""
    text = text.strip()
    match = _FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    return text


def parse_json_text(text: str) -> Any:
    """Parse LLM output as JSON.

    Tries the fence-stripped text first, then the outermost ``{...}`` block
    for models that wrap the object in prose.

    Raises:
        MalformedResponseError: If no JSON value can be recovered.
    """
    cleaned = strip_code_fences(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError:
            pass

    logger.error(f"[LLM] Unparseable JSON response: {text[:LOG_RAW_CHARS]!r}")
    raise MalformedResponseError("AI returned invalid JSON", raw=text)


def provider_error_message(response: httpx.Response) -> str:
    """Extract the provider's error message from an OpenAI-style error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return response.reason_phrase


class LLMGateway:
    """Async client for the chat-completions endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        temperature: float = 0.7,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "LLMGateway":
        settings.require("OPENAI_API_KEY")
        return cls(
            api_key=settings.OPENAI_API_KEY,
            base_url=settings.OPENAI_BASE_URL,
            model=settings.OPENAI_MODEL,
            temperature=settings.OPENAI_TEMPERATURE,
            timeout=settings.LLM_TIMEOUT_SEC,
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

    async def _chat(self, system_prompt: str, user_message: str, json_mode: bool) -> str:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            "temperature": self.temperature,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        client = await self._get_client()
        start_time = time.monotonic()
        try:
            response = await client.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.TimeoutException as e:
            logger.error(f"[LLM] Request timed out after {self.timeout:.0f}s")
            raise UpstreamTimeoutError(f"LLM request timed out after {self.timeout:.0f}s") from e
        except httpx.HTTPError as e:
            logger.error(f"[LLM] Request failed: {e}")
            raise UpstreamError(f"LLM request failed: {e}") from e

        elapsed_ms = (time.monotonic() - start_time) * 1000
        if not response.is_success:
            message = provider_error_message(response)
            logger.error(f"[LLM] API error {response.status_code}: {message}")
            raise UpstreamError(
                f"OpenAI API error: {message}",
                details={"status": response.status_code},
            )

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except ValueError as e:
            raise UpstreamError("OpenAI API returned a non-JSON body") from e
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamError("OpenAI API response has no message content") from e

        if content is None:
            raise UpstreamError("OpenAI API response has no message content")

        logger.debug(f"[LLM] {self.model} responded in {elapsed_ms:.0f}ms ({len(content)} chars)")
        return content

    async def complete(self, system_prompt: str, user_message: str) -> str:
        """Run a plain text completion and return the message content."""
        return await self._chat(system_prompt, user_message, json_mode=False)

    async def complete_json(self, system_prompt: str, user_message: str) -> Any:
        """Run a JSON-mode completion and return the parsed value.

        Raises:
            MalformedResponseError: If the response is not valid JSON.
        """
        content = await self._chat(system_prompt, user_message, json_mode=True)
        return parse_json_text(content)

    async def complete_model(
        self,
        system_prompt: str,
        user_message: str,
        schema: type[ModelT],
    ) -> ModelT:
        """Run a JSON-mode completion validated against ``schema``.

        Unparseable or schema-mismatched output is retried once.

        Raises:
            MalformedResponseError: If both attempts fail.
        """
        last_error: MalformedResponseError | None = None
        for attempt in range(1, SCHEMA_ATTEMPTS + 1):
            try:
                data = await self.complete_json(system_prompt, user_message)
                if not isinstance(data, dict):
                    raise MalformedResponseError(
                        f"AI returned {type(data).__name__}, expected an object",
                        raw=json.dumps(data),
                    )
                return schema.model_validate(data)
            except SchemaValidationError as e:
                raw = json.dumps(data, default=str)
                logger.warning(
                    f"[LLM] {schema.__name__} validation failed (attempt {attempt}/{SCHEMA_ATTEMPTS}): "
                    f"{e.error_count()} error(s), raw={raw[:LOG_RAW_CHARS]!r}"
                )
                last_error = MalformedResponseError(
                    f"AI response did not match {schema.__name__}",
                    raw=raw,
                    details={"errors": e.errors(include_url=False, include_context=False, include_input=False)},
                )
            except MalformedResponseError as e:
                logger.warning(
                    f"[LLM] {schema.__name__} parse failed (attempt {attempt}/{SCHEMA_ATTEMPTS}): {e.message}, "
                    f"raw={e.raw[:LOG_RAW_CHARS]!r}"
                )
                last_error = e

        assert last_error is not None
        raise last_error
