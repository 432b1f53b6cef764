"""
Central AI Manager service for handling interactions with the OpenAI API.
"""

import re
import json
import asyncio
from typing import Any, AsyncIterator, Dict, List, Optional
import openai

from core.config import settings
from core.exceptions import AIServiceException
from core.logging import llm_logger

logger = llm_logger

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```")


class AIRetryConfig:
    """Configuration for AI service retry logic."""

    def __init__(
        self,
        max_retries: int = 2,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        backoff_multiplier: float = 2.0,
        timeout_seconds: float = 180.0,
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.backoff_multiplier = backoff_multiplier
        self.timeout_seconds = timeout_seconds


def parse_json_response(text: Optional[str]) -> Optional[Any]:
    """
    Parse a model reply that should be JSON.

    Tries the whole string, then a fenced ```json block, then the span from
    the first ``{`` to the last ``}``. Returns None if nothing parses.
    """
    if not text:
        return None
    candidates = [text.strip()]
    fenced = _FENCED_JSON.search(text)
    if fenced:
        candidates.append(fenced.group(1))
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
    return None


class AIManager:
    """
    Central manager for OpenAI interactions.

    This class handles:
    - Lazily building the async OpenAI client from settings
    - Chat completions returning text or loose JSON
    - Streaming completions as plain text deltas
    - Speech synthesis and file uploads
    - Retry with exponential backoff, surfacing AIServiceException when exhausted
    """

    def __init__(self, client: Any = None, retry_config: Optional[AIRetryConfig] = None):
        self._client = client
        self.retry_config = retry_config or AIRetryConfig(
            max_retries=settings.openai_max_retries,
            timeout_seconds=settings.openai_timeout_seconds,
        )

    @property
    def client(self) -> Any:
        if self._client is None:
            if not settings.openai_api_key:
                raise AIServiceException(detail="Missing OPENAI_API_KEY", status_code=500)
            # Retries are handled here, not inside the SDK
            self._client = openai.AsyncOpenAI(api_key=settings.openai_api_key, max_retries=0)
            logger.info("OpenAI client initialized")
        return self._client

    def ensure_configured(self) -> None:
        """Raise the missing-key error now rather than partway through a stream."""
        _ = self.client

    async def _retry_with_backoff(self, func, *args, **kwargs):
        """
        Execute a coroutine function with exponential backoff retry logic.
        """
        last_exception = None

        for attempt in range(self.retry_config.max_retries + 1):
            try:
                return await asyncio.wait_for(
                    func(*args, **kwargs), timeout=self.retry_config.timeout_seconds
                )
            except asyncio.TimeoutError as e:
                last_exception = e
                logger.warning(
                    "AI request timeout",
                    attempt=attempt + 1,
                    timeout=self.retry_config.timeout_seconds,
                )
            except (openai.AuthenticationError, openai.BadRequestError, openai.PermissionDeniedError) as e:
                # Retrying will not change the answer
                logger.error("AI request rejected", error=str(e))
                raise AIServiceException(detail=f"OpenAI rejected the request: {e}")
            except Exception as e:
                last_exception = e
                logger.warning("AI request failed", attempt=attempt + 1, error=str(e))

            if attempt < self.retry_config.max_retries:
                delay = min(
                    self.retry_config.base_delay * (self.retry_config.backoff_multiplier ** attempt),
                    self.retry_config.max_delay,
                )
                logger.info("Retrying AI request", delay_seconds=delay, attempt=attempt + 1)
                await asyncio.sleep(delay)

        logger.error("All AI request retries exhausted", error=str(last_exception))
        if isinstance(last_exception, asyncio.TimeoutError):
            raise AIServiceException(
                detail=f"AI request timeout after {self.retry_config.timeout_seconds} seconds"
            )
        raise AIServiceException(
            detail=f"AI request failed after {self.retry_config.max_retries} retries: {last_exception}"
        )

    async def chat_text(
        self,
        messages: List[Dict[str, Any]],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        response_format: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Run a chat completion and return the first choice's text ("" if empty)."""
        params: Dict[str, Any] = {"model": model or settings.openai_fast_model, "messages": messages}
        if temperature is not None:
            params["temperature"] = temperature
        if max_tokens is not None:
            params["max_tokens"] = max_tokens
        if response_format is not None:
            params["response_format"] = response_format

        logger.info(
            "Starting chat completion",
            model=params["model"],
            response_format=(response_format or {}).get("type", "text"),
        )
        completion = await self._retry_with_backoff(self.client.chat.completions.create, **params)
        choices = getattr(completion, "choices", None) or []
        if not choices:
            return ""
        return (choices[0].message.content or "").strip()

    async def chat_json(self, messages: List[Dict[str, Any]], **kwargs) -> Any:
        """Chat completion in json_object mode; raises if the reply is not JSON."""
        kwargs.setdefault("response_format", {"type": "json_object"})
        raw = await self.chat_text(messages, **kwargs)
        parsed = parse_json_response(raw)
        if parsed is None:
            logger.warning("Model returned invalid JSON", raw_preview=raw[:200])
            raise AIServiceException(detail="Model returned invalid JSON")
        return parsed

    async def stream_chat(
        self,
        messages: List[Dict[str, Any]],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[str]:
        """Yield text deltas from a streaming chat completion."""
        params: Dict[str, Any] = {
            "model": model or settings.openai_lesson_model,
            "messages": messages,
            "stream": True,
        }
        if temperature is not None:
            params["temperature"] = temperature
        if max_tokens is not None:
            params["max_tokens"] = max_tokens

        logger.info("Starting streaming completion", model=params["model"])
        stream = await self._retry_with_backoff(self.client.chat.completions.create, **params)
        async for chunk in stream:
            choices = getattr(chunk, "choices", None) or []
            if not choices:
                continue
            content = getattr(choices[0].delta, "content", None)
            if content:
                yield content

    async def text_to_speech(self, text: str) -> bytes:
        """Synthesize ``text`` to MP3 bytes."""
        response = await self._retry_with_backoff(
            self.client.audio.speech.create,
            model=settings.openai_tts_model,
            voice=settings.openai_tts_voice,
            input=text,
        )
        return response.content

    async def upload_file(self, filename: str, content: bytes, purpose: str = "assistants") -> str:
        """Upload raw bytes to OpenAI file storage and return the file id."""
        uploaded = await self._retry_with_backoff(
            self.client.files.create, file=(filename, content), purpose=purpose
        )
        logger.info("File uploaded to OpenAI", file_name=filename, file_id=uploaded.id)
        return uploaded.id


def get_ai_manager() -> AIManager:
    """FastAPI dependency; tests override it with a stubbed client."""
    return AIManager()
