"""
Gemini chat client (generativelanguage REST API over httpx).

One prompt in, one text out. Rate limiting (HTTP 429) is retried with
capped exponential backoff: 1s, 2s, 4s, ... up to 16s, bounded by
`retries` attempts. Every other failure propagates immediately.

The API key travels in the x-goog-api-key header, never in the URL.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from portfolio.config import (
    GEMINI_API_BASE,
    GEMINI_MAX_TOKENS,
    GEMINI_MODEL,
    GEMINI_TEMPERATURE,
    GEMINI_TOP_K,
    GEMINI_TOP_P,
    LLM_BACKOFF_BASE,
    LLM_BACKOFF_MAX,
    LLM_MAX_RETRIES,
    LLM_TIMEOUT_SECONDS,
    get_gemini_api_key,
)
from portfolio.infrastructure.retry import RetryPolicy, capped_exponential_backoff
from portfolio.observability.logging import get_logger
from portfolio.observability.telemetry import counter, log_event

logger = get_logger(__name__)


class GeminiError(RuntimeError):
    """Base class for Gemini client failures."""


class MissingApiKeyError(GeminiError):
    """Raised before any network call when GEMINI_API_KEY is not configured."""

    def __init__(self) -> None:
        super().__init__("Gemini API key is missing")


class UpstreamHTTPError(GeminiError):
    """Gemini answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"Gemini request failed with status {status_code}")
        self.status_code = status_code
        self.body = body


class UpstreamRateLimitedError(UpstreamHTTPError):
    """HTTP 429 from Gemini."""


class UpstreamServerError(UpstreamHTTPError):
    """HTTP 5xx from Gemini."""


class UpstreamUnavailableError(GeminiError):
    """Transport-level failure (DNS, connect, read timeout)."""


class MalformedUpstreamResponseError(GeminiError):
    """2xx response without candidates[0].content.parts."""


def build_generation_config(
    temperature: float = GEMINI_TEMPERATURE,
    top_k: int = GEMINI_TOP_K,
    top_p: float = GEMINI_TOP_P,
    max_output_tokens: int = GEMINI_MAX_TOKENS,
) -> dict[str, Any]:
    return {
        "temperature": temperature,
        "topK": top_k,
        "topP": top_p,
        "maxOutputTokens": max_output_tokens,
    }


def extract_text(data: Any) -> str:
    """
    Join the text parts of the first candidate with single spaces.

    Raises:
        MalformedUpstreamResponseError: missing candidates or empty parts
    """
    candidates = data.get("candidates") if isinstance(data, dict) else None
    if not isinstance(candidates, list) or not candidates:
        raise MalformedUpstreamResponseError("Unexpected response structure from Gemini API")

    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list) or not parts:
        raise MalformedUpstreamResponseError("Content parts are not in the expected format")

    return " ".join(
        str(part.get("text", "")) if isinstance(part, dict) else "" for part in parts
    )


def _raise_for_status(response: httpx.Response) -> None:
    status = response.status_code
    if status < 400:
        return
    body = response.text
    if status == 429:
        counter("gemini.rate_limited")
        raise UpstreamRateLimitedError(status, body)
    if status >= 500:
        counter("gemini.server_error")
        raise UpstreamServerError(status, body)
    counter("gemini.http_error")
    raise UpstreamHTTPError(status, body)


class GeminiChatClient:
    """Async Gemini generateContent client with 429 backoff."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        model: str = GEMINI_MODEL,
        api_base: str = GEMINI_API_BASE,
        retries: int = LLM_MAX_RETRIES,
        timeout: float = LLM_TIMEOUT_SECONDS,
        generation_config: dict[str, Any] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            api_key: Overrides GEMINI_API_KEY (read per call when None)
            retries: Total attempts allowed while Gemini keeps answering 429
            transport: Custom httpx transport (tests use httpx.MockTransport)
            sleep: Awaitable used for backoff waits
        """
        self._api_key = api_key
        self.model = model
        self.api_base = api_base.rstrip("/")
        self.retries = retries
        self.timeout = timeout
        self.generation_config = generation_config or build_generation_config()
        self._transport = transport
        self._sleep = sleep

    @property
    def api_key(self) -> str | None:
        return self._api_key or get_gemini_api_key()

    @property
    def endpoint(self) -> str:
        return f"{self.api_base}/models/{self.model}:generateContent"

    async def send(self, prompt: str) -> str:
        """
        Send a prompt and return the generated text.

        Raises:
            MissingApiKeyError: no key configured (no request is made)
            UpstreamHTTPError / UpstreamServerError: non-429 error status
            UpstreamUnavailableError: transport failure
            MalformedUpstreamResponseError: unexpected response shape
            RetriesExhaustedError: every attempt was rate limited

        Side Effects:
            - POSTs to the Gemini API (one request per attempt)
            - Sleeps between rate-limited attempts
        """
        api_key = self.api_key
        if not api_key:
            raise MissingApiKeyError()

        policy = RetryPolicy(
            stage="gemini.generate",
            max_attempts=self.retries,
            wait=capped_exponential_backoff(LLM_BACKOFF_BASE, LLM_BACKOFF_MAX),
            retry_on=(UpstreamRateLimitedError,),
            sleep=self._sleep,
        )
        return await policy.execute(self._generate_once, prompt, api_key)

    async def _generate_once(self, prompt: str, api_key: str) -> str:
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": self.generation_config,
        }
        headers = {"Content-Type": "application/json", "x-goog-api-key": api_key}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.post(self.endpoint, json=payload, headers=headers)
            except httpx.TimeoutException as e:
                counter("gemini.timeout")
                logger.warning("Gemini request timed out after %ss", self.timeout)
                raise UpstreamUnavailableError(f"Gemini request timed out after {self.timeout}s") from e
            except httpx.RequestError as e:
                counter("gemini.transport_error")
                logger.warning("Gemini transport error: %s", type(e).__name__)
                raise UpstreamUnavailableError(f"Gemini request failed: {type(e).__name__}") from e

        _raise_for_status(response)

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedUpstreamResponseError("Gemini returned a non-JSON body") from e

        text = extract_text(data)
        counter("gemini.success")
        log_event("gemini.generate.success", model=self.model, chars=len(text))
        return text
