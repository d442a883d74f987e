"""
Chat endpoint orchestrator.

Sequences one request through the pipeline:

    validate -> classify -> (canned reply | build prompt -> Gemini -> post-process)

and is the only place that turns pipeline failures into HTTP status codes
and client-facing messages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from portfolio.chat.classifier import classify_message
from portfolio.chat.context import PortfolioContext
from portfolio.chat.postprocess import PostProcessOptions, post_process
from portfolio.chat.prompts import build_prompt
from portfolio.chat.types import ChatTurn, MessageClass
from portfolio.infrastructure.retry import RetriesExhaustedError
from portfolio.llm.gemini import UpstreamRateLimitedError, UpstreamServerError
from portfolio.observability.logging import get_logger
from portfolio.observability.telemetry import counter, log_event, time_block
from portfolio.utils.error_sanitizer import get_safe_error_detail

logger = get_logger(__name__)

INVALID_INPUT_MESSAGE = "Invalid message input"
RATE_LIMITED_MESSAGE = "Rate limit exceeded, please try again later."
UPSTREAM_UNAVAILABLE_MESSAGE = "Internal server error from Gemini. Please try again later."
GENERIC_FAILURE_PREFIX = "Unable to get a response from Gemini. "


class InvalidInputError(ValueError):
    """Message missing, not a string, or blank."""


class ChatClient(Protocol):
    async def send(self, prompt: str) -> str: ...


@dataclass
class ChatOutcome:
    status_code: int
    body: dict[str, Any]
    turn: ChatTurn | None = field(default=None, repr=False)


def _preview(message: str, limit: int = 80) -> str:
    flat = " ".join(message.split())
    return flat if len(flat) <= limit else f"{flat[:limit]}..."


def _is_rate_limited(error: BaseException) -> bool:
    if isinstance(error, UpstreamRateLimitedError):
        return True
    return isinstance(error, RetriesExhaustedError) and isinstance(
        error.cause, UpstreamRateLimitedError
    )


class ChatOrchestrator:
    def __init__(
        self,
        context: PortfolioContext,
        client: ChatClient,
        options: PostProcessOptions | None = None,
    ):
        self.context = context
        self.client = client
        self.options = options or PostProcessOptions()

    async def respond(self, message: Any, augment: bool = False) -> ChatTurn:
        """
        Run one message through the pipeline.

        Raises:
            InvalidInputError: message absent, non-text or blank
            Any error from the chat client (see GeminiChatClient.send)
        """
        if not isinstance(message, str) or not message.strip():
            raise InvalidInputError(INVALID_INPUT_MESSAGE)

        logger.info("Received message: %r", _preview(message))

        classification = classify_message(
            message,
            extra_keywords=self.context.keywords,
            prompt_marker=self.context.prompt_marker,
        )
        counter(f"chat.classified.{classification.value}")
        turn = ChatTurn(raw_message=message, classification=classification)

        if classification is MessageClass.GREETING:
            turn.final_text = self.context.greeting_reply
            return turn

        if classification is MessageClass.OFF_TOPIC:
            turn.final_text = self.context.off_topic_reply
            return turn

        prompt = message
        if augment and self.context.prompt_marker not in message:
            turn.augmented_prompt = build_prompt(message, self.context)
            prompt = turn.augmented_prompt

        with time_block("chat.upstream.latency"):
            turn.upstream_raw_text = await self.client.send(prompt)

        turn.final_text = post_process(turn.upstream_raw_text, self.context, self.options)
        return turn

    async def handle(self, message: Any, augment: bool = False) -> ChatOutcome:
        """
        respond() plus failure mapping: 400 invalid input, 429 rate limited,
        500 upstream 5xx, 500 anything else (with a sanitized cause).
        """
        try:
            turn = await self.respond(message, augment)
        except InvalidInputError as e:
            return ChatOutcome(400, {"error": str(e)})
        except Exception as e:
            return self._failure_outcome(e)

        log_event(
            "chat.reply",
            classification=turn.classification.value,
            augmented=turn.augmented_prompt is not None,
            chars=len(turn.final_text),
        )
        return ChatOutcome(200, {"response": turn.final_text}, turn)

    def _failure_outcome(self, error: Exception) -> ChatOutcome:
        counter("chat.failed")
        if _is_rate_limited(error):
            logger.warning("Gemini rate limit persisted: %s", error)
            return ChatOutcome(429, {"error": RATE_LIMITED_MESSAGE})
        if isinstance(error, UpstreamServerError):
            logger.error("Gemini server error %d", error.status_code)
            return ChatOutcome(500, {"error": UPSTREAM_UNAVAILABLE_MESSAGE})

        detail = get_safe_error_detail(error, 500)
        return ChatOutcome(500, {"error": GENERIC_FAILURE_PREFIX + detail})
