"""Unit tests for ChatOrchestrator: pipeline sequencing and error mapping"""

from __future__ import annotations

import asyncio

import pytest

from portfolio.chat.orchestrator import (
    GENERIC_FAILURE_PREFIX,
    RATE_LIMITED_MESSAGE,
    UPSTREAM_UNAVAILABLE_MESSAGE,
    ChatOrchestrator,
    InvalidInputError,
)
from portfolio.chat.types import MessageClass
from portfolio.infrastructure.retry import RetriesExhaustedError
from portfolio.llm.gemini import (
    MissingApiKeyError,
    UpstreamRateLimitedError,
    UpstreamServerError,
)
from portfolio.observability.telemetry import counter


class StubClient:
    """Chat client that returns a fixed reply or raises a fixed error"""

    def __init__(self, reply: str = "Shivashanker builds React apps.", error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.prompts: list[str] = []

    async def send(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


def _handle(orchestrator: ChatOrchestrator, message, augment: bool = False):
    return asyncio.run(orchestrator.handle(message, augment))


def test_greeting_never_calls_upstream(portfolio_context):
    client = StubClient()
    outcome = _handle(ChatOrchestrator(portfolio_context, client), "hi")

    assert outcome.status_code == 200
    assert outcome.body == {"response": portfolio_context.greeting_reply}
    assert outcome.turn.classification is MessageClass.GREETING
    assert outcome.turn.short_circuited
    assert client.prompts == []


def test_off_topic_is_refused_without_upstream(portfolio_context):
    client = StubClient()
    outcome = _handle(ChatOrchestrator(portfolio_context, client), "What's the capital of France?")

    assert outcome.status_code == 200
    assert outcome.body == {"response": portfolio_context.off_topic_reply}
    assert client.prompts == []


@pytest.mark.parametrize("message", ["", "   ", None, 123, ["hi"]])
def test_invalid_input_is_400(portfolio_context, message):
    client = StubClient()
    outcome = _handle(ChatOrchestrator(portfolio_context, client), message)

    assert outcome.status_code == 400
    assert outcome.body == {"error": "Invalid message input"}
    assert client.prompts == []


def test_respond_raises_invalid_input(portfolio_context):
    orchestrator = ChatOrchestrator(portfolio_context, StubClient())

    with pytest.raises(InvalidInputError):
        asyncio.run(orchestrator.respond(""))


def test_on_topic_without_augment_sends_raw_message(portfolio_context):
    client = StubClient()
    outcome = _handle(ChatOrchestrator(portfolio_context, client), "What projects are there?")

    assert client.prompts == ["What projects are there?"]
    assert outcome.turn.augmented_prompt is None
    assert outcome.status_code == 200


def test_on_topic_with_augment_sends_built_prompt(portfolio_context):
    client = StubClient()
    outcome = _handle(
        ChatOrchestrator(portfolio_context, client), "What projects are there?", augment=True
    )

    assert len(client.prompts) == 1
    assert client.prompts[0].startswith(portfolio_context.prompt_marker)
    assert client.prompts[0] == outcome.turn.augmented_prompt
    assert "User's question: What projects are there?" in client.prompts[0]


def test_prebuilt_prompt_is_not_wrapped_twice(portfolio_context):
    client = StubClient()
    message = f"{portfolio_context.prompt_marker} website.\n\nUser's question: skills?"

    _handle(ChatOrchestrator(portfolio_context, client), message, augment=True)

    assert client.prompts == [message]


def test_upstream_text_is_post_processed(portfolio_context):
    client = StubClient(reply="I don't know.")
    outcome = _handle(ChatOrchestrator(portfolio_context, client), "Which database skills?")

    response = outcome.body["response"]
    assert response.startswith("I don't know.\n\nHere's what I do know about Shivashanker:")
    assert response.endswith("https://shivashanker.com")
    assert outcome.turn.upstream_raw_text == "I don't know."
    assert not outcome.turn.short_circuited


def test_upstream_rate_limit_maps_to_429(portfolio_context):
    client = StubClient(error=UpstreamRateLimitedError(429, "quota"))
    outcome = _handle(ChatOrchestrator(portfolio_context, client), "skills?")

    assert outcome.status_code == 429
    assert outcome.body == {"error": RATE_LIMITED_MESSAGE}


def test_exhausted_rate_limit_retries_map_to_429(portfolio_context):
    cause = UpstreamRateLimitedError(429, "quota")
    client = StubClient(error=RetriesExhaustedError("gemini.generate", 3, cause))
    outcome = _handle(ChatOrchestrator(portfolio_context, client), "skills?")

    assert outcome.status_code == 429
    assert outcome.body == {"error": RATE_LIMITED_MESSAGE}


def test_upstream_server_error_maps_to_500(portfolio_context):
    client = StubClient(error=UpstreamServerError(503, "overloaded"))
    outcome = _handle(ChatOrchestrator(portfolio_context, client), "skills?")

    assert outcome.status_code == 500
    assert outcome.body == {"error": UPSTREAM_UNAVAILABLE_MESSAGE}


def test_missing_key_maps_to_500_with_cause(portfolio_context):
    client = StubClient(error=MissingApiKeyError())
    outcome = _handle(ChatOrchestrator(portfolio_context, client), "skills?")

    assert outcome.status_code == 500
    assert outcome.body == {"error": GENERIC_FAILURE_PREFIX + "Gemini API key is missing"}
    assert counter("chat.failed", 0) == 1


def test_sensitive_failure_detail_is_sanitized(portfolio_context):
    client = StubClient(error=RuntimeError("bad key AIzaSyA1234567890abcdefghijklmnop"))
    outcome = _handle(ChatOrchestrator(portfolio_context, client), "skills?")

    assert outcome.status_code == 500
    assert "AIza" not in outcome.body["error"]
    assert outcome.body["error"].startswith(GENERIC_FAILURE_PREFIX)


def test_classification_counters(portfolio_context):
    orchestrator = ChatOrchestrator(portfolio_context, StubClient())

    _handle(orchestrator, "hello")
    _handle(orchestrator, "Tell me about the weather app")
    _handle(orchestrator, "Who won the football game?")

    assert counter("chat.classified.greeting", 0) == 1
    assert counter("chat.classified.on_topic", 0) == 1
    assert counter("chat.classified.off_topic", 0) == 1
