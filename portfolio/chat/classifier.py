"""
Message classifier for the chat assistant.

Keyword heuristics only: no stemming, no negation handling. "codebase"
counts as on-topic because it contains "code"; that is accepted behaviour.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from portfolio.chat.types import MessageClass
from portfolio.observability.logging import get_logger

logger = get_logger(__name__)

GREETING_WORDS: tuple[str, ...] = (
    "hi",
    "hey",
    "hello",
    "hai",
    "hallo",
    "hola",
    "greetings",
    "yo",
    "sup",
    "howdy",
    "hei",
    "hiya",
    "heya",
)

GREETING_PHRASES: tuple[str, ...] = (
    "how are you",
    "how r u",
    "how r you",
    "how you doing",
    "how is it going",
    "how's it going",
    "whats up",
    "what's up",
    "good morning",
    "good afternoon",
    "good evening",
    "good day",
    "nice to meet",
    "pleased to meet",
)

PORTFOLIO_KEYWORDS: tuple[str, ...] = (
    "portfolio",
    "project",
    "skill",
    "experience",
    "resume",
    "work",
    "technology",
    "tech stack",
    "frontend",
    "backend",
    "database",
    "react",
    "node",
    "javascript",
    "python",
    "django",
    "mongodb",
    "mysql",
    "postgresql",
    "aws",
    "netlify",
    "render",
    "git",
    "education",
    "contact",
    "job",
    "role",
    "developer",
    "programming",
    "code",
    "web",
    "website",
    "app",
    "application",
)

# Greeting word at the start, followed by end of text or a word boundary
_GREETING_PREFIX = re.compile(
    r"^(?:" + "|".join(re.escape(word) for word in GREETING_WORDS) + r")\b"
)


def _normalize(text: str) -> str:
    return text.strip().lower()


def detect_greeting(text: object) -> bool:
    """True for "hi", "hello there", "good morning!"; False for "hell" or "history"."""
    if not isinstance(text, str):
        return False

    normalized = _normalize(text)
    if not normalized:
        return False

    if _GREETING_PREFIX.match(normalized):
        logger.debug("Greeting word match: %r", normalized[:40])
        return True

    if any(phrase in normalized for phrase in GREETING_PHRASES):
        logger.debug("Greeting phrase match: %r", normalized[:40])
        return True

    return False


def is_portfolio_related(text: object, extra_keywords: Iterable[str] = ()) -> bool:
    """Substring match against the portfolio keyword lexicon (plus extra_keywords)."""
    if not isinstance(text, str):
        return False

    normalized = _normalize(text)
    if any(keyword in normalized for keyword in PORTFOLIO_KEYWORDS):
        return True
    return any(keyword.lower() in normalized for keyword in extra_keywords if keyword)


def classify_message(
    text: str,
    extra_keywords: Iterable[str] = (),
    prompt_marker: str | None = None,
) -> MessageClass:
    """
    Greeting first, then topic.

    A message that already carries prompt_marker (a prompt built by
    build_prompt) is on-topic regardless of keywords.
    """
    if detect_greeting(text):
        return MessageClass.GREETING
    if is_portfolio_related(text, extra_keywords):
        return MessageClass.ON_TOPIC
    if prompt_marker and prompt_marker in text:
        return MessageClass.ON_TOPIC
    return MessageClass.OFF_TOPIC
