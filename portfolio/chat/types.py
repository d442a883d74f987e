"""
Module: types
Purpose: Shared types for the chat pipeline.

Kept in a leaf module so classifier, prompts, postprocess and the
orchestrator can all import them without cycles.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class MessageClass(str, Enum):
    GREETING = "greeting"
    ON_TOPIC = "on_topic"
    OFF_TOPIC = "off_topic"


@dataclass
class ChatTurn:
    """One request through the pipeline. Never persisted."""

    raw_message: str
    classification: MessageClass
    augmented_prompt: str | None = None
    upstream_raw_text: str | None = None
    final_text: str = ""

    @property
    def short_circuited(self) -> bool:
        """True when the reply was canned and Gemini was never called."""
        return self.upstream_raw_text is None
