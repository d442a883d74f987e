"""Pydantic request/response models for the portfolio API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class ChatRequest(BaseModel):
    """
    Body of POST /api/chat.

    `message` is left untyped so a missing or non-string value reaches the
    orchestrator and gets the chat API's own 400 instead of a 422.
    """

    model_config = ConfigDict(populate_by_name=True)

    message: Any = None
    is_portfolio_question: bool = Field(default=False, alias="isPortfolioQuestion")


def parse_chat_request(raw_body: bytes) -> ChatRequest | None:
    """
    Decode a chat request body.

    Returns None for an absent body, invalid JSON, a non-object document or
    a non-boolean isPortfolioQuestion.
    """
    try:
        return ChatRequest.model_validate_json(raw_body)
    except ValidationError:
        return None


class ChatResponse(BaseModel):
    response: str


class ErrorResponse(BaseModel):
    """Error body used by the chat API."""

    error: str


class DbStatusResponse(BaseModel):
    solution: int
