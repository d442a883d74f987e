"""
Chat assistant pipeline: classify -> build prompt -> call Gemini -> post-process.
"""

from portfolio.chat.classifier import classify_message, detect_greeting, is_portfolio_related
from portfolio.chat.context import PortfolioContext, get_portfolio_context, load_portfolio_context
from portfolio.chat.orchestrator import ChatOrchestrator, ChatOutcome, InvalidInputError
from portfolio.chat.postprocess import PostProcessOptions, post_process
from portfolio.chat.prompts import build_prompt
from portfolio.chat.types import ChatTurn, MessageClass

__all__ = [
    "ChatOrchestrator",
    "ChatOutcome",
    "ChatTurn",
    "InvalidInputError",
    "MessageClass",
    "PortfolioContext",
    "PostProcessOptions",
    "build_prompt",
    "classify_message",
    "detect_greeting",
    "get_portfolio_context",
    "is_portfolio_related",
    "load_portfolio_context",
    "post_process",
]
