"""
Static portfolio facts the assistant answers from.

Loaded once from portfolio/data/portfolio_context.json (or
PORTFOLIO_CONTEXT_PATH), validated into frozen models and shared
process-wide. Nothing mutates it at runtime.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from portfolio.config import PORTFOLIO_CONTEXT_PATH
from portfolio.observability.logging import get_logger

logger = get_logger(__name__)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class Project(_Frozen):
    name: str
    description: str
    technologies: str
    link: str


class Experience(_Frozen):
    position: str
    company: str
    duration: str
    responsibilities: str


class Education(_Frozen):
    degree: str
    institution: str
    year: str


class PortfolioContext(_Frozen):
    name: str = Field(min_length=1)
    role: str
    website: str = Field(min_length=1, description="Canonical portfolio URL")
    skills: tuple[str, ...] = ()
    projects: tuple[Project, ...] = ()
    experience: tuple[Experience, ...] = ()
    education: tuple[Education, ...] = ()
    ai_features: str = ""
    contact_info: str = ""
    keywords: tuple[str, ...] = Field(
        default=(), description="Extra on-topic keywords (owner name, project names)"
    )

    @property
    def prompt_marker(self) -> str:
        """Opening line of every augmented prompt; identifies already-built prompts."""
        return f"You are an AI assistant for {self.name}'s portfolio"

    @property
    def greeting_reply(self) -> str:
        return (
            f"Hi there! I'm {self.name}'s portfolio assistant. I can help answer questions "
            f"about {self.name}'s skills, projects, and experience. How can I assist you today?"
        )

    @property
    def off_topic_reply(self) -> str:
        return (
            f"I'm sorry, but I'm only designed to help with questions about {self.name}'s "
            "portfolio, skills, projects, and experience. I can't assist with other topics. "
            f"Feel free to ask me anything about {self.name}'s work!"
        )


def load_portfolio_context(path: Path | str) -> PortfolioContext:
    """
    Read and validate a portfolio context JSON file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        pydantic.ValidationError: If the document doesn't match the schema
    """
    context_path = Path(path)
    if not context_path.exists():
        raise FileNotFoundError(f"Portfolio context not found: {context_path}")

    context = PortfolioContext.model_validate_json(context_path.read_text(encoding="utf-8"))
    logger.info(
        "Loaded portfolio context for %s (%d skills, %d projects)",
        context.name,
        len(context.skills),
        len(context.projects),
    )
    return context


@lru_cache(maxsize=1)
def get_portfolio_context() -> PortfolioContext:
    """Process-wide context, loaded on first use."""
    return load_portfolio_context(PORTFOLIO_CONTEXT_PATH)
