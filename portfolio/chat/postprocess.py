"""
Post-processing for Gemini answers.

Rules run in order and the first one that returns text wins. Order matters:
a refusal that also contains the website URL must become the off-topic
reply, not a "Based on the portfolio" answer. Each rule can be switched
off through PostProcessOptions.

Only applied to upstream text; canned greeting/off-topic replies bypass it.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from portfolio.chat.context import PortfolioContext
from portfolio.observability.telemetry import counter

SHORT_ANSWER_CHARS = 200
SHORT_SEGMENT_CHARS = 50

REFUSAL_APOLOGY = "i'm sorry"
REFUSAL_MARKERS = ("can't assist", "cannot assist", "only designed to help")
GENERIC_VISIT_PHRASE = "visit the website for more"
KNOWLEDGE_GAP_MARKERS = ("i don't have", "i don't know", "not specified")


@dataclass(frozen=True)
class PostProcessOptions:
    rewrite_refusals: bool = True
    expand_canned_topics: bool = True
    frame_website_mentions: bool = True
    fill_knowledge_gaps: bool = True
    append_website_suffix: bool = True


Rule = Callable[[str, PortfolioContext], "str | None"]


def _rewrite_refusal(text: str, context: PortfolioContext) -> str | None:
    lowered = text.lower()
    if REFUSAL_APOLOGY in lowered and any(marker in lowered for marker in REFUSAL_MARKERS):
        return context.off_topic_reply
    return None


def _expand_canned_topic(text: str, context: PortfolioContext) -> str | None:
    lowered = text.lower()
    if context.website not in text:
        return None
    if len(text) >= SHORT_ANSWER_CHARS and GENERIC_VISIT_PHRASE not in lowered:
        return None

    if "recent projects" in lowered:
        project_info = "\n\n".join(
            f"- **{p.name}**: {p.description} (Technologies: {p.technologies})"
            for p in context.projects
        )
        return (
            f"Here are {context.name}'s recent projects:\n\n{project_info}\n\n"
            f"You can view these projects in more detail at {context.website}"
        )

    if "tech stack" in lowered or "skills" in lowered:
        return (
            f"{context.name} specializes in the following technologies:\n\n"
            + "\n".join(context.skills)
            + f"\n\nFor more details about these skills, you can visit {context.website}"
        )

    if "ai" in lowered or "assistance" in lowered:
        return (
            f"{context.ai_features}\n\n"
            f"You can experience this AI assistant directly at {context.website}"
        )

    skills = ", ".join(context.skills[:3])
    projects = ", ".join(p.name for p in context.projects)
    return (
        f"{text}\n\n{context.name}'s portfolio showcases skills including {skills} "
        f"and projects like {projects}. You can explore more at {context.website}"
    )


def _frame_website_mention(text: str, context: PortfolioContext) -> str | None:
    if context.website not in text:
        return None

    parts = text.split(context.website)
    before = parts[0]
    if (
        len(before.strip()) < SHORT_SEGMENT_CHARS
        or "visit" in before.lower()
        or "check" in before.lower()
    ):
        return f"Based on {context.name}'s portfolio:\n\n{text}"

    if len(parts) > 1 and len(parts[-1].strip()) < SHORT_SEGMENT_CHARS:
        return (
            f"{before} {context.website}\n\n"
            f"Feel free to ask more questions about {context.name}'s skills or projects!"
        )

    return None


def _fill_knowledge_gap(text: str, context: PortfolioContext) -> str | None:
    lowered = text.lower()
    if not any(marker in lowered for marker in KNOWLEDGE_GAP_MARKERS):
        return None

    skills = ", ".join(context.skills[:3])
    projects = " and ".join(p.name for p in context.projects[:2])
    return (
        f"{text}\n\nHere's what I do know about {context.name}:\n"
        f"- Role: {context.role} with skills in {skills}\n"
        f"- Projects include {projects}\n\n"
        f"For more specific information, you can visit {context.website}"
    )


def _append_website_suffix(text: str, context: PortfolioContext) -> str | None:
    if context.website in text:
        return None
    return f"{text}\n\nFor more information, visit {context.name}'s portfolio at {context.website}"


def _active_rules(options: PostProcessOptions) -> list[tuple[str, Rule]]:
    rules: list[tuple[str, bool, Rule]] = [
        ("refusal", options.rewrite_refusals, _rewrite_refusal),
        ("canned_topic", options.expand_canned_topics, _expand_canned_topic),
        ("website_framing", options.frame_website_mentions, _frame_website_mention),
        ("knowledge_gap", options.fill_knowledge_gaps, _fill_knowledge_gap),
        ("website_suffix", options.append_website_suffix, _append_website_suffix),
    ]
    return [(name, rule) for name, enabled, rule in rules if enabled]


def post_process(
    text: str,
    context: PortfolioContext,
    options: PostProcessOptions | None = None,
) -> str:
    """
    Rewrite a raw Gemini answer before it reaches the visitor.

    Side Effects:
        - Increments chat.postprocess.<rule> counter for the rule that fired
    """
    for name, rule in _active_rules(options or PostProcessOptions()):
        rewritten = rule(text, context)
        if rewritten is not None:
            counter(f"chat.postprocess.{name}")
            return rewritten

    counter("chat.postprocess.unchanged")
    return text
