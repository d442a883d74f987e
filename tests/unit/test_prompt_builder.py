"""Unit tests for the augmented prompt builder"""

from __future__ import annotations

from portfolio.chat.prompts import build_prompt


def test_prompt_starts_with_marker(portfolio_context):
    prompt = build_prompt("What projects are there?", portfolio_context)

    assert prompt.startswith(portfolio_context.prompt_marker)


def test_prompt_contains_every_section_in_order(portfolio_context):
    prompt = build_prompt("What projects are there?", portfolio_context)

    headings = [
        "DETAILED PORTFOLIO INFORMATION:",
        "ABOUT SHIVASHANKER:",
        "SKILLS:",
        "PROJECTS:",
        "PROFESSIONAL EXPERIENCE:",
        "EDUCATION:",
        "AI FEATURES IN PORTFOLIO:",
        "CONTACT INFORMATION:",
        "WEBSITE:",
        "IMPORTANT RULES:",
        "User's question: What projects are there?",
    ]
    positions = [prompt.index(heading) for heading in headings]
    assert positions == sorted(positions)


def test_prompt_embeds_portfolio_facts(portfolio_context):
    prompt = build_prompt("Tell me about the experience", portfolio_context)

    for project in portfolio_context.projects:
        assert f"- {project.name}: {project.description}" in prompt
        assert f"Technologies: {project.technologies}" in prompt
    for exp in portfolio_context.experience:
        assert f"{exp.position} at {exp.company} ({exp.duration})" in prompt
    assert "Bachelor of Technology in Computer Science from Technical University (2020)" in prompt
    assert portfolio_context.website in prompt


def test_prompt_includes_off_topic_instruction(portfolio_context):
    prompt = build_prompt("skills?", portfolio_context)

    assert "IF THE QUERY IS NOT ABOUT SHIVASHANKER'S PORTFOLIO" in prompt
    assert portfolio_context.off_topic_reply in prompt


def test_prompt_is_deterministic(portfolio_context):
    assert build_prompt("skills?", portfolio_context) == build_prompt("skills?", portfolio_context)


def test_prompt_ends_with_response_instruction(portfolio_context):
    prompt = build_prompt("skills?", portfolio_context)

    assert prompt.endswith("Do NOT just refer them to the website.")
