"""
Prompt builder: wraps a visitor question in the full portfolio context.

The output is deterministic for a given (message, context) pair.
"""

from __future__ import annotations

from portfolio.chat.context import PortfolioContext

PROMPT_RULES = """IMPORTANT RULES:
1. ALWAYS provide specific information directly from the portfolio context above
2. NEVER start your response with "visit the website" or similar phrases
3. Respond first with detailed information and only mention the website at the end of your response
4. Always include actual portfolio details (projects, skills, experience) in your response
5. Only suggest visiting the website for more details after providing an informative answer
6. For general greetings, respond in a friendly and professional manner
7. IF THE QUERY IS NOT ABOUT {owner}'S PORTFOLIO, SKILLS, PROJECTS, OR EXPERIENCE, respond with: "{off_topic}"
8. Use markdown formatting to make your responses more readable when appropriate"""


def _projects_block(context: PortfolioContext) -> str:
    return "\n\n".join(
        f"- {project.name}: {project.description}\n"
        f"  Technologies: {project.technologies}\n"
        f"  Link: {project.link}"
        for project in context.projects
    )


def _experience_block(context: PortfolioContext) -> str:
    return "\n\n".join(
        f"- {exp.position} at {exp.company} ({exp.duration})\n  {exp.responsibilities}"
        for exp in context.experience
    )


def _education_block(context: PortfolioContext) -> str:
    return "\n\n".join(
        f"- {edu.degree} from {edu.institution} ({edu.year})" for edu in context.education
    )


def build_prompt(user_message: str, context: PortfolioContext) -> str:
    """Render the augmented prompt sent to Gemini for on-topic questions."""
    rules = PROMPT_RULES.format(owner=context.name.upper(), off_topic=context.off_topic_reply)

    sections = [
        f"{context.prompt_marker} website.",
        "DETAILED PORTFOLIO INFORMATION:",
        f"ABOUT {context.name.upper()}:\nName: {context.name}\nRole: {context.role}",
        "SKILLS:\n" + "\n".join(context.skills),
        "PROJECTS:\n" + _projects_block(context),
        "PROFESSIONAL EXPERIENCE:\n" + _experience_block(context),
        "EDUCATION:\n" + _education_block(context),
        f"AI FEATURES IN PORTFOLIO:\n{context.ai_features}",
        f"CONTACT INFORMATION:\n{context.contact_info}",
        f"WEBSITE:\n{context.website}",
        rules,
        f"User's question: {user_message}",
        (
            "Respond in a helpful, professional tone with SPECIFIC DETAILS from the portfolio "
            "information above. Do NOT just refer them to the website."
        ),
    ]
    return "\n\n".join(sections)
