"""
Error message sanitization utility.

Error text that reaches a client goes through here first so API keys,
file paths and SQL details never leave the process.
"""

from __future__ import annotations

import re

from portfolio.observability.logging import get_logger

logger = get_logger(__name__)

# Patterns that might leak sensitive information
SENSITIVE_PATTERNS = [
    # File paths
    r"/[^\s]+\.py",
    r"[A-Za-z]:\\[^\s]+",
    # Stack trace indicators
    r"Traceback \(most recent call last\)",
    r"File \".*\"",
    # Database errors
    r"pymysql",
    r"\bSQL\b",
    r"Access denied for user",
    # API keys / secrets patterns
    r"AIza[0-9A-Za-z_-]{20,}",  # Google API keys
    r"[?&]key=",
    r"Bearer [A-Za-z0-9._-]+",
    # Internal module names
    r"portfolio\.[a-z_.]+",
]

GENERIC_MESSAGES = {
    400: "Invalid request. Please check your input and try again.",
    422: "Invalid data format.",
    429: "Too many requests. Please try again later.",
    500: "An internal error occurred. Please try again later.",
    503: "Service temporarily unavailable.",
}


def sanitize_error_message(message: str, status_code: int = 500) -> str:
    """
    Return message unchanged if it looks safe, else the generic message for status_code.

    Args:
        message: The original error message
        status_code: HTTP status code (used to select generic fallback)
    """
    if not message:
        return GENERIC_MESSAGES.get(status_code, "An error occurred.")

    for pattern in SENSITIVE_PATTERNS:
        if re.search(pattern, message, re.IGNORECASE):
            logger.warning("Sanitized sensitive error pattern: %s", pattern)
            return GENERIC_MESSAGES.get(status_code, "An error occurred.")

    if len(message) > 200 or "\n" in message:
        return GENERIC_MESSAGES.get(status_code, "An error occurred.")

    return message


def get_safe_error_detail(error: BaseException, status_code: int = 500) -> str:
    """
    Log the full error and return a client-safe message for it.

    Side Effects:
        - Writes the unsanitized error to the log (error level)
    """
    logger.error("Error (status=%d): %s - %s", status_code, type(error).__name__, str(error))
    return sanitize_error_message(str(error), status_code)
