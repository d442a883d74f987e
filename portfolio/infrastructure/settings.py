"""
Application-wide settings and environment configuration
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

# Apply .env before the module-level reads below; real env vars take precedence
load_dotenv(find_dotenv(usecwd=True))

# Project paths
PORTFOLIO_ROOT = Path(__file__).parent.parent
DATA_DIR = PORTFOLIO_ROOT / "data"

# Environment
ENV = os.getenv("PORTFOLIO_ENV", os.getenv("NODE_ENV", "development"))

# API Configuration
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("PORT", "8081"))

# Front-end origins allowed to call the API (comma separated override)
DEFAULT_CORS_ORIGINS = (
    "http://localhost:3000",
    "https://shivashanker.com",
    "https://shivashankerportfolio.netlify.app",
)
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", ",".join(DEFAULT_CORS_ORIGINS)).split(",")
    if origin.strip()
]

# Gemini (generativelanguage REST API)
GEMINI_API_BASE = os.getenv(
    "GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta"
)
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash-latest")
GEMINI_TEMPERATURE = float(os.getenv("GEMINI_TEMPERATURE", "0.3"))
GEMINI_TOP_K = int(os.getenv("GEMINI_TOP_K", "40"))
GEMINI_TOP_P = float(os.getenv("GEMINI_TOP_P", "0.8"))
GEMINI_MAX_TOKENS = int(os.getenv("GEMINI_MAX_TOKENS", "1500"))

# MySQL
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = int(os.getenv("DB_PORT", "3306"))
DB_USER = os.getenv("DB_USER", "root")
DB_DATABASE = os.getenv("DB_DATABASE", "portfolio")

# Static portfolio facts used by the chat assistant
PORTFOLIO_CONTEXT_PATH = Path(
    os.getenv("PORTFOLIO_CONTEXT_PATH", str(DATA_DIR / "portfolio_context.json"))
)


def get_gemini_api_key() -> str | None:
    """Read the Gemini key at call time so rotated secrets are picked up."""
    return os.getenv("GEMINI_API_KEY") or None


def get_db_password() -> str:
    return os.getenv("DB_PASSWORD", "")


def is_production() -> bool:
    """Check if running in production"""
    return ENV == "production"
