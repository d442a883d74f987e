"""Centralized configuration for the portfolio backend.

Re-exports everything from portfolio.infrastructure.settings, then adds typed
constants for the database executor, the LLM client and rate limiting.
Environment variable overrides use safe defaults so the app starts without
extra env configuration.
"""

from __future__ import annotations

import os

from portfolio.infrastructure.settings import *  # noqa: F401, F403

# --- App ---
APP_VERSION: str = "1.0.0"

# --- Database ---
DB_CONNECT_TIMEOUT: int = int(os.getenv("PORTFOLIO_DB_CONNECT_TIMEOUT", "10"))
DB_QUERY_TIMEOUT: float = float(os.getenv("PORTFOLIO_DB_QUERY_TIMEOUT", "10.0"))
DB_QUERY_MAX_RETRIES: int = int(os.getenv("PORTFOLIO_DB_QUERY_MAX_RETRIES", "3"))
DB_RETRY_STEP: float = float(os.getenv("PORTFOLIO_DB_RETRY_STEP", "2.0"))
DB_RECONNECT_DELAY: float = float(os.getenv("PORTFOLIO_DB_RECONNECT_DELAY", "5.0"))
DB_HEALTH_TIMEOUT: float = 5.0

# --- LLM ---
LLM_TIMEOUT_SECONDS: int = int(os.getenv("PORTFOLIO_LLM_TIMEOUT", "30"))
LLM_MAX_RETRIES: int = int(os.getenv("PORTFOLIO_LLM_MAX_RETRIES", "3"))
LLM_BACKOFF_BASE: float = 1.0
LLM_BACKOFF_MAX: float = 16.0

# --- Rate Limiting (chat endpoint) ---
RATE_LIMIT_RPM: int = int(os.getenv("PORTFOLIO_CHAT_RPM", "10"))
RATE_LIMIT_RPH: int = int(os.getenv("PORTFOLIO_CHAT_RPH", "200"))
RATE_LIMIT_MAX_IPS: int = 10000
RATE_LIMITED_PATHS: tuple[str, ...] = ("/api/chat",)
# Reverse proxies in front of the app that append to X-Forwarded-For (Render: 1).
# 0 means the socket peer address is the client IP.
TRUSTED_PROXY_HOPS: int = int(os.getenv("PORTFOLIO_TRUSTED_PROXY_HOPS", "0"))
