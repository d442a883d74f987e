"""Health and database status endpoints.

- GET /health - Service health including Gemini key presence
- GET /health/db - Query executor health check and connection state
- GET /db-status - Trivial arithmetic query through the executor
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from portfolio.api.models import DbStatusResponse
from portfolio.config import APP_VERSION, get_gemini_api_key
from portfolio.infrastructure.database import QueryExecutor
from portfolio.infrastructure.retry import RetriesExhaustedError
from portfolio.observability.logging import get_logger
from portfolio.observability.telemetry import get_latency_stats

router = APIRouter(tags=["health"])
logger = get_logger(__name__)

_executor: QueryExecutor | None = None


def set_query_executor(executor: QueryExecutor) -> None:
    """Inject the query executor dependency.

    Side Effects:
        - Sets module-level _executor variable
    """
    global _executor
    _executor = executor


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Service status, version and Gemini credential presence (no API call)."""
    return {
        "status": "healthy",
        "service": "Portfolio API",
        "version": APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "llm": {
            "ready": bool(get_gemini_api_key()),
            "latency": get_latency_stats("chat.upstream.latency"),
        },
    }


@router.get("/health/db")
async def database_health() -> JSONResponse:
    """Run the executor health check; 503 when unhealthy."""
    if _executor is None:
        return JSONResponse(status_code=503, content={"status": "unhealthy", "reason": "not configured"})

    health = await _executor.health_check()
    return JSONResponse(
        status_code=200 if health.healthy else 503,
        content={
            "status": "healthy" if health.healthy else "unhealthy",
            "state": _executor.state.value,
            "reason": health.reason,
        },
    )


@router.get("/db-status", responses={200: {"model": DbStatusResponse}})
async def db_status() -> JSONResponse:
    """Side Effects:
    - Executes SELECT 1 + 1 on MySQL (with retries)
    """
    if _executor is None:
        return JSONResponse(status_code=500, content={"message": "Database query failed"})

    try:
        result = await _executor.query("SELECT 1 + 1 AS solution")
    except RetriesExhaustedError as e:
        logger.error("db-status query failed: %s", e)
        return JSONResponse(status_code=500, content={"message": "Database query failed"})

    return JSONResponse(content={"solution": result.rows[0]["solution"]})
