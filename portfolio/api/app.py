"""FastAPI server for the portfolio backend"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from portfolio.api.middleware.rate_limit import RateLimitMiddleware
from portfolio.api.routes.chat import router as chat_router
from portfolio.api.routes.chat import set_chat_orchestrator
from portfolio.api.routes.health import router as health_router
from portfolio.api.routes.health import set_query_executor
from portfolio.chat.context import get_portfolio_context
from portfolio.chat.orchestrator import ChatOrchestrator
from portfolio.config import (
    API_HOST,
    API_PORT,
    APP_VERSION,
    CORS_ORIGINS,
    ENV,
    RATE_LIMIT_RPH,
    RATE_LIMIT_RPM,
    get_gemini_api_key,
    is_production,
)
from portfolio.infrastructure.database import get_query_executor
from portfolio.llm.gemini import GeminiChatClient
from portfolio.observability.logging import get_logger
from portfolio.observability.telemetry import counter, log_event

logger = get_logger(__name__)

app = FastAPI(title="Portfolio API", version=APP_VERSION)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Validation error handler that only exposes field names.

    Side Effects:
        - Logs the full validation errors
        - Increments api.validation_errors counter
    """
    logger.warning("Validation error on %s: %s", request.url.path, exc.errors())
    counter("api.validation_errors")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": "Invalid request format. Please check your request and try again.",
            "error_count": len(exc.errors()),
            "invalid_fields": [str(err["loc"][-1]) for err in exc.errors()],
        },
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# Only /api/chat is counted; it is the one endpoint that spends Gemini quota
app.add_middleware(
    RateLimitMiddleware,
    requests_per_minute=RATE_LIMIT_RPM,
    requests_per_hour=RATE_LIMIT_RPH,
)

if not get_gemini_api_key():
    if is_production():
        logger.critical("GEMINI_API_KEY not set in production; on-topic chat requests will fail")
    else:
        logger.warning("GEMINI_API_KEY not set; on-topic chat requests will fail with 500")

# Initialize services
query_executor = get_query_executor()
chat_orchestrator = ChatOrchestrator(get_portfolio_context(), GeminiChatClient())

# Inject dependencies into routers
set_query_executor(query_executor)
set_chat_orchestrator(chat_orchestrator)

# Include routers
app.include_router(chat_router)
app.include_router(health_router)

log_event("api.startup", service="portfolio", version=APP_VERSION, env=ENV)


@app.on_event("startup")
async def connect_database() -> None:
    """Open the shared database connection.

    A failed attempt does not stop the app: the executor keeps retrying
    every few seconds and DB-backed endpoints report the outage meanwhile.

    Side Effects:
        - Opens a MySQL connection (or schedules a reconnect on failure)
    """
    if await query_executor.connect():
        logger.info("Database ready")
    else:
        logger.warning("Database unavailable at startup, reconnect scheduled")


@app.on_event("shutdown")
async def close_database() -> None:
    """Side Effects:
    - Closes the MySQL connection and cancels pending reconnects
    """
    await query_executor.close()


@app.get("/")
def root() -> dict[str, Any]:
    return {
        "service": "Portfolio API",
        "version": APP_VERSION,
        "status": "running",
        "message": "Server is up and running!",
        "endpoints": {
            "chat": "/api/chat",
            "health": "/health",
            "db_health": "/health/db",
            "db_status": "/db-status",
        },
    }


def main() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    uvicorn.run(app, host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    main()
