"""AI assistant chat endpoint.

- POST /api/chat - Answer a visitor question about the portfolio
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from portfolio.api.models import ChatRequest, ChatResponse, ErrorResponse, parse_chat_request
from portfolio.chat.orchestrator import ChatOrchestrator
from portfolio.observability.logging import get_logger
from portfolio.observability.telemetry import counter

router = APIRouter(prefix="/api", tags=["chat"])
logger = get_logger(__name__)

# Module-level storage for dependencies injected at startup
_orchestrator: ChatOrchestrator | None = None


def set_chat_orchestrator(orchestrator: ChatOrchestrator) -> None:
    """Inject the chat orchestrator dependency.

    Side Effects:
        - Sets module-level _orchestrator variable
    """
    global _orchestrator
    _orchestrator = orchestrator


@router.post(
    "/chat",
    # The body is decoded by hand so malformed input gets a 400 {"error"}, not a 422
    openapi_extra={
        "requestBody": {
            "content": {"application/json": {"schema": ChatRequest.model_json_schema(by_alias=True)}},
        }
    },
    responses={
        200: {"model": ChatResponse},
        400: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def chat(request: Request) -> JSONResponse:
    """Answer a chat message.

    Returns {"response": ...} on success or {"error": ...} with 400/429/500.

    Side Effects:
        - May call the Gemini API (greetings and off-topic messages don't)
        - Logs telemetry events
    """
    if _orchestrator is None:
        raise HTTPException(status_code=503, detail="Chat assistant not initialized")

    chat_request = parse_chat_request(await request.body())
    if chat_request is None:
        logger.info("Rejected malformed chat request body")
        counter("api.chat.malformed_body")
        # No message to classify; the orchestrator answers with its invalid-input 400
        outcome = await _orchestrator.handle(None)
    else:
        outcome = await _orchestrator.handle(chat_request.message, chat_request.is_portfolio_question)
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)
