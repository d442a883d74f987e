"""
Fixtures for API integration tests

The FastAPI app is used as-is; only its services are swapped: the query
executor gets a fake connection and the orchestrator talks to a Gemini
stub through httpx.MockTransport.
"""

from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest
from fastapi.testclient import TestClient

import portfolio.api.app as app_module
import portfolio.api.routes.chat as chat_routes
import portfolio.api.routes.health as health_routes
from portfolio.chat.orchestrator import ChatOrchestrator
from portfolio.infrastructure.database import QueryExecutor
from portfolio.llm.gemini import GeminiChatClient


class GeminiStub:
    """MockTransport handler: answers every generateContent call with `reply`"""

    def __init__(self, reply: str = "Shivashanker has built four projects.", status: int = 200):
        self.reply = reply
        self.status = status
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        if self.status != 200:
            return httpx.Response(self.status, json={"error": {"code": self.status}})
        return httpx.Response(
            200, json={"candidates": [{"content": {"parts": [{"text": self.reply}]}}]}
        )


@pytest.fixture
def gemini_stub() -> GeminiStub:
    return GeminiStub()


@pytest.fixture
def executor(make_connect_factory, fake_connection, recording_sleep) -> QueryExecutor:
    return QueryExecutor(
        make_connect_factory([fake_connection]),
        reconnect_delay=60,
        retry_sleep=recording_sleep,
    )


@pytest.fixture
def install_services(monkeypatch, portfolio_context, recording_sleep) -> Callable:
    """Swap the app's executor and chat orchestrator for test doubles"""

    def install(executor: QueryExecutor, gemini: GeminiStub) -> None:
        client = GeminiChatClient(
            api_key="test-key",
            transport=httpx.MockTransport(gemini),
            sleep=recording_sleep,
        )
        orchestrator = ChatOrchestrator(portfolio_context, client)
        monkeypatch.setattr(app_module, "query_executor", executor)
        monkeypatch.setattr(health_routes, "_executor", executor)
        monkeypatch.setattr(chat_routes, "_orchestrator", orchestrator)
        # Rebuilt on the next request, so each test starts with empty rate-limit buckets
        monkeypatch.setattr(app_module.app, "middleware_stack", None)

    return install


@pytest.fixture
def api(install_services, executor, gemini_stub):
    """TestClient with startup/shutdown hooks run"""
    install_services(executor, gemini_stub)
    with TestClient(app_module.app) as client:
        yield client
