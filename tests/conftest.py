"""
Pytest configuration for the portfolio backend tests

Provides fake MySQL connections, a portfolio context fixture and
telemetry isolation shared across all test files.
"""

from __future__ import annotations

import threading
import time
from typing import Any

import pytest

from portfolio.chat.context import PortfolioContext, get_portfolio_context
from portfolio.observability.telemetry import reset_telemetry


@pytest.fixture(autouse=True)
def _reset_telemetry():
    """Counters are process-global; every test starts from zero."""
    reset_telemetry()
    yield
    reset_telemetry()


@pytest.fixture
def portfolio_context() -> PortfolioContext:
    return get_portfolio_context()


class FakeCursor:
    """DB-API cursor that plays back the next scripted outcome of its connection."""

    def __init__(self, connection: FakeConnection):
        self._connection = connection
        self.description: tuple | None = None
        self.rowcount = 0
        self.lastrowid: int | None = None
        self._rows: list[dict[str, Any]] = []

    def __enter__(self) -> FakeCursor:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        return None

    def execute(self, statement: str, params: Any = None) -> int:
        self._connection.statements.append((statement, params))
        self._connection.enter_call()
        try:
            if self._connection.delay:
                time.sleep(self._connection.delay)
        finally:
            self._connection.exit_call()

        outcome = self._connection.next_outcome()
        if isinstance(outcome, BaseException):
            raise outcome

        self._rows = list(outcome)
        self.description = (("col",),) if self._rows else None
        self.rowcount = len(self._rows)
        self.lastrowid = self._connection.lastrowid
        return self.rowcount

    def fetchall(self) -> list[dict[str, Any]]:
        return self._rows


class FakeConnection:
    """
    Scripted stand-in for a PyMySQL connection.

    Each execute() consumes one entry of `outcomes`: a list of row dicts
    or an exception to raise. When the script runs out, `default` is used.
    """

    def __init__(
        self,
        outcomes: list[Any] | None = None,
        default: Any = None,
        delay: float = 0.0,
        lastrowid: int | None = None,
    ):
        self.outcomes = list(outcomes or [])
        self.default = default if default is not None else [{"solution": 2}]
        self.delay = delay
        self.lastrowid = lastrowid
        self.statements: list[tuple[str, Any]] = []
        self.closed = False
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def enter_call(self) -> None:
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)

    def exit_call(self) -> None:
        with self._lock:
            self.in_flight -= 1

    def next_outcome(self) -> Any:
        with self._lock:
            if self.outcomes:
                return self.outcomes.pop(0)
            return self.default

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def close(self) -> None:
        self.closed = True


class ConnectFactory:
    """connect_fn for QueryExecutor: counts calls and can fail on demand."""

    def __init__(self, connections: list[Any] | None = None, delay: float = 0.0):
        self.connections = list(connections or [])
        self.delay = delay
        self.calls = 0

    def __call__(self) -> Any:
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.connections:
            item = self.connections.pop(0)
        else:
            item = FakeConnection()
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def fake_connection() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def connect_factory(fake_connection) -> ConnectFactory:
    return ConnectFactory([fake_connection])


class RecordingSleep:
    """Async sleep replacement that records requested delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_connection():
    """Factory fixture: make_connection(outcomes=[...], delay=...) -> FakeConnection."""
    return FakeConnection


@pytest.fixture
def make_connect_factory():
    """Factory fixture: make_connect_factory([conn, OSError(...)]) -> ConnectFactory."""
    return ConnectFactory
