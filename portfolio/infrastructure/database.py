"""Resilient MySQL access for the portfolio backend

All request handlers share ONE connection owned by QueryExecutor.

Provides:
- Explicit connection state machine (Disconnected -> Connecting -> Connected)
- Re-entrancy guard: one connection attempt in flight at a time
- Automatic reconnection after connect failures and connection loss
- Timeout-bounded queries (timer vs. driver race, first result wins)
- Linear-backoff retry wrapper and a health check

The driver (PyMySQL) is blocking, so every call on the connection runs in a
worker thread via asyncio.to_thread. Calls are serialized by a per-connection
asyncio.Lock so protocol frames never interleave.

A timed-out query is NOT aborted: the driver call keeps running in its
thread and keeps holding the connection lock until the server answers; only
its result is discarded.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any

import pymysql
import pymysql.cursors

from portfolio.config import (
    DB_CONNECT_TIMEOUT,
    DB_DATABASE,
    DB_HEALTH_TIMEOUT,
    DB_HOST,
    DB_PORT,
    DB_QUERY_MAX_RETRIES,
    DB_QUERY_TIMEOUT,
    DB_RECONNECT_DELAY,
    DB_RETRY_STEP,
    DB_USER,
    get_db_password,
)
from portfolio.infrastructure.retry import RetryPolicy, linear_backoff
from portfolio.observability.logging import get_logger
from portfolio.observability.telemetry import counter, log_event

logger = get_logger(__name__)

# MySQL client error codes that mean the socket to the server is gone:
# 2003 can't connect, 2006 server has gone away, 2013 lost connection during
# query, 2055 lost connection at handshake/reading.
CONNECTION_LOST_CODES = frozenset({2003, 2006, 2013, 2055})


# ============================================================================
# Errors
# ============================================================================


class DatabaseError(RuntimeError):
    """Base class for query executor failures."""


class NotConnectedError(DatabaseError):
    """No live connection; a connection attempt has been triggered."""


class QueryTimeoutError(DatabaseError):
    """The query did not settle within its timeout."""

    def __init__(self, timeout: float):
        super().__init__(f"Query timed out after {timeout:g}s")
        self.timeout = timeout


class ConnectionLostError(DatabaseError):
    """The connection dropped while the query was in flight."""

    def __init__(self, cause: BaseException):
        super().__init__(f"Database connection lost: {cause}")
        self.cause = cause


class QueryFailedError(DatabaseError):
    """The driver rejected the query for a reason other than connection loss."""

    def __init__(self, cause: BaseException):
        super().__init__(f"Query failed: {cause}")
        self.cause = cause


def is_connection_lost(error: BaseException) -> bool:
    """
    Classify a driver error as connection loss.

    Covers protocol-connection-lost, connection-reset, timed-out and
    connection-refused, whether raised by the socket layer or wrapped
    by PyMySQL.
    """
    if isinstance(error, (ConnectionResetError, ConnectionRefusedError, BrokenPipeError, TimeoutError)):
        return True
    if isinstance(error, pymysql.err.InterfaceError):
        # PyMySQL raises InterfaceError(0, "") on a closed socket
        return True
    if isinstance(error, pymysql.err.OperationalError) and error.args:
        return error.args[0] in CONNECTION_LOST_CODES
    return False


# ============================================================================
# State
# ============================================================================


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


_ALLOWED_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTING: frozenset({ConnectionState.CONNECTED, ConnectionState.DISCONNECTED}),
    ConnectionState.CONNECTED: frozenset({ConnectionState.DISCONNECTED}),
}


class ConnectionStateMachine:
    """
    Owned connection state with guarded transitions.

    Transitions happen synchronously between awaits, so on a single event
    loop check-and-set is atomic.
    """

    def __init__(self, on_transition: Callable[[ConnectionState, ConnectionState], None] | None = None):
        self._state = ConnectionState.DISCONNECTED
        self._on_transition = on_transition

    @property
    def state(self) -> ConnectionState:
        return self._state

    def transition(self, new_state: ConnectionState) -> bool:
        """Move to new_state if allowed; returns False (and changes nothing) otherwise."""
        old_state = self._state
        if new_state not in _ALLOWED_TRANSITIONS[old_state]:
            return False

        self._state = new_state
        log_event("db.state_change", old=old_state.value, new=new_state.value)
        if self._on_transition is not None:
            self._on_transition(old_state, new_state)
        return True


@dataclass
class QueryResult:
    rows: list[Any] = field(default_factory=list)
    affected_rows: int = 0
    last_insert_id: int | None = None


@dataclass
class HealthStatus:
    healthy: bool
    reason: str | None = None


# ============================================================================
# Executor
# ============================================================================


def _pymysql_connect() -> Any:
    """Open a MySQL connection from environment configuration."""
    return pymysql.connect(
        host=DB_HOST,
        port=DB_PORT,
        user=DB_USER,
        password=get_db_password(),
        database=DB_DATABASE,
        charset="utf8mb4",
        cursorclass=pymysql.cursors.DictCursor,
        autocommit=True,
        connect_timeout=DB_CONNECT_TIMEOUT,
    )


def _run_statement(conn: Any, statement: str, params: Sequence[Any] | None) -> QueryResult:
    with conn.cursor() as cursor:
        cursor.execute(statement, params)
        rows = list(cursor.fetchall()) if cursor.description else []
        return QueryResult(
            rows=rows,
            affected_rows=cursor.rowcount,
            last_insert_id=cursor.lastrowid,
        )


def _close_quietly(conn: Any) -> None:
    try:
        conn.close()
    except Exception as e:
        logger.debug("Ignoring error while closing dead connection: %s", e)


class QueryExecutor:
    """
    Single shared database connection with reconnection and bounded queries.

    Usage:
        executor = get_query_executor()
        await executor.connect()
        result = await executor.query("SELECT * FROM reviews WHERE id = %s", [review_id])
    """

    def __init__(
        self,
        connect_fn: Callable[[], Any] | None = None,
        *,
        reconnect_delay: float = DB_RECONNECT_DELAY,
        retry_step: float = DB_RETRY_STEP,
        retry_sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_transition: Callable[[ConnectionState, ConnectionState], None] | None = None,
    ):
        """
        Args:
            connect_fn: Blocking factory returning a DB-API connection
                (defaults to PyMySQL with env credentials)
            reconnect_delay: Seconds between a failure and the next connect attempt
            retry_step: Linear backoff step for query retries (attempt * step)
            retry_sleep: Awaitable sleep used between query retries
            on_transition: Observer called with (old, new) on every state change
        """
        self._connect_fn = connect_fn or _pymysql_connect
        self.reconnect_delay = reconnect_delay
        self.retry_step = retry_step
        self._retry_sleep = retry_sleep
        self._machine = ConnectionStateMachine(on_transition)
        self._conn: Any = None
        self._lock: asyncio.Lock | None = None
        self._connect_task: asyncio.Task[bool] | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._closed = False

    @property
    def state(self) -> ConnectionState:
        return self._machine.state

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> bool:
        """
        Establish the connection now.

        Returns:
            True if connected, False if the attempt failed or another
            attempt was already in flight

        Side Effects:
            - Opens a MySQL connection in a worker thread
            - Schedules a reconnect after reconnect_delay on failure
        """
        if not self._begin_connect():
            return self.state is ConnectionState.CONNECTED
        return await self._establish()

    def request_connect(self) -> None:
        """Start a background connection attempt unless one is already running."""
        if not self._begin_connect():
            return
        self._connect_task = asyncio.get_running_loop().create_task(self._establish())

    def _begin_connect(self) -> bool:
        if self._closed:
            return False
        if self.state is ConnectionState.CONNECTING:
            logger.info("Database connection attempt already in progress, skipping")
            counter("db.connect_skipped")
            return False
        if self.state is ConnectionState.CONNECTED:
            return False
        self._cancel_reconnect()
        return self._machine.transition(ConnectionState.CONNECTING)

    async def _establish(self) -> bool:
        try:
            conn = await asyncio.to_thread(self._connect_fn)
        except Exception as e:
            logger.error("Database connection failed: %s", e)
            counter("db.connect_failed")
            self._machine.transition(ConnectionState.DISCONNECTED)
            self._schedule_reconnect()
            return False

        if self._closed:
            _close_quietly(conn)
            return False

        self._conn = conn
        self._lock = asyncio.Lock()
        self._machine.transition(ConnectionState.CONNECTED)
        logger.info("Connected to the database")
        counter("db.connected")
        return True

    def _schedule_reconnect(self) -> None:
        if self._closed or self._reconnect_handle is not None:
            return
        loop = asyncio.get_running_loop()
        logger.info("Scheduling database reconnect in %.1fs", self.reconnect_delay)
        self._reconnect_handle = loop.call_later(self.reconnect_delay, self._fire_reconnect)

    def _fire_reconnect(self) -> None:
        self._reconnect_handle = None
        log_event("db.reconnect_attempt")
        self.request_connect()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _handle_connection_lost(self, conn: Any, error: BaseException) -> None:
        # A stale worker may report loss on a connection that was already replaced
        if conn is not self._conn:
            return
        logger.error("Database connection lost: %s", error)
        counter("db.connection_lost")
        self._conn = None
        self._lock = None
        _close_quietly(conn)
        self._machine.transition(ConnectionState.DISCONNECTED)
        self._schedule_reconnect()

    async def close(self) -> None:
        """
        Close the connection and stop reconnecting (app shutdown).

        Side Effects:
            - Cancels any scheduled reconnect and pending connect task
            - Closes the MySQL connection
        """
        self._closed = True
        self._cancel_reconnect()
        if self._connect_task is not None and not self._connect_task.done():
            self._connect_task.cancel()
        conn, self._conn = self._conn, None
        if conn is not None:
            await asyncio.to_thread(_close_quietly, conn)
        self._machine.transition(ConnectionState.DISCONNECTED)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def execute(
        self,
        statement: str,
        params: Sequence[Any] | None = None,
        timeout: float = DB_QUERY_TIMEOUT,
    ) -> QueryResult:
        """
        Run one statement once, bounded by timeout.

        Raises:
            ValueError: empty statement or non-positive timeout
            NotConnectedError: no connection (a connect attempt is triggered)
            QueryTimeoutError: timer fired before the driver answered
            ConnectionLostError: connection dropped (reconnect is scheduled)
            QueryFailedError: any other driver error
        """
        if not statement or not statement.strip():
            raise ValueError("statement must be a non-empty string")
        if timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {timeout}")

        conn = self._conn
        if conn is None or self.state is not ConnectionState.CONNECTED:
            self.request_connect()
            counter("db.not_connected")
            raise NotConnectedError("Database connection not established")

        loop = asyncio.get_running_loop()
        settled: asyncio.Future[QueryResult] = loop.create_future()

        def settle_result(worker: asyncio.Future[QueryResult]) -> None:
            if worker.cancelled():
                if not settled.done():
                    settled.cancel()
                return
            error = worker.exception()
            if settled.done():
                if error is not None:
                    logger.debug("Discarding late query error after timeout: %s", error)
                return
            if error is not None:
                settled.set_exception(error)
            else:
                settled.set_result(worker.result())

        def settle_timeout() -> None:
            if settled.done():
                return
            counter("db.query_timeout")
            settled.set_exception(QueryTimeoutError(timeout))

        timer = loop.call_later(timeout, settle_timeout)
        worker = asyncio.ensure_future(self._dispatch(conn, statement, params))
        worker.add_done_callback(settle_result)
        try:
            return await settled
        finally:
            timer.cancel()

    async def _dispatch(self, conn: Any, statement: str, params: Sequence[Any] | None) -> QueryResult:
        lock = self._lock or asyncio.Lock()
        async with lock:
            try:
                return await asyncio.to_thread(_run_statement, conn, statement, params)
            except Exception as e:
                if is_connection_lost(e):
                    self._handle_connection_lost(conn, e)
                    raise ConnectionLostError(e) from e
                counter("db.query_failed")
                raise QueryFailedError(e) from e

    async def query(
        self,
        statement: str,
        params: Sequence[Any] | None = None,
        timeout: float = DB_QUERY_TIMEOUT,
        max_retries: int = DB_QUERY_MAX_RETRIES,
    ) -> QueryResult:
        """
        Run a statement with up to max_retries attempts and linear backoff.

        Every DatabaseError is retried, including non-transient ones such as
        SQL syntax errors.

        Raises:
            ValueError: invalid arguments (not retried)
            RetriesExhaustedError: all attempts failed; .cause holds the last error
        """
        if not statement or not statement.strip():
            raise ValueError("statement must be a non-empty string")
        if timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {timeout}")
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")

        policy = RetryPolicy(
            stage="db.query",
            max_attempts=max_retries,
            wait=linear_backoff(self.retry_step),
            retry_on=(DatabaseError,),
            sleep=self._retry_sleep,
        )
        return await policy.execute(self.execute, statement, params, timeout)

    async def health_check(self, timeout: float = DB_HEALTH_TIMEOUT) -> HealthStatus:
        """Run a no-op query once and report healthy/unhealthy(reason)."""
        try:
            await self.execute("SELECT 1", timeout=timeout)
        except DatabaseError as e:
            return HealthStatus(healthy=False, reason=str(e))
        return HealthStatus(healthy=True)


@lru_cache(maxsize=1)
def get_query_executor() -> QueryExecutor:
    """
    Get or create the process-wide executor (singleton via @lru_cache).

    Does not connect; the app's startup hook calls connect().
    """
    return QueryExecutor()
