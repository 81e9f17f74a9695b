"""
Pytest configuration and fixtures for data verification tests.

Provides a scripted in-memory engine connection, a pool stand-in and a
recording result repository so the orchestrator can run without a
database.
"""

import os
import threading
from collections.abc import Callable
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import pytest


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "slow: mark test as slow running")


class FakeCursor:
    """DB-API cursor whose results come from the owning connection's handler."""

    def __init__(self, connection: "FakeEngineConnection"):
        self.connection = connection
        self._rows: list[tuple] = []
        self.closed = False

    def execute(self, sql: str) -> None:
        self.connection.record(sql)
        self.connection.enter()
        try:
            result = self.connection.handler(sql)
        finally:
            self.connection.leave()
        if isinstance(result, BaseException):
            raise result
        self._rows = list(result or [])

    def fetchall(self) -> list[tuple]:
        return list(self._rows)

    def fetchone(self) -> tuple | None:
        return self._rows[0] if self._rows else None

    def close(self) -> None:
        self.closed = True


class FakeEngineConnection:
    """
    Engine connection answering SQL through a handler function.

    The handler receives the SQL text and returns rows, or an exception
    instance to raise from execute().
    """

    def __init__(self, handler: Callable[[str], Any]):
        self.handler = handler
        self.executed: list[str] = []
        self._lock = threading.Lock()
        self.in_flight = 0
        self.max_in_flight = 0

    def record(self, sql: str) -> None:
        with self._lock:
            self.executed.append(sql)

    def enter(self) -> None:
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)

    def leave(self) -> None:
        with self._lock:
            self.in_flight -= 1

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def queries_containing(self, fragment: str) -> list[str]:
        with self._lock:
            return [sql for sql in self.executed if fragment in sql]


class FakePools:
    """Stands in for PoolManager: every checkout yields the same fake connection."""

    def __init__(self, connection: FakeEngineConnection):
        self.connection = connection
        self.checkouts = 0

    @contextmanager
    def engine_connection(self):
        self.checkouts += 1
        yield self.connection


class ConnectionPerCheckoutPools:
    """
    Pool stand-in lending each connection to one holder at a time.

    Idle connections are reused; a checkout with none idle opens a new one.
    """

    def __init__(self, handler: Callable[[str], Any]):
        self.handler = handler
        self.connections: list[FakeEngineConnection] = []
        self.checkouts = 0
        self.max_lent = 0
        self._idle: list[FakeEngineConnection] = []
        self._lent: set[int] = set()
        self._lock = threading.Lock()

    @contextmanager
    def engine_connection(self):
        with self._lock:
            self.checkouts += 1
            if self._idle:
                connection = self._idle.pop()
            else:
                connection = FakeEngineConnection(self.handler)
                self.connections.append(connection)
            assert id(connection) not in self._lent, "connection lent twice"
            self._lent.add(id(connection))
            self.max_lent = max(self.max_lent, len(self._lent))
        try:
            yield connection
        finally:
            with self._lock:
                self._lent.discard(id(connection))
                self._idle.append(connection)


class RecordingRepository:
    """Result sink keeping saved outcomes in memory."""

    def __init__(self, fail_on: Callable[[Any], bool] | None = None):
        self.saved: list[tuple[Any, str, str]] = []
        self.fail_on = fail_on
        self._lock = threading.Lock()

    def save(self, outcome, odate: str, mid: str) -> bool:
        if self.fail_on is not None and self.fail_on(outcome):
            raise RuntimeError(f"sink rejected {outcome.partition}")
        with self._lock:
            self.saved.append((outcome, odate, mid))
        return True

    @property
    def partitions(self) -> list[str]:
        with self._lock:
            return sorted(outcome.partition for outcome, _, _ in self.saved)


def engine_handler(
    columns: tuple[str, ...] = ("id", "name", "year"),
    partitions: list[str] | None = None,
    counts: tuple[int, int] = (10, 10),
    diff_rows: list[tuple] | None = None,
) -> Callable[[str], Any]:
    """
    Build a handler answering the statements the verifier issues.

    partitions=None makes SHOW PARTITIONS fail the way the engine does for
    unpartitioned tables.
    """

    def handle(sql: str) -> Any:
        if sql.startswith("SHOW COLUMNS"):
            return [(c,) for c in columns]
        if sql.startswith("SHOW PARTITIONS"):
            if partitions is None:
                return Exception("Table is not partitioned")
            return [(p,) for p in partitions]
        if sql.startswith("SELECT DISTINCT"):
            return [
                tuple(segment.split("=", 1)[1] for segment in p.split("/"))
                for p in (partitions or [])
            ]
        if "COUNT(*)" in sql:
            return [counts]
        return list(diff_rows or [])

    return handle


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Get project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def make_engine() -> Callable[..., FakeEngineConnection]:
    """Factory for FakeEngineConnection; accepts a handler or engine_handler kwargs."""

    def factory(handler: Callable[[str], Any] | None = None, **kwargs: Any) -> FakeEngineConnection:
        return FakeEngineConnection(handler or engine_handler(**kwargs))

    return factory


@pytest.fixture
def repository() -> RecordingRepository:
    return RecordingRepository()


@pytest.fixture(autouse=True)
def set_test_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment from leaking into configuration tests."""
    for name in list(os.environ):
        if name.startswith(("ENGINE_", "SINK_", "VERIFICATION_", "VAULT_", "OTLP_")):
            monkeypatch.delenv(name, raising=False)
