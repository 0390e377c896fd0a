"""Pytest configuration for quarry tests."""

import os
from collections import deque
from contextlib import asynccontextmanager
from typing import Any

import pytest


@pytest.fixture(autouse=True)
def clean_quarry_env(monkeypatch, tmp_path):
    """Clear QUARRY_ environment variables and prevent .env loading for test isolation."""
    quarry_vars = [k for k in os.environ if k.startswith("QUARRY_")]
    for var in quarry_vars:
        monkeypatch.delenv(var, raising=False)

    # Change to temp directory to avoid loading local .env file
    monkeypatch.chdir(tmp_path)

    yield


class FakeConnection:
    """Checked-out connection stub that records transaction events."""

    def __init__(self, driver: "FakeDriver", fail_on: set[str] | None = None):
        self.driver = driver
        self.fail_on = fail_on or set()
        self.events: list[str] = []
        self.calls: list[tuple[str, list[Any]]] = []

    async def _event(self, name: str) -> None:
        self.events.append(name)
        if name in self.fail_on:
            raise RuntimeError(f"{name} failed")

    async def execute(self, sql: str, params: list[Any]) -> list[dict[str, Any]]:
        self.calls.append((sql, list(params)))
        return await self.driver.execute(sql, params)

    async def begin(self) -> None:
        await self._event("begin")

    async def commit(self) -> None:
        await self._event("commit")

    async def rollback(self) -> None:
        await self._event("rollback")

    async def release(self) -> None:
        await self._event("release")


class FakeDriver:
    """In-memory driver that records statements and replays canned rows.

    Rows are chosen by the first registered route whose fragment appears in
    the SQL, else taken from the queue, else [].
    """

    def __init__(self, fail_with: Exception | None = None, fail_on: set[str] | None = None):
        self.calls: list[tuple[str, list[Any]]] = []
        self.connections: list[FakeConnection] = []
        self.fail_with = fail_with
        self.fail_on = fail_on
        self.connected = False
        self._routes: list[tuple[str, list[dict[str, Any]]]] = []
        self._queue: deque[list[dict[str, Any]]] = deque()

    def route(self, fragment: str, rows: list[dict[str, Any]]) -> "FakeDriver":
        self._routes.append((fragment, rows))
        return self

    def add_response(self, rows: list[dict[str, Any]]) -> "FakeDriver":
        self._queue.append(rows)
        return self

    @property
    def statements(self) -> list[str]:
        return [sql for sql, _ in self.calls]

    async def connect(self) -> None:
        self.connected = True

    async def close(self) -> None:
        self.connected = False

    async def execute(self, sql: str, params: list[Any]) -> list[dict[str, Any]]:
        self.calls.append((sql, list(params)))
        if self.fail_with is not None:
            raise self.fail_with
        for fragment, rows in self._routes:
            if fragment in sql:
                return [dict(row) for row in rows]
        if self._queue:
            return [dict(row) for row in self._queue.popleft()]
        return []

    async def acquire(self) -> FakeConnection:
        conn = FakeConnection(self, self.fail_on)
        self.connections.append(conn)
        return conn

    @asynccontextmanager
    async def connection(self):
        conn = await self.acquire()
        await conn.begin()
        try:
            yield conn
            await conn.commit()
        except Exception:
            await conn.rollback()
            raise
        finally:
            await conn.release()


@pytest.fixture
def driver():
    """Recording driver stub."""
    return FakeDriver()


@pytest.fixture
def make_data_source(driver):
    """Factory for a DataSource over the recording driver."""
    from quarry import DataSource

    def _make(dialect: str = "postgres", **kwargs):
        return DataSource(dialect, driver, **kwargs)

    return _make
