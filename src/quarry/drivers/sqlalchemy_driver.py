"""SQLAlchemy async engine driver.

Works with every supported dialect through SQLAlchemy's async DBAPI adapters
(asyncpg, aiomysql, aiosqlite, aioodbc). Statements are sent with
exec_driver_sql so the text and placeholders reach the DBAPI unchanged.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncTransaction, create_async_engine

from quarry.config import mask_url, to_async_url
from quarry.drivers.base import Row
from quarry.errors import TransactionError

logger = logging.getLogger(__name__)


async def _run(conn: AsyncConnection, sql: str, params: list[Any]) -> list[Row]:
    result = await conn.exec_driver_sql(sql, tuple(params))
    if not result.returns_rows:
        return []
    return [dict(row) for row in result.mappings()]


class SQLAlchemyConnection:
    """A checked-out AsyncConnection with manual transaction control."""

    def __init__(self, conn: AsyncConnection):
        self._conn = conn
        self._transaction: AsyncTransaction | None = None
        self._released = False

    @property
    def in_transaction(self) -> bool:
        return self._transaction is not None

    async def execute(self, sql: str, params: list[Any]) -> list[Row]:
        return await _run(self._conn, sql, params)

    async def begin(self) -> None:
        if self._transaction is not None:
            raise TransactionError("Transaction already started on this connection")
        self._transaction = await self._conn.begin()

    async def commit(self) -> None:
        if self._transaction is None:
            raise TransactionError("No transaction to commit")
        await self._transaction.commit()
        self._transaction = None

    async def rollback(self) -> None:
        if self._transaction is None:
            raise TransactionError("No transaction to roll back")
        await self._transaction.rollback()
        self._transaction = None

    async def release(self) -> None:
        if self._released:
            return
        self._released = True
        await self._conn.close()


class SQLAlchemyDriver:
    """Driver backed by an SQLAlchemy AsyncEngine."""

    def __init__(self, database_url: str, pool_size: int = 10, echo: bool = False):
        """Initialize the driver.

        Args:
            database_url: Database URL; a sync URL is switched to the async
                DBAPI of its backend (e.g. postgresql:// -> postgresql+asyncpg://)
            pool_size: Connection pool size (ignored for SQLite)
            echo: Let SQLAlchemy log every statement it sends
        """
        self.database_url = to_async_url(database_url)
        self.pool_size = pool_size
        self.echo = echo
        self._engine: AsyncEngine | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Driver is not connected. Call connect() first.")
        return self._engine

    async def connect(self) -> None:
        """Create the async engine."""
        if self._engine is not None:
            return

        options: dict[str, Any] = {"echo": self.echo}
        if make_url(self.database_url).get_backend_name() != "sqlite":
            options["pool_size"] = self.pool_size
        self._engine = create_async_engine(self.database_url, **options)
        logger.info(f"SQLAlchemy driver connected: {mask_url(self.database_url)}")

    async def close(self) -> None:
        """Dispose the engine and its pool."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            logger.info("SQLAlchemy driver disconnected")

    async def execute(self, sql: str, params: list[Any]) -> list[Row]:
        """Run one statement in its own auto-committed transaction."""
        async with self.engine.begin() as conn:
            return await _run(conn, sql, params)

    async def acquire(self) -> SQLAlchemyConnection:
        conn = await self.engine.connect()
        return SQLAlchemyConnection(conn)

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[SQLAlchemyConnection, None]:
        conn = await self.acquire()
        try:
            await conn.begin()
            yield conn
            await conn.commit()
        except Exception:
            if conn.in_transaction:
                await conn.rollback()
            raise
        finally:
            await conn.release()
