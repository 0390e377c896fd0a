"""Native asyncpg pool driver for Postgres."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import asyncpg
from asyncpg.transaction import Transaction as AsyncpgTransaction

from quarry.config import mask_url, to_asyncpg_dsn
from quarry.drivers.base import Row
from quarry.errors import TransactionError

logger = logging.getLogger(__name__)


class AsyncpgConnection:
    """A connection checked out of an asyncpg pool."""

    def __init__(self, pool: asyncpg.Pool, conn: asyncpg.Connection):
        self._pool = pool
        self._conn = conn
        self._transaction: AsyncpgTransaction | None = None
        self._released = False

    @property
    def in_transaction(self) -> bool:
        return self._transaction is not None

    async def execute(self, sql: str, params: list[Any]) -> list[Row]:
        records = await self._conn.fetch(sql, *params)
        return [dict(record) for record in records]

    async def begin(self) -> None:
        if self._transaction is not None:
            raise TransactionError("Transaction already started on this connection")
        transaction = self._conn.transaction()
        await transaction.start()
        self._transaction = transaction

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
        await self._pool.release(self._conn)


class AsyncpgDriver:
    """Driver backed by an asyncpg connection pool."""

    def __init__(self, database_url: str, pool_size: int = 10):
        """Initialize the driver.

        Args:
            database_url: Postgres URL (postgres://, postgresql:// or
                postgresql+asyncpg:// are all accepted)
            pool_size: Maximum pool size
        """
        self.database_url = to_asyncpg_dsn(database_url)
        self.pool_size = pool_size
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        """Initialize the connection pool."""
        if self._pool is not None:
            return

        self._pool = await asyncpg.create_pool(
            self.database_url,
            min_size=min(2, self.pool_size),
            max_size=self.pool_size,
        )
        logger.info(f"asyncpg driver connected: {mask_url(self.database_url)}")

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("asyncpg driver disconnected")

    async def _get_pool(self) -> asyncpg.Pool:
        """Get the connection pool, connecting if needed."""
        if self._pool is None:
            await self.connect()
        return self._pool  # type: ignore

    async def execute(self, sql: str, params: list[Any]) -> list[Row]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            records = await conn.fetch(sql, *params)
        return [dict(record) for record in records]

    async def acquire(self) -> AsyncpgConnection:
        pool = await self._get_pool()
        conn = await pool.acquire()
        return AsyncpgConnection(pool, conn)

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[AsyncpgConnection, None]:
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
