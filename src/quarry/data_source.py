"""DataSource: the entry point for queries, writes and transactions."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Mapping, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any, TypeVar

from quarry.config import QuarryConfig
from quarry.dialects import POSTGRES, Dialect, get_dialect
from quarry.drivers.base import Driver, Row, StatementExecutor
from quarry.entity import Entity
from quarry.errors import ConfigurationError
from quarry.query.composer import QueryComposer
from quarry.query.executor import run_statement
from quarry.query.writes import DeleteQuery, InsertQuery, UpdateQuery
from quarry.transaction import Transaction

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)

OrderSpec = str | Sequence[str] | Mapping[str, str]


class DataSource:
    """Holds the dialect and driver every query of an application runs on.

    Example:
        async with DataSource.from_config() as ds:
            user = await ds.find_one(User, where={"email": "a@b.c"}, relations=["posts"])
            async with ds.transaction() as trx:
                await ds.insert(Post, {"user_id": user.id, "title": "hi"}, trx=trx)
    """

    def __init__(self, dialect: str | Dialect, driver: Driver, *, log_queries: bool = False):
        """Initialize the data source.

        Args:
            dialect: Dialect tag (mysql, mariadb, postgres, postgresql, sqlite, mssql)
            driver: Driver used to run statements
            log_queries: Log every statement at INFO instead of DEBUG

        Raises:
            UnsupportedDialectError: If the dialect tag is unknown
        """
        self.dialect = get_dialect(dialect)
        self.driver = driver
        self.log_queries = log_queries

    @classmethod
    def from_config(cls, config: QuarryConfig | None = None) -> DataSource:
        """Build a DataSource and its driver from configuration.

        Raises:
            ConfigurationError: If the URL is missing or the driver cannot
                serve the dialect
        """
        config = config or QuarryConfig()
        database_url = config.require_database_url()
        dialect = config.resolve_dialect()

        driver: Driver
        if config.driver == "asyncpg":
            if dialect is not POSTGRES:
                raise ConfigurationError(f"The asyncpg driver cannot serve the {dialect.name} dialect")
            from quarry.drivers.asyncpg_driver import AsyncpgDriver

            driver = AsyncpgDriver(database_url, pool_size=config.pool_size)
        else:
            from quarry.drivers.sqlalchemy_driver import SQLAlchemyDriver

            driver = SQLAlchemyDriver(database_url, pool_size=config.pool_size, echo=config.echo)

        logger.info(f"DataSource configured: dialect={dialect.name}, driver={config.driver}")
        return cls(dialect, driver, log_queries=config.log_queries)

    async def connect(self) -> None:
        await self.driver.connect()

    async def close(self) -> None:
        await self.driver.close()

    async def __aenter__(self) -> DataSource:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _executor(self, trx: Transaction | None) -> StatementExecutor:
        return trx if trx is not None else self.driver

    @asynccontextmanager
    async def _write_scope(self, trx: Transaction | None) -> AsyncGenerator[StatementExecutor, None]:
        """Executor for a write that may need a follow-up statement on the same connection."""
        if trx is not None:
            yield trx
        elif self.dialect.returning is None:
            async with self.driver.connection() as conn:
                yield conn
        else:
            yield self.driver

    # =========================================================================
    # Reads
    # =========================================================================

    def query(self, entity: type[E], trx: Transaction | None = None) -> QueryComposer[E]:
        """Fresh query on an entity. Each call returns a new, unshared query."""
        return QueryComposer(entity, self.dialect, self._executor(trx), log_queries=self.log_queries)

    def _find_query(
        self,
        entity: type[E],
        *,
        where: Mapping[str, Any] | None,
        select: Sequence[str] | None,
        relations: Sequence[str] | None,
        dynamic_columns: Sequence[str] | None,
        order_by: OrderSpec | None,
        group_by: Sequence[str] | None,
        limit: int | None,
        offset: int | None,
        trx: Transaction | None,
    ) -> QueryComposer[E]:
        query = self.query(entity, trx)
        for column, value in (where or {}).items():
            if value is None:
                query.where_null(column)
            else:
                query.where(column, value)
        if select:
            query.select(*select)
        if relations:
            query.add_relations(*relations)
        if dynamic_columns:
            query.add_dynamic_columns(*dynamic_columns)
        if group_by:
            query.group_by(*group_by)
        if isinstance(order_by, Mapping):
            for column, direction in order_by.items():
                query.order_by(column, direction)
        elif order_by:
            query.order_by(order_by)
        if limit is not None:
            query.limit(limit)
        if offset is not None:
            query.offset(offset)
        return query

    async def find(
        self,
        entity: type[E],
        *,
        where: Mapping[str, Any] | None = None,
        select: Sequence[str] | None = None,
        relations: Sequence[str] | None = None,
        dynamic_columns: Sequence[str] | None = None,
        order_by: OrderSpec | None = None,
        group_by: Sequence[str] | None = None,
        limit: int | None = None,
        offset: int | None = None,
        ignore_hooks: bool = False,
        trx: Transaction | None = None,
    ) -> list[E]:
        """Fetch entities matching equality filters.

        Args:
            entity: Entity class
            where: Column -> value; None values become IS NULL
            select: Columns to select (default all)
            relations: Relations to load
            dynamic_columns: Dynamic columns to compute
            order_by: A column, a list of columns (ascending) or column -> direction
            group_by: Columns to group by
            limit: Maximum number of rows
            offset: Rows to skip
            ignore_hooks: Skip before_fetch/after_fetch
            trx: Run inside this transaction

        Returns:
            Matching entities
        """
        query = self._find_query(
            entity,
            where=where,
            select=select,
            relations=relations,
            dynamic_columns=dynamic_columns,
            order_by=order_by,
            group_by=group_by,
            limit=limit,
            offset=offset,
            trx=trx,
        )
        return await query.many(ignore_hooks=ignore_hooks)

    async def find_one(
        self,
        entity: type[E],
        *,
        where: Mapping[str, Any] | None = None,
        select: Sequence[str] | None = None,
        relations: Sequence[str] | None = None,
        dynamic_columns: Sequence[str] | None = None,
        order_by: OrderSpec | None = None,
        group_by: Sequence[str] | None = None,
        offset: int | None = None,
        throw_error_on_null: bool = False,
        ignore_hooks: bool = False,
        trx: Transaction | None = None,
    ) -> E | None:
        """Fetch the first entity matching equality filters.

        Raises:
            RowNotFoundError: If nothing matched and throw_error_on_null is set
        """
        query = self._find_query(
            entity,
            where=where,
            select=select,
            relations=relations,
            dynamic_columns=dynamic_columns,
            order_by=order_by,
            group_by=group_by,
            limit=None,
            offset=offset,
            trx=trx,
        )
        return await query.one(throw_error_on_null=throw_error_on_null, ignore_hooks=ignore_hooks)

    async def find_by_primary_key(
        self,
        entity: type[E],
        value: Any,
        *,
        relations: Sequence[str] | None = None,
        throw_error_on_null: bool = False,
        trx: Transaction | None = None,
    ) -> E | None:
        """Fetch one entity by primary key.

        Raises:
            MissingPrimaryKeyError: If the entity declares no primary key
            RowNotFoundError: If nothing matched and throw_error_on_null is set
        """
        primary_key = entity.__descriptor__.require_primary_key("find_by_primary_key")
        query = self.query(entity, trx).where(primary_key, value)
        if relations:
            query.add_relations(*relations)
        return await query.one(throw_error_on_null=throw_error_on_null)

    # =========================================================================
    # Writes
    # =========================================================================

    async def insert(self, entity: type[E], data: Mapping[str, Any], trx: Transaction | None = None) -> E:
        """Insert one row and return it as an entity."""
        async with self._write_scope(trx) as executor:
            return await InsertQuery(entity, self.dialect, executor, log_queries=self.log_queries).insert(data)

    async def insert_many(
        self,
        entity: type[E],
        rows: Sequence[Mapping[str, Any]],
        trx: Transaction | None = None,
    ) -> list[E]:
        """Insert rows in one statement. Returns [] on MySQL."""
        query = InsertQuery(entity, self.dialect, self._executor(trx), log_queries=self.log_queries)
        return await query.insert_many(rows)

    def update_query(self, entity: type[E], trx: Transaction | None = None) -> UpdateQuery[E]:
        return UpdateQuery(entity, self.dialect, self._executor(trx), log_queries=self.log_queries)

    def delete_query(self, entity: type[E], trx: Transaction | None = None) -> DeleteQuery[E]:
        return DeleteQuery(entity, self.dialect, self._executor(trx), log_queries=self.log_queries)

    def _primary_key_value(self, instance: Entity, operation: str) -> tuple[str, Any]:
        primary_key = type(instance).__descriptor__.require_primary_key(operation)
        value = instance.__dict__.get(primary_key)
        if value is None:
            raise ValueError(f"Cannot {operation} {type(instance).__name__}: primary key {primary_key!r} is not set")
        return primary_key, value

    async def update(self, instance: E, trx: Transaction | None = None) -> E | None:
        """Write every declared column of an entity back to its row.

        Returns:
            The updated entity as stored, or None if the row no longer exists

        Raises:
            MissingPrimaryKeyError: If the entity declares no primary key
        """
        entity = type(instance)
        primary_key, value = self._primary_key_value(instance, "update")
        data = instance.column_values(include_none=True)
        data.pop(primary_key, None)
        if not data:
            return instance

        updated = await self.update_query(entity, trx).where(primary_key, value).with_data(data)
        if self.dialect.returning is not None:
            return updated[0] if updated else None
        return await self.find_by_primary_key(entity, value, trx=trx)

    async def delete(self, instance: E, trx: Transaction | None = None) -> None:
        """Delete the row of an entity.

        Raises:
            MissingPrimaryKeyError: If the entity declares no primary key
        """
        primary_key, value = self._primary_key_value(instance, "delete")
        await self.delete_query(type(instance), trx).where(primary_key, value).perform_delete()

    async def soft_delete(
        self,
        instance: E,
        column: str = "deleted_at",
        value: Any = None,
        trx: Transaction | None = None,
    ) -> E:
        """Mark an entity deleted by setting column (default: current UTC time).

        Returns:
            The same instance with the column updated
        """
        primary_key, pk_value = self._primary_key_value(instance, "soft_delete")
        if value is None:
            value = datetime.now(UTC)
        await self.update_query(type(instance), trx).where(primary_key, pk_value).soft_delete(column, value)
        setattr(instance, column, value)
        return instance

    # =========================================================================
    # Raw SQL and transactions
    # =========================================================================

    async def raw(self, sql: str, params: Sequence[Any] | None = None, trx: Transaction | None = None) -> list[Row]:
        """Run caller-written SQL (native placeholders or PLACEHOLDER sentinels)."""
        return await run_statement(
            self._executor(trx), self.dialect, sql, list(params or []), log_queries=self.log_queries
        )

    async def start_transaction(self) -> Transaction:
        """Check out a connection and begin a transaction on it.

        The caller must finish it with commit() or rollback().
        """
        connection = await self.driver.acquire()
        trx = Transaction(connection)
        await trx.start()
        return trx

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[Transaction, None]:
        """Transaction committed on clean exit and rolled back on error."""
        trx = await self.start_transaction()
        async with trx:
            yield trx
