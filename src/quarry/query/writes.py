"""INSERT, UPDATE and DELETE builders.

Dialects with RETURNING (Postgres, SQLite) or OUTPUT (MSSQL) hand back the
affected rows as entities. MySQL cannot, so inserts are refetched through
LAST_INSERT_ID() on the same connection and bulk writes return [].
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from quarry.dialects import PLACEHOLDER, Dialect
from quarry.drivers.base import Row, StatementExecutor
from quarry.entity import Entity
from quarry.query.conditions import ConditionComposer
from quarry.query.executor import run_statement
from quarry.serializer import EntitySerializer

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)


class _WriteQuery(ConditionComposer, Generic[E]):
    def __init__(
        self,
        entity: type[E],
        dialect: Dialect,
        executor: StatementExecutor,
        *,
        log_queries: bool = False,
    ):
        super().__init__(entity.__descriptor__, dialect)
        self.entity = entity
        self.executor = executor
        self.log_queries = log_queries
        self.serializer = EntitySerializer()

    @property
    def table(self) -> str:
        return self.dialect.quote(self.descriptor.table)

    async def _run(self, sql: str, params: list[Any]) -> list[Row]:
        return await run_statement(self.executor, self.dialect, sql, params, log_queries=self.log_queries)

    def _entities(self, rows: list[Row]) -> list[E]:
        return self.serializer.serialize_many(self.descriptor, rows)


class InsertQuery(_WriteQuery[E]):
    """Render and run INSERT statements for one entity."""

    def render(self, rows: Sequence[Mapping[str, Any]]) -> tuple[str, list[Any]]:
        """Render a multi-row INSERT.

        Args:
            rows: Entity-case column -> value mappings, all with the same keys

        Raises:
            ValueError: If rows is empty or the rows have different keys
        """
        if not rows:
            raise ValueError("Nothing to insert")
        columns = list(rows[0])
        if not columns:
            raise ValueError("Cannot insert a row without columns")
        for row in rows[1:]:
            if set(row) != set(columns):
                raise ValueError(f"All inserted rows must have the same columns, expected {columns}, got {list(row)}")

        infix, suffix = self.dialect.returning_clause("insert")
        quoted = ", ".join(self.predicates.column(column) for column in columns)
        slots = "(" + ", ".join(PLACEHOLDER for _ in columns) + ")"
        values = ", ".join(slots for _ in rows)
        params = [row[column] for row in rows for column in columns]
        return f"INSERT INTO {self.table} ({quoted}){infix} VALUES {values}{suffix}", params

    async def insert(self, data: Mapping[str, Any]) -> E:
        """Insert one row and return it as an entity.

        On MySQL the executor must be a single connection, since the row is
        read back with LAST_INSERT_ID().
        """
        rows = await self._run(*self.render([data]))
        if self.dialect.returning is not None:
            return self._entities(rows)[0] if rows else self.entity(**data)
        return await self._refetch(data)

    async def insert_many(self, rows: Sequence[Mapping[str, Any]]) -> list[E]:
        """Insert rows in one statement. Returns [] on dialects without RETURNING."""
        if not rows:
            return []
        returned = await self._run(*self.render(rows))
        if self.dialect.returning is None:
            return []
        return self._entities(returned)

    async def _refetch(self, data: Mapping[str, Any]) -> E:
        primary_key = self.descriptor.primary_key
        if primary_key is None:
            return self.entity(**data)

        if data.get(primary_key) is not None:
            where, params = f"{self.predicates.column(primary_key)} = {PLACEHOLDER}", [data[primary_key]]
        else:
            where, params = f"{self.predicates.column(primary_key)} = LAST_INSERT_ID()", []
        rows = await self._run(f"SELECT * FROM {self.table} WHERE {where}", params)
        if not rows:
            logger.debug(f"Inserted row in {self.descriptor.table} could not be read back")
            return self.entity(**data)
        return self._entities(rows)[0]


class UpdateQuery(_WriteQuery[E]):
    """UPDATE builder. Filter with the where* methods, then call with_data().

    Example:
        await ds.update_query(User).where("id", 1).with_data({"name": "bob"})
    """

    def render(self, data: Mapping[str, Any]) -> tuple[str, list[Any]]:
        if not data:
            raise ValueError("Nothing to update")
        infix, suffix = self.dialect.returning_clause("update")
        assignments = ", ".join(f"{self.predicates.column(column)} = {PLACEHOLDER}" for column in data)
        # SET values come first, so WHERE numbering continues after them
        params = [*data.values(), *self.params]
        return f"UPDATE {self.table} SET {assignments}{infix}{self.where_sql}{suffix}", params

    async def with_data(self, data: Mapping[str, Any]) -> list[E]:
        """Apply the update. Returns updated entities where the dialect can."""
        rows = await self._run(*self.render(data))
        return self._entities(rows) if self.dialect.returning is not None else []

    async def soft_delete(self, column: str = "deleted_at", value: Any = None) -> list[E]:
        """Mark matching rows deleted by setting column (default: current UTC time)."""
        return await self.with_data({column: value if value is not None else datetime.now(UTC)})


class DeleteQuery(_WriteQuery[E]):
    """DELETE builder. Filter with the where* methods, then call perform_delete()."""

    def render(self) -> tuple[str, list[Any]]:
        infix, suffix = self.dialect.returning_clause("delete")
        return f"DELETE FROM {self.table}{infix}{self.where_sql}{suffix}", list(self.params)

    async def perform_delete(self) -> list[E]:
        """Delete matching rows. Returns deleted entities where the dialect can."""
        rows = await self._run(*self.render())
        return self._entities(rows) if self.dialect.returning is not None else []
