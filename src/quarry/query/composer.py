"""SELECT query composition and execution."""

from __future__ import annotations

import copy
import inspect
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from quarry.dialects import Dialect
from quarry.drivers.base import Row, StatementExecutor, is_pooled
from quarry.entity import Entity
from quarry.errors import ConfigurationError, QueryConsumedError, RowNotFoundError
from quarry.pagination import PaginatedData, get_pagination_metadata
from quarry.query.conditions import ConditionComposer
from quarry.query.executor import run_statement
from quarry.relations import RelationResolver
from quarry.serializer import EntitySerializer

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)

_DIRECTIONS = ("ASC", "DESC")


async def maybe_await(value: Any) -> Any:
    """Await the value if it is awaitable, else return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass
class QueryState:
    """Everything a SELECT needs apart from its WHERE clause."""

    select: list[str] = field(default_factory=list)
    joins: list[str] = field(default_factory=list)
    group_by: list[str] = field(default_factory=list)
    order_by: list[str] = field(default_factory=list)
    limit: int | None = None
    offset: int | None = None
    relations: list[str] = field(default_factory=list)
    dynamic_columns: list[str] = field(default_factory=list)


class QueryComposer(ConditionComposer, Generic[E]):
    """Fluent SELECT builder for one entity.

    A query is consumed by its first terminal call (one, one_or_fail, many,
    paginate, get_count, get_sum). Use copy() to run variations of a query.

    Example:
        users = await (
            ds.query(User)
            .where("age", ">=", 18)
            .or_where_builder(lambda q: q.where_null("deleted_at").where("role", "admin"))
            .order_by("created_at", "DESC")
            .limit(20)
            .add_relations("posts")
            .many()
        )
    """

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
        self.state = QueryState()
        self.serializer = EntitySerializer()
        self.relation_resolver = RelationResolver(self._related_query, concurrent=is_pooled(executor))
        self._consumed = False

    @property
    def table(self) -> str:
        return self.descriptor.table

    def _related_query(self, entity: type[Entity]) -> QueryComposer:
        return QueryComposer(entity, self.dialect, self.executor, log_queries=self.log_queries)

    # =========================================================================
    # Building
    # =========================================================================

    def select(self, *columns: str) -> QueryComposer[E]:
        """Set the select list. Function calls and "x AS y" aliases pass through."""
        self.state.select = list(columns)
        return self

    def join(self, table: str, primary_column: str, foreign_column: str) -> QueryComposer[E]:
        """Add "JOIN table ON this.primary_column = table.foreign_column"."""
        self.state.joins.append(self._render_join("JOIN", table, primary_column, foreign_column))
        return self

    def left_join(self, table: str, primary_column: str, foreign_column: str) -> QueryComposer[E]:
        self.state.joins.append(self._render_join("LEFT JOIN", table, primary_column, foreign_column))
        return self

    def group_by(self, *columns: str) -> QueryComposer[E]:
        self.state.group_by.extend(self.predicates.column(column) for column in columns)
        return self

    def order_by(self, columns: str | Sequence[str], direction: str = "ASC") -> QueryComposer[E]:
        """Append ORDER BY entries.

        Raises:
            ValueError: If direction is not ASC or DESC
        """
        direction = direction.upper()
        if direction not in _DIRECTIONS:
            raise ValueError(f"Order direction must be ASC or DESC, got {direction!r}")
        if isinstance(columns, str):
            columns = [columns]
        self.state.order_by.extend(f"{self.predicates.column(column)} {direction}" for column in columns)
        return self

    def limit(self, limit: int) -> QueryComposer[E]:
        self.state.limit = _non_negative("limit", limit)
        return self

    def offset(self, offset: int) -> QueryComposer[E]:
        self.state.offset = _non_negative("offset", offset)
        return self

    def add_relations(self, *names: str) -> QueryComposer[E]:
        """Load the named relations on every fetched entity.

        Raises:
            UnknownRelationError: If a name is not declared on the entity
        """
        for name in names:
            self.descriptor.relation(name)
            if name not in self.state.relations:
                self.state.relations.append(name)
        return self

    def add_dynamic_columns(self, *names: str) -> QueryComposer[E]:
        """Compute the named dynamic columns on every fetched entity."""
        for name in names:
            if name not in self.descriptor.dynamic_columns:
                raise ConfigurationError(
                    f"{self.descriptor.name} has no dynamic column {name!r}. "
                    f"Available dynamic columns: {list(self.descriptor.dynamic_columns)}"
                )
            if name not in self.state.dynamic_columns:
                self.state.dynamic_columns.append(name)
        return self

    def copy(self) -> QueryComposer[E]:
        """Independent copy of this query, including its parameters."""
        clone = QueryComposer(self.entity, self.dialect, self.executor, log_queries=self.log_queries)
        clone.state = copy.deepcopy(self.state)
        clone.where_sql = self.where_sql
        clone.params = copy.deepcopy(self.params)
        return clone

    # =========================================================================
    # Rendering
    # =========================================================================

    def to_sql(self) -> tuple[str, list[Any]]:
        """Render the statement with native placeholders.

        Returns:
            Tuple of (sql, params)
        """
        sql, params = self._render_select()
        return self.dialect.resolve_placeholders(sql), params

    def _render_join(self, keyword: str, table: str, primary_column: str, foreign_column: str) -> str:
        primary = primary_column if "." in primary_column else f"{self.table}.{primary_column}"
        foreign = foreign_column if "." in foreign_column else f"{table}.{foreign_column}"
        return (
            f" {keyword} {self.dialect.quote(table)}"
            f" ON {self.predicates.column(primary)} = {self.predicates.column(foreign)}"
        )

    def _render_columns(self) -> str:
        if self.state.select:
            return ", ".join(self.predicates.column(column) for column in self.state.select)
        if self.state.joins:
            # Only this table's columns, to avoid name collisions with joined tables
            return self.dialect.quote(f"{self.table}.*")
        return "*"

    def _render_from(self) -> str:
        return f" FROM {self.dialect.quote(self.table)}{''.join(self.state.joins)}{self.where_sql}"

    def _render_select(self, limit: int | None = None, implicit_limit: bool = False) -> tuple[str, list[Any]]:
        footer = self.dialect.render_footer(
            self.state.group_by,
            self.state.order_by,
            limit if implicit_limit else self.state.limit,
            self.state.offset,
        )
        sql = f"SELECT {self._render_columns()}{self._render_from()}{footer}"
        return sql, list(self.params)

    def _render_aggregate(self, expression: str) -> tuple[str, list[Any]]:
        if self.state.group_by:
            inner = f"SELECT 1 AS grouped_row{self._render_from()} GROUP BY {', '.join(self.state.group_by)}"
            sql = f"SELECT {expression} AS total FROM ({inner}) AS grouped_rows"
        else:
            sql = f"SELECT {expression} AS total{self._render_from()}"
        return sql, list(self.params)

    # =========================================================================
    # Execution
    # =========================================================================

    def _consume(self) -> None:
        if self._consumed:
            raise QueryConsumedError(
                f"Query on {self.table!r} already ran. Use copy() to run it more than once."
            )
        self._consumed = True

    async def _run(self, sql: str, params: list[Any]) -> list[Row]:
        return await run_statement(self.executor, self.dialect, sql, params, log_queries=self.log_queries)

    async def _fetch(
        self,
        *,
        implicit_limit: bool = False,
        before_hook: bool = True,
        after_hook: bool = True,
    ) -> list[E]:
        self.relation_resolver.validate(self.descriptor, self.state.relations)
        if before_hook:
            await maybe_await(self.entity.before_fetch(self))

        rows = await self._run(*self._render_select(limit=1, implicit_limit=implicit_limit))
        entities = self.serializer.serialize_many(self.descriptor, rows)

        if entities and self.state.relations:
            await self.relation_resolver.attach(self.descriptor, entities, self.state.relations)
        if entities and self.state.dynamic_columns:
            await self.serializer.apply_dynamic_columns(self.descriptor, entities, self.state.dynamic_columns)

        if after_hook:
            result = await maybe_await(self.entity.after_fetch(entities))
            if result is not None:
                entities = list(result)
        return entities

    async def one(self, throw_error_on_null: bool = False, ignore_hooks: bool = False) -> E | None:
        """Fetch the first matching entity.

        Args:
            throw_error_on_null: Raise RowNotFoundError instead of returning None
            ignore_hooks: Skip before_fetch/after_fetch

        Raises:
            RowNotFoundError: If nothing matched and throw_error_on_null is set
        """
        self._consume()
        entities = await self._fetch(implicit_limit=True, before_hook=not ignore_hooks, after_hook=not ignore_hooks)
        if entities:
            return entities[0]
        if throw_error_on_null:
            raise RowNotFoundError(self.table)
        return None

    async def one_or_fail(self, ignore_hooks: bool = False) -> E:
        entity = await self.one(throw_error_on_null=True, ignore_hooks=ignore_hooks)
        assert entity is not None
        return entity

    async def many(self, ignore_hooks: bool = False) -> list[E]:
        """Fetch every matching entity using the explicit limit/offset."""
        self._consume()
        return await self._fetch(before_hook=not ignore_hooks, after_hook=not ignore_hooks)

    async def paginate(self, page: int, limit: int, ignore_hooks: bool = False) -> PaginatedData[E]:
        """Fetch one page plus totals.

        Args:
            page: 1-based page number
            limit: Page size

        Raises:
            ValueError: If page or limit is below 1
        """
        if page < 1 or limit < 1:
            raise ValueError(f"page and limit must be >= 1, got page={page}, limit={limit}")
        self._consume()
        self.relation_resolver.validate(self.descriptor, self.state.relations)
        if not ignore_hooks:
            await maybe_await(self.entity.before_fetch(self))

        total = await self._aggregate("COUNT(*)")

        saved_limit, saved_offset = self.state.limit, self.state.offset
        self.state.limit, self.state.offset = limit, (page - 1) * limit
        try:
            data = await self._fetch(before_hook=False, after_hook=not ignore_hooks)
        finally:
            self.state.limit, self.state.offset = saved_limit, saved_offset

        metadata = get_pagination_metadata(page, limit, int(total or 0), len(data))
        return PaginatedData(pagination_metadata=metadata, data=data)

    async def get_count(self) -> int:
        """Number of rows matching the filters, ignoring select and footer."""
        self._consume()
        return int(await self._aggregate("COUNT(*)") or 0)

    async def get_sum(self, column: str) -> Any:
        """Sum of a column over the matching rows, 0 when nothing matched."""
        self._consume()
        if self.state.group_by:
            raise ConfigurationError("get_sum() cannot be used on a grouped query")
        total = await self._aggregate(f"SUM({self.predicates.column(column)})")
        return total if total is not None else 0

    async def _aggregate(self, expression: str) -> Any:
        rows = await self._run(*self._render_aggregate(expression))
        if not rows:
            return None
        row = rows[0]
        if "total" in row:
            return row["total"]
        return next(iter(row.values()), None)


def _non_negative(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{name} must be a non-negative integer, got {value!r}")
    return value
