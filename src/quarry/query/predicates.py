"""Predicate rendering.

Each builder renders one filter clause into a text fragment and the list of
values bound to it. Values are never interpolated; the fragment carries one
PLACEHOLDER sentinel per value, resolved to the dialect's native syntax when
the whole statement is rendered.
"""

from collections.abc import Iterable, Sequence
from typing import Any, Literal, NamedTuple

from quarry.dialects import PLACEHOLDER, Dialect, is_expression, is_json_value
from quarry.entity import EntityDescriptor
from quarry.errors import MixedValueTypesError

Connective = Literal["WHERE", "AND", "OR"]

BINARY_OPERATORS = frozenset(
    {"=", "!=", "<>", ">", "<", ">=", "<=", "LIKE", "ILIKE", "NOT LIKE", "NOT ILIKE"}
)


class Predicate(NamedTuple):
    """Rendered filter clause: text starting with its connective, plus values."""

    fragment: str
    params: list[Any]


class PredicateBuilder:
    """Render filter clauses for one entity against one dialect.

    Example:
        builder = PredicateBuilder(User.__descriptor__, POSTGRES)
        builder.compare("WHERE", "name", "alice")
        # Predicate(f' WHERE "name" = {PLACEHOLDER}', ['alice'])
    """

    def __init__(self, descriptor: EntityDescriptor, dialect: Dialect):
        self.descriptor = descriptor
        self.dialect = dialect

    def column(self, column: str) -> str:
        """Case-convert and quote a column reference.

        The column part of a dotted "table.column" reference is converted to
        storage case; the table part is kept as written.
        """
        if is_expression(column):
            return column
        *table, name = column.split(".")
        converted = self.descriptor.storage_name(name)
        return self.dialect.quote(".".join([*table, converted]))

    # =========================================================================
    # Builders
    # =========================================================================

    def compare(self, connective: Connective, column: str, value: Any, operator: str = "=") -> Predicate:
        """Render "column OPERATOR value".

        Raises:
            ValueError: If the operator is not a supported binary operator
        """
        op = operator.strip().upper()
        if op not in BINARY_OPERATORS:
            raise ValueError(f"Unsupported operator {operator!r}. Supported: {sorted(BINARY_OPERATORS)}")

        target, slot = self._target(column, is_json_value(value))
        return Predicate(f" {connective} {target} {op} {slot}", [value])

    def between(
        self,
        connective: Connective,
        column: str,
        low: Any,
        high: Any,
        negate: bool = False,
    ) -> Predicate:
        """Render "column [NOT] BETWEEN low AND high"."""
        json_values = _homogeneous_json((low, high), "BETWEEN")
        target, slot = self._target(column, json_values)
        keyword = "NOT BETWEEN" if negate else "BETWEEN"
        return Predicate(f" {connective} {target} {keyword} {slot} AND {slot}", [low, high])

    def in_(
        self,
        connective: Connective,
        column: str,
        values: Iterable[Any],
        negate: bool = False,
    ) -> Predicate:
        """Render "column [NOT] IN (...)".

        An empty set renders "1 = 0" for IN and "1 = 1" for NOT IN, since
        "IN ()" is not valid SQL on any supported dialect.
        """
        items = list(values)
        if not items:
            return Predicate(f" {connective} {'1 = 1' if negate else '1 = 0'}", [])

        json_values = _homogeneous_json(items, "IN")
        target, slot = self._target(column, json_values)
        keyword = "NOT IN" if negate else "IN"
        slots = ", ".join(slot for _ in items)
        return Predicate(f" {connective} {target} {keyword} ({slots})", items)

    def null(self, connective: Connective, column: str, negate: bool = False) -> Predicate:
        """Render "column IS [NOT] NULL"."""
        check = "IS NOT NULL" if negate else "IS NULL"
        return Predicate(f" {connective} {self.column(column)} {check}", [])

    def raw(self, connective: Connective, sql: str, params: Sequence[Any] | None = None) -> Predicate:
        """Wrap caller-written SQL. It may contain PLACEHOLDER sentinels."""
        values = list(params or [])
        expected = sql.count(PLACEHOLDER)
        if expected != len(values):
            raise ValueError(f"Raw predicate has {expected} placeholders but {len(values)} params were given")
        return Predicate(f" {connective} {sql.strip()}", values)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _target(self, column: str, json_values: bool) -> tuple[str, str]:
        """Return (column expression, value slot), rewritten for JSON values."""
        quoted = self.column(column)
        if json_values:
            return self.dialect.json_column(quoted), self.dialect.json_placeholder()
        return quoted, PLACEHOLDER


def _homogeneous_json(values: Iterable[Any], operation: str) -> bool:
    """Return True if every value is JSON, False if none is.

    Raises:
        MixedValueTypesError: If JSON and scalar values are mixed
    """
    kinds = {is_json_value(value) for value in values}
    if len(kinds) > 1:
        raise MixedValueTypesError(f"{operation} values must be all JSON objects/arrays or all scalars, not a mix")
    return kinds == {True}
