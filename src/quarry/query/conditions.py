"""Filter clause accumulation with nested grouping."""

import re
from collections.abc import Callable, Iterable, Sequence
from typing import Any

from quarry.dialects import Dialect
from quarry.entity import EntityDescriptor
from quarry.query.predicates import Connective, Predicate, PredicateBuilder

_UNSET: Any = object()

_LEADING_CONNECTIVE = re.compile(r"^(WHERE|AND|OR)\s+", re.IGNORECASE)


class ConditionComposer:
    """Chain predicates with AND/OR into a single WHERE clause.

    The first predicate on an empty composer renders with WHERE; later ones
    use AND (where*/and_where*) or OR (or_where*). Every method returns self.

    Example:
        conditions.where("age", ">", 18).where_builder(
            lambda q: q.where("role", "admin").or_where("role", "owner")
        )
        # WHERE "age" > ? AND ("role" = ? OR "role" = ?)
    """

    def __init__(self, descriptor: EntityDescriptor, dialect: Dialect, nested: bool = False):
        self.descriptor = descriptor
        self.dialect = dialect
        self.nested = nested
        self.predicates = PredicateBuilder(descriptor, dialect)
        self.where_sql = ""
        self.params: list[Any] = []

    @property
    def has_conditions(self) -> bool:
        return bool(self.where_sql)

    def _connective(self, requested: Connective) -> Connective:
        return "WHERE" if not self.where_sql else requested

    def _append(self, predicate: Predicate) -> "ConditionComposer":
        self.where_sql += predicate.fragment
        self.params.extend(predicate.params)
        return self

    def _compare(self, requested: Connective, column: str, operator_or_value: Any, value: Any) -> "ConditionComposer":
        if value is _UNSET:
            operator, value = "=", operator_or_value
        else:
            operator = operator_or_value

        # Comparing with None means a NULL check, "= NULL" never matches
        if value is None and operator in ("=", "!=", "<>"):
            negate = operator != "="
            return self._append(self.predicates.null(self._connective(requested), column, negate))
        return self._append(self.predicates.compare(self._connective(requested), column, value, operator))

    # =========================================================================
    # Comparison
    # =========================================================================

    def where(self, column: str, operator_or_value: Any, value: Any = _UNSET) -> "ConditionComposer":
        """Add "column = value", or "column OPERATOR value" when three args are given."""
        return self._compare("AND", column, operator_or_value, value)

    def and_where(self, column: str, operator_or_value: Any, value: Any = _UNSET) -> "ConditionComposer":
        return self._compare("AND", column, operator_or_value, value)

    def or_where(self, column: str, operator_or_value: Any, value: Any = _UNSET) -> "ConditionComposer":
        return self._compare("OR", column, operator_or_value, value)

    def where_not(self, column: str, value: Any) -> "ConditionComposer":
        """Add "column != value"."""
        return self._compare("AND", column, "!=", value)

    def and_where_not(self, column: str, value: Any) -> "ConditionComposer":
        return self._compare("AND", column, "!=", value)

    def or_where_not(self, column: str, value: Any) -> "ConditionComposer":
        return self._compare("OR", column, "!=", value)

    # =========================================================================
    # Ranges
    # =========================================================================

    def where_between(self, column: str, low: Any, high: Any) -> "ConditionComposer":
        return self._append(self.predicates.between(self._connective("AND"), column, low, high))

    def and_where_between(self, column: str, low: Any, high: Any) -> "ConditionComposer":
        return self._append(self.predicates.between(self._connective("AND"), column, low, high))

    def or_where_between(self, column: str, low: Any, high: Any) -> "ConditionComposer":
        return self._append(self.predicates.between(self._connective("OR"), column, low, high))

    def where_not_between(self, column: str, low: Any, high: Any) -> "ConditionComposer":
        return self._append(self.predicates.between(self._connective("AND"), column, low, high, negate=True))

    def and_where_not_between(self, column: str, low: Any, high: Any) -> "ConditionComposer":
        return self._append(self.predicates.between(self._connective("AND"), column, low, high, negate=True))

    def or_where_not_between(self, column: str, low: Any, high: Any) -> "ConditionComposer":
        return self._append(self.predicates.between(self._connective("OR"), column, low, high, negate=True))

    # =========================================================================
    # Set membership
    # =========================================================================

    def where_in(self, column: str, values: Iterable[Any]) -> "ConditionComposer":
        """Add "column IN (...)". An empty set matches no rows."""
        return self._append(self.predicates.in_(self._connective("AND"), column, values))

    def and_where_in(self, column: str, values: Iterable[Any]) -> "ConditionComposer":
        return self._append(self.predicates.in_(self._connective("AND"), column, values))

    def or_where_in(self, column: str, values: Iterable[Any]) -> "ConditionComposer":
        return self._append(self.predicates.in_(self._connective("OR"), column, values))

    def where_not_in(self, column: str, values: Iterable[Any]) -> "ConditionComposer":
        """Add "column NOT IN (...)". An empty set matches every row."""
        return self._append(self.predicates.in_(self._connective("AND"), column, values, negate=True))

    def and_where_not_in(self, column: str, values: Iterable[Any]) -> "ConditionComposer":
        return self._append(self.predicates.in_(self._connective("AND"), column, values, negate=True))

    def or_where_not_in(self, column: str, values: Iterable[Any]) -> "ConditionComposer":
        return self._append(self.predicates.in_(self._connective("OR"), column, values, negate=True))

    # =========================================================================
    # NULL checks
    # =========================================================================

    def where_null(self, column: str) -> "ConditionComposer":
        return self._append(self.predicates.null(self._connective("AND"), column))

    def and_where_null(self, column: str) -> "ConditionComposer":
        return self._append(self.predicates.null(self._connective("AND"), column))

    def or_where_null(self, column: str) -> "ConditionComposer":
        return self._append(self.predicates.null(self._connective("OR"), column))

    def where_not_null(self, column: str) -> "ConditionComposer":
        return self._append(self.predicates.null(self._connective("AND"), column, negate=True))

    def and_where_not_null(self, column: str) -> "ConditionComposer":
        return self._append(self.predicates.null(self._connective("AND"), column, negate=True))

    def or_where_not_null(self, column: str) -> "ConditionComposer":
        return self._append(self.predicates.null(self._connective("OR"), column, negate=True))

    # =========================================================================
    # Raw SQL
    # =========================================================================

    def raw_where(self, sql: str, params: Sequence[Any] | None = None) -> "ConditionComposer":
        """Add caller-written SQL. Use PLACEHOLDER for each bound value."""
        return self._append(self.predicates.raw(self._connective("AND"), sql, params))

    def and_raw_where(self, sql: str, params: Sequence[Any] | None = None) -> "ConditionComposer":
        return self._append(self.predicates.raw(self._connective("AND"), sql, params))

    def or_raw_where(self, sql: str, params: Sequence[Any] | None = None) -> "ConditionComposer":
        return self._append(self.predicates.raw(self._connective("OR"), sql, params))

    # =========================================================================
    # Nested groups
    # =========================================================================

    def where_builder(self, callback: Callable[["ConditionComposer"], Any]) -> "ConditionComposer":
        """Add a parenthesized group built by the callback.

        The callback receives a fresh nested composer and populates it exactly
        like a top-level one. A callback that adds nothing changes nothing.
        """
        return self._group("AND", callback)

    def and_where_builder(self, callback: Callable[["ConditionComposer"], Any]) -> "ConditionComposer":
        return self._group("AND", callback)

    def or_where_builder(self, callback: Callable[["ConditionComposer"], Any]) -> "ConditionComposer":
        return self._group("OR", callback)

    def _group(self, requested: Connective, callback: Callable[["ConditionComposer"], Any]) -> "ConditionComposer":
        nested = ConditionComposer(self.descriptor, self.dialect, nested=True)
        callback(nested)

        body = _LEADING_CONNECTIVE.sub("", nested.where_sql.strip(), count=1)
        if not body:
            return self
        return self._append(Predicate(f" {self._connective(requested)} ({body})", nested.params))

    # =========================================================================
    # Copying
    # =========================================================================

    def copy_conditions_from(self, other: "ConditionComposer") -> None:
        """Replace this composer's clause and params with copies of other's."""
        self.where_sql = other.where_sql
        self.params = list(other.params)
