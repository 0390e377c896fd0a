"""Exceptions raised by quarry.

Configuration errors are raised synchronously before any I/O. Driver failures
are wrapped in QueryFailedError at the statement boundary.
"""

from typing import Any


class QuarryError(Exception):
    """Base exception for quarry errors."""

    pass


class ConfigurationError(QuarryError):
    """Invalid setup detected before a statement is sent."""

    pass


class UnsupportedDialectError(ConfigurationError):
    """The dialect tag is not one of the supported SQL families."""

    def __init__(self, dialect: str):
        super().__init__(f"Unsupported database dialect: {dialect!r}")
        self.dialect = dialect


class MissingPrimaryKeyError(ConfigurationError):
    """An operation needs a primary key the entity does not declare."""

    def __init__(self, entity_name: str, operation: str):
        super().__init__(f"{entity_name} has no primary key, cannot run {operation}")
        self.entity_name = entity_name
        self.operation = operation


class UnknownRelationError(ConfigurationError):
    """A relation name was requested that the entity does not declare."""

    def __init__(self, entity_name: str, relation: str, available: list[str]):
        super().__init__(
            f"{entity_name} has no relation {relation!r}. Available relations: {available}"
        )
        self.entity_name = entity_name
        self.relation = relation


class QueryConsumedError(ConfigurationError):
    """A terminal call was made on a query that already ran. Use copy() to branch."""

    pass


class MixedValueTypesError(QuarryError, ValueError):
    """An IN/BETWEEN call mixed JSON values with scalar values."""

    pass


class RowNotFoundError(QuarryError):
    """No row matched and the caller asked for an error instead of None."""

    def __init__(self, table: str):
        super().__init__(f"ROW_NOT_FOUND: no row matched in table '{table}'")
        self.table = table


class QueryFailedError(QuarryError):
    """The driver rejected or failed to run a statement."""

    def __init__(self, message: str, sql: str | None = None, params: list[Any] | None = None):
        super().__init__(f"Query failed: {message}")
        self.sql = sql
        self.params = params


class TransactionError(QuarryError):
    """Transaction could not be started or was used after it finished."""

    pass
