"""Driver protocol.

A driver turns (sql, params) into rows. Statements reaching a driver already
carry the dialect's native placeholders and bound parameter values.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol

Row = dict[str, Any]


class StatementExecutor(Protocol):
    """Anything that can run one statement and return its rows."""

    async def execute(self, sql: str, params: list[Any]) -> list[Row]:
        """Run a statement.

        Args:
            sql: Statement text with native placeholders
            params: Positional parameter values

        Returns:
            Result rows as dicts keyed by column name, [] for statements
            that return no rows.
        """
        ...


class DriverConnection(StatementExecutor, Protocol):
    """One checked-out connection, used for transactions."""

    async def begin(self) -> None: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...

    async def release(self) -> None:
        """Return the connection to the pool. Called exactly once."""
        ...


class Driver(StatementExecutor, Protocol):
    """Pool-level interface implemented by every driver."""

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def acquire(self) -> DriverConnection:
        """Check out a dedicated connection from the pool."""
        ...

    def connection(self) -> AbstractAsyncContextManager[DriverConnection]:
        """Context manager holding one connection in an auto-committed transaction."""
        ...


def is_pooled(executor: StatementExecutor) -> bool:
    """True for a Driver, where each statement checks out its own connection.

    Transactions and checked-out connections run every statement on one
    connection, so they must not be sent overlapping statements.
    """
    return callable(getattr(executor, "acquire", None))
