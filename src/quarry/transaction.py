"""Transactions on a dedicated connection."""

import logging
from types import TracebackType
from typing import Any

from quarry.drivers.base import DriverConnection, Row
from quarry.errors import TransactionError

logger = logging.getLogger(__name__)


class Transaction:
    """A started transaction holding one checked-out connection.

    Pass it as trx= to DataSource methods to run statements inside it. The
    connection is released exactly once, when the transaction commits or
    rolls back, whether or not that succeeds.

    Usable as an async context manager: commits on clean exit, rolls back
    when the body raises.
    """

    def __init__(self, connection: DriverConnection):
        self.connection = connection
        self._started = False
        self._finished = False

    @property
    def is_active(self) -> bool:
        return self._started and not self._finished

    async def start(self) -> None:
        """Begin the transaction.

        Raises:
            TransactionError: If already started or BEGIN fails
        """
        if self._started:
            raise TransactionError("Transaction already started")
        try:
            await self.connection.begin()
        except Exception as e:
            logger.error(f"Failed to begin transaction: {e}")
            self._finished = True
            await self.connection.release()
            raise TransactionError(f"Failed to begin transaction: {e}") from e
        self._started = True
        logger.debug("Transaction started")

    async def execute(self, sql: str, params: list[Any]) -> list[Row]:
        self._ensure_active("execute")
        return await self.connection.execute(sql, params)

    async def commit(self) -> None:
        """Commit and release the connection.

        Raises:
            TransactionError: If the transaction already finished or COMMIT fails
        """
        self._ensure_active("commit")
        self._finished = True
        try:
            await self.connection.commit()
            logger.debug("Transaction committed")
        except Exception as e:
            logger.error(f"Failed to commit transaction: {e}")
            raise TransactionError(f"Failed to commit transaction: {e}") from e
        finally:
            await self.connection.release()

    async def rollback(self) -> None:
        """Roll back and release the connection.

        Raises:
            TransactionError: If the transaction already finished or ROLLBACK fails
        """
        self._ensure_active("rollback")
        self._finished = True
        try:
            await self.connection.rollback()
            logger.debug("Transaction rolled back")
        except Exception as e:
            logger.error(f"Failed to rollback transaction: {e}")
            raise TransactionError(f"Failed to rollback transaction: {e}") from e
        finally:
            await self.connection.release()

    def _ensure_active(self, action: str) -> None:
        if not self._started:
            raise TransactionError(f"Cannot {action}: transaction not started")
        if self._finished:
            raise TransactionError(f"Cannot {action}: transaction already finished")

    async def __aenter__(self) -> "Transaction":
        if not self._started:
            await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if not self.is_active:
            return
        if exc is None:
            await self.commit()
            return

        # The body's exception propagates; a failed rollback is attached to it
        try:
            await self.rollback()
        except TransactionError as rollback_error:
            exc.add_note(f"Rollback also failed: {rollback_error}")
