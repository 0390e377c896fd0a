"""Statement execution shared by every query builder."""

import logging
from typing import Any

from quarry.dialects import PLACEHOLDER, Dialect
from quarry.drivers.base import Row, StatementExecutor
from quarry.errors import QuarryError, QueryFailedError

logger = logging.getLogger(__name__)


async def run_statement(
    executor: StatementExecutor,
    dialect: Dialect,
    sql: str,
    params: list[Any],
    log_queries: bool = False,
) -> list[Row]:
    """Resolve placeholders, bind params and run one statement.

    Args:
        executor: Driver or checked-out connection
        dialect: Dialect used to resolve sentinels and bind values
        sql: Statement text, possibly containing PLACEHOLDER sentinels
        params: Values in sentinel order
        log_queries: Log the statement at INFO instead of DEBUG

    Returns:
        Result rows

    Raises:
        QueryFailedError: If the driver fails to run the statement
    """
    if PLACEHOLDER in sql:
        sql = dialect.resolve_placeholders(sql)
    bound = dialect.bind_params(params)

    logger.log(logging.INFO if log_queries else logging.DEBUG, f"SQL: {sql} | params: {bound}")

    try:
        return await executor.execute(sql, bound)
    except QuarryError:
        raise
    except Exception as e:
        logger.debug(f"Statement failed: {e}")
        raise QueryFailedError(str(e), sql=sql, params=bound) from e
