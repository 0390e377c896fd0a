"""Drivers that run rendered statements.

This package provides:
- Driver / DriverConnection: the protocols query builders depend on
- SQLAlchemyDriver: SQLAlchemy async engine, every dialect
- AsyncpgDriver: native asyncpg pool, Postgres only
"""

from quarry.drivers.asyncpg_driver import AsyncpgDriver
from quarry.drivers.base import Driver, DriverConnection, Row, StatementExecutor, is_pooled
from quarry.drivers.sqlalchemy_driver import SQLAlchemyDriver

__all__ = [
    "AsyncpgDriver",
    "Driver",
    "DriverConnection",
    "Row",
    "SQLAlchemyDriver",
    "StatementExecutor",
    "is_pooled",
]
