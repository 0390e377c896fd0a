"""quarry - async entity queries across MySQL, Postgres, SQLite and SQL Server.

Entities declare their columns and relations; a DataSource turns fluent
queries into parameterized SQL for its dialect and hydrates the rows back
into entities, relations included.
"""

from importlib.metadata import version

from quarry.case import convert_case
from quarry.config import QuarryConfig
from quarry.data_source import DataSource
from quarry.dialects import PLACEHOLDER, Dialect, get_dialect
from quarry.entity import Entity, RelationKind, belongs_to, column, dynamic_column, has_many, has_one
from quarry.errors import (
    ConfigurationError,
    MissingPrimaryKeyError,
    MixedValueTypesError,
    QuarryError,
    QueryConsumedError,
    QueryFailedError,
    RowNotFoundError,
    TransactionError,
    UnknownRelationError,
    UnsupportedDialectError,
)
from quarry.pagination import PaginatedData, PaginationMetadata
from quarry.query import QueryComposer
from quarry.transaction import Transaction

__version__ = version("quarry")
__all__ = [
    "PLACEHOLDER",
    "ConfigurationError",
    "DataSource",
    "Dialect",
    "Entity",
    "MissingPrimaryKeyError",
    "MixedValueTypesError",
    "PaginatedData",
    "PaginationMetadata",
    "QuarryConfig",
    "QuarryError",
    "QueryComposer",
    "QueryConsumedError",
    "QueryFailedError",
    "RelationKind",
    "RowNotFoundError",
    "Transaction",
    "TransactionError",
    "UnknownRelationError",
    "UnsupportedDialectError",
    "belongs_to",
    "column",
    "convert_case",
    "dynamic_column",
    "get_dialect",
    "has_many",
    "has_one",
    "__version__",
]
