"""SQL dialect strategies.

Every dialect difference quarry cares about lives on a Dialect instance:
identifier quoting, placeholder syntax, JSON comparison expressions,
LIMIT/OFFSET rendering and RETURNING support. Builders call methods on the
dialect instead of switching on a dialect name.
"""

import json
import re
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Literal

from quarry.errors import UnsupportedDialectError

# Internal marker for a not-yet-resolved parameter position. The NUL bytes
# keep it from matching SQL literals or identifiers spelled PLACEHOLDER.
PLACEHOLDER = "\x00PLACEHOLDER\x00"

_PLACEHOLDER_RE = re.compile(re.escape(PLACEHOLDER))

# Expressions that are passed through select/order lists without quoting
_PASSTHROUGH_KEYWORDS = {"*", "COUNT", "DISTINCT", "AVG", "MAX", "MIN", "SUM"}


def is_json_value(value: Any) -> bool:
    """Return True if the value is sent to the database as JSON."""
    return isinstance(value, (dict, list))


@dataclass(frozen=True)
class Dialect:
    """Strategy object describing one SQL family."""

    name: str
    quote_open: str
    quote_close: str
    paramstyle: Literal["format", "qmark", "numeric_dollar"]
    json_column_template: str
    json_placeholder_template: str
    returning: Literal["returning", "output"] | None
    pagination: Literal["limit_offset", "offset_fetch"] = "limit_offset"
    # LIMIT value used when only an OFFSET is set and the dialect needs a LIMIT
    max_limit: str | None = None

    # =========================================================================
    # Identifiers
    # =========================================================================

    def quote(self, identifier: str) -> str:
        """Quote an identifier, quoting each part of a dotted name.

        Expressions (function calls, aliases, "*") are returned unchanged.
        """
        if is_expression(identifier):
            return identifier

        parts = identifier.split(".")
        return ".".join(part if part == "*" else self._quote_part(part) for part in parts)

    def _quote_part(self, part: str) -> str:
        escaped = part.replace(self.quote_close, self.quote_close * 2)
        return f"{self.quote_open}{escaped}{self.quote_close}"

    # =========================================================================
    # Placeholders
    # =========================================================================

    def resolve_placeholders(self, sql: str, start_index: int = 1) -> str:
        """Replace every placeholder sentinel with the native syntax in one pass.

        Args:
            sql: Statement text containing sentinels
            start_index: First number for numbered placeholders, so a WHERE
                clause can continue numbering after an earlier SET clause

        Returns:
            Statement text with no sentinel left
        """
        if self.paramstyle == "numeric_dollar":
            counter = iter(range(start_index, start_index + sql.count(PLACEHOLDER)))
            return _PLACEHOLDER_RE.sub(lambda _: f"${next(counter)}", sql)
        marker = "%s" if self.paramstyle == "format" else "?"
        return sql.replace(PLACEHOLDER, marker)

    def bind_params(self, params: list[Any]) -> list[Any]:
        """Adapt parameter values for the driver (JSON values become JSON text)."""
        return [json.dumps(value, default=_json_default) if is_json_value(value) else value for value in params]

    # =========================================================================
    # JSON
    # =========================================================================

    def json_column(self, column: str) -> str:
        """Expression comparing a stored JSON column."""
        return self.json_column_template.format(column=column)

    def json_placeholder(self) -> str:
        """Sentinel wrapped in the dialect's JSON cast."""
        return self.json_placeholder_template.format(placeholder=PLACEHOLDER)

    # =========================================================================
    # Statement parts
    # =========================================================================

    def render_footer(
        self,
        group_by: list[str],
        order_by: list[str],
        limit: int | None,
        offset: int | None,
    ) -> str:
        """Render GROUP BY, ORDER BY and the row-window clause.

        Args:
            group_by: Already quoted group columns
            order_by: Already quoted "column DIRECTION" entries
            limit: Row limit or None
            offset: Row offset or None
        """
        footer = ""
        if group_by:
            footer += f" GROUP BY {', '.join(group_by)}"

        if self.pagination == "offset_fetch":
            if order_by:
                footer += f" ORDER BY {', '.join(order_by)}"
            elif limit is not None or offset is not None:
                # OFFSET/FETCH is only valid after an ORDER BY
                footer += " ORDER BY (SELECT NULL)"
            if limit is not None or offset is not None:
                footer += f" OFFSET {offset or 0} ROWS"
            if limit is not None:
                footer += f" FETCH NEXT {limit} ROWS ONLY"
            return footer

        if order_by:
            footer += f" ORDER BY {', '.join(order_by)}"
        if limit is not None:
            footer += f" LIMIT {limit}"
        elif offset is not None and self.max_limit is not None:
            footer += f" LIMIT {self.max_limit}"
        if offset is not None:
            footer += f" OFFSET {offset}"
        return footer

    def returning_clause(self, operation: Literal["insert", "update", "delete"]) -> tuple[str, str]:
        """Return (infix, suffix) used to get affected rows back.

        MSSQL puts OUTPUT before VALUES/WHERE; Postgres and SQLite append
        RETURNING. Dialects without support return two empty strings.
        """
        if self.returning == "returning":
            return "", " RETURNING *"
        if self.returning == "output":
            source = "DELETED" if operation == "delete" else "INSERTED"
            return f" OUTPUT {source}.*", ""
        return "", ""


def is_expression(identifier: str) -> bool:
    """True for select/order entries that must not be quoted."""
    stripped = identifier.strip()
    if stripped.upper() in _PASSTHROUGH_KEYWORDS:
        return True
    return "(" in stripped or " " in stripped


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


MYSQL = Dialect(
    name="mysql",
    quote_open="`",
    quote_close="`",
    paramstyle="format",
    json_column_template="JSON_UNQUOTE(JSON_EXTRACT({column}, '$'))",
    json_placeholder_template="{placeholder}",
    returning=None,
    max_limit="18446744073709551615",
)

POSTGRES = Dialect(
    name="postgres",
    quote_open='"',
    quote_close='"',
    paramstyle="numeric_dollar",
    json_column_template="{column}::jsonb",
    json_placeholder_template="{placeholder}::jsonb",
    returning="returning",
)

SQLITE = Dialect(
    name="sqlite",
    quote_open='"',
    quote_close='"',
    paramstyle="qmark",
    json_column_template="json({column})",
    json_placeholder_template="json({placeholder})",
    returning="returning",
    max_limit="-1",
)

MSSQL = Dialect(
    name="mssql",
    quote_open="[",
    quote_close="]",
    paramstyle="qmark",
    json_column_template="JSON_QUERY({column}, '$')",
    json_placeholder_template="{placeholder}",
    returning="output",
    pagination="offset_fetch",
)

DIALECTS: dict[str, Dialect] = {
    "mysql": MYSQL,
    "mariadb": MYSQL,
    "postgres": POSTGRES,
    "postgresql": POSTGRES,
    "sqlite": SQLITE,
    "mssql": MSSQL,
}


def get_dialect(tag: str | Dialect) -> Dialect:
    """Look up a dialect by tag.

    Raises:
        UnsupportedDialectError: If the tag is not a supported dialect
    """
    if isinstance(tag, Dialect):
        return tag
    try:
        return DIALECTS[tag.lower()]
    except (KeyError, AttributeError):
        raise UnsupportedDialectError(str(tag)) from None
