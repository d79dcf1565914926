"""SQL construction for table exports.

Custom queries are passed through unchanged (apart from a trailing
semicolon). Table exports are built as::

    SELECT <columns|*> FROM <schema>.<table>
        [WHERE <inc_col> >= <last value>] [ORDER BY <inc_col>] [<limit>]

The incremental filter is inclusive (``>=``) so rows sharing the last
fetched value are never lost; the consumer deduplicates by primary key.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from dbextract.config import ExportConfig
from dbextract.connection.base import Connection
from dbextract.errors import InvalidStateError
from dbextract.state import IncrementalFetchingState

logger = logging.getLogger(__name__)

__all__ = [
    "DefaultQueryFactory",
    "MssqlQueryFactory",
    "OracleQueryFactory",
    "QueryFactory",
    "is_incremental_fetching_type",
    "is_numeric_type",
    "is_timestamp_type",
]

NUMERIC_TYPES = frozenset(
    {
        "bigint",
        "bit",
        "dec",
        "decimal",
        "double",
        "double precision",
        "float",
        "int",
        "int2",
        "int4",
        "int8",
        "integer",
        "mediumint",
        "money",
        "number",
        "numeric",
        "real",
        "smallint",
        "smallmoney",
        "tinyint",
    }
)

# Date and time types usable as an incremental watermark
TIMESTAMP_TYPES = frozenset(
    {
        "date",
        "datetime",
        "datetime2",
        "datetimeoffset",
        "smalldatetime",
        "timestamp",
        "timestamptz",
    }
)

_TRAILING_SEMICOLONS = re.compile(r"[;\s]+$")
_NUMERIC_LITERAL = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


def _base_type(column_type: str) -> str:
    base = column_type.lower().split("(", 1)[0]
    return base.replace("unsigned", "").replace("identity", "").strip()


def is_numeric_type(column_type: Optional[str]) -> bool:
    """Whether a declared SQL type holds numbers.

    Example:
        >>> is_numeric_type("NUMBER(10,0)")
        True
        >>> is_numeric_type("varchar(255)")
        False
    """
    if not column_type:
        return False
    return _base_type(column_type) in NUMERIC_TYPES


def is_timestamp_type(column_type: Optional[str]) -> bool:
    """Whether a declared SQL type is a date or timestamp.

    ``TIMESTAMP(6) WITH TIME ZONE`` and similar qualified forms count.
    """
    if not column_type:
        return False
    words = _base_type(column_type).split()
    return bool(words) and words[0] in TIMESTAMP_TYPES


def is_incremental_fetching_type(column_type: Optional[str]) -> bool:
    return is_numeric_type(column_type) or is_timestamp_type(column_type)


class QueryFactory(ABC):
    """Builds the SQL executed by a query-based export."""

    @abstractmethod
    def create(
        self,
        config: ExportConfig,
        connection: Connection,
        state: Optional[IncrementalFetchingState] = None,
    ) -> str:
        """Return the export query for ``config``."""

    @abstractmethod
    def create_last_row_query(
        self,
        config: ExportConfig,
        connection: Connection,
        state: Optional[IncrementalFetchingState] = None,
    ) -> str:
        """Return a query selecting the max incremental value of the export."""


class DefaultQueryFactory(QueryFactory):
    """ANSI-style queries with a trailing ``LIMIT n``."""

    def create(
        self,
        config: ExportConfig,
        connection: Connection,
        state: Optional[IncrementalFetchingState] = None,
    ) -> str:
        if config.has_query:
            return _TRAILING_SEMICOLONS.sub("", config.query or "")
        sql = self._build(config, connection, state, ordered=True)
        logger.debug("Built export query: %s", sql)
        return sql

    def create_last_row_query(
        self,
        config: ExportConfig,
        connection: Connection,
        state: Optional[IncrementalFetchingState] = None,
    ) -> str:
        if not config.is_incremental:
            raise ValueError("Last row query requires incremental fetching.")
        column = connection.quote_identifier(config.incremental_column or "")
        inner = self._build(
            config,
            connection,
            state,
            ordered=config.incremental_limit is not None,
        )
        return f"SELECT MAX({column}) AS {column} FROM ({inner}) last_row"

    def quote_value(self, value: Any, column_type: Optional[str], connection: Connection) -> str:
        """Render a watermark value as SQL; numbers stay unquoted."""
        text = str(value)
        if is_numeric_type(column_type) and _NUMERIC_LITERAL.match(text):
            return text
        return connection.quote(text)

    def _build(
        self,
        config: ExportConfig,
        connection: Connection,
        state: Optional[IncrementalFetchingState],
        ordered: bool,
    ) -> str:
        limit = config.incremental_limit
        parts: List[str] = [
            self._select_clause(self._columns_sql(config, connection), limit),
            "FROM " + self._table_sql(config, connection),
        ]

        if config.incremental_fetching is not None:
            column = connection.quote_identifier(config.incremental_fetching.column)
            if state is not None and state.has_value:
                value = self.quote_value(
                    state.last_fetched_row,
                    config.incremental_fetching.column_type,
                    connection,
                )
                parts.append(f"WHERE {column} >= {value}")
            if ordered:
                parts.append(f"ORDER BY {column}")

        limit_clause = self._limit_clause(limit)
        if limit_clause:
            parts.append(limit_clause)

        return " ".join(parts)

    def _columns_sql(self, config: ExportConfig, connection: Connection) -> str:
        if not config.columns:
            return "*"
        return ", ".join(connection.quote_identifier(column) for column in config.columns)

    def _table_sql(self, config: ExportConfig, connection: Connection) -> str:
        if config.table is None:
            raise InvalidStateError("A table export requires a table.")
        table = connection.quote_identifier(config.table.name)
        if config.table.schema:
            return connection.quote_identifier(config.table.schema) + "." + table
        return table

    def _select_clause(self, columns_sql: str, limit: Optional[int]) -> str:
        return f"SELECT {columns_sql}"

    def _limit_clause(self, limit: Optional[int]) -> Optional[str]:
        return f"LIMIT {limit}" if limit is not None else None


class MssqlQueryFactory(DefaultQueryFactory):
    """SQL Server: ``SELECT TOP n``."""

    def _select_clause(self, columns_sql: str, limit: Optional[int]) -> str:
        if limit is not None:
            return f"SELECT TOP {limit} {columns_sql}"
        return f"SELECT {columns_sql}"

    def _limit_clause(self, limit: Optional[int]) -> Optional[str]:
        return None


class OracleQueryFactory(DefaultQueryFactory):
    """Oracle 12c+: ``FETCH FIRST n ROWS ONLY``."""

    def _limit_clause(self, limit: Optional[int]) -> Optional[str]:
        return f"FETCH FIRST {limit} ROWS ONLY" if limit is not None else None
