"""Database connections with retry and reconnect."""

from dbextract.connection.base import (
    CONNECT_MAX_RETRIES,
    DEFAULT_MAX_RETRIES,
    Connection,
    QueryMetadata,
    QueryResult,
)
from dbextract.connection.dbapi import DbApiConnection, SqliteConnection
from dbextract.connection.odbc import (
    MssqlConnection,
    OdbcConnection,
    OracleConnection,
    build_connection_string,
)

__all__ = [
    "CONNECT_MAX_RETRIES",
    "DEFAULT_MAX_RETRIES",
    "Connection",
    "DbApiConnection",
    "MssqlConnection",
    "OdbcConnection",
    "OracleConnection",
    "QueryMetadata",
    "QueryResult",
    "SqliteConnection",
    "build_connection_string",
]
