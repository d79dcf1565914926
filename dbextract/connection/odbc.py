"""ODBC connections via pyodbc.

pyodbc needs an ODBC driver manager (unixODBC on Linux) and the vendor
driver installed on the host. Both are loaded on first connect; a missing
module or driver is reported as an ``ApplicationError``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple, Type

from dbextract.connection.base import Connection

logger = logging.getLogger(__name__)

__all__ = ["MssqlConnection", "OdbcConnection", "OracleConnection", "build_connection_string"]

DEFAULT_MSSQL_DRIVER = "ODBC Driver 18 for SQL Server"


def build_connection_string(
    *,
    driver: Optional[str] = None,
    dsn: Optional[str] = None,
    server: Optional[str] = None,
    database: Optional[str] = None,
    user: Optional[str] = None,
    password: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> str:
    """Build an ODBC connection string from its parts.

    Example:
        >>> build_connection_string(driver="FreeTDS", server="db,1433", database="sales")
        'DRIVER={FreeTDS};SERVER=db,1433;DATABASE=sales'
    """
    parts = []
    if driver:
        parts.append(f"DRIVER={{{driver}}}")
    if dsn:
        parts.append(f"DSN={dsn}")
    if server:
        parts.append(f"SERVER={server}")
    if database:
        parts.append(f"DATABASE={database}")
    if user:
        parts.append(f"UID={user}")
    if password:
        # Braces allow ; and = inside the password
        parts.append("PWD={" + password.replace("}", "}}") + "}")
    for key, value in (extra or {}).items():
        parts.append(f"{key}={value}")
    return ";".join(parts)


class OdbcConnection(Connection):
    """Generic ODBC data source, ANSI identifier quoting."""

    name = "odbc"

    def __init__(
        self,
        connection_string: str,
        *,
        login_timeout: Optional[int] = None,
        query_timeout: Optional[int] = None,
        **options: Any,
    ) -> None:
        super().__init__(**options)
        self.connection_string = connection_string
        self.login_timeout = login_timeout
        self.query_timeout = query_timeout

    def _connect_native(self) -> Any:
        import pyodbc

        kwargs: Dict[str, Any] = {}
        if self.login_timeout is not None:
            kwargs["timeout"] = self.login_timeout
        logger.debug("Opening %s connection", self.name)
        native = pyodbc.connect(self.connection_string, **kwargs)
        if self.query_timeout is not None:
            native.timeout = self.query_timeout
        return native

    def expected_exception_classes(self) -> Tuple[Type[BaseException], ...]:
        import pyodbc

        return (pyodbc.OperationalError, pyodbc.InterfaceError)


class MssqlConnection(OdbcConnection):
    """Microsoft SQL Server over ODBC, bracket identifier quoting."""

    name = "mssql"

    def quote_identifier(self, name: str) -> str:
        return "[" + name.replace("]", "]]") + "]"


class OracleConnection(OdbcConnection):
    """Oracle over ODBC."""

    name = "oracle"
    probe_query = "SELECT 1 FROM DUAL"
