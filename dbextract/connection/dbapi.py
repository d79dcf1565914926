"""Connections over plain DB-API 2.0 driver modules."""

from __future__ import annotations

import sqlite3
from types import ModuleType
from typing import Any, Dict, Optional, Sequence, Tuple, Type

from dbextract.connection.base import Connection

__all__ = ["DbApiConnection", "SqliteConnection"]


class DbApiConnection(Connection):
    """Connection built on any DB-API 2.0 module.

    The module's ``OperationalError`` and ``InterfaceError`` are treated as
    retryable.

    Example:
        >>> import sqlite3
        >>> conn = DbApiConnection(sqlite3, args=(":memory:",))
        >>> conn.fetch_all("SELECT 1")
        [(1,)]
    """

    name = "dbapi"

    def __init__(
        self,
        module: ModuleType,
        args: Sequence[Any] = (),
        kwargs: Optional[Dict[str, Any]] = None,
        **options: Any,
    ) -> None:
        super().__init__(**options)
        self.module = module
        self.connect_args = tuple(args)
        self.connect_kwargs = dict(kwargs or {})

    def _connect_native(self) -> Any:
        return self.module.connect(*self.connect_args, **self.connect_kwargs)

    def expected_exception_classes(self) -> Tuple[Type[BaseException], ...]:
        classes = []
        for attr in ("OperationalError", "InterfaceError"):
            cls = getattr(self.module, attr, None)
            if isinstance(cls, type):
                classes.append(cls)
        return tuple(classes)


class SqliteConnection(DbApiConnection):
    """SQLite database file (or ``:memory:``) via the standard library."""

    name = "sqlite"

    def __init__(self, database: str, **options: Any) -> None:
        super().__init__(sqlite3, args=(database,), **options)
        self.database = database
