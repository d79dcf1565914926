"""Table metadata discovery.

A ``MetadataProvider`` lists the tables of a data source, optionally with
their columns, as a ``TableCollection``.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from dbextract.config import InputTable
from dbextract.connection.base import Connection
from dbextract.metadata.builders import MetadataBuilder, TableBuilder
from dbextract.metadata.values import Table, TableCollection

logger = logging.getLogger(__name__)

__all__ = ["MetadataProvider", "OdbcMetadataProvider", "SqliteMetadataProvider"]

# SQLite reports the tables of the opened database file under this schema
SQLITE_SCHEMA = "main"

_TYPE_WITH_LENGTH = re.compile(r"^\s*([^(]+?)\s*\(\s*([^)]*)\s*\)\s*$")

# Types whose size reported by the driver is not a meaningful length
TYPES_WITHOUT_LENGTH = frozenset(
    {
        "bigint",
        "bit",
        "boolean",
        "date",
        "datetime",
        "datetime2",
        "double",
        "float",
        "int",
        "integer",
        "real",
        "smallint",
        "time",
        "timestamp",
        "tinyint",
    }
)


def _matches_whitelist(
    name: str, schema: Optional[str], whitelist: Optional[Sequence[InputTable]]
) -> bool:
    if whitelist is None:
        return True
    for item in whitelist:
        if item.name.lower() != name.lower():
            continue
        if item.schema is None or (schema or "").lower() == item.schema.lower():
            return True
    return False


class MetadataProvider(ABC):
    """Source of table and column metadata."""

    @abstractmethod
    def list_tables(
        self,
        whitelist: Optional[Sequence[InputTable]] = None,
        load_columns: bool = True,
    ) -> TableCollection:
        """List tables, restricted to ``whitelist`` when given."""

    def get_table(self, table: InputTable) -> Table:
        """Load one table with its columns.

        Without a schema the first table of that name in any schema is
        returned, matching how ``list_tables`` applies its whitelist.

        Raises:
            TableNotFoundError: No such table in the data source.
        """
        tables = self.list_tables([table])
        if table.schema is None:
            return tables.get_by_name(table.name)
        return tables.get_by_name_and_schema(table.name, table.schema)


class SqliteMetadataProvider(MetadataProvider):
    """Metadata from ``sqlite_master`` and ``PRAGMA`` statements."""

    def __init__(self, connection: Connection) -> None:
        self.connection = connection

    def list_tables(
        self,
        whitelist: Optional[Sequence[InputTable]] = None,
        load_columns: bool = True,
    ) -> TableCollection:
        rows = self.connection.fetch_all(
            "SELECT name, type FROM sqlite_master "
            "WHERE type IN ('table', 'view') AND name NOT LIKE 'sqlite_%' "
            "ORDER BY name"
        )

        builder = MetadataBuilder.create(column_required=["ordinal_position", "nullable"])
        for name, table_type in rows:
            if not _matches_whitelist(name, SQLITE_SCHEMA, whitelist):
                continue
            table = (
                builder.add_table()
                .set_name(name, trim=False)
                .set_schema(SQLITE_SCHEMA)
                .set_type(table_type)
            )
            if load_columns:
                self._add_columns(table, name)
            else:
                table.set_columns_not_expected()

        tables = builder.build()
        logger.debug("Loaded metadata of %d table(s)", len(tables))
        return tables

    def _add_columns(self, table: TableBuilder, name: str) -> None:
        quoted = self.connection.quote_identifier(name)
        foreign_keys: Dict[str, Tuple[str, str]] = {}
        for row in self.connection.fetch_all(f"PRAGMA foreign_key_list({quoted})"):
            # id, seq, table, from, to, on_update, on_delete, match
            foreign_keys[row[3]] = (row[2], row[4])

        for cid, column_name, declared_type, not_null, default, pk in self.connection.fetch_all(
            f"PRAGMA table_info({quoted})"
        ):
            column_type, length = _split_type(declared_type or "")
            column = (
                table.add_column()
                .set_name(column_name, trim=False)
                .set_type(column_type)
                .set_length(length)
                .set_ordinal_position(cid + 1)
                .set_nullable(not not_null)
                .set_primary_key(pk > 0)
            )
            if default is not None:
                column.set_default(str(default))
            ref_table, ref_column = foreign_keys.get(column_name, (None, None))
            # ref_column is NULL when the key implicitly references the primary key
            if ref_table and ref_column:
                column.add_foreign_key().set_ref_table(ref_table).set_ref_column(ref_column)


def _split_type(declared_type: str) -> Tuple[str, Optional[str]]:
    """Split ``VARCHAR(255)`` into ``("VARCHAR", "255")``."""
    match = _TYPE_WITH_LENGTH.match(declared_type)
    if match:
        return match.group(1), match.group(2).replace(" ", "")
    return declared_type.strip(), None


class OdbcMetadataProvider(MetadataProvider):
    """Metadata from the ODBC catalog functions of pyodbc.

    Uses ``cursor.tables()``, ``cursor.columns()`` and
    ``cursor.primaryKeys()``.
    """

    def __init__(
        self,
        connection: Connection,
        ignored_schemas: Iterable[str] = ("INFORMATION_SCHEMA", "sys"),
        ignored_catalogs: Iterable[str] = (),
    ) -> None:
        self.connection = connection
        self.ignored_schemas = {s.lower() for s in ignored_schemas}
        self.ignored_catalogs = {c.lower() for c in ignored_catalogs}

    def _is_ignored(self, row: Any) -> bool:
        schema = (getattr(row, "table_schem", None) or "").lower()
        catalog = (getattr(row, "table_cat", None) or "").lower()
        return schema in self.ignored_schemas or catalog in self.ignored_catalogs

    def _catalog(self, method: str, **kwargs: Any) -> List[Any]:
        def operation() -> List[Any]:
            cursor = self.connection.connect().cursor()
            try:
                return list(getattr(cursor, method)(**kwargs))
            finally:
                cursor.close()

        return self.connection.call_with_retry(operation)

    def list_tables(
        self,
        whitelist: Optional[Sequence[InputTable]] = None,
        load_columns: bool = True,
    ) -> TableCollection:
        table_rows = [
            row
            for row in self._catalog("tables", tableType="TABLE,VIEW")
            if not self._is_ignored(row)
            and _matches_whitelist(row.table_name, row.table_schem, whitelist)
        ]
        table_rows.sort(key=lambda r: ((r.table_schem or ""), r.table_name))

        builder = MetadataBuilder.create(column_required=["ordinal_position", "nullable"])
        for row in table_rows:
            table_type = "view" if "VIEW" in (row.table_type or "").upper() else "table"
            table = (
                builder.add_table()
                .set_name(row.table_name, trim=False)
                .set_schema(row.table_schem)
                .set_catalog(row.table_cat)
                .set_type(table_type)
                .set_description(getattr(row, "remarks", None))
            )
            if load_columns:
                self._add_columns(table, row.table_name, row.table_schem)
            else:
                table.set_columns_not_expected()

        tables = builder.build()
        logger.debug("Loaded metadata of %d table(s)", len(tables))
        return tables

    def _add_columns(self, table: TableBuilder, name: str, schema: Optional[str]) -> None:
        primary_keys = {
            row.column_name
            for row in self._catalog("primaryKeys", table=name, schema=schema)
        }
        column_rows = sorted(
            self._catalog("columns", table=name, schema=schema),
            key=lambda r: r.ordinal_position,
        )
        for row in column_rows:
            column = (
                table.add_column()
                .set_name(row.column_name, trim=False)
                .set_type(row.type_name)
                .set_ordinal_position(row.ordinal_position)
                .set_nullable(row.nullable == 1)
                .set_primary_key(row.column_name in primary_keys)
                .set_description(getattr(row, "remarks", None))
            )
            if row.type_name.lower() not in TYPES_WITHOUT_LENGTH and row.column_size is not None:
                length = str(row.column_size)
                if getattr(row, "decimal_digits", None) is not None:
                    length += f",{row.decimal_digits}"
                column.set_length(length)
            if getattr(row, "column_def", None) is not None:
                column.set_default(str(row.column_def))
