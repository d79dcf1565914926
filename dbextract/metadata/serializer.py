"""Plain-data description of discovered tables."""

from __future__ import annotations

from typing import Any, Dict, List

from dbextract.metadata.values import Column, Table, TableCollection

__all__ = ["serialize_column", "serialize_table", "serialize_tables"]


def serialize_column(column: Column) -> Dict[str, Any]:
    return {
        "name": column.name,
        "type": column.type,
        "primaryKey": column.primary_key,
    }


def serialize_table(table: Table) -> Dict[str, Any]:
    data: Dict[str, Any] = {"name": table.name, "schema": table.schema}
    if table.columns is not None:
        data["columns"] = [serialize_column(column) for column in table.columns]
    return data


def serialize_tables(tables: TableCollection) -> List[Dict[str, Any]]:
    """Serialize tables for a "get tables" response.

    Example:
        [{"name": "cities", "schema": None,
          "columns": [{"name": "id", "type": "INTEGER", "primaryKey": True}]}]
    """
    return [serialize_table(table) for table in tables]
