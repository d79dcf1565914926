"""Immutable table and column metadata."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, List, Optional, Tuple

from dbextract.errors import (
    ColumnNotFoundError,
    ConfigurationError,
    InvalidStateError,
    TableNotFoundError,
)

__all__ = ["Column", "ColumnCollection", "ForeignKey", "Table", "TableCollection"]


@dataclass(frozen=True)
class ForeignKey:
    ref_table: str
    ref_column: str
    name: Optional[str] = None
    ref_schema: Optional[str] = None


@dataclass(frozen=True)
class Column:
    """Column of a table."""

    name: str
    sanitized_name: str
    type: str
    description: Optional[str] = None
    ordinal_position: Optional[int] = None
    nullable: Optional[bool] = None
    length: Optional[str] = None
    primary_key: bool = False
    unique_key: bool = False
    auto_increment: bool = False
    auto_increment_value: Optional[int] = None
    has_default: bool = False
    default: Optional[str] = None
    foreign_key: Optional[ForeignKey] = None
    constraints: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("Column name cannot be empty.")
        if self.auto_increment_value is not None and not self.auto_increment:
            raise InvalidStateError(
                f'Column "{self.name}" has auto increment value, but it is not auto increment.'
            )
        if self.default is not None and not self.has_default:
            raise InvalidStateError(
                f'Column "{self.name}" has default value, but "has_default" is not set.'
            )


class ColumnCollection:
    """Columns ordered by ordinal position.

    Columns without a position come after positioned ones; ties keep their
    original order.
    """

    def __init__(self, columns: Iterable[Column]) -> None:
        self._columns: Tuple[Column, ...] = tuple(
            sorted(
                columns,
                key=lambda c: (c.ordinal_position is None, c.ordinal_position or 0),
            )
        )

    def __iter__(self) -> Iterator[Column]:
        return iter(self._columns)

    def __len__(self) -> int:
        return len(self._columns)

    def __getitem__(self, index: int) -> Column:
        return self._columns[index]

    def __repr__(self) -> str:
        return f"ColumnCollection({self.names!r})"

    @property
    def is_empty(self) -> bool:
        return not self._columns

    @property
    def names(self) -> List[str]:
        return [column.name for column in self._columns]

    def _find(self, predicate: Callable[[Column], bool]) -> Optional[Column]:
        for column in self._columns:
            if predicate(column):
                return column
        return None

    def get_by_name(self, name: str) -> Column:
        column = self._find(lambda c: c.name == name) or self._find(
            lambda c: c.name.lower() == name.lower()
        )
        if column is None:
            raise ColumnNotFoundError(f'Column with name "{name}" not found.')
        return column

    def get_by_sanitized_name(self, sanitized_name: str) -> Column:
        column = self._find(lambda c: c.sanitized_name == sanitized_name) or self._find(
            lambda c: c.sanitized_name.lower() == sanitized_name.lower()
        )
        if column is None:
            raise ColumnNotFoundError(f'Column with sanitized name "{sanitized_name}" not found.')
        return column

    def get_by_ordinal_position(self, position: int) -> Column:
        column = self._find(lambda c: c.ordinal_position == position)
        if column is None:
            raise ColumnNotFoundError(f'Column with ordinal position "{position}" not found.')
        return column


@dataclass(frozen=True)
class Table:
    """Table or view with its columns.

    ``columns`` is None when the table was loaded without column discovery.
    """

    name: str
    sanitized_name: str
    columns: Optional[ColumnCollection] = None
    description: Optional[str] = None
    schema: Optional[str] = None
    catalog: Optional[str] = None
    tablespace_name: Optional[str] = None
    owner: Optional[str] = None
    type: Optional[str] = None
    row_count: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("Table name cannot be empty.")

    @property
    def has_columns(self) -> bool:
        return self.columns is not None


class TableCollection:
    """Ordered collection of tables."""

    def __init__(self, tables: Iterable[Table]) -> None:
        self._tables: Tuple[Table, ...] = tuple(tables)

    def __iter__(self) -> Iterator[Table]:
        return iter(self._tables)

    def __len__(self) -> int:
        return len(self._tables)

    def __getitem__(self, index: int) -> Table:
        return self._tables[index]

    @property
    def is_empty(self) -> bool:
        return not self._tables

    def get_by_name(self, name: str) -> Table:
        """Find a table by name in any schema, exact match first."""
        for table in self._tables:
            if table.name == name:
                return table
        for table in self._tables:
            if table.name.lower() == name.lower():
                return table
        raise TableNotFoundError(f'Table with name "{name}" not found.')

    def get_by_name_and_schema(self, name: str, schema: Optional[str] = None) -> Table:
        """Find a table, exact match first, then case-insensitive."""
        for table in self._tables:
            if table.name == name and table.schema == schema:
                return table
        for table in self._tables:
            if table.name.lower() == name.lower() and (table.schema or "").lower() == (
                schema or ""
            ).lower():
                return table
        raise TableNotFoundError(f'Table with name "{name}" and schema "{schema}" not found.')
