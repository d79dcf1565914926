"""Builders for table and column metadata.

Each builder knows which properties must be set before ``build()``. Some
properties are always required; others are optional unless the caller
lists them as required when creating the builder. A metadata provider
that can reliably report, say, ordinal positions asks for them to be
required so a gap in its own code surfaces as an error::

    builder = MetadataBuilder.create(column_required=["ordinal_position"])
    table = builder.add_table().set_name("orders").set_schema("dbo")
    table.add_column().set_name("id").set_type("int").set_ordinal_position(1)
    tables = builder.build()
"""

from __future__ import annotations

import logging
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from dbextract.errors import (
    ConfigurationError,
    InvalidStateError,
    NoColumnError,
    PropertyNotSetError,
)
from dbextract.metadata.sanitize import sanitize_name
from dbextract.metadata.values import (
    Column,
    ColumnCollection,
    ForeignKey,
    Table,
    TableCollection,
)

logger = logging.getLogger(__name__)

__all__ = ["ColumnBuilder", "ForeignKeyBuilder", "MetadataBuilder", "TableBuilder"]


class _RequiredPropertiesBuilder:
    """Tracks property values and which of them are required."""

    BUILT_TYPE = ""
    ALWAYS_REQUIRED: Tuple[str, ...] = ()
    OPTIONAL_REQUIRED: Tuple[str, ...] = ()

    def __init__(self, required: Iterable[str] = ()) -> None:
        required = list(required)
        invalid = [name for name in required if name not in self.OPTIONAL_REQUIRED]
        if invalid:
            raise ConfigurationError(
                'Properties "{}" cannot be set as required, they are not optional-required '
                "properties of {} ({}).".format(
                    ", ".join(invalid), self.BUILT_TYPE, ", ".join(self.OPTIONAL_REQUIRED)
                )
            )
        self._required = list(self.ALWAYS_REQUIRED) + [
            name for name in self.OPTIONAL_REQUIRED if name in required
        ]
        self._values: Dict[str, Any] = {}

    @property
    def required_properties(self) -> FrozenSet[str]:
        return frozenset(self._required)

    def set_property_as_optional(self, name: str) -> None:
        if name not in self._required:
            raise InvalidStateError(f'Property "{name}" is not required in {self.BUILT_TYPE}.')
        self._required.remove(name)

    def _set(self, name: str, value: Any) -> Any:
        self._values[name] = value
        return self

    def _get(self, name: str, default: Any = None) -> Any:
        return self._values.get(name, default)

    def _check_required(self) -> None:
        for name in self._required:
            if self._values.get(name) is None:
                raise PropertyNotSetError(
                    f'Required property "{name}" is not set in {self.BUILT_TYPE}.'
                )


def _trim_name(name: str, trim: bool, kind: str) -> str:
    if trim:
        name = name.strip()
    if not name:
        raise ConfigurationError(f"{kind} name cannot be empty.")
    return name


def _empty_to_none(value: Optional[str]) -> Optional[str]:
    return None if value == "" else value


class ForeignKeyBuilder(_RequiredPropertiesBuilder):
    BUILT_TYPE = "ForeignKey"
    ALWAYS_REQUIRED = ("ref_table", "ref_column")
    OPTIONAL_REQUIRED = ("name", "ref_schema")

    @classmethod
    def create(cls, required: Iterable[str] = ()) -> "ForeignKeyBuilder":
        return cls(required)

    def _set_non_empty(self, name: str, value: str) -> "ForeignKeyBuilder":
        if not value:
            raise ConfigurationError(f'Foreign key property "{name}" cannot be empty.')
        return self._set(name, value)

    def set_name(self, name: str) -> "ForeignKeyBuilder":
        return self._set_non_empty("name", name)

    def set_ref_schema(self, ref_schema: str) -> "ForeignKeyBuilder":
        return self._set_non_empty("ref_schema", ref_schema)

    def set_ref_table(self, ref_table: str) -> "ForeignKeyBuilder":
        return self._set_non_empty("ref_table", ref_table)

    def set_ref_column(self, ref_column: str) -> "ForeignKeyBuilder":
        return self._set_non_empty("ref_column", ref_column)

    def build(self) -> ForeignKey:
        self._check_required()
        return ForeignKey(
            ref_table=self._get("ref_table"),
            ref_column=self._get("ref_column"),
            name=self._get("name"),
            ref_schema=self._get("ref_schema"),
        )


class ColumnBuilder(_RequiredPropertiesBuilder):
    BUILT_TYPE = "Column"
    ALWAYS_REQUIRED = ("name", "sanitized_name", "type")
    OPTIONAL_REQUIRED = ("ordinal_position", "nullable")

    def __init__(self, required: Iterable[str] = ()) -> None:
        super().__init__(required)
        self._foreign_key: Optional[ForeignKeyBuilder] = None
        self._constraints: List[str] = []

    @classmethod
    def create(cls, required: Iterable[str] = ()) -> "ColumnBuilder":
        return cls(required)

    def set_name(self, name: str, trim: bool = True) -> "ColumnBuilder":
        name = _trim_name(name, trim, "Column")
        self._set("sanitized_name", sanitize_name(name))
        return self._set("name", name)

    def set_type(self, type_: str) -> "ColumnBuilder":
        return self._set("type", type_)

    def set_description(self, description: Optional[str]) -> "ColumnBuilder":
        return self._set("description", _empty_to_none(description))

    def set_ordinal_position(self, position: int) -> "ColumnBuilder":
        return self._set("ordinal_position", int(position))

    def set_nullable(self, nullable: bool) -> "ColumnBuilder":
        return self._set("nullable", bool(nullable))

    def set_length(self, length: Optional[str]) -> "ColumnBuilder":
        length = _empty_to_none(length)
        return self._set("length", None if length is None else str(length))

    def set_primary_key(self, primary_key: bool) -> "ColumnBuilder":
        return self._set("primary_key", bool(primary_key))

    def set_unique_key(self, unique_key: bool) -> "ColumnBuilder":
        return self._set("unique_key", bool(unique_key))

    def set_auto_increment(self, auto_increment: bool) -> "ColumnBuilder":
        return self._set("auto_increment", bool(auto_increment))

    def set_auto_increment_value(self, value: int) -> "ColumnBuilder":
        self._set("auto_increment", True)
        return self._set("auto_increment_value", int(value))

    def set_default(self, default: Optional[str]) -> "ColumnBuilder":
        self._set("has_default", True)
        return self._set("default", default)

    def add_constraint(self, constraint: str) -> "ColumnBuilder":
        self._constraints.append(constraint)
        return self

    def add_foreign_key(self, required: Iterable[str] = ()) -> ForeignKeyBuilder:
        if self._foreign_key is not None:
            raise InvalidStateError(
                f'Foreign key is already set for column "{self._get("name")}".'
            )
        self._foreign_key = ForeignKeyBuilder.create(required)
        return self._foreign_key

    @property
    def has_foreign_key(self) -> bool:
        return self._foreign_key is not None

    def build(self) -> Column:
        self._check_required()
        return Column(
            name=self._get("name"),
            sanitized_name=self._get("sanitized_name"),
            type=self._get("type"),
            description=self._get("description"),
            ordinal_position=self._get("ordinal_position"),
            nullable=self._get("nullable"),
            length=self._get("length"),
            primary_key=self._get("primary_key", False),
            unique_key=self._get("unique_key", False),
            auto_increment=self._get("auto_increment", False),
            auto_increment_value=self._get("auto_increment_value"),
            has_default=self._get("has_default", False),
            default=self._get("default"),
            foreign_key=self._foreign_key.build() if self._foreign_key else None,
            constraints=tuple(self._constraints),
        )


class TableBuilder(_RequiredPropertiesBuilder):
    BUILT_TYPE = "Table"
    ALWAYS_REQUIRED = ("name", "sanitized_name", "columns")
    OPTIONAL_REQUIRED = ("schema", "catalog", "tablespace_name", "owner", "type", "row_count")

    def __init__(
        self,
        required: Iterable[str] = (),
        column_required: Iterable[str] = (),
    ) -> None:
        super().__init__(required)
        self._column_required = tuple(column_required)
        self._columns: Optional[List[ColumnBuilder]] = []
        self._values["columns"] = self._columns

    @classmethod
    def create(
        cls,
        required: Iterable[str] = (),
        column_required: Iterable[str] = (),
    ) -> "TableBuilder":
        return cls(required, column_required)

    def set_name(self, name: str, trim: bool = True) -> "TableBuilder":
        name = _trim_name(name, trim, "Table")
        self._set("sanitized_name", sanitize_name(name))
        return self._set("name", name)

    def set_description(self, description: Optional[str]) -> "TableBuilder":
        return self._set("description", _empty_to_none(description))

    def set_schema(self, schema: Optional[str]) -> "TableBuilder":
        return self._set("schema", schema)

    def set_catalog(self, catalog: Optional[str]) -> "TableBuilder":
        return self._set("catalog", catalog)

    def set_tablespace_name(self, tablespace_name: Optional[str]) -> "TableBuilder":
        return self._set("tablespace_name", tablespace_name)

    def set_owner(self, owner: Optional[str]) -> "TableBuilder":
        return self._set("owner", owner)

    def set_type(self, type_: Optional[str]) -> "TableBuilder":
        return self._set("type", type_)

    def set_row_count(self, row_count: Optional[int]) -> "TableBuilder":
        return self._set("row_count", None if row_count is None else int(row_count))

    def set_columns_not_expected(self) -> "TableBuilder":
        """Build the table without columns, e.g. when listing thousands of tables."""
        if "columns" in self._required:
            self._required.remove("columns")
        self._columns = None
        self._values["columns"] = None
        return self

    @property
    def columns_expected(self) -> bool:
        return self._columns is not None

    def add_column(self, required: Optional[Iterable[str]] = None) -> ColumnBuilder:
        if self._columns is None:
            raise InvalidStateError("Columns are not expected.")
        builder = ColumnBuilder.create(self._column_required if required is None else required)
        self._columns.append(builder)
        return builder

    def build(self) -> Table:
        self._check_required()

        columns: Optional[ColumnCollection] = None
        if self._columns is not None:
            if not self._columns:
                raise NoColumnError(
                    f'Table "{self._get("name")}" must have at least one column.'
                )
            columns = ColumnCollection(builder.build() for builder in self._columns)

        return Table(
            name=self._get("name"),
            sanitized_name=self._get("sanitized_name"),
            columns=columns,
            description=self._get("description"),
            schema=self._get("schema"),
            catalog=self._get("catalog"),
            tablespace_name=self._get("tablespace_name"),
            owner=self._get("owner"),
            type=self._get("type"),
            row_count=self._get("row_count"),
        )


class MetadataBuilder:
    """Collects table builders and builds a TableCollection.

    Tables that end up with no columns (e.g. no permission to read them)
    are left out unless ``ignore_tables_without_columns`` is False.
    """

    def __init__(
        self,
        table_required: Iterable[str] = (),
        column_required: Iterable[str] = (),
        ignore_tables_without_columns: bool = True,
    ) -> None:
        self._table_required = tuple(table_required)
        self._column_required = tuple(column_required)
        self.ignore_tables_without_columns = ignore_tables_without_columns
        self._tables: List[TableBuilder] = []

    @classmethod
    def create(
        cls,
        table_required: Iterable[str] = (),
        column_required: Iterable[str] = (),
        ignore_tables_without_columns: bool = True,
    ) -> "MetadataBuilder":
        return cls(table_required, column_required, ignore_tables_without_columns)

    def add_table(self) -> TableBuilder:
        builder = TableBuilder.create(self._table_required, self._column_required)
        self._tables.append(builder)
        return builder

    def build(self) -> TableCollection:
        tables: List[Table] = []
        for builder in self._tables:
            try:
                tables.append(builder.build())
            except NoColumnError as e:
                if not self.ignore_tables_without_columns:
                    raise
                logger.debug("Skipping table: %s", e)
        return TableCollection(tables)
