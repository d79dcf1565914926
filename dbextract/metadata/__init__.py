"""Table and column metadata: value objects, builders and providers."""

from dbextract.metadata.builders import (
    ColumnBuilder,
    ForeignKeyBuilder,
    MetadataBuilder,
    TableBuilder,
)
from dbextract.metadata.provider import (
    MetadataProvider,
    OdbcMetadataProvider,
    SqliteMetadataProvider,
)
from dbextract.metadata.sanitize import sanitize_name
from dbextract.metadata.serializer import serialize_tables
from dbextract.metadata.values import (
    Column,
    ColumnCollection,
    ForeignKey,
    Table,
    TableCollection,
)

__all__ = [
    "Column",
    "ColumnBuilder",
    "ColumnCollection",
    "ForeignKey",
    "ForeignKeyBuilder",
    "MetadataBuilder",
    "MetadataProvider",
    "OdbcMetadataProvider",
    "SqliteMetadataProvider",
    "Table",
    "TableBuilder",
    "TableCollection",
    "sanitize_name",
    "serialize_tables",
]
