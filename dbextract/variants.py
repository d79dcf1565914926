"""Supported data sources.

Each variant bundles the connection, query factory and metadata provider
for one kind of database. ``create_extractor`` picks the variant from the
``driver`` option of a ``DatabaseConfig``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence, Union

from dbextract.adapters import ExportAdapter, FallbackExportAdapter, QueryExportAdapter
from dbextract.config import DatabaseConfig
from dbextract.connection.base import Connection
from dbextract.connection.dbapi import SqliteConnection
from dbextract.connection.odbc import (
    DEFAULT_MSSQL_DRIVER,
    MssqlConnection,
    OdbcConnection,
    OracleConnection,
    build_connection_string,
)
from dbextract.errors import ConfigurationError
from dbextract.extractor import Extractor
from dbextract.metadata.provider import (
    MetadataProvider,
    OdbcMetadataProvider,
    SqliteMetadataProvider,
)
from dbextract.query import (
    DefaultQueryFactory,
    MssqlQueryFactory,
    OracleQueryFactory,
    QueryFactory,
)
from dbextract.writer import CsvResultWriter, EncodingPolicy

logger = logging.getLogger(__name__)

__all__ = ["DataSourceVariant", "SUPPORTED_DRIVERS", "create_extractor", "create_variant"]


@dataclass(frozen=True)
class DataSourceVariant:
    connection: Connection
    query_factory: QueryFactory
    metadata_provider: MetadataProvider


def _connection_options(db: DatabaseConfig, extra: Dict[str, Any]) -> Dict[str, Any]:
    options: Dict[str, Any] = {
        "batch_size": db.batch_size,
        "connect_retries": db.connect_retries,
    }
    options.update(extra)
    return options


def _odbc_connection_string(db: DatabaseConfig, default_driver: Optional[str] = None) -> str:
    if db.connection_string:
        return db.connection_string
    server = db.host
    if server and db.port:
        server = f"{server},{db.port}"
    return build_connection_string(
        driver=db.odbc_driver or default_driver,
        dsn=db.dsn,
        server=server,
        database=db.database,
        user=db.user,
        password=db.password,
        extra=db.options,
    )


def _sqlite(db: DatabaseConfig, extra: Dict[str, Any]) -> DataSourceVariant:
    if not db.database:
        raise ConfigurationError('Option "database" is required for sqlite.', key="database")
    connection = SqliteConnection(db.database, **_connection_options(db, extra))
    return DataSourceVariant(connection, DefaultQueryFactory(), SqliteMetadataProvider(connection))


def _odbc(db: DatabaseConfig, extra: Dict[str, Any]) -> DataSourceVariant:
    connection = OdbcConnection(_odbc_connection_string(db), **_connection_options(db, extra))
    return DataSourceVariant(connection, DefaultQueryFactory(), OdbcMetadataProvider(connection))


def _mssql(db: DatabaseConfig, extra: Dict[str, Any]) -> DataSourceVariant:
    connection = MssqlConnection(
        _odbc_connection_string(db, DEFAULT_MSSQL_DRIVER), **_connection_options(db, extra)
    )
    return DataSourceVariant(connection, MssqlQueryFactory(), OdbcMetadataProvider(connection))


def _oracle(db: DatabaseConfig, extra: Dict[str, Any]) -> DataSourceVariant:
    connection = OracleConnection(_odbc_connection_string(db), **_connection_options(db, extra))
    provider = OdbcMetadataProvider(
        connection, ignored_schemas=("SYS", "SYSTEM", "XDB", "MDSYS", "CTXSYS", "OUTLN")
    )
    return DataSourceVariant(connection, OracleQueryFactory(), provider)


VARIANTS: Dict[str, Callable[[DatabaseConfig, Dict[str, Any]], DataSourceVariant]] = {
    "sqlite": _sqlite,
    "odbc": _odbc,
    "mssql": _mssql,
    "oracle": _oracle,
}

SUPPORTED_DRIVERS = tuple(sorted(VARIANTS))


def create_variant(db: DatabaseConfig, **connection_options: Any) -> DataSourceVariant:
    """Build the variant for ``db.driver``.

    Extra keyword arguments are passed to the connection (e.g. ``sleep``
    or ``backoff_interval_ms``).
    """
    factory = VARIANTS.get(db.driver)
    if factory is None:
        raise ConfigurationError(
            f"Unsupported driver '{db.driver}'. Use one of: {', '.join(SUPPORTED_DRIVERS)}.",
            key="driver",
        )
    logger.debug("Using %s data source", db.driver)
    return factory(db, connection_options)


def create_extractor(
    db: DatabaseConfig,
    output_dir: Union[str, Path],
    *,
    encoding: Optional[EncodingPolicy] = None,
    extra_adapters: Sequence[ExportAdapter] = (),
    **connection_options: Any,
) -> Extractor:
    """Build an Extractor for ``db``.

    ``extra_adapters`` run before the generic query adapter, which always
    comes last in the fallback chain.
    """
    variant = create_variant(db, **connection_options)
    query_adapter = QueryExportAdapter(
        variant.connection,
        variant.query_factory,
        CsvResultWriter(encoding),
    )
    return Extractor(
        variant.connection,
        output_dir,
        query_factory=variant.query_factory,
        export_adapter=FallbackExportAdapter([*extra_adapters, query_adapter]),
        metadata_provider=variant.metadata_provider,
    )
