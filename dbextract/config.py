"""Configuration models for extraction runs.

``ExportConfig`` describes a single table (or custom query) export and is
validated on construction. ``ExportConfig.from_dict`` accepts the camelCase
key-value mapping used in run configuration files::

    db:
      driver: mssql
      host: ${DB_HOST}
      database: sales
      user: ${DB_USER}
      password: ${DB_PASSWORD}
    tables:
      - outputTable: in.c-sales.orders
        table: {schema: dbo, tableName: orders}
        columns: [id, customer_id, amount]
        incrementalFetchingColumn: id
        incrementalFetchingLimit: 10000
        primaryKey: [id]
      - outputTable: in.c-sales.summary
        query: SELECT region, SUM(amount) AS total FROM dbo.orders GROUP BY region
    logging: {json: true, file: extract.log}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import yaml

from dbextract.env import expand_value, load_env_file
from dbextract.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_MAX_RETRIES",
    "DatabaseConfig",
    "ExportConfig",
    "IncrementalFetchingConfig",
    "InputTable",
    "LoggingConfig",
    "RunConfig",
    "load_config",
]

DEFAULT_MAX_RETRIES = 5
DEFAULT_BATCH_SIZE = 10000


def _none_if_empty(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (str, list, tuple)) and len(value) == 0:
        return None
    return value


def _as_tuple(value: Optional[Sequence[str]], key: str) -> Optional[Tuple[str, ...]]:
    value = _none_if_empty(value)
    if value is None:
        return None
    if isinstance(value, str):
        raise ConfigurationError(f'Option "{key}" must be a list of names.', key=key)
    return tuple(str(item) for item in value)


@dataclass(frozen=True)
class InputTable:
    """Source table reference."""

    name: str
    schema: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("Table name cannot be empty.", key="tableName")


@dataclass(frozen=True)
class IncrementalFetchingConfig:
    """Incremental fetching settings.

    ``column_type`` is the declared SQL type of ``column``. It is normally
    left empty in configuration files and resolved from table metadata
    before the export runs.
    """

    column: str
    limit: Optional[int] = None
    column_type: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.column:
            raise ConfigurationError(
                "Incremental fetching column cannot be empty.",
                key="incrementalFetchingColumn",
            )
        if self.limit is not None and self.limit <= 0:
            raise ConfigurationError(
                f"Incremental fetching limit must be a positive number, got {self.limit}.",
                key="incrementalFetchingLimit",
            )


@dataclass(frozen=True)
class ExportConfig:
    """Configuration of one export.

    Exactly one of ``table`` and ``query`` is set. ``columns`` may only
    be combined with ``table``, and incremental fetching requires a table.
    """

    output_table: str
    table: Optional[InputTable] = None
    query: Optional[str] = None
    columns: Optional[Tuple[str, ...]] = None
    incremental_fetching: Optional[IncrementalFetchingConfig] = None
    primary_key: Optional[Tuple[str, ...]] = None
    max_retries: int = DEFAULT_MAX_RETRIES
    config_id: Optional[str] = None
    config_name: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.output_table:
            raise ConfigurationError('Option "outputTable" is required.', key="outputTable")
        if self.table is None and not self.query:
            raise ConfigurationError(
                'One of the options "table" or "query" must be set.', key="table"
            )
        if self.table is not None and self.query:
            raise ConfigurationError(
                'Options "table" and "query" cannot be set together.', key="query"
            )
        if self.query and self.columns:
            raise ConfigurationError(
                'Options "columns" and "query" cannot be set together.', key="columns"
            )
        if self.columns is not None and len(self.columns) == 0:
            raise ConfigurationError('Option "columns" cannot be empty list.', key="columns")
        if self.primary_key is not None and len(self.primary_key) == 0:
            raise ConfigurationError('Option "primaryKey" cannot be empty list.', key="primaryKey")
        if self.incremental_fetching is not None and self.table is None:
            raise ConfigurationError(
                "Incremental fetching is not supported for advanced queries.",
                key="incrementalFetchingColumn",
            )
        if self.max_retries < 0:
            raise ConfigurationError(
                f'Option "retries" must be a non-negative number, got {self.max_retries}.',
                key="retries",
            )

    @property
    def has_query(self) -> bool:
        return bool(self.query)

    @property
    def has_table(self) -> bool:
        return self.table is not None

    @property
    def is_incremental(self) -> bool:
        return self.incremental_fetching is not None

    @property
    def incremental_column(self) -> Optional[str]:
        return self.incremental_fetching.column if self.incremental_fetching else None

    @property
    def incremental_limit(self) -> Optional[int]:
        return self.incremental_fetching.limit if self.incremental_fetching else None

    def with_incremental_column_type(self, column_type: Optional[str]) -> "ExportConfig":
        """Return a copy with the incremental column type resolved."""
        if self.incremental_fetching is None:
            return self
        return replace(
            self,
            incremental_fetching=replace(self.incremental_fetching, column_type=column_type),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExportConfig":
        """Create an ExportConfig from a camelCase configuration mapping.

        A custom ``query`` takes precedence: ``columns`` are ignored when a
        query is given. Empty strings and empty lists are treated as unset.
        """
        query = _none_if_empty(data.get("query"))
        if isinstance(query, str):
            query = query if query.strip() else None

        table: Optional[InputTable] = None
        table_data = _none_if_empty(data.get("table"))
        if table_data and not query:
            if not isinstance(table_data, dict):
                raise ConfigurationError('Option "table" must be a mapping.', key="table")
            table = InputTable(
                name=table_data.get("tableName") or "",
                schema=_none_if_empty(table_data.get("schema")),
            )

        columns = None if query else _as_tuple(data.get("columns"), "columns")

        incremental_column = _none_if_empty(data.get("incrementalFetchingColumn"))
        incremental = bool(data.get("incremental", incremental_column is not None))
        incremental_fetching: Optional[IncrementalFetchingConfig] = None
        if incremental:
            if incremental_column is None:
                raise ConfigurationError(
                    'Option "incrementalFetchingColumn" is required for incremental fetching.',
                    key="incrementalFetchingColumn",
                )
            limit = data.get("incrementalFetchingLimit")
            incremental_fetching = IncrementalFetchingConfig(
                column=str(incremental_column),
                limit=int(limit) if limit else None,
            )

        retries = data.get("retries")
        max_retries = DEFAULT_MAX_RETRIES if retries is None else int(retries)

        config_id = data.get("id")
        return cls(
            output_table=data.get("outputTable") or "",
            table=table,
            query=query,
            columns=columns,
            incremental_fetching=incremental_fetching,
            primary_key=_as_tuple(data.get("primaryKey"), "primaryKey"),
            max_retries=max_retries,
            config_id=str(config_id) if config_id is not None else None,
            config_name=data.get("name"),
        )


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings for a data source.

    ``driver`` selects the data-source variant (see ``dbextract.variants``).
    For sqlite ``database`` is the database file path. For ODBC variants
    either ``connection_string`` or ``dsn`` or the host/database fields are
    used to build the connection string.
    """

    driver: str
    database: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    user: Optional[str] = field(default=None, repr=False)
    password: Optional[str] = field(default=None, repr=False)
    dsn: Optional[str] = None
    odbc_driver: Optional[str] = None
    connection_string: Optional[str] = field(default=None, repr=False)
    batch_size: int = DEFAULT_BATCH_SIZE
    connect_retries: int = 3
    options: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.driver:
            raise ConfigurationError('Option "driver" is required.', key="driver")
        if self.batch_size <= 0:
            raise ConfigurationError(
                f'Option "batchSize" must be positive, got {self.batch_size}.',
                key="batchSize",
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DatabaseConfig":
        """Create a DatabaseConfig, expanding ${VAR} references."""
        data = expand_value(data)
        port = data.get("port")
        return cls(
            driver=str(data.get("driver") or "").lower(),
            database=data.get("database"),
            host=data.get("host"),
            port=int(port) if port else None,
            user=data.get("user"),
            password=data.get("password") or data.get("#password"),
            dsn=data.get("dsn"),
            odbc_driver=data.get("odbcDriver"),
            connection_string=data.get("connectionString"),
            batch_size=int(data.get("batchSize") or DEFAULT_BATCH_SIZE),
            connect_retries=int(data.get("connectRetries", 3)),
            options=dict(data.get("options") or {}),
        )


@dataclass(frozen=True)
class LoggingConfig:
    """Optional ``logging`` section of a run configuration."""

    verbose: bool = False
    json_format: bool = False
    log_file: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoggingConfig":
        if not isinstance(data, dict):
            raise ConfigurationError('Section "logging" must be a mapping.', key="logging")
        log_file = _none_if_empty(data.get("file"))
        return cls(
            verbose=bool(data.get("verbose", False)),
            json_format=bool(data.get("json", False)),
            log_file=str(log_file) if log_file is not None else None,
        )


@dataclass(frozen=True)
class RunConfig:
    """A data source plus the exports to run against it."""

    db: DatabaseConfig
    tables: List[ExportConfig] = field(default_factory=list)
    logging: Optional[LoggingConfig] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunConfig":
        if "db" not in data:
            raise ConfigurationError('Section "db" is required.', key="db")
        tables = [ExportConfig.from_dict(item) for item in data.get("tables") or []]
        logging_data = data.get("logging")
        return cls(
            db=DatabaseConfig.from_dict(data["db"]),
            tables=tables,
            logging=LoggingConfig.from_dict(logging_data) if logging_data is not None else None,
        )


def load_config(path: Union[str, Path]) -> RunConfig:
    """Load a run configuration from a YAML file.

    A ``.env`` file in the same directory is loaded before the ``db``
    section is expanded.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}", details={"path": str(path)})

    load_env_file(path.parent)

    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file must contain a mapping, got {type(data).__name__}",
            details={"path": str(path)},
        )

    config = RunConfig.from_dict(data)
    logger.debug("Loaded %d export(s) from %s", len(config.tables), path)
    return config
