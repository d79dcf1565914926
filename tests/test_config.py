"""Tests for export and database configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterator

import pytest

from dbextract.config import (
    DatabaseConfig,
    ExportConfig,
    IncrementalFetchingConfig,
    InputTable,
    LoggingConfig,
    RunConfig,
    load_config,
)
from dbextract.env import ENV_FILE_NAME, expand_env_vars, expand_value, load_env_file
from dbextract.errors import ConfigurationError


class TestExportConfigFromDict:
    """Mapping the camelCase configuration keys."""

    def test_table_export(self) -> None:
        config = ExportConfig.from_dict(
            {
                "id": 12,
                "name": "cities",
                "outputTable": "in.c-main.cities",
                "table": {"schema": "main", "tableName": "cities"},
                "columns": ["id", "name"],
                "primaryKey": ["id"],
            }
        )
        assert config.table == InputTable("cities", "main")
        assert config.columns == ("id", "name")
        assert config.primary_key == ("id",)
        assert config.max_retries == 5
        assert config.config_id == "12"
        assert config.config_name == "cities"
        assert not config.is_incremental
        assert not config.has_query

    def test_query_drops_columns_and_table(self) -> None:
        config = ExportConfig.from_dict(
            {
                "outputTable": "out",
                "query": "SELECT 1",
                "table": {"tableName": "cities"},
                "columns": ["id"],
            }
        )
        assert config.query == "SELECT 1"
        assert config.table is None
        assert config.columns is None

    def test_empty_values_are_unset(self) -> None:
        config = ExportConfig.from_dict(
            {
                "outputTable": "out",
                "table": {"tableName": "cities", "schema": ""},
                "query": "",
                "columns": [],
                "primaryKey": [],
            }
        )
        assert config.query is None
        assert config.columns is None
        assert config.primary_key is None
        assert config.table.schema is None

    def test_incremental(self) -> None:
        config = ExportConfig.from_dict(
            {
                "outputTable": "out",
                "table": {"tableName": "cities"},
                "incremental": True,
                "incrementalFetchingColumn": "id",
                "incrementalFetchingLimit": 100,
                "retries": 2,
            }
        )
        assert config.incremental_fetching == IncrementalFetchingConfig("id", 100)
        assert config.incremental_column == "id"
        assert config.incremental_limit == 100
        assert config.max_retries == 2

    def test_incremental_implied_by_column(self) -> None:
        config = ExportConfig.from_dict(
            {"outputTable": "out", "table": {"tableName": "t"}, "incrementalFetchingColumn": "id"}
        )
        assert config.is_incremental

    def test_incremental_requires_column(self) -> None:
        with pytest.raises(ConfigurationError, match="incrementalFetchingColumn"):
            ExportConfig.from_dict(
                {"outputTable": "out", "table": {"tableName": "t"}, "incremental": True}
            )

    def test_incremental_with_query_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="not supported for advanced queries"):
            ExportConfig.from_dict(
                {"outputTable": "out", "query": "SELECT 1", "incrementalFetchingColumn": "id"}
            )

    def test_output_table_required(self) -> None:
        with pytest.raises(ConfigurationError, match='"outputTable" is required'):
            ExportConfig.from_dict({"table": {"tableName": "t"}})

    def test_table_or_query_required(self) -> None:
        with pytest.raises(ConfigurationError, match='"table" or "query"'):
            ExportConfig.from_dict({"outputTable": "out"})


class TestExportConfigValidation:
    def test_negative_retries(self) -> None:
        with pytest.raises(ConfigurationError, match="retries"):
            ExportConfig(output_table="out", table=InputTable("t"), max_retries=-1)

    def test_columns_with_query(self) -> None:
        with pytest.raises(ConfigurationError, match='"columns" and "query"'):
            ExportConfig(output_table="out", query="SELECT 1", columns=("id",))

    def test_empty_columns(self) -> None:
        with pytest.raises(ConfigurationError, match="cannot be empty list"):
            ExportConfig(output_table="out", table=InputTable("t"), columns=())

    def test_table_and_query(self) -> None:
        with pytest.raises(ConfigurationError):
            ExportConfig(output_table="out", table=InputTable("t"), query="SELECT 1")

    def test_non_positive_limit(self) -> None:
        with pytest.raises(ConfigurationError):
            IncrementalFetchingConfig("id", limit=0)

    def test_with_incremental_column_type_returns_copy(self) -> None:
        config = ExportConfig(
            output_table="out",
            table=InputTable("t"),
            incremental_fetching=IncrementalFetchingConfig("id"),
        )
        resolved = config.with_incremental_column_type("int")
        assert resolved.incremental_fetching.column_type == "int"
        assert config.incremental_fetching.column_type is None


class TestDatabaseConfig:
    def test_env_expansion(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DB_HOST", "db.example.com")
        monkeypatch.setenv("DB_PASSWORD", "secret")
        config = DatabaseConfig.from_dict(
            {
                "driver": "MSSQL",
                "host": "${DB_HOST}",
                "port": "1433",
                "database": "sales",
                "user": "reader",
                "password": "${DB_PASSWORD}",
                "options": {"Encrypt": "yes"},
            }
        )
        assert config.driver == "mssql"
        assert config.host == "db.example.com"
        assert config.port == 1433
        assert config.password == "secret"
        assert config.options == {"Encrypt": "yes"}
        assert "secret" not in repr(config)

    def test_driver_required(self) -> None:
        with pytest.raises(ConfigurationError, match="driver"):
            DatabaseConfig.from_dict({"host": "x"})


class TestLoadConfig:
    def test_load_yaml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DB_FILE", str(tmp_path / "cities.sqlite"))
        path = tmp_path / "run.yaml"
        path.write_text(
            "db:\n"
            "  driver: sqlite\n"
            "  database: ${DB_FILE}\n"
            "tables:\n"
            "  - outputTable: in.c-main.cities\n"
            "    table: {tableName: cities}\n"
            "    incrementalFetchingColumn: id\n"
            "  - outputTable: in.c-main.summary\n"
            "    query: SELECT COUNT(*) AS cnt FROM cities\n"
        )

        config = load_config(path)

        assert isinstance(config, RunConfig)
        assert config.db.database == str(tmp_path / "cities.sqlite")
        assert [t.output_table for t in config.tables] == ["in.c-main.cities", "in.c-main.summary"]
        assert config.tables[0].is_incremental
        assert config.tables[1].has_query

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="Config file not found"):
            load_config(tmp_path / "missing.yaml")

    def test_missing_db_section(self, tmp_path: Path) -> None:
        path = tmp_path / "run.yaml"
        path.write_text("tables: []\n")
        with pytest.raises(ConfigurationError, match='"db"'):
            load_config(path)


class TestEnvExpansion:
    def test_expand_env_vars(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DB_HOST", "localhost")
        assert expand_env_vars("${DB_HOST},1433") == "localhost,1433"
        assert expand_env_vars("$DB_HOST") == "localhost"

    def test_unknown_variable_kept(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)
        assert expand_env_vars("${NOT_SET_ANYWHERE}") == "${NOT_SET_ANYWHERE}"

    def test_strict_unknown_variable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)

        with pytest.raises(ConfigurationError, match="not set: NOT_SET_ANYWHERE") as exc_info:
            expand_env_vars("$NOT_SET_ANYWHERE", strict=True)

        assert exc_info.value.details["variable"] == "NOT_SET_ANYWHERE"

    def test_expand_value_nested(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SCHEMA", "dbo")
        value = {"a": {"b": "$SCHEMA"}, "c": ["${SCHEMA}", 1, ["$SCHEMA"]], "d": 2}

        assert expand_value(value) == {"a": {"b": "dbo"}, "c": ["dbo", 1, ["dbo"]], "d": 2}

    def test_tables_section_not_expanded(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("DB_FILE", "cities.sqlite")
        path = tmp_path / "run.yaml"
        path.write_text(
            "db: {driver: sqlite, database: $DB_FILE}\n"
            "tables:\n"
            "  - outputTable: in.c-main.cost\n"
            "    query: SELECT '$DB_FILE' AS price\n"
        )

        config = load_config(path)

        assert config.db.database == "cities.sqlite"
        assert config.tables[0].query == "SELECT '$DB_FILE' AS price"


@pytest.fixture
def dotenv_vars(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Remove variables set from .env files once the test finishes."""
    for name in ("DBEXTRACT_TEST_DB", "DBEXTRACT_TEST_USER"):
        monkeypatch.delenv(name, raising=False)
    yield
    for name in ("DBEXTRACT_TEST_DB", "DBEXTRACT_TEST_USER"):
        os.environ.pop(name, None)


@pytest.mark.usefixtures("dotenv_vars")
class TestEnvFile:
    def test_missing_env_file(self, tmp_path: Path) -> None:
        assert load_env_file(tmp_path) is None

    def test_env_file_next_to_config(self, tmp_path: Path) -> None:
        (tmp_path / ENV_FILE_NAME).write_text(
            f"DBEXTRACT_TEST_DB={tmp_path / 'cities.sqlite'}\n"
        )
        path = tmp_path / "run.yaml"
        path.write_text("db:\n  driver: sqlite\n  database: ${DBEXTRACT_TEST_DB}\n")

        config = load_config(path)

        assert config.db.database == str(tmp_path / "cities.sqlite")

    def test_environment_wins_over_env_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("DBEXTRACT_TEST_USER", "from-environment")
        (tmp_path / ENV_FILE_NAME).write_text(
            "DBEXTRACT_TEST_USER=from-file\nDBEXTRACT_TEST_DB=sales\n"
        )

        assert load_env_file(tmp_path) == tmp_path / ENV_FILE_NAME
        assert os.environ["DBEXTRACT_TEST_USER"] == "from-environment"
        assert os.environ["DBEXTRACT_TEST_DB"] == "sales"


class TestLoggingConfig:
    def test_defaults_when_section_missing(self) -> None:
        assert RunConfig.from_dict({"db": {"driver": "sqlite"}}).logging is None

    def test_from_dict(self) -> None:
        config = RunConfig.from_dict(
            {"db": {"driver": "sqlite"}, "logging": {"verbose": True, "json": True, "file": "x.log"}}
        )
        assert config.logging == LoggingConfig(verbose=True, json_format=True, log_file="x.log")

    def test_empty_section(self) -> None:
        assert LoggingConfig.from_dict({}) == LoggingConfig()

    def test_must_be_mapping(self) -> None:
        with pytest.raises(ConfigurationError, match='"logging" must be a mapping'):
            RunConfig.from_dict({"db": {"driver": "sqlite"}, "logging": "verbose"})
