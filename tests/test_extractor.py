"""End-to-end tests for the extractor, data source variants and runner."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Optional

import pytest

from dbextract.adapters import ExportAdapter
from dbextract.config import (
    DatabaseConfig,
    ExportConfig,
    IncrementalFetchingConfig,
    InputTable,
)
from dbextract.connection import MssqlConnection, OracleConnection, SqliteConnection
from dbextract.errors import ConfigurationError, UserError
from dbextract.extractor import Extractor
from dbextract.query import MssqlQueryFactory, OracleQueryFactory
from dbextract.runner import run
from dbextract.state import IncrementalFetchingState, load_state
from dbextract.variants import SUPPORTED_DRIVERS, create_extractor, create_variant
from dbextract.writer import ExportResult


def _incremental(limit: Optional[int] = None, column: str = "id") -> ExportConfig:
    return ExportConfig(
        output_table="in.c-main.cities",
        table=InputTable("cities"),
        incremental_fetching=IncrementalFetchingConfig(column, limit),
        primary_key=("id",),
    )


class NoWatermarkAdapter(ExportAdapter):
    """Writes the CSV itself and reports no incremental value."""

    name = "no-watermark"

    def export(
        self,
        config: ExportConfig,
        csv_path: Any,
        state: Optional[IncrementalFetchingState] = None,
    ) -> ExportResult:
        Path(csv_path).write_text('"1"\n')
        return ExportResult(rows_count=6, csv_path=Path(csv_path))


@pytest.fixture
def sqlite_db(cities_db: Path) -> DatabaseConfig:
    return DatabaseConfig(driver="sqlite", database=str(cities_db))


class TestExtractor:
    def test_incremental_export_resumes_from_state(
        self, sqlite_db: DatabaseConfig, tmp_path: Path, sleeps: List[float]
    ) -> None:
        extractor = create_extractor(sqlite_db, tmp_path / "out", sleep=sleeps.append)

        output = extractor.export(_incremental(limit=3), IncrementalFetchingState("3"))

        assert output.rows_count == 3
        assert output.state == IncrementalFetchingState("5")
        assert output.primary_key == ("id",)
        assert output.csv_path == tmp_path / "out" / "in.c-main.cities.csv"
        assert output.csv_path.read_text() == (
            '"3","Ostrava","306006"\n"4","Plzen","163392"\n"5","Olomouc","100663"\n'
        )
        extractor.connection.close()

    def test_first_run_exports_everything(
        self, sqlite_db: DatabaseConfig, tmp_path: Path
    ) -> None:
        extractor = create_extractor(sqlite_db, tmp_path)

        output = extractor.export(_incremental())

        assert output.rows_count == 6
        assert output.state.last_fetched_row == "6"
        extractor.connection.close()

    def test_empty_result_keeps_state(
        self, sqlite_db: DatabaseConfig, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        extractor = create_extractor(sqlite_db, tmp_path)

        with caplog.at_level(logging.WARNING, logger="dbextract.extractor"):
            output = extractor.export(_incremental(), IncrementalFetchingState("7"))

        assert output.rows_count == 0
        assert output.state == IncrementalFetchingState("7")
        assert output.csv_path.read_text() == ""
        assert (
            "Query returned empty result. Nothing was imported to [in.c-main.cities]"
            in caplog.text
        )
        extractor.connection.close()

    def test_non_incremental_export_has_empty_state(
        self, sqlite_db: DatabaseConfig, tmp_path: Path
    ) -> None:
        extractor = create_extractor(sqlite_db, tmp_path)
        config = ExportConfig(
            output_table="in.c-main.big_cities",
            query="SELECT name FROM cities WHERE population > 300000;",
        )

        output = extractor.export(config, IncrementalFetchingState("3"))

        assert output.state == IncrementalFetchingState()
        assert output.csv_path.read_text() == '"name"\n"Praha"\n"Brno"\n"Ostrava"\n'
        extractor.connection.close()

    def test_missing_incremental_column(self, sqlite_db: DatabaseConfig, tmp_path: Path) -> None:
        extractor = create_extractor(sqlite_db, tmp_path)

        with pytest.raises(UserError, match=r"Column \[updated_at\] specified for incremental"):
            extractor.export(_incremental(column="updated_at"))
        extractor.connection.close()

    def test_missing_table(self, sqlite_db: DatabaseConfig, tmp_path: Path) -> None:
        extractor = create_extractor(sqlite_db, tmp_path)
        config = ExportConfig(
            output_table="out",
            table=InputTable("missing"),
            incremental_fetching=IncrementalFetchingConfig("id"),
        )

        with pytest.raises(UserError, match='Table with name "missing"'):
            extractor.export(config)
        extractor.connection.close()

    def test_sqlite_table_with_main_schema(
        self, sqlite_db: DatabaseConfig, tmp_path: Path
    ) -> None:
        extractor = create_extractor(sqlite_db, tmp_path)
        config = ExportConfig.from_dict(
            {
                "outputTable": "in.c-main.cities",
                "table": {"schema": "main", "tableName": "cities"},
                "incrementalFetchingColumn": "id",
            }
        )

        output = extractor.export(config, IncrementalFetchingState("3"))

        assert output.rows_count == 4
        assert output.state == IncrementalFetchingState("6")
        extractor.connection.close()

    def test_text_incremental_column_rejected(
        self, sqlite_db: DatabaseConfig, tmp_path: Path
    ) -> None:
        extractor = create_extractor(sqlite_db, tmp_path)
        config = ExportConfig(
            output_table="in.c-main.orders",
            table=InputTable("orders"),
            incremental_fetching=IncrementalFetchingConfig("note"),
        )

        with pytest.raises(
            UserError,
            match=r"Column \[note\] specified for incremental fetching is not a numeric "
            "or timestamp type column",
        ):
            extractor.export(config)
        assert not (tmp_path / "in.c-main.orders.csv").exists()
        extractor.connection.close()

    def test_last_row_query_when_adapter_reports_no_value(
        self, sqlite_db: DatabaseConfig, tmp_path: Path
    ) -> None:
        extractor = create_extractor(sqlite_db, tmp_path, extra_adapters=[NoWatermarkAdapter()])

        output = extractor.export(_incremental())

        assert output.state == IncrementalFetchingState("6")
        extractor.connection.close()

    def test_get_tables(self, sqlite_db: DatabaseConfig, tmp_path: Path) -> None:
        extractor = create_extractor(sqlite_db, tmp_path)

        tables = extractor.get_tables([InputTable("orders")])

        assert tables == [
            {
                "name": "orders",
                "schema": "main",
                "columns": [
                    {"name": "order_id", "type": "INTEGER", "primaryKey": True},
                    {"name": "city_id", "type": "INTEGER", "primaryKey": False},
                    {"name": "note", "type": "TEXT", "primaryKey": False},
                ],
            }
        ]
        extractor.connection.close()

    def test_get_tables_without_provider(self, connection: SqliteConnection, tmp_path: Path) -> None:
        with pytest.raises(UserError, match="not supported"):
            Extractor(connection, tmp_path).get_tables()

    def test_test_connection(self, sqlite_db: DatabaseConfig, tmp_path: Path) -> None:
        extractor = create_extractor(sqlite_db, tmp_path)
        extractor.test_connection()
        assert extractor.connection.is_connected
        extractor.connection.close()


class TestVariants:
    def test_supported_drivers(self) -> None:
        assert SUPPORTED_DRIVERS == ("mssql", "odbc", "oracle", "sqlite")

    def test_unknown_driver(self) -> None:
        with pytest.raises(ConfigurationError, match="Unsupported driver 'postgres'"):
            create_variant(DatabaseConfig(driver="postgres"))

    def test_sqlite_requires_database(self) -> None:
        with pytest.raises(ConfigurationError, match='"database"'):
            create_variant(DatabaseConfig(driver="sqlite"))

    def test_mssql_connection_string(self) -> None:
        db = DatabaseConfig(
            driver="mssql",
            host="db.example.com",
            port=1433,
            database="sales",
            user="reader",
            password="p;w}d",
            options={"Encrypt": "yes"},
            batch_size=500,
        )

        variant = create_variant(db)

        assert isinstance(variant.connection, MssqlConnection)
        assert isinstance(variant.query_factory, MssqlQueryFactory)
        assert variant.connection.batch_size == 500
        assert variant.connection.connection_string == (
            "DRIVER={ODBC Driver 18 for SQL Server};SERVER=db.example.com,1433;"
            "DATABASE=sales;UID=reader;PWD={p;w}}d};Encrypt=yes"
        )

    def test_explicit_connection_string_wins(self) -> None:
        db = DatabaseConfig(driver="odbc", connection_string="DSN=warehouse", host="ignored")
        assert create_variant(db).connection.connection_string == "DSN=warehouse"

    def test_oracle(self) -> None:
        variant = create_variant(DatabaseConfig(driver="oracle", dsn="ORCL", user="scott"))

        assert isinstance(variant.connection, OracleConnection)
        assert isinstance(variant.query_factory, OracleQueryFactory)
        assert variant.connection.probe_query == "SELECT 1 FROM DUAL"
        assert variant.connection.connection_string == "DSN=ORCL;UID=scott"


class TestRunner:
    def test_run_twice_resumes(self, cities_db: Path, tmp_path: Path) -> None:
        config_path = tmp_path / "run.yaml"
        config_path.write_text(
            "db:\n"
            "  driver: sqlite\n"
            f"  database: {cities_db}\n"
            "tables:\n"
            "  - outputTable: in.c-main.cities\n"
            "    table: {tableName: cities}\n"
            "    incrementalFetchingColumn: id\n"
            "    incrementalFetchingLimit: 4\n"
            "  - outputTable: in.c-main.count\n"
            "    query: SELECT COUNT(*) AS cnt FROM cities\n"
        )
        state_dir = tmp_path / "state"

        first = run(config_path, tmp_path / "out", state_dir)

        assert [o.rows_count for o in first] == [4, 1]
        assert load_state("in.c-main.cities", state_dir) == IncrementalFetchingState("4")
        assert not (state_dir / "in.c-main.count_state.json").exists()

        second = run(config_path, tmp_path / "out", state_dir)

        assert second[0].rows_count == 3
        assert load_state("in.c-main.cities", state_dir) == IncrementalFetchingState("6")
        assert (tmp_path / "out" / "in.c-main.count.csv").read_text() == '"cnt"\n"6"\n'
