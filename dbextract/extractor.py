"""Extraction of one export configuration into a CSV file.

``Extractor`` wires the pluggable parts of a data source together:

- a ``Connection`` to run queries,
- a ``QueryFactory`` for the dialect,
- an ``ExportAdapter`` (usually a fallback chain) that writes the CSV,
- a ``MetadataProvider`` used to validate incremental fetching and to list
  tables.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from dbextract.adapters import ExportAdapter, QueryExportAdapter
from dbextract.config import ExportConfig, InputTable
from dbextract.connection.base import Connection
from dbextract.errors import ColumnNotFoundError, TableNotFoundError, UserError
from dbextract.metadata.provider import MetadataProvider
from dbextract.metadata.serializer import serialize_tables
from dbextract.query import DefaultQueryFactory, QueryFactory, is_incremental_fetching_type
from dbextract.state import IncrementalFetchingState
from dbextract.writer import ExportResult

logger = logging.getLogger(__name__)

__all__ = ["ExtractionOutput", "Extractor"]


@dataclass(frozen=True)
class ExtractionOutput:
    """What one export produced, plus the state for the next run."""

    output_table: str
    rows_count: int
    csv_path: Path
    state: IncrementalFetchingState
    primary_key: Optional[Tuple[str, ...]] = None


class Extractor:
    """Runs exports against a single data source."""

    def __init__(
        self,
        connection: Connection,
        output_dir: Union[str, Path],
        *,
        query_factory: Optional[QueryFactory] = None,
        export_adapter: Optional[ExportAdapter] = None,
        metadata_provider: Optional[MetadataProvider] = None,
    ) -> None:
        self.connection = connection
        self.output_dir = Path(output_dir)
        self.query_factory = query_factory or DefaultQueryFactory()
        self.export_adapter = export_adapter or QueryExportAdapter(
            connection, self.query_factory
        )
        self.metadata_provider = metadata_provider

    def test_connection(self) -> None:
        self.connection.test_connection()

    def get_tables(
        self,
        whitelist: Optional[Sequence[InputTable]] = None,
        load_columns: bool = True,
    ) -> List[Dict[str, Any]]:
        if self.metadata_provider is None:
            raise UserError("Listing tables is not supported for this data source.")
        return serialize_tables(self.metadata_provider.list_tables(whitelist, load_columns))

    def csv_path(self, config: ExportConfig) -> Path:
        return self.output_dir / f"{config.output_table}.csv"

    def validate_incremental_fetching(self, config: ExportConfig) -> ExportConfig:
        """Check the incremental column exists and is numeric or a timestamp.

        Returns a copy of ``config`` with the column type filled in.
        """
        if config.incremental_fetching is None or config.table is None:
            return config
        if self.metadata_provider is None:
            logger.debug("No metadata provider, incremental column type left unresolved")
            return config

        try:
            table = self.metadata_provider.get_table(config.table)
        except TableNotFoundError as e:
            raise UserError(str(e)) from e

        if table.columns is None:
            return config
        try:
            column = table.columns.get_by_name(config.incremental_fetching.column)
        except ColumnNotFoundError as e:
            raise UserError(
                f"Column [{config.incremental_fetching.column}] specified for incremental "
                "fetching was not found in the table"
            ) from e

        if not is_incremental_fetching_type(column.type):
            raise UserError(
                f"Column [{config.incremental_fetching.column}] specified for incremental "
                "fetching is not a numeric or timestamp type column"
            )
        return config.with_incremental_column_type(column.type)

    def export(
        self,
        config: ExportConfig,
        state: Optional[IncrementalFetchingState] = None,
    ) -> ExtractionOutput:
        """Export ``config`` into ``<output_dir>/<output_table>.csv``."""
        state = state or IncrementalFetchingState()
        logger.info("Exporting to %s", config.output_table)

        config = self.validate_incremental_fetching(config)
        csv_path = self.csv_path(config)
        result = self.export_adapter.export(config, csv_path, state)

        if result.rows_count == 0:
            logger.warning(
                "Query returned empty result. Nothing was imported to [%s]",
                config.output_table,
            )
        else:
            logger.info("Exported %d rows to %s", result.rows_count, result.csv_path)

        return ExtractionOutput(
            output_table=config.output_table,
            rows_count=result.rows_count,
            csv_path=result.csv_path,
            state=self._next_state(config, result, state),
            primary_key=config.primary_key,
        )

    def _next_state(
        self,
        config: ExportConfig,
        result: ExportResult,
        state: IncrementalFetchingState,
    ) -> IncrementalFetchingState:
        if not config.is_incremental:
            return IncrementalFetchingState()

        value: Optional[str] = result.inc_fetching_col_max_value
        if value is None and result.rows_count > 0:
            value = self._fetch_last_row_value(config, state)
        if value is None:
            return state
        return IncrementalFetchingState(last_fetched_row=value)

    def _fetch_last_row_value(
        self, config: ExportConfig, state: IncrementalFetchingState
    ) -> Optional[str]:
        sql = self.query_factory.create_last_row_query(config, self.connection, state)
        rows = self.connection.fetch_all(sql, config.max_retries)
        if not rows or rows[0][0] is None:
            return None
        return str(rows[0][0])
