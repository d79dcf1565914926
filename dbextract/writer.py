"""Streaming CSV writer for query results.

Rows are written one by one as they are fetched, so memory use does not
grow with the result size. Every field is enclosed in double quotes and
rows end with ``\\n``. A header row is written only for custom-query
exports, where the output columns are not known in advance.
"""

from __future__ import annotations

import csv
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any, List, Optional, Sequence, Union

from dbextract.config import ExportConfig
from dbextract.connection.base import QueryResult
from dbextract.errors import ApplicationError, UserError
from dbextract.state import IncrementalFetchingState

logger = logging.getLogger(__name__)

__all__ = ["CsvResultWriter", "EncodingPolicy", "ExportResult", "ResultWriter"]


@dataclass(frozen=True)
class EncodingPolicy:
    """How text reaches the CSV file.

    Attributes:
        source_encoding: Encoding of byte values returned by the driver.
        target_encoding: Encoding of the CSV file.
        strip_invalid: Drop sequences that cannot be decoded or encoded.
            When False (the default) malformed bytes are written through
            unchanged.
    """

    source_encoding: str = "utf-8"
    target_encoding: str = "utf-8"
    strip_invalid: bool = False

    @property
    def errors(self) -> str:
        return "ignore" if self.strip_invalid else "surrogateescape"

    def decode(self, value: Union[bytes, bytearray, memoryview]) -> str:
        return bytes(value).decode(self.source_encoding, self.errors)


@dataclass(frozen=True)
class ExportResult:
    """Outcome of a single export."""

    rows_count: int
    csv_path: Path
    inc_fetching_col_max_value: Optional[str] = field(default=None)


class ResultWriter(ABC):
    """Consumes a query result into an output file."""

    @abstractmethod
    def write_to_csv(
        self,
        result: QueryResult,
        config: ExportConfig,
        csv_path: Union[str, Path],
        state: Optional[IncrementalFetchingState] = None,
    ) -> ExportResult:
        """Write all rows of ``result`` and close it."""


class CsvResultWriter(ResultWriter):
    """Write query results as fully quoted CSV."""

    def __init__(self, encoding: Optional[EncodingPolicy] = None) -> None:
        self.encoding = encoding or EncodingPolicy()

    def write_to_csv(
        self,
        result: QueryResult,
        config: ExportConfig,
        csv_path: Union[str, Path],
        state: Optional[IncrementalFetchingState] = None,
    ) -> ExportResult:
        """Stream ``result`` into ``csv_path``.

        The file always exists afterwards, even for an empty result. For
        incremental exports the returned max value is the incremental column
        of the last row written; an empty result keeps the prior value.

        Raises:
            UserError: The incremental column is missing from the result.
            ApplicationError: The CSV file could not be written.
        """
        try:
            return self._write(result, config, Path(csv_path), state)
        finally:
            result.close()

    def _write(
        self,
        result: QueryResult,
        config: ExportConfig,
        csv_path: Path,
        state: Optional[IncrementalFetchingState],
    ) -> ExportResult:
        rows_count = 0
        last_row: Optional[List[Any]] = None

        handle = self._open(csv_path)
        try:
            writer = csv.writer(handle, quoting=csv.QUOTE_ALL, lineterminator="\n")
            if config.has_query:
                self._write_row(writer, result.metadata.names)
            for row in result:
                last_row = self._format_row(row)
                self._write_row(writer, last_row)
                rows_count += 1
        finally:
            self._close(handle)

        logger.debug("Wrote %d rows to %s", rows_count, csv_path)

        return ExportResult(
            rows_count=rows_count,
            csv_path=csv_path,
            inc_fetching_col_max_value=self._max_value(result, config, last_row, state),
        )

    def _open(self, csv_path: Path) -> IO[str]:
        try:
            csv_path.parent.mkdir(parents=True, exist_ok=True)
            return csv_path.open(
                "w",
                encoding=self.encoding.target_encoding,
                errors=self.encoding.errors,
                newline="",
            )
        except (OSError, LookupError) as e:
            raise ApplicationError(f"Failed writing CSV File: {e}") from e

    def _close(self, handle: IO[str]) -> None:
        try:
            handle.close()
        except (OSError, UnicodeError) as e:
            raise ApplicationError(f"Failed writing CSV File: {e}") from e

    def _write_row(self, writer: Any, values: Sequence[Any]) -> None:
        try:
            writer.writerow(values)
        except (OSError, csv.Error, UnicodeError) as e:
            raise ApplicationError(f"Failed writing CSV File: {e}") from e

    def _format_row(self, row: Sequence[Any]) -> List[Any]:
        values: List[Any] = []
        for value in row:
            if isinstance(value, (bytes, bytearray, memoryview)):
                value = self.encoding.decode(value)
            values.append(value)
        return values

    def _max_value(
        self,
        result: QueryResult,
        config: ExportConfig,
        last_row: Optional[List[Any]],
        state: Optional[IncrementalFetchingState],
    ) -> Optional[str]:
        if config.incremental_column is None:
            return None

        prior = state.last_fetched_row if state is not None else None
        if last_row is None:
            return None if prior is None else str(prior)

        index = result.metadata.index_of(config.incremental_column)
        if index is None:
            raise UserError(
                f"The specified incremental fetching column {config.incremental_column} "
                "not found in the table"
            )
        value = last_row[index]
        if value is None:
            return None if prior is None else str(prior)
        return str(value)
