"""Export adapters.

An export adapter turns an ``ExportConfig`` into a CSV file. Several
adapters can be chained with ``FallbackExportAdapter``: a fast but fragile
strategy first, a generic query-based one as the safety net.

Each adapter run is captured as an ``ExportAttempt`` tagged with its
outcome, and the fallback chain branches on that tag.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence, Union

from dbextract.config import ExportConfig
from dbextract.connection.base import Connection, QueryResult
from dbextract.errors import (
    AdapterSkippedError,
    ApplicationError,
    ConfigurationError,
    InvalidStateError,
    UserError,
    UserRetriedError,
)
from dbextract.query import DefaultQueryFactory, QueryFactory
from dbextract.state import IncrementalFetchingState
from dbextract.writer import CsvResultWriter, ExportResult, ResultWriter

logger = logging.getLogger(__name__)

__all__ = [
    "AttemptStatus",
    "ExportAdapter",
    "ExportAttempt",
    "FallbackExportAdapter",
    "QueryExportAdapter",
]


class AttemptStatus(Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ExportAttempt:
    """Outcome of running one adapter."""

    adapter_name: str
    status: AttemptStatus
    result: Optional[ExportResult] = None
    error: Optional[Exception] = None

    def __post_init__(self) -> None:
        if self.succeeded and self.result is None:
            raise InvalidStateError(f'Successful attempt of "{self.adapter_name}" has no result.')
        if not self.succeeded and self.error is None:
            raise InvalidStateError(f'Unsuccessful attempt of "{self.adapter_name}" has no error.')

    @property
    def succeeded(self) -> bool:
        return self.status is AttemptStatus.SUCCESS


class ExportAdapter(ABC):
    """Strategy that exports one configuration into a CSV file."""

    name = "adapter"

    @abstractmethod
    def export(
        self,
        config: ExportConfig,
        csv_path: Union[str, Path],
        state: Optional[IncrementalFetchingState] = None,
    ) -> ExportResult:
        """Run the export.

        Raises:
            AdapterSkippedError: The adapter cannot serve this configuration.
        """

    def attempt(
        self,
        config: ExportConfig,
        csv_path: Union[str, Path],
        state: Optional[IncrementalFetchingState] = None,
    ) -> ExportAttempt:
        """Run the export and classify the outcome instead of raising."""
        try:
            result = self.export(config, csv_path, state)
        except AdapterSkippedError as e:
            return ExportAttempt(self.name, AttemptStatus.SKIPPED, error=e)
        except Exception as e:
            return ExportAttempt(self.name, AttemptStatus.FAILED, error=e)
        return ExportAttempt(self.name, AttemptStatus.SUCCESS, result=result)


class QueryExportAdapter(ExportAdapter):
    """Export by running a SELECT over a connection and streaming it to CSV."""

    def __init__(
        self,
        connection: Connection,
        query_factory: Optional[QueryFactory] = None,
        writer: Optional[ResultWriter] = None,
        name: str = "query",
    ) -> None:
        self.connection = connection
        self.query_factory = query_factory or DefaultQueryFactory()
        self.writer = writer or CsvResultWriter()
        self.name = name

    def export(
        self,
        config: ExportConfig,
        csv_path: Union[str, Path],
        state: Optional[IncrementalFetchingState] = None,
    ) -> ExportResult:
        sql = self.query_factory.create(config, self.connection, state)
        logger.debug("Running export query for %s: %s", config.output_table, sql)

        def process(result: QueryResult) -> ExportResult:
            return self.writer.write_to_csv(result, config, csv_path, state)

        try:
            return self.connection.query_and_process(sql, config.max_retries, process)
        except ApplicationError:
            raise
        except UserRetriedError as e:
            raise UserRetriedError(
                e.try_count, self._db_error_message(config, e.message)
            ) from e
        except UserError as e:
            raise UserError(self._db_error_message(config, e.message)) from e
        except Exception as e:
            raise UserError(self._db_error_message(config, str(e))) from e

    @staticmethod
    def _db_error_message(config: ExportConfig, message: str) -> str:
        return f"[{config.output_table}]: DB query failed: {message}"


class FallbackExportAdapter(ExportAdapter):
    """Try adapters in order until one succeeds.

    Remaining adapters are not run after a success. When every adapter
    fails or is skipped, the error of the last adapter is raised.
    """

    name = "fallback"

    def __init__(self, adapters: Sequence[ExportAdapter]) -> None:
        if not adapters:
            raise ConfigurationError("At least one adapter must be specified.")
        self.adapters = list(adapters)

    def export(
        self,
        config: ExportConfig,
        csv_path: Union[str, Path],
        state: Optional[IncrementalFetchingState] = None,
    ) -> ExportResult:
        last_error: Optional[Exception] = None

        for adapter in self.adapters:
            logger.info('Exporting by "%s" adapter.', adapter.name)
            _remove_partial_output(Path(csv_path))

            attempt = adapter.attempt(config, csv_path, state)
            if attempt.succeeded and attempt.result is not None:
                return attempt.result
            if attempt.status is AttemptStatus.SKIPPED:
                logger.info('Adapter "%s" skipped: %s', adapter.name, attempt.error)
            else:
                logger.warning('Export by "%s" adapter failed: %s', adapter.name, attempt.error)
            last_error = attempt.error

        if last_error is None:
            raise InvalidStateError("No export adapter was run.")
        raise last_error


def _remove_partial_output(csv_path: Path) -> None:
    if csv_path.is_file():
        logger.debug("Removing partial output %s", csv_path)
        csv_path.unlink()
