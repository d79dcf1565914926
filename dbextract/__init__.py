"""Resumable, retrying extraction of database tables into CSV files."""

from dbextract.adapters import (
    AttemptStatus,
    ExportAdapter,
    ExportAttempt,
    FallbackExportAdapter,
    QueryExportAdapter,
)
from dbextract.config import (
    DatabaseConfig,
    ExportConfig,
    IncrementalFetchingConfig,
    InputTable,
    RunConfig,
    load_config,
)
from dbextract.extractor import ExtractionOutput, Extractor
from dbextract.resilience import RetryExecutor
from dbextract.state import IncrementalFetchingState, load_state, save_state
from dbextract.variants import create_extractor
from dbextract.writer import CsvResultWriter, EncodingPolicy, ExportResult

__version__ = "1.0.0"

__all__ = [
    "AttemptStatus",
    "CsvResultWriter",
    "DatabaseConfig",
    "EncodingPolicy",
    "ExportAdapter",
    "ExportAttempt",
    "ExportConfig",
    "ExportResult",
    "ExtractionOutput",
    "Extractor",
    "FallbackExportAdapter",
    "IncrementalFetchingConfig",
    "IncrementalFetchingState",
    "InputTable",
    "QueryExportAdapter",
    "RetryExecutor",
    "RunConfig",
    "create_extractor",
    "load_config",
    "load_state",
    "save_state",
]
