"""Connection base class and query result wrappers.

A ``Connection`` owns one lazily created native handle. Queries run through
a ``RetryExecutor``; between attempts the native handle is dropped and
recreated, so a transient network failure does not poison the rest of the
run.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterator, List, Optional, Sequence, Tuple, Type, TypeVar

from dbextract.errors import (
    ApplicationError,
    ConnectionFailedError,
    DeadConnectionError,
    ExtractorError,
)
from dbextract.resilience import DEFAULT_BACKOFF_INTERVAL_MS, RetryExecutor

logger = logging.getLogger(__name__)

__all__ = [
    "CONNECT_MAX_RETRIES",
    "DEFAULT_FETCH_SIZE",
    "DEFAULT_MAX_RETRIES",
    "Connection",
    "QueryMetadata",
    "QueryResult",
]

T = TypeVar("T")

CONNECT_MAX_RETRIES = 3
DEFAULT_MAX_RETRIES = 5
DEFAULT_FETCH_SIZE = 10000

# Generic transient failures, independent of the driver
TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    BrokenPipeError,
)

MISSING_DRIVER_MARKERS = (
    "could not find driver",
    "im002",
    "can't open lib",
    "driver not found",
)


class QueryMetadata:
    """Ordered column names and types of a query result."""

    def __init__(self, columns: Sequence[Tuple[str, Optional[str]]]) -> None:
        self.columns: Tuple[Tuple[str, Optional[str]], ...] = tuple(columns)

    @classmethod
    def from_description(cls, description: Optional[Sequence[Sequence[Any]]]) -> "QueryMetadata":
        """Build metadata from a DB-API ``cursor.description``."""
        columns: List[Tuple[str, Optional[str]]] = []
        for item in description or ():
            type_code = item[1] if len(item) > 1 else None
            if type_code is None:
                type_name = None
            else:
                type_name = getattr(type_code, "__name__", None) or str(type_code)
            columns.append((str(item[0]), type_name))
        return cls(columns)

    @property
    def names(self) -> List[str]:
        return [name for name, _ in self.columns]

    def index_of(self, name: str) -> Optional[int]:
        """Position of a column, matched exactly first, then case-insensitively."""
        names = self.names
        if name in names:
            return names.index(name)
        lowered = [n.lower() for n in names]
        if name.lower() in lowered:
            return lowered.index(name.lower())
        return None

    def __len__(self) -> int:
        return len(self.columns)


class QueryResult:
    """Forward-only row stream over an executed cursor.

    Rows are pulled with ``fetchmany`` so memory use is bounded by the batch
    size. ``close()`` is idempotent; use the result as a context manager to
    guarantee it runs.
    """

    def __init__(self, cursor: Any, batch_size: int = DEFAULT_FETCH_SIZE) -> None:
        self._cursor = cursor
        self._batch_size = batch_size
        self._metadata = QueryMetadata.from_description(getattr(cursor, "description", None))
        self.closed = False

    @property
    def metadata(self) -> QueryMetadata:
        return self._metadata

    def __iter__(self) -> Iterator[Sequence[Any]]:
        while not self.closed:
            rows = self._cursor.fetchmany(self._batch_size)
            if not rows:
                break
            for row in rows:
                yield row

    def fetch_one(self) -> Optional[Sequence[Any]]:
        return self._cursor.fetchone()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._cursor.close()

    def __enter__(self) -> "QueryResult":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class Connection(ABC):
    """Lazily connected database handle with retrying queries.

    Subclasses provide the native connect call, the driver exception classes
    that are worth retrying, and dialect quoting.
    """

    name = "connection"
    probe_query = "SELECT 1"

    def __init__(
        self,
        *,
        batch_size: int = DEFAULT_FETCH_SIZE,
        connect_retries: int = CONNECT_MAX_RETRIES,
        backoff_interval_ms: int = DEFAULT_BACKOFF_INTERVAL_MS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.batch_size = batch_size
        self.connect_retries = connect_retries
        self.backoff_interval_ms = backoff_interval_ms
        self.sleep = sleep
        self.reconnect_count = 0
        self._native: Any = None

    @abstractmethod
    def _connect_native(self) -> Any:
        """Open and return a new native DB-API connection."""

    @abstractmethod
    def expected_exception_classes(self) -> Tuple[Type[BaseException], ...]:
        """Driver exception classes that indicate a retryable failure."""

    def quote(self, value: Any) -> str:
        """Quote a literal value for inclusion in SQL."""
        return "'" + str(value).replace("'", "''") + "'"

    def quote_identifier(self, name: str) -> str:
        """Quote a table, schema or column name."""
        return '"' + name.replace('"', '""') + '"'

    def is_missing_driver_error(self, error: BaseException) -> bool:
        message = str(error).lower()
        return any(marker in message for marker in MISSING_DRIVER_MARKERS)

    def is_retryable(self, error: BaseException) -> bool:
        if isinstance(error, ApplicationError):
            return False
        retryable = (
            self.expected_exception_classes()
            + TRANSIENT_ERRORS
            + (ConnectionFailedError, DeadConnectionError)
        )
        return isinstance(error, retryable)

    @property
    def is_connected(self) -> bool:
        return self._native is not None

    def connect(self) -> Any:
        """Return the native handle, opening it on first use.

        Raises:
            ApplicationError: The driver or driver module is not available.
            ConnectionFailedError: Any other connect failure.
        """
        if self._native is not None:
            return self._native

        try:
            self._native = self._connect_native()
        except ExtractorError:
            raise
        except ImportError as e:
            raise ApplicationError(f"Missing driver: {e}") from e
        except Exception as e:
            if self.is_missing_driver_error(e):
                raise ApplicationError(f"Missing driver: {e}") from e
            raise ConnectionFailedError(f"Error connecting to DB: {e}") from e

        logger.debug("Connected to %s", self.name)
        return self._native

    def connect_with_retry(self) -> Any:
        """Open the native handle eagerly, retrying transient failures."""
        executor = RetryExecutor(
            self.connect_retries,
            self.is_retryable,
            backoff_interval_ms=self.backoff_interval_ms,
            sleep=self.sleep,
        )
        return executor.call(self.connect)

    def disconnect(self) -> None:
        """Close the native handle if one is open."""
        native, self._native = self._native, None
        if native is None:
            return
        try:
            native.close()
        except Exception as e:
            # The handle is usually already broken when we get here
            logger.debug("Error closing connection: %s", e)

    def reconnect(self) -> None:
        """Drop the current native handle and open a new one.

        Connect failures are logged and not raised; the next attempt of the
        retried operation resurfaces them.
        """
        self.reconnect_count += 1
        logger.info("Reconnecting to %s [%dx]", self.name, self.reconnect_count)
        self.disconnect()
        try:
            self.connect()
        except ExtractorError as e:
            logger.debug("Reconnect failed: %s", e)

    def _retry(self, max_retries: int) -> RetryExecutor:
        return RetryExecutor(
            max_retries,
            self.is_retryable,
            backoff_interval_ms=self.backoff_interval_ms,
            before_retry=self.reconnect,
            sleep=self.sleep,
        )

    def _do_query(self, sql: str) -> QueryResult:
        cursor = self.connect().cursor()
        try:
            cursor.execute(sql)
        except BaseException:
            cursor.close()
            raise
        logger.debug("Executed query: %s", sql)
        return QueryResult(cursor, self.batch_size)

    def call_with_retry(
        self, operation: Callable[[], T], max_retries: int = DEFAULT_MAX_RETRIES
    ) -> T:
        """Run ``operation``, reconnecting and retrying on transient failures."""
        return self._retry(max_retries).call(operation)

    def query(self, sql: str, max_retries: int = DEFAULT_MAX_RETRIES) -> QueryResult:
        """Execute ``sql`` and return its result stream.

        The caller owns the returned result and must close it.
        """
        return self.call_with_retry(lambda: self._do_query(sql), max_retries)

    def query_and_process(
        self,
        sql: str,
        max_retries: int,
        processor: Callable[[QueryResult], T],
    ) -> T:
        """Execute ``sql`` and hand the result to ``processor``.

        Query, processing and a liveness check form one retried unit: if the
        connection drops while rows are fetched, the whole unit runs again.
        The result is closed on every path.
        """

        def operation() -> T:
            with self._do_query(sql) as result:
                value = processor(result)
            self.is_alive()
            return value

        return self.call_with_retry(operation, max_retries)

    def fetch_all(self, sql: str, max_retries: int = DEFAULT_MAX_RETRIES) -> List[Sequence[Any]]:
        """Execute ``sql`` and return all rows. Only for small results."""

        def operation() -> List[Sequence[Any]]:
            with self._do_query(sql) as result:
                return list(result)

        return self.call_with_retry(operation, max_retries)

    def test_connection(self, max_retries: int = 1) -> None:
        """Run a trivial query to check the connection works."""
        self.fetch_all(self.probe_query, max_retries)

    def is_alive(self) -> None:
        """Probe the connection once, without retry.

        Raises:
            DeadConnectionError: The probe failed.
        """
        try:
            with self._do_query(self.probe_query) as result:
                result.fetch_one()
        except ApplicationError:
            raise
        except Exception as e:
            raise DeadConnectionError(f"Dead connection: {e}") from e

    def close(self) -> None:
        self.disconnect()

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
