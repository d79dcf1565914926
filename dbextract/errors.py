"""Structured exception hierarchy for database extraction.

Errors are split into two families:

- ``UserError``: caused by the data source or the configuration the user
  supplied (bad credentials, unreachable host, missing column, retries
  exhausted). These are reported back to the user as-is.
- ``ApplicationError``: caused by the extractor itself or its environment
  (missing driver, unwritable output path).
"""

from __future__ import annotations

from typing import Any, Dict, Optional

__all__ = [
    "ExtractorError",
    "UserError",
    "UserRetriedError",
    "ConnectionFailedError",
    "DeadConnectionError",
    "AdapterSkippedError",
    "ApplicationError",
    "ConfigurationError",
    "PropertyNotSetError",
    "InvalidStateError",
    "NoColumnError",
    "ColumnNotFoundError",
    "TableNotFoundError",
]


class ExtractorError(Exception):
    """Base exception for all extractor errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class UserError(ExtractorError):
    """Error the user can fix: source data, credentials or configuration."""


class UserRetriedError(UserError):
    """A retryable operation kept failing until the retry budget ran out."""

    def __init__(self, try_count: int, message: str, **kwargs: Any) -> None:
        self.try_count = try_count
        details = kwargs.pop("details", {})
        details["try_count"] = try_count
        super().__init__(message, details=details, **kwargs)


class ConnectionFailedError(UserError):
    """Opening a connection to the data source failed."""


class DeadConnectionError(UserError):
    """The connection stopped answering after a query was processed."""


class AdapterSkippedError(UserError):
    """An export adapter declined to handle the export.

    Raised by adapters that cannot serve a given configuration, so that a
    fallback chain moves on to the next adapter without a warning.
    """


class ApplicationError(ExtractorError):
    """Internal or environmental failure, not fixable by the user."""


class ConfigurationError(ExtractorError):
    """Invalid configuration or invalid arguments."""

    def __init__(
        self,
        message: str,
        *,
        key: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        self.key = key
        details = kwargs.pop("details", {})
        if key:
            details["key"] = key
        super().__init__(message, details=details, **kwargs)


class PropertyNotSetError(ExtractorError):
    """A builder was asked to build while a required property is missing."""


class InvalidStateError(ExtractorError):
    """A builder operation is not allowed in the builder's current state."""


class NoColumnError(ExtractorError):
    """A table was built without any column."""


class ColumnNotFoundError(ExtractorError):
    """Column lookup in a ColumnCollection failed."""


class TableNotFoundError(ExtractorError):
    """Table lookup in a TableCollection failed."""
