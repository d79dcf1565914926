"""Retry with exponential backoff and a before-retry hook.

Uses the tenacity library internally. ``RetryExecutor`` runs a
zero-argument operation, retrying only the failures classified as
retryable. Every retry is logged as ``"<message>. Retrying... [<n>x]"`` and
preceded by the caller's ``before_retry`` hook (Connection uses it to
reconnect). When the retry budget is exhausted a ``UserRetriedError`` is
raised whose message ends with ``"Tried <n> times."``.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional, Tuple, Type, TypeVar, Union

import tenacity

from dbextract.errors import UserRetriedError

logger = logging.getLogger(__name__)

__all__ = ["DEFAULT_BACKOFF_INTERVAL_MS", "RetryExecutor", "retried_message"]

T = TypeVar("T")

DEFAULT_BACKOFF_INTERVAL_MS = 1000

RetryablePredicate = Callable[[BaseException], bool]


def retried_message(message: str, try_count: int) -> str:
    """Append the "Tried N times." suffix to an error message."""
    message = message.rstrip()
    if message and message[-1] not in ".!?":
        message += "."
    return f"{message} Tried {try_count} times.".lstrip()


class RetryExecutor:
    """Run an operation, retrying transient failures.

    Args:
        max_retries: Total number of attempts. Values below 1 are treated as 1.
        retryable: Exception classes (or a predicate) identifying failures
            worth retrying. Anything else propagates on first occurrence.
        backoff_interval_ms: Wait before the second attempt. The wait
            doubles after every further failure.
        before_retry: Hook invoked after a retryable failure, before sleeping.
        sleep: Sleep function (seconds), replaceable in tests.
    """

    def __init__(
        self,
        max_retries: int,
        retryable: Union[Tuple[Type[BaseException], ...], RetryablePredicate],
        backoff_interval_ms: int = DEFAULT_BACKOFF_INTERVAL_MS,
        before_retry: Optional[Callable[[], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.max_retries = max(1, max_retries)
        if isinstance(retryable, tuple):
            classes = retryable
            self._is_retryable: RetryablePredicate = lambda e: isinstance(e, classes)
        else:
            self._is_retryable = retryable
        self.backoff_interval_ms = backoff_interval_ms
        self.before_retry = before_retry
        self.sleep = sleep

    def _before_sleep(self, retry_state: tenacity.RetryCallState) -> None:
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        logger.info("%s. Retrying... [%dx]", exception, retry_state.attempt_number)
        if self.before_retry is not None:
            self.before_retry()

    def call(self, operation: Callable[[], T]) -> T:
        """Run ``operation`` and return its result."""
        retrying = tenacity.Retrying(
            stop=tenacity.stop_after_attempt(self.max_retries),
            wait=tenacity.wait_exponential(
                multiplier=self.backoff_interval_ms / 1000.0, exp_base=2
            ),
            retry=tenacity.retry_if_exception(self._is_retryable),
            before_sleep=self._before_sleep,
            sleep=self.sleep,
            reraise=False,
        )
        try:
            return retrying(operation)
        except tenacity.RetryError as e:
            last_error = e.last_attempt.exception()
            try_count = e.last_attempt.attempt_number
            raise UserRetriedError(
                try_count, retried_message(str(last_error), try_count)
            ) from last_error

    def __call__(self, operation: Callable[[], Any]) -> Any:
        return self.call(operation)
