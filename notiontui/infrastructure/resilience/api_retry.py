"""Service for executing API calls with automatic retries.

Implements capped exponential backoff for transient errors like rate limits
(429), server errors (5xx) and network failures. Permanent errors (auth,
not found, validation) and cancellation stop the loop immediately.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from notiontui.domain.errors import OperationContextError
from notiontui.domain.events.api_events import RetriesExhausted, RetryScheduled, log_event
from notiontui.domain.models.common import EventSink
from notiontui.domain.models.resilience import RetryConfig
from notiontui.infrastructure.resilience.error_classifier import classify_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]
SleepFunc = Callable[[float], Awaitable[None]]


# --- Custom Exceptions ---

class RetryExhaustedError(OperationContextError):
    """Exception raised when max retries are exceeded."""

    def __init__(self, last_error: BaseException, attempts: int, max_retries: int):
        self.last_error = last_error
        self.attempts = attempts
        self.max_retries = max_retries
        super().__init__(f"max retries ({max_retries}) exceeded after {attempts} attempts: {last_error}")


class RetryCancelledError(asyncio.CancelledError):
    """The caller was cancelled during a backoff wait.

    Still a CancelledError, so cancellation semantics are preserved; the
    original cancellation is ``__cause__`` and the failure that triggered
    the wait is ``last_error``.
    """

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"retry cancelled after {attempts} attempts")


# --- Retry loop ---

async def retry_with_backoff(
    operation: Operation,
    config: Optional[RetryConfig] = None,
    *,
    sleep: SleepFunc = asyncio.sleep,
    operation_name: Optional[str] = None,
    event_sink: Optional[EventSink] = None,
) -> T:
    """Runs ``operation`` until it succeeds, fails permanently or runs out of retries.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per attempt.
        config: Retry limits and backoff schedule (defaults when None).
        sleep: Awaitable sleep used between attempts.
        operation_name: Label for logs and events.
        event_sink: Receives RetryScheduled / RetriesExhausted events.

    Returns:
        The result of the first successful attempt.

    Raises:
        Exception: The original error if it is not retryable.
        RetryExhaustedError: If every attempt failed with a retryable error.
        RetryCancelledError: If cancelled while waiting between attempts.
    """
    config = config or RetryConfig.default()
    dispatch_event = event_sink or log_event
    name = operation_name or getattr(operation, "__name__", "operation")
    backoff = config.initial_backoff

    for attempt in range(config.max_retries + 1):
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            verdict = classify_error(e)
            if not verdict.retryable:
                logger.debug(f"Non-retryable error ({verdict.kind}) from {name} on attempt {attempt + 1}: {e}")
                raise

            if attempt >= config.max_retries:
                logger.error(f"Max retries ({config.max_retries}) reached for {name}. Last error: {e}")
                dispatch_event(RetriesExhausted(operation=name, attempts=attempt + 1, error_type=type(e).__name__))
                raise RetryExhaustedError(e, attempts=attempt + 1, max_retries=config.max_retries) from e

            if verdict.retry_after is not None:
                delay = verdict.retry_after
            else:
                delay = min(backoff, config.max_backoff)

            logger.warning(
                f"Retryable error ({verdict.kind.value}) calling {name} on attempt "
                f"{attempt + 1}/{config.total_attempts}: {type(e).__name__}. Waiting {delay:.2f}s..."
            )
            dispatch_event(RetryScheduled(
                operation=name,
                attempt_number=attempt + 1,
                delay_seconds=delay,
                error_kind=verdict.kind.value,
            ))

            try:
                await sleep(delay)
            except asyncio.CancelledError as cancel:
                logger.info(f"Retry of {name} cancelled while waiting after attempt {attempt + 1}")
                raise RetryCancelledError(attempt + 1, last_error=e) from cancel

            backoff = min(backoff * config.backoff_multiplier, config.max_backoff)

    # range() always returns or raises above; kept for type checkers
    raise AssertionError("unreachable")


class RetryableOperation:
    """Binds a RetryConfig and exposes a single ``execute`` entry point.

    The ``with_*`` methods derive new instances; the receiver never changes.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep: SleepFunc = asyncio.sleep,
        event_sink: Optional[EventSink] = None,
    ):
        self._config = config or RetryConfig.default()
        self._sleep = sleep
        self._event_sink = event_sink

    @property
    def config(self) -> RetryConfig:
        return self._config

    def _derive(self, **changes) -> "RetryableOperation":
        return RetryableOperation(self._config.evolve(**changes), sleep=self._sleep, event_sink=self._event_sink)

    def with_max_retries(self, max_retries: int) -> "RetryableOperation":
        return self._derive(max_retries=max_retries)

    def with_initial_backoff(self, backoff: float) -> "RetryableOperation":
        return self._derive(initial_backoff=backoff)

    def with_max_backoff(self, backoff: float) -> "RetryableOperation":
        return self._derive(max_backoff=backoff)

    async def execute(self, operation: Operation, operation_name: Optional[str] = None) -> T:
        """Runs the operation with this instance's retry configuration."""
        return await retry_with_backoff(
            operation,
            self._config,
            sleep=self._sleep,
            operation_name=operation_name,
            event_sink=self._event_sink,
        )

    def __repr__(self) -> str:
        return f"RetryableOperation({self._config!r})"
