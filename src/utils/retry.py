"""
Bounded retry execution with linear backoff

Provides resilient retry logic for transient engine failures with:
- Linear backoff (delay = attempt number x base delay)
- Configurable attempt count
- Injectable sleep function for tests (virtual clock)
- Cancellation token support so a backoff wait can be interrupted
- Composite failure carrying the operation name and last cause

Usage:
    from utils.retry import execute_with_retry

    result = execute_with_retry(
        lambda: run_comparison(conn),
        max_attempts=3,
        base_delay_ms=1000,
        operation_name="Verify partition: year=2025",
    )
"""

import logging
import threading
from collections.abc import Callable
from typing import TypeVar

from prometheus_client import Counter

from .metrics import get_or_create_metric

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRY_ATTEMPTS_FAILED = get_or_create_metric(
    lambda: Counter(
        "verification_retry_attempts_failed_total",
        "Number of failed attempts seen by the retry executor",
    ),
    "verification_retry_attempts_failed",
)


class CancellationError(Exception):
    """Raised when an operation is cancelled via its cancellation token."""

    pass


class RetryExhaustedError(Exception):
    """Raised when every attempt of an operation has failed."""

    def __init__(self, operation_name: str, attempts: int, last_exception: BaseException | None):
        self.operation_name = operation_name
        self.attempts = attempts
        self.last_exception = last_exception
        super().__init__(
            f"Operation '{operation_name}' failed after {attempts} attempts: "
            f"{type(last_exception).__name__}: {last_exception}"
        )


def _event_sleep(cancellation_token: threading.Event | None) -> Callable[[float], None]:
    """Build a sleep function that returns early when the token is set."""
    token = cancellation_token or threading.Event()

    def sleep(seconds: float) -> None:
        if token.wait(seconds):
            raise CancellationError("Retry backoff interrupted by cancellation")

    return sleep


def execute_with_retry(
    operation: Callable[[], T],
    max_attempts: int = 3,
    base_delay_ms: int = 1000,
    operation_name: str = "operation",
    sleep: Callable[[float], None] | None = None,
    cancellation_token: threading.Event | None = None,
    on_retry: Callable[[int, Exception, float], None] | None = None,
) -> T:
    """
    Execute an operation up to max_attempts times with linear backoff

    Args:
        operation: Zero-argument callable to execute
        max_attempts: Maximum number of attempts (default: 3)
        base_delay_ms: Base delay in milliseconds (default: 1000)
        operation_name: Logical name used in logs and the final error
        sleep: Function taking seconds; defaults to an interruptible wait
        cancellation_token: Event that aborts the loop when set
        on_retry: Callback function(attempt, exception, delay_seconds)

    Returns:
        The value returned by the first successful attempt

    Raises:
        CancellationError: If the token is set before or between attempts
        RetryExhaustedError: If every attempt failed
        ValueError: If max_attempts is below 1
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    if sleep is None:
        sleep = _event_sleep(cancellation_token)

    last_exception: Exception | None = None

    for attempt in range(1, max_attempts + 1):
        if cancellation_token is not None and cancellation_token.is_set():
            raise CancellationError(f"{operation_name} cancelled before attempt {attempt}")

        try:
            logger.debug(f"Executing {operation_name} (attempt {attempt}/{max_attempts})")
            return operation()

        except CancellationError:
            raise

        except Exception as e:
            last_exception = e
            RETRY_ATTEMPTS_FAILED.inc()
            logger.warning(
                f"Attempt {attempt}/{max_attempts} failed for {operation_name}: "
                f"{type(e).__name__}: {e}"
            )

            if attempt == max_attempts:
                logger.error(f"All {max_attempts} attempts failed for {operation_name}")
                break

            delay = attempt * base_delay_ms / 1000.0
            logger.info(f"Retrying {operation_name} in {delay * 1000:.0f}ms...")

            if on_retry:
                try:
                    on_retry(attempt, e, delay)
                except Exception as callback_error:
                    logger.error(f"Error in retry callback: {callback_error}")

            sleep(delay)

    raise RetryExhaustedError(operation_name, max_attempts, last_exception) from last_exception

