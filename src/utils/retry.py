"""
Retry decorator with exponential backoff for database operations

Provides retry logic for transient failures with:
- Exponential backoff (base 2.0)
- Jitter to prevent thundering herd
- Configurable max retries
- Exception filtering by type or predicate
- Callback support for metrics integration

Usage:
    from utils.retry import is_retryable_db_exception, retry_with_backoff

    @retry_with_backoff(max_retries=3, retry_if=is_retryable_db_exception)
    def compare(pairing):
        return comparer.compare_table(pairing)
"""

import logging
import random
import time
from collections.abc import Callable
from functools import wraps
from typing import Any

logger = logging.getLogger(__name__)

RETRYABLE_PATTERNS = (
    "connection",
    "timeout",
    "deadlock",
    "lock wait timeout",
    "lost connection",
    "server has gone away",
    "can't connect",
    "unable to connect",
    "connection refused",
    "connection reset",
    "broken pipe",
    "network error",
    "communication link failure",
    "connection closed",
    "connection terminated",
)

RETRYABLE_EXCEPTION_NAMES = (
    "connectionerror",
    "timeouterror",
    "operationalerror",
    "interfaceerror",
)


def compute_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    exponential_base: float = 2.0,
    jitter: bool = True,
) -> float:
    """
    Delay before retry number ``attempt`` (0-based).

    With jitter the delay varies by +/-25% and never drops below 0.1s.
    """
    delay = min(base_delay * (exponential_base ** attempt), max_delay)
    if jitter:
        jitter_amount = delay * 0.25
        delay = max(0.1, delay + random.uniform(-jitter_amount, jitter_amount))
    return delay


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: tuple[type[Exception], ...] | None = None,
    retry_if: Callable[[Exception], bool] | None = None,
    on_retry: Callable[[int, Exception, float], None] | None = None,
):
    """
    Decorator that retries a function with exponential backoff

    Args:
        max_retries: Maximum number of retry attempts (default: 3)
        base_delay: Initial delay in seconds (default: 1.0)
        max_delay: Maximum delay in seconds (default: 60.0)
        exponential_base: Base for exponential backoff (default: 2.0)
        jitter: Add random jitter to prevent thundering herd (default: True)
        retryable_exceptions: Exception types to retry (default: all exceptions)
        retry_if: Predicate deciding whether an exception is retryable
        on_retry: Callback function(attempt, exception, delay) called on each retry

    Returns:
        Decorated function with retry logic
    """
    def decorator(func: Callable) -> Callable:
        func_name = getattr(func, '__name__', 'function')

        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)

                except Exception as e:
                    if retryable_exceptions and not isinstance(e, retryable_exceptions):
                        logger.error(
                            f"Non-retryable exception in {func_name}: {type(e).__name__}: {e}"
                        )
                        raise

                    if retry_if is not None and not retry_if(e):
                        logger.error(
                            f"Non-retryable exception in {func_name}: {type(e).__name__}: {e}"
                        )
                        raise

                    if attempt == max_retries:
                        if max_retries:
                            logger.error(
                                f"Max retries ({max_retries}) exceeded for {func_name}: "
                                f"{type(e).__name__}: {e}"
                            )
                        raise

                    delay = compute_delay(
                        attempt, base_delay, max_delay, exponential_base, jitter
                    )

                    logger.warning(
                        f"Attempt {attempt + 1}/{max_retries} failed for {func_name}: "
                        f"{type(e).__name__}: {e}. Retrying in {delay:.2f}s..."
                    )

                    if on_retry:
                        try:
                            on_retry(attempt + 1, e, delay)
                        except Exception as callback_error:
                            logger.error(f"Error in retry callback: {callback_error}")

                    time.sleep(delay)

            raise RuntimeError(f"Unexpected exit from retry loop in {func_name}")

        return wrapper
    return decorator


def is_retryable_db_exception(exception: BaseException) -> bool:
    """
    Determine if a database exception is transient.

    Matches connection, timeout, deadlock and network failures by message
    or exception type name (OperationalError, InterfaceError, ...). The
    exception's ``__cause__`` chain is inspected too, so wrapped driver
    errors are recognised.
    """
    current: BaseException | None = exception
    while current is not None:
        message = str(current).lower()
        type_name = type(current).__name__.lower()

        if type_name in RETRYABLE_EXCEPTION_NAMES:
            return True
        for pattern in RETRYABLE_PATTERNS:
            if pattern in message or pattern in type_name:
                return True

        current = current.__cause__

    return False
