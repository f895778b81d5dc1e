"""
Centralized error handling decorators.

Provides reusable decorators for common error handling patterns:
- Exception suppression with logging
- Retry logic for coroutines with a fixed (or growing) delay
- Error logging with context
"""
from typing import Awaitable, Callable, TypeVar, ParamSpec, Any, Optional
from functools import wraps
import asyncio
from core.logging.logger import get_logger
from core.logging.tags import TAG_RETRY

P = ParamSpec('P')
T = TypeVar('T')

logger = get_logger(__name__)


def suppress_exceptions(
    logger_instance: Optional[Any] = None,
    message: str = "Operation failed",
    return_value: Any = None,
    log_level: str = "error"
) -> Callable[[Callable[P, T]], Callable[P, Optional[T]]]:
    """
    Decorator to suppress exceptions and log them.

    Args:
        logger_instance: Logger to use (defaults to module logger)
        message: Error message prefix
        return_value: Value to return on exception
        log_level: Logging level ('debug', 'info', 'warning', 'error')

    Returns:
        Decorated function that suppresses exceptions

    Example:
        @suppress_exceptions(logger, "Failed to write cache entry", log_level="warning")
        def write_entry(key: str, raw: str) -> None:
            storage.write(key, raw)
    """
    def decorator(func: Callable[P, T]) -> Callable[P, Optional[T]]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> Optional[T]:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                log = logger_instance or logger
                log_method = getattr(log, log_level, log.error)
                log_method(f"{message}: {e}", exc_info=True)
                return return_value
        return wrapper
    return decorator


def async_retry(
    max_retries: int = 2,
    delay: float = 0.5,
    backoff: float = 1.0,
    exceptions: tuple = (Exception,),
    logger_instance: Optional[Any] = None,
    label: Optional[str] = None,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """
    Decorator to retry a coroutine function on failure.

    The wrapped coroutine runs at most ``max_retries + 1`` times. Between
    failures the wrapper sleeps ``delay`` seconds on the event loop, multiplied
    by ``backoff`` after each retry (``1.0`` keeps the delay fixed). The last
    exception is re-raised unchanged. ``asyncio.CancelledError`` is never
    retried.

    Args:
        max_retries: Extra attempts after the first failure
        delay: Seconds to wait between attempts
        backoff: Multiplier for delay after each retry
        exceptions: Tuple of exceptions that trigger a retry
        logger_instance: Logger to use (defaults to module logger)
        label: Name used in log lines (defaults to the function name)

    Example:
        @async_retry(max_retries=2, delay=0.5, exceptions=(RelayError,))
        async def fetch(url: str) -> str:
            ...
    """
    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        name = label or func.__name__

        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            log = logger_instance or logger
            current_delay = delay
            attempts = max(0, max_retries) + 1

            for attempt in range(1, attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt == attempts:
                        log.debug(f"{TAG_RETRY} {name} failed after {attempts} attempts: {e}")
                        raise

                    log.debug(
                        f"{TAG_RETRY} {name} attempt {attempt}/{attempts} failed: {e}. "
                        f"Retrying in {current_delay:.1f}s..."
                    )
                    await asyncio.sleep(current_delay)
                    current_delay *= backoff

            raise RuntimeError(f"{name} failed after {attempts} attempts")
        return wrapper
    return decorator


def log_errors(
    logger_instance: Optional[Any] = None,
    message: str = "Error in {func_name}",
    log_level: str = "error",
    reraise: bool = True
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Decorator to log errors with context before optionally re-raising.

    Args:
        logger_instance: Logger to use (defaults to module logger)
        message: Error message template (can use {func_name} placeholder)
        log_level: Logging level ('debug', 'info', 'warning', 'error')
        reraise: Whether to re-raise the exception after logging

    Returns:
        Decorated function that logs errors
    """
    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                log = logger_instance or logger
                log_method = getattr(log, log_level, log.error)
                error_msg = message.format(func_name=func.__name__)
                log_method(f"{error_msg}: {e}", exc_info=True)

                if reraise:
                    raise
                return None  # type: ignore
        return wrapper
    return decorator
