"""
Retry logic with exponential backoff.

Decorator used around provider calls (OpenAI, Replicate, HTTP downloads).
"""

import asyncio
import functools
import time
from typing import Callable, Type, Tuple, Any, TypeVar

from shared.errors import RetryableError, RateLimitError
from shared.logging import get_logger

T = TypeVar("T")
logger = get_logger("retry")


def backoff_delay(base_delay: float, attempt: int) -> float:
    """Delay before the retry following `attempt` (0-based): base, 2*base, 4*base, ..."""
    return base_delay * (2 ** attempt)


def _log_retry(func_name: str, attempt: int, max_attempts: int, delay: float, error: Exception) -> None:
    logger.warning(
        f"Retry attempt {attempt + 1}/{max_attempts} for {func_name} after {delay}s delay",
        extra={"error": str(error), "attempt": attempt + 1, "function": func_name}
    )


def _log_exhausted(func_name: str, max_attempts: int, error: Exception) -> None:
    logger.error(
        f"All {max_attempts} retry attempts failed for {func_name}",
        extra={"error": str(error), "function": func_name}
    )


def retry_with_backoff(
    max_attempts: int = 3,
    base_delay: float = 2,
    retryable_exceptions: Tuple[Type[Exception], ...] = (RetryableError, RateLimitError)
):
    """
    Decorator for retrying functions with exponential backoff.

    Works on both coroutine functions and plain functions. Exceptions that
    are not in `retryable_exceptions` propagate on the first occurrence.

    Args:
        max_attempts: Maximum number of attempts (default: 3)
        base_delay: Base delay in seconds for exponential backoff (default: 2)
        retryable_exceptions: Exception types that trigger a retry

    Returns:
        Decorated function

    Example:
        @retry_with_backoff(max_attempts=3, base_delay=2)
        async def synthesize(text):
            return await client.audio.speech.create(...)
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> T:
                for attempt in range(max_attempts):
                    try:
                        return await func(*args, **kwargs)
                    except retryable_exceptions as e:
                        if attempt == max_attempts - 1:
                            _log_exhausted(func.__name__, max_attempts, e)
                            raise
                        delay = backoff_delay(base_delay, attempt)
                        _log_retry(func.__name__, attempt, max_attempts, delay, e)
                        await asyncio.sleep(delay)
                raise RuntimeError(f"Function {func.__name__} failed after {max_attempts} attempts")

            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> T:
            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)
                except retryable_exceptions as e:
                    if attempt == max_attempts - 1:
                        _log_exhausted(func.__name__, max_attempts, e)
                        raise
                    delay = backoff_delay(base_delay, attempt)
                    _log_retry(func.__name__, attempt, max_attempts, delay, e)
                    time.sleep(delay)
            raise RuntimeError(f"Function {func.__name__} failed after {max_attempts} attempts")

        return sync_wrapper

    return decorator
