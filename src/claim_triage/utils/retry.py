"""Retry utilities with exponential backoff for external sources and audit writes."""

from typing import Callable, TypeVar

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from claim_triage.config.settings import (
    EXTERNAL_RETRY_ATTEMPTS,
    EXTERNAL_RETRY_MAX_WAIT,
    EXTERNAL_RETRY_MIN_WAIT,
)

T = TypeVar("T")

# Transient errors worth retrying; requests exceptions are OSError subclasses
RETRYABLE_EXCEPTIONS: tuple[type[BaseException], ...] = (ConnectionError, TimeoutError, OSError)


def with_retry(
    max_attempts: int = EXTERNAL_RETRY_ATTEMPTS,
    min_wait: float = EXTERNAL_RETRY_MIN_WAIT,
    max_wait: float = EXTERNAL_RETRY_MAX_WAIT,
    multiplier: float = 1.0,
    exceptions: tuple[type[BaseException], ...] = RETRYABLE_EXCEPTIONS,
):
    """Decorator that retries a function with exponential backoff on transient failures.

    Args:
        max_attempts: Maximum number of attempts.
        min_wait: Minimum wait between retries in seconds.
        max_wait: Maximum wait between retries in seconds.
        multiplier: Base multiplier for exponential backoff.
        exceptions: Exception types that trigger a retry. Anything else propagates at once.
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @retry(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=multiplier, min=min_wait, max=max_wait),
            retry=retry_if_exception_type(exceptions),
            reraise=True,
        )
        def wrapper(*args, **kwargs) -> T:
            return func(*args, **kwargs)

        return wrapper

    return decorator
