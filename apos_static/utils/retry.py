"""Retry utilities with exponential backoff for network calls."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def retry_with_exponential_backoff(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    max_delay: float | None = None,
    retry_on_exceptions: tuple[type[BaseException], ...] = (Exception,),
    on_retry: Callable[[int, BaseException], None] | None = None,
    **kwargs: Any,
) -> T:
    """
    Retry an async function with exponential backoff.

    Exceptions not listed in ``retry_on_exceptions`` propagate immediately
    without consuming a retry.

    Args:
        func: Async function to retry
        *args: Positional arguments for the function
        max_retries: Maximum number of retry attempts after the first call
        initial_delay: Initial delay in seconds before first retry
        backoff_factor: Multiplier for delay after each retry (default: 2.0)
        max_delay: Upper bound for a single delay, in seconds (None for no cap)
        retry_on_exceptions: Tuple of exception types to retry on
        on_retry: Optional hook called with (attempt, exception) before sleeping
        **kwargs: Keyword arguments for the function

    Returns:
        Result from successful function execution

    Raises:
        The last exception if all retries fail
    """
    delay = initial_delay
    name = getattr(func, "__name__", repr(func))

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except retry_on_exceptions as e:
            if attempt == max_retries:
                logger.debug(
                    "retry_exhausted",
                    function=name,
                    attempts=attempt + 1,
                    error=str(e) or type(e).__name__,
                )
                raise

            wait = min(delay, max_delay) if max_delay is not None else delay
            logger.debug(
                "retry_attempt",
                function=name,
                attempt=attempt + 1,
                max_retries=max_retries,
                delay=wait,
                error=str(e) or type(e).__name__,
            )
            if on_retry is not None:
                on_retry(attempt + 1, e)
            await asyncio.sleep(wait)
            delay *= backoff_factor

    raise RuntimeError("Unexpected retry loop exit")
