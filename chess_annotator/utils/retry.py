# chess_annotator/utils/retry.py
"""
Provides a generic, asynchronous retry decorator for handling transient errors.

The opening book lives behind a public HTTP endpoint, so a lookup may fail on a
dropped connection that succeeds a moment later. This decorator re-runs the
call with an exponential backoff delay before giving up.
"""
import asyncio
import functools
import random
from typing import Any, Callable, Coroutine, Tuple, Type

import structlog

logger = structlog.get_logger(__name__)

# Exception types considered "transient" and worth retrying by default.
DEFAULT_TRANSIENT_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
)


def retry_with_backoff(
    attempts: int = 3,
    initial_backoff_s: float = 0.5,
    max_backoff_s: float = 5.0,
    jitter_factor: float = 0.2,
    exceptions_to_catch: Tuple[Type[Exception], ...] = DEFAULT_TRANSIENT_EXCEPTIONS,
) -> Callable[[Callable[..., Coroutine]], Callable[..., Coroutine]]:
    """
    An async decorator to retry a function with exponential backoff and jitter.

    Args:
        attempts: The maximum number of times to try the function (including the first attempt).
        initial_backoff_s: The initial delay in seconds for the first retry.
        max_backoff_s: The maximum possible delay in seconds, to cap the backoff time.
        jitter_factor: A factor to add randomness to the delay. A value of 0.2
                       adds or subtracts up to 20% of the current backoff time.
        exceptions_to_catch: A tuple of specific exception classes that should trigger a retry.

    Returns:
        A decorated asynchronous function.
    """
    def decorator(func: Callable[..., Coroutine]) -> Callable[..., Coroutine]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            current_delay = initial_backoff_s
            for attempt in range(1, attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions_to_catch as e:
                    if attempt == attempts:
                        logger.error(
                            "Function call failed after max attempts.",
                            function=func.__name__,
                            total_attempts=attempts,
                            error=str(e),
                        )
                        raise

                    jitter = random.uniform(-current_delay * jitter_factor, current_delay * jitter_factor)
                    wait_time = min(max_backoff_s, current_delay + jitter)

                    logger.warning(
                        "Caught transient error, retrying function.",
                        function=func.__name__,
                        attempt=attempt,
                        total_attempts=attempts,
                        wait_seconds=round(wait_time, 2),
                        error=str(e),
                    )

                    await asyncio.sleep(wait_time)
                    current_delay *= 2
        return wrapper
    return decorator
