"""
Retry Backoff
=============
Exponential backoff retry for async operations.
"""

import asyncio
import random
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


class RetryExhausted(Exception):
    """All attempts failed. The last error is kept on `last_exception`."""

    def __init__(self, message: str, last_exception: Optional[BaseException] = None):
        super().__init__(message)
        self.last_exception = last_exception


def compute_delay(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
) -> float:
    """Delay before the retry that follows failed attempt number `attempt` (1-based)."""
    delay = min(base_delay * (exponential_base ** (attempt - 1)), max_delay)
    if jitter:
        delay = delay * (0.5 + random.random())
    return delay


async def retry_with_backoff(
    func: Callable[..., Awaitable[T]],
    *args,
    operation: Optional[str] = None,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Sleep = asyncio.sleep,
    **kwargs,
) -> T:
    """
    Await `func(*args, **kwargs)` until it succeeds or `max_attempts` is reached.

    Only `retryable_exceptions` are retried; anything else propagates at once.
    The delay before retry n is `base_delay * exponential_base ** (n - 1)`,
    capped at `max_delay` and scaled by 0.5-1.5 when `jitter` is set. `operation`
    names the call in log lines, which carry the error type but never its
    message. `sleep` is injectable so tests never wait.

    Raises:
        RetryExhausted: Every attempt failed; the final error is attached
    """
    name = operation or getattr(func, "__name__", "operation")
    last_exception: Optional[BaseException] = None

    for attempt in range(1, max_attempts + 1):
        try:
            return await func(*args, **kwargs)
        except retryable_exceptions as e:
            last_exception = e

            if attempt == max_attempts:
                logger.error(
                    "Retry exhausted",
                    operation=name,
                    attempts=attempt,
                    error_type=type(e).__name__,
                )
                break

            delay = compute_delay(attempt, base_delay, max_delay, exponential_base, jitter)
            logger.warning(
                "Retrying after failure",
                operation=name,
                attempt=attempt,
                delay=round(delay, 3),
                error_type=type(e).__name__,
            )
            await sleep(delay)

    raise RetryExhausted(
        f"{name} failed after {max_attempts} attempts",
        last_exception=last_exception,
    )
