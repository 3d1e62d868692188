import asyncio
import functools
import random
from typing import Any, Callable, Iterator, Tuple, Type

from ..utils.logging import get_logger

logger = get_logger(__name__)


def backoff_delays(
    max_retries: int,
    base_delay: float,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
) -> Iterator[float]:
    """
    Yield the pause before each retry: base, base*2, base*4 ... capped at max_delay.

    With jitter each pause moves by up to 25% either way.
    """
    for attempt in range(max_retries):
        delay = min(base_delay * exponential_base ** attempt, max_delay)
        if jitter:
            delay += random.uniform(-0.25 * delay, 0.25 * delay)
        yield max(0.0, min(delay, max_delay))


def async_retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
) -> Callable:
    """
    Decorator for coroutine functions: retry on ``exceptions`` with exponential backoff.

    The call is attempted ``max_retries + 1`` times; the last failure is re-raised.
    """
    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        label = getattr(func, "__qualname__", repr(func))

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            delays = backoff_delays(max_retries, base_delay, max_delay, exponential_base, jitter)
            attempt = 1
            while True:
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    delay = next(delays, None)
                    if delay is None:
                        logger.warning(f"{label} failed after {attempt} attempt(s): {e}")
                        raise
                    logger.debug(f"{label} attempt {attempt} failed ({e}), retrying in {delay:.2f}s")
                    await asyncio.sleep(delay)
                    attempt += 1

        return wrapper

    return decorator
