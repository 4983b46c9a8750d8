"""Retry helper with exponential backoff, used for proxy provisioning."""

import asyncio
import random
import logging
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from ..config.settings import RetryConfig

logger = logging.getLogger(__name__)

T = TypeVar('T')


async def exponential_backoff(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,)
) -> T:
    """
    Await ``func()`` until it succeeds or attempts run out.

    Args:
        func: Zero-argument coroutine function to execute
        max_attempts: Total number of attempts, the first included
        initial_delay: Delay before the second attempt (seconds)
        max_delay: Upper bound for any single delay (seconds)
        backoff_factor: Multiplier applied to the delay after each failure
        jitter: Whether to spread delays by +/-25%
        exceptions: Exception types that trigger another attempt

    Returns:
        Result of the first successful call

    Raises:
        The last exception encountered if every attempt fails
    """
    delay = initial_delay
    attempt = 1

    while True:
        try:
            return await func()
        except exceptions as e:
            if attempt >= max_attempts:
                logger.error(f"Giving up after {max_attempts} attempts: {e}")
                raise

            actual_delay = delay
            if jitter:
                actual_delay += random.uniform(-delay * 0.25, delay * 0.25)
            actual_delay = max(0.0, min(actual_delay, max_delay))

            logger.warning(
                f"Attempt {attempt}/{max_attempts} failed: {e}. "
                f"Retrying in {actual_delay:.2f} seconds..."
            )

            await asyncio.sleep(actual_delay)
            delay *= backoff_factor
            attempt += 1


async def retry_with_config(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,)
) -> T:
    """Run :func:`exponential_backoff` with the values of a :class:`RetryConfig`."""
    return await exponential_backoff(
        func,
        max_attempts=config.max_attempts,
        initial_delay=config.initial_backoff_seconds,
        max_delay=config.max_backoff_seconds,
        backoff_factor=config.backoff_multiplier,
        jitter=config.jitter,
        exceptions=exceptions
    )
