"""Retry with exponential backoff and jitter for retryable upstream failures."""
from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

from .config import RetryConfig
from .errors import DataSourceUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

JITTER_FACTOR = 0.1


def backoff_delay(config: RetryConfig, attempt: int) -> float:
    """Delay before retry number ``attempt`` (0-indexed)."""
    delay = min(config.initial_delay * (config.backoff_multiplier**attempt), config.max_delay)
    if config.jitter:
        spread = delay * JITTER_FACTOR
        delay = max(0.0, delay + random.uniform(-spread, spread))
    return delay


async def retry_async(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig,
    retry_on: tuple[type[BaseException], ...] = (DataSourceUnavailable,),
    description: str = "operation",
) -> T:
    """Await ``func()`` until it succeeds or attempts run out.

    Only exceptions in ``retry_on`` are retried; anything else propagates
    immediately. When every attempt fails the last error is re-raised.
    """
    attempts = max(config.max_attempts, 1)
    attempt = 0
    while True:
        try:
            result = await func()
            break
        except retry_on as e:
            if attempt >= attempts - 1:
                logger.error("%s failed after %d attempts: %s", description, attempts, e)
                raise
            delay = backoff_delay(config, attempt)
            logger.warning(
                "%s failed (attempt %d/%d): %s. Retrying in %.2fs",
                description, attempt + 1, attempts, e, delay,
            )
            await asyncio.sleep(delay)
            attempt += 1
    if attempt > 0:
        logger.info("%s succeeded on attempt %d/%d", description, attempt + 1, attempts)
    return result
