"""
Retry utilities for quote fetches.

Exponential backoff with jitter and a per-attempt timeout. Exhausted
retries surface as TransientFetchError so the monitor can raise an
API_ERROR alert and leave the snapshot stale.
"""

import asyncio
import random
from typing import Awaitable, Callable, TypeVar

from loguru import logger

from optengine.models import TransientFetchError

logger = logger.bind(component="FetchRetry")

T = TypeVar("T")


async def fetch_with_retry(
    func: Callable[[], Awaitable[T]],
    symbol: str,
    max_retries: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 30.0,
    timeout: float = 5.0,
) -> T:
    """
    Execute an async fetch with exponential backoff retry.

    Args:
        func: Zero-argument coroutine function performing the fetch
        symbol: Symbol being fetched (for logging and the error)
        max_retries: Maximum attempts
        base_delay: Initial delay in seconds (jitter is bounded by it)
        max_delay: Maximum delay between attempts
        timeout: Per-attempt timeout in seconds

    Returns:
        Fetch result

    Raises:
        TransientFetchError: If every attempt failed or timed out
    """
    last_error: Exception = TransientFetchError(f"No fetch attempted for {symbol}", symbol=symbol)

    for attempt in range(max_retries):
        if attempt > 0:
            delay = min(base_delay * (2 ** attempt) + random.uniform(0, base_delay), max_delay)
            logger.debug(f"Retry {attempt + 1}/{max_retries} for {symbol} after {delay:.1f}s delay...")
            await asyncio.sleep(delay)

        try:
            return await asyncio.wait_for(func(), timeout=timeout)
        except asyncio.TimeoutError as e:
            last_error = e
            logger.warning(f"Attempt {attempt + 1}/{max_retries} for {symbol} timed out after {timeout}s")
        except Exception as e:
            last_error = e
            logger.warning(f"Attempt {attempt + 1}/{max_retries} for {symbol} failed: {e}")

    logger.error(f"All {max_retries} retries exhausted for {symbol}")
    raise TransientFetchError(
        f"Quote fetch failed for {symbol} after {max_retries} attempts: {last_error}",
        symbol=symbol,
    ) from last_error
