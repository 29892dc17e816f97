from __future__ import annotations

import asyncio

from ..constants import DEFAULT_BACKOFF_FACTOR, DEFAULT_BACKOFF_INITIAL, DEFAULT_BACKOFF_MAX


def compute_backoff(
    attempt: int,
    initial: float = DEFAULT_BACKOFF_INITIAL,
    factor: float = DEFAULT_BACKOFF_FACTOR,
    max_delay: float = DEFAULT_BACKOFF_MAX,
) -> float:
    """Exponential delay after failed ``attempt`` (1-based), capped at ``max_delay``.

    The curve never decreases as ``attempt`` grows.
    """
    if attempt < 1 or initial <= 0:
        return 0.0
    return min(initial * factor ** (attempt - 1), max_delay)


async def schedule_retry(
    attempt: int,
    initial: float = DEFAULT_BACKOFF_INITIAL,
    factor: float = DEFAULT_BACKOFF_FACTOR,
    max_delay: float = DEFAULT_BACKOFF_MAX,
) -> float:
    """Sleep for the computed backoff delay before retrying and return it."""
    delay = compute_backoff(attempt, initial, factor, max_delay)
    await asyncio.sleep(delay)
    return delay
