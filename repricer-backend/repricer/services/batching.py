from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

Sleep = Callable[[float], Awaitable[None]]


async def process_in_batches(
    items: Sequence[T],
    batch_size: int,
    handler: Callable[[T], Awaitable[R]],
    delay_seconds: float = 0.5,
    *,
    sleep: Sleep = asyncio.sleep,
    stop_when: Callable[[], bool] | None = None,
) -> list[R]:
    """Run ``handler`` over ``items`` in waves of ``batch_size`` concurrent calls.

    Waits ``delay_seconds`` between waves (not after the last one). Results keep
    the input order. ``handler`` is expected to report its own failures in its
    result; an exception escaping it aborts the run. ``stop_when`` is checked
    after every wave; once it returns true the remaining items are left
    unprocessed and only the results so far are returned.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    results: list[R] = []
    total = len(items)
    for start in range(0, total, batch_size):
        wave = items[start : start + batch_size]
        results.extend(await asyncio.gather(*(handler(item) for item in wave)))
        if stop_when is not None and stop_when():
            logger.warning("Stopping after %s/%s items", start + len(wave), total)
            break
        if start + batch_size < total:
            logger.debug("Wave done (%s/%s), pausing %.3fs", start + len(wave), total, delay_seconds)
            await sleep(delay_seconds)
    return results
