"""Bounded concurrency for deletion batches.

Candidates are processed in consecutive waves of at most ``concurrency``
elements. A wave runs concurrently and must complete before the next one
starts. Cancellation is checked before each wave, never inside one.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence, TypeVar

from retention_service.retention.cancellation import CancellationToken

T = TypeVar("T")

DEFAULT_MAX_CONCURRENCY = 2


def split_every(size: int, items: Sequence[T]) -> List[List[T]]:
    """Split ``items`` into consecutive chunks of at most ``size`` elements."""
    if size < 1:
        raise ValueError("size must be at least 1")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


@dataclass
class WaveRunResult:
    """Progress of a wave run.

    Attributes:
        waves_started: Number of waves started
        processed: Elements handed to the worker
        not_started: Elements skipped because of cancellation
        cancelled: Whether cancellation stopped the run early
    """
    waves_started: int = 0
    processed: int = 0
    not_started: int = 0
    cancelled: bool = False


async def run_in_waves(
    elements: Sequence[T],
    worker: Callable[[T], Awaitable[Any]],
    *,
    concurrency: int = DEFAULT_MAX_CONCURRENCY,
    cancellation: Optional[CancellationToken] = None,
) -> WaveRunResult:
    """Run ``worker`` over ``elements`` in bounded concurrent waves.

    Args:
        elements: Ordered candidates
        worker: Coroutine function called once per element; it is expected
            to contain its own errors
        concurrency: Maximum number of concurrent worker calls
        cancellation: Optional token checked before each wave

    Returns:
        Wave run progress
    """
    waves = split_every(concurrency, elements)
    result = WaveRunResult()

    for index, wave in enumerate(waves):
        if cancellation is not None and cancellation.cancelled:
            result.cancelled = True
            result.not_started = sum(len(w) for w in waves[index:])
            break
        result.waves_started += 1
        await asyncio.gather(*(worker(element) for element in wave))
        result.processed += len(wave)

    return result
