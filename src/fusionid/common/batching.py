"""Bounded-concurrency helpers for per-record work."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

log = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def gather_batched(
    items: Sequence[T],
    operation: Callable[[T], Awaitable[R]],
    *,
    batch_size: int,
) -> list[R | BaseException]:
    """Run ``operation`` over ``items`` with at most ``batch_size`` tasks in flight.

    Results come back in input order; a failing item yields its exception in
    place of a result so one bad item never aborts the rest of its batch.
    """

    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    results: list[R | BaseException] = []
    for start in range(0, len(items), batch_size):
        batch = items[start : start + batch_size]
        log.debug("Processing batch %s-%s of %s", start + 1, start + len(batch), len(items))
        results.extend(
            await asyncio.gather(*(operation(item) for item in batch), return_exceptions=True)
        )
    return results
