"""Keyed asynchronous mutual exclusion.

Every key owns one ``asyncio.Lock``; waiters on the same key are served in
arrival order. Entries are dropped as soon as nobody holds or waits for them,
so the table only ever contains keys with pending work.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

log = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class _KeyedLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class KeyedLockManager:
    def __init__(self) -> None:
        self._locks: dict[str, _KeyedLock] = {}
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def pending_keys(self) -> frozenset[str]:
        return frozenset(self._locks)

    def is_locked(self, key: str) -> bool:
        entry = self._locks.get(key)
        return entry is not None and entry.lock.locked()

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for ``key`` for the duration of the ``async with`` block."""

        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _KeyedLock()
        entry.users += 1
        self._idle.clear()
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._locks.get(key) is entry:
                del self._locks[key]
            if not self._locks:
                self._idle.set()

    async def with_lock(self, key: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` exclusively for ``key``; failures propagate after release."""

        async with self.lock(key):
            try:
                return await operation()
            except Exception:
                log.error("Locked operation for %s failed", key)
                raise

    async def wait_for_all_pending(self) -> None:
        """Block until no key is held or waited on."""

        while self._locks:
            await self._idle.wait()
