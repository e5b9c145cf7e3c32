"""Persisted incrementing counters shared by counter-mode attributes."""

from __future__ import annotations

import itertools
import logging
from typing import TYPE_CHECKING

from fusionid.domain.errors import CounterNotInitializedError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from fusionid.common.locks import KeyedLockManager

log = logging.getLogger(__name__)


class CounterStore:
    """Counter values keyed by attribute name.

    Values are read, incremented and written under the ``counter-state:<key>``
    lock. ``snapshot`` is what gets persisted at the end of a run; a counter
    stores the last value handed out, so a persisted ``5`` resumes at ``6``.
    """

    def __init__(self, locks: KeyedLockManager, state: Mapping[str, int] | None = None) -> None:
        self._locks = locks
        self._state: dict[str, int] = {}
        if state:
            self._state = {str(key): int(value) for key, value in state.items()}
            log.debug("Loaded %s counter value(s) from state", len(self._state))

    @staticmethod
    def transient() -> Callable[[], int]:
        """Return a non-persisted counter yielding 1, 2, 3, ..."""

        return itertools.count(1).__next__

    @staticmethod
    def lock_key(key: str) -> str:
        return f"counter-state:{key}"

    def __contains__(self, key: object) -> bool:
        return key in self._state

    def get(self, key: str) -> int | None:
        return self._state.get(key)

    async def init_counter(self, key: str, start: int) -> None:
        """Seed ``key`` so the next value is ``start``; no-op when already present."""

        async with self._locks.lock(self.lock_key(key)):
            if key not in self._state:
                self._state[key] = start - 1
                log.debug("Initialized counter %s, first value will be %s", key, start)

    async def next_value(self, key: str) -> int:
        async with self._locks.lock(self.lock_key(key)):
            if key not in self._state:
                error = CounterNotInitializedError(key)
                log.error("%s", error)
                raise error
            value = self._state[key] + 1
            self._state[key] = value
            log.debug("Counter %s incremented to %s", key, value)
            return value

    def restore(self, state: Mapping[str, int]) -> None:
        """Replace all counter values, e.g. with what the previous run persisted."""

        self._state = {str(key): int(value) for key, value in state.items()}
        log.debug("Restored %s counter value(s)", len(self._state))

    def snapshot(self) -> dict[str, int]:
        return dict(self._state)

    def clear(self) -> None:
        self._state.clear()
