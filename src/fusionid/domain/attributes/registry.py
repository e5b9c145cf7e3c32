"""Values already assigned to uniqueness-enforced attributes."""

from __future__ import annotations

import logging

log = logging.getLogger(__name__)


class UniqueValueRegistry:
    """Per-attribute sets of taken values.

    The registry itself does no locking; callers mutate it only while holding
    the attribute's lock from the lock manager.
    """

    def __init__(self) -> None:
        self._values: dict[str, set[str]] = {}

    def contains(self, attribute: str, value: str) -> bool:
        return value in self._values.get(attribute, ())

    def register(self, attribute: str, value: str) -> bool:
        """Reserve ``value``; return ``False`` when it was already taken."""

        taken = self._values.setdefault(attribute, set())
        if value in taken:
            return False
        taken.add(value)
        return True

    def unregister(self, attribute: str, value: str) -> bool:
        taken = self._values.get(attribute)
        if taken is None or value not in taken:
            return False
        taken.discard(value)
        log.debug("Unregistered unique value %r for attribute %s", value, attribute)
        return True

    def values(self, attribute: str) -> frozenset[str]:
        return frozenset(self._values.get(attribute, ()))

    def __len__(self) -> int:
        return sum(len(values) for values in self._values.values())
