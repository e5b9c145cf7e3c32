"""Port for persisting counters and run flags between invocations."""

from __future__ import annotations

from typing import Final, Protocol, runtime_checkable

FUSION_STATE_PATH: Final[str] = "/connectorAttributes/fusionState"
RESET_FLAG_PATH: Final[str] = "/connectorAttributes/reset"


@runtime_checkable
class StateStore(Protocol):
    """Counter state and configuration patches.

    ``patch_config`` has upsert semantics: ``op="add"`` creates the path when it
    is absent and overwrites it otherwise.
    """

    async def load_counters(self) -> dict[str, int]: ...

    async def patch_config(self, path: str, value: object, *, op: str = "add") -> None: ...


__all__ = ["FUSION_STATE_PATH", "RESET_FLAG_PATH", "StateStore"]
