"""Port for best-effort reviewer notifications."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence


@runtime_checkable
class Notifier(Protocol):
    """Deliver ``message`` to ``recipients``; implementations log failures and never raise."""

    async def notify(self, *, subject: str, message: str, recipients: Sequence[str]) -> None: ...


__all__ = ["Notifier"]
