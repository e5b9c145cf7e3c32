"""Ports for the human review workflow and directory correlation."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fusionid.domain.model.fusion_record import FusionRecord
    from fusionid.domain.model.matching import FusionMatch


@runtime_checkable
class ReviewRequester(Protocol):
    """Open a review asking ``reviewer`` to resolve ``record`` against ``candidates``.

    Returns the reference of the created review, or ``None`` when nothing was created.
    """

    async def create_review(
        self,
        *,
        record: FusionRecord,
        reviewer: FusionRecord,
        candidates: Sequence[FusionMatch],
    ) -> str | None: ...


@runtime_checkable
class DirectoryCorrelator(Protocol):
    """Attach a source account to a directory identity."""

    async def correlate(self, *, identity_id: str, account_id: str) -> None: ...


__all__ = ["DirectoryCorrelator", "ReviewRequester"]
