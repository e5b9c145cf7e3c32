"""Port for the similarity scoring collaborator."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fusionid.domain.model.fusion_record import FusionRecord
    from fusionid.domain.model.matching import FusionMatch


@runtime_checkable
class Scorer(Protocol):
    """Compare one record against every known fusion identity.

    Implementations must not mutate either side; the engine treats the call as a
    pure function and decides the route from the returned candidates.
    """

    def score(
        self,
        record: FusionRecord,
        candidates: Sequence[FusionRecord],
    ) -> list[FusionMatch]: ...


__all__ = ["Scorer"]
