"""Scoring results exchanged with the scoring collaborator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .fusion_record import FusionRecord


@dataclass(slots=True, frozen=True, kw_only=True)
class ScoreReport:
    """Per-attribute score of one candidate comparison."""

    attribute: str
    score: float
    is_match: bool
    algorithm: str | None = None
    fusion_score: float | None = None
    mandatory: bool = False
    comment: str | None = None


@dataclass(slots=True, kw_only=True)
class FusionMatch:
    """A scored candidate merge of a drained record into a known fusion identity.

    ``fusion_identity`` is the heavy back-reference; it is released once a review
    has been requested while ``identity_id`` and ``identity_name`` are kept for
    reporting.
    """

    identity_id: str | None
    identity_name: str | None
    scores: list[ScoreReport] = field(default_factory=list[ScoreReport])
    is_match: bool = True
    fusion_identity: FusionRecord | None = field(default=None, repr=False)

    @classmethod
    def for_identity(
        cls,
        fusion_identity: FusionRecord,
        scores: Iterable[ScoreReport],
        *,
        is_match: bool = True,
    ) -> FusionMatch:
        return cls(
            identity_id=fusion_identity.identity_key,
            identity_name=fusion_identity.name,
            scores=list(scores),
            is_match=is_match,
            fusion_identity=fusion_identity,
        )

    def is_perfect(self, *, perfect_score: float, excluded_algorithms: Iterable[str]) -> bool:
        """Return whether every non-excluded attribute score hit ``perfect_score``."""

        excluded = set(excluded_algorithms)
        considered = [score for score in self.scores if score.algorithm not in excluded]
        return bool(considered) and all(score.score >= perfect_score for score in considered)

    def release_identity(self) -> None:
        self.fusion_identity = None
