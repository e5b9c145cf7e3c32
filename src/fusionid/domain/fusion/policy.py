"""Routing policy for drained pool entries.

Responsibilities of this stage:
- pick the route of a scored record: auto-merge, pending review or admission
- synthesize the system decision used for auto-merges

The policy is deterministic given the candidate list; which algorithms are
left out of the perfect-score check is configuration.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from fusionid.domain.model.enums import Route
from fusionid.domain.model.inputs import DecisionAccount, ReviewDecision, Submitter

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fusionid.domain.model.fusion_record import FusionRecord
    from fusionid.domain.model.matching import FusionMatch

SYSTEM_SUBMITTER: Final[Submitter] = Submitter(id="system", name="System (auto-correlated)")
AUTO_MERGE_COMMENT: Final[str] = "Auto-correlated: all attribute scores were {score:g}"


@dataclass(slots=True, frozen=True)
class RouteDecision:
    route: Route
    match: FusionMatch | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class MatchPolicy:
    merge_identical: bool = False
    perfect_score: float = 100.0
    excluded_algorithms: tuple[str, ...] = ("average",)

    def route(self, matches: Sequence[FusionMatch]) -> RouteDecision:
        candidates = [match for match in matches if match.is_match]
        if not candidates:
            return RouteDecision(Route.ADMITTED)
        if self.merge_identical:
            for match in candidates:
                if match.identity_id and match.is_perfect(
                    perfect_score=self.perfect_score,
                    excluded_algorithms=self.excluded_algorithms,
                ):
                    return RouteDecision(Route.AUTO_MERGE, match)
        return RouteDecision(Route.PENDING_REVIEW)

    def system_decision(self, record: FusionRecord, match: FusionMatch) -> ReviewDecision:
        return ReviewDecision(
            submitter=SYSTEM_SUBMITTER,
            account=DecisionAccount(
                id=record.managed_account_id or record.native_key or "",
                source_name=record.source_name or "",
                name=record.name,
            ),
            new_identity=False,
            identity_id=match.identity_id,
            comments=AUTO_MERGE_COMMENT.format(score=self.perfect_score),
        )
