"""Match report summarising the drain phase."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from fusionid.domain.model.fusion_record import FusionRecord
    from fusionid.domain.model.matching import FusionMatch


@dataclass(slots=True, frozen=True, kw_only=True)
class ReportScore:
    attribute: str
    score: float
    is_match: bool
    algorithm: str | None = None
    fusion_score: float | None = None
    comment: str | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class ReportMatch:
    identity_id: str | None
    identity_name: str | None
    scores: tuple[ReportScore, ...] = ()


@dataclass(slots=True, frozen=True, kw_only=True)
class ReportAccount:
    account_name: str
    account_source: str | None
    account_id: str | None
    account_email: str | None = None
    account_attributes: Mapping[str, object] = field(default_factory=dict["str", "object"])
    matches: tuple[ReportMatch, ...] = ()

    @classmethod
    def for_record(cls, record: FusionRecord, *, attributes: Iterable[str] = ()) -> ReportAccount:
        current = record.attributes
        return cls(
            account_name=record.name or record.display_name or "Unknown",
            account_source=record.source_name,
            account_id=record.managed_account_id or record.native_key,
            account_email=record.email,
            account_attributes={name: current[name] for name in attributes if name in current},
            matches=tuple(_report_match(match) for match in record.matches),
        )


def _report_match(match: FusionMatch) -> ReportMatch:
    return ReportMatch(
        identity_id=match.identity_id,
        identity_name=match.identity_name,
        scores=tuple(
            ReportScore(
                attribute=score.attribute,
                score=round(score.score, 2),
                is_match=score.is_match,
                algorithm=score.algorithm,
                fusion_score=score.fusion_score,
                comment=score.comment,
            )
            for score in match.scores
        ),
    )


@dataclass(slots=True, frozen=True, kw_only=True)
class FusionReport:
    accounts: tuple[ReportAccount, ...]
    total_accounts: int
    potential_duplicates: int
    report_date: datetime = field(default_factory=lambda: datetime.now(UTC))


def build_report(
    duplicates: Iterable[ReportAccount],
    non_matches: Iterable[ReportAccount] = (),
    *,
    total_accounts: int,
) -> FusionReport:
    """Potential duplicates first, then non-matches, each sorted by account name."""

    matched = sorted(duplicates, key=lambda account: account.account_name.casefold())
    unmatched = sorted(non_matches, key=lambda account: account.account_name.casefold())
    return FusionReport(
        accounts=(*matched, *unmatched),
        total_accounts=total_accounts,
        potential_duplicates=len(matched),
    )
