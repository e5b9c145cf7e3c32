"""Public fusion model surface."""

from __future__ import annotations

from fusionid.domain.model.enums import (
    AttributeKind,
    CaseStyle,
    MergeStrategy,
    RecordAction,
    RecordStatus,
    RecordVariant,
    Route,
)
from fusionid.domain.model.fusion_record import (
    IDENTITIES_SOURCE,
    AttributeBag,
    FusionRecord,
    RecordSettings,
)
from fusionid.domain.model.inputs import (
    Attributes,
    DecisionAccount,
    DirectoryIdentity,
    LinkedAccount,
    PendingReviewState,
    PriorFusionAccount,
    ReviewDecision,
    RunSnapshot,
    SourceAccount,
    Submitter,
)
from fusionid.domain.model.matching import FusionMatch, ScoreReport
from fusionid.domain.model.pool import WorkPool

__all__ = [  # noqa: RUF022
    # enums
    "AttributeKind",
    "CaseStyle",
    "MergeStrategy",
    "RecordAction",
    "RecordStatus",
    "RecordVariant",
    "Route",
    # inputs
    "Attributes",
    "DecisionAccount",
    "DirectoryIdentity",
    "LinkedAccount",
    "PendingReviewState",
    "PriorFusionAccount",
    "ReviewDecision",
    "RunSnapshot",
    "SourceAccount",
    "Submitter",
    # records
    "IDENTITIES_SOURCE",
    "AttributeBag",
    "FusionRecord",
    "RecordSettings",
    # matching
    "FusionMatch",
    "ScoreReport",
    # pool
    "WorkPool",
]
