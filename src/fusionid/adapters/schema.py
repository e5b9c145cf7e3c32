"""Pydantic models describing the JSON run snapshot and engine configuration files.

Field names accept both snake_case and the camelCase spelling used by the
identity platform exports.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from fusionid.domain.model.enums import AttributeKind, CaseStyle, MergeStrategy


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class FusionBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, alias_generator=to_camel)


# ----------------------------------------------------------------------
# Run snapshot
# ----------------------------------------------------------------------


class SourceAccountPayload(FusionBaseModel):
    id: str
    source_name: str
    name: str | None = None
    identity_id: str | None = None
    uncorrelated: bool = False
    disabled: bool = False
    modified: datetime | None = None
    attributes: dict[str, object] = Field(default_factory=dict)

    _normalize_identity = field_validator("identity_id", mode="before")(_blank_to_none)


class LinkedAccountPayload(FusionBaseModel):
    id: str
    source_name: str | None = None


class IdentityPayload(FusionBaseModel):
    id: str
    name: str | None = None
    disabled: bool = False
    attributes: dict[str, object] = Field(default_factory=dict)
    accounts: list[LinkedAccountPayload] = Field(default_factory=list)


class FusionAccountPayload(FusionBaseModel):
    native_identity: str
    name: str | None = None
    source_name: str | None = None
    identity_id: str | None = None
    uncorrelated: bool = False
    disabled: bool = False
    modified: datetime | None = None
    attributes: dict[str, object] = Field(default_factory=dict)

    _normalize_identity = field_validator("identity_id", mode="before")(_blank_to_none)


class SubmitterPayload(FusionBaseModel):
    id: str
    name: str | None = None
    email: str | None = None


class DecisionAccountPayload(FusionBaseModel):
    id: str
    source_name: str
    name: str | None = None


class DecisionPayload(FusionBaseModel):
    submitter: SubmitterPayload
    account: DecisionAccountPayload
    new_identity: bool
    identity_id: str | None = None
    comments: str | None = None
    finished: bool = True

    _normalize_identity = field_validator("identity_id", mode="before")(_blank_to_none)


class PendingReviewsPayload(FusionBaseModel):
    candidate_identity_ids: list[str] = Field(default_factory=list)
    review_refs_by_reviewer: dict[str, list[str]] = Field(default_factory=dict)


class SnapshotPayload(FusionBaseModel):
    fusion_accounts: list[FusionAccountPayload] = Field(default_factory=list)
    identities: list[IdentityPayload] = Field(default_factory=list)
    managed_accounts: list[SourceAccountPayload] = Field(default_factory=list)
    decisions: list[DecisionPayload] = Field(default_factory=list)
    pending_reviews: PendingReviewsPayload = Field(default_factory=PendingReviewsPayload)


# ----------------------------------------------------------------------
# Engine configuration
# ----------------------------------------------------------------------


class SourcePayload(FusionBaseModel):
    name: str
    reviewers: list[str] = Field(default_factory=list)


class AttributeDefinitionPayload(FusionBaseModel):
    name: str
    expression: str | None = None
    kind: AttributeKind = AttributeKind.NORMAL
    case: CaseStyle = CaseStyle.SAME
    spaces: bool = False
    normalize: bool = False
    max_length: int | None = Field(default=None, ge=1)
    counter_start: int = 1
    digits: int = Field(default=1, ge=1)
    refresh: bool = False

    _normalize_expression = field_validator("expression", mode="before")(_blank_to_none)


class AttributeMapPayload(FusionBaseModel):
    new_attribute: str
    existing_attributes: list[str] = Field(default_factory=list)
    merge: MergeStrategy | None = None
    source: str | None = None


class MatchingRulePayload(FusionBaseModel):
    attribute: str
    algorithm: str = "ratio"
    fusion_score: float = Field(default=80.0, ge=0, le=100)
    mandatory: bool = False


class FusionConfigPayload(FusionBaseModel):
    sources: list[SourcePayload] = Field(default_factory=list)
    attribute_definitions: list[AttributeDefinitionPayload] = Field(default_factory=list)
    attribute_maps: list[AttributeMapPayload] = Field(default_factory=list)
    attribute_merge: MergeStrategy = MergeStrategy.FIRST
    schema_attributes: list[str] = Field(default_factory=list)

    identity_attribute: str = "id"
    display_attribute: str = "name"
    max_history_messages: int = Field(default=10, ge=1)
    refresh_threshold_seconds: float = Field(default=0.0, ge=0)
    managed_accounts_batch_size: int = Field(default=50, ge=1)
    max_attempts: int = Field(default=100, ge=1)

    merge_identical: bool = False
    perfect_score: float = 100.0
    excluded_score_algorithms: list[str] = Field(default_factory=lambda: ["average"])
    matching: list[MatchingRulePayload] = Field(default_factory=list)
    use_average_score: bool = False
    average_score_threshold: float = 0.0

    correlate_on_aggregation: bool = False
    delete_empty: bool = False
    force_attribute_refresh: bool = False
    reset: bool = False
    skip_accounts_with_missing_id: bool = False

    global_reviewer_identity: str | None = None
    report_attributes: list[str] = Field(default_factory=list)
    notification_timeout_seconds: float = Field(default=5.0, gt=0)
    fusion_state: dict[str, int] = Field(default_factory=dict)

    _normalize_reviewer = field_validator("global_reviewer_identity", mode="before")(
        _blank_to_none
    )
