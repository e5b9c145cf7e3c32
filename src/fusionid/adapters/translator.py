"""Translate validated payloads into domain inputs and engine configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fusionid.domain.attributes.definitions import AttributeDefinition, AttributeMap, MappingConfig
from fusionid.domain.model.inputs import (
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
from fusionid.domain.settings import FusionConfig, MatchingRule, SourceSettings

if TYPE_CHECKING:
    from .schema import (
        DecisionPayload,
        FusionAccountPayload,
        FusionConfigPayload,
        IdentityPayload,
        PendingReviewsPayload,
        SnapshotPayload,
        SourceAccountPayload,
    )


def to_source_account(payload: SourceAccountPayload) -> SourceAccount:
    return SourceAccount(
        id=payload.id,
        source_name=payload.source_name,
        name=payload.name,
        identity_id=payload.identity_id,
        uncorrelated=payload.uncorrelated,
        disabled=payload.disabled,
        modified=payload.modified,
        attributes=dict(payload.attributes),
    )


def to_identity(payload: IdentityPayload) -> DirectoryIdentity:
    return DirectoryIdentity(
        id=payload.id,
        name=payload.name,
        disabled=payload.disabled,
        attributes=dict(payload.attributes),
        accounts=tuple(
            LinkedAccount(id=account.id, source_name=account.source_name)
            for account in payload.accounts
        ),
    )


def to_fusion_account(payload: FusionAccountPayload) -> PriorFusionAccount:
    return PriorFusionAccount(
        native_identity=payload.native_identity,
        name=payload.name,
        source_name=payload.source_name,
        identity_id=payload.identity_id,
        uncorrelated=payload.uncorrelated,
        disabled=payload.disabled,
        modified=payload.modified,
        attributes=dict(payload.attributes),
    )


def to_decision(payload: DecisionPayload) -> ReviewDecision:
    return ReviewDecision(
        submitter=Submitter(
            id=payload.submitter.id,
            name=payload.submitter.name,
            email=payload.submitter.email,
        ),
        account=DecisionAccount(
            id=payload.account.id,
            source_name=payload.account.source_name,
            name=payload.account.name,
        ),
        new_identity=payload.new_identity,
        identity_id=payload.identity_id,
        comments=payload.comments,
        finished=payload.finished,
    )


def to_pending_reviews(payload: PendingReviewsPayload) -> PendingReviewState:
    return PendingReviewState(
        candidate_identity_ids=frozenset(payload.candidate_identity_ids),
        review_refs_by_reviewer={
            reviewer: tuple(refs) for reviewer, refs in payload.review_refs_by_reviewer.items()
        },
    )


def to_snapshot(payload: SnapshotPayload) -> RunSnapshot:
    return RunSnapshot(
        fusion_accounts=[to_fusion_account(account) for account in payload.fusion_accounts],
        identities=[to_identity(identity) for identity in payload.identities],
        managed_accounts=[to_source_account(account) for account in payload.managed_accounts],
        decisions=[to_decision(decision) for decision in payload.decisions],
        pending_reviews=to_pending_reviews(payload.pending_reviews),
    )


def to_fusion_config(payload: FusionConfigPayload) -> FusionConfig:
    """Build the engine configuration; domain validation errors surface as ``ValueError``."""

    sources = tuple(
        SourceSettings(name=source.name, reviewers=tuple(source.reviewers))
        for source in payload.sources
    )
    definitions = tuple(
        AttributeDefinition(
            name=definition.name,
            expression=definition.expression,
            kind=definition.kind,
            case=definition.case,
            spaces=definition.spaces,
            normalize=definition.normalize,
            max_length=definition.max_length,
            counter_start=definition.counter_start,
            digits=definition.digits,
            refresh=definition.refresh,
        )
        for definition in payload.attribute_definitions
    )
    mapping = MappingConfig(
        schema_attributes=tuple(payload.schema_attributes),
        attribute_maps=tuple(
            AttributeMap(
                new_attribute=attribute_map.new_attribute,
                existing_attributes=tuple(attribute_map.existing_attributes),
                merge=attribute_map.merge,
                source=attribute_map.source,
            )
            for attribute_map in payload.attribute_maps
        ),
        default_merge=payload.attribute_merge,
        source_order=tuple(source.name for source in sources),
    )
    return FusionConfig(
        sources=sources,
        attribute_definitions=definitions,
        mapping=mapping,
        identity_attribute=payload.identity_attribute,
        display_attribute=payload.display_attribute,
        max_history_messages=payload.max_history_messages,
        refresh_threshold_seconds=payload.refresh_threshold_seconds,
        managed_accounts_batch_size=payload.managed_accounts_batch_size,
        max_attempts=payload.max_attempts,
        merge_identical=payload.merge_identical,
        perfect_score=payload.perfect_score,
        excluded_score_algorithms=tuple(payload.excluded_score_algorithms),
        matching=tuple(
            MatchingRule(
                attribute=rule.attribute,
                algorithm=rule.algorithm,
                fusion_score=rule.fusion_score,
                mandatory=rule.mandatory,
            )
            for rule in payload.matching
        ),
        use_average_score=payload.use_average_score,
        average_score_threshold=payload.average_score_threshold,
        correlate_on_aggregation=payload.correlate_on_aggregation,
        delete_empty=payload.delete_empty,
        force_attribute_refresh=payload.force_attribute_refresh,
        reset=payload.reset,
        skip_accounts_with_missing_id=payload.skip_accounts_with_missing_id,
        global_reviewer_identity=payload.global_reviewer_identity,
        report_attributes=tuple(payload.report_attributes),
        notification_timeout_seconds=payload.notification_timeout_seconds,
        fusion_state=dict(payload.fusion_state),
    )
