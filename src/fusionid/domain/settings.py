"""Engine configuration handed to the controller and its collaborators.

The values are plain frozen dataclasses; loading and validation live in
``fusionid.config.fusion`` so that nothing in the domain reads files or the
environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from fusionid.domain.attributes.definitions import DEFAULT_MAX_ATTEMPTS, MappingConfig
from fusionid.domain.model.fusion_record import DEFAULT_MAX_HISTORY, RecordSettings

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from datetime import datetime

    from fusionid.domain.attributes.definitions import AttributeDefinition

DEFAULT_BATCH_SIZE = 50
DEFAULT_PERFECT_SCORE = 100.0
DEFAULT_EXCLUDED_ALGORITHMS: tuple[str, ...] = ("average",)


@dataclass(slots=True, frozen=True, kw_only=True)
class SourceSettings:
    """One managed source taking part in the fusion.

    ``reviewers`` lists directory identity ids asked to resolve ambiguous matches
    for accounts of this source, on top of reviewers carried over from the
    previous run.
    """

    name: str
    reviewers: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True, kw_only=True)
class MatchingRule:
    """Compare one attribute of a drained account against known identities."""

    attribute: str
    algorithm: str = "ratio"
    fusion_score: float = 80.0
    mandatory: bool = False


@dataclass(slots=True, frozen=True, kw_only=True)
class FusionConfig:
    sources: tuple[SourceSettings, ...] = ()
    attribute_definitions: tuple[AttributeDefinition, ...] = ()
    mapping: MappingConfig = field(default_factory=MappingConfig)
    identity_attribute: str = "id"
    display_attribute: str = "name"

    max_history_messages: int = DEFAULT_MAX_HISTORY
    refresh_threshold_seconds: float = 0.0
    managed_accounts_batch_size: int = DEFAULT_BATCH_SIZE
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    merge_identical: bool = False
    perfect_score: float = DEFAULT_PERFECT_SCORE
    excluded_score_algorithms: tuple[str, ...] = DEFAULT_EXCLUDED_ALGORITHMS
    matching: tuple[MatchingRule, ...] = ()
    use_average_score: bool = False
    average_score_threshold: float = 0.0

    correlate_on_aggregation: bool = False
    delete_empty: bool = False
    force_attribute_refresh: bool = False
    reset: bool = False
    skip_accounts_with_missing_id: bool = False

    global_reviewer_identity: str | None = None
    report_attributes: tuple[str, ...] = ()
    notification_timeout_seconds: float = 5.0
    fusion_state: Mapping[str, int] = field(default_factory=dict["str", "int"])

    def __post_init__(self) -> None:
        if self.managed_accounts_batch_size < 1:
            raise ValueError("managed_accounts_batch_size must be at least 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        names = [source.name for source in self.sources]
        if len(set(names)) != len(names):
            raise ValueError("Source names must be unique")

    @property
    def source_names(self) -> tuple[str, ...]:
        return tuple(source.name for source in self.sources)

    def source(self, name: str) -> SourceSettings | None:
        for source in self.sources:
            if source.name == name:
                return source
        return None

    def record_settings(self, *, clock: Callable[[], datetime] | None = None) -> RecordSettings:
        if clock is None:
            return RecordSettings(
                source_names=self.source_names,
                refresh_threshold_seconds=self.refresh_threshold_seconds,
                max_history=self.max_history_messages,
            )
        return RecordSettings(
            source_names=self.source_names,
            refresh_threshold_seconds=self.refresh_threshold_seconds,
            max_history=self.max_history_messages,
            clock=clock,
        )
