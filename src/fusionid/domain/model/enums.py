"""Enumerations shared by the fusion domain model."""

from __future__ import annotations

from enum import StrEnum


class RecordVariant(StrEnum):
    """Factory path a fusion record was created through."""

    FUSION = "fusion"
    IDENTITY = "identity"
    MANAGED = "managed"
    DECISION = "decision"


class RecordStatus(StrEnum):
    BASELINE = "baseline"
    UNCORRELATED = "uncorrelated"
    ORPHAN = "orphan"
    UNMATCHED = "unmatched"
    MANUAL = "manual"
    AUTHORIZED = "authorized"
    ACTIVE_REVIEWS = "activeReviews"
    CANDIDATE = "candidate"
    REVIEWER = "reviewer"


class RecordAction(StrEnum):
    CORRELATED = "correlated"
    REVIEWER = "reviewer"

    @classmethod
    def reviewer_for(cls, source: str) -> str:
        return f"{cls.REVIEWER}:{source}"


class AttributeKind(StrEnum):
    """Generation kind of an attribute definition."""

    NORMAL = "normal"
    UNIQUE = "unique"
    UUID = "uuid"
    COUNTER = "counter"

    @property
    def is_unique(self) -> bool:
        return self is not AttributeKind.NORMAL


class CaseStyle(StrEnum):
    SAME = "same"
    LOWER = "lower"
    UPPER = "upper"
    CAPITALIZE = "capitalize"


class MergeStrategy(StrEnum):
    """How values from several contributing sources collapse into one attribute."""

    FIRST = "first"
    SOURCE = "source"
    LIST = "list"
    CONCATENATE = "concatenate"


class Route(StrEnum):
    """Outcome of the matching policy for one drained pool entry."""

    AUTO_MERGE = "auto-merge"
    PENDING_REVIEW = "pending-review"
    ADMITTED = "admitted"
