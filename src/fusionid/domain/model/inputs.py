"""Raw, already-materialized records handed to the engine at the start of a run.

These are plain value objects. Adapters translate wire payloads into them; the
fusion record and controller only ever read them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeAlias

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

Attributes: TypeAlias = dict[str, object]


@dataclass(slots=True, frozen=True, kw_only=True)
class SourceAccount:
    """Account observed on a managed source during this run."""

    id: str
    source_name: str
    name: str | None = None
    identity_id: str | None = None
    uncorrelated: bool = False
    disabled: bool = False
    modified: datetime | None = None
    attributes: Attributes = field(default_factory=dict["str", "object"])


@dataclass(slots=True, frozen=True, kw_only=True)
class LinkedAccount:
    """Account reference listed on a directory identity."""

    id: str
    source_name: str | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class DirectoryIdentity:
    """Entry of the authoritative identity directory."""

    id: str
    name: str | None = None
    disabled: bool = False
    attributes: Attributes = field(default_factory=dict["str", "object"])
    accounts: tuple[LinkedAccount, ...] = ()

    @property
    def display_name(self) -> str | None:
        value = self.attributes.get("displayName")
        return value if isinstance(value, str) else self.name

    @property
    def email(self) -> str | None:
        value = self.attributes.get("email")
        return value if isinstance(value, str) else None


@dataclass(slots=True, frozen=True, kw_only=True)
class PriorFusionAccount:
    """Fusion record output persisted by the previous run."""

    native_identity: str
    name: str | None = None
    source_name: str | None = None
    identity_id: str | None = None
    uncorrelated: bool = False
    disabled: bool = False
    modified: datetime | None = None
    attributes: Attributes = field(default_factory=dict["str", "object"])


@dataclass(slots=True, frozen=True, kw_only=True)
class Submitter:
    id: str
    name: str | None = None
    email: str | None = None

    @property
    def label(self) -> str:
        return self.name or self.email or self.id


@dataclass(slots=True, frozen=True, kw_only=True)
class DecisionAccount:
    id: str
    source_name: str
    name: str | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class ReviewDecision:
    """A reviewer's (or the system's) resolution of an ambiguous match."""

    submitter: Submitter
    account: DecisionAccount
    new_identity: bool
    identity_id: str | None = None
    comments: str | None = None
    finished: bool = True


@dataclass(slots=True, frozen=True, kw_only=True)
class PendingReviewState:
    """Reviews still open on the platform when the run started."""

    candidate_identity_ids: frozenset[str] = frozenset()
    review_refs_by_reviewer: Mapping[str, tuple[str, ...]] = field(
        default_factory=dict["str", "tuple[str, ...]"]
    )


@dataclass(slots=True, kw_only=True)
class RunSnapshot:
    """Everything the record source supplies for one run."""

    fusion_accounts: list[PriorFusionAccount] = field(default_factory=list["PriorFusionAccount"])
    identities: list[DirectoryIdentity] = field(default_factory=list["DirectoryIdentity"])
    managed_accounts: list[SourceAccount] = field(default_factory=list["SourceAccount"])
    decisions: list[ReviewDecision] = field(default_factory=list["ReviewDecision"])
    pending_reviews: PendingReviewState = field(default_factory=PendingReviewState)
