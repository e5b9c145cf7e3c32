"""The fusion record aggregate: one deduplicated person per record.

A record is created through exactly one factory (``from_prior_run``,
``from_identity``, ``from_managed_account``, ``from_decision``) and then enriched
by layering operations in a fixed order:

1. identity layer (directory display fields, directory-linked account ids)
2. decision layer (reviewer choice, when one applies)
3. managed-account layer (claims entries out of the shared work pool)

Everything else mutates the record through the small set/flag API below, which
optionally appends a dated history entry. Deferred work (directory correlation
and review creation) is tracked as task handles owned by the record and drained
by ``resolve_pending_operations`` before output.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from types import MappingProxyType
from typing import TYPE_CHECKING, Final

from fusionid.domain.attributes.mapping import attr_concat, attr_split
from fusionid.domain.errors import NativeKeyConflictError

from .enums import RecordAction, RecordStatus, RecordVariant

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable, Mapping

    from .inputs import (
        Attributes,
        DirectoryIdentity,
        PriorFusionAccount,
        ReviewDecision,
        SourceAccount,
    )
    from .matching import FusionMatch
    from .pool import WorkPool

log = logging.getLogger(__name__)

IDENTITIES_SOURCE: Final[str] = "Identities"
DEFAULT_MAX_HISTORY: Final[int] = 10


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True, frozen=True, kw_only=True)
class RecordSettings:
    """Configuration every record needs, injected at construction."""

    source_names: tuple[str, ...] = ()
    refresh_threshold_seconds: float = 0.0
    max_history: int = DEFAULT_MAX_HISTORY
    clock: Callable[[], datetime] = _utcnow

    def __post_init__(self) -> None:
        if self.max_history < 1:
            raise ValueError("max_history must be at least 1")


@dataclass(slots=True, kw_only=True)
class AttributeBag:
    """Four attribute layers plus the flat list of contributing account attributes."""

    previous: Attributes = field(default_factory=dict["str", "object"])
    current: Attributes = field(default_factory=dict["str", "object"])
    identity: Attributes = field(default_factory=dict["str", "object"])
    by_source: dict[str, list[Attributes]] = field(
        default_factory=dict["str", "list[Attributes]"]
    )
    accounts: list[Attributes] = field(default_factory=list["Attributes"])


def _collection(attributes: Mapping[str, object], key: str) -> set[str]:
    value = attributes.get(key)
    if value is None or value == "":
        return set()
    if isinstance(value, str):
        return set(attr_split(value))
    if isinstance(value, list | tuple | set | frozenset):
        return {str(item) for item in value if item is not None and item != ""}
    return {str(value)}


@dataclass(eq=False, kw_only=True)
class FusionRecord:
    """One deduplicated person, layered from directory, source and review data."""

    variant: RecordVariant
    settings: RecordSettings = field(default_factory=RecordSettings, repr=False)

    name: str | None = None
    display_name: str | None = None
    email: str | None = None
    source_name: str | None = None
    managed_account_id: str | None = None
    modified: datetime | None = None

    _native_key: str | None = field(default=None, init=False)
    _key: str | None = field(default=None, init=False)
    _identity_key: str | None = field(default=None, init=False)
    _disabled: bool = field(default=False, init=False)
    _uncorrelated: bool = field(default=False, init=False)
    _needs_refresh: bool = field(default=False, init=False)
    _needs_reset: bool = field(default=False, init=False)

    _bag: AttributeBag = field(default_factory=AttributeBag, init=False, repr=False)
    _linked_account_ids: set[str] = field(default_factory=set[str], init=False)
    _unlinked_account_ids: set[str] = field(default_factory=set[str], init=False)
    _previous_account_ids: set[str] = field(default_factory=set[str], init=False, repr=False)
    _claimed_account_ids: set[str] = field(default_factory=set[str], init=False, repr=False)
    _statuses: set[str] = field(default_factory=set[str], init=False)
    _actions: set[str] = field(default_factory=set[str], init=False)
    _reviews: set[str] = field(default_factory=set[str], init=False)
    _pending_review_refs: set[str] = field(default_factory=set[str], init=False, repr=False)
    _sources: set[str] = field(default_factory=set[str], init=False)
    _matches: list[FusionMatch] = field(default_factory=list["FusionMatch"], init=False, repr=False)
    _history: deque[str] = field(init=False, repr=False)
    _review_tasks: list[asyncio.Future[str | None]] = field(
        default_factory=list["asyncio.Future[str | None]"], init=False, repr=False
    )
    _correlation_tasks: list[asyncio.Future[object]] = field(
        default_factory=list["asyncio.Future[object]"], init=False, repr=False
    )

    def __post_init__(self) -> None:
        self._history = deque(maxlen=self.settings.max_history)

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @classmethod
    def from_prior_run(
        cls,
        account: PriorFusionAccount,
        *,
        settings: RecordSettings,
    ) -> FusionRecord:
        """Rebuild a record from the output persisted by the previous run."""

        attributes = dict(account.attributes)
        record = cls(
            variant=RecordVariant.FUSION,
            settings=settings,
            name=account.name,
            display_name=account.name,
            source_name=account.source_name,
            modified=account.modified,
        )
        record._native_key = account.native_identity
        record._key = account.native_identity
        if not account.uncorrelated:
            record._identity_key = account.identity_id or None
        record._disabled = account.disabled
        record._uncorrelated = account.uncorrelated
        record._bag.current = dict(attributes)
        record._bag.previous = dict(attributes)

        record._unlinked_account_ids = _collection(attributes, "accounts")
        record._reviews = _collection(attributes, "reviews")
        record._statuses = _collection(attributes, "statuses")
        record._actions = _collection(attributes, "actions")
        record._previous_account_ids = set(record._unlinked_account_ids)
        if RecordStatus.BASELINE in record._statuses:
            record._sources.add(IDENTITIES_SOURCE)

        history = attributes.get("history")
        if isinstance(history, list | tuple) and history:
            record.import_history(str(entry) for entry in history)
        return record

    @classmethod
    def from_identity(
        cls,
        identity: DirectoryIdentity,
        *,
        settings: RecordSettings,
    ) -> FusionRecord:
        """Seed a baseline record from a directory entry."""

        record = cls(
            variant=RecordVariant.IDENTITY,
            settings=settings,
            name=identity.display_name,
            source_name=IDENTITIES_SOURCE,
        )
        record._native_key = identity.id
        record._identity_key = identity.id
        record._disabled = identity.disabled
        record._needs_refresh = True
        record._sources.add(IDENTITIES_SOURCE)
        record._bag.current = dict(identity.attributes)
        record._mark_baseline()
        return record

    @classmethod
    def from_managed_account(
        cls,
        account: SourceAccount,
        *,
        settings: RecordSettings,
    ) -> FusionRecord:
        """Seed a record from one source account nobody has claimed."""

        attributes = dict(account.attributes)
        record = cls(
            variant=RecordVariant.MANAGED,
            settings=settings,
            name=account.name,
            source_name=account.source_name,
            managed_account_id=account.id,
            modified=account.modified,
        )
        record._native_key = account.id
        record._disabled = account.disabled
        record._needs_refresh = True
        record._needs_reset = True
        record._bag.current = attributes
        record._statuses = _collection(attributes, "statuses")
        record._actions = _collection(attributes, "actions")
        record._reviews = _collection(attributes, "reviews")
        raw_sources = attributes.get("sources")
        record._sources = set(attr_split(raw_sources)) if isinstance(raw_sources, str) else set()
        record._sources.discard("")
        record._sources.add(account.source_name)
        record._bag.by_source[account.source_name] = [dict(attributes)]
        record._bag.accounts.append(dict(attributes))
        record._mark_uncorrelated()
        record.set_unlinked_account(account.id)
        return record

    @classmethod
    def from_decision(
        cls,
        decision: ReviewDecision,
        *,
        settings: RecordSettings,
    ) -> FusionRecord:
        """Seed a record from a reviewer's resolution; unresolved until layered."""

        record = cls(
            variant=RecordVariant.DECISION,
            settings=settings,
            name=decision.account.name,
            source_name=decision.account.source_name,
            managed_account_id=decision.account.id,
        )
        record._native_key = decision.account.id
        record._needs_refresh = True
        record._mark_uncorrelated()
        record.set_unlinked_account(decision.account.id)
        return record

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def native_key(self) -> str | None:
        return self._native_key

    @property
    def key(self) -> str | None:
        return self._key

    @property
    def identity_key(self) -> str | None:
        return self._identity_key

    @property
    def disabled(self) -> bool:
        return self._disabled

    @property
    def is_linked(self) -> bool:
        return not self._uncorrelated

    @property
    def needs_refresh(self) -> bool:
        return self._needs_refresh

    @property
    def needs_reset(self) -> bool:
        return self._needs_reset

    @property
    def is_match(self) -> bool:
        return bool(self._matches)

    @property
    def is_orphan(self) -> bool:
        return RecordStatus.ORPHAN in self._statuses

    @property
    def attributes(self) -> Mapping[str, object]:
        return MappingProxyType(self._bag.current)

    @property
    def bag(self) -> AttributeBag:
        return self._bag

    @property
    def linked_account_ids(self) -> frozenset[str]:
        return frozenset(self._linked_account_ids)

    @property
    def unlinked_account_ids(self) -> frozenset[str]:
        return frozenset(self._unlinked_account_ids)

    @property
    def previous_account_ids(self) -> frozenset[str]:
        return frozenset(self._previous_account_ids)

    @property
    def statuses(self) -> frozenset[str]:
        return frozenset(self._statuses)

    @property
    def actions(self) -> frozenset[str]:
        return frozenset(self._actions)

    @property
    def reviews(self) -> frozenset[str]:
        return frozenset(self._reviews)

    @property
    def pending_review_refs(self) -> frozenset[str]:
        return frozenset(self._pending_review_refs)

    @property
    def sources(self) -> frozenset[str]:
        return frozenset(self._sources)

    @property
    def matches(self) -> tuple[FusionMatch, ...]:
        return tuple(self._matches)

    @property
    def history(self) -> tuple[str, ...]:
        return tuple(self._history)

    def has_status(self, status: str) -> bool:
        return status in self._statuses

    def __str__(self) -> str:
        return f"{self.name} [{self.source_name}]"

    # ------------------------------------------------------------------
    # Keys and flags
    # ------------------------------------------------------------------

    def assign_key(self, key: str) -> None:
        """Fix the output key; it may be set once and never changed afterwards."""

        if self._key is not None and self._key != key:
            raise NativeKeyConflictError(current=self._key, proposed=key)
        self._key = key
        self._native_key = key

    def set_needs_refresh(self, refresh: bool) -> None:
        self._needs_refresh = refresh

    def set_needs_reset(self, reset: bool) -> None:
        self._needs_reset = reset

    def enable(self) -> None:
        self._disabled = False

    def disable(self) -> None:
        self._disabled = True

    # ------------------------------------------------------------------
    # Attribute layer access
    # ------------------------------------------------------------------

    def set_attribute(self, name: str, value: object) -> None:
        self._bag.current[name] = value

    def remove_attribute(self, name: str) -> None:
        self._bag.current.pop(name, None)

    def replace_attributes(self, attributes: Mapping[str, object]) -> None:
        self._bag.current = dict(attributes)

    # ------------------------------------------------------------------
    # Set mutations
    # ------------------------------------------------------------------

    def _add_to(self, target: set[str], item: str, message: str | None) -> None:
        target.add(item)
        if message:
            self._append_history(message)

    def _remove_from(self, target: set[str], item: str, message: str | None) -> bool:
        if item not in target:
            return False
        target.discard(item)
        if message:
            self._append_history(message)
        return True

    def add_linked_account_id(self, account_id: str, message: str | None = None) -> None:
        self._add_to(self._linked_account_ids, account_id, message)

    def remove_linked_account_id(self, account_id: str, message: str | None = None) -> bool:
        return self._remove_from(self._linked_account_ids, account_id, message)

    def add_unlinked_account_id(self, account_id: str, message: str | None = None) -> None:
        self._add_to(self._unlinked_account_ids, account_id, message)

    def remove_unlinked_account_id(self, account_id: str, message: str | None = None) -> bool:
        return self._remove_from(self._unlinked_account_ids, account_id, message)

    def add_status(self, status: str, message: str | None = None) -> None:
        self._add_to(self._statuses, status, message)

    def remove_status(self, status: str, message: str | None = None) -> bool:
        return self._remove_from(self._statuses, status, message)

    def add_action(self, action: str, message: str | None = None) -> None:
        self._add_to(self._actions, action, message)

    def remove_action(self, action: str, message: str | None = None) -> bool:
        return self._remove_from(self._actions, action, message)

    def add_source(self, source: str, message: str | None = None) -> None:
        self._add_to(self._sources, source, message)

    def remove_source(self, source: str, message: str | None = None) -> bool:
        return self._remove_from(self._sources, source, message)

    def add_review(self, review: str, message: str | None = None) -> None:
        self._add_to(self._reviews, review, message)

    def remove_review(self, review: str, message: str | None = None) -> bool:
        removed = self._remove_from(self._reviews, review, message)
        if not self._reviews:
            self._statuses.discard(RecordStatus.ACTIVE_REVIEWS)
        return removed

    def add_fusion_review(self, reference: str) -> None:
        self._reviews.add(reference)
        self._statuses.add(RecordStatus.ACTIVE_REVIEWS)

    def clear_fusion_reviews(self) -> None:
        self._reviews.clear()
        self._statuses.discard(RecordStatus.ACTIVE_REVIEWS)

    def set_source_reviewer(self, source: str) -> None:
        self._actions.add(RecordAction.reviewer_for(source))
        self._statuses.add(RecordStatus.REVIEWER)

    def reviewer_sources(self) -> list[str]:
        prefix = f"{RecordAction.REVIEWER}:"
        sources = (action[len(prefix) :] for action in self._actions if action.startswith(prefix))
        return sorted(sources)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def _append_history(self, message: str) -> None:
        today = self.settings.clock().date().isoformat()
        self._history.append(f"[{today}] {message}")

    def add_history(self, message: str) -> None:
        self._append_history(message)

    def import_history(self, entries: Iterable[str]) -> None:
        self._history = deque(entries, maxlen=self.settings.max_history)

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def add_match(self, match: FusionMatch) -> None:
        self._matches.append(match)

    def release_candidate_references(self) -> None:
        for match in self._matches:
            match.release_identity()

    # ------------------------------------------------------------------
    # Deferred work
    # ------------------------------------------------------------------

    def track_review(self, task: Awaitable[str | None]) -> None:
        self._review_tasks.append(asyncio.ensure_future(task))

    def track_correlation(self, task: Awaitable[object]) -> None:
        self._correlation_tasks.append(asyncio.ensure_future(task))

    def add_pending_review_ref(self, reference: str) -> None:
        if reference:
            self._pending_review_refs.add(reference)

    @property
    def has_pending_operations(self) -> bool:
        return bool(self._review_tasks or self._correlation_tasks or self._pending_review_refs)

    async def resolve_pending_operations(self, *, await_correlations: bool = True) -> None:
        """Drain deferred work tracked on this record.

        Review-creation tasks are awaited first and their references collected;
        correlation tasks are awaited only when ``await_correlations`` is true
        (otherwise they keep running in the background). Collected references
        are finally promoted into the active reviews.
        """

        if self._review_tasks:
            tasks, self._review_tasks = self._review_tasks, []
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, BaseException):
                    log.warning("Review creation failed for %s: %s", self, result)
                elif result:
                    self.add_pending_review_ref(result)

        if await_correlations and self._correlation_tasks:
            tasks, self._correlation_tasks = self._correlation_tasks, []
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, BaseException):
                    log.warning("Directory correlation failed for %s: %s", self, result)

        for reference in sorted(self._pending_review_refs):
            self.add_fusion_review(reference)
        self._pending_review_refs.clear()

    # ------------------------------------------------------------------
    # Linking
    # ------------------------------------------------------------------

    def _mark_uncorrelated(self) -> None:
        self._uncorrelated = True
        self._statuses.add(RecordStatus.UNCORRELATED)
        self._actions.discard(RecordAction.CORRELATED)

    def set_unlinked_account(self, account_id: str | None) -> None:
        """Own ``account_id`` without a directory link yet."""

        if not account_id:
            return
        self.add_linked_account_id(account_id)
        self.add_unlinked_account_id(account_id)
        self._mark_uncorrelated()

    def set_linked_account(self, account_id: str) -> None:
        """Record that ``account_id`` is attached to this record's identity."""

        self.add_linked_account_id(account_id)
        self.remove_unlinked_account_id(account_id)

    def update_link_status(self) -> None:
        if not self._unlinked_account_ids:
            self._statuses.discard(RecordStatus.UNCORRELATED)
            self._actions.add(RecordAction.CORRELATED)
            self._uncorrelated = False
        else:
            self._mark_uncorrelated()

    # ------------------------------------------------------------------
    # Status markers
    # ------------------------------------------------------------------

    def _mark_baseline(self) -> None:
        self._statuses.add(RecordStatus.BASELINE)
        self._append_history(f"Set {self} as baseline")

    def set_unmatched(self) -> None:
        self._statuses.add(RecordStatus.UNMATCHED)
        self._append_history(f"Set {self} as unmatched")

    # ------------------------------------------------------------------
    # Layers
    # ------------------------------------------------------------------

    def add_identity_layer(self, identity: DirectoryIdentity) -> None:
        """Copy directory display fields and link directory-listed accounts."""

        self.email = identity.email
        self.name = identity.name or ""
        self.display_name = identity.display_name
        self._bag.identity = dict(identity.attributes)
        self._identity_key = identity.id

        configured = set(self.settings.source_names)
        for linked in identity.accounts:
            if linked.source_name in configured:
                self.set_linked_account(linked.id)

    def add_decision_layer(self, decision: ReviewDecision) -> None:
        """Apply a reviewer's choice and log who made it."""

        account = decision.account
        self.set_unlinked_account(account.id)
        subject = f"{account.name} [{account.source_name}]"
        submitter = decision.submitter.label
        if decision.new_identity:
            self._statuses.add(RecordStatus.MANUAL)
            self._append_history(f"Set {subject} as new account by {submitter}")
        else:
            self._statuses.add(RecordStatus.AUTHORIZED)
            self._append_history(f"Set {subject} as authorized by {submitter}")

    def add_managed_account_layer(self, pool: WorkPool) -> list[SourceAccount]:
        """Claim this record's entries out of ``pool`` and fold them in.

        Entries are matched by directory identity and by the ids this record
        already knows about (previously claimed or still missing). Previously
        known ids that did not turn up in this run are dropped; the orphan
        marker is recomputed from what remains.
        """

        wanted = [*sorted(self._unlinked_account_ids), *sorted(self._previous_account_ids)]
        claimed = pool.claim_for(identity_id=self._identity_key, account_ids=wanted)
        for account in claimed:
            self._fold_managed_account(account)
            self._claimed_account_ids.add(account.id)

        if self._previous_account_ids:
            for account_id in self._previous_account_ids - self._claimed_account_ids:
                self._unlinked_account_ids.discard(account_id)
                self._linked_account_ids.discard(account_id)
        self._previous_account_ids = self._linked_account_ids | self._unlinked_account_ids

        if not self._linked_account_ids and RecordStatus.BASELINE not in self._statuses:
            self._statuses.add(RecordStatus.ORPHAN)
            self._needs_refresh = False
        else:
            self._statuses.discard(RecordStatus.ORPHAN)
        return claimed

    def attach_account(self, account: SourceAccount) -> None:
        """Fold in an account claimed on this record's behalf by the controller."""

        self._fold_managed_account(account)
        self._claimed_account_ids.add(account.id)
        self._previous_account_ids.add(account.id)
        self._statuses.discard(RecordStatus.ORPHAN)

    def link_own_account(self) -> None:
        """Treat the record's originating account as attached to the record itself."""

        if self.managed_account_id:
            self.set_linked_account(self.managed_account_id)
        self.update_link_status()

    def _fold_managed_account(self, account: SourceAccount) -> None:
        known = self._linked_account_ids | self._previous_account_ids
        if account.id not in known:
            self._needs_refresh = True

        if account.uncorrelated:
            self.set_unlinked_account(account.id)
        else:
            self.set_linked_account(account.id)

        if not self._needs_refresh and account.modified and self.modified:
            threshold = timedelta(seconds=self.settings.refresh_threshold_seconds)
            if account.modified > self.modified + threshold:
                self._needs_refresh = True

        attributes = dict(account.attributes)
        self._bag.by_source.setdefault(account.source_name, []).append(attributes)
        self._bag.accounts.append(attributes)
        self._sources.discard(IDENTITIES_SOURCE)
        self._sources.add(account.source_name)

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def sync_collections(self) -> None:
        """Write the set-valued state into the current attribute layer."""

        current = self._bag.current
        current["reviews"] = sorted(self._reviews)
        current["accounts"] = sorted(self._linked_account_ids)
        current["statuses"] = sorted(self._statuses)
        current["actions"] = sorted(self._actions)
        current["missing-accounts"] = sorted(self._unlinked_account_ids)
        current["sources"] = attr_concat(self._sources)
        current["history"] = list(self._history)
