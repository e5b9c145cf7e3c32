"""Work-queue depletion controller.

One run partitions the pool of managed accounts among fusion records in four
strictly ordered phases that share the same ``WorkPool``:

1. decisions: accounts tied to a review are claimed first; open reviews hold
   their account back until the reviewer answers
2. prior fusion records: rebuilt and layered, claiming their accounts
3. directory identities without a record: seeded and layered
4. drain: whatever is left is scored and auto-merged, sent to review or admitted

Within phases 2 to 4 records are processed concurrently in bounded batches.
Claiming is a synchronous pool operation, so no entry is claimed twice.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, TypeAlias, TypeVar

from fusionid.common.batching import gather_batched
from fusionid.domain.attributes.generator import COLLECTION_ATTRIBUTES
from fusionid.domain.attributes.mapping import attr_split
from fusionid.domain.errors import (
    FusionAccountNotFoundError,
    MissingOutputKeyError,
    UnknownSourceError,
    WorkPoolNotLoadedError,
)
from fusionid.domain.model.enums import RecordStatus, Route
from fusionid.domain.model.fusion_record import FusionRecord
from fusionid.domain.model.inputs import PendingReviewState, RunSnapshot
from fusionid.domain.model.pool import WorkPool
from fusionid.domain.ports.persistence import FUSION_STATE_PATH, RESET_FLAG_PATH

from .output import RecordOutput
from .policy import MatchPolicy
from .report import ReportAccount, build_report

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable, Sequence
    from datetime import datetime

    from fusionid.domain.attributes.generator import AttributeGenerator
    from fusionid.domain.model.inputs import (
        DirectoryIdentity,
        PriorFusionAccount,
        ReviewDecision,
        SourceAccount,
    )
    from fusionid.domain.model.matching import FusionMatch
    from fusionid.domain.ports.notification import Notifier
    from fusionid.domain.ports.persistence import StateStore
    from fusionid.domain.ports.records import RecordSource
    from fusionid.domain.ports.reviews import DirectoryCorrelator, ReviewRequester
    from fusionid.domain.ports.scoring import Scorer
    from fusionid.domain.settings import FusionConfig

    from .report import FusionReport

log = logging.getLogger(__name__)

T = TypeVar("T")

if TYPE_CHECKING:
    Assignment: TypeAlias = tuple[ReviewDecision, SourceAccount | None]


class FusionController:
    def __init__(
        self,
        *,
        config: FusionConfig,
        generator: AttributeGenerator,
        scorer: Scorer,
        reviews: ReviewRequester | None = None,
        correlator: DirectoryCorrelator | None = None,
        notifier: Notifier | None = None,
        state_store: StateStore | None = None,
        clock: Callable[[], datetime] | None = None,
        collect_report: bool = False,
    ) -> None:
        self._config = config
        self._generator = generator
        self._scorer = scorer
        self._reviews = reviews
        self._correlator = correlator
        self._notifier = notifier
        self._state_store = state_store
        self._collect_report = collect_report
        self._record_settings = config.record_settings(clock=clock)
        self._policy = MatchPolicy(
            merge_identical=config.merge_identical,
            perfect_score=config.perfect_score,
            excluded_algorithms=config.excluded_score_algorithms,
        )

        self._pool: WorkPool | None = None
        self._identities: dict[str, DirectoryIdentity] = {}
        self._prior_accounts: list[PriorFusionAccount] = []
        self._decisions: list[ReviewDecision] = []
        self._open_decisions: list[ReviewDecision] = []
        self._held_accounts: dict[str, SourceAccount] = {}
        self._assignments: dict[str, list[Assignment]] = {}
        self._candidate_ids: set[str] = set()
        self._review_refs: dict[str, list[str]] = {}

        self._identity_map: dict[str, FusionRecord] = {}
        self._account_map: dict[str, FusionRecord] = {}
        self._new_records: list[FusionRecord] = []
        self._pending_review_records: list[FusionRecord] = []
        self._reviewers_by_source: dict[str, dict[int, FusionRecord]] = {}

        self._potential_duplicates: list[ReportAccount] = []
        self._non_matches: list[ReportAccount] = []
        self._drained_count = 0
        self._notification_tasks: list[asyncio.Future[None]] = []

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def identity_records(self) -> tuple[FusionRecord, ...]:
        return tuple(self._identity_map.values())

    @property
    def account_records(self) -> tuple[FusionRecord, ...]:
        return tuple(self._account_map.values())

    @property
    def records(self) -> tuple[FusionRecord, ...]:
        """Every record that will be emitted, in output order."""

        return (*self._account_map.values(), *self._identity_map.values())

    @property
    def pending_review_records(self) -> tuple[FusionRecord, ...]:
        return tuple(self._pending_review_records)

    @property
    def held_accounts(self) -> tuple[SourceAccount, ...]:
        """Accounts withheld from this run because their review is still open."""

        return tuple(self._held_accounts.values())

    @property
    def pool(self) -> WorkPool:
        if self._pool is None:
            raise WorkPoolNotLoadedError()
        return self._pool

    def get_identity_record(self, identity_id: str) -> FusionRecord | None:
        return self._identity_map.get(identity_id)

    def get_account_record(self, native_key: str) -> FusionRecord | None:
        return self._account_map.get(native_key)

    def reviewers_for(self, source_name: str) -> tuple[FusionRecord, ...]:
        return tuple(self._reviewers_by_source.get(source_name, {}).values())

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def aggregate(self, snapshot: RunSnapshot) -> list[RecordOutput]:
        """Run all phases over ``snapshot`` and return the records to emit."""

        if self._config.reset:
            log.info("Reset flag detected, clearing state and exiting")
            await self.reset_state()
            return []

        await self.prepare_counters()
        self.load(snapshot)

        await self.process_decisions()
        await self.process_fusion_accounts()
        await self.process_identities()
        await self.process_managed_accounts()

        self.reconcile_pending_review_state()
        await self.refresh_new_records()
        log.info(
            "Work queue processing complete - %s unprocessed account(s) remaining", len(self.pool)
        )

        if self._state_store is not None:
            await self._generator.save_state(self._state_store)

        outputs = await self.list_outputs()
        log.info("Emitting %s account(s)", len(outputs))
        await self.flush_notifications()
        return outputs

    async def prepare_counters(self) -> None:
        state = dict(self._config.fusion_state)
        if self._state_store is not None:
            state.update(await self._state_store.load_counters())
        self._generator.counters.restore(state)
        await self._generator.initialize_counters()

    def load(self, snapshot: RunSnapshot) -> None:
        self._pool = WorkPool(snapshot.managed_accounts)
        self._identities = {identity.id: identity for identity in snapshot.identities}
        self._prior_accounts = list(snapshot.fusion_accounts)
        self._decisions = [decision for decision in snapshot.decisions if decision.finished]
        self._open_decisions = [
            decision for decision in snapshot.decisions if not decision.finished
        ]
        self._held_accounts = {}
        pending = snapshot.pending_reviews or PendingReviewState()
        self._candidate_ids = set(pending.candidate_identity_ids)
        self._review_refs = {
            reviewer_id: list(refs) for reviewer_id, refs in pending.review_refs_by_reviewer.items()
        }
        log.info(
            "Loaded %s fusion account(s), %s identities, %s managed account(s), %s decision(s)",
            len(self._prior_accounts),
            len(self._identities),
            len(self._pool),
            len(self._decisions),
        )

    async def _run_batched(
        self,
        items: Sequence[T],
        operation: Callable[[T], Awaitable[FusionRecord | None]],
        label: str,
    ) -> list[FusionRecord]:
        results = await gather_batched(
            items, operation, batch_size=self._config.managed_accounts_batch_size
        )
        records: list[FusionRecord] = []
        for item, result in zip(items, results, strict=True):
            if isinstance(result, BaseException):
                log.error("Failed to process %s %s: %s", label, item, result)
            elif result is not None:
                records.append(result)
        return records

    # ------------------------------------------------------------------
    # Phase 1: decisions
    # ------------------------------------------------------------------

    async def process_decisions(self) -> list[FusionRecord]:
        """Claim accounts tied to reviews and seed records for new identities.

        Accounts whose review is still open are claimed and held back, so the
        drain phase does not score them again and request a second review.
        """

        pool = self.pool
        for decision in self._open_decisions:
            account = pool.claim(decision.account.id)
            if account is not None:
                self._held_accounts[account.id] = account
        if self._held_accounts:
            log.info("Holding %s account(s) with open reviews", len(self._held_accounts))

        log.info("Processing %s review decision(s)", len(self._decisions))
        new_identity: list[tuple[ReviewDecision, SourceAccount | None]] = []
        for decision in self._decisions:
            account = pool.claim(decision.account.id)
            if decision.new_identity or not decision.identity_id:
                new_identity.append((decision, account))
            else:
                self._assignments.setdefault(decision.identity_id, []).append((decision, account))

        records = await self._run_batched(new_identity, self._process_new_identity, "decision")
        self._new_records.extend(records)
        return records

    async def _process_new_identity(self, item: Assignment) -> FusionRecord:
        decision, account = item
        record = FusionRecord.from_decision(decision, settings=self._record_settings)
        record.set_needs_reset(True)
        record.add_decision_layer(decision)
        if account is not None:
            record.attach_account(account)
        record.link_own_account()
        await self._prepare_attributes(record)
        self._set_record(record)
        log.debug("Created record from decision: %s", record)
        return record

    # ------------------------------------------------------------------
    # Phase 2: records from the previous run
    # ------------------------------------------------------------------

    async def process_fusion_accounts(self) -> list[FusionRecord]:
        log.info("Processing %s fusion account(s)", len(self._prior_accounts))
        records = await self._run_batched(
            self._prior_accounts, self._build_fusion_record, "fusion account"
        )
        # Every carried-over unique value is registered before any record generates new ones.
        await self._run_batched(records, self._refresh_record, "fusion account")
        log.info("Fusion accounts processing completed")
        return records

    async def _build_fusion_record(self, account: PriorFusionAccount) -> FusionRecord:
        record = FusionRecord.from_prior_run(account, settings=self._record_settings)
        is_reviewer = False
        for source_name in record.reviewer_sources():
            self._set_reviewer(record, source_name)
            is_reviewer = True
        if is_reviewer:
            self._populate_reviews(record)

        if record.identity_key:
            identity = self._identities.get(record.identity_key)
            if identity is not None:
                record.add_identity_layer(identity)
            self._apply_assignments(record)

        record.add_managed_account_layer(self.pool)
        await self._generator.register_unique(record)
        self._set_record(record)
        return record

    async def _refresh_record(self, record: FusionRecord) -> FusionRecord:
        self._generator.map_attributes(record)
        await self._generator.refresh_all(record)
        self._correlate_unlinked(record)
        log.debug(
            "Completed %s: needs_refresh=%s, sources=%s",
            record,
            record.needs_refresh,
            sorted(record.sources),
        )
        return record

    def _apply_assignments(self, record: FusionRecord) -> None:
        if not record.identity_key:
            return
        for decision, account in self._assignments.pop(record.identity_key, ()):
            record.add_decision_layer(decision)
            if account is not None:
                record.attach_account(account)
            record.set_needs_refresh(True)

    # ------------------------------------------------------------------
    # Phase 3: directory identities
    # ------------------------------------------------------------------

    async def process_identities(self) -> list[FusionRecord]:
        identities = list(self._identities.values())
        log.info("Processing %s identities", len(identities))
        records = await self._run_batched(identities, self._process_identity, "identity")
        self._new_records.extend(records)

        self._assign_configured_reviewers()
        await self._admit_unassigned_decisions()
        log.info("Identities processing completed")
        return records

    async def _process_identity(self, identity: DirectoryIdentity) -> FusionRecord | None:
        if identity.id in self._identity_map:
            return None
        record = FusionRecord.from_identity(identity, settings=self._record_settings)
        record.add_identity_layer(identity)
        self._apply_assignments(record)
        record.add_managed_account_layer(self.pool)
        await self._generator.register_unique(record)

        self._generator.map_attributes(record)
        await self._generator.refresh_non_unique(record)
        if identity.name:
            record.set_attribute(self._config.display_attribute, identity.name)
        self._correlate_unlinked(record)
        self._set_record(record)
        log.debug("Registered identity as fusion record: %s (%s)", identity.name, identity.id)
        return record

    def _assign_configured_reviewers(self) -> None:
        assigned: dict[int, FusionRecord] = {}
        for source in self._config.sources:
            for reviewer_id in source.reviewers:
                reviewer = self._identity_map.get(reviewer_id)
                if reviewer is None:
                    log.warning("Reviewer %s of source %s is unknown", reviewer_id, source.name)
                    continue
                self._set_reviewer(reviewer, source.name)
                assigned[id(reviewer)] = reviewer

        global_id = self._config.global_reviewer_identity
        if global_id:
            reviewer = self._identity_map.get(global_id)
            if reviewer is None:
                log.warning("Global reviewer %s is unknown", global_id)
            else:
                for source_name in self._config.source_names:
                    self._set_reviewer(reviewer, source_name)
                assigned[id(reviewer)] = reviewer

        for reviewer in assigned.values():
            self._populate_reviews(reviewer)

    async def _admit_unassigned_decisions(self) -> None:
        leftovers = [item for items in self._assignments.values() for item in items]
        self._assignments.clear()
        if not leftovers:
            return
        for decision, _account in leftovers:
            log.warning(
                "Identity %s of decision for %s is unknown, keeping the account standalone",
                decision.identity_id,
                decision.account.id,
            )
        records = await self._run_batched(leftovers, self._process_new_identity, "decision")
        self._new_records.extend(records)

    # ------------------------------------------------------------------
    # Phase 4: drain
    # ------------------------------------------------------------------

    async def process_managed_accounts(self) -> None:
        pool = self.pool
        keys = pool.keys()
        self._drained_count = len(keys)
        log.info("Processing %s managed account(s)", len(keys))
        await self._run_batched(keys, self._drain_entry, "managed account")
        log.info("Managed accounts processing completed")

    async def _drain_entry(self, account_id: str) -> FusionRecord | None:
        account = self.pool.claim(account_id)
        if account is None:
            return None

        record = await self.analyze_account(account)
        decision = self._policy.route(record.matches)
        if decision.route is Route.AUTO_MERGE and decision.match is not None:
            target = self._merge_target(decision.match)
            if target is not None:
                await self._auto_merge(record, account, target, decision.match)
                return target
            log.warning("Auto-merge target of %s is gone, admitting instead", record)
            await self._admit(record)
            return record
        if decision.route is Route.PENDING_REVIEW:
            self._request_review(record)
            return None
        await self._admit(record)
        return record

    async def analyze_account(self, account: SourceAccount) -> FusionRecord:
        """Seed a record for a drained account and score it against known identities."""

        record = FusionRecord.from_managed_account(account, settings=self._record_settings)
        await self._prepare_attributes(record)
        for match in self._scorer.score(record, tuple(self._identity_map.values())):
            if match.is_match:
                record.add_match(match)

        if record.is_match:
            log.info(
                "POTENTIAL MATCH FOUND: %s - %s candidate(s)", record, len(record.matches)
            )
            if self._collect_report:
                self._potential_duplicates.append(
                    ReportAccount.for_record(record, attributes=self._config.report_attributes)
                )
        else:
            log.debug("No match found for managed account: %s", record)
            if self._collect_report:
                self._non_matches.append(
                    ReportAccount.for_record(record, attributes=self._config.report_attributes)
                )
        return record

    def _merge_target(self, match: FusionMatch) -> FusionRecord | None:
        if match.fusion_identity is not None:
            return match.fusion_identity
        if match.identity_id:
            return self._identity_map.get(match.identity_id)
        return None

    async def _auto_merge(
        self,
        record: FusionRecord,
        account: SourceAccount,
        target: FusionRecord,
        match: FusionMatch,
    ) -> None:
        log.debug(
            "%s has all scores at %s, auto-correlating to identity %s",
            record,
            self._config.perfect_score,
            match.identity_id,
        )
        target.add_decision_layer(self._policy.system_decision(record, match))
        target.attach_account(account)
        target.set_needs_refresh(True)
        record.release_candidate_references()
        self._generator.map_attributes(target)
        await self._generator.refresh_non_unique(target)
        self._correlate_unlinked(target)

    def _request_review(self, record: FusionRecord) -> None:
        source_name = record.source_name or ""
        if self._config.source(source_name) is None:
            raise UnknownSourceError(source_name)

        candidates = record.matches
        for match in candidates:
            if match.identity_id:
                self._candidate_ids.add(match.identity_id)
                candidate = self._identity_map.get(match.identity_id)
                if candidate is not None:
                    candidate.add_status(RecordStatus.CANDIDATE)

        reviewers = self.reviewers_for(source_name)
        if self._reviews is None:
            log.warning("No review workflow configured; %s stays pending", record)
        elif not reviewers:
            log.warning("No reviewers for source %s; %s stays pending", source_name, record)
        else:
            for reviewer in reviewers:
                reviewer.track_review(self._create_review(record, reviewer, candidates))

        record.release_candidate_references()
        self._pending_review_records.append(record)

    async def _create_review(
        self,
        record: FusionRecord,
        reviewer: FusionRecord,
        candidates: Sequence[FusionMatch],
    ) -> str | None:
        if self._reviews is None:
            return None
        reference = await self._reviews.create_review(
            record=record, reviewer=reviewer, candidates=candidates
        )
        if reference and reviewer.identity_key:
            self._review_refs.setdefault(reviewer.identity_key, []).append(reference)
        if reference and reviewer.email:
            self._notify(
                subject=f"Review required: {record}",
                message=(
                    f"{record} matches {len(candidates)} existing identit"
                    f"{'y' if len(candidates) == 1 else 'ies'}. Review: {reference}"
                ),
                recipients=[reviewer.email],
            )
        return reference

    async def _admit(self, record: FusionRecord) -> None:
        await self._generator.refresh_unique(record)
        record.set_unmatched()
        record.link_own_account()
        self._set_record(record)

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    async def _prepare_attributes(self, record: FusionRecord) -> None:
        self._generator.map_attributes(record)
        if record.needs_reset:
            await self._generator.reset_attributes(record)
        await self._generator.refresh_non_unique(record)

    def _set_record(self, record: FusionRecord) -> None:
        if record.identity_key:
            self._identity_map[record.identity_key] = record
            return
        if not record.native_key:
            raise MissingOutputKeyError(record_name=record.name, attribute="native key")
        self._account_map[record.native_key] = record

    def _set_reviewer(self, record: FusionRecord, source_name: str) -> None:
        log.debug("Setting reviewer for %s -> %s", record, source_name)
        record.set_source_reviewer(source_name)
        self._reviewers_by_source.setdefault(source_name, {})[id(record)] = record

    def _populate_reviews(self, reviewer: FusionRecord) -> None:
        reviewer.clear_fusion_reviews()
        if not reviewer.identity_key:
            return
        for reference in self._review_refs.get(reviewer.identity_key, ()):
            reviewer.add_fusion_review(reference)

    def _correlate_unlinked(self, record: FusionRecord) -> None:
        if not self._config.correlate_on_aggregation or self._correlator is None:
            return
        identity_id = record.identity_key
        if not identity_id:
            return
        for account_id in sorted(record.unlinked_account_ids):
            record.track_correlation(self._correlate(record, identity_id, account_id))

    async def _correlate(self, record: FusionRecord, identity_id: str, account_id: str) -> None:
        if self._correlator is None:
            return
        await self._correlator.correlate(identity_id=identity_id, account_id=account_id)
        record.set_linked_account(account_id)
        record.add_history(f"Correlated account {account_id} to identity {identity_id}")

    def _notify(self, *, subject: str, message: str, recipients: Sequence[str]) -> None:
        if self._notifier is None:
            return
        self._notification_tasks.append(
            asyncio.ensure_future(
                self._notifier.notify(subject=subject, message=message, recipients=recipients)
            )
        )

    # ------------------------------------------------------------------
    # Post-drain
    # ------------------------------------------------------------------

    def reconcile_pending_review_state(self) -> None:
        """Re-derive candidate markers and reviewer references from pending reviews."""

        records = self.records
        for record in records:
            record.remove_status(RecordStatus.CANDIDATE)
            record.clear_fusion_reviews()

        for identity_id in self._candidate_ids:
            candidate = self._identity_map.get(identity_id)
            if candidate is not None:
                candidate.add_status(RecordStatus.CANDIDATE)

        for reviewer_id, references in self._review_refs.items():
            reviewer = self._identity_map.get(reviewer_id)
            if reviewer is None:
                continue
            for reference in references:
                reviewer.add_fusion_review(reference)

        for record in records:
            record.sync_collections()

    async def refresh_new_records(self) -> None:
        """Generate unique attributes of records first seen this run."""

        records, self._new_records = self._new_records, []
        await self._run_batched(records, self._refresh_unique, "record")

    async def _refresh_unique(self, record: FusionRecord) -> FusionRecord:
        await self._generator.refresh_unique(record)
        return record

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    async def list_outputs(self) -> list[RecordOutput]:
        eligible = [
            record
            for record in self.records
            if not (self._config.delete_empty and record.is_orphan)
        ]
        results = await gather_batched(
            eligible, self.build_output, batch_size=self._config.managed_accounts_batch_size
        )
        outputs: list[RecordOutput] = []
        for record, result in zip(eligible, results, strict=True):
            if isinstance(result, BaseException):
                log.error("Failed to build output for %s: %s", record, result)
            elif result is not None:
                outputs.append(result)
        return outputs

    async def build_output(self, record: FusionRecord) -> RecordOutput | None:
        """Settle deferred work of ``record`` and render its output, or ``None`` to skip it."""

        await record.resolve_pending_operations()
        record.update_link_status()
        record.sync_collections()

        key = record.key
        if key is None:
            identity_value = record.attributes.get(self._config.identity_attribute)
            if identity_value in (None, "") and self._config.skip_accounts_with_missing_id:
                log.info("Skipping %s: %s is empty", record, self._config.identity_attribute)
                return None
            key = self._generator.output_key(record)
            if key is None:
                raise MissingOutputKeyError(
                    record_name=record.name, attribute=self._config.identity_attribute
                )
            record.assign_key(key)

        return RecordOutput(
            key=key,
            attributes=self._output_attributes(record),
            disabled=record.disabled,
        )

    def _output_attributes(self, record: FusionRecord) -> dict[str, object]:
        current = record.attributes
        schema = self._config.mapping.schema_attributes
        if not schema:
            return dict(current)
        names = {
            *schema,
            *COLLECTION_ATTRIBUTES,
            *(definition.name for definition in self._generator.definitions),
            self._config.identity_attribute,
            self._config.display_attribute,
        }
        return {name: value for name, value in current.items() if name in names}

    def generate_report(self, *, include_non_matches: bool = False) -> FusionReport:
        report = build_report(
            self._potential_duplicates,
            self._non_matches if include_non_matches else (),
            total_accounts=self._drained_count,
        )
        self._potential_duplicates = []
        self._non_matches = []
        return report

    async def flush_notifications(self) -> None:
        """Wait a bounded time for outstanding notifications; abandon the rest."""

        tasks, self._notification_tasks = self._notification_tasks, []
        if not tasks:
            return
        done, pending = await asyncio.wait(
            tasks, timeout=self._config.notification_timeout_seconds
        )
        for task in pending:
            task.cancel()
        if pending:
            log.warning("Abandoned %s notification(s) after timeout", len(pending))
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                log.warning("Notification failed: %s", task.exception())

    # ------------------------------------------------------------------
    # State flags
    # ------------------------------------------------------------------

    async def reset_state(self) -> None:
        """Clear persisted counters and switch the reset flag back off."""

        self._generator.counters.clear()
        if self._state_store is None:
            log.warning("No state store configured; nothing to reset")
            return
        await self._state_store.patch_config(FUSION_STATE_PATH, {})
        await self.disable_reset()

    async def disable_reset(self) -> None:
        if self._state_store is None:
            return
        await self._state_store.patch_config(RESET_FLAG_PATH, False)

    # ------------------------------------------------------------------
    # Single-record flows
    # ------------------------------------------------------------------

    async def rebuild_account(
        self,
        native_identity: str,
        records: RecordSource,
        *,
        reset: bool = False,
    ) -> FusionRecord:
        """Rebuild one prior record from fresh lookups with refreshed attributes."""

        account = records.get_fusion_account(native_identity)
        if account is None:
            raise FusionAccountNotFoundError(native_identity)

        identities: list[DirectoryIdentity] = []
        if account.identity_id:
            identity = records.get_identity(account.identity_id)
            if identity is not None:
                identities.append(identity)
        managed = [
            found
            for account_id in _account_ids(account.attributes.get("accounts"))
            if (found := records.get_managed_account(account_id)) is not None
        ]
        self.load(
            RunSnapshot(fusion_accounts=[account], identities=identities, managed_accounts=managed)
        )

        record = await self._build_fusion_record(account)
        record.set_needs_refresh(True)
        record.set_needs_reset(reset)
        self._generator.map_attributes(record)
        await self._generator.refresh_all(record)
        return record

    async def read_account(self, native_identity: str, records: RecordSource) -> RecordOutput:
        await self.prepare_counters()
        record = await self.rebuild_account(native_identity, records)
        return await self._require_output(record)

    async def enable_account(self, native_identity: str, records: RecordSource) -> RecordOutput:
        """Re-enable a record, regenerating its attributes from scratch."""

        await self.prepare_counters()
        await self._register_all_prior(records, excluding=native_identity)
        record = await self.rebuild_account(native_identity, records, reset=True)
        record.enable()
        output = await self._require_output(record)
        if self._state_store is not None:
            await self._generator.save_state(self._state_store)
        return output

    async def disable_account(self, native_identity: str, records: RecordSource) -> RecordOutput:
        await self.prepare_counters()
        record = await self.rebuild_account(native_identity, records)
        record.disable()
        return await self._require_output(record)

    async def correlate_account(self, native_identity: str, records: RecordSource) -> RecordOutput:
        """Correlate every missing account of one record to its identity right away."""

        await self.prepare_counters()
        record = await self.rebuild_account(native_identity, records)
        missing = sorted(record.unlinked_account_ids)
        if not missing:
            log.debug("No missing accounts to correlate for %s", record)
        elif self._correlator is None:
            log.warning("No directory correlator configured; %s keeps its missing accounts", record)
        elif not record.identity_key:
            log.warning("%s has no identity; cannot correlate its missing accounts", record)
        else:
            log.info("Correlating %s missing account(s) for %s", len(missing), record)
            for account_id in missing:
                record.track_correlation(self._correlate(record, record.identity_key, account_id))
        return await self._require_output(record)

    async def _register_all_prior(self, records: RecordSource, *, excluding: str) -> None:
        snapshot = records.load_snapshot()
        for account in snapshot.fusion_accounts:
            if account.native_identity == excluding:
                continue
            prior = FusionRecord.from_prior_run(account, settings=self._record_settings)
            await self._generator.register_unique(prior)

    async def _require_output(self, record: FusionRecord) -> RecordOutput:
        output = await self.build_output(record)
        if output is None:
            raise MissingOutputKeyError(
                record_name=record.name, attribute=self._config.identity_attribute
            )
        return output


def _account_ids(value: object) -> Iterable[str]:
    if isinstance(value, list | tuple | set | frozenset):
        return [str(item) for item in value if item]
    if isinstance(value, str) and value:
        return attr_split(value)
    return []
