"""Application orchestration entry points."""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack
from dataclasses import dataclass
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING, TypeVar

from fusionid.adapters.platform import PlatformClient, WebhookNotifier
from fusionid.adapters.scoring import SimilarityScorer
from fusionid.adapters.snapshot import JsonSnapshotSource
from fusionid.adapters.sqlalchemy import SqlAlchemyStateStore, is_started, startup
from fusionid.adapters.templating import StringTemplateRenderer
from fusionid.common.locks import KeyedLockManager
from fusionid.config.env import optional_env_var
from fusionid.config.fusion import load_fusion_config
from fusionid.config.platform import PLATFORM_URL_ENV, get_notification_config, get_platform_config
from fusionid.domain.attributes import AttributeGenerator, CounterStore
from fusionid.domain.fusion import FusionController

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime
    from pathlib import Path

    from fusionid.domain.fusion import FusionReport, RecordOutput
    from fusionid.domain.ports import (
        DirectoryCorrelator,
        Notifier,
        RecordSource,
        ReviewRequester,
        StateStore,
    )
    from fusionid.domain.settings import FusionConfig

log = getLogger(__name__)

T = TypeVar("T")


class StateBackend(StrEnum):
    SQLITE = "sqlite"
    PLATFORM = "platform"
    NONE = "none"


@dataclass(slots=True, frozen=True, kw_only=True)
class AggregateResult:
    outputs: list[RecordOutput]
    report: FusionReport | None = None


@dataclass(slots=True, kw_only=True)
class Collaborators:
    """External services a controller talks to; all optional."""

    state_store: StateStore | None = None
    reviews: ReviewRequester | None = None
    correlator: DirectoryCorrelator | None = None
    notifier: Notifier | None = None


def build_controller(
    config: FusionConfig,
    collaborators: Collaborators | None = None,
    *,
    collect_report: bool = False,
    clock: Callable[[], datetime] | None = None,
) -> FusionController:
    """Assemble a controller with the default renderer and scorer."""

    services = collaborators or Collaborators()
    locks = KeyedLockManager()
    generator = AttributeGenerator(
        definitions=config.attribute_definitions,
        renderer=StringTemplateRenderer(),
        locks=locks,
        counters=CounterStore(locks),
        mapping=config.mapping,
        identity_attribute=config.identity_attribute,
        display_attribute=config.display_attribute,
        max_attempts=config.max_attempts,
        force_refresh=config.force_attribute_refresh,
    )
    scorer = SimilarityScorer(
        config.matching,
        use_average=config.use_average_score,
        average_threshold=config.average_score_threshold,
        report_mode=collect_report,
    )
    return FusionController(
        config=config,
        generator=generator,
        scorer=scorer,
        reviews=services.reviews,
        correlator=services.correlator,
        notifier=services.notifier,
        state_store=services.state_store,
        clock=clock,
        collect_report=collect_report,
    )


async def _open_collaborators(stack: AsyncExitStack, state: StateBackend) -> Collaborators:
    services = Collaborators()

    platform: PlatformClient | None = None
    if state is StateBackend.PLATFORM or optional_env_var(PLATFORM_URL_ENV) is not None:
        platform = await stack.enter_async_context(PlatformClient(get_platform_config()))
        services.reviews = platform
        services.correlator = platform

    if state is StateBackend.PLATFORM:
        services.state_store = platform
    elif state is StateBackend.SQLITE:
        if not is_started():
            startup()
        services.state_store = SqlAlchemyStateStore()

    notification_config = get_notification_config()
    if notification_config is not None:
        services.notifier = await stack.enter_async_context(WebhookNotifier(notification_config))
    return services


async def _with_controller(
    config: FusionConfig,
    state: StateBackend,
    operation: Callable[[FusionController], Awaitable[T]],
    *,
    collect_report: bool = False,
) -> T:
    async with AsyncExitStack() as stack:
        services = await _open_collaborators(stack, state)
        controller = build_controller(config, services, collect_report=collect_report)
        return await operation(controller)


def aggregate_accounts(
    *,
    config_path: Path,
    snapshot_path: Path,
    state: StateBackend = StateBackend.SQLITE,
    report: bool = False,
    include_non_matches: bool = False,
) -> AggregateResult:
    """Run one full aggregation over a snapshot file."""

    config = load_fusion_config(config_path)
    records = JsonSnapshotSource(snapshot_path)
    log.info("Starting aggregation: snapshot=%s, state=%s, report=%s", snapshot_path, state, report)

    async def run(controller: FusionController) -> AggregateResult:
        outputs = await controller.aggregate(records.load_snapshot())
        fusion_report = (
            controller.generate_report(include_non_matches=include_non_matches)
            if report
            else None
        )
        return AggregateResult(outputs=outputs, report=fusion_report)

    result = asyncio.run(_with_controller(config, state, run, collect_report=report))
    log.info("Finished aggregation: emitted=%s", len(result.outputs))
    return result


def reset_fusion_state(
    *,
    config_path: Path,
    state: StateBackend = StateBackend.SQLITE,
) -> None:
    """Clear persisted counters and switch the reset flag off."""

    config = load_fusion_config(config_path)

    async def run(controller: FusionController) -> None:
        await controller.reset_state()

    asyncio.run(_with_controller(config, state, run))
    log.info("Fusion state reset")


def _single_account(
    action: Callable[[FusionController, str, RecordSource], Awaitable[RecordOutput]],
    native_identity: str,
    *,
    config_path: Path,
    snapshot_path: Path,
    state: StateBackend,
) -> RecordOutput:
    config = load_fusion_config(config_path)
    records = JsonSnapshotSource(snapshot_path)

    async def run(controller: FusionController) -> RecordOutput:
        return await action(controller, native_identity, records)

    return asyncio.run(_with_controller(config, state, run))


def read_account(
    native_identity: str,
    *,
    config_path: Path,
    snapshot_path: Path,
    state: StateBackend = StateBackend.SQLITE,
) -> RecordOutput:
    return _single_account(
        FusionController.read_account,
        native_identity,
        config_path=config_path,
        snapshot_path=snapshot_path,
        state=state,
    )


def enable_account(
    native_identity: str,
    *,
    config_path: Path,
    snapshot_path: Path,
    state: StateBackend = StateBackend.SQLITE,
) -> RecordOutput:
    return _single_account(
        FusionController.enable_account,
        native_identity,
        config_path=config_path,
        snapshot_path=snapshot_path,
        state=state,
    )


def disable_account(
    native_identity: str,
    *,
    config_path: Path,
    snapshot_path: Path,
    state: StateBackend = StateBackend.SQLITE,
) -> RecordOutput:
    return _single_account(
        FusionController.disable_account,
        native_identity,
        config_path=config_path,
        snapshot_path=snapshot_path,
        state=state,
    )


def correlate_account(
    native_identity: str,
    *,
    config_path: Path,
    snapshot_path: Path,
    state: StateBackend = StateBackend.SQLITE,
) -> RecordOutput:
    """Correlate the missing accounts of one fusion account to its identity."""

    return _single_account(
        FusionController.correlate_account,
        native_identity,
        config_path=config_path,
        snapshot_path=snapshot_path,
        state=state,
    )
