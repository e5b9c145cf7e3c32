"""Port supplying the raw records of one run."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from fusionid.domain.model.inputs import (
        DirectoryIdentity,
        PriorFusionAccount,
        RunSnapshot,
        SourceAccount,
    )


@runtime_checkable
class RecordSource(Protocol):
    """Full snapshot at the start of a run plus single-record lookups."""

    def load_snapshot(self) -> RunSnapshot: ...

    def get_fusion_account(self, native_identity: str) -> PriorFusionAccount | None: ...

    def get_identity(self, identity_id: str) -> DirectoryIdentity | None: ...

    def get_managed_account(self, account_id: str) -> SourceAccount | None: ...


__all__ = ["RecordSource"]
