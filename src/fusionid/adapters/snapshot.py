"""Record source reading one JSON snapshot file."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from fusionid.domain.ports.records import RecordSource

from .schema import SnapshotPayload
from .translator import to_snapshot

if TYPE_CHECKING:
    from pathlib import Path

    from fusionid.domain.model.inputs import (
        DirectoryIdentity,
        PriorFusionAccount,
        RunSnapshot,
        SourceAccount,
    )

log = logging.getLogger(__name__)


class SnapshotFormatError(ValueError):
    """Raised when a snapshot file is not valid JSON or does not match the schema."""

    def __init__(self, path: Path, detail: str) -> None:
        self.path = path
        super().__init__(f"Invalid snapshot {path}: {detail}")


class JsonSnapshotSource:
    """Loads the snapshot lazily and serves lookups from the parsed copy."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._snapshot: RunSnapshot | None = None

    def load_snapshot(self) -> RunSnapshot:
        if self._snapshot is None:
            self._snapshot = self._read()
        return self._snapshot

    def get_fusion_account(self, native_identity: str) -> PriorFusionAccount | None:
        for account in self.load_snapshot().fusion_accounts:
            if account.native_identity == native_identity:
                return account
        return None

    def get_identity(self, identity_id: str) -> DirectoryIdentity | None:
        for identity in self.load_snapshot().identities:
            if identity.id == identity_id:
                return identity
        return None

    def get_managed_account(self, account_id: str) -> SourceAccount | None:
        for account in self.load_snapshot().managed_accounts:
            if account.id == account_id:
                return account
        return None

    def _read(self) -> RunSnapshot:
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise SnapshotFormatError(self._path, str(exc)) from exc
        try:
            payload = SnapshotPayload.model_validate(raw)
        except ValidationError as exc:
            raise SnapshotFormatError(self._path, str(exc)) from exc
        snapshot = to_snapshot(payload)
        log.debug(
            "Read snapshot %s: %s fusion account(s), %s identities, %s managed account(s)",
            self._path,
            len(snapshot.fusion_accounts),
            len(snapshot.identities),
            len(snapshot.managed_accounts),
        )
        return snapshot


if TYPE_CHECKING:
    _source_check: RecordSource = JsonSnapshotSource(Path())
