from __future__ import annotations

import json
from pathlib import Path  # noqa: TC003

import pytest

from fusionid.adapters.snapshot import JsonSnapshotSource, SnapshotFormatError

SNAPSHOT = {
    "fusionAccounts": [
        {
            "nativeIdentity": "fa-1",
            "name": "Ada",
            "identityId": "  ",
            "attributes": {"id": "fa-1", "accounts": ["h1"]},
        }
    ],
    "identities": [
        {
            "id": "id-1",
            "name": "Ada Lovelace",
            "attributes": {"email": "ada@example.com"},
            "accounts": [{"id": "h1", "sourceName": "HR"}],
        }
    ],
    "managedAccounts": [
        {
            "id": "h1",
            "sourceName": "HR",
            "uncorrelated": True,
            "modified": "2025-03-14T09:30:00Z",
            "attributes": {"firstname": "Ada"},
        }
    ],
    "decisions": [
        {
            "submitter": {"id": "rev-1", "name": "Rita"},
            "account": {"id": "h2", "sourceName": "HR"},
            "newIdentity": False,
            "identityId": "id-1",
        }
    ],
    "pendingReviews": {
        "candidateIdentityIds": ["id-1"],
        "reviewRefsByReviewer": {"rev-1": ["review-1"]},
    },
}


def _write(tmp_path: Path, payload: object) -> Path:
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_snapshot_is_translated_into_domain_inputs(tmp_path: Path) -> None:
    source = JsonSnapshotSource(_write(tmp_path, SNAPSHOT))

    snapshot = source.load_snapshot()

    prior = snapshot.fusion_accounts[0]
    assert prior.native_identity == "fa-1"
    assert prior.identity_id is None
    assert prior.attributes["accounts"] == ["h1"]
    identity = snapshot.identities[0]
    assert identity.email == "ada@example.com"
    assert identity.accounts[0].source_name == "HR"
    managed = snapshot.managed_accounts[0]
    assert managed.uncorrelated
    assert managed.modified is not None
    assert managed.modified.year == 2025
    decision = snapshot.decisions[0]
    assert decision.submitter.label == "Rita"
    assert not decision.new_identity
    assert decision.finished
    assert snapshot.pending_reviews.candidate_identity_ids == frozenset({"id-1"})
    assert snapshot.pending_reviews.review_refs_by_reviewer == {"rev-1": ("review-1",)}


def test_lookups_are_served_from_the_snapshot(tmp_path: Path) -> None:
    source = JsonSnapshotSource(_write(tmp_path, SNAPSHOT))

    fusion_account = source.get_fusion_account("fa-1")
    identity = source.get_identity("id-1")
    managed = source.get_managed_account("h1")

    assert fusion_account is not None
    assert fusion_account.name == "Ada"
    assert identity is not None
    assert identity.name == "Ada Lovelace"
    assert managed is not None
    assert managed.attributes == {"firstname": "Ada"}
    assert source.get_fusion_account("fa-2") is None
    assert source.get_managed_account("nope") is None
    assert source.load_snapshot() is source.load_snapshot()


def test_empty_snapshot_is_valid(tmp_path: Path) -> None:
    snapshot = JsonSnapshotSource(_write(tmp_path, {})).load_snapshot()

    assert snapshot.fusion_accounts == []
    assert snapshot.managed_accounts == []


def test_invalid_json_raises_format_error(tmp_path: Path) -> None:
    path = tmp_path / "snapshot.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(SnapshotFormatError, match="Invalid snapshot"):
        JsonSnapshotSource(path).load_snapshot()


def test_schema_violation_raises_format_error(tmp_path: Path) -> None:
    source = JsonSnapshotSource(_write(tmp_path, {"managedAccounts": [{"id": "h1"}]}))

    with pytest.raises(SnapshotFormatError):
        source.load_snapshot()
