from __future__ import annotations

from fusionid.domain.model import WorkPool
from tests.support.fusion import account


def test_claim_removes_entry_exactly_once() -> None:
    pool = WorkPool([account("h1"), account("h2")])

    first = pool.claim("h1")
    second = pool.claim("h1")

    assert first is not None
    assert first.id == "h1"
    assert second is None
    assert "h1" not in pool
    assert pool.keys() == ["h2"]
    assert len(pool) == 1


def test_claim_for_uses_identity_index_and_known_ids() -> None:
    pool = WorkPool(
        [
            account("h1", identity_id="id-1", uncorrelated=False),
            account("l1", source_name="LDAP", identity_id="id-1", uncorrelated=False),
            account("h2"),
            account("h3", identity_id="id-2", uncorrelated=False),
        ]
    )

    claimed = pool.claim_for(identity_id="id-1", account_ids=["h2", "missing"])

    assert sorted(item.id for item in claimed) == ["h1", "h2", "l1"]
    assert pool.keys() == ["h3"]


def test_claim_for_skips_entries_already_claimed() -> None:
    pool = WorkPool([account("h1", identity_id="id-1", uncorrelated=False)])
    assert pool.claim("h1") is not None

    assert pool.claim_for(identity_id="id-1", account_ids=["h1"]) == []


def test_re_adding_account_moves_identity_index() -> None:
    pool = WorkPool([account("h1", identity_id="id-1", uncorrelated=False)])
    pool.add(account("h1", identity_id="id-2", uncorrelated=False))

    assert pool.claim_for(identity_id="id-1", account_ids=()) == []
    claimed = pool.claim_for(identity_id="id-2", account_ids=())
    assert [item.id for item in claimed] == ["h1"]


def test_iteration_is_a_snapshot_of_keys() -> None:
    pool = WorkPool([account("h1"), account("h2"), account("h3")])

    seen: list[str] = []
    for account_id in pool:
        seen.append(account_id)
        pool.claim("h3")

    assert seen == ["h1", "h2", "h3"]
    assert len(pool) == 2
