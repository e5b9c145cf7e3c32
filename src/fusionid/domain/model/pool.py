"""Shared work queue of not-yet-claimed managed accounts."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from .inputs import SourceAccount


class WorkPool:
    """Mutable ``account id -> account`` mapping that only ever shrinks during a run.

    Every phase holds the same instance. Claiming is a plain synchronous method so
    that no two concurrently running tasks can observe the same entry: there is
    no suspension point between the lookup and the removal.
    """

    def __init__(self, accounts: Iterable[SourceAccount] = ()) -> None:
        self._entries: dict[str, SourceAccount] = {}
        self._by_identity: dict[str, dict[str, None]] = {}
        for account in accounts:
            self.add(account)

    def add(self, account: SourceAccount) -> None:
        if account.id in self._entries:
            self._unindex(self._entries[account.id])
        self._entries[account.id] = account
        if account.identity_id:
            self._by_identity.setdefault(account.identity_id, {})[account.id] = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, account_id: object) -> bool:
        return account_id in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def keys(self) -> list[str]:
        return list(self._entries)

    def get(self, account_id: str) -> SourceAccount | None:
        return self._entries.get(account_id)

    def claim(self, account_id: str) -> SourceAccount | None:
        """Remove and return one entry, or ``None`` when another record got it first."""

        account = self._entries.pop(account_id, None)
        if account is not None:
            self._unindex(account)
        return account

    def claim_for(
        self,
        *,
        identity_id: str | None,
        account_ids: Iterable[str],
    ) -> list[SourceAccount]:
        """Claim every entry belonging to a fusion record.

        Entries linked to ``identity_id`` are found through the identity index;
        the remaining ``account_ids`` (previously claimed or still missing ids)
        cover records that lost their directory link between runs.
        """

        claimed: list[SourceAccount] = []
        if identity_id:
            for account_id in list(self._by_identity.get(identity_id, ())):
                account = self.claim(account_id)
                if account is not None:
                    claimed.append(account)
        for account_id in account_ids:
            account = self.claim(account_id)
            if account is not None:
                claimed.append(account)
        return claimed

    def _unindex(self, account: SourceAccount) -> None:
        if not account.identity_id:
            return
        bucket = self._by_identity.get(account.identity_id)
        if bucket is None:
            return
        bucket.pop(account.id, None)
        if not bucket:
            del self._by_identity[account.identity_id]
