"""Two-tier account store: an in-memory mirror in front of the remote record store.

Consistency contract
--------------------
* Writes are local-authoritative. ``create``, ``update`` and ``delete`` run on
  the mirror first and errors from that write propagate to the caller. The
  remote write follows; if it fails the failure is logged and the local result
  is returned anyway.
* Reads are remote-preferred. The remote store answers first and successful
  answers refresh the mirror, unless the mirror already holds a newer copy of
  the record, which is then returned instead. When the remote call fails, times
  out, or finds nothing, the mirror answers instead.
* Accounts deleted locally while the remote delete failed stay deleted: remote
  reads that still return them are ignored.

The two tiers are therefore only eventually consistent.
"""

from __future__ import annotations

import logging
from threading import Lock
from typing import Callable

from ..domain.account import Account, AccountPatch
from ..domain.contracts import NewAccount
from ..errors import RecordStoreError
from ..metrics import STORE_FALLBACKS
from .base import AccountStore
from .memory import InMemoryAccountStore
from .records import PostgresRecordStore

logger = logging.getLogger(__name__)


class TieredAccountStore(AccountStore):
    def __init__(self, local: InMemoryAccountStore, remote: PostgresRecordStore) -> None:
        self._local = local
        self._remote = remote
        self._deleted: set[str] = set()
        self._deleted_lock = Lock()

    def list(self) -> list[Account]:
        try:
            records = self._remote.list_records()
        except RecordStoreError as exc:
            self._fell_back("list", exc)
            return self._local.list()
        records = [record for record in records if not self._is_deleted(record.account_id)]
        if not records:
            return self._local.list()
        return [self._local.put(record) for record in records]

    def get_by_id(self, account_id: str) -> Account | None:
        return self._read(
            "get_by_id",
            lambda: self._remote.fetch(account_id),
            lambda: self._local.get_by_id(account_id),
        )

    def get_by_email(self, email: str) -> Account | None:
        if not email or not email.strip():
            return None
        return self._read(
            "get_by_email",
            lambda: self._remote.find_by_email(email),
            lambda: self._local.get_by_email(email),
        )

    def get_by_verification_token(self, token: str) -> Account | None:
        token = (token or "").strip()
        if not token:
            return None
        return self._read(
            "get_by_verification_token",
            lambda: self._remote.find_by_verification_token(token),
            lambda: self._local.get_by_verification_token(token),
        )

    def create(self, payload: NewAccount) -> Account:
        created = self._local.create(payload)
        try:
            self._remote.insert(created)
        except RecordStoreError as exc:
            logger.error("failed to save account %s to record store: %s", created.account_id, exc)
        else:
            logger.info("account %s saved to record store", created.account_id)
        return created

    def update(self, account_id: str, patch: AccountPatch) -> Account:
        if self._local.get_by_id(account_id) is None:
            # Cold mirror: pull the record so the local write has something to merge into.
            self.get_by_id(account_id)
        updated = self._local.update(account_id, patch)
        try:
            stored = self._remote.update(updated)
        except RecordStoreError as exc:
            logger.error("failed to update account %s in record store: %s", account_id, exc)
        else:
            if stored is None:
                logger.warning("account %s missing from record store during update", account_id)
        return updated

    def delete(self, account_id: str) -> bool:
        removed_locally = self._local.delete(account_id)
        try:
            removed_remotely = self._remote.remove(account_id)
        except RecordStoreError as exc:
            logger.error("failed to delete account %s from record store: %s", account_id, exc)
            removed_remotely = False
            if removed_locally:
                with self._deleted_lock:
                    self._deleted.add(account_id)
        return removed_locally or removed_remotely

    def _read(
        self,
        operation: str,
        remote_call: Callable[[], Account | None],
        local_call: Callable[[], Account | None],
    ) -> Account | None:
        try:
            record = remote_call()
        except RecordStoreError as exc:
            self._fell_back(operation, exc)
            return local_call()
        if record is None or self._is_deleted(record.account_id):
            return local_call()
        return self._local.put(record)

    def _is_deleted(self, account_id: str) -> bool:
        with self._deleted_lock:
            return account_id in self._deleted

    def _fell_back(self, operation: str, exc: Exception) -> None:
        STORE_FALLBACKS.labels(operation=operation).inc()
        logger.warning("record store %s failed, serving from local mirror: %s", operation, exc)
