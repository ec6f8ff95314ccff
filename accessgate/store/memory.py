"""Process-local account store."""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from threading import Condition, Lock
from typing import Iterator

from ..domain.account import Account, AccountPatch, normalize_email, utcnow
from ..domain.contracts import NewAccount
from ..errors import DuplicateEmailError, NotFoundError
from .base import AccountStore


class ReadWriteLock:
    """Many concurrent readers or one writer; waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = Condition(Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


def _newer(local: Account, incoming: Account) -> bool:
    if local.updated_at is None or incoming.updated_at is None:
        return False
    return local.updated_at > incoming.updated_at


class InMemoryAccountStore(AccountStore):
    """Dictionary-backed store, also used as the local mirror of the tiered store."""

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._accounts: dict[str, Account] = {}

    def list(self) -> list[Account]:
        with self._lock.read():
            accounts = [account.copy() for account in self._accounts.values()]
        return sorted(accounts, key=lambda a: (a.created_at or utcnow(), a.account_id))

    def get_by_id(self, account_id: str) -> Account | None:
        with self._lock.read():
            account = self._accounts.get(account_id)
            return account.copy() if account else None

    def get_by_email(self, email: str) -> Account | None:
        normalized = normalize_email(email)
        if not normalized:
            return None
        with self._lock.read():
            account = self._find_email(normalized)
            return account.copy() if account else None

    def get_by_verification_token(self, token: str) -> Account | None:
        token = (token or "").strip()
        if not token:
            return None
        with self._lock.read():
            for account in self._accounts.values():
                if account.verification_token == token:
                    return account.copy()
        return None

    def create(self, payload: NewAccount) -> Account:
        """Insert a new account under a fresh uuid4; the email check and insert share one write lock."""
        email = normalize_email(payload.email)
        with self._lock.write():
            if self._find_email(email) is not None:
                raise DuplicateEmailError()
            now = utcnow()
            account = Account(
                account_id=str(uuid.uuid4()),
                email=email,
                credential_hash=payload.credential_hash,
                role=payload.role,
                status=payload.status,
                verification_token=payload.verification_token,
                created_at=now,
                updated_at=now,
            )
            self._accounts[account.account_id] = account
            return account.copy()

    def update(self, account_id: str, patch: AccountPatch) -> Account:
        with self._lock.write():
            existing = self._accounts.get(account_id)
            if existing is None:
                raise NotFoundError("user not found")
            merged = patch.apply(existing, utcnow())
            self._accounts[account_id] = merged
            return merged.copy()

    def delete(self, account_id: str) -> bool:
        with self._lock.write():
            return self._accounts.pop(account_id, None) is not None

    def put(self, account: Account) -> Account:
        """Mirror a record read from the remote store and return the copy the mirror keeps.

        A local copy with a later ``updated_at`` wins over the incoming record.
        Otherwise the record is stored, and a local record holding the same email
        under a different id is dropped to keep emails unique.
        """
        with self._lock.write():
            current = self._accounts.get(account.account_id)
            if current is not None and _newer(current, account):
                return current.copy()
            clash = self._find_email(normalize_email(account.email))
            if clash is not None and clash.account_id != account.account_id:
                del self._accounts[clash.account_id]
            self._accounts[account.account_id] = account.copy()
            return account.copy()

    def _find_email(self, normalized: str) -> Account | None:
        for account in self._accounts.values():
            if account.email == normalized:
                return account
        return None
