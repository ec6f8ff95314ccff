"""Persistence contract shared by every account store implementation."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..domain.account import Account, AccountPatch
from ..domain.contracts import NewAccount


class AccountStore(ABC):
    """Identity persistence used by :class:`~accessgate.domain.service.AuthService`.

    Implementations must guarantee that two accounts never share a normalised
    email and that :meth:`update` never changes an account's id or email.
    Accounts handed out are copies; mutating them does not touch the store.
    """

    @abstractmethod
    def list(self) -> list[Account]:
        """Return every account ordered by creation time."""

    @abstractmethod
    def get_by_id(self, account_id: str) -> Account | None: ...

    @abstractmethod
    def get_by_email(self, email: str) -> Account | None:
        """Case-insensitive lookup; blank input returns ``None``."""

    @abstractmethod
    def get_by_verification_token(self, token: str) -> Account | None:
        """Lookup by activation secret; blank input returns ``None``."""

    @abstractmethod
    def create(self, payload: NewAccount) -> Account:
        """Persist a new account and assign its id.

        Raises
        ------
        DuplicateEmailError
            When the normalised email already belongs to an account.
        """

    @abstractmethod
    def update(self, account_id: str, patch: AccountPatch) -> Account:
        """Merge ``patch`` into the stored account.

        Raises
        ------
        NotFoundError
            When no account has ``account_id``.
        """

    @abstractmethod
    def delete(self, account_id: str) -> bool:
        """Remove the account, returning ``False`` when it did not exist."""
