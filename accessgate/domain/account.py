from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum


class Role(str, Enum):
    """Closed set of roles an account may hold."""

    SUPER_ADMIN = "SuperAdmin"
    ADMIN = "Admin"
    USER = "User"

    @classmethod
    def parse(cls, value: str | None) -> "Role | None":
        """Return the matching role or ``None`` when the value is not a known role."""
        if not value:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


class AccountStatus(str, Enum):
    PENDING = "Pending"
    ACTIVE = "Active"


def normalize_email(email: str) -> str:
    """Trim and lower-case an email address for storage and comparison."""
    return (email or "").strip().lower()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class Account:
    """Aggregate root for a single identity."""

    account_id: str
    email: str
    credential_hash: str
    role: Role = Role.USER
    status: AccountStatus = AccountStatus.PENDING
    verification_token: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status is AccountStatus.ACTIVE

    def copy(self) -> "Account":
        return replace(self)


@dataclass(slots=True)
class AccountPatch:
    """Partial update applied by :meth:`AccountStore.update`.

    ``None`` (or an empty credential hash) leaves the stored value untouched.
    ``verification_token=""`` clears the token.
    """

    credential_hash: str = ""
    role: Role | None = None
    status: AccountStatus | None = None
    verification_token: str | None = None

    def apply(self, existing: Account, now: datetime) -> Account:
        """Return a merged copy of ``existing``; id and email never change."""
        merged = existing.copy()
        if self.credential_hash:
            merged.credential_hash = self.credential_hash
        if self.role is not None:
            merged.role = self.role
        if self.status is not None:
            merged.status = self.status
        if self.verification_token is not None:
            merged.verification_token = self.verification_token
        merged.updated_at = now
        return merged
