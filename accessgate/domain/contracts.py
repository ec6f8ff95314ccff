"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass

from .account import AccountStatus, Role


@dataclass(slots=True)
class NewAccount:
    """Validated inputs required to persist a new account."""

    email: str
    credential_hash: str
    role: Role = Role.USER
    status: AccountStatus = AccountStatus.PENDING
    verification_token: str = ""


@dataclass(slots=True)
class IssuedToken:
    """Bearer token handed back to the client after a successful login."""

    access_token: str
    expires_in: int
    token_type: str = "Bearer"
