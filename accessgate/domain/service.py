"""Account workflows: registration, email verification, login and admin provisioning."""

from __future__ import annotations

import logging
from typing import Any, Callable

from .account import Account, AccountPatch, AccountStatus, Role, normalize_email
from .contracts import IssuedToken, NewAccount
from ..config import Settings
from ..errors import DuplicateEmailError, ForbiddenError, NotFoundError, UnauthorizedError, ValidationError
from ..metrics import LOGIN_ATTEMPTS, REGISTRATIONS
from ..notifications import Notifier, build_verification_email, deliver_quietly
from ..security.passwords import dummy_hash, hash_password, verify_password
from ..security.tokens import generate_verification_token, issue_access_token
from ..store.base import AccountStore

logger = logging.getLogger(__name__)

# Schedules ``fn(*args)`` to run after the response, e.g. ``BackgroundTasks.add_task``.
Defer = Callable[..., Any]

INVALID_CREDENTIALS = "Invalid email or password"
EMAIL_NOT_VERIFIED = "Please verify your email before logging in"


class AuthService:
    """Orchestrates the account lifecycle on top of an :class:`AccountStore`.

    Accounts start ``Pending`` when self-registered and become ``Active`` once
    the emailed verification token is presented. Administrator-created accounts
    are ``Active`` from the start and never receive a verification token.
    """

    def __init__(self, store: AccountStore, notifier: Notifier, settings: Settings) -> None:
        self._store = store
        self._notifier = notifier
        self._settings = settings

    def register(self, email: str, password: str, defer: Defer | None = None) -> Account:
        """Create a pending account and send its verification email.

        The email goes out through ``defer`` when given so the caller's response
        does not wait on mail delivery. No bearer token is issued.
        """
        email = normalize_email(email)
        if self._store.get_by_email(email) is not None:
            raise DuplicateEmailError()

        account = self._store.create(
            NewAccount(
                email=email,
                credential_hash=hash_password(password, self._settings.bcrypt_rounds),
                role=Role.USER,
                status=AccountStatus.PENDING,
                verification_token=generate_verification_token(),
            )
        )
        REGISTRATIONS.labels(path="self").inc()
        logger.info("registered account %s pending verification", account.account_id)

        message = build_verification_email(self._settings, account.email, account.verification_token)
        if defer is not None:
            defer(deliver_quietly, self._notifier, message)
        else:
            deliver_quietly(self._notifier, message)
        return account

    def verify_email(self, token: str) -> Account:
        """Activate the account holding ``token`` and clear the token."""
        account = self._store.get_by_verification_token(token)
        if account is None:
            raise NotFoundError("Invalid or unknown verification token")
        updated = self._store.update(
            account.account_id,
            AccountPatch(status=AccountStatus.ACTIVE, verification_token=""),
        )
        logger.info("account %s verified its email", updated.account_id)
        return updated

    def login(self, email: str, password: str) -> tuple[IssuedToken, Account]:
        account = self._store.get_by_email(email)
        # Unknown emails still pay for one bcrypt check.
        stored_hash = account.credential_hash if account else dummy_hash(self._settings.bcrypt_rounds)
        matched = verify_password(password, stored_hash)
        if account is None or not matched:
            LOGIN_ATTEMPTS.labels(outcome="invalid_credentials").inc()
            raise UnauthorizedError(INVALID_CREDENTIALS)
        if not account.is_active:
            LOGIN_ATTEMPTS.labels(outcome="unverified").inc()
            raise ForbiddenError(EMAIL_NOT_VERIFIED)

        access_token, expires_in = issue_access_token(
            account_id=account.account_id,
            email=account.email,
            role=account.role,
            secret=self._settings.jwt_secret,
            ttl_seconds=self._settings.jwt_ttl_seconds,
            issuer=self._settings.jwt_issuer,
        )
        LOGIN_ATTEMPTS.labels(outcome="success").inc()
        return IssuedToken(access_token=access_token, expires_in=expires_in), account

    def create_account_as_admin(self, email: str, password: str, role: str | Role | None = None) -> Account:
        """Provision an active account. Callers must already hold an admin role."""
        resolved = parse_role(role)
        email = normalize_email(email)
        if self._store.get_by_email(email) is not None:
            raise DuplicateEmailError()
        account = self._store.create(
            NewAccount(
                email=email,
                credential_hash=hash_password(password, self._settings.bcrypt_rounds),
                role=resolved,
                status=AccountStatus.ACTIVE,
            )
        )
        REGISTRATIONS.labels(path="admin").inc()
        logger.info("admin created account %s with role %s", account.account_id, resolved.value)
        return account

    def list_accounts(self) -> list[Account]:
        return self._store.list()

    def get_account(self, account_id: str) -> Account:
        account = self._store.get_by_id(account_id)
        if account is None:
            raise NotFoundError("user not found")
        return account

    def delete_account(self, account_id: str) -> None:
        if not self._store.delete(account_id):
            raise NotFoundError("user not found")
        logger.info("deleted account %s", account_id)


def parse_role(value: str | Role | None) -> Role:
    """Resolve an optional role name, defaulting to ``User``."""
    if value is None or value == "":
        return Role.USER
    if isinstance(value, Role):
        return value
    role = Role.parse(value)
    if role is None:
        valid = ", ".join(r.value for r in Role)
        raise ValidationError(f"Invalid role. Valid roles: {valid}")
    return role
