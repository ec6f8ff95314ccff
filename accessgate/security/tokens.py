"""Utilities for issuing and validating bearer tokens and verification secrets."""

from __future__ import annotations

import secrets
import time
from typing import Any

import jwt

from ..config import get_settings
from ..domain.account import Role
from ..errors import InternalError, InvalidTokenError

_ALGORITHM = "HS256"
VERIFICATION_TOKEN_BYTES = 32


def issue_access_token(
    *,
    account_id: str,
    email: str,
    role: Role,
    secret: str | None = None,
    ttl_seconds: int | None = None,
    issuer: str | None = None,
) -> tuple[str, int]:
    """Create a signed JWT representing an authenticated account.

    Parameters
    ----------
    account_id:
        Account identifier embedded in the ``sub`` claim.
    email:
        Normalised email of the account at issuance time.
    role:
        Role held at issuance time. Later role changes do not affect the token.
    secret, ttl_seconds, issuer:
        Overrides for the configured signing secret, lifetime and ``iss`` claim.

    Returns
    -------
    tuple[str, int]
        The encoded JWT and its TTL in seconds.
    """

    settings = get_settings()
    key = settings.jwt_secret if secret is None else secret
    if not key:
        raise InternalError("token signing is misconfigured")
    expires_in = settings.jwt_ttl_seconds if ttl_seconds is None else ttl_seconds
    now = int(time.time())
    payload: dict[str, Any] = {
        "iss": settings.jwt_issuer if issuer is None else issuer,
        "sub": account_id,
        "email": email,
        "role": role.value,
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(payload, key, algorithm=_ALGORITHM), expires_in


def decode_access_token(token: str, secret: str | None = None, issuer: str | None = None) -> dict[str, Any]:
    """Verify a JWT and return its claims.

    Raises
    ------
    InvalidTokenError
        When the signature does not match, the structure is malformed, a required
        claim is missing, or the current time is at or past ``exp``.
    """

    settings = get_settings()
    key = settings.jwt_secret if secret is None else secret
    if not token or not key:
        raise InvalidTokenError("token or secret missing")
    try:
        claims = jwt.decode(
            token,
            key,
            algorithms=[_ALGORITHM],
            issuer=settings.jwt_issuer if issuer is None else issuer,
            options={"require": ["sub", "role", "iat", "exp"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise InvalidTokenError("token has expired") from exc
    except jwt.PyJWTError as exc:
        raise InvalidTokenError(str(exc)) from exc
    return claims


def generate_verification_token() -> str:
    """Return a 64-character hex string drawn from the OS CSPRNG."""
    return secrets.token_hex(VERIFICATION_TOKEN_BYTES)
