"""Request authentication and role gates.

Routes depend on :func:`authenticate` (or on a role gate built by
:func:`require_roles`, which depends on it) and receive a typed
:class:`IdentityContext` describing the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable

from fastapi import Depends, Header, Request

from ..domain.account import Role
from ..domain.service import AuthService
from ..errors import ForbiddenError, InvalidTokenError, UnauthorizedError
from ..security.throttle import RateLimiter
from ..security.tokens import decode_access_token

MISSING_HEADER = "Authorization header required"
INVALID_TOKEN = "Invalid or expired token"


@dataclass(frozen=True, slots=True)
class IdentityContext:
    """Identity claims of the authenticated caller, valid for one request."""

    account_id: str
    email: str
    role: Role


def get_service(request: Request) -> AuthService:
    """Resolve the `AuthService` stored on the FastAPI application state."""
    service: AuthService = request.app.state.auth_service
    return service


def get_rate_limiter(request: Request) -> RateLimiter:
    limiter: RateLimiter = request.app.state.rate_limiter
    return limiter


def bearer_token(authorization: str | None) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header value."""
    if not authorization:
        raise UnauthorizedError(MISSING_HEADER)
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError(MISSING_HEADER)
    return token.strip()


def identity_from_token(token: str, secret: str | None = None, issuer: str | None = None) -> IdentityContext:
    try:
        claims = decode_access_token(token, secret, issuer)
    except InvalidTokenError as exc:
        raise UnauthorizedError(INVALID_TOKEN) from exc
    role = Role.parse(claims.get("role"))
    if role is None:
        raise UnauthorizedError(INVALID_TOKEN)
    return IdentityContext(account_id=str(claims["sub"]), email=claims.get("email", ""), role=role)


def authenticate(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> IdentityContext:
    """Authentication gate: every protected route depends on this first."""
    token = bearer_token(authorization)
    settings = request.app.state.settings
    identity = identity_from_token(token, settings.jwt_secret, settings.jwt_issuer)
    request.state.identity = identity
    return identity


def check_roles(identity: IdentityContext | None, allowed: Iterable[Role]) -> IdentityContext:
    """Role gate. A missing identity means the authentication gate never ran."""
    if identity is None:
        raise UnauthorizedError(MISSING_HEADER)
    allowed_roles = tuple(dict.fromkeys(allowed))
    if identity.role not in allowed_roles:
        required = ", ".join(role.value for role in allowed_roles)
        raise ForbiddenError(f"Insufficient permissions. Required roles: {required}")
    return identity


def require_roles(*roles: Role) -> Callable[..., IdentityContext]:
    """Build a dependency that authenticates the caller and then checks role membership.

    There is no role hierarchy: ``SuperAdmin`` passes only when listed.
    """

    def role_gate(identity: IdentityContext = Depends(authenticate)) -> IdentityContext:
        return check_roles(identity, roles)

    return role_gate


require_admin = require_roles(Role.SUPER_ADMIN, Role.ADMIN)
require_any_role = require_roles(*Role)
