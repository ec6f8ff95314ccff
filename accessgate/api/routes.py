"""HTTP route definitions for authentication and account administration."""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, EmailStr, Field

from ..domain.account import Account
from ..domain.service import AuthService
from ..security.throttle import RateLimiter
from .deps import (
    IdentityContext,
    get_rate_limiter,
    get_service,
    require_admin,
    require_any_role,
)

logger = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/auth", tags=["auth"])
users_router = APIRouter(prefix="/users", tags=["users"])

MIN_PASSWORD_LENGTH = 6


class AccountResponse(BaseModel):
    """Outward representation of an account; never carries secrets."""

    id: str
    email: str
    role: str
    status: str
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.account_id,
            email=account.email,
            role=account.role.value,
            status=account.status.value,
            created_at=account.created_at.isoformat() if account.created_at else None,
            updated_at=account.updated_at.isoformat() if account.updated_at else None,
        )


class CredentialsRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class CreateUserRequest(CredentialsRequest):
    role: str | None = None


class AccountMessageResponse(BaseModel):
    message: str
    user: AccountResponse


class TokenResponse(BaseModel):
    """Bearer token issued after a successful login."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    user: AccountResponse


class IdentityResponse(BaseModel):
    id: str
    email: str
    role: str


def _throttle(limiter: RateLimiter, request: Request, action: str) -> None:
    client = request.client.host if request.client else "unknown"
    decision = limiter.check(f"{action}:{client}")
    if not decision.allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="rate limited",
            headers={"Retry-After": str(decision.retry_after)},
        )


@auth_router.post("/register", response_model=AccountMessageResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: CredentialsRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    service: AuthService = Depends(get_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> AccountMessageResponse:
    """Self-register a pending account; a verification link is emailed."""
    _throttle(limiter, request, "register")
    account = service.register(payload.email, payload.password, defer=background_tasks.add_task)
    return AccountMessageResponse(
        message="Registration successful. Please check your email to verify your account.",
        user=AccountResponse.from_domain(account),
    )


@auth_router.get("/verify-email", response_model=AccountMessageResponse)
def verify_email(
    token: str = Query(default=""),
    service: AuthService = Depends(get_service),
) -> AccountMessageResponse:
    account = service.verify_email(token)
    return AccountMessageResponse(
        message="Email verified successfully. You can now log in.",
        user=AccountResponse.from_domain(account),
    )


@auth_router.post("/login", response_model=TokenResponse)
def login(
    payload: LoginRequest,
    request: Request,
    service: AuthService = Depends(get_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> TokenResponse:
    """Exchange email and password for a bearer token."""
    _throttle(limiter, request, "login")
    issued, account = service.login(payload.email, payload.password)
    return TokenResponse(
        access_token=issued.access_token,
        token_type=issued.token_type,
        expires_in=issued.expires_in,
        user=AccountResponse.from_domain(account),
    )


@auth_router.get("/me", response_model=IdentityResponse)
def me(identity: IdentityContext = Depends(require_any_role)) -> IdentityResponse:
    return IdentityResponse(id=identity.account_id, email=identity.email, role=identity.role.value)


@users_router.get("", response_model=list[AccountResponse])
def list_users(
    _: IdentityContext = Depends(require_admin),
    service: AuthService = Depends(get_service),
) -> list[AccountResponse]:
    return [AccountResponse.from_domain(account) for account in service.list_accounts()]


@users_router.post("", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: CreateUserRequest,
    caller: IdentityContext = Depends(require_admin),
    service: AuthService = Depends(get_service),
) -> AccountResponse:
    """Provision an active account with an optional role."""
    account = service.create_account_as_admin(payload.email, payload.password, payload.role)
    logger.info("account %s created by %s", account.account_id, caller.account_id)
    return AccountResponse.from_domain(account)


@users_router.get("/{account_id}", response_model=AccountResponse)
def get_user(
    account_id: str,
    _: IdentityContext = Depends(require_admin),
    service: AuthService = Depends(get_service),
) -> AccountResponse:
    return AccountResponse.from_domain(service.get_account(account_id))


@users_router.delete("/{account_id}")
def delete_user(
    account_id: str,
    _: IdentityContext = Depends(require_admin),
    service: AuthService = Depends(get_service),
) -> dict:
    service.delete_account(account_id)
    return {}
