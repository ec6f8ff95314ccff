from __future__ import annotations

from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from accessgate.domain.account import Role
from accessgate.main import create_app
from accessgate.security.throttle import SlidingWindowRateLimiter
from accessgate.security.tokens import decode_access_token, issue_access_token


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def test_registration_verification_login_scenario(api):
    client = api.client

    registered = client.post("/auth/register", json={"email": "a@x.com", "password": "secret1"})
    assert registered.status_code == 201
    body = registered.json()
    assert body["message"]
    assert body["user"]["status"] == "Pending"
    assert body["user"]["role"] == "User"
    assert "access_token" not in body
    assert "verification_token" not in body["user"]
    assert "credential_hash" not in body["user"]

    token = api.notifier.last_token()
    assert token == api.store.get_by_email("a@x.com").verification_token

    blocked = client.post("/auth/login", json={"email": "a@x.com", "password": "secret1"})
    assert blocked.status_code == 403
    assert "verify your email" in blocked.json()["error"]

    verified = client.get("/auth/verify-email", params={"token": token})
    assert verified.status_code == 200
    assert verified.json()["user"]["status"] == "Active"

    login = client.post("/auth/login", json={"email": "a@x.com", "password": "secret1"})
    assert login.status_code == 200
    session = login.json()
    assert session["token_type"] == "Bearer"
    assert session["expires_in"] == api.settings.jwt_ttl_seconds
    assert session["user"]["email"] == "a@x.com"
    claims = decode_access_token(session["access_token"])
    assert claims["role"] == "User"
    assert claims["email"] == "a@x.com"

    users = client.get("/users", headers=_bearer(session["access_token"]))
    assert users.status_code == 403
    assert users.json()["error"] == "Insufficient permissions. Required roles: SuperAdmin, Admin"


def test_register_validation_errors(api):
    short = api.client.post("/auth/register", json={"email": "short@x.com", "password": "abc"})
    assert short.status_code == 400
    assert "password" in short.json()["error"]

    bad_email = api.client.post("/auth/register", json={"email": "not-an-email", "password": "secret1"})
    assert bad_email.status_code == 400

    missing = api.client.post("/auth/register", json={})
    assert missing.status_code == 400


def test_register_duplicate_returns_conflict(api):
    payload = {"email": "twice@x.com", "password": "secret1"}
    assert api.client.post("/auth/register", json=payload).status_code == 201
    again = api.client.post("/auth/register", json={"email": "TWICE@x.com", "password": "secret1"})
    assert again.status_code == 409
    assert again.json() == {"error": "Email already registered"}


def test_verify_email_with_unknown_token(api):
    response = api.client.get("/auth/verify-email", params={"token": "nope"})
    assert response.status_code == 404
    assert "error" in response.json()


def test_login_with_bad_credentials_is_generic(api):
    api.service.create_account_as_admin("real@x.com", "secret1")
    unknown = api.client.post("/auth/login", json={"email": "ghost@x.com", "password": "secret1"})
    wrong = api.client.post("/auth/login", json={"email": "real@x.com", "password": "secret2"})
    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json() == wrong.json()
    assert unknown.headers["WWW-Authenticate"] == "Bearer"


def test_protected_route_requires_header(api):
    response = api.client.get("/users")
    assert response.status_code == 401
    assert response.json() == {"error": "Authorization header required"}

    basic = api.client.get("/users", headers={"Authorization": "Basic Zm9vOmJhcg=="})
    assert basic.status_code == 401
    assert basic.json() == {"error": "Authorization header required"}


@pytest.mark.parametrize(
    "token",
    [
        "garbage",
        issue_access_token(account_id="x", email="x@x.com", role=Role.ADMIN, ttl_seconds=0)[0],
        issue_access_token(account_id="x", email="x@x.com", role=Role.ADMIN, secret="wrong-secret")[0],
    ],
    ids=["malformed", "expired", "foreign-signature"],
)
def test_protected_route_rejects_invalid_tokens(api, token):
    response = api.client.get("/users", headers=_bearer(token))
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid or expired token"}


def test_admin_lists_and_creates_users(api):
    headers = api.admin_headers("Admin")
    api.client.post("/auth/register", json={"email": "member@x.com", "password": "secret1"})

    listing = api.client.get("/users", headers=headers)
    assert listing.status_code == 200
    emails = {user["email"] for user in listing.json()}
    assert emails == {"admin@example.com", "member@x.com"}
    for user in listing.json():
        assert set(user) == {"id", "email", "role", "status", "created_at", "updated_at"}

    created = api.client.post(
        "/users",
        json={"email": "ops@x.com", "password": "secret1", "role": "Admin"},
        headers=headers,
    )
    assert created.status_code == 201
    assert created.json()["role"] == "Admin"
    assert created.json()["status"] == "Active"
    assert api.notifier.sent[-1].to == "member@x.com"

    login = api.client.post("/auth/login", json={"email": "ops@x.com", "password": "secret1"})
    assert login.status_code == 200


def test_admin_create_defaults_to_user_role(api):
    created = api.client.post(
        "/users", json={"email": "default@x.com", "password": "secret1"}, headers=api.admin_headers()
    )
    assert created.status_code == 201
    assert created.json()["role"] == "User"


def test_admin_create_rejects_invalid_role_and_duplicates(api):
    headers = api.admin_headers()
    invalid = api.client.post(
        "/users", json={"email": "r@x.com", "password": "secret1", "role": "Root"}, headers=headers
    )
    assert invalid.status_code == 400
    assert invalid.json()["error"].startswith("Invalid role")

    duplicate = api.client.post(
        "/users", json={"email": "admin@example.com", "password": "secret1"}, headers=headers
    )
    assert duplicate.status_code == 409


def test_super_admin_is_accepted_on_admin_routes(api):
    headers = api.admin_headers("SuperAdmin")
    assert api.client.get("/users", headers=headers).status_code == 200


def test_delete_user(api):
    headers = api.admin_headers()
    target = api.service.create_account_as_admin("victim@x.com", "secret1")

    deleted = api.client.delete(f"/users/{target.account_id}", headers=headers)
    assert deleted.status_code == 200
    assert deleted.json() == {}

    missing = api.client.delete(f"/users/{target.account_id}", headers=headers)
    assert missing.status_code == 404
    assert api.client.get(f"/users/{target.account_id}", headers=headers).status_code == 404


def test_me_returns_identity_context(api):
    api.service.create_account_as_admin("self@x.com", "secret1")
    token = api.token_for("self@x.com", "secret1")
    response = api.client.get("/auth/me", headers=_bearer(token))
    assert response.status_code == 200
    assert response.json()["email"] == "self@x.com"
    assert response.json()["role"] == "User"


def test_token_keeps_role_from_issuance(api):
    """Tokens are not re-checked against the live account."""
    headers = api.admin_headers()
    admin = api.store.get_by_email("admin@example.com")
    api.service.delete_account(admin.account_id)
    assert api.client.get("/users", headers=headers).status_code == 200


def test_login_is_rate_limited(settings, memory_store, notifier):
    app = create_app(
        settings,
        store=memory_store,
        notifier=notifier,
        rate_limiter=SlidingWindowRateLimiter(max_requests=2, window_seconds=60),
    )
    payload = {"email": "spam@x.com", "password": "secret1"}
    with TestClient(app) as client:
        first = client.post("/auth/login", json=payload)
        second = client.post("/auth/login", json=payload)
        third = client.post("/auth/login", json=payload)

    assert first.status_code == 401
    assert second.status_code == 401
    assert third.status_code == 429
    assert third.json() == {"error": "rate limited"}
    assert int(third.headers["Retry-After"]) >= 1


def test_health_and_metrics(api):
    assert api.client.get("/healthz").json() == {"status": "ok"}
    api.client.post("/auth/login", json={"email": "m@x.com", "password": "secret1"})
    metrics = api.client.get("/metrics")
    assert metrics.status_code == 200
    assert "accessgate_login_attempts_total" in metrics.text


def test_app_signs_and_checks_tokens_with_its_own_issuer(settings, memory_store, notifier):
    app = create_app(
        replace(settings, jwt_issuer="staging-gate"),
        store=memory_store,
        notifier=notifier,
        rate_limiter=SlidingWindowRateLimiter(max_requests=100, window_seconds=60),
    )
    with TestClient(app) as client:
        client.app.state.auth_service.create_account_as_admin("iss@x.com", "secret1")
        token = client.post("/auth/login", json={"email": "iss@x.com", "password": "secret1"}).json()["access_token"]
        assert client.get("/auth/me", headers=_bearer(token)).status_code == 200

        default_issuer = issue_access_token(account_id="x", email="x@x.com", role=Role.USER)[0]
        assert client.get("/auth/me", headers=_bearer(default_issuer)).status_code == 401
