"""Shared fixtures.

Settings are read from the environment at import time, so the overrides below
must run before anything from ``accessgate`` is imported.
"""

from __future__ import annotations

import os

os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("APP_BASE_URL", "http://accounts.test")

from dataclasses import dataclass, field, replace
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from accessgate.config import Settings, get_settings
from accessgate.domain.service import AuthService
from accessgate.main import create_app
from accessgate.notifications import OutboundEmail
from accessgate.security.throttle import SlidingWindowRateLimiter
from accessgate.store.memory import InMemoryAccountStore


class RecordingNotifier:
    """Collects outgoing mail instead of sending it."""

    def __init__(self) -> None:
        self.sent: list[OutboundEmail] = []

    def send(self, message: OutboundEmail) -> None:
        self.sent.append(message)

    def last_token(self) -> str:
        body = self.sent[-1].body
        link = next(line for line in body.splitlines() if "verify-email" in line)
        return parse_qs(urlparse(link.strip()).query)["token"][0]


@dataclass
class Harness:
    client: TestClient
    store: InMemoryAccountStore
    notifier: RecordingNotifier
    settings: Settings = field(default_factory=get_settings)

    @property
    def service(self) -> AuthService:
        return self.client.app.state.auth_service

    def token_for(self, email: str, password: str) -> str:
        response = self.client.post("/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return response.json()["access_token"]

    def admin_headers(self, role: str = "Admin") -> dict[str, str]:
        email = f"{role.lower()}@example.com"
        if self.store.get_by_email(email) is None:
            self.service.create_account_as_admin(email, "admin-pass", role)
        return {"Authorization": f"Bearer {self.token_for(email, 'admin-pass')}"}


@pytest.fixture
def settings() -> Settings:
    return replace(get_settings(), rate_limit_requests=100)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def memory_store() -> InMemoryAccountStore:
    return InMemoryAccountStore()


@pytest.fixture
def service(memory_store, notifier, settings) -> AuthService:
    return AuthService(memory_store, notifier, settings)


@pytest.fixture
def api(settings, memory_store, notifier):
    """Provide a test client over an isolated in-memory store."""
    app = create_app(
        settings,
        store=memory_store,
        notifier=notifier,
        rate_limiter=SlidingWindowRateLimiter(max_requests=100, window_seconds=60),
    )
    with TestClient(app) as client:
        yield Harness(client=client, store=memory_store, notifier=notifier, settings=settings)
