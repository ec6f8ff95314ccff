"""Prometheus instruments exported on ``/metrics``."""

from __future__ import annotations

from prometheus_client import Counter

LOGIN_ATTEMPTS = Counter(
    "accessgate_login_attempts_total",
    "Login attempts grouped by outcome.",
    ["outcome"],
)

REGISTRATIONS = Counter(
    "accessgate_registrations_total",
    "Accounts created, grouped by creation path.",
    ["path"],
)

STORE_FALLBACKS = Counter(
    "accessgate_store_fallbacks_total",
    "Remote record store calls that failed and were served by the local mirror.",
    ["operation"],
)
