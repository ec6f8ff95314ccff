from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import os


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Runtime configuration values exposed to FastAPI components."""

    app_name: str = "accessgate"
    version: str = "0.1.0"
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    http_host: str = os.getenv("HTTP_HOST", "0.0.0.0")
    http_port: int = int(os.getenv("HTTP_PORT", "8000"))
    app_base_url: str = os.getenv("APP_BASE_URL", "http://localhost:8000")

    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret-change-me")
    jwt_issuer: str = os.getenv("JWT_ISSUER", "accessgate")
    jwt_ttl_seconds: int = int(os.getenv("JWT_TTL_SECONDS", "86400"))
    bcrypt_rounds: int = int(os.getenv("BCRYPT_ROUNDS", "12"))

    record_store_url: str = os.getenv("RECORD_STORE_URL", "")
    record_store_table: str = os.getenv("RECORD_STORE_TABLE", "accounts")
    record_store_timeout_seconds: float = float(os.getenv("RECORD_STORE_TIMEOUT_SECONDS", "5"))

    smtp_host: str = os.getenv("SMTP_HOST", "")
    smtp_port: int = int(os.getenv("SMTP_PORT", "587"))
    smtp_username: str = os.getenv("SMTP_USERNAME", "")
    smtp_password: str = os.getenv("SMTP_PASSWORD", "")
    smtp_use_tls: bool = _env_bool("SMTP_USE_TLS", "true")
    email_from: str = os.getenv("EMAIL_FROM", "no-reply@localhost")
    email_from_name: str = os.getenv("EMAIL_FROM_NAME", "Accessgate")

    rate_limit_requests: int = int(os.getenv("RATE_LIMIT_REQUESTS", "20"))
    rate_limit_window_seconds: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
    rate_limit_backend: str = os.getenv("RATE_LIMIT_BACKEND", "memory").lower()
    redis_url: str = os.getenv("REDIS_URL", "")

    @property
    def email_delivery_configured(self) -> bool:
        return bool(self.smtp_host)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance to avoid repeated environment parsing."""
    return Settings()
