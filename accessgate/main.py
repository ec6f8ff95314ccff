"""FastAPI application wiring for the access service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api.routes import auth_router, users_router
from .config import Settings, get_settings
from .domain.service import AuthService
from .errors import AccessError, RecordStoreError, UnauthorizedError
from .notifications import Notifier, build_notifier
from .security.throttle import RateLimiter, build_rate_limiter
from .store.base import AccountStore
from .store.memory import InMemoryAccountStore
from .store.records import PostgresRecordStore
from .store.tiered import TieredAccountStore

logger = logging.getLogger(__name__)


def _error_response(status_code: int, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


async def _access_error_handler(request: Request, exc: AccessError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request %s %s failed: %r", request.method, request.url.path, exc)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedError) else None
    return _error_response(exc.status_code, exc.message, headers)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{field}: {error.get('msg')}" if field else str(error.get("msg")))
    return _error_response(400, "; ".join(problems) or "invalid request")


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


def install_error_handlers(app: FastAPI) -> None:
    """Render every surfaced error as ``{"error": message}``."""
    app.add_exception_handler(AccessError, _access_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)


def _open_remote_store(settings: Settings) -> tuple[AccountStore, ConnectionPool]:
    pool = ConnectionPool(
        settings.record_store_url,
        open=False,
        timeout=settings.record_store_timeout_seconds,
    )
    pool.open(wait=False)
    remote = PostgresRecordStore(
        pool,
        table=settings.record_store_table,
        timeout_seconds=settings.record_store_timeout_seconds,
    )
    try:
        remote.ensure_schema()
    except RecordStoreError as exc:
        logger.warning("could not verify record store schema, continuing with local mirror: %s", exc)
    logger.info("account store: remote record store with local mirror")
    return TieredAccountStore(InMemoryAccountStore(), remote), pool


def create_app(
    settings: Settings | None = None,
    *,
    store: AccountStore | None = None,
    notifier: Notifier | None = None,
    rate_limiter: RateLimiter | None = None,
) -> FastAPI:
    """Build the application; collaborators left as ``None`` come from configuration."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        pool: ConnectionPool | None = None
        account_store = store
        if account_store is None:
            if settings.record_store_url:
                account_store, pool = _open_remote_store(settings)
            else:
                logger.info("account store: in-memory only")
                account_store = InMemoryAccountStore()
        app.state.settings = settings
        app.state.account_store = account_store
        app.state.auth_service = AuthService(account_store, notifier or build_notifier(settings), settings)
        app.state.rate_limiter = rate_limiter or build_rate_limiter(settings)
        try:
            yield
        finally:
            if pool is not None:
                pool.close()

    app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)
    install_error_handlers(app)

    @app.get("/healthz", tags=["health"])
    def healthz() -> dict[str, str]:
        """Return a minimal readiness indicator used by orchestration systems."""
        return {"status": "ok"}

    @app.get("/metrics", include_in_schema=False)
    def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(auth_router)
    app.include_router(users_router)
    return app


def run() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(create_app(settings), host=settings.http_host, port=settings.http_port)


if __name__ == "__main__":
    run()
