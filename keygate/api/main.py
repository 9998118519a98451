"""Keygate FastAPI application — entry point for the API server."""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncIterator
from datetime import timedelta

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config.settings import Settings, get_settings
from keygate.api.db.credentials import CredentialRepository
from keygate.api.ratelimit import FixedWindowLimiter, RateLimitMiddleware
from keygate.core.constants import API_VERSION
from keygate.core.exceptions import PersistenceUnavailableError, WebhookVerificationError
from keygate.core.logging import get_logger, setup_logging
from keygate.data.db import close_engine, create_engine, init_schema
from keygate.saas.gate import AccessGate
from keygate.saas.notifier import build_notifier
from keygate.saas.provisioner import Provisioner

log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup/shutdown lifecycle — open the store, wire components, close on exit."""
    settings: Settings = app.state.settings
    setup_logging(settings.log_level, json_output=settings.keygate_env == "prod")
    log.info("api_starting", environment=settings.keygate_env)

    engine = create_engine(settings)
    if settings.auto_create_schema:
        await init_schema(engine)

    repo = CredentialRepository(engine, timeout=settings.store_timeout_seconds)
    ttl = timedelta(days=settings.credential_ttl_days) if settings.credential_ttl_days else None
    app.state.repo = repo
    app.state.gate = AccessGate(repo)
    app.state.provisioner = Provisioner(
        repo,
        build_notifier(settings),
        request_limit=settings.default_request_limit,
        ttl=ttl,
        delivery_timeout=settings.email_delivery_timeout_seconds,
    )
    try:
        yield
    finally:
        await close_engine(engine)
        log.info("api_shutdown")


# ── Error handlers ────────────────────────────────────────────────


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def _webhook_rejected(request: Request, exc: WebhookVerificationError) -> JSONResponse:
    log.info("webhook_rejected", error_type=type(exc).__name__, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": f"Webhook Error: {exc}"},
    )


async def _store_unavailable(request: Request, exc: PersistenceUnavailableError) -> JSONResponse:
    log.error("store_unavailable", path=request.url.path, **exc.context)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "store unavailable"},
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build and return the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Keygate API",
        description="Paid API key issuance and metered access",
        version=API_VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Per-client limit; the payment webhook and health check are exempt
    if settings.rate_limit_max > 0:
        app.add_middleware(
            RateLimitMiddleware,
            limiter=FixedWindowLimiter(settings.rate_limit_max, settings.rate_limit_window_seconds),
            exempt_paths=("/api/webhook", "/api/health"),
        )

    # CORS (outermost, so limiter 429s carry CORS headers)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url, "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, _http_error)  # type: ignore[arg-type]
    app.add_exception_handler(WebhookVerificationError, _webhook_rejected)  # type: ignore[arg-type]
    app.add_exception_handler(PersistenceUnavailableError, _store_unavailable)  # type: ignore[arg-type]

    # Register routers
    from keygate.api.routes.admin import router as admin_router
    from keygate.api.routes.health import router as health_router
    from keygate.api.routes.protected import router as protected_router
    from keygate.api.routes.webhook import router as webhook_router

    app.include_router(health_router, prefix="/api")
    app.include_router(webhook_router, prefix="/api")
    app.include_router(protected_router, prefix="/api")
    app.include_router(admin_router, prefix="/api")

    return app


app = create_app()
