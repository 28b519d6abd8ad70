"""Vault API FastAPI application factory.

The create_app() factory is the single entry point for building the vault
ASGI application. It wires middleware (request-ID, logging, metrics, CORS,
auth guard), the share routes, and injects store implementations via
dependency injection.

Usage:
    # Local development (in-memory stores)
    from phdvault.app import create_app, VaultSettings
    app = create_app(VaultSettings(supabase_jwt_secret="dev-secret"))

    # Non-local (Supabase adapters built from settings)
    app = create_app(VaultSettings.from_env())

    # Testing (full DI control)
    app = create_app(settings, share_repo=repo, record_store=records, ...)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .observability import configure_logging, get_logger, metrics_text
from .observability.middleware import (
    MetricsMiddleware,
    RequestIdMiddleware,
    RequestLoggingMiddleware,
)
from .protocols import AuditSink, RecordStore
from .security import AuthGuardMiddleware, TokenVerifier, create_token_verifier
from .settings import VaultSettings
from .sharing.attempts import NoopPinLimiter, PinAttemptLimiter, SlidingWindowPinLimiter
from .sharing.routes import create_share_router
from .sharing.service import SharingService
from .sharing.store import ShareGrantRepository

logger = get_logger(__name__)


@dataclass(frozen=True)
class AppDependencies:
    """Container for the injected stores.

    Stored on ``app.state.deps`` so route handlers and tests can reach them.
    """

    share_repo: ShareGrantRepository
    record_store: RecordStore
    audit_sink: AuditSink


def _build_inmemory_deps() -> AppDependencies:
    """Construct all-InMemory dependencies for local development."""
    from .inmemory import InMemoryAuditSink, InMemoryRecordStore
    from .sharing.store import InMemoryShareGrantRepository

    return AppDependencies(
        share_repo=InMemoryShareGrantRepository(),
        record_store=InMemoryRecordStore(),
        audit_sink=InMemoryAuditSink(),
    )


def _build_supabase_deps(
    settings: VaultSettings, http_client: httpx.AsyncClient,
) -> AppDependencies:
    """Construct Supabase adapters sharing one PostgREST client."""
    from .db import (
        SupabaseAuditSink,
        SupabaseClient,
        SupabaseRecordStore,
        SupabaseShareGrantRepository,
    )

    client = SupabaseClient(
        supabase_url=settings.supabase_url,
        service_role_key=settings.supabase_service_role_key,
        http_client=http_client,
        timeout_seconds=settings.supabase_timeout_seconds,
    )
    return AppDependencies(
        share_repo=SupabaseShareGrantRepository(client),
        record_store=SupabaseRecordStore(client),
        audit_sink=SupabaseAuditSink(client),
    )


def _build_pin_limiter(settings: VaultSettings) -> PinAttemptLimiter:
    if settings.share_pin_max_failures == 0:
        return NoopPinLimiter()
    return SlidingWindowPinLimiter(
        max_failures=settings.share_pin_max_failures,
        window_seconds=settings.share_pin_window_seconds,
    )


def _register_error_handlers(app: FastAPI) -> None:
    """Keep every error body in the ``{"error", "detail"}`` envelope."""

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        if isinstance(exc.detail, dict):
            content = exc.detail
        else:
            content = {"error": "http_error", "detail": exc.detail}
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content={"error": "invalid_request", "detail": jsonable_encoder(exc.errors())},
        )


# ── Factory ─────────────────────────────────────────────────────────


def create_app(
    settings: VaultSettings | None = None,
    *,
    share_repo: ShareGrantRepository | None = None,
    record_store: RecordStore | None = None,
    audit_sink: AuditSink | None = None,
    token_verifier: TokenVerifier | None = None,
) -> FastAPI:
    """Create a configured vault FastAPI application.

    Args:
        settings: Application settings. Defaults to local-dev settings.
        share_repo, record_store, audit_sink: Store overrides. When None,
            local mode uses InMemory implementations and non-local mode
            builds Supabase adapters from settings.
        token_verifier: Override for Supabase JWT verification.

    Returns:
        Configured FastAPI application ready for uvicorn.run().

    Raises:
        ValueError: If settings validation fails, or no way to verify
            access tokens is configured.
    """
    if settings is None:
        settings = VaultSettings()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "Vault settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    configure_logging(
        level=settings.log_level,
        json_output=settings.log_format == "json",
    )

    if token_verifier is None:
        token_verifier = create_token_verifier(
            supabase_url=settings.supabase_url or None,
            jwt_secret=settings.supabase_jwt_secret or None,
            trust_user_metadata=settings.is_local,
        )

    http_client: httpx.AsyncClient | None = None
    if settings.is_local:
        defaults = _build_inmemory_deps()
    elif share_repo is None or record_store is None or audit_sink is None:
        http_client = httpx.AsyncClient()
        defaults = _build_supabase_deps(settings, http_client)
    else:
        defaults = None

    deps = AppDependencies(
        share_repo=share_repo or defaults.share_repo,
        record_store=record_store or defaults.record_store,
        audit_sink=audit_sink or defaults.audit_sink,
    )

    service = SharingService(
        deps.share_repo,
        deps.record_store,
        deps.audit_sink,
        share_base_url=settings.share_base_url,
        pin_limiter=_build_pin_limiter(settings),
        verify_record_ownership=settings.share_verify_record_ownership,
        default_duration_hours=settings.share_default_hours,
        max_duration_hours=settings.share_max_hours,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("vault_startup", environment=settings.environment)
        try:
            yield
        finally:
            if http_client is not None:
                await http_client.aclose()
            logger.info("vault_shutdown")

    app = FastAPI(
        title="PHD Vault API",
        description="Time-limited sharing of patient records with doctors",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.deps = deps
    app.state.settings = settings
    app.state.sharing = service

    _register_error_handlers(app)

    # ── Middleware stack (last added runs first) ─────────────────
    # Order of execution: RequestID -> logging -> metrics -> CORS -> auth guard -> route

    app.add_middleware(AuthGuardMiddleware, token_verifier=token_verifier)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)

    # ── Routes ──────────────────────────────────────────────────

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "environment": settings.environment,
        }

    @app.get("/metrics")
    async def metrics():
        body, content_type = metrics_text()
        return Response(content=body, media_type=content_type)

    app.include_router(create_share_router(service))

    return app


# For uvicorn, use --factory with a zero-argument wrapper:
#   uvicorn phdvault.app.main:create_app_from_env --factory
def create_app_from_env() -> FastAPI:
    return create_app(VaultSettings.from_env())
