"""Sandbox API FastAPI application factory.

The create_app() factory is the single entry point for building the sandbox
API ASGI application. It wires middleware (request-ID, telemetry, auth
guard), the domain exception handler and the routers, and injects the
account providers and the job repository.

Store clients (the PostgREST connection pool and the DynamoDB client) are
built here from settings and handed to the adapters; nothing holds a
module-level client.

Usage:
    # Local development (in-memory stores)
    from sandbox_api.app import create_app, SandboxApiSettings
    app = create_app(SandboxApiSettings())

    # Non-local (stores built from settings)
    app = create_app(SandboxApiSettings.from_env())

    # Testing (full DI control)
    app = create_app(settings, providers=registry, job_repo=repo)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, Response

from sandbox_api.observability.logging import configure_logging, get_logger
from sandbox_api.observability.metrics import metrics_text
from sandbox_api.observability.middleware import (
    RequestIdMiddleware,
    RequestTelemetryMiddleware,
    current_request_id,
)

from .accounts.model import AccountKind
from .accounts.provider import AccountProvider, AccountProviderRegistry
from .errors import InternalError, SandboxApiError
from .lifecycle.ledger import LifecycleJobLedger
from .lifecycle.state_machine import LifecycleAction
from .lifecycle.status import StatusResolver
from .protocols import AccountStore, LifecycleJobRepository
from .routes.accounts import create_accounts_router
from .routes.jobs import create_jobs_router
from .security.auth_guard import AuthGuardMiddleware, get_auth_identity
from .security.token_verify import AuthIdentity, TokenVerifier
from .settings import (
    BACKEND_DYNAMODB,
    BACKEND_SUPABASE,
    SandboxApiSettings,
)

logger = get_logger(__name__)

# Only reachable in ENVIRONMENT=local, where validate() allows an empty secret.
LOCAL_DEV_JWT_SECRET = "local-dev-secret-not-for-production"


@dataclass(frozen=True)
class AppDependencies:
    """Container for all injected services.

    Stored on ``app.state.deps`` so route handlers and tests can reach them.
    """

    providers: AccountProviderRegistry
    job_repo: LifecycleJobRepository
    ledger: LifecycleJobLedger
    status_resolver: StatusResolver


@dataclass
class _StoreClients:
    """Lazily built backend clients shared by the adapters."""

    settings: SandboxApiSettings
    http_pool: httpx.AsyncClient | None = None
    supabase: object | None = None
    dynamodb: object | None = None

    def get_supabase(self):
        if self.supabase is None:
            from .db.supabase_client import SupabaseClient, create_http_pool

            self.http_pool = create_http_pool(
                max_connections=self.settings.db_max_connections,
                timeout_seconds=self.settings.store_timeout_seconds,
            )
            self.supabase = SupabaseClient(
                supabase_url=self.settings.supabase_url,
                service_role_key=self.settings.supabase_service_role_key,
                http_client=self.http_pool,
                timeout_seconds=self.settings.store_timeout_seconds,
            )
        return self.supabase

    def get_dynamodb(self):
        if self.dynamodb is None:
            from .db.dynamodb_store import create_dynamodb_client

            self.dynamodb = create_dynamodb_client(
                region_name=self.settings.dynamodb_region,
                endpoint_url=self.settings.dynamodb_endpoint_url,
                timeout_seconds=self.settings.store_timeout_seconds,
            )
        return self.dynamodb


def _build_account_store(
    kind: AccountKind,
    backend: str,
    clients: _StoreClients,
) -> AccountStore:
    settings = clients.settings
    if backend == BACKEND_DYNAMODB:
        from .db.dynamodb_store import DynamoDBAccountStore

        return DynamoDBAccountStore(
            clients.get_dynamodb(),
            table_name=settings.dynamodb_table,
            kind=kind,
            timeout_seconds=settings.store_timeout_seconds,
        )
    if backend == BACKEND_SUPABASE:
        from .db.account_store import SupabaseAccountStore

        return SupabaseAccountStore(
            clients.get_supabase(),
            kind=kind,
            table=settings.accounts_table,
        )

    from .inmemory import InMemoryAccountStore

    return InMemoryAccountStore(kind)


def _build_providers(clients: _StoreClients) -> AccountProviderRegistry:
    backends = clients.settings.account_backends()
    providers = {}
    for kind in AccountKind:
        store = _build_account_store(kind, backends[kind.value], clients)
        providers[kind] = AccountProvider(store, kind)
    return AccountProviderRegistry(providers)


def _build_job_repo(clients: _StoreClients) -> LifecycleJobRepository:
    if clients.settings.is_local:
        from .inmemory import InMemoryLifecycleJobRepository

        return InMemoryLifecycleJobRepository()

    from .db.job_repo import SupabaseLifecycleJobRepository

    return SupabaseLifecycleJobRepository(
        clients.get_supabase(),
        table=clients.settings.jobs_table,
    )


# ── Error handling ──────────────────────────────────────────────────


def _error_response(request: Request, status_code: int, error: str, detail: str) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None) or current_request_id()
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "detail": detail, "request_id": request_id},
    )


async def _handle_domain_error(request: Request, exc: SandboxApiError) -> JSONResponse:
    if isinstance(exc, InternalError):
        logger.error(
            "request_failed",
            error_type=type(exc).__name__,
            error=str(exc),
            path=request.url.path,
        )
    return _error_response(request, exc.status_code, exc.code, exc.public_message)


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", path=request.url.path)
    return _error_response(request, 500, "internal_error", "Internal error")


# ── Factory ─────────────────────────────────────────────────────────


def create_app(
    settings: SandboxApiSettings | None = None,
    *,
    providers: AccountProviderRegistry | None = None,
    job_repo: LifecycleJobRepository | None = None,
) -> FastAPI:
    """Create a configured sandbox API FastAPI application.

    Args:
        settings: Application settings. Defaults to local-dev settings.
        providers: Account providers override. When None, one provider per
            kind is built from the configured backends.
        job_repo: Job repository override. When None, local mode uses the
            in-memory repository and other environments use Supabase.

    Returns:
        Configured FastAPI application ready for uvicorn.run().

    Raises:
        ValueError: If settings validation fails.
    """
    if settings is None:
        settings = SandboxApiSettings()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "Sandbox API settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    clients = _StoreClients(settings)
    if providers is None:
        providers = _build_providers(clients)
    if job_repo is None:
        job_repo = _build_job_repo(clients)

    ledger = LifecycleJobLedger(job_repo, providers)
    deps = AppDependencies(
        providers=providers,
        job_repo=job_repo,
        ledger=ledger,
        status_resolver=StatusResolver(providers, ledger),
    )

    jwt_secret = settings.jwt_auth_secret
    if not jwt_secret:
        logger.warning("jwt_auth_secret_missing_using_local_default")
        jwt_secret = LOCAL_DEV_JWT_SECRET

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "sandbox_api_startup",
            environment=settings.environment,
            account_backends=settings.account_backends(),
        )
        yield
        if clients.http_pool is not None:
            await clients.http_pool.aclose()
        logger.info("sandbox_api_shutdown")

    app = FastAPI(
        title="Sandbox API",
        description="Sandbox account inventory and lifecycle orchestration API",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.deps = deps
    app.state.settings = settings

    app.add_exception_handler(SandboxApiError, _handle_domain_error)
    app.add_exception_handler(Exception, _handle_unexpected_error)

    # ── Middleware stack (applied in reverse order) ──────────────
    # Order of execution: RequestID -> Telemetry -> AuthGuard -> route
    app.add_middleware(
        AuthGuardMiddleware,
        token_verifier=TokenVerifier(jwt_secret),
    )
    app.add_middleware(
        RequestTelemetryMiddleware,
        account_kinds=[k.value for k in AccountKind],
        account_suffixes=["status", "jobs", *(a.value for a in LifecycleAction)],
    )
    app.add_middleware(RequestIdMiddleware)

    # ── Routes ──────────────────────────────────────────────────

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "environment": settings.environment,
        }

    @app.get("/ping")
    async def ping():
        return Response(content=".", media_type="text/plain")

    @app.get("/metrics")
    async def metrics():
        body, content_type = metrics_text()
        return Response(content=body, media_type=content_type)

    @app.get("/api/v1/health")
    async def api_health(identity: AuthIdentity = Depends(get_auth_identity)):
        return {
            "status": "ok",
            "account_kinds": [k.value for k in providers.kinds()],
        }

    app.include_router(
        create_accounts_router(providers, ledger, deps.status_resolver)
    )
    app.include_router(create_jobs_router(ledger))

    return app


def create_app_from_env() -> FastAPI:
    """Build the app from environment variables, with logging configured."""
    configure_logging()
    return create_app(SandboxApiSettings.from_env())


# For uvicorn, use --factory flag:
#   uvicorn sandbox_api.app.main:create_app_from_env --factory
# This avoids executing create_app() at import time.
