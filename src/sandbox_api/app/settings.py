"""Sandbox API configuration settings.

SandboxApiSettings is the single configuration object accepted by create_app().
It is intentionally a plain dataclass (not env-coupled) so tests can inject config
without touching os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

BACKEND_DYNAMODB = "dynamodb"
BACKEND_SUPABASE = "supabase"
BACKEND_MEMORY = "memory"
ACCOUNT_BACKENDS: frozenset[str] = frozenset({BACKEND_DYNAMODB, BACKEND_SUPABASE, BACKEND_MEMORY})


@dataclass(frozen=True, slots=True)
class SandboxApiSettings:
    """Configuration for the sandbox API FastAPI application.

    All fields have sensible defaults for local development.
    Non-local environments must supply the JWT secret and real store
    locations.
    """

    # ── Environment ────────────────────────────────────────────────
    environment: str = "local"
    """One of: local, dev, staging, production."""

    # ── Auth ───────────────────────────────────────────────────────
    jwt_auth_secret: str = ""
    """HS256 secret for bearer tokens. Never log this."""

    # ── Account backends (per kind) ────────────────────────────────
    aws_account_backend: str = ""
    """Store for AWS accounts: dynamodb, supabase or memory.
    Empty means memory in local, dynamodb elsewhere."""

    ocp_account_backend: str = ""
    """Store for OCP accounts: dynamodb, supabase or memory.
    Empty means memory in local, supabase elsewhere."""

    # ── DynamoDB ───────────────────────────────────────────────────
    dynamodb_table: str = "accounts"
    dynamodb_region: str = "us-east-1"
    dynamodb_endpoint_url: str = ""
    """Override endpoint, e.g. DynamoDB Local."""

    # ── Supabase ───────────────────────────────────────────────────
    supabase_url: str = ""
    """Supabase project URL (e.g. https://xyz.supabase.co)."""

    supabase_service_role_key: str = ""
    """Supabase service-role key for PostgREST calls. Never log this."""

    accounts_table: str = "sandbox.ocp_accounts"
    jobs_table: str = "sandbox.lifecycle_resource_jobs"

    # ── Pools and timeouts ─────────────────────────────────────────
    db_max_connections: int = 10
    store_timeout_seconds: float = 10.0

    # ── Server ─────────────────────────────────────────────────────
    port: int = 8080

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    def account_backends(self) -> dict[str, str]:
        """Resolved backend per account kind value."""
        if self.is_local:
            aws_default = ocp_default = BACKEND_MEMORY
        else:
            aws_default, ocp_default = BACKEND_DYNAMODB, BACKEND_SUPABASE
        return {
            "aws": self.aws_account_backend or aws_default,
            "ocp": self.ocp_account_backend or ocp_default,
        }

    def uses_supabase(self) -> bool:
        """Jobs always persist in Supabase outside local."""
        if not self.is_local:
            return True
        return BACKEND_SUPABASE in self.account_backends().values()

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        for kind, backend in self.account_backends().items():
            if backend not in ACCOUNT_BACKENDS:
                errors.append(
                    f"{kind}_account_backend must be one of "
                    f"{', '.join(sorted(ACCOUNT_BACKENDS))} (got {backend!r})"
                )
        if self.db_max_connections < 1:
            errors.append("db_max_connections must be >= 1")
        if self.store_timeout_seconds <= 0:
            errors.append("store_timeout_seconds must be > 0")

        if not self.is_local:
            if not self.jwt_auth_secret:
                errors.append(f"{self.environment}: jwt_auth_secret is required")
            for kind, backend in self.account_backends().items():
                if backend == BACKEND_MEMORY:
                    errors.append(
                        f"{self.environment}: {kind}_account_backend cannot be memory"
                    )
        if self.uses_supabase():
            if not self.supabase_url:
                errors.append(f"{self.environment}: supabase_url is required")
            if not self.supabase_service_role_key:
                errors.append(
                    f"{self.environment}: supabase_service_role_key is required"
                )
        return errors

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> SandboxApiSettings:
        """Build settings from environment variables.

        This is a convenience factory for production use. Tests should
        construct SandboxApiSettings directly.
        """
        if env is None:
            env = dict(os.environ)

        return cls(
            environment=env.get("ENVIRONMENT", "local"),
            # Secrets pasted into env files often carry a trailing newline.
            jwt_auth_secret=env.get("JWT_AUTH_SECRET", "").strip(),
            aws_account_backend=env.get("AWS_ACCOUNT_BACKEND", ""),
            ocp_account_backend=env.get("OCP_ACCOUNT_BACKEND", ""),
            dynamodb_table=env.get("DYNAMODB_TABLE") or env.get("dynamodb_table") or "accounts",
            dynamodb_region=env.get("AWS_REGION", "us-east-1"),
            dynamodb_endpoint_url=env.get("DYNAMODB_ENDPOINT_URL", ""),
            supabase_url=env.get("SUPABASE_URL", ""),
            supabase_service_role_key=env.get("SUPABASE_SERVICE_ROLE_KEY", "").strip(),
            accounts_table=env.get("ACCOUNTS_TABLE", "sandbox.ocp_accounts"),
            jobs_table=env.get("JOBS_TABLE", "sandbox.lifecycle_resource_jobs"),
            db_max_connections=int(env.get("DB_MAX_CONNECTIONS", "10")),
            store_timeout_seconds=float(env.get("STORE_TIMEOUT_SECONDS", "10.0")),
            port=int(env.get("PORT", "8080")),
        )
