"""Account inventory, cleanup, lifecycle request and status API.

One handler set parameterized by account kind:
  GET  /api/v1/accounts/{kind}                   → list (optional service_uuid)
  GET  /api/v1/accounts/{kind}/{name}            → one account
  PUT  /api/v1/accounts/{kind}/{name}/cleanup    → idempotent cleanup mark
  POST /api/v1/accounts/{kind}/{name}/{action}   → record a lifecycle request
  GET  /api/v1/accounts/{kind}/{name}/status     → latest job of the account
  GET  /api/v1/accounts/{kind}/{name}/jobs       → job history of the account

Domain errors propagate to the application exception handler, which maps
them to HTTP statuses. Lifecycle requests answer 202 with the request ID;
callers then poll the status endpoint.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from sandbox_api.app.accounts.model import AccountKind
from sandbox_api.app.accounts.provider import AccountProviderRegistry
from sandbox_api.app.errors import NotFoundError
from sandbox_api.app.lifecycle.ledger import LifecycleJobLedger
from sandbox_api.app.lifecycle.state_machine import LifecycleAction
from sandbox_api.app.lifecycle.status import StatusResolver
from sandbox_api.app.security.auth_guard import get_auth_identity, require_admin
from sandbox_api.app.security.token_verify import AuthIdentity
from sandbox_api.observability.middleware import current_request_id


def create_accounts_router(
    providers: AccountProviderRegistry,
    ledger: LifecycleJobLedger,
    status_resolver: StatusResolver,
) -> APIRouter:
    """Create the accounts router.

    Args:
        providers: Account providers keyed by kind.
        ledger: Lifecycle job ledger for lifecycle requests.
        status_resolver: Resolves the latest job of an account.
    """
    router = APIRouter(prefix="/api/v1/accounts", tags=["accounts"])

    @router.get("/{kind}")
    async def list_accounts(
        kind: AccountKind,
        service_uuid: str | None = Query(default=None),
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        provider = providers.get(kind)
        # An empty filter lists everything.
        if service_uuid and service_uuid.strip():
            accounts = await provider.fetch_all_by_service_uuid(service_uuid)
        else:
            accounts = await provider.fetch_all()
        if not accounts:
            raise NotFoundError("No accounts found")
        return [a.to_public_dict() for a in accounts]

    @router.get("/{kind}/{name}")
    async def get_account(
        kind: AccountKind,
        name: str,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        account = await providers.get(kind).fetch_by_name(name)
        return account.to_public_dict()

    @router.put("/{kind}/{name}/cleanup")
    async def cleanup_account(
        kind: AccountKind,
        name: str,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        await providers.get(kind).mark_for_cleanup(name)
        return {"message": "Account marked for cleanup"}

    @router.get("/{kind}/{name}/status")
    async def get_account_status(
        kind: AccountKind,
        name: str,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        """Status of the most recent lifecycle job of the account.

        This is not necessarily the job of the caller's own request when
        several are in flight; compare ``request_id``.
        """
        status = await status_resolver.get_status(kind, name)
        return status.to_dict()

    @router.get("/{kind}/{name}/jobs")
    async def list_account_jobs(
        kind: AccountKind,
        name: str,
        identity: AuthIdentity = Depends(require_admin),
    ):
        account = await providers.get(kind).fetch_by_name(name)
        jobs = await ledger.history(account.name, kind.resource_type)
        return {"jobs": [j.to_dict() for j in jobs]}

    @router.post("/{kind}/{name}/{action}")
    async def request_lifecycle_action(
        kind: AccountKind,
        name: str,
        action: LifecycleAction,
        identity: AuthIdentity = Depends(require_admin),
    ):
        """Record a lifecycle request; the worker performs it later."""
        request_id = current_request_id()
        job = await ledger.create(
            kind=kind,
            resource_name=name,
            request_id=request_id,
            action=action,
        )
        return JSONResponse(
            status_code=202,
            content={
                "message": f"{action.value} request created",
                "request_id": request_id,
                "job_id": job.id,
            },
        )

    return router
