"""Storage protocol interfaces for dependency injection.

These protocols define the contracts that concrete store adapters
(InMemory for local dev, DynamoDB and Supabase for non-local) must
satisfy. The app factory accepts any implementation that matches them.

Adapters return ``None``/empty for "no rows" and raise ``StoreError`` for
infrastructure faults; they never mix the two.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping, Protocol, runtime_checkable

if TYPE_CHECKING:
    from sandbox_api.app.accounts.model import Account
    from sandbox_api.app.lifecycle.ledger import LifecycleResourceJob


@runtime_checkable
class AccountStore(Protocol):
    """Backend-specific account reads and the cleanup mark."""

    async def scan(
        self, filters: Mapping[str, Any] | None = None,
    ) -> list[Account]: ...

    async def get(self, name: str) -> Account | None: ...

    async def mark_for_cleanup(self, name: str) -> bool:
        """Set ``to_cleanup``. Returns False when the account is absent."""
        ...


@runtime_checkable
class LifecycleJobRepository(Protocol):
    """Append-only lifecycle job rows with conditional status updates."""

    async def insert(self, job: LifecycleResourceJob) -> LifecycleResourceJob: ...

    async def get(self, job_id: int) -> LifecycleResourceJob | None: ...

    async def update_status(
        self,
        job_id: int,
        *,
        expected_status: str,
        status: str,
        result: Any,
    ) -> LifecycleResourceJob | None:
        """Update only if the row still has ``expected_status``.

        Returns None when no row matched (missing, or moved concurrently).
        """
        ...

    async def get_latest_for_resource(
        self, resource_name: str, resource_type: str | None = None,
    ) -> LifecycleResourceJob | None: ...

    async def list_for_resource(
        self, resource_name: str, resource_type: str | None = None,
    ) -> list[LifecycleResourceJob]: ...

    async def list_by_status(
        self, status: str, *, limit: int = 50,
    ) -> list[LifecycleResourceJob]: ...
