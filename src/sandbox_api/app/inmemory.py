"""In-memory store implementations for local development and tests.

These are used when ENVIRONMENT=local. They satisfy the protocol
interfaces but keep everything in dicts (no persistence across restarts).

Every method body runs without awaiting, so on a single event loop each
call is atomic, which gives the same guarantees as the conditional
updates of the real stores.
"""

from __future__ import annotations

import copy
import itertools
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from sandbox_api.app.accounts.model import Account, AccountKind
from sandbox_api.app.lifecycle.ledger import LifecycleResourceJob


class InMemoryAccountStore:
    def __init__(
        self,
        kind: AccountKind,
        accounts: Iterable[Account] = (),
    ) -> None:
        self._kind = kind
        self._accounts: dict[str, Account] = {}
        for account in accounts:
            self.add(account)

    def add(self, account: Account) -> Account:
        """Seed an account (provisioning happens out of band)."""
        if account.kind is not self._kind:
            raise ValueError(
                f"cannot store {account.kind.value!r} account in "
                f"{self._kind.value!r} store"
            )
        self._accounts[account.name] = account
        return account

    async def scan(
        self, filters: Mapping[str, Any] | None = None,
    ) -> list[Account]:
        matches = []
        for account in self._accounts.values():
            if filters and any(
                getattr(account, key, None) != value
                for key, value in filters.items()
            ):
                continue
            matches.append(copy.copy(account))
        return matches

    async def get(self, name: str) -> Account | None:
        account = self._accounts.get(name)
        return copy.copy(account) if account is not None else None

    async def mark_for_cleanup(self, name: str) -> bool:
        account = self._accounts.get(name)
        if account is None:
            return False
        if not account.to_cleanup:
            account.to_cleanup = True
            account.updated_at = datetime.now(timezone.utc)
        return True


class InMemoryLifecycleJobRepository:
    def __init__(self) -> None:
        self._jobs: dict[int, LifecycleResourceJob] = {}
        self._ids = itertools.count(1)

    async def insert(self, job: LifecycleResourceJob) -> LifecycleResourceJob:
        stored = replace(job, id=next(self._ids))
        self._jobs[stored.id] = stored
        return replace(stored)

    async def get(self, job_id: int) -> LifecycleResourceJob | None:
        job = self._jobs.get(job_id)
        return replace(job) if job is not None else None

    async def update_status(
        self,
        job_id: int,
        *,
        expected_status: str,
        status: str,
        result: Any,
    ) -> LifecycleResourceJob | None:
        job = self._jobs.get(job_id)
        if job is None or job.status != expected_status:
            return None
        job.status = status
        job.result = result
        job.updated_at = datetime.now(timezone.utc)
        return replace(job)

    async def get_latest_for_resource(
        self, resource_name: str, resource_type: str | None = None,
    ) -> LifecycleResourceJob | None:
        matches = self._for_resource(resource_name, resource_type)
        if not matches:
            return None
        return replace(max(matches, key=lambda j: (j.updated_at, j.id)))

    async def list_for_resource(
        self, resource_name: str, resource_type: str | None = None,
    ) -> list[LifecycleResourceJob]:
        matches = self._for_resource(resource_name, resource_type)
        return [
            replace(j)
            for j in sorted(
                matches, key=lambda j: (j.created_at, j.id), reverse=True,
            )
        ]

    async def list_by_status(
        self, status: str, *, limit: int = 50,
    ) -> list[LifecycleResourceJob]:
        matches = [j for j in self._jobs.values() if j.status == status]
        matches.sort(key=lambda j: (j.created_at, j.id))
        return [replace(j) for j in matches[:limit]]

    def _for_resource(
        self, resource_name: str, resource_type: str | None,
    ) -> list[LifecycleResourceJob]:
        return [
            j for j in self._jobs.values()
            if j.resource_name == resource_name
            and (resource_type is None or j.resource_type == resource_type)
        ]
