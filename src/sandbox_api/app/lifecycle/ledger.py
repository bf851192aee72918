"""Lifecycle job ledger.

The ledger owns ``LifecycleResourceJob`` rows. The API process creates
them; the external worker advances them. It enforces:

  1. A job can only be created for an account that exists at creation
     time (resolved through the account provider for its kind). A failed
     lookup inserts nothing.
  2. Status writes follow the state machine in ``state_machine``.
  3. Concurrent writers never both win: every status write is a
     conditional update on the status the writer read. A writer that
     loses the race gets ``InvalidJobTransition``. No lock is held.

Rows are never deleted; the history of an account is every job ever
created for it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from sandbox_api.app.accounts.model import AccountKind
from sandbox_api.app.accounts.provider import AccountProviderRegistry
from sandbox_api.app.errors import JobNotFound
from sandbox_api.app.protocols import LifecycleJobRepository
from sandbox_api.observability.logging import get_logger
from sandbox_api.observability.metrics import LIFECYCLE_JOBS_TOTAL

from .state_machine import (
    InvalidJobTransition,
    JobStatus,
    LifecycleAction,
    ensure_transition,
)

logger = get_logger(__name__)


# ── Domain record ────────────────────────────────────────────────────


@dataclass
class LifecycleResourceJob:
    """Row-level representation of a lifecycle_resource_jobs row."""

    id: int
    resource_type: str
    resource_name: str
    request_id: str
    action: str
    status: str = JobStatus.NEW.value
    result: Any = None
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    def to_row(self) -> dict[str, Any]:
        """Insert payload; ``id`` is assigned by the store."""
        return {
            "resource_type": self.resource_type,
            "resource_name": self.resource_name,
            "request_id": self.request_id,
            "action": self.action,
            "status": self.status,
            "result": self.result,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, **self.to_row()}

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> LifecycleResourceJob:
        return cls(
            id=int(row["id"]),
            resource_type=row["resource_type"],
            resource_name=row["resource_name"],
            request_id=row.get("request_id") or "",
            action=row["action"],
            status=row["status"],
            result=row.get("result"),
            created_at=_parse_timestamp(row["created_at"]),
            updated_at=_parse_timestamp(row["updated_at"]),
        )


def _parse_timestamp(value: datetime | str) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


# ── Ledger ───────────────────────────────────────────────────────────


class LifecycleJobLedger:
    """Creates, advances and reads lifecycle jobs."""

    def __init__(
        self,
        repo: LifecycleJobRepository,
        providers: AccountProviderRegistry,
    ) -> None:
        self._repo = repo
        self._providers = providers

    async def create(
        self,
        *,
        kind: AccountKind | str,
        resource_name: str,
        request_id: str,
        action: LifecycleAction | str,
    ) -> LifecycleResourceJob:
        """Record a lifecycle request for an existing account.

        The action itself is not performed here; the job is picked up by
        the worker.

        Raises:
            AccountNotFound: If the account does not exist. Nothing is
                inserted.
            AccountKindNotConfigured: If no provider serves ``kind``.
        """
        action = LifecycleAction(action)
        provider = self._providers.get(kind)
        account = await provider.fetch_by_name(resource_name)

        now = datetime.now(timezone.utc)
        job = await self._repo.insert(
            LifecycleResourceJob(
                id=0,
                resource_type=account.kind.resource_type,
                resource_name=account.name,
                request_id=request_id,
                action=action.value,
                status=JobStatus.NEW.value,
                created_at=now,
                updated_at=now,
            )
        )
        LIFECYCLE_JOBS_TOTAL.labels(
            action=job.action, status=job.status,
        ).inc()
        logger.info(
            "lifecycle_job_created",
            job_id=job.id,
            resource_type=job.resource_type,
            resource_name=job.resource_name,
            action=job.action,
            lifecycle_request_id=job.request_id,
        )
        return job

    async def advance(
        self,
        job_id: int,
        status: JobStatus | str,
        result: Any = None,
    ) -> LifecycleResourceJob:
        """Worker write path: move a job one step forward.

        Raises:
            JobNotFound: If the job does not exist.
            InvalidJobTransition: If the write is illegal for the current
                status, or another writer changed the status first.
        """
        current = await self._repo.get(job_id)
        if current is None:
            raise JobNotFound(job_id=job_id)

        target = ensure_transition(current.status, status)
        updated = await self._repo.update_status(
            job_id,
            expected_status=current.status,
            status=target.value,
            result=result,
        )
        if updated is None:
            # Conditional update matched nothing: the row moved (or
            # vanished) between the read and the write.
            latest = await self._repo.get(job_id)
            if latest is None:
                raise JobNotFound(job_id=job_id)
            logger.warning(
                "lifecycle_job_transition_lost_race",
                job_id=job_id,
                expected_status=current.status,
                actual_status=latest.status,
                requested_status=target.value,
            )
            raise InvalidJobTransition(latest.status, target.value)

        LIFECYCLE_JOBS_TOTAL.labels(
            action=updated.action, status=updated.status,
        ).inc()
        logger.info(
            "lifecycle_job_advanced",
            job_id=job_id,
            from_status=current.status,
            to_status=updated.status,
        )
        return updated

    async def get(self, job_id: int) -> LifecycleResourceJob:
        job = await self._repo.get(job_id)
        if job is None:
            raise JobNotFound(job_id=job_id)
        return job

    async def read_latest(
        self,
        resource_name: str,
        resource_type: str | None = None,
    ) -> LifecycleResourceJob:
        """Most recently updated job for an account (ties: highest id).

        Raises:
            JobNotFound: If the account has no job history.
        """
        job = await self._repo.get_latest_for_resource(
            resource_name, resource_type,
        )
        if job is None:
            raise JobNotFound(resource_name=resource_name)
        return job

    async def history(
        self,
        resource_name: str,
        resource_type: str | None = None,
    ) -> list[LifecycleResourceJob]:
        return await self._repo.list_for_resource(resource_name, resource_type)

    async def pending(self, *, limit: int = 50) -> list[LifecycleResourceJob]:
        """Jobs still in ``new``, oldest first, for the worker to consume."""
        return await self._repo.list_by_status(JobStatus.NEW.value, limit=limit)

    async def list_by_status(
        self, status: JobStatus | str, *, limit: int = 50,
    ) -> list[LifecycleResourceJob]:
        return await self._repo.list_by_status(
            JobStatus(status).value, limit=limit,
        )
