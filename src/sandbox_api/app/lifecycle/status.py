"""Account status resolution.

``StatusResolver.get_status`` answers "what happened to my request?" by
account, not by request: it returns the most recent job of the account.
When several jobs for one account are in flight, a caller may see the
status of a job it did not issue. The returned ``AccountStatus`` carries
the job's ``request_id`` and ``action`` so a caller can compare it with
the ``request_id`` it received on submission.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sandbox_api.app.accounts.model import AccountKind
from sandbox_api.app.accounts.provider import AccountProviderRegistry

from .ledger import LifecycleJobLedger, LifecycleResourceJob


@dataclass(frozen=True, slots=True)
class AccountStatus:
    """Caller-facing projection of the latest job of an account."""

    status: str
    result: Any
    updated_at: datetime
    job_id: int
    request_id: str
    action: str

    @classmethod
    def from_job(cls, job: LifecycleResourceJob) -> AccountStatus:
        return cls(
            status=job.status,
            result=job.result,
            updated_at=job.updated_at,
            job_id=job.id,
            request_id=job.request_id,
            action=job.action,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "result": self.result,
            "updated_at": self.updated_at.isoformat(),
            "job_id": self.job_id,
            "request_id": self.request_id,
            "action": self.action,
        }


class StatusResolver:
    def __init__(
        self,
        providers: AccountProviderRegistry,
        ledger: LifecycleJobLedger,
    ) -> None:
        self._providers = providers
        self._ledger = ledger

    async def get_status(
        self,
        kind: AccountKind | str,
        account_name: str,
    ) -> AccountStatus:
        """Status of the most recent job for an account.

        Raises:
            AccountNotFound: If the account does not exist.
            JobNotFound: If the account has no job history.
        """
        provider = self._providers.get(kind)
        account = await provider.fetch_by_name(account_name)
        job = await self._ledger.read_latest(
            account.name, account.kind.resource_type,
        )
        return AccountStatus.from_job(job)
