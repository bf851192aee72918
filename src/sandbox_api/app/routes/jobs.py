"""Lifecycle job API for the external worker.

  GET   /api/v1/jobs?status=new&limit=50  → jobs in a status, oldest first
  GET   /api/v1/jobs/{job_id}             → one job
  PATCH /api/v1/jobs/{job_id}             → advance a job (worker write path)

All endpoints are admin-only.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from sandbox_api.app.lifecycle.ledger import LifecycleJobLedger
from sandbox_api.app.lifecycle.state_machine import JobStatus
from sandbox_api.app.security.auth_guard import require_admin
from sandbox_api.app.security.token_verify import AuthIdentity

MAX_LIST_LIMIT = 500


class AdvanceJobRequest(BaseModel):
    status: JobStatus
    result: Any = Field(
        default=None,
        description="Outcome payload, usually set with a terminal status.",
    )


def create_jobs_router(ledger: LifecycleJobLedger) -> APIRouter:
    router = APIRouter(prefix="/api/v1/jobs", tags=["jobs"])

    @router.get("")
    async def list_jobs(
        status: JobStatus = Query(default=JobStatus.NEW),
        limit: int = Query(default=50, ge=1, le=MAX_LIST_LIMIT),
        identity: AuthIdentity = Depends(require_admin),
    ):
        jobs = await ledger.list_by_status(status, limit=limit)
        return {"jobs": [j.to_dict() for j in jobs]}

    @router.get("/{job_id}")
    async def get_job(
        job_id: int,
        identity: AuthIdentity = Depends(require_admin),
    ):
        job = await ledger.get(job_id)
        return job.to_dict()

    @router.patch("/{job_id}")
    async def advance_job(
        job_id: int,
        body: AdvanceJobRequest,
        identity: AuthIdentity = Depends(require_admin),
    ):
        job = await ledger.advance(job_id, body.status, body.result)
        return job.to_dict()

    return router
