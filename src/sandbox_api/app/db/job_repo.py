"""Supabase-backed lifecycle job repository.

Implements the ``LifecycleJobRepository`` protocol against the
``lifecycle_resource_jobs`` table. ``id`` is a bigserial assigned by the
database, so ids are unique and increase with insertion order.

Status updates are conditional: the PATCH filters on the status the
caller read, so PostgREST turns it into a single
``UPDATE ... WHERE id = $1 AND status = $2``. A writer that lost a race
gets no rows back.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx

from sandbox_api.app.lifecycle.ledger import LifecycleResourceJob

from .errors import SupabaseError
from .faults import store_fault
from .supabase_client import SupabaseClient

BACKEND = "supabase"
DEFAULT_TABLE = "sandbox.lifecycle_resource_jobs"


class SupabaseLifecycleJobRepository:
    def __init__(self, client: SupabaseClient, *, table: str = DEFAULT_TABLE) -> None:
        self._client = client
        self._table = table

    async def insert(self, job: LifecycleResourceJob) -> LifecycleResourceJob:
        try:
            rows = await self._client.insert(self._table, job.to_row())
        except (SupabaseError, httpx.HTTPError) as exc:
            raise store_fault(BACKEND, "insert_job", exc) from exc
        if not rows:
            raise store_fault(BACKEND, "insert_job", RuntimeError("insert returned no rows"))
        return LifecycleResourceJob.from_row(rows[0])

    async def get(self, job_id: int) -> LifecycleResourceJob | None:
        try:
            rows = await self._client.select(
                self._table,
                filters={"id": ("eq", job_id)},
                limit=1,
            )
        except (SupabaseError, httpx.HTTPError) as exc:
            raise store_fault(BACKEND, "get_job", exc) from exc
        return LifecycleResourceJob.from_row(rows[0]) if rows else None

    async def update_status(
        self,
        job_id: int,
        *,
        expected_status: str,
        status: str,
        result: Any,
    ) -> LifecycleResourceJob | None:
        try:
            rows = await self._client.update(
                self._table,
                filters={
                    "id": ("eq", job_id),
                    "status": ("eq", expected_status),
                },
                data={
                    "status": status,
                    "result": result,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                },
            )
        except (SupabaseError, httpx.HTTPError) as exc:
            raise store_fault(BACKEND, "update_job", exc) from exc
        return LifecycleResourceJob.from_row(rows[0]) if rows else None

    async def get_latest_for_resource(
        self, resource_name: str, resource_type: str | None = None,
    ) -> LifecycleResourceJob | None:
        try:
            rows = await self._client.select(
                self._table,
                filters=self._resource_filters(resource_name, resource_type),
                limit=1,
                order="updated_at.desc,id.desc",
            )
        except (SupabaseError, httpx.HTTPError) as exc:
            raise store_fault(BACKEND, "latest_job", exc) from exc
        return LifecycleResourceJob.from_row(rows[0]) if rows else None

    async def list_for_resource(
        self, resource_name: str, resource_type: str | None = None,
    ) -> list[LifecycleResourceJob]:
        """All jobs for an account, newest first."""
        try:
            rows = await self._client.select(
                self._table,
                filters=self._resource_filters(resource_name, resource_type),
                order="created_at.desc,id.desc",
            )
        except (SupabaseError, httpx.HTTPError) as exc:
            raise store_fault(BACKEND, "list_jobs", exc) from exc
        return [LifecycleResourceJob.from_row(row) for row in rows]

    async def list_by_status(
        self, status: str, *, limit: int = 50,
    ) -> list[LifecycleResourceJob]:
        """Jobs in ``status``, oldest first."""
        try:
            rows = await self._client.select(
                self._table,
                filters={"status": ("eq", status)},
                limit=limit,
                order="created_at.asc,id.asc",
            )
        except (SupabaseError, httpx.HTTPError) as exc:
            raise store_fault(BACKEND, "list_jobs", exc) from exc
        return [LifecycleResourceJob.from_row(row) for row in rows]

    @staticmethod
    def _resource_filters(
        resource_name: str, resource_type: str | None,
    ) -> dict[str, tuple[str, Any]]:
        filters: dict[str, tuple[str, Any]] = {"resource_name": ("eq", resource_name)}
        if resource_type is not None:
            filters["resource_type"] = ("eq", resource_type)
        return filters
