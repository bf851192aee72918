"""Supabase-backed account store (relational backend).

Implements the ``AccountStore`` protocol against a PostgREST table keyed
by ``name``. Used for OCP accounts; any kind can be served this way.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

import httpx

from sandbox_api.app.accounts.model import Account, AccountKind, account_from_record

from .errors import SupabaseError
from .faults import store_fault
from .supabase_client import SupabaseClient

BACKEND = "supabase"
DEFAULT_TABLE = "sandbox.ocp_accounts"


class SupabaseAccountStore:
    """Account reads and the cleanup mark over PostgREST."""

    def __init__(
        self,
        client: SupabaseClient,
        *,
        kind: AccountKind = AccountKind.OCP,
        table: str = DEFAULT_TABLE,
    ) -> None:
        self._client = client
        self._kind = kind
        self._table = table

    async def scan(self, filters: Mapping[str, Any] | None = None) -> list[Account]:
        query = {col: ("eq", value) for col, value in (filters or {}).items()}
        try:
            rows = await self._client.select(self._table, filters=query, order="name.asc")
        except (SupabaseError, httpx.HTTPError) as exc:
            raise store_fault(BACKEND, "scan", exc) from exc
        return [account_from_record(row, self._kind) for row in rows]

    async def get(self, name: str) -> Account | None:
        try:
            rows = await self._select_by_name(name)
        except (SupabaseError, httpx.HTTPError) as exc:
            raise store_fault(BACKEND, "get_account", exc) from exc
        return account_from_record(rows[0], self._kind) if rows else None

    async def mark_for_cleanup(self, name: str) -> bool:
        # The `not.is.true` filter makes the PATCH a no-op for rows that are
        # already marked, so updated_at only moves on the first mark.
        try:
            rows = await self._client.update(
                self._table,
                filters={
                    "name": ("eq", name),
                    "to_cleanup": ("not.is", True),
                },
                data={
                    "to_cleanup": True,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                },
            )
            if rows:
                return True
            existing = await self._select_by_name(name, columns="name")
        except (SupabaseError, httpx.HTTPError) as exc:
            raise store_fault(BACKEND, "mark_for_cleanup", exc) from exc
        return bool(existing)

    async def _select_by_name(self, name: str, *, columns: str = "*") -> list[dict[str, Any]]:
        return await self._client.select(
            self._table,
            filters={"name": ("eq", name)},
            columns=columns,
            limit=1,
        )
