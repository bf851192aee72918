"""Async PostgREST client for the relational sandbox store.

Both the relational account store and the lifecycle job repository talk to
PostgREST only through this class. The ``httpx.AsyncClient`` is built once
by the app factory (``create_http_pool``) and injected, so every
repository shares one bounded pool that is closed on shutdown.

Filters are given as ``{column: (op, value)}`` or ``{column: value}``
(meaning ``eq``). Supported operators are the ones the adapters use:
``eq``, ``neq``, ``is`` and ``not.is``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

import httpx

from .errors import SupabaseError, error_from_response

Filters = Mapping[str, Any]

_WRITE_METHODS = frozenset({"POST", "PATCH"})
_OPERATORS = frozenset({"eq", "neq", "is", "not.is"})


def create_http_pool(
    *,
    max_connections: int = 10,
    timeout_seconds: float = 10.0,
) -> httpx.AsyncClient:
    """Build the bounded connection pool used for PostgREST calls."""
    return httpx.AsyncClient(
        limits=httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_connections,
        ),
        timeout=timeout_seconds,
    )


@dataclass(frozen=True, slots=True)
class TableRef:
    """A ``schema.table`` name split for PostgREST.

    The schema travels in the Accept-Profile/Content-Profile headers, only
    the table name goes in the path.
    """

    schema: str
    name: str

    @classmethod
    def parse(cls, table: str, default_schema: str) -> TableRef:
        schema, _, name = table.rpartition(".")
        return cls(schema.strip() or default_schema, name.strip())

    def profile_headers(self, method: str) -> dict[str, str]:
        headers = {"Accept-Profile": self.schema}
        if method in _WRITE_METHODS:
            headers["Content-Profile"] = self.schema
        return headers


def _literal(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _query_params(filters: Filters | None) -> dict[str, str]:
    params: dict[str, str] = {}
    for column, condition in (filters or {}).items():
        op, value = condition if isinstance(condition, tuple) else ("eq", condition)
        if op not in _OPERATORS:
            raise ValueError(f"unsupported PostgREST operator: {op!r}")
        if value is None and op in ("eq", "neq"):
            raise ValueError(f"{op} cannot match NULL; use ('is', None)")
        params[column] = f"{op}.{_literal(value)}"
    return params


class SupabaseClient:
    """Service-role PostgREST client returning plain row dicts."""

    def __init__(
        self,
        *,
        supabase_url: str,
        service_role_key: str,
        http_client: httpx.AsyncClient,
        default_schema: str = "public",
        timeout_seconds: float = 10.0,
    ) -> None:
        if not supabase_url:
            raise ValueError("supabase_url is required")
        if not service_role_key:
            raise ValueError("service_role_key is required")

        self._rest_url = supabase_url.rstrip("/") + "/rest/v1"
        self._service_role_key = service_role_key
        self._default_schema = default_schema or "public"
        self._timeout_seconds = float(timeout_seconds)
        self._http = http_client

    async def _send(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, str] | None = None,
        body: Any = None,
    ) -> list[dict[str, Any]]:
        ref = TableRef.parse(table, self._default_schema)
        # Never log these headers.
        headers = {
            "apikey": self._service_role_key,
            "Authorization": f"Bearer {self._service_role_key}",
            **ref.profile_headers(method),
        }
        if method in _WRITE_METHODS:
            headers["Prefer"] = "return=representation"

        resp = await self._http.request(
            method,
            f"{self._rest_url}/{ref.name}",
            params=params,
            json=body,
            headers=headers,
            timeout=self._timeout_seconds,
        )
        if resp.is_error:
            raise error_from_response(resp)

        rows = resp.json()
        if not isinstance(rows, list):
            raise SupabaseError(
                status_code=502,
                message=f"{method} {ref.name} returned {type(rows).__name__}, expected rows",
            )
        return rows

    async def select(
        self,
        table: str,
        filters: Filters | None = None,
        *,
        columns: str = "*",
        limit: int | None = None,
        order: str | None = None,
    ) -> list[dict[str, Any]]:
        params = _query_params(filters)
        params["select"] = columns
        if limit is not None:
            params["limit"] = str(int(limit))
        if order:
            params["order"] = order
        return await self._send("GET", table, params=params)

    async def insert(self, table: str, data: Mapping[str, Any]) -> list[dict[str, Any]]:
        return await self._send("POST", table, body=dict(data))

    async def update(
        self,
        table: str,
        filters: Filters | None,
        data: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        """PATCH every row matching ``filters`` and return the changed rows.

        Filter and write run as one UPDATE statement, so filtering on the
        current value makes the write conditional. An empty result means
        no row matched.
        """
        if not filters:
            raise ValueError("update requires at least one filter")
        return await self._send(
            "PATCH", table, params=_query_params(filters), body=dict(data),
        )
