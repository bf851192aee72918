"""Shared fixtures: seeded in-memory stores and a fake PostgREST endpoint."""

from __future__ import annotations

import json

import httpx
import pytest

from sandbox_api.app.accounts.model import Account, AccountKind, parse_name_int
from sandbox_api.app.accounts.provider import AccountProvider, AccountProviderRegistry
from sandbox_api.app.inmemory import (
    InMemoryAccountStore,
    InMemoryLifecycleJobRepository,
)
from sandbox_api.app.lifecycle.ledger import LifecycleJobLedger
from sandbox_api.app.lifecycle.status import StatusResolver


def _aws(name: str, **fields) -> Account:
    return Account(name=name, kind=AccountKind.AWS, name_int=parse_name_int(name), **fields)


def _ocp(name: str, **fields) -> Account:
    return Account(name=name, kind=AccountKind.OCP, name_int=parse_name_int(name), **fields)


@pytest.fixture
def aws_store() -> InMemoryAccountStore:
    return InMemoryAccountStore(
        AccountKind.AWS,
        [
            _aws('acct-042', available=True, service_uuid='svc-1', owner='alice'),
            _aws('acct-7', available=False, service_uuid='svc-1'),
            _aws('acct-100', available=True, service_uuid='svc-2',
                 aws_access_key_id='AKIA-TEST', aws_secret_access_key='s3cr3t'),
        ],
    )


@pytest.fixture
def ocp_store() -> InMemoryAccountStore:
    return InMemoryAccountStore(
        AccountKind.OCP,
        [_ocp('ocp-cluster-3', available=True)],
    )


@pytest.fixture
def providers(aws_store, ocp_store) -> AccountProviderRegistry:
    return AccountProviderRegistry({
        AccountKind.AWS: AccountProvider(aws_store, AccountKind.AWS),
        AccountKind.OCP: AccountProvider(ocp_store, AccountKind.OCP),
    })


@pytest.fixture
def job_repo() -> InMemoryLifecycleJobRepository:
    return InMemoryLifecycleJobRepository()


@pytest.fixture
def ledger(job_repo, providers) -> LifecycleJobLedger:
    return LifecycleJobLedger(job_repo, providers)


@pytest.fixture
def status_resolver(providers, ledger) -> StatusResolver:
    return StatusResolver(providers, ledger)


# ── Fake PostgREST ───────────────────────────────────────────────────


class FakePostgrest:
    """Tiny stateful PostgREST stand-in for ``httpx.MockTransport``.

    Supports the subset the adapters use: ``eq``, ``is`` and ``not.is``
    filters, multi-column ``order``, ``limit``, POST and PATCH with
    ``return=representation``. Inserted rows get a bigserial-style ``id``.
    """

    def __init__(self) -> None:
        self.tables: dict[str, list[dict]] = {}
        self.requests: list[httpx.Request] = []
        self.fail_status: int | None = None
        self._next_id = 1

    def seed(self, table: str, *rows: dict) -> None:
        self.tables.setdefault(table, []).extend(dict(r) for r in rows)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))

    @staticmethod
    def _matches(row: dict, column: str, spec: str) -> bool:
        negate = spec.startswith('not.')
        if negate:
            spec = spec[len('not.'):]
        op, _, raw = spec.partition('.')
        value = row.get(column)
        if op == 'eq':
            result = value is not None and str(value) == raw
        elif op == 'is':
            expected = {'null': None, 'true': True, 'false': False}[raw]
            result = value is expected
        else:
            raise AssertionError(f'unsupported operator {op!r}')
        return not result if negate else result

    def _select(self, table: str, params: httpx.QueryParams) -> list[dict]:
        rows = [
            r for r in self.tables.get(table, [])
            if all(
                self._matches(r, col, spec)
                for col, spec in params.multi_items()
                if col not in ('select', 'limit', 'order')
            )
        ]
        order = params.get('order')
        if order:
            for term in reversed(order.split(',')):
                col, _, direction = term.partition('.')
                rows.sort(key=lambda r: r[col], reverse=direction == 'desc')
        if 'limit' in params:
            rows = rows[:int(params['limit'])]
        return rows

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_status is not None:
            return httpx.Response(self.fail_status, json={'message': 'injected failure'})

        table = request.url.path.rsplit('/', 1)[-1]
        if request.method == 'GET':
            return httpx.Response(200, json=self._select(table, request.url.params))
        if request.method == 'POST':
            row = json.loads(request.content)
            row['id'] = self._next_id
            self._next_id += 1
            self.tables.setdefault(table, []).append(row)
            return httpx.Response(201, json=[dict(row)])
        if request.method == 'PATCH':
            patch = json.loads(request.content)
            matched = self._select(table, request.url.params)
            for row in matched:
                row.update(patch)
            return httpx.Response(200, json=[dict(r) for r in matched])
        raise AssertionError(f'unexpected method {request.method}')


@pytest.fixture
def postgrest() -> FakePostgrest:
    return FakePostgrest()
