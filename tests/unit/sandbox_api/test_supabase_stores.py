"""Tests for the PostgREST-backed account store and lifecycle job repository."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from sandbox_api.app.accounts.model import AccountKind
from sandbox_api.app.accounts.provider import AccountProvider, AccountProviderRegistry
from sandbox_api.app.db.account_store import SupabaseAccountStore
from sandbox_api.app.db.job_repo import SupabaseLifecycleJobRepository
from sandbox_api.app.db.supabase_client import SupabaseClient
from sandbox_api.app.errors import StoreError
from sandbox_api.app.lifecycle.ledger import LifecycleJobLedger, LifecycleResourceJob
from sandbox_api.app.lifecycle.state_machine import InvalidJobTransition

ACCOUNTS = 'ocp_accounts'
JOBS = 'lifecycle_resource_jobs'


def _supabase(http: httpx.AsyncClient) -> SupabaseClient:
    return SupabaseClient(
        supabase_url='https://test.supabase.co',
        service_role_key='test-key',
        http_client=http,
    )


@pytest.fixture
def seeded(postgrest):
    postgrest.seed(
        ACCOUNTS,
        {'name': 'ocp-cluster-12', 'available': True, 'to_cleanup': False,
         'service_uuid': 'svc-1', 'updated_at': '2026-01-01T00:00:00+00:00'},
        {'name': 'ocp-cluster-3', 'available': False, 'to_cleanup': None,
         'service_uuid': 'svc-2', 'updated_at': '2026-01-01T00:00:00+00:00'},
        {'name': 'ocp-cluster-9', 'available': True, 'to_cleanup': True,
         'service_uuid': 'svc-1', 'updated_at': '2026-01-02T00:00:00+00:00'},
    )
    return postgrest


# ── Account store ─────────────────────────────────────────────────────


class TestSupabaseAccountStore:

    @pytest.mark.asyncio
    async def test_scan_all(self, seeded):
        async with seeded.client() as http:
            store = SupabaseAccountStore(_supabase(http))
            accounts = await store.scan()

        assert [a.name for a in accounts] == [
            'ocp-cluster-12', 'ocp-cluster-3', 'ocp-cluster-9',
        ]
        assert all(a.kind is AccountKind.OCP for a in accounts)
        assert seeded.requests[0].headers['accept-profile'] == 'sandbox'

    @pytest.mark.asyncio
    async def test_scan_filtered_and_sorted_by_provider(self, seeded):
        async with seeded.client() as http:
            provider = AccountProvider(
                SupabaseAccountStore(_supabase(http)), AccountKind.OCP,
            )
            accounts = await provider.fetch_all_by_service_uuid('svc-1')

        assert [a.name for a in accounts] == ['ocp-cluster-9', 'ocp-cluster-12']
        assert seeded.requests[0].url.params['service_uuid'] == 'eq.svc-1'

    @pytest.mark.asyncio
    async def test_get(self, seeded):
        async with seeded.client() as http:
            store = SupabaseAccountStore(_supabase(http))
            account = await store.get('ocp-cluster-3')
            missing = await store.get('ghost-acct')

        assert account is not None
        assert account.available is False
        assert account.to_cleanup is False
        assert account.name_int == 3
        assert missing is None

    @pytest.mark.asyncio
    async def test_mark_for_cleanup_first_mark_sets_updated_at(self, seeded):
        async with seeded.client() as http:
            store = SupabaseAccountStore(_supabase(http))
            assert await store.mark_for_cleanup('ocp-cluster-3') is True

        row = next(r for r in seeded.tables[ACCOUNTS] if r['name'] == 'ocp-cluster-3')
        assert row['to_cleanup'] is True
        assert row['updated_at'] != '2026-01-01T00:00:00+00:00'

    @pytest.mark.asyncio
    async def test_mark_for_cleanup_is_idempotent(self, seeded):
        async with seeded.client() as http:
            store = SupabaseAccountStore(_supabase(http))
            assert await store.mark_for_cleanup('ocp-cluster-12') is True
            row = next(r for r in seeded.tables[ACCOUNTS] if r['name'] == 'ocp-cluster-12')
            first_updated_at = row['updated_at']

            results = await asyncio.gather(
                *(store.mark_for_cleanup('ocp-cluster-12') for _ in range(3))
            )

        assert results == [True, True, True]
        assert row['to_cleanup'] is True
        assert row['updated_at'] == first_updated_at

    @pytest.mark.asyncio
    async def test_already_marked_row_is_untouched(self, seeded):
        async with seeded.client() as http:
            store = SupabaseAccountStore(_supabase(http))
            assert await store.mark_for_cleanup('ocp-cluster-9') is True

        row = next(r for r in seeded.tables[ACCOUNTS] if r['name'] == 'ocp-cluster-9')
        assert row['updated_at'] == '2026-01-02T00:00:00+00:00'

    @pytest.mark.asyncio
    async def test_mark_missing_account(self, seeded):
        async with seeded.client() as http:
            store = SupabaseAccountStore(_supabase(http))
            assert await store.mark_for_cleanup('ghost-acct') is False

    @pytest.mark.asyncio
    async def test_http_error_status_becomes_store_error(self, seeded):
        seeded.fail_status = 503
        async with seeded.client() as http:
            store = SupabaseAccountStore(_supabase(http))
            with pytest.raises(StoreError) as exc_info:
                await store.get('ocp-cluster-3')

        err = exc_info.value
        assert err.backend == 'supabase'
        assert err.public_message == 'Error reading account'
        assert 'test-key' not in str(err)

    @pytest.mark.asyncio
    async def test_transport_error_becomes_store_error(self):
        async def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError('connection refused', request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            store = SupabaseAccountStore(_supabase(http))
            with pytest.raises(StoreError) as exc_info:
                await store.scan()
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


# ── Job repository ────────────────────────────────────────────────────


def _job(name: str = 'ocp-cluster-3', action: str = 'cleanup') -> LifecycleResourceJob:
    return LifecycleResourceJob(
        id=0,
        resource_type='OcpSandbox',
        resource_name=name,
        request_id='req-1',
        action=action,
    )


class TestSupabaseLifecycleJobRepository:

    @pytest.mark.asyncio
    async def test_insert_and_get(self, postgrest):
        async with postgrest.client() as http:
            repo = SupabaseLifecycleJobRepository(_supabase(http))
            job = await repo.insert(_job())
            fetched = await repo.get(job.id)
            missing = await repo.get(999)

        assert job.id == 1
        assert job.status == 'new'
        assert fetched == job
        assert missing is None
        body = postgrest.tables[JOBS][0]
        assert body['resource_type'] == 'OcpSandbox'
        assert body['request_id'] == 'req-1'

    @pytest.mark.asyncio
    async def test_update_status_is_conditional(self, postgrest):
        async with postgrest.client() as http:
            repo = SupabaseLifecycleJobRepository(_supabase(http))
            job = await repo.insert(_job())

            moved = await repo.update_status(
                job.id, expected_status='new', status='running', result=None,
            )
            stale = await repo.update_status(
                job.id, expected_status='new', status='running', result=None,
            )

        assert moved is not None and moved.status == 'running'
        assert moved.updated_at >= job.updated_at
        assert stale is None
        patch = postgrest.requests[-1]
        assert patch.method == 'PATCH'
        assert patch.url.params['status'] == 'eq.new'
        assert patch.url.params['id'] == f'eq.{job.id}'

    @pytest.mark.asyncio
    async def test_latest_orders_by_updated_at_then_id(self, postgrest):
        ts = '2026-01-01T00:00:00+00:00'
        postgrest.seed(
            JOBS,
            {'id': 5, 'resource_type': 'AwsSandbox', 'resource_name': 'acct-042',
             'request_id': 'r5', 'action': 'start', 'status': 'new', 'result': None,
             'created_at': ts, 'updated_at': ts},
            {'id': 7, 'resource_type': 'AwsSandbox', 'resource_name': 'acct-042',
             'request_id': 'r7', 'action': 'stop', 'status': 'new', 'result': None,
             'created_at': ts, 'updated_at': ts},
            {'id': 6, 'resource_type': 'AwsSandbox', 'resource_name': 'acct-042',
             'request_id': 'r6', 'action': 'stop', 'status': 'success', 'result': 'done',
             'created_at': ts, 'updated_at': '2025-12-31T00:00:00+00:00'},
        )
        async with postgrest.client() as http:
            repo = SupabaseLifecycleJobRepository(_supabase(http))
            latest = await repo.get_latest_for_resource('acct-042', 'AwsSandbox')
            other_type = await repo.get_latest_for_resource('acct-042', 'OcpSandbox')
            history = await repo.list_for_resource('acct-042')

        assert latest is not None and latest.id == 7
        assert other_type is None
        assert [j.id for j in history] == [7, 6, 5]
        assert postgrest.requests[0].url.params['order'] == 'updated_at.desc,id.desc'
        assert postgrest.requests[0].url.params['limit'] == '1'

    @pytest.mark.asyncio
    async def test_list_by_status_oldest_first(self, postgrest):
        async with postgrest.client() as http:
            repo = SupabaseLifecycleJobRepository(_supabase(http))
            first = await repo.insert(_job('ocp-cluster-3'))
            second = await repo.insert(_job('ocp-cluster-12'))
            await repo.update_status(
                first.id, expected_status='new', status='running', result=None,
            )
            third = await repo.insert(_job('ocp-cluster-9'))
            pending = await repo.list_by_status('new', limit=10)

        assert [j.id for j in pending] == [second.id, third.id]

    @pytest.mark.asyncio
    async def test_failure_maps_to_operation_message(self, postgrest):
        postgrest.fail_status = 500
        async with postgrest.client() as http:
            repo = SupabaseLifecycleJobRepository(_supabase(http))
            with pytest.raises(StoreError) as exc_info:
                await repo.get_latest_for_resource('acct-042')
        assert exc_info.value.public_message == 'Error getting account status'


# ── Ledger over PostgREST ─────────────────────────────────────────────


@pytest.mark.asyncio
async def test_concurrent_advances_have_one_winner(seeded):
    async with seeded.client() as http:
        client = _supabase(http)
        providers = AccountProviderRegistry({
            AccountKind.OCP: AccountProvider(SupabaseAccountStore(client), AccountKind.OCP),
        })
        ledger = LifecycleJobLedger(SupabaseLifecycleJobRepository(client), providers)
        job = await ledger.create(
            kind='ocp', resource_name='ocp-cluster-3',
            request_id='req-42', action='start',
        )

        results = await asyncio.gather(
            ledger.advance(job.id, 'running'),
            ledger.advance(job.id, 'running'),
            return_exceptions=True,
        )

    winners = [r for r in results if isinstance(r, LifecycleResourceJob)]
    losers = [r for r in results if isinstance(r, InvalidJobTransition)]
    assert len(winners) == 1 and len(losers) == 1
    assert winners[0].status == 'running'
