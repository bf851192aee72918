"""Tests for LifecycleJobLedger over the in-memory repository.

Validates:
  1. create() resolves the account first and inserts nothing on a miss
  2. create() records kind-derived resource_type and the request ID
  3. advance() walks new -> running -> success/error only
  4. a writer that read a stale status loses with a conflict
  5. read_latest() picks max updated_at, ties broken by highest id
  6. pending() returns new jobs oldest first
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from sandbox_api.app.errors import (
    AccountKindNotConfigured,
    AccountNotFound,
    JobNotFound,
)
from sandbox_api.app.inmemory import InMemoryLifecycleJobRepository
from sandbox_api.app.lifecycle.ledger import LifecycleJobLedger, LifecycleResourceJob
from sandbox_api.app.lifecycle.state_machine import InvalidJobTransition, JobStatus


async def _create(ledger, name='acct-042', action='cleanup', request_id='req-1', kind='aws'):
    return await ledger.create(
        kind=kind, resource_name=name, request_id=request_id, action=action,
    )


class TestCreate:

    @pytest.mark.asyncio
    async def test_creates_new_job(self, ledger):
        job = await _create(ledger)

        assert job.id == 1
        assert job.status == 'new'
        assert job.resource_type == 'AwsSandbox'
        assert job.resource_name == 'acct-042'
        assert job.request_id == 'req-1'
        assert job.action == 'cleanup'
        assert job.result is None
        assert job.created_at == job.updated_at

    @pytest.mark.asyncio
    async def test_ocp_resource_type(self, ledger):
        job = await _create(ledger, name='ocp-cluster-3', kind='ocp', action='start')
        assert job.resource_type == 'OcpSandbox'

    @pytest.mark.asyncio
    async def test_missing_account_inserts_nothing(self, ledger, job_repo):
        with pytest.raises(AccountNotFound):
            await _create(ledger, name='ghost-acct')
        assert await job_repo.list_for_resource('ghost-acct') == []
        assert await job_repo.list_by_status('new') == []

    @pytest.mark.asyncio
    async def test_unknown_action_rejected(self, ledger):
        with pytest.raises(ValueError):
            await _create(ledger, action='reboot')

    @pytest.mark.asyncio
    async def test_unknown_kind(self, ledger):
        with pytest.raises(AccountKindNotConfigured):
            await _create(ledger, kind='azure')

    @pytest.mark.asyncio
    async def test_multiple_jobs_per_account(self, ledger):
        a = await _create(ledger, action='start', request_id='req-a')
        b = await _create(ledger, action='stop', request_id='req-b')
        assert a.id != b.id
        history = await ledger.history('acct-042')
        assert [j.id for j in history] == [b.id, a.id]


class TestAdvance:

    @pytest.mark.asyncio
    async def test_scenario_cleanup_success(self, ledger):
        job = await _create(ledger)

        running = await ledger.advance(job.id, 'running')
        assert running.status == 'running'

        done = await ledger.advance(job.id, JobStatus.SUCCESS, result='done')
        assert done.status == 'success'
        assert done.result == 'done'
        assert done.updated_at >= running.updated_at

    @pytest.mark.asyncio
    async def test_error_with_structured_result(self, ledger):
        job = await _create(ledger)
        await ledger.advance(job.id, 'running')
        failed = await ledger.advance(job.id, 'error', result={'reason': 'quota'})
        assert failed.status == 'error'
        assert failed.result == {'reason': 'quota'}

    @pytest.mark.asyncio
    async def test_skipping_running_is_a_conflict(self, ledger):
        job = await _create(ledger)
        with pytest.raises(InvalidJobTransition):
            await ledger.advance(job.id, 'success', result='done')
        assert (await ledger.get(job.id)).status == 'new'

    @pytest.mark.asyncio
    async def test_terminal_job_cannot_move(self, ledger):
        job = await _create(ledger)
        await ledger.advance(job.id, 'running')
        await ledger.advance(job.id, 'success', result='done')
        with pytest.raises(InvalidJobTransition):
            await ledger.advance(job.id, 'error')
        with pytest.raises(InvalidJobTransition):
            await ledger.advance(job.id, 'new')

    @pytest.mark.asyncio
    async def test_unknown_job(self, ledger):
        with pytest.raises(JobNotFound) as exc_info:
            await ledger.advance(404, 'running')
        assert exc_info.value.public_message == 'Job not found'

    @pytest.mark.asyncio
    async def test_concurrent_writers_one_wins(self, ledger):
        job = await _create(ledger)
        results = await asyncio.gather(
            *(ledger.advance(job.id, 'running') for _ in range(5)),
            return_exceptions=True,
        )
        winners = [r for r in results if isinstance(r, LifecycleResourceJob)]
        assert len(winners) == 1
        assert all(
            isinstance(r, InvalidJobTransition)
            for r in results if r is not winners[0]
        )

    @pytest.mark.asyncio
    async def test_stale_read_loses_race(self, providers):
        class StaleReadRepository(InMemoryLifecycleJobRepository):
            """Returns the pre-write snapshot on the first get after a write."""

            def __init__(self):
                super().__init__()
                self.stale = None

            async def get(self, job_id):
                if self.stale is not None:
                    snapshot, self.stale = self.stale, None
                    return snapshot
                return await super().get(job_id)

        repo = StaleReadRepository()
        ledger = LifecycleJobLedger(repo, providers)
        job = await _create(ledger)

        # Another worker moves the job after this writer read it as new.
        repo.stale = replace(job)
        await repo.update_status(
            job.id, expected_status='new', status='running', result=None,
        )

        with pytest.raises(InvalidJobTransition) as exc_info:
            await ledger.advance(job.id, 'running')
        assert exc_info.value.from_status == 'running'
        assert (await ledger.get(job.id)).status == 'running'


class TestReadLatest:

    @pytest.mark.asyncio
    async def test_latest_by_updated_at(self, ledger):
        first = await _create(ledger, action='start', request_id='req-a')
        second = await _create(ledger, action='stop', request_id='req-b')
        await ledger.advance(first.id, 'running')

        latest = await ledger.read_latest('acct-042', 'AwsSandbox')
        assert latest.id == first.id
        assert latest.id != second.id

    @pytest.mark.asyncio
    async def test_tie_broken_by_highest_id(self, providers):
        repo = InMemoryLifecycleJobRepository()
        ledger = LifecycleJobLedger(repo, providers)
        ts = datetime(2026, 1, 1, tzinfo=timezone.utc)
        for request_id in ('req-a', 'req-b', 'req-c'):
            await repo.insert(LifecycleResourceJob(
                id=0,
                resource_type='AwsSandbox',
                resource_name='acct-042',
                request_id=request_id,
                action='start',
                created_at=ts,
                updated_at=ts,
            ))

        latest = await ledger.read_latest('acct-042')
        assert latest.id == 3
        assert latest.request_id == 'req-c'

    @pytest.mark.asyncio
    async def test_resource_type_scopes_the_lookup(self, ledger):
        await _create(ledger)
        with pytest.raises(JobNotFound):
            await ledger.read_latest('acct-042', 'OcpSandbox')

    @pytest.mark.asyncio
    async def test_no_history(self, ledger):
        with pytest.raises(JobNotFound) as exc_info:
            await ledger.read_latest('acct-7')
        assert exc_info.value.public_message == 'Account status not found'


class TestPending:

    @pytest.mark.asyncio
    async def test_oldest_new_jobs_first(self, ledger):
        a = await _create(ledger, request_id='req-a')
        b = await _create(ledger, name='acct-7', request_id='req-b')
        c = await _create(ledger, name='acct-100', request_id='req-c')
        await ledger.advance(b.id, 'running')

        pending = await ledger.pending(limit=10)
        assert [j.id for j in pending] == [a.id, c.id]

        limited = await ledger.pending(limit=1)
        assert [j.id for j in limited] == [a.id]

        running = await ledger.list_by_status('running')
        assert [j.id for j in running] == [b.id]

    @pytest.mark.asyncio
    async def test_status_sequences_are_monotonic(self, ledger):
        job = await _create(ledger)
        seen = [job.status]
        for target in ('running', 'new', 'success', 'error'):
            try:
                seen.append((await ledger.advance(job.id, target)).status)
            except InvalidJobTransition:
                pass
        assert seen == ['new', 'running', 'success']
