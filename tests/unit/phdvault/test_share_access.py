"""Tests for doctor-facing share access (token + PIN gate)."""

from __future__ import annotations

import asyncio

import pytest

from phdvault.app.sharing.access import ShareAccessor, pins_match
from phdvault.app.sharing.audit import ACTION_ACCESS_DENIED, ACTION_ACCESS_SHARED
from phdvault.app.sharing.errors import (
    AccessError,
    InvalidOrExpiredError,
    InvalidPinError,
    PinAttemptsExceededError,
)
from phdvault.app.sharing.model import ShareStatus


def _wrong_pin(pin: str) -> str:
    return f'{(int(pin) + 1) % 100000:05d}'


class _BrokenRecordStore:
    async def get_by_ids(self, ids):
        raise RuntimeError('db down')

    async def get_by_owner(self, owner_id):
        return []


class _UnmarkableRepo:
    """Delegates to a real repo but fails every mark_accessed call."""

    def __init__(self, inner):
        self._inner = inner

    def __getattr__(self, name):
        return getattr(self._inner, name)

    async def mark_accessed(self, grant_id, accessor_id):
        raise RuntimeError('write failed')


class TestPinsMatch:

    def test_exact_match(self):
        assert pins_match('01234', '01234')

    def test_mismatch_and_empty(self):
        assert not pins_match('01235', '01234')
        assert not pins_match('', '01234')
        assert not pins_match(None, '01234')


class TestResolveToken:

    @pytest.mark.asyncio
    @pytest.mark.parametrize('token', ['', '   ', 'unknown-token'])
    async def test_unknown_or_empty_token(self, service, token):
        with pytest.raises(InvalidOrExpiredError):
            await service.resolve_token(token)


class TestAccess:

    @pytest.mark.asyncio
    async def test_correct_token_and_pin_returns_records(self, service, audit):
        grant = await service.issue_share('patient_1', ['r1', 'r2'], 1)

        result = await service.access_share(grant.token, 'doctor_a', grant.pin)

        assert sorted(r['id'] for r in result.records) == ['r1', 'r2']
        assert result.grant.accessed_by == 'doctor_a'
        [entry] = audit.find(ACTION_ACCESS_SHARED, 'doctor_a')
        assert entry['metadata'] == {
            'share_id': grant.id,
            'owner_id': 'patient_1',
            'record_count': 2,
        }

    @pytest.mark.asyncio
    async def test_expired_grant_is_rejected_and_observed_expired(self, service, repo, clock):
        grant = await service.issue_share('patient_1', ['r1', 'r2'], 1)
        clock.advance(hours=1, seconds=1)

        with pytest.raises(InvalidOrExpiredError):
            await service.access_share(grant.token, 'doctor_a', grant.pin)
        assert (await repo.get(grant.id, 'patient_1')).status is ShareStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_wrong_pin_leaves_grant_untouched(self, service, repo, audit):
        grant = await service.issue_share('patient_1', ['r1', 'r2'], 1)

        with pytest.raises(InvalidPinError):
            await service.access_share(grant.token, 'doctor_a', _wrong_pin(grant.pin))

        stored = await repo.get(grant.id, 'patient_1')
        assert stored.status is ShareStatus.ACTIVE
        assert stored.accessed_at is None
        [denied] = audit.find(ACTION_ACCESS_DENIED, 'doctor_a')
        assert denied['metadata']['reason'] == 'invalid_pin'

    @pytest.mark.asyncio
    async def test_right_pin_on_wrong_token_fails(self, service):
        first = await service.issue_share('patient_1', ['r1'], 1)
        second = await service.issue_share('patient_1', ['r2'], 1)
        if first.pin == second.pin:
            pytest.skip('PINs collided')

        with pytest.raises(InvalidPinError):
            await service.access_share(second.token, 'doctor_a', first.pin)

    @pytest.mark.asyncio
    async def test_first_accessor_keeps_attribution(self, service, repo):
        grant = await service.issue_share('patient_1', ['r1', 'r2'], 1)

        first = await service.access_share(grant.token, 'doctor_a', grant.pin)
        second = await service.access_share(grant.token, 'doctor_b', grant.pin)

        assert len(first.records) == 2
        assert len(second.records) == 2
        assert second.grant.accessed_by == 'doctor_a'
        assert (await repo.get(grant.id, 'patient_1')).accessed_by == 'doctor_a'

    @pytest.mark.asyncio
    async def test_concurrent_first_access_has_one_winner(self, service, repo, audit):
        grant = await service.issue_share('patient_1', ['r1', 'r2'], 1)

        results = await asyncio.gather(
            service.access_share(grant.token, 'doctor_a', grant.pin),
            service.access_share(grant.token, 'doctor_b', grant.pin),
        )

        assert all(len(r.records) == 2 for r in results)
        stored = await repo.get(grant.id, 'patient_1')
        assert stored.accessed_by in ('doctor_a', 'doctor_b')
        winners = [r for r, who in zip(results, ('doctor_a', 'doctor_b')) if r.grant.accessed_by == who]
        assert len(winners) == 1
        assert winners[0].grant.accessed_by == stored.accessed_by
        assert len(audit.find(ACTION_ACCESS_SHARED, 'doctor_a')) == 1
        assert len(audit.find(ACTION_ACCESS_SHARED, 'doctor_b')) == 1

    @pytest.mark.asyncio
    async def test_revoked_grant_is_rejected_before_expiry(self, service):
        grant = await service.issue_share('patient_1', ['r1'], 24)
        await service.revoke_share(grant.id, 'patient_1')

        with pytest.raises(InvalidOrExpiredError):
            await service.access_share(grant.token, 'doctor_a', grant.pin)

    @pytest.mark.asyncio
    async def test_deleted_record_is_silently_omitted(self, service, records):
        grant = await service.issue_share('patient_1', ['r1', 'r2'], 1)
        records.delete('r2')

        result = await service.access_share(grant.token, 'doctor_a', grant.pin)
        assert [r['id'] for r in result.records] == ['r1']

    @pytest.mark.asyncio
    async def test_record_fetch_failure_is_access_error(self, repo, audit, clock):
        grant = await repo.create('patient_1', 'link', ['r1'], clock().replace(year=2027))
        accessor = ShareAccessor(repo, _BrokenRecordStore(), audit, clock=clock)

        with pytest.raises(AccessError):
            await accessor.access(grant.token, 'doctor_a', grant.pin)

    @pytest.mark.asyncio
    async def test_mark_failure_does_not_hide_records(self, repo, records, audit, clock):
        grant = await repo.create('patient_1', 'link', ['r1'], clock().replace(year=2027))
        accessor = ShareAccessor(_UnmarkableRepo(repo), records, audit, clock=clock)

        result = await accessor.access(grant.token, 'doctor_a', grant.pin)
        assert [r['id'] for r in result.records] == ['r1']
        assert result.grant.accessed_by is None

    @pytest.mark.asyncio
    async def test_failing_audit_sink_does_not_block_access(self, repo, records, clock):
        class _BrokenSink:
            async def log(self, *args, **kwargs):
                raise RuntimeError('audit down')

        grant = await repo.create('patient_1', 'link', ['r1'], clock().replace(year=2027))
        accessor = ShareAccessor(repo, records, _BrokenSink(), clock=clock)

        result = await accessor.access(grant.token, 'doctor_a', grant.pin)
        assert len(result.records) == 1


class TestPinLockout:

    @pytest.mark.asyncio
    async def test_locks_after_repeated_failures(self, service, limiter):
        grant = await service.issue_share('patient_1', ['r1'], 1)
        wrong = _wrong_pin(grant.pin)

        for _ in range(limiter.max_failures):
            with pytest.raises(InvalidPinError):
                await service.access_share(grant.token, 'doctor_a', wrong)

        with pytest.raises(PinAttemptsExceededError) as exc:
            await service.access_share(grant.token, 'doctor_a', grant.pin)
        assert exc.value.retry_after > 0

    @pytest.mark.asyncio
    async def test_lock_lifts_after_window(self, service, limiter, clock):
        grant = await service.issue_share('patient_1', ['r1'], 24)
        wrong = _wrong_pin(grant.pin)
        for _ in range(limiter.max_failures):
            with pytest.raises(InvalidPinError):
                await service.access_share(grant.token, 'doctor_a', wrong)

        clock.advance(seconds=limiter.window_seconds + 1)
        result = await service.access_share(grant.token, 'doctor_a', grant.pin)
        assert len(result.records) == 1

    @pytest.mark.asyncio
    async def test_success_resets_failures(self, service, limiter):
        grant = await service.issue_share('patient_1', ['r1'], 1)
        with pytest.raises(InvalidPinError):
            await service.access_share(grant.token, 'doctor_a', _wrong_pin(grant.pin))
        assert limiter.failure_count(grant.token) == 1

        await service.access_share(grant.token, 'doctor_a', grant.pin)
        assert limiter.failure_count(grant.token) == 0
