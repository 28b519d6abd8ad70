"""Tests for patient-facing share issuance."""

from __future__ import annotations

from datetime import timedelta

import pytest

from phdvault.app.sharing.audit import ACTION_SHARE
from phdvault.app.sharing.errors import PersistenceError, ValidationError
from phdvault.app.sharing.issuance import ShareIssuer
from phdvault.app.sharing.model import ShareMethod, ShareStatus


class _BrokenRecordStore:
    async def get_by_ids(self, ids):
        raise RuntimeError('db down')

    async def get_by_owner(self, owner_id):
        raise RuntimeError('db down')


class TestIssue:

    @pytest.mark.asyncio
    async def test_issue_then_resolve(self, service, clock):
        grant = await service.issue_share('patient_1', ['r1', 'r2'], 1)
        resolved = await service.resolve_token(grant.token)

        assert resolved.status is ShareStatus.ACTIVE
        assert resolved.record_ids == ('r1', 'r2')
        assert len(resolved.pin) == 5 and resolved.pin.isdigit()
        assert resolved.expires_at == clock() + timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_fifteen_minute_share(self, service, clock):
        grant = await service.issue_share('patient_1', ['r1'], 0.25, ShareMethod.CODE)
        assert grant.expires_at == clock() + timedelta(minutes=15)
        assert grant.method is ShareMethod.CODE

    @pytest.mark.asyncio
    async def test_default_duration(self, service, clock):
        grant = await service.issue_share('patient_1', ['r1'])
        assert grant.expires_at == clock() + timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_issue_writes_redacted_audit_entry(self, service, audit):
        grant = await service.issue_share('patient_1', ['r1', 'r2'], 24)

        [entry] = audit.find(ACTION_SHARE, 'patient_1')
        assert entry['metadata']['share_id'] == grant.id
        assert entry['metadata']['record_count'] == 2
        assert entry['metadata']['duration_hours'] == 24
        assert grant.token not in str(entry)
        assert 'pin' not in entry['metadata']


class TestValidation:

    @pytest.mark.asyncio
    async def test_empty_record_ids(self, service):
        with pytest.raises(ValidationError):
            await service.issue_share('patient_1', [], 1)

    @pytest.mark.asyncio
    async def test_record_ids_as_string_rejected(self, service):
        with pytest.raises(ValidationError):
            await service.issue_share('patient_1', 'r1', 1)

    @pytest.mark.asyncio
    @pytest.mark.parametrize('hours', [0, -1, float('nan'), float('inf'), 721])
    async def test_bad_duration(self, service, hours):
        with pytest.raises(ValidationError):
            await service.issue_share('patient_1', ['r1'], hours)

    @pytest.mark.asyncio
    async def test_unknown_method(self, service):
        with pytest.raises(ValidationError):
            await service.issue_share('patient_1', ['r1'], 1, 'carrier-pigeon')

    @pytest.mark.asyncio
    async def test_foreign_record_rejected(self, service, repo):
        with pytest.raises(ValidationError):
            await service.issue_share('patient_1', ['r1', 'r9'], 1)
        assert await repo.list_history_by_owner('patient_1') == []

    @pytest.mark.asyncio
    async def test_ownership_check_can_be_disabled(self, repo, records, audit, clock):
        issuer = ShareIssuer(repo, records, audit, verify_record_ownership=False, clock=clock)
        grant = await issuer.issue('patient_1', ['r9'], 1)
        assert grant.record_ids == ('r9',)

    @pytest.mark.asyncio
    async def test_record_store_failure_is_persistence_error(self, repo, audit, clock):
        issuer = ShareIssuer(repo, _BrokenRecordStore(), audit, clock=clock)
        with pytest.raises(PersistenceError):
            await issuer.issue('patient_1', ['r1'], 1)
