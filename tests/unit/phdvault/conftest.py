"""Shared fixtures for the sharing tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from phdvault.app.inmemory import InMemoryAuditSink, InMemoryRecordStore
from phdvault.app.sharing.attempts import SlidingWindowPinLimiter
from phdvault.app.sharing.service import SharingService
from phdvault.app.sharing.store import InMemoryShareGrantRepository

START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable UTC clock; also usable as a monotonic seconds source."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)

    def seconds(self) -> float:
        return self.now.timestamp()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def records() -> InMemoryRecordStore:
    return InMemoryRecordStore([
        {'id': 'r1', 'user_id': 'patient_1', 'title': 'Blood panel'},
        {'id': 'r2', 'user_id': 'patient_1', 'title': 'Chest X-ray'},
        {'id': 'r3', 'user_id': 'patient_1', 'title': 'Vaccination card'},
        {'id': 'r9', 'user_id': 'patient_2', 'title': 'Someone else'},
    ])


@pytest.fixture
def audit() -> InMemoryAuditSink:
    return InMemoryAuditSink()


@pytest.fixture
def repo(clock) -> InMemoryShareGrantRepository:
    return InMemoryShareGrantRepository(clock=clock)


@pytest.fixture
def limiter(clock) -> SlidingWindowPinLimiter:
    return SlidingWindowPinLimiter(max_failures=3, window_seconds=600, clock=clock.seconds)


@pytest.fixture
def service(repo, records, audit, limiter, clock) -> SharingService:
    return SharingService(
        repo,
        records,
        audit,
        share_base_url='https://vault.example.com',
        pin_limiter=limiter,
        clock=clock,
    )
