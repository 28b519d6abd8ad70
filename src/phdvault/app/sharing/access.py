"""Doctor-facing share access: token resolution and the PIN gate.

Protocol per attempt::

    token submitted ──lookup──▶ NOT_FOUND | FOUND
    FOUND ──pin check──▶ PIN_INVALID | GRANTED

``resolve_token`` covers the first step only and never returns records.
``access`` runs both steps again from scratch, so a grant that expired or
was revoked after ``resolve_token`` is still rejected.

Record retrieval is by the id list stored in the grant, not by owner: the
boundary is "was this id listed in the grant". Ids of records deleted since
issue are silently dropped by the record store.

Marking first access is best-effort. A failed mark is logged and does not
hide records the accessor is authorized to read.
"""

from __future__ import annotations

import dataclasses
import hmac
from dataclasses import dataclass
from typing import Any, Mapping

from phdvault.app.observability import get_logger
from phdvault.app.observability.metrics import SHARE_ACCESS_TOTAL
from phdvault.app.protocols import AuditSink, RecordStore

from . import expiry
from .attempts import NoopPinLimiter, PinAttemptLimiter
from .audit import audit_share_accessed, audit_share_denied, redact_token
from .errors import (
    AccessError,
    InvalidOrExpiredError,
    InvalidPinError,
    PinAttemptsExceededError,
)
from .model import Clock, ShareGrant, utcnow
from .store import ShareGrantRepository

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class SharedRecords:
    """Result of a successful access."""

    records: list[Mapping[str, Any]]
    grant: ShareGrant


def pins_match(supplied: str | None, expected: str) -> bool:
    """Constant-time PIN comparison."""
    if not supplied or not expected:
        return False
    return hmac.compare_digest(supplied.encode('utf-8'), expected.encode('utf-8'))


class ShareAccessor:
    """Resolves share tokens and releases records behind the PIN gate."""

    def __init__(
        self,
        share_repo: ShareGrantRepository,
        record_store: RecordStore,
        audit_sink: AuditSink,
        *,
        pin_limiter: PinAttemptLimiter | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._repo = share_repo
        self._records = record_store
        self._audit = audit_sink
        self._limiter = pin_limiter or NoopPinLimiter()
        self._clock = clock

    async def resolve_token(self, token: str) -> ShareGrant:
        """Return the live grant for *token*.

        Raises:
            InvalidOrExpiredError: Unknown, expired or revoked token.
            PersistenceError: The share store failed.
        """
        if not token or not token.strip():
            raise InvalidOrExpiredError()

        grant = await self._repo.find_by_token(token.strip())
        if grant is None or not expiry.is_usable(grant, self._clock()):
            SHARE_ACCESS_TOTAL.labels(outcome='unavailable').inc()
            logger.info(
                'share_unavailable',
                token_prefix=redact_token(token),
                status=grant.status.value if grant else None,
            )
            raise InvalidOrExpiredError()
        return grant

    async def access(self, token: str, accessor_id: str, pin: str) -> SharedRecords:
        """Verify token + PIN and return the granted records.

        Raises:
            InvalidOrExpiredError: Token unknown or grant not usable.
            PinAttemptsExceededError: Token locked after repeated failures.
            InvalidPinError: PIN mismatch.
            AccessError: Records could not be fetched.
        """
        grant = await self.resolve_token(token)

        try:
            self._limiter.check(grant.token)
        except PinAttemptsExceededError:
            SHARE_ACCESS_TOTAL.labels(outcome='locked').inc()
            logger.info('share_pin_locked', share_id=grant.id, accessor_id=accessor_id)
            await audit_share_denied(self._audit, grant, accessor_id=accessor_id, reason='locked')
            raise

        if not pins_match(pin, grant.pin):
            self._limiter.record_failure(grant.token)
            SHARE_ACCESS_TOTAL.labels(outcome='invalid_pin').inc()
            logger.info('share_pin_rejected', share_id=grant.id, accessor_id=accessor_id)
            await audit_share_denied(self._audit, grant, accessor_id=accessor_id, reason='invalid_pin')
            raise InvalidPinError()

        self._limiter.reset(grant.token)
        grant = await self._mark_first_access(grant, accessor_id)

        try:
            records = await self._records.get_by_ids(list(grant.record_ids))
        except Exception as exc:
            SHARE_ACCESS_TOTAL.labels(outcome='error').inc()
            logger.exception('shared_records_fetch_failed', share_id=grant.id)
            raise AccessError('Shared records are temporarily unavailable.') from exc

        SHARE_ACCESS_TOTAL.labels(outcome='granted').inc()
        logger.info(
            'share_accessed',
            share_id=grant.id,
            accessor_id=accessor_id,
            record_count=len(records),
        )
        await audit_share_accessed(
            self._audit, grant, accessor_id=accessor_id, record_count=len(records),
        )
        return SharedRecords(records=list(records), grant=grant)

    async def _mark_first_access(self, grant: ShareGrant, accessor_id: str) -> ShareGrant:
        try:
            won = await self._repo.mark_accessed(grant.id, accessor_id)
        except Exception:
            logger.warning('share_mark_accessed_failed', share_id=grant.id, exc_info=True)
            return grant
        if won:
            return dataclasses.replace(
                grant, accessed_at=self._clock(), accessed_by=accessor_id,
            )
        return grant
