"""Patient-facing share issuance."""

from __future__ import annotations

import math
from datetime import timedelta
from typing import Sequence

from phdvault.app.observability import get_logger
from phdvault.app.observability.metrics import SHARES_ISSUED_TOTAL
from phdvault.app.protocols import AuditSink, RecordStore

from .audit import audit_share_issued, redact_token
from .errors import PersistenceError, ShareError, ValidationError
from .model import Clock, ShareGrant, ShareMethod, utcnow
from .store import ShareGrantRepository, require_record_ids

logger = get_logger(__name__)

DEFAULT_DURATION_HOURS = 1.0
MAX_DURATION_HOURS = 720.0  # 30 days.


class ShareIssuer:
    """Creates share grants for a patient's own records.

    Args:
        share_repo: Grant store; generates the token and PIN.
        record_store: Used to re-verify record ownership when enabled.
        audit_sink: Access-log writer.
        verify_record_ownership: Reject ids that ``owner_id`` does not own.
            The front-end already scopes the selection to the patient's
            records; this is a second check at the service boundary.
        max_duration_hours: Upper bound on the requested duration.
    """

    def __init__(
        self,
        share_repo: ShareGrantRepository,
        record_store: RecordStore,
        audit_sink: AuditSink,
        *,
        verify_record_ownership: bool = True,
        max_duration_hours: float = MAX_DURATION_HOURS,
        clock: Clock = utcnow,
    ) -> None:
        self._repo = share_repo
        self._records = record_store
        self._audit = audit_sink
        self._verify_ownership = verify_record_ownership
        self._max_hours = max_duration_hours
        self._clock = clock

    def _check_duration(self, duration_hours: float) -> float:
        try:
            hours = float(duration_hours)
        except (TypeError, ValueError):
            raise ValidationError('duration_hours must be a number.') from None
        if not math.isfinite(hours) or hours <= 0:
            raise ValidationError('duration_hours must be greater than zero.')
        if hours > self._max_hours:
            raise ValidationError(f'duration_hours may not exceed {self._max_hours:g}.')
        return hours

    async def _check_ownership(self, owner_id: str, record_ids: tuple[str, ...]) -> None:
        try:
            owned = await self._records.get_by_owner(owner_id)
        except ShareError:
            raise
        except Exception as exc:
            logger.exception('record_ownership_lookup_failed', owner_id=owner_id)
            raise PersistenceError('Could not verify record ownership.') from exc

        owned_ids = {str(r.get('id')) for r in owned}
        foreign = [r for r in record_ids if r not in owned_ids]
        if foreign:
            # Unknown and foreign ids are reported the same way.
            raise ValidationError(f'{len(foreign)} selected record(s) are not available to share.')

    async def issue(
        self,
        owner_id: str,
        record_ids: Sequence[str],
        duration_hours: float = DEFAULT_DURATION_HOURS,
        method: ShareMethod | str = ShareMethod.LINK,
    ) -> ShareGrant:
        """Create a grant and return it, plaintext PIN included.

        Raises:
            ValidationError: Empty/foreign record ids or a bad duration.
            PersistenceError: The grant could not be stored.
        """
        if not owner_id:
            raise ValidationError('owner_id is required.')
        ids = require_record_ids(record_ids)
        hours = self._check_duration(duration_hours)
        try:
            share_method = ShareMethod(method)
        except ValueError:
            raise ValidationError(f'Unknown share method {method!r}.') from None

        if self._verify_ownership:
            await self._check_ownership(owner_id, ids)

        expires_at = self._clock() + timedelta(hours=hours)
        grant = await self._repo.create(owner_id, share_method, ids, expires_at)

        SHARES_ISSUED_TOTAL.labels(method=share_method.value).inc()
        logger.info(
            'share_issued',
            share_id=grant.id,
            owner_id=owner_id,
            record_count=grant.record_count,
            duration_hours=hours,
            token_prefix=redact_token(grant.token),
        )
        await audit_share_issued(self._audit, grant, hours)
        return grant
