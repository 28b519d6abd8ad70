"""Owner-facing share revocation.

Revoking an unknown grant, someone else's grant, or an already-terminal
grant is a silent no-op, so callers cannot probe other patients' grant ids.
"""

from __future__ import annotations

from phdvault.app.observability import get_logger
from phdvault.app.observability.metrics import SHARES_REVOKED_TOTAL
from phdvault.app.protocols import AuditSink

from .audit import audit_share_revoked
from .model import ShareStatus
from .store import ShareGrantRepository

logger = get_logger(__name__)


class ShareRevoker:
    def __init__(self, share_repo: ShareGrantRepository, audit_sink: AuditSink) -> None:
        self._repo = share_repo
        self._audit = audit_sink

    async def revoke(self, grant_id: str, owner_id: str) -> None:
        if not grant_id or not owner_id:
            return
        changed = await self._repo.set_status(grant_id, owner_id, ShareStatus.REVOKED)
        if not changed:
            logger.debug('share_revoke_noop', share_id=grant_id, owner_id=owner_id)
            return

        SHARES_REVOKED_TOTAL.inc()
        logger.info('share_revoked', share_id=grant_id, owner_id=owner_id)
        await audit_share_revoked(self._audit, grant_id=grant_id, owner_id=owner_id)
