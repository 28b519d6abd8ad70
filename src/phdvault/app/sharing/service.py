"""Sharing facade: the operations the rest of the application calls.

``SharingService`` wires the issuer, accessor and revoker over one set of
injected collaborators so routes (and any other caller) depend on a single
object instead of a module-level client.
"""

from __future__ import annotations

from typing import Sequence

from phdvault.app.protocols import AuditSink, RecordStore

from .access import ShareAccessor, SharedRecords
from .attempts import PinAttemptLimiter
from .issuance import DEFAULT_DURATION_HOURS, MAX_DURATION_HOURS, ShareIssuer
from .links import build_share_link
from .model import Clock, ShareGrant, ShareMethod, utcnow
from .revocation import ShareRevoker
from .store import DEFAULT_HISTORY_LIMIT, ShareGrantRepository

MAX_HISTORY_LIMIT = 200


class SharingService:
    """Issue, resolve, access, revoke and list share grants.

    Args:
        share_repo: Share grant store.
        record_store: Record store collaborator.
        audit_sink: Access-log collaborator.
        share_base_url: Origin used to build ``/shared/{token}`` links.
        pin_limiter: Optional failed-PIN lockout.
        verify_record_ownership: Re-check record ownership at issue time.
        default_duration_hours: Lifetime used when the caller gives none.
        max_duration_hours: Longest grant a patient may issue.
        clock: Time source (UTC).
    """

    def __init__(
        self,
        share_repo: ShareGrantRepository,
        record_store: RecordStore,
        audit_sink: AuditSink,
        *,
        share_base_url: str = 'http://localhost:5173',
        pin_limiter: PinAttemptLimiter | None = None,
        verify_record_ownership: bool = True,
        default_duration_hours: float = DEFAULT_DURATION_HOURS,
        max_duration_hours: float = MAX_DURATION_HOURS,
        clock: Clock = utcnow,
    ) -> None:
        self.share_repo = share_repo
        self.share_base_url = share_base_url
        self.default_duration_hours = default_duration_hours
        self._issuer = ShareIssuer(
            share_repo,
            record_store,
            audit_sink,
            verify_record_ownership=verify_record_ownership,
            max_duration_hours=max_duration_hours,
            clock=clock,
        )
        self._accessor = ShareAccessor(
            share_repo, record_store, audit_sink, pin_limiter=pin_limiter, clock=clock,
        )
        self._revoker = ShareRevoker(share_repo, audit_sink)

    async def issue_share(
        self,
        owner_id: str,
        record_ids: Sequence[str],
        duration_hours: float | None = None,
        method: ShareMethod | str = ShareMethod.LINK,
    ) -> ShareGrant:
        if duration_hours is None:
            duration_hours = self.default_duration_hours
        return await self._issuer.issue(owner_id, record_ids, duration_hours, method)

    async def resolve_token(self, token: str) -> ShareGrant:
        return await self._accessor.resolve_token(token)

    async def access_share(self, token: str, accessor_id: str, pin: str) -> SharedRecords:
        return await self._accessor.access(token, accessor_id, pin)

    async def revoke_share(self, grant_id: str, owner_id: str) -> None:
        await self._revoker.revoke(grant_id, owner_id)

    async def get_share(self, grant_id: str, owner_id: str) -> ShareGrant | None:
        """Owner view of one grant (includes the PIN for re-sharing)."""
        return await self.share_repo.get(grant_id, owner_id)

    async def list_active_shares(self, owner_id: str) -> list[ShareGrant]:
        return await self.share_repo.list_active_by_owner(owner_id)

    async def list_share_history(
        self, owner_id: str, limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> list[ShareGrant]:
        limit = max(1, min(int(limit), MAX_HISTORY_LIMIT))
        return await self.share_repo.list_history_by_owner(owner_id, limit)

    def share_link(self, token: str) -> str:
        return build_share_link(self.share_base_url, token)
