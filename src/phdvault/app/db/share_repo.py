"""Supabase-backed ShareGrantRepository over the ``share_tokens`` table.

Security invariants:
  - Lookups by token use an exact ``eq`` match; the token never appears in
    log lines except as a redacted prefix.
  - Conditional writes (``mark_accessed``, ``set_status``, the expiry
    transition) are a single PATCH whose filters carry the precondition,
    so concurrent callers cannot both win.
  - Every ``SupabaseError`` is translated to ``PersistenceError`` here;
    nothing above this module sees PostgREST types.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime
from typing import Any, Callable, Sequence

from phdvault.app.observability import get_logger
from phdvault.app.sharing import expiry
from phdvault.app.sharing.audit import redact_token
from phdvault.app.sharing.errors import PersistenceError
from phdvault.app.sharing.model import Clock, ShareGrant, ShareMethod, ShareStatus, utcnow
from phdvault.app.sharing.store import DEFAULT_HISTORY_LIMIT, require_record_ids
from phdvault.app.sharing.tokens import new_pin, new_token

from .errors import UNIQUE_VIOLATION_CODE, SupabaseConflictError, SupabaseError
from .supabase_client import SupabaseClient

logger = get_logger(__name__)


class SupabaseShareGrantRepository:
    """ShareGrantRepository backed by ``share_tokens`` via PostgREST."""

    TABLE = "share_tokens"

    def __init__(
        self,
        client: SupabaseClient,
        *,
        clock: Clock = utcnow,
        token_factory: Callable[[], str] = new_token,
        pin_factory: Callable[[], str] = new_pin,
    ) -> None:
        self._client = client
        self._clock = clock
        self._token_factory = token_factory
        self._pin_factory = pin_factory

    async def create(
        self,
        owner_id: str,
        method: ShareMethod,
        record_ids: Sequence[str],
        expires_at: datetime,
    ) -> ShareGrant:
        draft = ShareGrant(
            id="",
            owner_id=owner_id,
            method=ShareMethod(method),
            token=self._token_factory(),
            pin=self._pin_factory(),
            record_ids=require_record_ids(record_ids),
            expires_at=expires_at,
            created_at=self._clock(),
        )
        try:
            rows = await self._client.insert(self.TABLE, draft.to_row())
        except SupabaseConflictError as exc:
            logger.error("share_token_collision", token_prefix=redact_token(draft.token))
            raise PersistenceError("Share token collision; grant not created.") from exc
        except SupabaseError as exc:
            if exc.code == UNIQUE_VIOLATION_CODE:
                logger.error("share_token_collision", token_prefix=redact_token(draft.token))
                raise PersistenceError("Share token collision; grant not created.") from exc
            logger.exception("share_insert_failed", owner_id=owner_id)
            raise PersistenceError("Could not create the share.") from exc

        if not rows:
            raise PersistenceError("Share insert returned no row.")
        return ShareGrant.from_row(rows[0])

    async def _select(self, filters: dict[str, Any], **kwargs: Any) -> list[dict[str, Any]]:
        try:
            return await self._client.select(self.TABLE, filters, **kwargs)
        except SupabaseError as exc:
            logger.exception("share_select_failed", error_code=exc.code)
            raise PersistenceError("Share store is unavailable.") from exc

    async def _patch(self, filters: dict[str, Any], data: dict[str, Any]) -> list[dict[str, Any]]:
        try:
            return await self._client.update(self.TABLE, filters, data)
        except SupabaseError as exc:
            logger.exception("share_update_failed", error_code=exc.code)
            raise PersistenceError("Share store is unavailable.") from exc

    async def _expire_if_stale(self, grant: ShareGrant) -> ShareGrant:
        if not expiry.needs_expiry_transition(grant, self._clock()):
            return grant
        await self._patch(
            {"id": ("eq", grant.id), "status": ("eq", ShareStatus.ACTIVE.value)},
            {"status": ShareStatus.EXPIRED.value},
        )
        logger.info("share_expired", share_id=grant.id)
        return dataclasses.replace(grant, status=ShareStatus.EXPIRED)

    async def find_by_token(self, token: str) -> ShareGrant | None:
        rows = await self._select({"token": ("eq", token)}, limit=1)
        if not rows:
            return None
        return await self._expire_if_stale(ShareGrant.from_row(rows[0]))

    async def get(self, grant_id: str, owner_id: str) -> ShareGrant | None:
        rows = await self._select(
            {"id": ("eq", grant_id), "user_id": ("eq", owner_id)}, limit=1,
        )
        if not rows:
            return None
        return await self._expire_if_stale(ShareGrant.from_row(rows[0]))

    async def list_active_by_owner(self, owner_id: str) -> list[ShareGrant]:
        now = self._clock()
        rows = await self._select(
            {
                "user_id": ("eq", owner_id),
                "status": ("eq", ShareStatus.ACTIVE.value),
                "expires_at": ("gt", now.isoformat()),
            },
            order="created_at.desc",
        )
        grants = [ShareGrant.from_row(r) for r in rows]
        return [g for g in grants if expiry.is_usable(g, now)]

    async def list_history_by_owner(
        self, owner_id: str, limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> list[ShareGrant]:
        now = self._clock()
        rows = await self._select(
            {"user_id": ("eq", owner_id)},
            order="created_at.desc",
            limit=limit,
        )
        return [
            dataclasses.replace(g, status=expiry.effective_status(g, now))
            for g in (ShareGrant.from_row(r) for r in rows)
        ]

    async def mark_accessed(self, grant_id: str, accessor_id: str) -> bool:
        rows = await self._patch(
            {"id": ("eq", grant_id), "accessed_at": ("is", None)},
            {"accessed_at": self._clock().isoformat(), "accessed_by": accessor_id},
        )
        return len(rows) > 0

    async def set_status(
        self, grant_id: str, owner_id: str, status: ShareStatus,
    ) -> bool:
        rows = await self._patch(
            {
                "id": ("eq", grant_id),
                "user_id": ("eq", owner_id),
                "status": ("eq", ShareStatus.ACTIVE.value),
            },
            {"status": ShareStatus(status).value},
        )
        return len(rows) > 0
