"""Share grant storage protocol and in-memory implementation.

Implementations: ``InMemoryShareGrantRepository`` (local dev and tests) and
``phdvault.app.db.share_repo.SupabaseShareGrantRepository`` (production).

Store-level guarantees every implementation must keep:
  - ``find_by_token`` never returns a stale ``active`` grant past expiry;
    it persists the ``expired`` transition first.
  - ``mark_accessed`` is a conditional write (first accessor wins).
  - ``set_status`` is owner-scoped and only moves grants out of ``active``.
"""

from __future__ import annotations

import dataclasses
import uuid
from datetime import datetime
from typing import Callable, Protocol, Sequence, runtime_checkable

from . import expiry
from .errors import PersistenceError, ValidationError
from .model import Clock, ShareGrant, ShareMethod, ShareStatus, utcnow
from .tokens import new_pin, new_token

DEFAULT_HISTORY_LIMIT = 50


@runtime_checkable
class ShareGrantRepository(Protocol):
    """Persistence for share grants."""

    async def create(
        self,
        owner_id: str,
        method: ShareMethod,
        record_ids: Sequence[str],
        expires_at: datetime,
    ) -> ShareGrant: ...

    async def find_by_token(self, token: str) -> ShareGrant | None: ...

    async def get(self, grant_id: str, owner_id: str) -> ShareGrant | None: ...

    async def list_active_by_owner(self, owner_id: str) -> list[ShareGrant]: ...

    async def list_history_by_owner(
        self, owner_id: str, limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> list[ShareGrant]: ...

    async def mark_accessed(self, grant_id: str, accessor_id: str) -> bool: ...

    async def set_status(
        self, grant_id: str, owner_id: str, status: ShareStatus,
    ) -> bool: ...


def require_record_ids(record_ids: Sequence[str]) -> tuple[str, ...]:
    """Validate and de-duplicate record ids, keeping first-seen order."""
    if isinstance(record_ids, str):
        raise ValidationError('record_ids must be a list of record identifiers.')
    cleaned = [str(r).strip() for r in record_ids if r is not None and str(r).strip()]
    if not cleaned:
        raise ValidationError('Select at least one record to share.')
    return tuple(dict.fromkeys(cleaned))


class InMemoryShareGrantRepository:
    """Dict-backed share store.

    Each method runs without awaiting between its read and its write, so
    the conditional updates are atomic with respect to other coroutines.
    """

    def __init__(
        self,
        *,
        clock: Clock = utcnow,
        token_factory: Callable[[], str] = new_token,
        pin_factory: Callable[[], str] = new_pin,
    ) -> None:
        self._clock = clock
        self._token_factory = token_factory
        self._pin_factory = pin_factory
        self._grants: dict[str, ShareGrant] = {}
        self._by_token: dict[str, str] = {}

    async def create(
        self,
        owner_id: str,
        method: ShareMethod,
        record_ids: Sequence[str],
        expires_at: datetime,
    ) -> ShareGrant:
        ids = require_record_ids(record_ids)
        token = self._token_factory()
        if token in self._by_token:
            raise PersistenceError('Share token collision; grant not created.')

        grant = ShareGrant(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            method=ShareMethod(method),
            token=token,
            pin=self._pin_factory(),
            record_ids=ids,
            expires_at=expires_at,
            created_at=self._clock(),
        )
        self._grants[grant.id] = grant
        self._by_token[token] = grant.id
        return grant

    def _expire_if_stale(self, grant: ShareGrant) -> ShareGrant:
        if expiry.needs_expiry_transition(grant, self._clock()):
            grant = dataclasses.replace(grant, status=ShareStatus.EXPIRED)
            self._grants[grant.id] = grant
        return grant

    async def find_by_token(self, token: str) -> ShareGrant | None:
        grant_id = self._by_token.get(token)
        if grant_id is None:
            return None
        return self._expire_if_stale(self._grants[grant_id])

    async def get(self, grant_id: str, owner_id: str) -> ShareGrant | None:
        grant = self._grants.get(grant_id)
        if grant is None or grant.owner_id != owner_id:
            return None
        return self._expire_if_stale(grant)

    def _owned(self, owner_id: str) -> list[ShareGrant]:
        owned = [g for g in self._grants.values() if g.owner_id == owner_id]
        return sorted(owned, key=lambda g: g.created_at, reverse=True)

    async def list_active_by_owner(self, owner_id: str) -> list[ShareGrant]:
        now = self._clock()
        return [g for g in self._owned(owner_id) if expiry.is_usable(g, now)]

    async def list_history_by_owner(
        self, owner_id: str, limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> list[ShareGrant]:
        now = self._clock()
        return [
            dataclasses.replace(g, status=expiry.effective_status(g, now))
            for g in self._owned(owner_id)[:max(limit, 0)]
        ]

    async def mark_accessed(self, grant_id: str, accessor_id: str) -> bool:
        grant = self._grants.get(grant_id)
        if grant is None or grant.accessed_at is not None:
            return False
        self._grants[grant_id] = dataclasses.replace(
            grant, accessed_at=self._clock(), accessed_by=accessor_id,
        )
        return True

    async def set_status(
        self, grant_id: str, owner_id: str, status: ShareStatus,
    ) -> bool:
        grant = self._grants.get(grant_id)
        if grant is None or grant.owner_id != owner_id:
            return False
        if grant.status is not ShareStatus.ACTIVE:
            return False
        self._grants[grant_id] = dataclasses.replace(grant, status=ShareStatus(status))
        return True
