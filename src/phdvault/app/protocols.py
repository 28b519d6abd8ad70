"""Collaborator interfaces consumed by the sharing core.

The share store protocol lives in ``sharing.store``. Concrete
implementations (InMemory for local dev and tests, Supabase for deployed
environments) are injected by the app factory.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

Record = Mapping[str, Any]


@runtime_checkable
class RecordStore(Protocol):
    """Read access to medical records. Records are opaque beyond ``id`` and ``user_id``."""

    async def get_by_ids(self, ids: Sequence[str]) -> list[Record]:
        """Return the records whose id is in *ids*; unknown ids are omitted."""
        ...

    async def get_by_owner(self, owner_id: str) -> list[Record]: ...


@runtime_checkable
class AuditSink(Protocol):
    """Access-log writer. Fire-and-forget: implementations must not raise."""

    async def log(
        self,
        user_id: str,
        action: str,
        record_id: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> None: ...


__all__ = ["AuditSink", "Record", "RecordStore"]
