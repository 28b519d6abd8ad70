"""Supabase-backed RecordStore over the ``medical_records`` table."""

from __future__ import annotations

from typing import Any, Sequence

from .supabase_client import SupabaseClient


class SupabaseRecordStore:
    """Read-only access to ``medical_records`` via PostgREST.

    Errors propagate as ``SupabaseError``; callers in the sharing core wrap
    them in their own error types.
    """

    TABLE = "medical_records"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def get_by_ids(self, ids: Sequence[str]) -> list[dict[str, Any]]:
        unique = list(dict.fromkeys(str(i) for i in ids))
        if not unique:
            return []
        return await self._client.select(
            self.TABLE,
            filters={"id": ("in", unique)},
            order="created_at.desc",
        )

    async def get_by_owner(self, owner_id: str) -> list[dict[str, Any]]:
        return await self._client.select(
            self.TABLE,
            filters={"user_id": ("eq", owner_id)},
            columns="id,user_id",
        )
