"""In-memory collaborators for local development and tests.

Used when ENVIRONMENT=local. Nothing persists across restarts.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Sequence


class InMemoryRecordStore:
    def __init__(self, records: Sequence[Mapping[str, Any]] = ()) -> None:
        self._records: dict[str, dict[str, Any]] = {}
        for record in records:
            self.add(record)

    def add(self, record: Mapping[str, Any]) -> dict[str, Any]:
        stored = dict(record)
        self._records[str(stored["id"])] = stored
        return stored

    def delete(self, record_id: str) -> None:
        self._records.pop(record_id, None)

    async def get_by_ids(self, ids: Sequence[str]) -> list[dict[str, Any]]:
        return [dict(self._records[i]) for i in dict.fromkeys(ids) if i in self._records]

    async def get_by_owner(self, owner_id: str) -> list[dict[str, Any]]:
        return [dict(r) for r in self._records.values() if r.get("user_id") == owner_id]


class InMemoryAuditSink:
    def __init__(self) -> None:
        self.entries: list[dict[str, Any]] = []

    async def log(
        self,
        user_id: str,
        action: str,
        record_id: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        self.entries.append({
            "user_id": user_id,
            "action": action,
            "record_id": record_id,
            "metadata": dict(metadata or {}),
            "created_at": datetime.now(timezone.utc).isoformat(),
        })

    def find(self, action: str | None = None, user_id: str | None = None) -> list[dict[str, Any]]:
        result = self.entries
        if action:
            result = [e for e in result if e["action"] == action]
        if user_id:
            result = [e for e in result if e["user_id"] == user_id]
        return result
