"""Supabase-backed AuditSink over the ``access_logs`` table.

``log`` is fire-and-forget: DB errors are logged but never propagate.

Credential sanitization: share tokens, PINs and service keys are stripped
from metadata before persistence.
"""

from __future__ import annotations

from typing import Any, Mapping

from phdvault.app.observability import get_logger

from .supabase_client import SupabaseClient

logger = get_logger(__name__)

# Keys that must never appear in access-log metadata.
_SENSITIVE_KEYS = frozenset({
    "authorization",
    "apikey",
    "service_role_key",
    "supabase_service_role_key",
    "bearer_token",
    "token",
    "pin",
    "secret",
    "password",
})


def sanitize_metadata(metadata: Mapping[str, Any]) -> dict[str, Any]:
    """Copy *metadata* with sensitive keys redacted at any depth."""
    sanitized: dict[str, Any] = {}
    for key, value in metadata.items():
        if str(key).lower() in _SENSITIVE_KEYS:
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, Mapping):
            sanitized[key] = sanitize_metadata(value)
        else:
            sanitized[key] = value
    return sanitized


class SupabaseAuditSink:
    """AuditSink backed by ``access_logs`` via PostgREST."""

    TABLE = "access_logs"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def log(
        self,
        user_id: str,
        action: str,
        record_id: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        row = {
            "user_id": user_id,
            "action": action,
            "record_id": record_id,
            "metadata": sanitize_metadata(metadata or {}),
        }
        try:
            await self._client.insert(self.TABLE, row)
        except Exception:
            logger.exception("audit_insert_failed", action=action, user_id=user_id)
