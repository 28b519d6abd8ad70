"""Share audit entries and token redaction.

Every share operation leaves an entry in the access log through the
``AuditSink`` collaborator. Writes are fire-and-forget: a failing sink is
logged and counted, and the share operation carries on.

Security invariant:
  Plaintext tokens and PINs never appear in audit metadata or log lines.
  Only a token prefix is kept for correlation.
"""

from __future__ import annotations

import re
from typing import Any

from phdvault.app.observability import get_logger
from phdvault.app.observability.metrics import AUDIT_WRITE_FAILURES_TOTAL
from phdvault.app.protocols import AuditSink

from .model import ShareGrant

logger = get_logger(__name__)

TOKEN_PREFIX_LENGTH = 8

ACTION_SHARE = 'share'
ACTION_ACCESS_SHARED = 'access_shared'
ACTION_REVOKE_SHARE = 'revoke_share'
ACTION_ACCESS_DENIED = 'access_denied'

# UUID-shaped tokens and long URL-safe strings.
_TOKEN_PATTERN = re.compile(
    r'[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}'
    r'|[A-Za-z0-9_-]{20,}'
)


def redact_token(token: str | None) -> str:
    """Truncate a token to ``<prefix>...`` (``<redacted>`` if short or missing)."""
    if not token or len(token) < TOKEN_PREFIX_LENGTH * 2:
        return '<redacted>'
    return f'{token[:TOKEN_PREFIX_LENGTH]}...'


def redact_string(text: str) -> str:
    """Replace token-like substrings in free text with their redacted form."""
    return _TOKEN_PATTERN.sub(lambda m: redact_token(m.group(0)), text)


async def write_audit(
    sink: AuditSink,
    *,
    user_id: str,
    action: str,
    metadata: dict[str, Any],
    record_id: str | None = None,
) -> None:
    """Write one audit entry; never raises."""
    try:
        await sink.log(user_id, action, record_id, metadata)
    except Exception:
        AUDIT_WRITE_FAILURES_TOTAL.labels(action=action).inc()
        logger.warning('audit_write_failed', action=action, user_id=user_id, exc_info=True)


async def audit_share_issued(sink: AuditSink, grant: ShareGrant, duration_hours: float) -> None:
    await write_audit(
        sink,
        user_id=grant.owner_id,
        action=ACTION_SHARE,
        metadata={
            'share_id': grant.id,
            'record_count': grant.record_count,
            'duration_hours': duration_hours,
            'method': grant.method.value,
            'token_prefix': redact_token(grant.token),
        },
    )


async def audit_share_accessed(
    sink: AuditSink,
    grant: ShareGrant,
    *,
    accessor_id: str,
    record_count: int,
) -> None:
    await write_audit(
        sink,
        user_id=accessor_id,
        action=ACTION_ACCESS_SHARED,
        metadata={
            'share_id': grant.id,
            'owner_id': grant.owner_id,
            'record_count': record_count,
        },
    )


async def audit_share_revoked(sink: AuditSink, *, grant_id: str, owner_id: str) -> None:
    await write_audit(
        sink,
        user_id=owner_id,
        action=ACTION_REVOKE_SHARE,
        metadata={'share_id': grant_id},
    )


async def audit_share_denied(
    sink: AuditSink,
    grant: ShareGrant,
    *,
    accessor_id: str,
    reason: str,
) -> None:
    await write_audit(
        sink,
        user_id=accessor_id,
        action=ACTION_ACCESS_DENIED,
        metadata={
            'share_id': grant.id,
            'owner_id': grant.owner_id,
            'reason': reason,
        },
    )
