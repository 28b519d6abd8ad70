"""Share-grant domain model.

A ``ShareGrant`` is a time-boxed, token + PIN gated authorization to read a
fixed list of one patient's records. It maps one-to-one onto a row of the
``share_tokens`` table; ``from_row`` / ``to_row`` are the only places that
know the column names.

Lifecycle::

    active ──(now >= expires_at, observed on read)──▶ expired
    active ──(owner revokes)────────────────────────▶ revoked

Both ``expired`` and ``revoked`` are terminal.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse a PostgREST timestamp into an aware UTC datetime."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class ShareMethod(str, enum.Enum):
    """How the token reaches the doctor. Display framing only."""

    LINK = 'link'
    CODE = 'code'


class ShareStatus(str, enum.Enum):
    ACTIVE = 'active'
    EXPIRED = 'expired'
    REVOKED = 'revoked'

    @property
    def is_terminal(self) -> bool:
        return self is not ShareStatus.ACTIVE


@dataclass(frozen=True, slots=True)
class ShareGrant:
    """Share grant matching the ``share_tokens`` schema.

    Attributes:
        id: Store-assigned identifier.
        owner_id: Patient who created the grant (``user_id`` column).
        method: ``link`` or ``code``.
        token: Bearer credential and primary lookup key.
        pin: Five-digit secondary credential.
        record_ids: Records the grant exposes, in issue order.
        expires_at: End of the usable window.
        status: Stored status; see ``expiry.effective_status`` for display.
        accessed_at: First successful access, if any.
        accessed_by: Accessor attributed with the first access.
        created_at: Creation timestamp.
    """

    id: str
    owner_id: str
    method: ShareMethod
    token: str
    pin: str
    record_ids: tuple[str, ...]
    expires_at: datetime
    status: ShareStatus = ShareStatus.ACTIVE
    accessed_at: datetime | None = None
    accessed_by: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def record_count(self) -> int:
        return len(self.record_ids)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> ShareGrant:
        return cls(
            id=str(row['id']),
            owner_id=str(row['user_id']),
            method=ShareMethod(row.get('method') or ShareMethod.LINK.value),
            token=row['token'],
            pin=row.get('pin') or '',
            record_ids=tuple(str(r) for r in row.get('record_ids') or ()),
            expires_at=parse_timestamp(row['expires_at']),
            status=ShareStatus(row.get('status') or ShareStatus.ACTIVE.value),
            accessed_at=parse_timestamp(row.get('accessed_at')),
            accessed_by=row.get('accessed_by'),
            created_at=parse_timestamp(row.get('created_at')) or utcnow(),
        )

    def to_row(self) -> dict[str, Any]:
        """Serialize for insertion; ``id`` and ``created_at`` are store-assigned."""
        return {
            'user_id': self.owner_id,
            'method': self.method.value,
            'token': self.token,
            'pin': self.pin,
            'record_ids': list(self.record_ids),
            'expires_at': self.expires_at.isoformat(),
            'status': self.status.value,
        }
