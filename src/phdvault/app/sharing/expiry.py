"""Expiry policy: the single source of truth for share usability.

Every call site (store lazy-expiry, access gate, owner listings, the
"expires in" text) goes through these functions instead of comparing
timestamps itself.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from .model import ShareGrant, ShareStatus, utcnow


def is_usable(grant: ShareGrant, now: datetime | None = None) -> bool:
    """``status == active`` and the expiry instant has not been reached."""
    now = now or utcnow()
    return grant.status is ShareStatus.ACTIVE and now < grant.expires_at


def needs_expiry_transition(grant: ShareGrant, now: datetime | None = None) -> bool:
    """Stored as active, but no longer usable: must be persisted as expired."""
    return grant.status is ShareStatus.ACTIVE and not is_usable(grant, now)


def effective_status(grant: ShareGrant, now: datetime | None = None) -> ShareStatus:
    if needs_expiry_transition(grant, now):
        return ShareStatus.EXPIRED
    return grant.status


def remaining(grant: ShareGrant, now: datetime | None = None) -> timedelta:
    """Time left in the usable window, never negative."""
    now = now or utcnow()
    if not is_usable(grant, now):
        return timedelta(0)
    return grant.expires_at - now


def format_expires_in(grant: ShareGrant, now: datetime | None = None) -> str:
    """Human-readable remaining time, e.g. ``"14 minutes"`` or ``"2 hours"``.

    Units are floored: 1h59m reads as ``"1 hour"``.
    """
    if not is_usable(grant, now):
        return 'Expired'

    minutes = int(remaining(grant, now).total_seconds() // 60)
    if minutes < 1:
        return 'less than a minute'
    if minutes < 60:
        return f'{minutes} minute{"s" if minutes != 1 else ""}'
    hours = minutes // 60
    return f'{hours} hour{"s" if hours != 1 else ""}'
