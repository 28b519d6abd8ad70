"""Supabase client error hierarchy.

These errors stay small and dependency-free so repositories can raise and
translate them without leaking httpx.Response objects (or the service key).
"""

from __future__ import annotations

from dataclasses import dataclass

# Postgres unique_violation.
UNIQUE_VIOLATION_CODE = "23505"


@dataclass(frozen=True, slots=True)
class SupabaseError(Exception):
    """Base Supabase error for PostgREST requests."""

    status_code: int
    message: str
    code: str | None = None
    details: str | None = None
    hint: str | None = None

    def __str__(self) -> str:
        bits: list[str] = [f"{type(self).__name__}(status={self.status_code})", self.message]
        if self.code:
            bits.append(f"code={self.code}")
        if self.details:
            bits.append(f"details={self.details}")
        return " ".join(bits)


class SupabaseAuthError(SupabaseError):
    """401/403 auth errors (bad key, RLS denial, expired session)."""


class SupabaseNotFoundError(SupabaseError):
    """404 errors (missing table/view/route)."""


class SupabaseConflictError(SupabaseError):
    """409 conflicts (unique violations on share_tokens.token, etc.)."""


class SupabaseTransportError(SupabaseError):
    """Network-level failure or timeout before PostgREST answered."""
