"""Supabase adapters for the share store, record store and access log."""

from .audit_sink import SupabaseAuditSink
from .errors import (
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseError,
    SupabaseNotFoundError,
    SupabaseTransportError,
)
from .record_store import SupabaseRecordStore
from .share_repo import SupabaseShareGrantRepository
from .supabase_client import SupabaseClient

__all__ = [
    "SupabaseAuditSink",
    "SupabaseAuthError",
    "SupabaseClient",
    "SupabaseConflictError",
    "SupabaseError",
    "SupabaseNotFoundError",
    "SupabaseRecordStore",
    "SupabaseShareGrantRepository",
    "SupabaseTransportError",
]
