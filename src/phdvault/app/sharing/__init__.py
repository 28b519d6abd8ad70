"""Time-limited record sharing: token + PIN grants over a patient's records."""

from .access import SharedRecords, ShareAccessor
from .attempts import NoopPinLimiter, PinAttemptLimiter, SlidingWindowPinLimiter
from .errors import (
    AccessError,
    InvalidOrExpiredError,
    InvalidPinError,
    NotFoundError,
    PersistenceError,
    PinAttemptsExceededError,
    ShareError,
    ValidationError,
)
from .issuance import ShareIssuer
from .links import build_share_link, extract_token
from .model import ShareGrant, ShareMethod, ShareStatus
from .revocation import ShareRevoker
from .service import SharingService
from .store import InMemoryShareGrantRepository, ShareGrantRepository

__all__ = [
    "AccessError",
    "InMemoryShareGrantRepository",
    "InvalidOrExpiredError",
    "InvalidPinError",
    "NoopPinLimiter",
    "NotFoundError",
    "PersistenceError",
    "PinAttemptLimiter",
    "PinAttemptsExceededError",
    "ShareAccessor",
    "ShareError",
    "ShareGrant",
    "ShareGrantRepository",
    "ShareIssuer",
    "ShareMethod",
    "ShareRevoker",
    "ShareStatus",
    "SharedRecords",
    "SharingService",
    "SlidingWindowPinLimiter",
    "ValidationError",
    "build_share_link",
    "extract_token",
]
