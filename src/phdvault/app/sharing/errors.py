"""Share-grant error taxonomy.

Expected, user-facing conditions (validation, invalid-or-expired, wrong PIN,
lockout) are reported to the caller and counted; they are never logged as
application errors. ``PersistenceError`` and ``AccessError`` signal a backing
store failure and are retriable.
"""

from __future__ import annotations

# Shown for unknown, expired and revoked tokens alike.
INVALID_OR_EXPIRED_MESSAGE = 'Invalid or expired share token.'


class ShareError(Exception):
    """Base class for every error raised by the sharing core."""

    code = 'share_error'


class ValidationError(ShareError):
    """Caller supplied empty or malformed input."""

    code = 'invalid_request'


class NotFoundError(ShareError):
    """A token or grant id did not resolve."""

    code = 'share_unavailable'

    def __init__(self, message: str = INVALID_OR_EXPIRED_MESSAGE) -> None:
        super().__init__(message)


class InvalidOrExpiredError(NotFoundError):
    """Token is unknown, expired or revoked (deliberately indistinguishable)."""


class InvalidPinError(ShareError):
    """Token is live but the supplied PIN does not match."""

    code = 'invalid_pin'

    def __init__(self) -> None:
        super().__init__('The PIN is incorrect.')


class PinAttemptsExceededError(ShareError):
    """Too many failed PIN attempts against one token."""

    code = 'too_many_attempts'

    def __init__(self, retry_after: float) -> None:
        self.retry_after = retry_after
        super().__init__(
            f'Too many incorrect PIN attempts. Try again in {int(retry_after) + 1}s.'
        )


class PersistenceError(ShareError):
    """The share store could not complete the operation."""

    code = 'share_store_unavailable'


class AccessError(PersistenceError):
    """Records could not be fetched for an authorized access."""
