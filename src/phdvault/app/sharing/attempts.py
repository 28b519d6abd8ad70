"""Failed-PIN attempt limiting per share token.

A captured token leaves only 100,000 PINs to try, so repeated failures
against one token lock it for the rest of a sliding window. Counters are
keyed by a hash of the token; plaintext tokens are never held here.
"""

from __future__ import annotations

import hashlib
import time
from collections import defaultdict
from threading import Lock
from typing import Callable, Protocol

from .errors import PinAttemptsExceededError


def _key(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


class PinAttemptLimiter(Protocol):
    """Per-token failed-PIN bookkeeping."""

    def check(self, token: str) -> None:
        """Raise PinAttemptsExceededError if the token is locked."""
        ...

    def record_failure(self, token: str) -> None: ...

    def reset(self, token: str) -> None: ...


class NoopPinLimiter:
    """Limiter that never locks; used when lockout is disabled."""

    def check(self, token: str) -> None:
        return None

    def record_failure(self, token: str) -> None:
        return None

    def reset(self, token: str) -> None:
        return None


class SlidingWindowPinLimiter:
    """Thread-safe sliding window of failure timestamps per token.

    Args:
        max_failures: Failures allowed inside the window before lockout.
        window_seconds: Length of the sliding window.
        clock: Monotonic-ish time source in seconds (injectable for tests).
    """

    def __init__(
        self,
        max_failures: int = 5,
        window_seconds: float = 900.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_failures < 1:
            raise ValueError('max_failures must be >= 1')
        self.max_failures = max_failures
        self.window_seconds = float(window_seconds)
        self._clock = clock
        self._failures: dict[str, list[float]] = defaultdict(list)
        self._lock = Lock()

    def _prune(self, key: str, now: float) -> list[float]:
        cutoff = now - self.window_seconds
        stamps = self._failures[key]
        stamps[:] = [t for t in stamps if t > cutoff]
        return stamps

    def check(self, token: str) -> None:
        now = self._clock()
        key = _key(token)
        with self._lock:
            stamps = self._prune(key, now)
            if len(stamps) >= self.max_failures:
                retry_after = stamps[0] + self.window_seconds - now
                raise PinAttemptsExceededError(max(retry_after, 0.1))
            if not stamps:
                self._failures.pop(key, None)

    def record_failure(self, token: str) -> None:
        now = self._clock()
        key = _key(token)
        with self._lock:
            self._prune(key, now).append(now)

    def reset(self, token: str) -> None:
        with self._lock:
            self._failures.pop(_key(token), None)

    def failure_count(self, token: str) -> int:
        now = self._clock()
        key = _key(token)
        with self._lock:
            if key not in self._failures:
                return 0
            return len(self._prune(key, now))
