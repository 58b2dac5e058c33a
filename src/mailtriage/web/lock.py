"""Advisory lock between the ledger editor and scan runs.

Saving from the editor marks the ledgers as locked; the lock clears when the
editor releases it or, lazily, the next time anyone looks at it after the
timeout has elapsed. Nothing is blocked by the lock. Callers that care (the
scheduled scan) check `is_locked()` and decide for themselves.

Usage:
    from mailtriage.web.lock import LockCoordinator

    lock = LockCoordinator(timeout_seconds=300)
    lock.acquire()
    lock.is_locked()  # True until released or 300s pass
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from mailtriage.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_LOCK_TIMEOUT_SECONDS = 300.0


@dataclass(frozen=True, slots=True)
class LockState:
    """Snapshot of the lock."""

    held: bool
    acquired_at: float | None
    timeout_seconds: float

    @property
    def expires_at(self) -> float | None:
        if not self.held or self.acquired_at is None:
            return None
        return self.acquired_at + self.timeout_seconds


class LockCoordinator:
    """Timeout-based advisory lock with an injectable clock.

    Attributes:
        timeout_seconds: Lifetime of a lock after its last acquire
    """

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._held = False
        self._acquired_at: float | None = None
        self._mutex = threading.Lock()

    def acquire(self) -> LockState:
        """Mark the ledgers as being edited (restarts the timeout)."""
        with self._mutex:
            self._held = True
            self._acquired_at = self._clock()
            return self._snapshot()

    def release(self) -> LockState:
        with self._mutex:
            if self._held:
                logger.info("editor_lock_released")
            self._held = False
            self._acquired_at = None
            return self._snapshot()

    def state(self) -> LockState:
        """Current state, expiring a stale lock first."""
        with self._mutex:
            self._expire_if_stale()
            return self._snapshot()

    def is_locked(self) -> bool:
        return self.state().held

    def _expire_if_stale(self) -> None:
        if not self._held or self._acquired_at is None:
            return
        if self._clock() - self._acquired_at >= self.timeout_seconds:
            logger.info("editor_lock_expired", timeout_seconds=self.timeout_seconds)
            self._held = False
            self._acquired_at = None

    def _snapshot(self) -> LockState:
        return LockState(
            held=self._held,
            acquired_at=self._acquired_at,
            timeout_seconds=self.timeout_seconds,
        )
