"""Debounced persistence of ledger snapshots.

Every mutation calls :meth:`SaveCoordinator.request_save`. Requests arriving
within the debounce window collapse into a single pending save, which fires on
the first :meth:`SaveCoordinator.tick` after the window closes. A failed save
only flips :attr:`SaveCoordinator.status` to ``ERROR`` and schedules a retry
with exponential backoff; in-memory state is never rolled back.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional

from . import log
from .constants import SyncStatus
from .data_manager import BlobStore


SnapshotSource = Callable[[], Dict[str, Any]]


class SaveCoordinator:
    """Coalesce change notifications into at most one save per interval.

    Args:
        snapshot_source: Zero-argument callable producing the snapshot to save.
        store: Durable blob store whose result drives :attr:`status`.
        cache: Optional local cache written before ``store`` on every flush.
        debounce_seconds: Quiet period after the last request before saving.
        max_retries: Failed saves retried at most this many times per burst.
        backoff_base: First retry delay; each further retry doubles it.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        snapshot_source: SnapshotSource,
        store: BlobStore,
        *,
        cache: Optional[BlobStore] = None,
        debounce_seconds: float = 1.0,
        max_retries: int = 5,
        backoff_base: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._snapshot_source = snapshot_source
        self._store = store
        self._cache = cache
        self.debounce_seconds = debounce_seconds
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self._clock = clock
        self.status = SyncStatus.IDLE
        self._due_at: Optional[float] = None
        self._failed_attempts = 0

    @property
    def pending(self) -> bool:
        return self._due_at is not None

    @property
    def due_at(self) -> Optional[float]:
        return self._due_at

    def request_save(self, reason: str = "change") -> None:
        """Record a save intent, restarting the debounce window."""

        self._due_at = self._clock() + self.debounce_seconds
        self._failed_attempts = 0
        log.debug("Save requested (%s); due at %.3f", reason, self._due_at)

    def tick(self, now: Optional[float] = None) -> bool:
        """Flush when a save is pending and due.

        Returns:
            bool: ``True`` only when a save ran and succeeded on this tick.
        """

        if self._due_at is None:
            return False
        now = self._clock() if now is None else now
        if now < self._due_at:
            return False
        return self.flush()

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based): base, 2x base, 4x base ..."""

        return self.backoff_base * (2 ** (attempt - 1))

    def flush(self) -> bool:
        """Save the current snapshot now, regardless of the debounce window."""

        self.status = SyncStatus.SYNCING
        snapshot = self._snapshot_source()
        if self._cache is not None and not self._cache.save(snapshot):
            log.warning("Local cache save failed; continuing with the durable store")

        if self._store.save(snapshot):
            self.status = SyncStatus.IDLE
            self._due_at = None
            self._failed_attempts = 0
            log.debug("Snapshot saved")
            return True

        self.status = SyncStatus.ERROR
        self._failed_attempts += 1
        if self._failed_attempts > self.max_retries:
            log.error("Giving up on save after %d retries", self.max_retries)
            self._due_at = None
            return False

        delay = self.backoff_delay(self._failed_attempts)
        self._due_at = self._clock() + delay
        log.warning("Save failed (attempt %d); retrying in %.1fs", self._failed_attempts, delay)
        return False

    def flush_blocking(self, *, sleep: Callable[[float], None] = time.sleep) -> bool:
        """Flush and keep retrying with backoff until success or retries run out."""

        if self.flush():
            return True
        while self._due_at is not None:
            sleep(max(0.0, self._due_at - self._clock()))
            if self.flush():
                return True
        return False


__all__ = ["SaveCoordinator", "SnapshotSource"]
