"""Sync progress tracking."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

FOLDER_WEIGHT = 0.3
NOTE_WEIGHT = 0.7

# Minimum interval between delivered progress updates, in seconds
DEFAULT_UPDATE_INTERVAL = 0.1


def _fraction(done: int, total: int) -> float:
    return done / total if total > 0 else 0.0


@dataclass
class SyncProgress:
    """Counters for a sync run and the weighted completion derived from them."""

    total_notes: int = 0
    synced_notes: int = 0
    total_folders: int = 0
    synced_folders: int = 0
    downloaded_notes: int = 0
    downloaded_folders: int = 0
    resolved_conflicts: int = 0
    failed_notes: int = 0
    failed_folders: int = 0
    current_status: str = "Preparing..."
    include_binary_data: bool = False
    is_download_phase: bool = False
    is_two_way_sync: bool = False

    @property
    def folder_progress(self) -> float:
        upload = _fraction(self.synced_folders, self.total_folders)
        if not self.is_two_way_sync:
            return upload
        download = _fraction(self.downloaded_folders, self.total_folders)
        return (upload + download) / 2.0

    @property
    def note_progress(self) -> float:
        upload = _fraction(self.synced_notes, self.total_notes)
        if not self.is_two_way_sync:
            return upload
        download = _fraction(self.downloaded_notes, self.total_notes)
        return (upload + download) / 2.0

    @property
    def overall_progress(self) -> float:
        return self.folder_progress * FOLDER_WEIGHT + self.note_progress * NOTE_WEIGHT


class ProgressThrottle:
    """Coalesces progress updates so listeners see at most one per interval.

    Updates arriving inside the interval replace each other; the latest one is
    delivered by the next update outside the interval or by flush().
    """

    def __init__(
        self,
        interval: float = DEFAULT_UPDATE_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._interval = interval
        self._clock = clock
        self._last_update: float | None = None
        self._pending: Callable[[], None] | None = None
        self._lock = threading.Lock()

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def schedule(self, update: Callable[[], None]) -> bool:
        """Schedule an update; returns True if it was delivered immediately."""
        with self._lock:
            now = self._clock()
            if self._last_update is not None and now - self._last_update < self._interval:
                self._pending = update
                return False
            self._pending = None
            self._last_update = now
        update()
        return True

    def flush(self) -> None:
        """Deliver any pending update now."""
        with self._lock:
            update = self._pending
            if update is None:
                return
            self._pending = None
            self._last_update = self._clock()
        update()
