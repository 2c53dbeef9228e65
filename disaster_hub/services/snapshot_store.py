"""
snapshot_store.py — Single-slot holder for the latest Snapshot.

Passive: no notification, no history. `set()` swaps one reference under a
lock held only for the assignment, so a reader gets either the previous or
the new snapshot, never a partially built one (Snapshots are frozen).
"""

import threading
from typing import Optional

from disaster_hub.models.alerts import Snapshot


class SnapshotStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._current: Optional[Snapshot] = None

    def get(self) -> Optional[Snapshot]:
        with self._lock:
            return self._current

    def set(self, snapshot: Snapshot) -> None:
        with self._lock:
            self._current = snapshot
