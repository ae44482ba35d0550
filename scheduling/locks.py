"""Per-resource mutual exclusion for check-then-write sequences."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List


class ResourceLockManager:
    """Hands out one lock per resource id.

    Locks for a multi-resource booking are always acquired in sorted id
    order so two bookings touching the same resources cannot deadlock.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, resource_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(resource_id)
            if lock is None:
                lock = self._locks[resource_id] = threading.Lock()
            return lock

    @staticmethod
    def acquisition_order(resource_ids: Iterable[str]) -> List[str]:
        return sorted(set(resource_ids))

    @contextmanager
    def hold(self, resource_ids: Iterable[str]) -> Iterator[List[str]]:
        order = self.acquisition_order(resource_ids)
        acquired: List[threading.Lock] = []
        try:
            for resource_id in order:
                lock = self._lock_for(resource_id)
                lock.acquire()
                acquired.append(lock)
            yield order
        finally:
            for lock in reversed(acquired):
                lock.release()
