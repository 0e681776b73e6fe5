"""Per-shipment exclusive locks for in-process serialization."""

from contextlib import contextmanager
from functools import lru_cache
import threading
from typing import Iterator
import weakref


class ShipmentLockRegistry:
    """
    Hands out one lock per shipment id.

    Entries are weak: a lock lives while some caller holds a reference to it,
    so the registry only tracks shipments that are in use.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def lock_for(self, shipment_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(shipment_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[shipment_id] = lock
            return lock

    @contextmanager
    def hold(self, shipment_id: str) -> Iterator[None]:
        """Hold the shipment's lock for the duration of the block."""
        lock = self.lock_for(shipment_id)
        with lock:
            yield


@lru_cache
def get_lock_registry() -> ShipmentLockRegistry:
    """Process-wide registry shared by ranking and selection."""
    return ShipmentLockRegistry()
