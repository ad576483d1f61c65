"""
Duplicate Notification Suppressor

The Central Unit and the Mobile App Server notify each other about
accidents. Without suppression an accident we forward comes straight back
as an inbound report, gets relayed again, and loops forever.

Every relay is marked under (lat rounded to 4 dp, lng rounded to 4 dp,
node id or "*"). A report whose key was marked within the TTL window
(15 s) is a duplicate and is dropped. Expired marks are evicted lazily, on
lookup of their own key and whenever a new mark is written; there is no
background sweep.
"""

import threading
import time
from typing import Callable, Optional

from central_unit.incident.stores import MarkerKey, NotificationMarkerStore, InMemoryMarkerStore


WILDCARD_NODE = "*"
DEFAULT_TTL_SECONDS = 15.0
COORDINATE_PRECISION = 4


def marker_key(lat: float, lng: float, node_id: Optional[str] = None) -> MarkerKey:
    """Cache key for a location, optionally scoped to a node"""
    return (
        round(float(lat), COORDINATE_PRECISION),
        round(float(lng), COORDINATE_PRECISION),
        str(node_id) if node_id is not None else WILDCARD_NODE
    )


class NotificationSuppressor:
    """
    TTL cache guarding against notification echo loops

    Usage:
        suppressor = NotificationSuppressor(ttl=15.0)

        # Outbound: forward only if not already sent recently
        if suppressor.should_relay(lat, lng, node_id):
            await notifier.notify_accident(...)

        # Inbound: drop echoes of what we just sent
        if not suppressor.should_relay(lat, lng):
            return  # duplicate
    """

    def __init__(
        self,
        store: Optional[NotificationMarkerStore] = None,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time
    ):
        """
        Args:
            store: Marker backend (default in-memory)
            ttl: Seconds a mark suppresses matching reports
            clock: Time source returning Unix seconds
        """
        self.store = store or InMemoryMarkerStore()
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()

        # Statistics
        self.total_marked = 0
        self.total_suppressed = 0

    def _is_recent_locked(self, key: MarkerKey, now: float) -> bool:
        marked_at = self.store.get(key)
        if marked_at is None:
            return False
        if now - marked_at >= self.ttl:
            self.store.delete(key)
            return False
        return True

    def _mark_locked(self, key: MarkerKey, now: float):
        self.store.evict_older_than(now - self.ttl)
        self.store.set(key, now)
        if key[2] != WILDCARD_NODE:
            # Inbound echoes carry no node id; cover them too
            self.store.set((key[0], key[1], WILDCARD_NODE), now)
        self.total_marked += 1

    def should_relay(self, lat: float, lng: float, node_id: Optional[str] = None) -> bool:
        """
        Atomic check-and-mark

        Returns:
            True (and marks the key) if no matching notification is live;
            False if this report is a duplicate and must be dropped
        """
        key = marker_key(lat, lng, node_id)
        with self._lock:
            now = self._clock()
            if self._is_recent_locked(key, now):
                self.total_suppressed += 1
                print(f"[SUPPRESSOR] Duplicate notification suppressed for {key}")
                return False
            self._mark_locked(key, now)
            return True

    def get_statistics(self) -> dict:
        return {
            'ttlSeconds': self.ttl,
            'markers': self.store.size(),
            'totalMarked': self.total_marked,
            'totalSuppressed': self.total_suppressed
        }
