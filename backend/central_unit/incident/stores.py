"""
Incident State Stores

Process-wide mutable state used by the incident pipeline, behind small
interfaces so a multi-instance deployment can back them with a shared
cache instead of in-process memory:

- IncidentStore: incidents awaiting a decision or notification
- NotificationMarkerStore: timestamps of recent outbound notifications

The in-memory implementations are cleared on restart by design of the
process lifecycle; nothing here is persisted.
"""

import time
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from central_unit.models.incident import Incident, IncidentStatus


# (rounded lat, rounded lng, node id or wildcard)
MarkerKey = Tuple[float, float, str]


class IncidentStore(ABC):
    """Incidents under active processing, keyed by incident id"""

    @abstractmethod
    def save(self, incident: Incident) -> None:
        """Insert or replace an incident"""

    @abstractmethod
    def get(self, incident_id: str) -> Optional[Incident]:
        """Return the incident or None"""

    @abstractmethod
    def delete(self, incident_id: str) -> Optional[Incident]:
        """Remove and return the incident, None if absent"""

    @abstractmethod
    def list_incidents(self) -> List[Incident]:
        """All stored incidents, oldest first"""

    def list_pending(self) -> List[Incident]:
        return [i for i in self.list_incidents() if i.status == IncidentStatus.PENDING]


class NotificationMarkerStore(ABC):
    """Last outbound notification time per marker key"""

    @abstractmethod
    def get(self, key: MarkerKey) -> Optional[float]:
        """Timestamp of the last mark, None if never marked"""

    @abstractmethod
    def set(self, key: MarkerKey, timestamp: float) -> None:
        """Record a mark"""

    @abstractmethod
    def delete(self, key: MarkerKey) -> None:
        """Forget a mark (no-op when absent)"""

    @abstractmethod
    def evict_older_than(self, cutoff: float) -> int:
        """Drop marks set at or before ``cutoff``; returns how many were dropped"""

    @abstractmethod
    def size(self) -> int:
        """Number of stored marks, expired ones included"""


class InMemoryIncidentStore(IncidentStore):
    """Dict-backed incident store for a single process"""

    def __init__(self):
        self._incidents: Dict[str, Incident] = {}

    def save(self, incident: Incident) -> None:
        self._incidents[incident.id] = incident

    def get(self, incident_id: str) -> Optional[Incident]:
        return self._incidents.get(incident_id)

    def delete(self, incident_id: str) -> Optional[Incident]:
        return self._incidents.pop(incident_id, None)

    def list_incidents(self) -> List[Incident]:
        return sorted(self._incidents.values(), key=lambda i: i.created_at)


class InMemoryMarkerStore(NotificationMarkerStore):
    """Dict-backed marker store for a single process"""

    def __init__(self):
        self._markers: Dict[MarkerKey, float] = {}

    def get(self, key: MarkerKey) -> Optional[float]:
        return self._markers.get(key)

    def set(self, key: MarkerKey, timestamp: Optional[float] = None) -> None:
        self._markers[key] = timestamp if timestamp is not None else time.time()

    def delete(self, key: MarkerKey) -> None:
        self._markers.pop(key, None)

    def evict_older_than(self, cutoff: float) -> int:
        expired = [key for key, marked_at in self._markers.items() if marked_at <= cutoff]
        for key in expired:
            del self._markers[key]
        return len(expired)

    def size(self) -> int:
        return len(self._markers)
