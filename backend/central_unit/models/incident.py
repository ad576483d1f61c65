"""
Incident Models

Accident detections under active processing and the operator decisions
that resolve them. Incidents live only as long as it takes to obtain a
decision and send notifications; they are not a durable ledger.
"""

from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any
from enum import Enum
from uuid import uuid4
import time

from .node import Polygon


class IncidentStatus(str, Enum):
    """Incident resolution status"""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    TIMEOUT = "TIMEOUT"


class DecisionStatus(str, Enum):
    """Operator decision outcome"""
    CONFIRMED = "CONFIRMED"
    MODIFIED = "MODIFIED"              # Confirmed with operator overrides
    REJECTED = "REJECTED"
    TIMEOUT = "TIMEOUT"                # Synthetic, never submitted by an operator


class Coordinates(BaseModel):
    """GPS position of the incident"""
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


def generate_incident_id(source: str) -> str:
    """Globally unique id carrying source and millisecond timestamp"""
    return f"incident_{source}_{int(time.time() * 1000)}_{uuid4().hex[:6]}"


class Incident(BaseModel):
    """
    One accident detection under active processing

    Status is mutated exactly once, when the pending decision resolves.
    """
    id: str
    node_id: str
    coordinates: Coordinates
    lane_number: int
    media_refs: List[str] = Field(default_factory=list)
    accident_polygon: Optional[Polygon] = None

    # Opaque classifier output
    severity: Optional[float] = Field(None, ge=1, le=5)
    recommendations: List[str] = Field(default_factory=list)

    created_at: float = Field(default_factory=time.time)
    status: IncidentStatus = IncidentStatus.PENDING
    resolved_at: Optional[float] = None


class OperatorDecision(BaseModel):
    """Decision delivered to a waiting incident"""
    incident_id: str
    node_id: Optional[str] = None
    status: DecisionStatus
    actions: List[str] = Field(default_factory=list)
    message: Optional[str] = None

    # MODIFIED overrides
    speed_limit: Optional[int] = None
    lane_configuration: Optional[str] = None

    decided_at: float = Field(default_factory=time.time)

    @classmethod
    def timeout(cls, incident_id: str) -> "OperatorDecision":
        """Synthetic decision used when nobody answered in time"""
        return cls(incident_id=incident_id, status=DecisionStatus.TIMEOUT, actions=[])

    @property
    def is_applied(self) -> bool:
        """Whether this decision changes the roadside configuration"""
        return self.status in (DecisionStatus.CONFIRMED, DecisionStatus.MODIFIED)

    def incident_status(self) -> IncidentStatus:
        if self.status == DecisionStatus.MODIFIED:
            return IncidentStatus.CONFIRMED
        return IncidentStatus(self.status.value)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "incidentId": self.incident_id,
            "nodeId": self.node_id,
            "status": self.status.value,
            "actions": list(self.actions),
            "message": self.message,
            "decidedAt": self.decided_at,
        }
        if self.speed_limit is not None:
            data["speedLimit"] = self.speed_limit
        if self.lane_configuration is not None:
            data["laneConfiguration"] = self.lane_configuration
        return data
