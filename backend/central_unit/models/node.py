"""
Node Models

Edge detection nodes, their lanes and calibrated lane polygons.
Polygons are drawn on a camera frame in pixel space; each polygon keeps the
frame's base width/height so it can be normalized independently of the
resolution it was drawn at.
"""

from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any, Union
from enum import Enum
from datetime import datetime, timezone
import math
import time


class NodeStatus(str, Enum):
    """Node liveness status"""
    ONLINE = "online"
    OFFLINE = "offline"


class PolygonPoint(BaseModel):
    """Single vertex in source pixel space"""
    x: float
    y: float


class Polygon(BaseModel):
    """
    Polygon drawn on a camera frame

    ``base_width``/``base_height`` are the dimensions of the frame the
    points were drawn on.
    """
    points: List[PolygonPoint] = Field(default_factory=list)
    base_width: float = Field(1920, alias="baseWidth", gt=0)
    base_height: float = Field(1080, alias="baseHeight", gt=0)

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "points": [{"x": 100, "y": 100}, {"x": 400, "y": 100}, {"x": 400, "y": 300}],
                "baseWidth": 1920,
                "baseHeight": 1080
            }
        }


class LanePolygon(Polygon):
    """Calibrated footprint of one traffic lane"""
    id: Union[int, str]
    name: Optional[str] = None


class Lane(BaseModel):
    """Lane as displayed on the roadside unit"""
    id: int
    name: str
    type: str = "Main Lane"
    status: str = "open"               # open | blocked | left | right


def default_lanes() -> List[Lane]:
    return [Lane(id=1, name="Lane 1")]


class Node(BaseModel):
    """
    Edge detection node

    Mutated by heartbeat ingestion, liveness sweeps and operator edits.
    Removed only by explicit deregistration.
    """
    node_id: str
    name: Optional[str] = None
    street_name: str = "Unknown Street"
    latitude: float = 0.0
    longitude: float = 0.0

    lanes: List[Lane] = Field(default_factory=default_lanes)
    lane_polygons: List[LanePolygon] = Field(default_factory=list)
    speed_limit: int = 80
    lane_status: str = "unknown"

    status: NodeStatus = NodeStatus.OFFLINE
    last_heartbeat: Optional[float] = None    # Server receive time of the last accepted heartbeat
    last_heartbeat_sent: Optional[float] = None   # Timestamp the node put on it
    last_update: float = Field(default_factory=time.time)
    uptime_sec: int = 0
    health: Dict[str, Any] = Field(default_factory=dict)
    firmware_version: str = "unknown"
    model_version: str = "unknown"

    def sorted_lanes(self) -> List[Lane]:
        """Lanes in left-to-right order (by id)"""
        return sorted(self.lanes, key=lambda lane: lane.id)

    def to_dict(self) -> Dict[str, Any]:
        """camelCase view used by the API and websocket payloads"""
        return {
            "nodeId": self.node_id,
            "name": self.name or self.node_id,
            "streetName": self.street_name,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "lanes": [lane.model_dump() for lane in self.lanes],
            "lanePolygons": [p.model_dump(by_alias=True) for p in self.lane_polygons],
            "speedLimit": self.speed_limit,
            "laneStatus": self.lane_status,
            "status": self.status.value,
            "lastHeartbeat": self.last_heartbeat,
            "lastHeartbeatSent": self.last_heartbeat_sent,
            "lastUpdate": self.last_update,
            "uptimeSec": self.uptime_sec,
            "health": self.health,
            "firmwareVersion": self.firmware_version,
            "modelVersion": self.model_version,
        }


# Epoch values above this are milliseconds (1e11 s is past the year 5000)
MILLISECOND_THRESHOLD = 1e11


def parse_timestamp(value: Union[int, float, str]) -> float:
    """
    Unix seconds from a node-supplied timestamp

    Accepts epoch seconds, epoch milliseconds (numbers or numeric strings)
    and ISO-8601 strings. ISO values without an offset are taken as UTC.

    Raises:
        ValueError: unparseable value
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid timestamp: {value!r}")

    if isinstance(value, str):
        text = value.strip()
        try:
            value = float(text)
        except ValueError:
            if text.endswith(("Z", "z")):
                text = text[:-1] + "+00:00"
            try:
                parsed = datetime.fromisoformat(text)
            except ValueError:
                raise ValueError(f"invalid timestamp: {value!r}") from None
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.timestamp()

    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"invalid timestamp: {value!r}")
    if value > MILLISECOND_THRESHOLD:
        value /= 1000.0
    return value


class Heartbeat(BaseModel):
    """Liveness signal from an edge node"""
    node_id: str
    timestamp: float                          # Unix seconds, as the node dated it
    status: NodeStatus = NodeStatus.ONLINE
    uptime_sec: int = 0
    health: Dict[str, Any] = Field(default_factory=dict)
    firmware_version: Optional[str] = None
    model_version: Optional[str] = None


class NodeConfigUpdate(BaseModel):
    """Operator-editable node configuration (all fields optional)"""
    name: Optional[str] = None
    street_name: Optional[str] = Field(None, alias="streetName")
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    lanes: Optional[List[Lane]] = None
    lane_polygons: Optional[List[LanePolygon]] = Field(None, alias="lanePolygons")
    speed_limit: Optional[int] = Field(None, alias="speedLimit", gt=0)

    class Config:
        populate_by_name = True


class NodeRegistration(NodeConfigUpdate):
    """Registration (or re-registration) of an edge node"""
    node_id: str = Field(..., alias="nodeId", min_length=1)

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "nodeId": "NODE-CAI-001",
                "name": "Ring Road KM 12",
                "streetName": "Ring Road",
                "latitude": 30.0444,
                "longitude": 31.2357,
                "lanes": [{"id": 1, "name": "Lane 1"}, {"id": 2, "name": "Lane 2"}],
                "speedLimit": 100
            }
        }
