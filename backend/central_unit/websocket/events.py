"""
WebSocket Event Type Definitions

Event names and payload models exchanged with the operator dashboard and
edge nodes over Socket.IO.

Events are categorized as:
- Server → Client: incident broadcasts and node status pushed from backend
- Client → Server: operator decisions from the dashboard
"""

from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any


# ============================================
# Event Name Constants
# ============================================

class ServerEvent(str, Enum):
    """Events emitted from server to client"""

    # Connection
    CONNECTION_SUCCESS = "connection:success"

    # Incidents
    ACCIDENT_DETECTED = "accident-detected"
    ACCIDENT_DECISION_RESOLVED = "accident-decision-resolved"
    ADMIN_RESPONSE_ACK = "admin_accident_response:ack"

    # Nodes
    NODE_HEARTBEAT = "node_heartbeat"
    NODE_CONNECTED = "node_connected"
    NODE_DISCONNECTED = "node_disconnected"
    NODE_CONFIG_UPDATE = "node_config_update"


class ClientEvent(str, Enum):
    """Events received from client"""

    # Connection
    CONNECT = "connect"
    DISCONNECT = "disconnect"

    # Operator decision
    ADMIN_ACCIDENT_RESPONSE = "admin_accident_response"


# ============================================
# Server → Client Event Data Models
# ============================================

class ConnectionSuccessData(BaseModel):
    """Data for connection:success event"""
    message: str = "Connected to Central Unit"
    timestamp: float
    serverVersion: str = "1.0.0"


class AccidentDetectedData(BaseModel):
    """Data for accident-detected event"""
    incidentId: str
    nodeId: str
    coordinates: Dict[str, float]          # {lat, lng}
    laneNumber: int
    mediaList: List[str] = Field(default_factory=list)
    timestamp: float                       # Unix ms
    decision: Optional[Dict[str, Any]] = None
    severity: Optional[Any] = None
    description: Optional[str] = None


class DecisionResolvedData(BaseModel):
    """Data for accident-decision-resolved event"""
    incidentId: str
    nodeId: Optional[str] = None
    status: str
    speedLimit: int
    laneConfiguration: str
    timestamp: float


class NodeDisconnectedData(BaseModel):
    """Data for node_disconnected event"""
    nodeId: str
    reason: str
    timestamp: float


# ============================================
# Client → Server Event Data Models
# ============================================

class AdminAccidentResponse(BaseModel):
    """Operator decision submitted over the socket"""
    incidentId: str
    nodeId: Optional[str] = None
    status: str
    actions: List[str] = Field(default_factory=list)
    message: Optional[str] = None
    speedLimit: Optional[int] = None
    laneConfiguration: Optional[str] = None
