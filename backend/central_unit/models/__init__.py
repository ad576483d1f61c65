"""
Pydantic Models Package

All data models for the Central Unit.
Import from here for convenience.
"""

# Node models
from .node import (
    NodeStatus,
    PolygonPoint,
    Polygon,
    LanePolygon,
    Lane,
    Node,
    Heartbeat,
    NodeConfigUpdate,
    NodeRegistration,
    parse_timestamp,
)

# Incident models
from .incident import (
    IncidentStatus,
    DecisionStatus,
    Coordinates,
    Incident,
    OperatorDecision,
    generate_incident_id,
)

# Decision models
from .decision import (
    LaneState,
    DecisionAction,
    AlertLevel,
    BlockedLane,
    NodeDisplay,
    DecisionResult,
)

# Result types
from .result import (
    Success,
    ValidationError,
    NotFoundError,
    DecisionTimedOut,
    ExternalNotifyError,
    Result,
)

__all__ = [
    # Node
    "NodeStatus",
    "PolygonPoint",
    "Polygon",
    "LanePolygon",
    "Lane",
    "Node",
    "Heartbeat",
    "NodeConfigUpdate",
    "NodeRegistration",
    "parse_timestamp",

    # Incident
    "IncidentStatus",
    "DecisionStatus",
    "Coordinates",
    "Incident",
    "OperatorDecision",
    "generate_incident_id",

    # Decision
    "LaneState",
    "DecisionAction",
    "AlertLevel",
    "BlockedLane",
    "NodeDisplay",
    "DecisionResult",

    # Results
    "Success",
    "ValidationError",
    "NotFoundError",
    "DecisionTimedOut",
    "ExternalNotifyError",
    "Result",
]
