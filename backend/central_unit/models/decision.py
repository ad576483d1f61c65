"""
Decision Models

Output of the lane-blockage analysis and the lane/speed decision
calculator, plus the roadside display payload derived from them.
"""

from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any, Union
from enum import Enum


class LaneState(str, Enum):
    """Per-lane instruction shown on the roadside display"""
    OPEN = "open"
    BLOCKED = "blocked"
    LEFT = "left"                      # Merge left
    RIGHT = "right"                    # Merge right


class DecisionAction(str, Enum):
    """Traffic management actions derived from a decision"""
    CLOSE_LANES = "CLOSE_LANES"
    REDUCE_SPEED_LIMIT = "REDUCE_SPEED_LIMIT"
    ALERT_EMERGENCY_SERVICES = "ALERT_EMERGENCY_SERVICES"
    DISPLAY_MERGE_SIGNS = "DISPLAY_MERGE_SIGNS"


class AlertLevel(str, Enum):
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class BlockedLane(BaseModel):
    """Lane polygon found to overlap the accident polygon"""
    id: Union[int, str]
    name: str
    lane_number: int
    overlap_area: float = 0.0         # Normalized units (0-1000 space)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "laneNumber": self.lane_number,
            "overlapArea": round(self.overlap_area, 2),
        }


class NodeDisplay(BaseModel):
    """Instructions for the node's roadside display"""
    message: str
    speed_limit: int
    lane_status: str
    alert_level: AlertLevel = AlertLevel.MEDIUM
    display_duration: int = 300       # seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "speedLimit": self.speed_limit,
            "laneStatus": self.lane_status,
            "alertLevel": self.alert_level.value,
            "displayDuration": self.display_duration,
        }


class DecisionResult(BaseModel):
    """Automatic recommendation computed for one incident"""
    blocked_lanes: List[BlockedLane] = Field(default_factory=list)
    lane_configuration: str = ""
    speed_limit: int
    original_speed_limit: int
    reduction_factor: float = 0.0
    actions: List[DecisionAction] = Field(default_factory=list)
    node_display: NodeDisplay
    timestamp: str
    influenced_by_ai: bool = False
    ai_severity: Optional[float] = None

    @property
    def speed_reduction(self) -> int:
        return self.original_speed_limit - self.speed_limit

    def to_dict(self) -> Dict[str, Any]:
        return {
            "blockedLanes": [lane.to_dict() for lane in self.blocked_lanes],
            "laneConfiguration": self.lane_configuration,
            "speedLimit": self.speed_limit,
            "originalSpeedLimit": self.original_speed_limit,
            "speedReduction": self.speed_reduction,
            "reductionFactor": round(self.reduction_factor, 4),
            "actions": [a.value for a in self.actions],
            "nodeDisplay": self.node_display.to_dict(),
            "timestamp": self.timestamp,
            "influencedByAI": self.influenced_by_ai,
            "aiSeverity": self.ai_severity,
        }
