"""
Decision Routes - Dry-run of the lane analysis and decision calculation

Endpoints:
- POST /api/decision/analyze - Compute the recommendation for a node without
  creating an incident or waiting for an operator
"""

from typing import Optional, List, Dict, Any, Union

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from central_unit.api.responses import raise_for_result, require
from central_unit.decision import find_intersected_lanes, generate_decision_summary
from central_unit.incident.incident_orchestrator import parse_polygon, reported_lane_fallback

router = APIRouter(prefix="/api/decision", tags=["decision"])


# ============================================
# Global Component References
# ============================================

_node_registry = None
_calculator = None


def set_decision_components(node_registry=None, calculator=None):
    """Set decision system components"""
    global _node_registry, _calculator
    _node_registry = node_registry
    _calculator = calculator


# ============================================
# Request Models
# ============================================

class AnalyzeRequest(BaseModel):
    """Recommendation request for one node"""
    nodeId: str
    accidentPolygon: Optional[Union[Dict[str, Any], str]] = None
    laneNumber: Optional[int] = Field(None, description="Reported lane, used when no polygon analysis is possible")
    severity: Optional[float] = Field(None, ge=1, le=5)
    recommendations: List[str] = Field(default_factory=list)


# ============================================
# Endpoints
# ============================================

@router.post("/analyze")
async def analyze(request: AnalyzeRequest):
    """
    Run lane analysis and decision calculation for a node

    Nothing is broadcast, persisted or applied.
    """
    registry = require(_node_registry, "Node registry")
    calculator = require(_calculator, "Decision calculator")

    polygon = raise_for_result(parse_polygon(request.accidentPolygon))

    node = registry.get_node(request.nodeId)
    if node is None:
        raise HTTPException(
            status_code=404,
            detail=f"Node not found: {request.nodeId}"
        )

    lanes = node.sorted_lanes()
    if polygon is not None and node.lane_polygons:
        blocked = find_intersected_lanes(polygon, node.lane_polygons)
    elif request.laneNumber is not None:
        blocked = reported_lane_fallback(lanes, request.laneNumber)
    else:
        blocked = []

    decision = calculator.make_decision(
        lanes=lanes,
        blocked_lanes=blocked,
        original_speed_limit=node.speed_limit,
        severity=request.severity,
        recommendations=request.recommendations
    )

    return {
        "success": True,
        "nodeId": node.node_id,
        "decision": decision.to_dict(),
        "summary": generate_decision_summary(f"analysis_{node.node_id}", decision, len(lanes))
    }
