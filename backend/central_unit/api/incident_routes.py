"""
Incident Routes - Accident detection and operator decision endpoints

Endpoints:
- POST /api/accident-detected - Edge node reports an accident (waits for the operator)
- POST /api/accident-decision - Operator confirms / modifies / rejects an incident
- POST /api/mobile-accident-detected - Accident reported by the Mobile App Server
- GET /api/incidents/pending - Incidents awaiting a decision
- GET /api/incidents/statistics - Pipeline statistics
"""

from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Union

from fastapi import APIRouter
from pydantic import BaseModel, Field

from central_unit.api.responses import raise_for_result, require
from central_unit.models.result import DecisionTimedOut

router = APIRouter(prefix="/api", tags=["incident"])


# ============================================
# Global Component References
# ============================================

_orchestrator = None


def set_incident_components(orchestrator=None):
    """Set incident system components"""
    global _orchestrator
    _orchestrator = orchestrator


def _received_at() -> str:
    return datetime.now(timezone.utc).isoformat()


# ============================================
# Request Models
# ============================================

class CoordinatesRequest(BaseModel):
    lat: float
    lng: float


class AccidentDetectedRequest(BaseModel):
    """Accident reported by an edge node"""
    nodeId: str = Field(..., description="Reporting node")
    coordinates: CoordinatesRequest
    laneNumber: int = Field(..., description="Lane the node reported (lane id)")
    mediaRefs: List[str] = Field(default_factory=list, description="Stored media references")
    accidentPolygon: Optional[Union[Dict[str, Any], str]] = Field(
        None,
        description="Accident area {points, baseWidth, baseHeight}, object or JSON string"
    )
    severity: Optional[float] = Field(None, description="Classifier severity 1-5")
    recommendations: List[str] = Field(default_factory=list, description="Classifier tags")


class AccidentDecisionRequest(BaseModel):
    """Operator decision for a pending incident"""
    incidentId: str
    nodeId: Optional[str] = None
    status: str = Field(..., description="CONFIRMED, MODIFIED or REJECTED")
    actions: List[str] = Field(default_factory=list)
    message: Optional[str] = None
    speedLimit: Optional[int] = Field(None, description="MODIFIED: overriding speed limit")
    laneConfiguration: Optional[str] = Field(None, description="MODIFIED: overriding lane configuration")


class MobileAccidentRequest(BaseModel):
    """Accident reported by the Mobile App Server"""
    accidentId: Optional[str] = None
    description: Optional[str] = None
    latitude: float
    longitude: float
    severity: Optional[str] = None
    media: List[str] = Field(default_factory=list)


# ============================================
# Endpoints
# ============================================

@router.post("/accident-detected")
async def accident_detected(request: AccidentDetectedRequest):
    """
    Process an accident detection from an edge node

    Runs lane analysis and decision calculation, broadcasts the incident to
    operators and answers once the operator decides or the decision times
    out. A timeout is not an error: the node keeps its current settings.
    """
    orchestrator = require(_orchestrator, "Incident pipeline")

    result = await orchestrator.process_detection(
        node_id=request.nodeId,
        lat=request.coordinates.lat,
        lng=request.coordinates.lng,
        lane_number=request.laneNumber,
        media_refs=request.mediaRefs,
        accident_polygon=request.accidentPolygon,
        severity=request.severity,
        recommendations=request.recommendations
    )
    raise_for_result(result)

    return {
        "success": True,
        "resolved": not isinstance(result, DecisionTimedOut),
        **result.payload,
        "receivedAt": _received_at()
    }


@router.post("/accident-decision")
async def accident_decision(request: AccidentDecisionRequest):
    """
    Record an operator decision

    Answers immediately. ``delivered`` is false when the incident was
    already resolved, had timed out, or is unknown.
    """
    orchestrator = require(_orchestrator, "Incident pipeline")

    result = orchestrator.submit_decision(
        incident_id=request.incidentId,
        status=request.status,
        actions=request.actions,
        message=request.message,
        node_id=request.nodeId,
        speed_limit=request.speedLimit,
        lane_configuration=request.laneConfiguration
    )
    raise_for_result(result)

    print(f"[INCIDENT] Decision recorded for incident {request.incidentId}: {request.status}")

    return {
        "success": True,
        **result.payload,
        "receivedAt": _received_at()
    }


@router.post("/mobile-accident-detected")
async def mobile_accident_detected(request: MobileAccidentRequest):
    """
    Accept an accident report from the Mobile App Server

    Echoes of accidents this unit forwarded within the suppression window
    are dropped. Other reports are shown on the dashboard without waiting
    for a decision.
    """
    orchestrator = require(_orchestrator, "Incident pipeline")

    result = await orchestrator.handle_inbound_report(
        latitude=request.latitude,
        longitude=request.longitude,
        description=request.description,
        severity=request.severity,
        accident_id=request.accidentId,
        media=request.media
    )
    raise_for_result(result)

    return {
        "success": True,
        **result.payload,
        "timestamp": _received_at()
    }


@router.get("/incidents/pending")
async def get_pending_incidents():
    """Incidents currently waiting for an operator decision"""
    orchestrator = require(_orchestrator, "Incident pipeline")

    pending = orchestrator.get_pending_incidents()
    return {
        "total": len(pending),
        "incidents": pending
    }


@router.get("/incidents/statistics")
async def get_incident_statistics():
    """Orchestrator, coordinator and suppressor statistics"""
    orchestrator = require(_orchestrator, "Incident pipeline")

    stats = {
        "orchestrator": orchestrator.get_statistics(),
        "coordinator": orchestrator.coordinator.get_statistics(),
        "suppressor": orchestrator.suppressor.get_statistics()
    }
    if orchestrator.notifier is not None:
        stats["mobileApp"] = orchestrator.notifier.get_statistics()
    return stats
