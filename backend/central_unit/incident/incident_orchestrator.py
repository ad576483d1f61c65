"""
Incident Orchestrator

Wires the accident pipeline together for every incoming detection:

    validate → load node → lane analysis → decision calculation
      → broadcast to operators → await decision (or timeout)
      → apply to node → notify Mobile App Server (detached)

Also handles operator decision submissions and inbound reports from the
cooperating Mobile App Server.
"""

import asyncio
import json
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Union

from pydantic import ValidationError as PydanticValidationError

from central_unit.decision.decision_calculator import DecisionCalculator, clamp_speed_limit
from central_unit.decision.lane_intersection import find_intersected_lanes
from central_unit.incident.decision_coordinator import DecisionCoordinator
from central_unit.incident.mobile_notifier import MobileAppNotifier
from central_unit.incident.notification_suppressor import NotificationSuppressor
from central_unit.incident.stores import IncidentStore, InMemoryIncidentStore
from central_unit.models.decision import BlockedLane, DecisionResult, LaneState
from central_unit.models.incident import (
    Coordinates,
    DecisionStatus,
    Incident,
    OperatorDecision,
    generate_incident_id,
)
from central_unit.models.node import Lane, Node, Polygon
from central_unit.models.result import (
    Result,
    Success,
    ValidationError,
    NotFoundError,
    DecisionTimedOut,
)


EXTERNAL_NODE_ID = "external"
SUBMITTABLE_STATUSES = (DecisionStatus.CONFIRMED, DecisionStatus.MODIFIED, DecisionStatus.REJECTED)
MIN_REJECTION_MESSAGE_LENGTH = 3


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_coordinates(lat, lng) -> Optional[ValidationError]:
    if not _is_number(lat) or not -90 <= lat <= 90:
        return ValidationError("lat must be a number between -90 and 90", field="lat")
    if not _is_number(lng) or not -180 <= lng <= 180:
        return ValidationError("lng must be a number between -180 and 180", field="lng")
    return None


def parse_polygon(raw: Union[None, str, Dict[str, Any], Polygon]) -> Union[Polygon, ValidationError, None]:
    """
    Accept an accident polygon as a model, a dict or a JSON string

    Structural problems (bad JSON, non-numeric points, non-positive base
    dimensions) are a ValidationError. Too few points is not: the analyzer
    degrades that to "no intersection".
    """
    if raw is None or isinstance(raw, Polygon):
        return raw

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return ValidationError("accidentPolygon is not valid JSON", field="accidentPolygon")

    if not isinstance(raw, dict):
        return ValidationError("accidentPolygon must be an object", field="accidentPolygon")
    if not isinstance(raw.get("points"), list):
        return ValidationError("accidentPolygon must contain a points array", field="accidentPolygon")

    try:
        return Polygon.model_validate(raw)
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        return ValidationError(
            f"accidentPolygon invalid at {location or 'root'}: {first.get('msg')}",
            field="accidentPolygon"
        )


def validate_lane_configuration(lane_configuration: str) -> Optional[ValidationError]:
    allowed = {state.value for state in LaneState}
    tokens = [token.strip() for token in lane_configuration.split(",")]
    unknown = [token for token in tokens if token not in allowed]
    if unknown:
        return ValidationError(
            f"laneConfiguration contains unknown lane states: {unknown}",
            field="laneConfiguration"
        )
    return None


def reported_lane_fallback(lanes: List[Lane], lane_number: int) -> List[BlockedLane]:
    """Treat the lane whose id matches the reported lane number as blocked"""
    for position, lane in enumerate(lanes, start=1):
        if lane.id == lane_number:
            return [BlockedLane(id=lane.id, name=lane.name, lane_number=position)]

    print(f"[INCIDENT] [WARN] Reported lane {lane_number} not found on node; no lane marked blocked")
    return []


class IncidentOrchestrator:
    """
    Per-detection pipeline

    Usage:
        orchestrator = IncidentOrchestrator(
            node_registry=registry,
            coordinator=coordinator,
            suppressor=suppressor,
            notifier=notifier,
            ws_emitter=emitter
        )

        result = await orchestrator.process_detection(
            node_id="N1", lat=30.04, lng=31.23, lane_number=2,
            accident_polygon={"points": [...], "baseWidth": 1920, "baseHeight": 1080}
        )
    """

    def __init__(
        self,
        node_registry,
        coordinator: DecisionCoordinator,
        suppressor: NotificationSuppressor,
        notifier: Optional[MobileAppNotifier] = None,
        ws_emitter=None,
        incident_store: Optional[IncidentStore] = None,
        calculator: Optional[DecisionCalculator] = None,
        decision_timeout: Optional[float] = None
    ):
        """
        Args:
            node_registry: NodeRegistry (node reference data and decision application)
            coordinator: Pending decision registry
            suppressor: Echo-loop guard for Mobile App Server notifications
            notifier: Mobile App Server client (optional)
            ws_emitter: WebSocket emitter for operator broadcasts (optional)
            incident_store: Incident store (default in-memory)
            calculator: Decision calculator (default configuration)
            decision_timeout: Operator wait in seconds (default: coordinator's)
        """
        self.node_registry = node_registry
        self.coordinator = coordinator
        self.suppressor = suppressor
        self.notifier = notifier
        self.ws_emitter = ws_emitter
        self.incident_store = incident_store or InMemoryIncidentStore()
        self.calculator = calculator or DecisionCalculator()
        self.decision_timeout = decision_timeout

        self._notification_tasks: Set[asyncio.Task] = set()

        # Statistics
        self.total_detections = 0
        self.total_confirmed = 0
        self.total_rejected = 0
        self.total_timeouts = 0
        self.total_inbound = 0
        self.total_inbound_suppressed = 0

        print("[OK] Incident Orchestrator initialized")

    # ============================================
    # Detection Pipeline
    # ============================================

    async def process_detection(
        self,
        node_id: str,
        lat: float,
        lng: float,
        lane_number: int,
        media_refs: Optional[List[str]] = None,
        accident_polygon: Union[None, str, Dict[str, Any], Polygon] = None,
        severity: Optional[float] = None,
        recommendations: Optional[List[str]] = None
    ) -> Result:
        """
        Run one detection through the full pipeline

        Suspends until the operator decides or the decision times out.

        Returns:
            Success | DecisionTimedOut with payload
            {incidentId, speedLimit, nodeDisplay, decision, recommendation};
            ValidationError | NotFoundError before anything is registered
        """
        # 1. Validate
        if not isinstance(node_id, str) or not node_id.strip():
            return ValidationError("nodeId is required", field="nodeId")

        invalid = validate_coordinates(lat, lng)
        if invalid:
            return invalid

        if isinstance(lane_number, bool) or not isinstance(lane_number, int) or lane_number < 1:
            return ValidationError("laneNumber must be a positive integer", field="laneNumber")

        if severity is not None and (not _is_number(severity) or not 1 <= severity <= 5):
            return ValidationError("severity must be between 1 and 5", field="severity")

        if severity is not None:
            severity = float(severity)

        polygon = parse_polygon(accident_polygon)
        if isinstance(polygon, ValidationError):
            return polygon

        # 2. Node reference data
        node: Optional[Node] = self.node_registry.get_node(node_id)
        if node is None:
            print(f"[INCIDENT] [WARN] Detection from unknown node {node_id}")
            return NotFoundError(f"Node {node_id} not found", resource_id=node_id)

        self.total_detections += 1
        lanes = node.sorted_lanes()

        # 3. Lane analysis
        if polygon is not None and node.lane_polygons:
            blocked = find_intersected_lanes(polygon, node.lane_polygons)
        else:
            print(f"[INCIDENT] No polygon analysis possible for {node_id}; using reported lane {lane_number}")
            blocked = reported_lane_fallback(lanes, lane_number)

        # 4. Automatic recommendation
        recommendation = self.calculator.make_decision(
            lanes=lanes,
            blocked_lanes=blocked,
            original_speed_limit=node.speed_limit,
            severity=severity,
            recommendations=recommendations
        )

        # 5. Incident + pending decision (registered before the broadcast)
        incident = Incident(
            id=generate_incident_id(node_id),
            node_id=node_id,
            coordinates=Coordinates(lat=lat, lng=lng),
            lane_number=lane_number,
            media_refs=list(media_refs or []),
            accident_polygon=polygon,
            severity=severity,
            recommendations=list(recommendations or [])
        )
        self.incident_store.save(incident)

        try:
            future = self.coordinator.register(incident.id, self.decision_timeout)

            print(f"[INCIDENT] {incident.id} from {node_id} lane {lane_number}: "
                  f"{len(blocked)} lane(s) blocked, awaiting operator decision")

            if self.ws_emitter:
                await self.ws_emitter.emit_accident_detected(
                    incident_id=incident.id,
                    node_id=node_id,
                    coordinates={"lat": lat, "lng": lng},
                    lane_number=lane_number,
                    media_list=incident.media_refs,
                    timestamp=incident.created_at * 1000,
                    decision=recommendation.to_dict()
                )

            # 6. Suspend until decided
            operator = await future

            # 7. Apply
            return await self._apply_outcome(incident, node, recommendation, operator)

        finally:
            self.incident_store.delete(incident.id)

    async def _apply_outcome(
        self,
        incident: Incident,
        node: Node,
        recommendation: DecisionResult,
        operator: OperatorDecision
    ) -> Result:
        incident.status = operator.incident_status()
        incident.resolved_at = time.time()
        if operator.node_id is None:
            operator.node_id = incident.node_id

        if operator.is_applied:
            speed_limit = recommendation.speed_limit
            lane_configuration = recommendation.lane_configuration
            if operator.status == DecisionStatus.MODIFIED:
                if operator.speed_limit is not None:
                    speed_limit = operator.speed_limit
                if operator.lane_configuration:
                    lane_configuration = operator.lane_configuration
            speed_limit = clamp_speed_limit(speed_limit)

            applied = await self.node_registry.apply_decision(node.node_id, lane_configuration, speed_limit)
            if not applied.ok:
                print(f"[INCIDENT] [WARN] Could not apply decision for {incident.id}: {applied.message}")

            node_display = recommendation.node_display.model_copy(
                update={"speed_limit": speed_limit, "lane_status": lane_configuration}
            ).to_dict()

            self.total_confirmed += 1
            self.schedule_notification(incident)
        else:
            # Nothing changes on the road
            speed_limit = node.speed_limit
            lane_configuration = node.lane_status
            node_display = None

            if operator.status == DecisionStatus.TIMEOUT:
                self.total_timeouts += 1
                print(f"[INCIDENT] [WARN] {incident.id} unresolved: no operator decision in time")
            else:
                self.total_rejected += 1
                print(f"[INCIDENT] {incident.id} rejected by operator: {operator.message}")

        if self.ws_emitter:
            await self.ws_emitter.emit_decision_resolved(
                incident_id=incident.id,
                node_id=incident.node_id,
                status=operator.status.value,
                speed_limit=speed_limit,
                lane_configuration=lane_configuration
            )

        payload = {
            "incidentId": incident.id,
            "speedLimit": speed_limit,
            "nodeDisplay": node_display,
            "decision": operator.to_dict(),
            "recommendation": recommendation.to_dict()
        }

        print(f"[INCIDENT] {incident.id} finished: {operator.status.value}, speed limit {speed_limit} km/h")

        if operator.status == DecisionStatus.TIMEOUT:
            return DecisionTimedOut(payload)
        return Success(payload)

    # ============================================
    # Operator Decisions
    # ============================================

    def submit_decision(
        self,
        incident_id: str,
        status: str,
        actions: Optional[List[str]] = None,
        message: Optional[str] = None,
        node_id: Optional[str] = None,
        speed_limit: Optional[int] = None,
        lane_configuration: Optional[str] = None
    ) -> Result:
        """
        Deliver an operator decision to the waiting incident

        Answers immediately; ``delivered`` is False when the incident was
        already resolved, timed out or unknown.

        Returns:
            Success({incidentId, delivered, decision}) | ValidationError
        """
        if not isinstance(incident_id, str) or not incident_id.strip():
            return ValidationError("incidentId is required", field="incidentId")

        try:
            decision_status = DecisionStatus(str(status).upper())
        except ValueError:
            decision_status = None
        if decision_status not in SUBMITTABLE_STATUSES:
            return ValidationError("status must be CONFIRMED, MODIFIED or REJECTED", field="status")

        actions = list(actions or [])

        if decision_status == DecisionStatus.CONFIRMED and not actions:
            return ValidationError("At least one action is required for confirmation", field="actions")

        if decision_status == DecisionStatus.REJECTED and len((message or "").strip()) < MIN_REJECTION_MESSAGE_LENGTH:
            return ValidationError("A rejection reason is required", field="message")

        if decision_status == DecisionStatus.MODIFIED:
            if speed_limit is None and not lane_configuration:
                return ValidationError(
                    "At least one modification (speedLimit or laneConfiguration) is required",
                    field="speedLimit"
                )
            if speed_limit is not None and (not _is_number(speed_limit) or speed_limit <= 0):
                return ValidationError("speedLimit must be a positive number", field="speedLimit")

        if lane_configuration:
            invalid = validate_lane_configuration(lane_configuration)
            if invalid:
                return invalid

        decision = OperatorDecision(
            incident_id=incident_id,
            node_id=node_id,
            status=decision_status,
            actions=actions,
            message=message,
            speed_limit=int(speed_limit) if speed_limit is not None else None,
            lane_configuration=lane_configuration or None
        )

        delivered = self.coordinator.resolve(incident_id, decision)

        return Success({
            "incidentId": incident_id,
            "delivered": delivered,
            "decision": decision.to_dict()
        })

    # ============================================
    # Mobile App Server Boundary
    # ============================================

    def schedule_notification(self, incident: Incident) -> Optional[asyncio.Task]:
        """
        Forward a confirmed incident to the Mobile App Server in the background

        Skipped when no notifier is configured or the same location was
        notified within the suppression window.
        """
        if self.notifier is None or not self.notifier.is_configured:
            print(f"[MOBILE] Mobile App Server not configured; {incident.id} not forwarded")
            return None

        lat, lng = incident.coordinates.lat, incident.coordinates.lng
        if not self.suppressor.should_relay(lat, lng, incident.node_id):
            print(f"[MOBILE] {incident.id} already forwarded recently; skipping")
            return None

        task = asyncio.create_task(self._notify(incident))
        self._notification_tasks.add(task)
        task.add_done_callback(self._notification_tasks.discard)
        return task

    async def _notify(self, incident: Incident):
        occurred_at = datetime.fromtimestamp(incident.created_at, tz=timezone.utc).isoformat()
        try:
            result = await self.notifier.notify_accident(
                accident_id=incident.id,
                occurred_at=occurred_at,
                lat=incident.coordinates.lat,
                lng=incident.coordinates.lng
            )
        except Exception as e:
            print(f"[MOBILE] [ERROR] Notification task for {incident.id} crashed: {e}")
            return None

        if result.ok:
            print(f"[MOBILE] Notification task for {incident.id} completed")
        else:
            print(f"[MOBILE] [ERROR] Notification for {incident.id} failed: {result.message}")
        return result

    async def drain_notifications(self):
        """Wait for in-flight notification tasks (shutdown and tests)"""
        if self._notification_tasks:
            await asyncio.gather(*list(self._notification_tasks), return_exceptions=True)

    async def handle_inbound_report(
        self,
        latitude: float,
        longitude: float,
        description: Optional[str] = None,
        severity: Optional[str] = None,
        accident_id: Optional[str] = None,
        media: Optional[List[str]] = None
    ) -> Result:
        """
        Accident reported by the Mobile App Server

        Echoes of our own recent notifications are dropped; anything else is
        shown to operators without waiting for a decision.

        Returns:
            Success({incidentId, suppressed, ...}) | ValidationError
        """
        invalid = validate_coordinates(latitude, longitude)
        if invalid:
            return invalid

        self.total_inbound += 1

        if not self.suppressor.should_relay(latitude, longitude):
            self.total_inbound_suppressed += 1
            print(f"[INCIDENT] Inbound report at ({latitude}, {longitude}) is an echo; dropped")
            return Success({
                "incidentId": accident_id,
                "suppressed": True,
                "message": "Duplicate accident report suppressed"
            })

        incident_id = accident_id or generate_incident_id("mobile")
        print(f"[INCIDENT] Inbound report {incident_id}: {description or 'no description'} "
              f"at ({latitude}, {longitude}), severity={severity}")

        if self.ws_emitter:
            await self.ws_emitter.emit_accident_detected(
                incident_id=incident_id,
                node_id=EXTERNAL_NODE_ID,
                coordinates={"lat": latitude, "lng": longitude},
                lane_number=0,
                media_list=list(media or []),
                severity=str(severity).upper() if severity else None,
                description=description
            )

        return Success({
            "incidentId": incident_id,
            "suppressed": False,
            "message": "Accident report received and displayed on dashboard"
        })

    # ============================================
    # Queries
    # ============================================

    def get_pending_incidents(self) -> List[Dict[str, Any]]:
        """Incidents currently awaiting an operator decision"""
        return [
            {
                "incidentId": incident.id,
                "nodeId": incident.node_id,
                "coordinates": incident.coordinates.model_dump(),
                "laneNumber": incident.lane_number,
                "createdAt": incident.created_at
            }
            for incident in self.incident_store.list_pending()
            if self.coordinator.is_pending(incident.id)
        ]

    def get_statistics(self) -> dict:
        return {
            'pending': len(self.coordinator.pending_ids()),
            'totalDetections': self.total_detections,
            'totalConfirmed': self.total_confirmed,
            'totalRejected': self.total_rejected,
            'totalTimeouts': self.total_timeouts,
            'totalInbound': self.total_inbound,
            'totalInboundSuppressed': self.total_inbound_suppressed,
            'inFlightNotifications': len(self._notification_tasks)
        }


# ============================================
# Global Instance Management
# ============================================

_orchestrator: Optional[IncidentOrchestrator] = None


def init_incident_orchestrator(**kwargs) -> IncidentOrchestrator:
    """Initialize global incident orchestrator"""
    global _orchestrator
    _orchestrator = IncidentOrchestrator(**kwargs)
    return _orchestrator


def get_incident_orchestrator() -> Optional[IncidentOrchestrator]:
    """Get global incident orchestrator"""
    return _orchestrator


def set_incident_orchestrator(orchestrator: Optional[IncidentOrchestrator]):
    """Set global incident orchestrator"""
    global _orchestrator
    _orchestrator = orchestrator
