"""
Lane / Speed Decision Calculator

Turns the lane-blockage analysis into a roadside recommendation:

- Lane configuration string (e.g. "right,blocked,left")
- Adjusted speed limit, always within [40, 200] km/h
- Required traffic management actions
- Node display payload

Pure computation; safe to run for any number of incidents in parallel.
"""

import math
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Set

from central_unit.models.node import Lane
from central_unit.models.decision import (
    LaneState,
    DecisionAction,
    AlertLevel,
    BlockedLane,
    NodeDisplay,
    DecisionResult,
)


# Hard bounds (km/h). Never widened by configuration.
MIN_SPEED_LIMIT = 40
MAX_SPEED_LIMIT = 200

SPEED_REDUCTION_FACTOR = 0.5          # Up to 50% from blocked lanes
SEVERITY_REDUCTION_FACTOR = 0.3       # Up to 30% more from severity
MAX_REDUCTION = 0.7
MAX_SEVERITY = 5

# Classifier tags requesting a minimum reduction, strongest first
RECOMMENDATION_FLOORS = (
    ("REDUCE_SPEED_LIMIT_50_PERCENT", 0.5),
    ("REDUCE_SPEED_LIMIT_30_PERCENT", 0.3),
)

SPEED_REDUCTION_ACTION_THRESHOLD = 20  # km/h
DEFAULT_DISPLAY_DURATION = 300        # seconds


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp_speed_limit(speed: float) -> int:
    """Clamp any speed into [MIN_SPEED_LIMIT, MAX_SPEED_LIMIT]"""
    return max(MIN_SPEED_LIMIT, min(round_half_up(speed), MAX_SPEED_LIMIT))


def calculate_lane_configuration(lanes: Sequence[Lane], blocked_lane_numbers: Iterable[int]) -> str:
    """
    Build the per-lane instruction string

    Lane *i* (1-based, in the order given) is ``blocked`` if its number is
    blocked. Otherwise traffic is steered away from a blocked neighbour:
    left neighbour blocked only -> ``right``, right neighbour blocked only
    -> ``left``, neither or both -> ``open``.

    Args:
        lanes: Node lanes in display order
        blocked_lane_numbers: 1-based positions of blocked lanes

    Returns:
        Comma-joined configuration, empty string for no lanes
    """
    if not lanes:
        print("[DECISION] [WARN] No lanes provided for configuration calculation")
        return ""

    blocked: Set[int] = set(blocked_lane_numbers)
    total = len(lanes)
    states: List[str] = []

    for position in range(1, total + 1):
        if position in blocked:
            states.append(LaneState.BLOCKED.value)
            continue

        left_blocked = position > 1 and (position - 1) in blocked
        right_blocked = position < total and (position + 1) in blocked

        if left_blocked and not right_blocked:
            states.append(LaneState.RIGHT.value)
        elif right_blocked and not left_blocked:
            states.append(LaneState.LEFT.value)
        else:
            states.append(LaneState.OPEN.value)

    return ",".join(states)


def calculate_reduction_factor(
    blocked_count: int,
    total_lanes: int,
    severity: Optional[float] = None,
    recommendations: Optional[Iterable[str]] = None
) -> float:
    """
    Fraction of the original speed limit to remove

    base = blocked/total * 0.5; severity adds severity/5 * 0.3 with the sum
    capped at 0.7; a classifier tag may raise the result to a 0.5 or 0.3
    floor.
    """
    reduction = 0.0

    if total_lanes > 0:
        ratio = min(max(blocked_count, 0), total_lanes) / total_lanes
        reduction = ratio * SPEED_REDUCTION_FACTOR

    if severity:
        bounded = min(max(float(severity), 0.0), MAX_SEVERITY)
        reduction = min(reduction + (bounded / MAX_SEVERITY) * SEVERITY_REDUCTION_FACTOR, MAX_REDUCTION)

    tags = set(recommendations or [])
    for tag, floor in RECOMMENDATION_FLOORS:
        if tag in tags:
            reduction = max(reduction, floor)
            break

    return reduction


def calculate_adjusted_speed_limit(
    original_speed_limit: float,
    blocked_count: int,
    total_lanes: int,
    severity: Optional[float] = None,
    recommendations: Optional[Iterable[str]] = None
) -> int:
    """Adjusted speed limit in km/h, always within [40, 200]"""
    if not original_speed_limit or original_speed_limit <= 0:
        print(f"[DECISION] [WARN] Invalid current speed limit: {original_speed_limit}")
        return MIN_SPEED_LIMIT

    reduction = calculate_reduction_factor(blocked_count, total_lanes, severity, recommendations)
    return clamp_speed_limit(original_speed_limit * (1 - reduction))


def determine_actions(
    blocked_count: int,
    severity: Optional[float],
    lane_configuration: str,
    speed_reduction: int
) -> List[DecisionAction]:
    """All applicable actions, in a fixed order"""
    actions: List[DecisionAction] = []
    lane_states = lane_configuration.split(",") if lane_configuration else []

    if blocked_count > 0:
        actions.append(DecisionAction.CLOSE_LANES)

    if speed_reduction > SPEED_REDUCTION_ACTION_THRESHOLD:
        actions.append(DecisionAction.REDUCE_SPEED_LIMIT)

    if severity is not None and severity >= 4:
        actions.append(DecisionAction.ALERT_EMERGENCY_SERVICES)

    if LaneState.LEFT.value in lane_states or LaneState.RIGHT.value in lane_states:
        actions.append(DecisionAction.DISPLAY_MERGE_SIGNS)

    return actions


def generate_node_display(
    blocked_count: int,
    lane_configuration: str,
    adjusted_speed_limit: int,
    display_duration: int = DEFAULT_DISPLAY_DURATION
) -> NodeDisplay:
    if blocked_count > 0:
        message = f"ACCIDENT AHEAD - {blocked_count} LANE(S) BLOCKED"
    else:
        message = "ACCIDENT AHEAD - REDUCE SPEED"

    return NodeDisplay(
        message=message,
        speed_limit=adjusted_speed_limit,
        lane_status=lane_configuration,
        alert_level=AlertLevel.HIGH if blocked_count >= 2 else AlertLevel.MEDIUM,
        display_duration=display_duration
    )


def determine_recommended_action(severity: Optional[float], blocked_count: int, total_lanes: int) -> str:
    """Coarse recommendation used in the audit summary"""
    ratio = blocked_count / total_lanes if total_lanes > 0 else 0.0
    severity = severity or 0

    if severity >= 4 or (total_lanes > 0 and ratio >= 1.0):
        return "emergency-stop"
    if severity >= 3 or ratio >= 0.5 or blocked_count > 0:
        return "reduce-speed"
    return "normal-operation"


def generate_decision_summary(incident_id: str, decision: DecisionResult, total_lanes: int) -> dict:
    """Audit record for one decision"""
    blocked_count = len(decision.blocked_lanes)
    return {
        "incidentId": incident_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "analysis": {
            "severity": decision.ai_severity,
            "blockedLanes": [lane.name for lane in decision.blocked_lanes],
            "blockedCount": blocked_count,
        },
        "decisions": {
            "laneConfiguration": decision.lane_configuration,
            "speedAdjustment": {
                "from": decision.original_speed_limit,
                "to": decision.speed_limit,
                "reduction": decision.speed_reduction,
            },
            "recommendedAction": determine_recommended_action(
                decision.ai_severity, blocked_count, total_lanes
            ),
        },
    }


class DecisionCalculator:
    """
    Compute the automatic recommendation for one incident

    Usage:
        calculator = DecisionCalculator(config.get('decision', {}))
        result = calculator.make_decision(
            lanes=node.sorted_lanes(),
            blocked_lanes=blocked,
            original_speed_limit=node.speed_limit,
            severity=4
        )
    """

    def __init__(self, config: dict = None):
        """
        Args:
            config: ``decision`` configuration section
        """
        if config is None:
            config = {}

        self.display_duration = int(config.get('displayDurationSec', DEFAULT_DISPLAY_DURATION))

    def make_decision(
        self,
        lanes: Sequence[Lane],
        blocked_lanes: Sequence[BlockedLane],
        original_speed_limit: int,
        severity: Optional[float] = None,
        recommendations: Optional[Iterable[str]] = None
    ) -> DecisionResult:
        """
        Args:
            lanes: Node lanes in display order
            blocked_lanes: Output of the lane intersection analysis
            original_speed_limit: Node's configured speed limit (km/h)
            severity: Classifier severity 1-5, if any
            recommendations: Classifier recommendation tags, if any

        Returns:
            DecisionResult
        """
        recommendations = list(recommendations or [])
        blocked_numbers = {lane.lane_number for lane in blocked_lanes}
        blocked_count = len(blocked_lanes)
        total_lanes = len(lanes)

        lane_configuration = calculate_lane_configuration(lanes, blocked_numbers)

        reduction = calculate_reduction_factor(blocked_count, total_lanes, severity, recommendations)
        adjusted = calculate_adjusted_speed_limit(
            original_speed_limit, blocked_count, total_lanes, severity, recommendations
        )

        actions = determine_actions(
            blocked_count=blocked_count,
            severity=severity,
            lane_configuration=lane_configuration,
            speed_reduction=original_speed_limit - adjusted
        )

        display = generate_node_display(
            blocked_count, lane_configuration, adjusted, self.display_duration
        )

        print(f"[DECISION] {blocked_count}/{total_lanes} lane(s) blocked - "
              f"config={lane_configuration!r}, speed {original_speed_limit} -> {adjusted} km/h, "
              f"actions={[a.value for a in actions]}")

        return DecisionResult(
            blocked_lanes=list(blocked_lanes),
            lane_configuration=lane_configuration,
            speed_limit=adjusted,
            original_speed_limit=original_speed_limit,
            reduction_factor=reduction,
            actions=actions,
            node_display=display,
            timestamp=datetime.now(timezone.utc).isoformat(),
            influenced_by_ai=severity is not None or bool(recommendations),
            ai_severity=severity
        )
