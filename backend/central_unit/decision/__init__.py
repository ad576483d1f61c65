"""
Accident Decision Module

Pure functions that turn an accident polygon into a roadside
recommendation.

Components:
- lane_intersection: which calibrated lanes the accident covers
- decision_calculator: lane configuration, speed limit, actions, display

Usage:
    from central_unit.decision import find_intersected_lanes, DecisionCalculator

    blocked = find_intersected_lanes(accident_polygon, node.lane_polygons)
    result = DecisionCalculator().make_decision(
        lanes=node.sorted_lanes(),
        blocked_lanes=blocked,
        original_speed_limit=node.speed_limit
    )
"""

from central_unit.decision.lane_intersection import (
    normalize_polygon,
    extract_lane_number,
    intersection_area,
    find_intersected_lanes,
    NORMALIZED_RANGE,
)

from central_unit.decision.decision_calculator import (
    DecisionCalculator,
    calculate_lane_configuration,
    calculate_reduction_factor,
    calculate_adjusted_speed_limit,
    clamp_speed_limit,
    determine_actions,
    generate_node_display,
    determine_recommended_action,
    generate_decision_summary,
    MIN_SPEED_LIMIT,
    MAX_SPEED_LIMIT,
)

__all__ = [
    # Lane intersection
    'normalize_polygon',
    'extract_lane_number',
    'intersection_area',
    'find_intersected_lanes',
    'NORMALIZED_RANGE',

    # Decision calculator
    'DecisionCalculator',
    'calculate_lane_configuration',
    'calculate_reduction_factor',
    'calculate_adjusted_speed_limit',
    'clamp_speed_limit',
    'determine_actions',
    'generate_node_display',
    'determine_recommended_action',
    'generate_decision_summary',
    'MIN_SPEED_LIMIT',
    'MAX_SPEED_LIMIT',
]
