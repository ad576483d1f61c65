"""
Lane Intersection Analyzer

Determines which calibrated lane polygons are physically covered by an
accident polygon.

Every polygon is normalized into a resolution-independent 0-1000 space
using its own base width/height, so lanes calibrated on a 1920x1080 frame
stay comparable with an accident drawn on a 640x360 frame.

Two polygons overlap when their normalized shapes share a nonzero area.
Degenerate input (fewer than 3 points) never raises: it is logged and
treated as "no match" for that polygon.
"""

import re
from typing import List, Optional, Sequence

from shapely.geometry import Polygon as ShapelyPolygon
from shapely.validation import make_valid

from central_unit.models.node import Polygon, LanePolygon
from central_unit.models.decision import BlockedLane


NORMALIZED_RANGE = 1000.0
MIN_POLYGON_POINTS = 3

_LANE_NUMBER_PATTERN = re.compile(r"\d+")


def normalize_polygon(polygon: Polygon) -> Optional[ShapelyPolygon]:
    """
    Convert a pixel-space polygon into normalized shapely geometry

    Args:
        polygon: Polygon with points and base dimensions

    Returns:
        Closed shapely polygon in 0-1000 space, or None if it has fewer
        than 3 points
    """
    if polygon is None or len(polygon.points) < MIN_POLYGON_POINTS:
        return None

    coords = [
        (
            (point.x / polygon.base_width) * NORMALIZED_RANGE,
            (point.y / polygon.base_height) * NORMALIZED_RANGE,
        )
        for point in polygon.points
    ]

    # Close the ring if the caller left it open
    if coords[0] != coords[-1]:
        coords.append(coords[0])

    shape = ShapelyPolygon(coords)
    if not shape.is_valid:
        # Self-intersecting calibrations (bow-ties) are repaired, not dropped
        shape = make_valid(shape)
    return shape


def extract_lane_number(name: Optional[str], index: int) -> int:
    """First digit run in the lane name, else 1-based list position"""
    if name:
        match = _LANE_NUMBER_PATTERN.search(name)
        if match:
            return int(match.group(0))
    return index + 1


def intersection_area(first: Polygon, second: Polygon) -> float:
    """
    Overlap area of two polygons in normalized units

    Returns 0.0 for degenerate input or when the shapes do not overlap.
    """
    try:
        a = normalize_polygon(first)
        b = normalize_polygon(second)
        if a is None or b is None:
            return 0.0
        return float(a.intersection(b).area)
    except Exception as e:
        print(f"[GEO] [ERROR] Intersection area failed: {e}")
        return 0.0


def find_intersected_lanes(
    accident_polygon: Polygon,
    lane_polygons: Sequence[LanePolygon]
) -> List[BlockedLane]:
    """
    Find the lane polygons that overlap the accident polygon

    Args:
        accident_polygon: Accident area drawn by the edge node
        lane_polygons: Calibrated lane polygons of the node, in stored order

    Returns:
        Blocked lanes in input order, each tagged with its lane number
    """
    point_count = len(accident_polygon.points) if accident_polygon else 0
    print(f"[GEO] Intersection analysis: accident points={point_count}, "
          f"lanes={len(lane_polygons or [])}")

    accident_shape = normalize_polygon(accident_polygon) if accident_polygon else None
    if accident_shape is None:
        print("[GEO] [WARN] Invalid accident polygon - insufficient points")
        return []

    if not lane_polygons:
        print("[GEO] [WARN] No lane polygons configured for intersection analysis")
        return []

    blocked: List[BlockedLane] = []

    for index, lane_polygon in enumerate(lane_polygons):
        try:
            lane_shape = normalize_polygon(lane_polygon)
            if lane_shape is None:
                print(f"[GEO] [WARN] Lane polygon {index} ({lane_polygon.id}) has insufficient points")
                continue

            if not accident_shape.intersects(lane_shape):
                continue

            # Edge or corner contact shares no area
            overlap = intersection_area(accident_polygon, lane_polygon)
            if overlap <= 0:
                continue

            lane_number = extract_lane_number(lane_polygon.name, index)
            blocked.append(BlockedLane(
                id=lane_polygon.id,
                name=lane_polygon.name or f"Lane {index + 1}",
                lane_number=lane_number,
                overlap_area=overlap
            ))
            print(f"[GEO] Lane intersection detected: {lane_polygon.name} (lane {lane_number})")

        except Exception as e:
            print(f"[GEO] [ERROR] Error checking lane {index} for intersection: {e}")

    print(f"[GEO] Analysis complete - {len(blocked)} lane(s) intersected: "
          f"{[lane.name for lane in blocked]}")

    return blocked
