"""
Shared test fixtures

- In-memory SQLite node database (StaticPool so every session sees the same data)
- Mock WebSocket emitter
- Polygon helpers
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.pool import StaticPool

from central_unit.database.database import Base, create_db_engine, create_session_factory, init_db
from central_unit.models.node import Polygon, LanePolygon, PolygonPoint
from central_unit.websocket.emitter import WebSocketEmitter


def rect_points(x0, y0, x1, y1):
    return [
        PolygonPoint(x=x0, y=y0),
        PolygonPoint(x=x1, y=y0),
        PolygonPoint(x=x1, y=y1),
        PolygonPoint(x=x0, y=y1),
    ]


def rect(x0, y0, x1, y1, width=1920, height=1080) -> Polygon:
    """Axis-aligned rectangle drawn on a width x height frame"""
    return Polygon(points=rect_points(x0, y0, x1, y1), base_width=width, base_height=height)


def lane_rect(lane_id, name, x0, x1, width=1920, height=1080) -> LanePolygon:
    """Full-height vertical lane strip between x0 and x1"""
    return LanePolygon(
        id=lane_id,
        name=name,
        points=rect_points(x0, 0, x1, height),
        base_width=width,
        base_height=height
    )


def three_lane_polygons():
    """Lanes 1-3 as equal vertical thirds of a 1920x1080 frame"""
    return [
        lane_rect(1, "Lane 1", 0, 640),
        lane_rect(2, "Lane 2", 640, 1280),
        lane_rect(3, "Lane 3", 1280, 1920),
    ]


@pytest.fixture
def session_factory():
    """Fresh in-memory node database per test"""
    engine = create_db_engine("sqlite:///:memory:", poolclass=StaticPool)
    init_db(engine)
    factory = create_session_factory(engine)
    try:
        yield factory
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def mock_emitter():
    """Emitter whose emit methods are AsyncMocks"""
    emitter = MagicMock(spec=WebSocketEmitter)
    emitter.emit_accident_detected = AsyncMock()
    emitter.emit_decision_resolved = AsyncMock()
    emitter.emit_admin_response_ack = AsyncMock()
    emitter.emit_node_heartbeat = AsyncMock()
    emitter.emit_node_connected = AsyncMock()
    emitter.emit_node_disconnected = AsyncMock()
    emitter.emit_node_config_update = AsyncMock()
    emitter.emit_connection_success = AsyncMock()
    return emitter
