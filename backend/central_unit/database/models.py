"""
SQLAlchemy ORM Models

Persistent state of the Central Unit: registered edge nodes with their
lane layout, calibrated lane polygons and liveness.

Incidents, pending decisions and notification markers are deliberately
not stored here; they live only for the lifetime of the process.
"""

import json

from sqlalchemy import Column, Integer, String, Float, Text, DateTime
from sqlalchemy.sql import func

from .database import Base


class NodeRecord(Base):
    """
    Registered edge detection node

    Lanes, lane polygons and health are stored as JSON text.
    """
    __tablename__ = "nodes"

    node_id = Column(String, primary_key=True)
    name = Column(String)
    street_name = Column(String, default="Unknown Street")
    latitude = Column(Float, default=0.0)
    longitude = Column(Float, default=0.0)

    lanes_json = Column(Text)                 # JSON: [{"id", "name", "type", "status"}]
    lane_polygons_json = Column(Text)         # JSON: [{"id", "name", "points", "baseWidth", "baseHeight"}]
    speed_limit = Column(Integer, default=80)
    lane_status = Column(String, default="unknown")

    status = Column(String, nullable=False, default="offline", index=True)
    last_heartbeat = Column(Float)            # Server receive time
    last_heartbeat_sent = Column(Float)       # Timestamp reported by the node
    last_update = Column(Float)
    uptime_sec = Column(Integer, default=0)
    health_json = Column(Text)
    firmware_version = Column(String, default="unknown")
    model_version = Column(String, default="unknown")

    created_at = Column(DateTime, server_default=func.now())

    def lanes(self) -> list:
        return json.loads(self.lanes_json) if self.lanes_json else []

    def lane_polygons(self) -> list:
        return json.loads(self.lane_polygons_json) if self.lane_polygons_json else []

    def health(self) -> dict:
        return json.loads(self.health_json) if self.health_json else {}
