"""
Node Registry

Persistent registry of edge detection nodes (SQLAlchemy ``nodes`` table)
and the single entry point for everything that mutates a node:

- registration / deregistration
- operator configuration edits
- heartbeats and liveness transitions
- applying a confirmed accident decision

Concurrent updates for the same node are serialized by a per-node lock;
updates for different nodes proceed independently. Locks exist only for
registered node ids; requests for unknown ids are rejected before one is
created.
"""

import asyncio
import json
import time
from collections import defaultdict
from typing import Callable, Dict, List, Optional

from central_unit.database.database import SessionLocal
from central_unit.database.models import NodeRecord
from central_unit.decision.decision_calculator import clamp_speed_limit
from central_unit.models.node import (
    Node,
    NodeStatus,
    Lane,
    LanePolygon,
    Heartbeat,
    NodeConfigUpdate,
    NodeRegistration,
    default_lanes,
)
from central_unit.models.result import Result, Success, ValidationError, NotFoundError
from central_unit.nodes.liveness import LivenessMonitor


def record_to_node(record: NodeRecord) -> Node:
    """Convert ORM row to Node model"""
    lanes = [Lane(**lane) for lane in record.lanes()] or default_lanes()
    return Node(
        node_id=record.node_id,
        name=record.name,
        street_name=record.street_name or "Unknown Street",
        latitude=record.latitude or 0.0,
        longitude=record.longitude or 0.0,
        lanes=lanes,
        lane_polygons=[LanePolygon.model_validate(p) for p in record.lane_polygons()],
        speed_limit=record.speed_limit or 80,
        lane_status=record.lane_status or "unknown",
        status=NodeStatus(record.status or NodeStatus.OFFLINE.value),
        last_heartbeat=record.last_heartbeat,
        last_heartbeat_sent=record.last_heartbeat_sent,
        last_update=record.last_update or time.time(),
        uptime_sec=record.uptime_sec or 0,
        health=record.health(),
        firmware_version=record.firmware_version or "unknown",
        model_version=record.model_version or "unknown",
    )


def copy_node_to_record(node: Node, record: NodeRecord):
    """Write every Node field onto the ORM row"""
    record.name = node.name
    record.street_name = node.street_name
    record.latitude = node.latitude
    record.longitude = node.longitude
    record.lanes_json = json.dumps([lane.model_dump() for lane in node.lanes])
    record.lane_polygons_json = json.dumps([p.model_dump(by_alias=True) for p in node.lane_polygons])
    record.speed_limit = node.speed_limit
    record.lane_status = node.lane_status
    record.status = node.status.value
    record.last_heartbeat = node.last_heartbeat
    record.last_heartbeat_sent = node.last_heartbeat_sent
    record.last_update = node.last_update
    record.uptime_sec = node.uptime_sec
    record.health_json = json.dumps(node.health)
    record.firmware_version = node.firmware_version
    record.model_version = node.model_version


def apply_config(node: Node, changes: NodeConfigUpdate):
    """Copy the fields an operator actually sent"""
    for field in changes.model_fields_set:
        value = getattr(changes, field)
        if value is None or field == "node_id":
            continue
        setattr(node, field, value)


def apply_lane_configuration(node: Node, lane_configuration: str):
    """
    Set per-lane status from a configuration string

    Tokens map to lanes in id order; lanes beyond the string keep their
    current status.
    """
    states = [s.strip() for s in lane_configuration.split(",")] if lane_configuration else []
    for lane, state in zip(node.sorted_lanes(), states):
        if state:
            lane.status = state
    node.lane_status = lane_configuration


class NodeRegistry:
    """
    Node persistence and lifecycle

    Usage:
        registry = NodeRegistry(ws_emitter=emitter)
        await registry.register_node(NodeRegistration(node_id="N1"))
        result = await registry.process_heartbeat(Heartbeat(node_id="N1", timestamp=time.time()))
    """

    def __init__(
        self,
        session_factory: Callable = SessionLocal,
        ws_emitter=None,
        monitor: Optional[LivenessMonitor] = None
    ):
        """
        Args:
            session_factory: SQLAlchemy session factory
            ws_emitter: WebSocket emitter for node events (optional)
            monitor: Liveness state machine (default 60 s timeout)
        """
        self.session_factory = session_factory
        self.ws_emitter = ws_emitter
        self.monitor = monitor or LivenessMonitor()

        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

        # Statistics
        self.total_heartbeats = 0
        self.total_connected = 0
        self.total_disconnected = 0

        print("[OK] Node Registry initialized")

    # ============================================
    # Queries
    # ============================================

    def get_node(self, node_id: str) -> Optional[Node]:
        """Node by id, None if not registered"""
        db = self.session_factory()
        try:
            record = db.query(NodeRecord).filter(NodeRecord.node_id == node_id).first()
            return record_to_node(record) if record else None
        finally:
            db.close()

    async def list_nodes(self, status: Optional[NodeStatus] = None) -> List[Node]:
        """
        All nodes, after applying the staleness rule

        Args:
            status: Optional filter
        """
        await self.sweep_liveness()

        db = self.session_factory()
        try:
            query = db.query(NodeRecord)
            if status is not None:
                query = query.filter(NodeRecord.status == status.value)
            return [record_to_node(r) for r in query.order_by(NodeRecord.node_id).all()]
        finally:
            db.close()

    def count_nodes(self) -> Dict[str, int]:
        db = self.session_factory()
        try:
            total = db.query(NodeRecord).count()
            online = db.query(NodeRecord).filter(NodeRecord.status == NodeStatus.ONLINE.value).count()
            return {'total': total, 'online': online, 'offline': total - online}
        finally:
            db.close()

    def node_exists(self, node_id: str) -> bool:
        db = self.session_factory()
        try:
            return db.query(NodeRecord.node_id).filter(NodeRecord.node_id == node_id).first() is not None
        finally:
            db.close()

    # ============================================
    # Mutations
    # ============================================

    async def register_node(self, registration: NodeRegistration) -> Result:
        """
        Register a node, or update the configuration of an existing one

        Liveness fields of an existing node are kept.
        """
        node_id = registration.node_id.strip()
        if not node_id:
            return ValidationError("nodeId is required", field="nodeId")

        async with self._locks[node_id]:
            db = self.session_factory()
            try:
                record = db.query(NodeRecord).filter(NodeRecord.node_id == node_id).first()
                created = record is None

                if created:
                    node = Node(node_id=node_id)
                    record = NodeRecord(node_id=node_id)
                    db.add(record)
                else:
                    node = record_to_node(record)

                apply_config(node, registration)
                node.last_update = time.time()
                copy_node_to_record(node, record)
                db.commit()
            finally:
                db.close()

        print(f"[NODES] Node {node_id} {'registered' if created else 're-registered'} "
              f"({len(node.lanes)} lane(s), {len(node.lane_polygons)} polygon(s))")
        return Success(node)

    async def update_node(self, node_id: str, changes: NodeConfigUpdate) -> Result:
        """Apply an operator configuration edit and push it to the node"""
        if not self.node_exists(node_id):
            return NotFoundError(f"Node {node_id} not found", resource_id=node_id)

        async with self._locks[node_id]:
            db = self.session_factory()
            try:
                record = db.query(NodeRecord).filter(NodeRecord.node_id == node_id).first()
                if record is None:
                    return NotFoundError(f"Node {node_id} not found", resource_id=node_id)

                node = record_to_node(record)
                apply_config(node, changes)
                node.last_update = time.time()
                copy_node_to_record(node, record)
                db.commit()
            finally:
                db.close()

        print(f"[NODES] Node {node_id} configuration updated: {sorted(changes.model_fields_set)}")

        if self.ws_emitter:
            await self.ws_emitter.emit_node_config_update(node_id, node.to_dict())

        return Success(node)

    async def deregister_node(self, node_id: str) -> Result:
        """Remove a node from the registry"""
        if not self.node_exists(node_id):
            return NotFoundError(f"Node {node_id} not found", resource_id=node_id)

        async with self._locks[node_id]:
            db = self.session_factory()
            try:
                record = db.query(NodeRecord).filter(NodeRecord.node_id == node_id).first()
                if record is None:
                    return NotFoundError(f"Node {node_id} not found", resource_id=node_id)
                node = record_to_node(record)
                db.delete(record)
                db.commit()
            finally:
                db.close()

        self._locks.pop(node_id, None)
        print(f"[NODES] Node {node_id} deregistered")

        if self.ws_emitter:
            await self.ws_emitter.emit_node_disconnected(node_id, reason="deregistered")

        return Success(node)

    async def process_heartbeat(self, heartbeat: Heartbeat) -> Result:
        """
        Record a heartbeat and run the liveness state machine

        Returns:
            Success(node) | ValidationError | NotFoundError (unregistered node)
        """
        if not heartbeat.node_id or not heartbeat.node_id.strip():
            return ValidationError("nodeId is required", field="nodeId")
        if heartbeat.timestamp <= 0:
            return ValidationError("timestamp must be a positive Unix time", field="timestamp")
        if self.monitor.is_from_future(heartbeat):
            print(f"[NODES] [WARN] Heartbeat from {heartbeat.node_id} dated in the future: {heartbeat.timestamp}")
            return ValidationError(
                f"timestamp is more than {self.monitor.max_clock_skew:g}s ahead of server time",
                field="timestamp"
            )

        node_id = heartbeat.node_id
        if not self.node_exists(node_id):
            print(f"[NODES] [WARN] Heartbeat from unregistered node {node_id}")
            return NotFoundError(f"Node {node_id} is not registered", resource_id=node_id)

        async with self._locks[node_id]:
            db = self.session_factory()
            try:
                record = db.query(NodeRecord).filter(NodeRecord.node_id == node_id).first()
                if record is None:
                    print(f"[NODES] [WARN] Heartbeat from unregistered node {node_id}")
                    return NotFoundError(f"Node {node_id} is not registered", resource_id=node_id)

                node = record_to_node(record)
                transition = self.monitor.apply_heartbeat(node, heartbeat)
                copy_node_to_record(node, record)
                db.commit()
            finally:
                db.close()

        self.total_heartbeats += 1

        if self.ws_emitter:
            if transition == NodeStatus.ONLINE:
                self.total_connected += 1
                await self.ws_emitter.emit_node_connected(node_id, node.to_dict())
            await self.ws_emitter.emit_node_heartbeat(node.to_dict())
        elif transition == NodeStatus.ONLINE:
            self.total_connected += 1

        return Success(node)

    async def sweep_liveness(self, now: Optional[float] = None) -> List[str]:
        """
        Mark every stale ONLINE node OFFLINE

        Returns:
            Ids of nodes that went offline in this sweep
        """
        now = self.monitor.now() if now is None else now

        db = self.session_factory()
        try:
            candidates = [
                r.node_id for r in
                db.query(NodeRecord).filter(NodeRecord.status == NodeStatus.ONLINE.value).all()
            ]
        finally:
            db.close()

        went_offline: List[str] = []
        for node_id in candidates:
            async with self._locks[node_id]:
                db = self.session_factory()
                try:
                    record = db.query(NodeRecord).filter(NodeRecord.node_id == node_id).first()
                    if record is None:
                        continue
                    node = record_to_node(record)
                    if self.monitor.evaluate(node, now):
                        copy_node_to_record(node, record)
                        db.commit()
                        went_offline.append(node_id)
                finally:
                    db.close()

        self.total_disconnected += len(went_offline)

        if self.ws_emitter:
            for node_id in went_offline:
                await self.ws_emitter.emit_node_disconnected(node_id, reason="heartbeat_timeout")

        return went_offline

    async def apply_decision(self, node_id: str, lane_configuration: str, speed_limit: int) -> Result:
        """
        Persist a confirmed decision onto the node

        The speed limit is clamped to the hard bounds before it is stored.
        """
        if not self.node_exists(node_id):
            return NotFoundError(f"Node {node_id} not found", resource_id=node_id)

        async with self._locks[node_id]:
            db = self.session_factory()
            try:
                record = db.query(NodeRecord).filter(NodeRecord.node_id == node_id).first()
                if record is None:
                    return NotFoundError(f"Node {node_id} not found", resource_id=node_id)

                node = record_to_node(record)
                if lane_configuration:
                    apply_lane_configuration(node, lane_configuration)
                node.speed_limit = clamp_speed_limit(speed_limit)
                node.last_update = time.time()
                copy_node_to_record(node, record)
                db.commit()
            finally:
                db.close()

        print(f"[NODES] Decision applied to {node_id}: lanes={node.lane_status!r}, "
              f"speed={node.speed_limit} km/h")
        return Success(node)

    def get_statistics(self) -> dict:
        return {
            **self.count_nodes(),
            'heartbeatTimeoutSeconds': self.monitor.heartbeat_timeout,
            'totalHeartbeats': self.total_heartbeats,
            'totalConnected': self.total_connected,
            'totalDisconnected': self.total_disconnected
        }


# ============================================
# Global Instance Management
# ============================================

_registry: Optional[NodeRegistry] = None


def init_node_registry(
    session_factory: Callable = SessionLocal,
    ws_emitter=None,
    heartbeat_timeout: float = 60.0,
    max_clock_skew: float = 30.0
) -> NodeRegistry:
    """Initialize global node registry"""
    global _registry
    _registry = NodeRegistry(
        session_factory=session_factory,
        ws_emitter=ws_emitter,
        monitor=LivenessMonitor(heartbeat_timeout=heartbeat_timeout, max_clock_skew=max_clock_skew)
    )
    return _registry


def get_node_registry() -> Optional[NodeRegistry]:
    """Get global node registry"""
    return _registry
