"""
Node Routes - Edge node registry endpoints

Endpoints:
- POST /api/nodes/register - Register (or re-register) a node
- POST /api/nodes/heartbeat - Node heartbeat
- GET /api/nodes - All nodes (stale nodes are marked offline first)
- GET /api/nodes/{node_id} - Node details
- PATCH /api/nodes/{node_id} - Update node configuration
- DELETE /api/nodes/{node_id} - Deregister node
"""

import time
from typing import Optional, Dict, Any, Union

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from central_unit.api.responses import raise_for_result, require
from central_unit.models.node import (
    NodeStatus,
    Heartbeat,
    NodeConfigUpdate,
    NodeRegistration,
    parse_timestamp,
)

router = APIRouter(prefix="/api/nodes", tags=["nodes"])


# ============================================
# Global Component References
# ============================================

_node_registry = None


def set_node_components(node_registry=None):
    """Set node system components"""
    global _node_registry
    _node_registry = node_registry


# ============================================
# Request Models
# ============================================

class HeartbeatRequest(BaseModel):
    """Heartbeat sent by an edge node"""
    nodeId: str
    timestamp: Optional[Union[float, str]] = Field(
        None,
        description="When sent: Unix seconds, Unix milliseconds or ISO-8601 (default: now)"
    )
    status: NodeStatus = NodeStatus.ONLINE
    uptimeSec: int = 0
    health: Dict[str, Any] = Field(default_factory=dict)
    firmwareVersion: Optional[str] = None
    modelVersion: Optional[str] = None


# ============================================
# Endpoints
# ============================================

@router.post("/register", status_code=201)
async def register_node(request: NodeRegistration):
    """
    Register a node

    New nodes start offline with a single lane and an 80 km/h limit unless
    the request says otherwise. Registering an existing id updates its
    configuration.
    """
    registry = require(_node_registry, "Node registry")

    result = await registry.register_node(request)
    raise_for_result(result)

    return {
        "status": "success",
        "data": result.payload.to_dict()
    }


@router.post("/heartbeat")
async def node_heartbeat(request: HeartbeatRequest):
    """Record a heartbeat; unregistered nodes are rejected with 404"""
    registry = require(_node_registry, "Node registry")

    try:
        sent_at = parse_timestamp(request.timestamp) if request.timestamp is not None else time.time()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    heartbeat = Heartbeat(
        node_id=request.nodeId,
        timestamp=sent_at,
        status=request.status,
        uptime_sec=request.uptimeSec,
        health=request.health,
        firmware_version=request.firmwareVersion,
        model_version=request.modelVersion
    )

    result = await registry.process_heartbeat(heartbeat)
    raise_for_result(result)

    node = result.payload
    return {
        "status": "success",
        "nodeId": node.node_id,
        "nodeStatus": node.status.value,
        "lastHeartbeat": node.last_heartbeat,
        "config": {
            "speedLimit": node.speed_limit,
            "laneStatus": node.lane_status,
            "lanes": [lane.model_dump() for lane in node.lanes]
        }
    }


@router.get("")
async def get_all_nodes(status: Optional[NodeStatus] = Query(None, description="Filter by status")):
    """All nodes, after marking stale ones offline"""
    registry = require(_node_registry, "Node registry")

    nodes = await registry.list_nodes(status=status)
    return {
        "status": "success",
        "results": len(nodes),
        "data": [node.to_dict() for node in nodes]
    }


@router.get("/{node_id}")
async def get_node(node_id: str):
    """Node details"""
    registry = require(_node_registry, "Node registry")

    node = registry.get_node(node_id)
    if node is None:
        raise HTTPException(
            status_code=404,
            detail=f"Node not found: {node_id}"
        )

    return {
        "status": "success",
        "data": node.to_dict()
    }


@router.patch("/{node_id}")
async def update_node(node_id: str, request: NodeConfigUpdate):
    """Update lanes, lane polygons, speed limit, name or coordinates"""
    registry = require(_node_registry, "Node registry")

    result = await registry.update_node(node_id, request)
    raise_for_result(result)

    return {
        "status": "success",
        "data": result.payload.to_dict()
    }


@router.delete("/{node_id}")
async def delete_node(node_id: str):
    """Deregister a node (terminal)"""
    registry = require(_node_registry, "Node registry")

    result = await registry.deregister_node(node_id)
    raise_for_result(result)

    return {
        "status": "success",
        "data": result.payload.to_dict()
    }
