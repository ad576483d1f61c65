"""
WebSocket Event Emitter

This module provides the WebSocketEmitter class for sending real-time
updates to connected clients. All server→client events are handled here.

Features:
- Centralized event emission
- Room-based targeting
- Error handling (a failed emit is logged, never raised)
"""

import time
from typing import Dict, Any, Optional

from .events import (
    ServerEvent,
    ConnectionSuccessData,
    AccidentDetectedData,
    DecisionResolvedData,
    NodeDisconnectedData,
)


class WebSocketEmitter:
    """
    Centralized WebSocket event emitter

    Handles all server→client event emissions with error handling and
    statistics.
    """

    def __init__(self, sio):
        """
        Initialize the WebSocket emitter

        Args:
            sio: Socket.IO AsyncServer instance
        """
        self.sio = sio

        # Statistics
        self._emit_count = 0
        self._error_count = 0
        self._last_emit_time = 0
        self._event_counts: Dict[str, int] = {}

    # ============================================
    # Connection Events
    # ============================================

    async def emit_connection_success(self, sid: str):
        """Emit connection success to specific client"""
        data = ConnectionSuccessData(timestamp=time.time())
        await self._emit(ServerEvent.CONNECTION_SUCCESS.value, data.model_dump(), room=sid)

    # ============================================
    # Incident Events
    # ============================================

    async def emit_accident_detected(
        self,
        incident_id: str,
        node_id: str,
        coordinates: Dict[str, float],
        lane_number: int,
        media_list: list = None,
        timestamp: float = None,
        decision: Dict[str, Any] = None,
        **extra
    ):
        """
        Broadcast a new incident to operator dashboards

        Args:
            incident_id: Incident awaiting review
            node_id: Reporting node ("external" for cooperating-system reports)
            coordinates: {lat, lng}
            lane_number: Lane reported by the node
            media_list: Media references
            timestamp: Unix ms (default now)
            decision: Automatic recommendation, if computed
        """
        data = AccidentDetectedData(
            incidentId=incident_id,
            nodeId=node_id,
            coordinates=coordinates,
            laneNumber=lane_number,
            mediaList=media_list or [],
            timestamp=timestamp if timestamp is not None else time.time() * 1000,
            decision=decision,
            **extra
        )
        await self._emit(ServerEvent.ACCIDENT_DETECTED.value, data.model_dump(exclude_none=True))

    async def emit_decision_resolved(
        self,
        incident_id: str,
        node_id: Optional[str],
        status: str,
        speed_limit: int,
        lane_configuration: str
    ):
        """Broadcast the final outcome of an incident"""
        data = DecisionResolvedData(
            incidentId=incident_id,
            nodeId=node_id,
            status=status,
            speedLimit=speed_limit,
            laneConfiguration=lane_configuration,
            timestamp=time.time()
        )
        await self._emit(ServerEvent.ACCIDENT_DECISION_RESOLVED.value, data.model_dump())

    async def emit_admin_response_ack(self, sid: str, incident_id: str, delivered: bool, error: str = None):
        """Acknowledge a socket-submitted decision to its sender"""
        payload = {
            "incidentId": incident_id,
            "success": error is None,
            "delivered": delivered,
            "timestamp": time.time()
        }
        if error:
            payload["error"] = error
        await self._emit(ServerEvent.ADMIN_RESPONSE_ACK.value, payload, room=sid)

    # ============================================
    # Node Events
    # ============================================

    async def emit_node_heartbeat(self, node_data: Dict[str, Any]):
        """Emit node telemetry after every accepted heartbeat"""
        await self._emit(ServerEvent.NODE_HEARTBEAT.value, {
            **node_data,
            "timestamp": time.time()
        })

    async def emit_node_connected(self, node_id: str, node_data: Dict[str, Any]):
        """Emit OFFLINE → ONLINE transition"""
        await self._emit(ServerEvent.NODE_CONNECTED.value, {
            "nodeId": node_id,
            "node": node_data,
            "timestamp": time.time()
        })

    async def emit_node_disconnected(self, node_id: str, reason: str = "heartbeat_timeout"):
        """Emit ONLINE → OFFLINE transition or deregistration"""
        data = NodeDisconnectedData(nodeId=node_id, reason=reason, timestamp=time.time())
        await self._emit(ServerEvent.NODE_DISCONNECTED.value, data.model_dump())

    async def emit_node_config_update(self, node_id: str, config: Dict[str, Any]):
        """Push operator configuration edits to the node"""
        await self._emit(ServerEvent.NODE_CONFIG_UPDATE.value, {
            "nodeId": node_id,
            "config": config,
            "timestamp": time.time()
        })

    # ============================================
    # Internal Methods
    # ============================================

    async def _emit(self, event: str, data: Any, room: str = None):
        """
        Internal emit with error handling and statistics

        Args:
            event: Event name
            data: Event data
            room: Optional room to emit to
        """
        try:
            if room:
                await self.sio.emit(event, data, room=room)
            else:
                await self.sio.emit(event, data)

            self._emit_count += 1
            self._last_emit_time = time.time()
            self._event_counts[event] = self._event_counts.get(event, 0) + 1

        except Exception as e:
            self._error_count += 1
            print(f"[WS ERROR] Failed to emit {event}: {e}")

    def get_stats(self) -> Dict[str, Any]:
        """Get emitter statistics"""
        return {
            "totalEmits": self._emit_count,
            "errorCount": self._error_count,
            "lastEmitTime": self._last_emit_time,
            "eventCounts": dict(self._event_counts)
        }


# Global emitter instance (initialized in main.py)
emitter: Optional[WebSocketEmitter] = None


def get_emitter() -> Optional[WebSocketEmitter]:
    """Get the global WebSocket emitter instance"""
    return emitter


def set_emitter(e: WebSocketEmitter):
    """Set the global WebSocket emitter instance"""
    global emitter
    emitter = e
