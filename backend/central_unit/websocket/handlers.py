"""
WebSocket Client Event Handlers

This module handles all client→server WebSocket events.

All handlers are registered with the Socket.IO server in main.py.
"""

import time
from typing import Dict, Any, Optional

from pydantic import ValidationError as PydanticValidationError

from .events import ClientEvent, AdminAccidentResponse
from .emitter import WebSocketEmitter


class WebSocketHandlers:
    """
    Centralized WebSocket event handlers

    Handles client→server events and delegates operator decisions to the
    incident orchestrator.
    """

    def __init__(self, sio, emitter: WebSocketEmitter, orchestrator=None):
        """
        Initialize handlers

        Args:
            sio: Socket.IO AsyncServer instance
            emitter: WebSocket emitter instance
            orchestrator: IncidentOrchestrator receiving operator decisions
        """
        self.sio = sio
        self.emitter = emitter
        self.orchestrator = orchestrator

        # Track connected clients
        self._clients: Dict[str, Dict[str, Any]] = {}

        # Register all event handlers
        self._register_handlers()

    def _register_handlers(self):
        """Register all Socket.IO event handlers"""

        # Connection events
        self.sio.on(ClientEvent.CONNECT.value, self.handle_connect)
        self.sio.on(ClientEvent.DISCONNECT.value, self.handle_disconnect)

        # Operator decisions
        self.sio.on(ClientEvent.ADMIN_ACCIDENT_RESPONSE.value, self.handle_admin_accident_response)

    # ============================================
    # Connection Handlers
    # ============================================

    async def handle_connect(self, sid: str, environ: Dict, auth: Any = None):
        """
        Handle client connection

        Args:
            sid: Session ID
            environ: Connection environment
            auth: Optional auth payload
        """
        client_info = {
            "sid": sid,
            "connected_at": time.time(),
            "remote_addr": environ.get("REMOTE_ADDR", "unknown"),
            "user_agent": environ.get("HTTP_USER_AGENT", "unknown")
        }

        self._clients[sid] = client_info

        print(f"[WS] Client connected: {sid} from {client_info['remote_addr']}")

        await self.emitter.emit_connection_success(sid)

    async def handle_disconnect(self, sid: str, *args):
        """
        Handle client disconnection

        Args:
            sid: Session ID
        """
        if sid in self._clients:
            client = self._clients.pop(sid)
            duration = time.time() - client["connected_at"]
            print(f"[WS] Client disconnected: {sid} (duration: {duration:.1f}s)")

    # ============================================
    # Operator Decision Handlers
    # ============================================

    async def handle_admin_accident_response(self, sid: str, data: Dict):
        """
        Handle an operator decision sent over the socket

        Same payload and validation as POST /api/accident-decision.

        Args:
            sid: Session ID
            data: {incidentId, nodeId, status, actions, message, speedLimit?, laneConfiguration?}
        """
        try:
            response = AdminAccidentResponse(**(data or {}))
        except (PydanticValidationError, TypeError) as e:
            print(f"[WS] Invalid admin_accident_response from {sid}: {e}")
            incident_id = data.get("incidentId", "") if isinstance(data, dict) else ""
            await self.emitter.emit_admin_response_ack(sid, incident_id, False, "Invalid decision payload")
            return

        if self.orchestrator is None:
            await self.emitter.emit_admin_response_ack(sid, response.incidentId, False, "Incident pipeline not initialized")
            return

        result = self.orchestrator.submit_decision(
            incident_id=response.incidentId,
            status=response.status,
            actions=response.actions,
            message=response.message,
            node_id=response.nodeId,
            speed_limit=response.speedLimit,
            lane_configuration=response.laneConfiguration
        )

        if not result.ok:
            print(f"[WS] Rejected decision from {sid}: {result.message}")
            await self.emitter.emit_admin_response_ack(sid, response.incidentId, False, result.message)
            return

        print(f"[WS] Decision for {response.incidentId} from {sid}: {response.status} "
              f"(delivered={result.payload['delivered']})")
        await self.emitter.emit_admin_response_ack(sid, response.incidentId, result.payload["delivered"])

    # ============================================
    # Utility Methods
    # ============================================

    def get_connected_clients(self) -> Dict[str, Dict[str, Any]]:
        """Get all connected clients"""
        return self._clients.copy()

    def get_client_count(self) -> int:
        """Get number of connected clients"""
        return len(self._clients)


# Global handlers instance (initialized in main.py)
handlers: Optional[WebSocketHandlers] = None


def get_handlers() -> Optional[WebSocketHandlers]:
    """Get the global WebSocket handlers instance"""
    return handlers


def set_handlers(h: WebSocketHandlers):
    """Set the global WebSocket handlers instance"""
    global handlers
    handlers = h
