"""
Roadway Accident Central Unit
Main FastAPI Application Entry Point

This is the main entry point for the backend server.
It initializes FastAPI, Socket.IO, the node database and the incident
pipeline.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import socketio
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Create Socket.IO server
sio = socketio.AsyncServer(
    async_mode='asgi',
    cors_allowed_origins='*',
    logger=False,  # Reduce noise in production
    engineio_logger=False,
    ping_interval=25,
    ping_timeout=60
)

# Global instances for WebSocket
ws_emitter = None
ws_handlers = None

STARTED_AT = time.time()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events - startup and shutdown"""
    global ws_emitter, ws_handlers

    # Startup
    print("=" * 60)
    print("[STARTUP] Roadway Accident Central Unit")
    print("=" * 60)

    # Initialize database
    from central_unit.database.database import init_db, SessionLocal
    init_db()

    # Initialize configuration
    from central_unit.config import get_config
    cfg = get_config()
    print("[OK] Configuration loaded")

    # Initialize WebSocket emitter
    from central_unit.websocket import WebSocketEmitter, WebSocketHandlers, set_emitter, set_handlers

    ws_emitter = WebSocketEmitter(sio)
    set_emitter(ws_emitter)

    # Node registry and liveness
    from central_unit.nodes import init_node_registry, LivenessSweeper

    nodes_config = cfg.get_nodes_config()
    node_registry = init_node_registry(
        session_factory=SessionLocal,
        ws_emitter=ws_emitter,
        heartbeat_timeout=float(nodes_config.get('heartbeatTimeoutSeconds', 60)),
        max_clock_skew=float(nodes_config.get('maxClockSkewSeconds', 30))
    )
    sweeper = LivenessSweeper(
        node_registry.sweep_liveness,
        interval=float(nodes_config.get('sweepIntervalSeconds', 15))
    )

    # Incident pipeline
    from central_unit.decision import DecisionCalculator
    from central_unit.incident import (
        init_decision_coordinator,
        init_incident_orchestrator,
        NotificationSuppressor,
        MobileAppNotifier,
    )

    decision_timeout = float(cfg.get('decision.timeoutSeconds', 60))
    coordinator = init_decision_coordinator(default_timeout=decision_timeout)
    suppressor = NotificationSuppressor(ttl=float(cfg.get('notifications.suppressionTtlSeconds', 15)))

    mobile_config = cfg.get_mobile_app_config()
    notifier = MobileAppNotifier(
        server_url=mobile_config.get('serverUrl') or None,
        timeout=float(mobile_config.get('timeoutSeconds', 10))
    )
    if notifier.is_configured:
        print(f"[OK] Mobile App Server: {notifier.server_url}")
    else:
        print("[WARN] Mobile App Server URL not set - outbound notifications disabled")

    calculator = DecisionCalculator(cfg.get_decision_config())

    orchestrator = init_incident_orchestrator(
        node_registry=node_registry,
        coordinator=coordinator,
        suppressor=suppressor,
        notifier=notifier,
        ws_emitter=ws_emitter,
        calculator=calculator,
        decision_timeout=decision_timeout
    )

    # Socket.IO handlers need the orchestrator for operator decisions
    ws_handlers = WebSocketHandlers(sio, ws_emitter, orchestrator)
    set_handlers(ws_handlers)
    print("[OK] WebSocket emitter and handlers initialized")

    # Wire API routes
    from central_unit.api.incident_routes import set_incident_components
    from central_unit.api.node_routes import set_node_components
    from central_unit.api.decision_routes import set_decision_components

    set_incident_components(orchestrator)
    set_node_components(node_registry)
    set_decision_components(node_registry, calculator)

    # Start liveness sweep
    await sweeper.start()

    print("=" * 60)
    print("[SERVER] Ready at http://localhost:8000")
    print("[DOCS] API docs at http://localhost:8000/docs")
    print("[WS] WebSocket ready for connections")
    print("=" * 60)

    yield

    # Shutdown
    print("[SHUTDOWN] Shutting down...")

    await sweeper.stop()

    # Release anyone still waiting for an operator
    coordinator.cancel_all()
    await orchestrator.drain_notifications()
    await notifier.close()

    print("[SHUTDOWN] Complete")


# Create FastAPI application
app = FastAPI(
    title="Central Unit API",
    description="Roadway accident detection, lane decision and operator coordination",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================
# Include API Routers
# ============================================

from central_unit.api import incident_router, node_router, decision_router

# Incident routes: /api/accident-detected, /api/accident-decision, /api/mobile-accident-detected
app.include_router(incident_router)

# Node routes: /api/nodes/*
app.include_router(node_router)

# Decision routes: /api/decision/analyze
app.include_router(decision_router)


# ============================================
# Root Endpoints
# ============================================

@app.get("/", tags=["root"])
async def root():
    """Root endpoint - API information"""
    return {
        "name": "Roadway Accident Central Unit",
        "version": "1.0.0",
        "status": "operational",
        "documentation": "/docs",
        "websocket": "ws://localhost:8000",
        "endpoints": {
            "accidentDetected": "/api/accident-detected",
            "accidentDecision": "/api/accident-decision",
            "mobileAccidentDetected": "/api/mobile-accident-detected",
            "pendingIncidents": "/api/incidents/pending",
            "nodes": "/api/nodes/*",
            "decision": "/api/decision/analyze"
        }
    }


@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint"""
    from central_unit.incident import get_decision_coordinator
    from central_unit.websocket import get_emitter, get_handlers

    handlers = get_handlers()
    emitter = get_emitter()
    coordinator = get_decision_coordinator()

    return {
        "status": "healthy",
        "timestamp": time.time(),
        "uptime": time.time() - STARTED_AT,
        "pendingDecisions": len(coordinator.pending_ids()) if coordinator else 0,
        "websocket": {
            "connected_clients": handlers.get_client_count() if handlers else 0,
            "stats": emitter.get_stats() if emitter else None,
            "status": "ready" if emitter else "not_initialized"
        }
    }


# ============================================
# Create Socket.IO ASGI app
# ============================================

sio_app = socketio.ASGIApp(sio, app)


# ============================================
# WebSocket Event Reference (handled by WebSocketHandlers)
# ============================================
#
# Server → Client Events:
#   - connection:success            : Connection established
#   - accident-detected             : New incident awaiting operator review
#   - accident-decision-resolved    : Incident confirmed / rejected / timed out
#   - admin_accident_response:ack   : Reply to a socket-submitted decision
#   - node_heartbeat                : Node telemetry after each heartbeat
#   - node_connected                : Node went OFFLINE → ONLINE
#   - node_disconnected             : Node timed out or was deregistered
#   - node_config_update            : Operator changed node configuration
#
# Client → Server Events:
#   - admin_accident_response       : Operator decision for an incident


# ============================================
# Entry Point
# ============================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "central_unit.main:sio_app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
