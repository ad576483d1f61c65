"""
API Routes Package

This module exports all FastAPI routers for the Central Unit.
"""

from .incident_routes import router as incident_router
from .node_routes import router as node_router
from .decision_routes import router as decision_router

__all__ = [
    "incident_router",
    "node_router",
    "decision_router",
]
