"""
Edge Node Management

Components:
- NodeRegistry: persistence, configuration, heartbeats, decision application
- LivenessMonitor: ONLINE/OFFLINE state machine (60 s heartbeat timeout)
- LivenessSweeper: periodic staleness sweep
"""

from central_unit.nodes.liveness import (
    LivenessMonitor,
    LivenessSweeper,
    HEARTBEAT_TIMEOUT_SECONDS,
    MAX_CLOCK_SKEW_SECONDS,
)

from central_unit.nodes.node_registry import (
    NodeRegistry,
    init_node_registry,
    get_node_registry,
    record_to_node,
    apply_lane_configuration,
)

__all__ = [
    'LivenessMonitor',
    'LivenessSweeper',
    'HEARTBEAT_TIMEOUT_SECONDS',
    'MAX_CLOCK_SKEW_SECONDS',
    'NodeRegistry',
    'init_node_registry',
    'get_node_registry',
    'record_to_node',
    'apply_lane_configuration',
]
