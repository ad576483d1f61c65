"""
Accident Incident Module

Everything between an edge node reporting an accident and the roadside
configuration being changed.

Components:
- DecisionCoordinator: exactly-once operator decision with timeout
- NotificationSuppressor: TTL guard against notification echo loops
- MobileAppNotifier: outbound notification to the Mobile App Server
- IncidentOrchestrator: the per-detection pipeline
- stores: injectable incident / notification-marker stores

Usage:
    from central_unit.incident import (
        init_decision_coordinator,
        init_incident_orchestrator,
        NotificationSuppressor,
        MobileAppNotifier
    )

    coordinator = init_decision_coordinator(default_timeout=60)
    orchestrator = init_incident_orchestrator(
        node_registry=registry,
        coordinator=coordinator,
        suppressor=NotificationSuppressor(ttl=15),
        notifier=MobileAppNotifier(),
        ws_emitter=emitter
    )

    result = await orchestrator.process_detection(node_id="N1", lat=30.0, lng=31.2, lane_number=2)
"""

from central_unit.incident.stores import (
    IncidentStore,
    NotificationMarkerStore,
    InMemoryIncidentStore,
    InMemoryMarkerStore,
)

from central_unit.incident.decision_coordinator import (
    DecisionCoordinator,
    PendingDecision,
    init_decision_coordinator,
    get_decision_coordinator,
)

from central_unit.incident.notification_suppressor import (
    NotificationSuppressor,
    marker_key,
    WILDCARD_NODE,
)

from central_unit.incident.mobile_notifier import (
    MobileAppNotifier,
    validate_notification,
    RECEIVE_ACCIDENT_PATH,
)

from central_unit.incident.incident_orchestrator import (
    IncidentOrchestrator,
    init_incident_orchestrator,
    get_incident_orchestrator,
    set_incident_orchestrator,
    EXTERNAL_NODE_ID,
)

__all__ = [
    # Stores
    'IncidentStore',
    'NotificationMarkerStore',
    'InMemoryIncidentStore',
    'InMemoryMarkerStore',

    # Coordinator
    'DecisionCoordinator',
    'PendingDecision',
    'init_decision_coordinator',
    'get_decision_coordinator',

    # Suppressor
    'NotificationSuppressor',
    'marker_key',
    'WILDCARD_NODE',

    # Mobile App Server
    'MobileAppNotifier',
    'validate_notification',
    'RECEIVE_ACCIDENT_PATH',

    # Orchestrator
    'IncidentOrchestrator',
    'init_incident_orchestrator',
    'get_incident_orchestrator',
    'set_incident_orchestrator',
    'EXTERNAL_NODE_ID',
]
