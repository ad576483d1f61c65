"""
Decision Correlation Coordinator

Correlates an incident waiting for an operator decision with the decision
that eventually arrives over HTTP or Socket.IO.

Each pending incident holds a future and a timer in a registry keyed by
incident id. Whoever removes the registry entry first (an explicit
``resolve`` or the timer firing) owns the outcome; the loser finds no
entry and reports "already resolved". All registry access happens on the
event loop thread, so removing the entry is the atomic claim.

Usage:
    coordinator = DecisionCoordinator(default_timeout=60.0)

    future = coordinator.register(incident_id)     # before broadcasting
    await emitter.emit_accident_detected(...)
    decision = await future                        # CONFIRMED / REJECTED / TIMEOUT

    # From the decision endpoint
    coordinator.resolve(incident_id, decision)     # -> True / False
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Any

from central_unit.models.incident import OperatorDecision


@dataclass
class PendingDecision:
    """In-flight wait for one incident; destroyed when resolved"""
    incident_id: str
    future: asyncio.Future
    timer: asyncio.TimerHandle
    timeout: float
    created_at: float


class DecisionCoordinator:
    """
    Exactly-once resolution of operator decisions

    Invariants:
    - At most one pending entry per incident id
    - Each entry resolves once, either by ``resolve`` or by timeout
    - A second ``resolve`` for the same id is a logged no-op returning False
    """

    def __init__(self, default_timeout: float = 60.0):
        """
        Args:
            default_timeout: Seconds to wait for an operator before TIMEOUT
        """
        self.default_timeout = default_timeout

        self._pending: Dict[str, PendingDecision] = {}

        # Statistics
        self.total_registered = 0
        self.total_resolved = 0
        self.total_timeouts = 0
        self.total_misses = 0

        print(f"[OK] Decision Coordinator initialized (timeout={default_timeout}s)")

    def register(self, incident_id: str, timeout: Optional[float] = None) -> asyncio.Future:
        """
        Create the pending entry for an incident

        Must be called from a coroutine running on the event loop.

        Args:
            incident_id: Incident awaiting a decision
            timeout: Seconds before a synthetic TIMEOUT decision (default
                ``default_timeout``)

        Returns:
            Future resolving to an OperatorDecision

        Raises:
            ValueError: If the incident already has a pending entry
        """
        if incident_id in self._pending:
            raise ValueError(f"Incident {incident_id} is already awaiting a decision")

        loop = asyncio.get_running_loop()
        wait = self.default_timeout if timeout is None else timeout

        future = loop.create_future()
        timer = loop.call_later(wait, self._expire, incident_id, future)

        self._pending[incident_id] = PendingDecision(
            incident_id=incident_id,
            future=future,
            timer=timer,
            timeout=wait,
            created_at=time.time()
        )
        self.total_registered += 1

        # Waiter cancelled (client went away): drop the entry with it
        future.add_done_callback(lambda f: self._discard_cancelled(incident_id, f))

        print(f"[COORDINATOR] Awaiting decision for {incident_id} (timeout {wait}s)")
        return future

    async def await_decision(self, incident_id: str, timeout: Optional[float] = None) -> OperatorDecision:
        """Register and wait; returns the operator decision or TIMEOUT"""
        future = self.register(incident_id, timeout)
        return await future

    def resolve(self, incident_id: str, decision: OperatorDecision) -> bool:
        """
        Deliver an operator decision to the waiting incident

        Args:
            incident_id: Incident the decision is for
            decision: Operator decision

        Returns:
            True if delivered; False if no entry exists (already resolved,
            already timed out, or unknown id)
        """
        entry = self._pending.pop(incident_id, None)

        if entry is None or entry.future.done():
            self.total_misses += 1
            print(f"[COORDINATOR] [WARN] No pending decision for {incident_id} "
                  f"(already resolved, timed out or unknown)")
            return False

        entry.timer.cancel()
        entry.future.set_result(decision)
        self.total_resolved += 1

        waited = time.time() - entry.created_at
        print(f"[COORDINATOR] {incident_id} resolved: {decision.status.value} after {waited:.1f}s")
        return True

    def _expire(self, incident_id: str, future: asyncio.Future):
        """Timer callback: claim the entry and deliver TIMEOUT"""
        entry = self._pending.get(incident_id)
        if entry is None or entry.future is not future:
            return

        del self._pending[incident_id]
        if future.done():
            return

        future.set_result(OperatorDecision.timeout(incident_id))
        self.total_timeouts += 1
        print(f"[COORDINATOR] [WARN] {incident_id} timed out after {entry.timeout}s")

    def _discard_cancelled(self, incident_id: str, future: asyncio.Future):
        if not future.cancelled():
            return
        entry = self._pending.get(incident_id)
        if entry is not None and entry.future is future:
            del self._pending[incident_id]
            entry.timer.cancel()
            print(f"[COORDINATOR] Wait for {incident_id} cancelled")

    def is_pending(self, incident_id: str) -> bool:
        return incident_id in self._pending

    def pending_ids(self) -> List[str]:
        return list(self._pending.keys())

    def cancel_all(self):
        """Resolve every pending entry with TIMEOUT (shutdown)"""
        for incident_id in list(self._pending.keys()):
            entry = self._pending.pop(incident_id)
            entry.timer.cancel()
            if not entry.future.done():
                entry.future.set_result(OperatorDecision.timeout(incident_id))
                self.total_timeouts += 1

    def get_statistics(self) -> Dict[str, Any]:
        return {
            'pending': len(self._pending),
            'totalRegistered': self.total_registered,
            'totalResolved': self.total_resolved,
            'totalTimeouts': self.total_timeouts,
            'totalMisses': self.total_misses,
            'defaultTimeout': self.default_timeout
        }


# ============================================
# Global Instance Management
# ============================================

_coordinator: Optional[DecisionCoordinator] = None


def init_decision_coordinator(default_timeout: float = 60.0) -> DecisionCoordinator:
    """Initialize global decision coordinator"""
    global _coordinator
    _coordinator = DecisionCoordinator(default_timeout=default_timeout)
    return _coordinator


def get_decision_coordinator() -> Optional[DecisionCoordinator]:
    """Get global decision coordinator"""
    return _coordinator
