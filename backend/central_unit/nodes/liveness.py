"""
Node Liveness Monitor

Two-state machine per node, ONLINE and OFFLINE.

Transitions:
- any -> ONLINE: heartbeat reporting "online"
- ONLINE -> OFFLINE: no heartbeat received for longer than the timeout (60 s)

Staleness is measured from the server receive time of the last accepted
heartbeat. The timestamp a node puts on its heartbeat only orders heartbeats
(last write wins), and one dated too far in the future is rejected so it
cannot shadow the node's later heartbeats.

A node that has never sent a heartbeat keeps its registered status.
Staleness is evaluated lazily whenever nodes are listed, and periodically
by LivenessSweeper in the same way the safety watchdog polls its checks.
"""

import asyncio
import time
from typing import Callable, Optional

from central_unit.models.node import Node, NodeStatus, Heartbeat


HEARTBEAT_TIMEOUT_SECONDS = 60.0
MAX_CLOCK_SKEW_SECONDS = 30.0


class LivenessMonitor:
    """
    Pure liveness state machine; mutates Node models in place

    Usage:
        monitor = LivenessMonitor(heartbeat_timeout=60.0)
        new_status = monitor.apply_heartbeat(node, heartbeat)
        went_offline = monitor.evaluate(node)
    """

    def __init__(
        self,
        heartbeat_timeout: float = HEARTBEAT_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.time,
        max_clock_skew: float = MAX_CLOCK_SKEW_SECONDS
    ):
        """
        Args:
            heartbeat_timeout: Seconds without heartbeat before OFFLINE
            clock: Time source returning Unix seconds
            max_clock_skew: How far ahead of server time a node may date a heartbeat
        """
        self.heartbeat_timeout = heartbeat_timeout
        self.max_clock_skew = max_clock_skew
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    def is_from_future(self, heartbeat: Heartbeat, now: Optional[float] = None) -> bool:
        """Heartbeat dated further ahead than the allowed clock skew"""
        now = self.now() if now is None else now
        return heartbeat.timestamp > now + self.max_clock_skew

    def is_out_of_order(self, node: Node, heartbeat: Heartbeat) -> bool:
        """Heartbeat older than the one already recorded (last write wins)"""
        return node.last_heartbeat_sent is not None and heartbeat.timestamp < node.last_heartbeat_sent

    def apply_heartbeat(self, node: Node, heartbeat: Heartbeat) -> Optional[NodeStatus]:
        """
        Record a heartbeat on the node

        Returns:
            The new status if the node changed state, else None. Out-of-order
            heartbeats are ignored and return None.
        """
        if self.is_out_of_order(node, heartbeat):
            print(f"[LIVENESS] Ignoring out-of-order heartbeat from {node.node_id}")
            return None

        now = self.now()
        node.last_heartbeat = now
        node.last_heartbeat_sent = heartbeat.timestamp
        node.last_update = now
        node.uptime_sec = heartbeat.uptime_sec
        if heartbeat.health:
            node.health = heartbeat.health
        if heartbeat.firmware_version:
            node.firmware_version = heartbeat.firmware_version
        if heartbeat.model_version:
            node.model_version = heartbeat.model_version

        if heartbeat.status == NodeStatus.ONLINE and node.status != NodeStatus.ONLINE:
            node.status = NodeStatus.ONLINE
            print(f"[LIVENESS] {node.node_id}: OFFLINE -> ONLINE")
            return NodeStatus.ONLINE

        return None

    def is_expired(self, node: Node, now: Optional[float] = None) -> bool:
        """ONLINE node whose last heartbeat was received longer ago than the timeout"""
        if node.status != NodeStatus.ONLINE or node.last_heartbeat is None:
            return False
        now = self.now() if now is None else now
        return now - node.last_heartbeat > self.heartbeat_timeout

    def evaluate(self, node: Node, now: Optional[float] = None) -> bool:
        """
        Apply the staleness rule

        Returns:
            True if the node was moved ONLINE -> OFFLINE
        """
        if not self.is_expired(node, now):
            return False

        node.status = NodeStatus.OFFLINE
        node.last_update = self.now()
        print(f"[LIVENESS] [WARN] Node {node.node_id} heartbeat timeout. Marking as offline.")
        return True


class LivenessSweeper:
    """
    Background loop that periodically sweeps all nodes for staleness

    ``sweep`` is an async callable, normally ``NodeRegistry.sweep_liveness``.
    """

    def __init__(self, sweep: Callable, interval: float = 15.0):
        self.sweep = sweep
        self.interval = interval

        self.running = False
        self._task: Optional[asyncio.Task] = None

        # Statistics
        self.total_sweeps = 0
        self.total_transitions = 0

    async def start(self):
        """Start sweeping"""
        if self.running:
            print("[LIVENESS] Sweeper already running")
            return

        self.running = True
        self._task = asyncio.create_task(self._sweep_loop())
        print(f"[LIVENESS] Sweeper started (every {self.interval}s)")

    async def stop(self):
        """Stop sweeping"""
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        print("[LIVENESS] Sweeper stopped")

    async def _sweep_loop(self):
        while self.running:
            try:
                transitioned = await self.sweep()
                self.total_sweeps += 1
                self.total_transitions += len(transitioned or [])

                await asyncio.sleep(self.interval)

            except asyncio.CancelledError:
                break
            except Exception as e:
                print(f"[LIVENESS] Sweep error: {e}")
                await asyncio.sleep(1)
