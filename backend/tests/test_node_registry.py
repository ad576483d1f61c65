"""
Node Registry and Liveness Tests

Tests:
- Heartbeat timestamp parsing (seconds, milliseconds, ISO-8601)
- Liveness state machine (heartbeat, staleness, out-of-order and future-dated heartbeats)
- Registration, configuration updates, deregistration
- Heartbeat processing and node events
- Decision application
- Background liveness sweeper
"""

import asyncio

import pytest

from central_unit.models.node import (
    Node,
    NodeStatus,
    Lane,
    Heartbeat,
    NodeConfigUpdate,
    NodeRegistration,
    parse_timestamp,
)
from central_unit.models.result import Success, NotFoundError, ValidationError
from central_unit.nodes.liveness import LivenessMonitor, LivenessSweeper
from central_unit.nodes.node_registry import NodeRegistry, apply_lane_configuration

from conftest import three_lane_polygons


class FakeClock:
    def __init__(self, start=10_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def heartbeat(node_id="N1", timestamp=10_000.0, status=NodeStatus.ONLINE, **kwargs):
    return Heartbeat(node_id=node_id, timestamp=timestamp, status=status, **kwargs)


# ============================================
# Timestamp Parsing Tests
# ============================================

class TestParseTimestamp:
    """Tests for parse_timestamp"""

    @pytest.mark.parametrize("value", [
        1_700_000_000,
        1_700_000_000_000,
        "1700000000",
        "1700000000000",
        "2023-11-14T22:13:20Z",
        "2023-11-14T22:13:20.000+00:00",
        "2023-11-15T00:13:20+02:00",
        "2023-11-14T22:13:20",
    ])
    def test_accepted_formats(self, value):
        assert parse_timestamp(value) == pytest.approx(1_700_000_000.0)

    @pytest.mark.parametrize("value", ["yesterday", "", True, float("nan"), "inf"])
    def test_rejected_values(self, value):
        with pytest.raises(ValueError):
            parse_timestamp(value)


# ============================================
# Liveness State Machine Tests
# ============================================

class TestLivenessMonitor:
    """Tests for LivenessMonitor"""

    def test_online_heartbeat_brings_node_online(self):
        clock = FakeClock()
        monitor = LivenessMonitor(clock=clock)
        node = Node(node_id="N1")

        transition = monitor.apply_heartbeat(node, heartbeat(timestamp=clock.now))

        assert transition == NodeStatus.ONLINE
        assert node.status == NodeStatus.ONLINE
        assert node.last_heartbeat == clock.now

    def test_repeat_heartbeat_no_transition(self):
        clock = FakeClock()
        monitor = LivenessMonitor(clock=clock)
        node = Node(node_id="N1")

        monitor.apply_heartbeat(node, heartbeat(timestamp=clock.now))
        clock.advance(5)
        assert monitor.apply_heartbeat(node, heartbeat(timestamp=clock.now)) is None
        assert node.last_heartbeat == clock.now

    def test_first_heartbeat_stays_online_until_timeout(self):
        """Test node goes OFFLINE only after 60s without a further heartbeat"""
        clock = FakeClock()
        monitor = LivenessMonitor(heartbeat_timeout=60.0, clock=clock)
        node = Node(node_id="N1")
        monitor.apply_heartbeat(node, heartbeat(timestamp=clock.now))

        clock.advance(60)
        assert monitor.evaluate(node) is False
        assert node.status == NodeStatus.ONLINE

        clock.advance(1)
        assert monitor.evaluate(node) is True
        assert node.status == NodeStatus.OFFLINE

    def test_never_heartbeated_node_is_not_swept(self):
        """Test registered status is kept until a heartbeat has been observed"""
        clock = FakeClock()
        monitor = LivenessMonitor(clock=clock)
        node = Node(node_id="N1", status=NodeStatus.ONLINE)

        clock.advance(3600)

        assert monitor.evaluate(node) is False
        assert node.status == NodeStatus.ONLINE

    def test_out_of_order_heartbeat_ignored(self):
        """Test older heartbeat never overwrites a newer one"""
        monitor = LivenessMonitor(clock=FakeClock())
        node = Node(node_id="N1")

        monitor.apply_heartbeat(node, heartbeat(timestamp=200.0, uptime_sec=20))
        monitor.apply_heartbeat(node, heartbeat(timestamp=100.0, uptime_sec=10))

        assert node.last_heartbeat_sent == 200.0
        assert node.uptime_sec == 20

    def test_staleness_measured_from_receive_time(self):
        """Test a node with a lagging clock stays online until 60s after it was last heard"""
        clock = FakeClock()
        monitor = LivenessMonitor(heartbeat_timeout=60.0, clock=clock)
        node = Node(node_id="N1")

        monitor.apply_heartbeat(node, heartbeat(timestamp=clock.now - 3600))

        assert node.last_heartbeat == clock.now
        assert node.last_heartbeat_sent == clock.now - 3600
        assert monitor.evaluate(node) is False

        clock.advance(61)
        assert monitor.evaluate(node) is True

    def test_future_dated_heartbeat_detected(self):
        clock = FakeClock()
        monitor = LivenessMonitor(clock=clock, max_clock_skew=30.0)

        assert monitor.is_from_future(heartbeat(timestamp=clock.now + 30)) is False
        assert monitor.is_from_future(heartbeat(timestamp=clock.now + 31)) is True
        assert monitor.is_from_future(heartbeat(timestamp=clock.now * 1000)) is True

    def test_offline_report_does_not_bring_online(self):
        monitor = LivenessMonitor(clock=FakeClock())
        node = Node(node_id="N1")

        transition = monitor.apply_heartbeat(node, heartbeat(status=NodeStatus.OFFLINE))

        assert transition is None
        assert node.status == NodeStatus.OFFLINE
        assert node.last_heartbeat is not None

    def test_telemetry_recorded(self):
        monitor = LivenessMonitor(clock=FakeClock())
        node = Node(node_id="N1")

        monitor.apply_heartbeat(node, heartbeat(
            health={"cpu": 40},
            firmware_version="2.1.0",
            model_version="yolo-v8"
        ))

        assert node.health == {"cpu": 40}
        assert node.firmware_version == "2.1.0"
        assert node.model_version == "yolo-v8"


# ============================================
# Registry Tests
# ============================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(session_factory, mock_emitter, clock):
    return NodeRegistry(
        session_factory=session_factory,
        ws_emitter=mock_emitter,
        monitor=LivenessMonitor(heartbeat_timeout=60.0, clock=clock)
    )


class TestRegistration:
    """Tests for register / update / deregister"""

    @pytest.mark.asyncio
    async def test_register_defaults(self, registry):
        """Test new node gets one lane, 80 km/h and offline status"""
        result = await registry.register_node(NodeRegistration(node_id="N1"))

        assert isinstance(result, Success)
        node = registry.get_node("N1")
        assert node.status == NodeStatus.OFFLINE
        assert node.speed_limit == 80
        assert [lane.model_dump() for lane in node.lanes] == [
            {"id": 1, "name": "Lane 1", "type": "Main Lane", "status": "open"}
        ]
        assert node.last_heartbeat is None

    @pytest.mark.asyncio
    async def test_register_with_layout(self, registry):
        await registry.register_node(NodeRegistration(
            node_id="N1",
            lanes=[Lane(id=i, name=f"Lane {i}") for i in (3, 1, 2)],
            lane_polygons=three_lane_polygons(),
            speed_limit=120
        ))

        node = registry.get_node("N1")
        assert [lane.id for lane in node.sorted_lanes()] == [1, 2, 3]
        assert len(node.lane_polygons) == 3
        assert node.lane_polygons[1].base_width == 1920
        assert node.speed_limit == 120

    @pytest.mark.asyncio
    async def test_register_accepts_camel_case(self, registry):
        registration = NodeRegistration.model_validate({
            "nodeId": "N1",
            "streetName": "Ring Road",
            "speedLimit": 100
        })

        await registry.register_node(registration)

        node = registry.get_node("N1")
        assert node.street_name == "Ring Road"
        assert node.speed_limit == 100

    @pytest.mark.asyncio
    async def test_reregister_keeps_liveness(self, registry, clock):
        await registry.register_node(NodeRegistration(node_id="N1"))
        await registry.process_heartbeat(heartbeat(timestamp=clock.now))

        await registry.register_node(NodeRegistration(node_id="N1", name="Renamed"))

        node = registry.get_node("N1")
        assert node.name == "Renamed"
        assert node.status == NodeStatus.ONLINE
        assert node.last_heartbeat == clock.now

    @pytest.mark.asyncio
    async def test_blank_node_id_rejected(self, registry):
        result = await registry.register_node(NodeRegistration(node_id="   "))
        assert isinstance(result, ValidationError)

    @pytest.mark.asyncio
    async def test_update_node_emits_config(self, registry, mock_emitter):
        await registry.register_node(NodeRegistration(node_id="N1"))

        result = await registry.update_node("N1", NodeConfigUpdate(speed_limit=60, name="KM 12"))

        assert result.ok
        node = registry.get_node("N1")
        assert node.speed_limit == 60
        assert node.name == "KM 12"
        mock_emitter.emit_node_config_update.assert_awaited_once()
        assert mock_emitter.emit_node_config_update.await_args.args[0] == "N1"

    @pytest.mark.asyncio
    async def test_update_only_touches_sent_fields(self, registry):
        await registry.register_node(NodeRegistration(node_id="N1", name="Keep", speed_limit=110))

        await registry.update_node("N1", NodeConfigUpdate(latitude=30.1))

        node = registry.get_node("N1")
        assert node.name == "Keep"
        assert node.speed_limit == 110
        assert node.latitude == 30.1

    @pytest.mark.asyncio
    async def test_update_unknown_node(self, registry):
        result = await registry.update_node("ghost", NodeConfigUpdate(speed_limit=60))
        assert isinstance(result, NotFoundError)

    @pytest.mark.asyncio
    async def test_deregister(self, registry, mock_emitter):
        await registry.register_node(NodeRegistration(node_id="N1"))

        result = await registry.deregister_node("N1")

        assert result.ok
        assert registry.get_node("N1") is None
        mock_emitter.emit_node_disconnected.assert_awaited_once_with("N1", reason="deregistered")

    @pytest.mark.asyncio
    async def test_deregister_unknown(self, registry):
        assert isinstance(await registry.deregister_node("ghost"), NotFoundError)


class TestHeartbeats:
    """Tests for heartbeat processing and liveness sweeps"""

    @pytest.mark.asyncio
    async def test_unregistered_node_rejected(self, registry):
        result = await registry.process_heartbeat(heartbeat(node_id="ghost"))
        assert isinstance(result, NotFoundError)

    @pytest.mark.asyncio
    async def test_invalid_timestamp_rejected(self, registry):
        await registry.register_node(NodeRegistration(node_id="N1"))
        result = await registry.process_heartbeat(heartbeat(timestamp=0))
        assert isinstance(result, ValidationError)

    @pytest.mark.asyncio
    async def test_future_dated_heartbeat_rejected(self, registry, clock):
        """Test a millisecond timestamp cannot pin the node online"""
        await registry.register_node(NodeRegistration(node_id="N1"))

        result = await registry.process_heartbeat(heartbeat(timestamp=clock.now * 1000))

        assert isinstance(result, ValidationError)
        assert result.field == "timestamp"
        assert registry.get_node("N1").last_heartbeat is None

        clock.advance(10)
        assert (await registry.process_heartbeat(heartbeat(timestamp=clock.now))).ok
        assert registry.get_node("N1").last_heartbeat == clock.now

        clock.advance(600)
        nodes = await registry.list_nodes()

        assert nodes[0].status == NodeStatus.OFFLINE

    @pytest.mark.asyncio
    async def test_unknown_ids_create_no_locks(self, registry):
        """Test requests for unregistered ids leave the lock map empty"""
        for i in range(100):
            assert isinstance(await registry.process_heartbeat(heartbeat(node_id=f"ghost-{i}")), NotFoundError)

        await registry.update_node("ghost-a", NodeConfigUpdate(speed_limit=60))
        await registry.deregister_node("ghost-b")
        await registry.apply_decision("ghost-c", "blocked", 60)

        assert len(registry._locks) == 0

    @pytest.mark.asyncio
    async def test_deregister_releases_lock(self, registry, clock):
        await registry.register_node(NodeRegistration(node_id="N1"))
        await registry.process_heartbeat(heartbeat(timestamp=clock.now))
        assert "N1" in registry._locks

        await registry.deregister_node("N1")

        assert "N1" not in registry._locks

    @pytest.mark.asyncio
    async def test_first_heartbeat_connects(self, registry, mock_emitter, clock):
        await registry.register_node(NodeRegistration(node_id="N1"))

        result = await registry.process_heartbeat(heartbeat(timestamp=clock.now))

        assert result.payload.status == NodeStatus.ONLINE
        assert registry.get_node("N1").status == NodeStatus.ONLINE
        mock_emitter.emit_node_connected.assert_awaited_once()
        mock_emitter.emit_node_heartbeat.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_second_heartbeat_only_emits_heartbeat(self, registry, mock_emitter, clock):
        await registry.register_node(NodeRegistration(node_id="N1"))
        await registry.process_heartbeat(heartbeat(timestamp=clock.now))
        clock.advance(10)
        await registry.process_heartbeat(heartbeat(timestamp=clock.now))

        assert mock_emitter.emit_node_connected.await_count == 1
        assert mock_emitter.emit_node_heartbeat.await_count == 2

    @pytest.mark.asyncio
    async def test_list_marks_stale_nodes_offline(self, registry, mock_emitter, clock):
        """Test lazy staleness check on read persists the transition"""
        await registry.register_node(NodeRegistration(node_id="N1"))
        await registry.register_node(NodeRegistration(node_id="N2"))
        await registry.process_heartbeat(heartbeat(node_id="N1", timestamp=clock.now))
        clock.advance(30)
        await registry.process_heartbeat(heartbeat(node_id="N2", timestamp=clock.now))

        clock.advance(31)
        nodes = {n.node_id: n for n in await registry.list_nodes()}

        assert nodes["N1"].status == NodeStatus.OFFLINE
        assert nodes["N2"].status == NodeStatus.ONLINE
        assert registry.get_node("N1").status == NodeStatus.OFFLINE
        mock_emitter.emit_node_disconnected.assert_awaited_once_with("N1", reason="heartbeat_timeout")

    @pytest.mark.asyncio
    async def test_list_filters_by_status(self, registry, clock):
        await registry.register_node(NodeRegistration(node_id="N1"))
        await registry.register_node(NodeRegistration(node_id="N2"))
        await registry.process_heartbeat(heartbeat(node_id="N2", timestamp=clock.now))

        online = await registry.list_nodes(status=NodeStatus.ONLINE)

        assert [n.node_id for n in online] == ["N2"]

    @pytest.mark.asyncio
    async def test_heartbeat_after_timeout_reconnects(self, registry, mock_emitter, clock):
        await registry.register_node(NodeRegistration(node_id="N1"))
        await registry.process_heartbeat(heartbeat(timestamp=clock.now))
        clock.advance(120)
        await registry.sweep_liveness()

        await registry.process_heartbeat(heartbeat(timestamp=clock.now))

        assert registry.get_node("N1").status == NodeStatus.ONLINE
        assert mock_emitter.emit_node_connected.await_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_heartbeats_last_write_wins_by_timestamp(self, registry, clock):
        """Test same-node heartbeats resolve by their own timestamp, not arrival order"""
        await registry.register_node(NodeRegistration(node_id="N1"))

        await asyncio.gather(*[
            registry.process_heartbeat(heartbeat(timestamp=clock.now - 60 + offset, uptime_sec=int(offset)))
            for offset in (5, 50, 20, 1, 35)
        ])

        node = registry.get_node("N1")
        assert node.last_heartbeat_sent == clock.now - 10
        assert node.uptime_sec == 50


class TestApplyDecision:
    """Tests for apply_decision"""

    @pytest.mark.asyncio
    async def test_lane_statuses_and_speed_set(self, registry):
        await registry.register_node(NodeRegistration(
            node_id="N1",
            lanes=[Lane(id=i, name=f"Lane {i}") for i in (1, 2, 3)],
            speed_limit=120
        ))

        result = await registry.apply_decision("N1", "right,blocked,left", 100)

        node = registry.get_node("N1")
        assert result.ok
        assert [lane.status for lane in node.sorted_lanes()] == ["right", "blocked", "left"]
        assert node.lane_status == "right,blocked,left"
        assert node.speed_limit == 100

    @pytest.mark.asyncio
    async def test_speed_clamped(self, registry):
        await registry.register_node(NodeRegistration(node_id="N1"))

        await registry.apply_decision("N1", "", 5)
        assert registry.get_node("N1").speed_limit == 40

        await registry.apply_decision("N1", "", 900)
        assert registry.get_node("N1").speed_limit == 200

    @pytest.mark.asyncio
    async def test_unknown_node(self, registry):
        assert isinstance(await registry.apply_decision("ghost", "open", 80), NotFoundError)

    def test_apply_lane_configuration_shorter_string(self):
        node = Node(node_id="N1", lanes=[Lane(id=2, name="B"), Lane(id=1, name="A")])

        apply_lane_configuration(node, "blocked")

        statuses = {lane.id: lane.status for lane in node.lanes}
        assert statuses == {1: "blocked", 2: "open"}


# ============================================
# Sweeper Tests
# ============================================

class TestLivenessSweeper:
    """Tests for the background sweep loop"""

    @pytest.mark.asyncio
    async def test_sweeps_periodically(self):
        calls = []

        async def sweep():
            calls.append(1)
            return ["N1"]

        sweeper = LivenessSweeper(sweep, interval=0.01)
        await sweeper.start()
        await asyncio.sleep(0.05)
        await sweeper.stop()

        assert len(calls) >= 2
        assert sweeper.total_transitions == sweeper.total_sweeps
        assert sweeper.running is False

    @pytest.mark.asyncio
    async def test_sweep_error_does_not_stop_loop(self):
        calls = []

        async def sweep():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("database busy")
            return []

        sweeper = LivenessSweeper(sweep, interval=0.01)
        await sweeper.start()
        await asyncio.sleep(1.3)
        await sweeper.stop()

        assert len(calls) >= 2
