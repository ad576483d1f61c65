"""
Decision Coordinator Tests

Tests:
- Resolution before timeout
- Duplicate and late resolution
- Timeout delivery (exactly once)
- Independent pending incidents
- Cancellation and shutdown
"""

import asyncio

import pytest

from central_unit.incident.decision_coordinator import (
    DecisionCoordinator,
    init_decision_coordinator,
    get_decision_coordinator,
)
from central_unit.models.incident import OperatorDecision, DecisionStatus


def confirmed(incident_id):
    return OperatorDecision(
        incident_id=incident_id,
        status=DecisionStatus.CONFIRMED,
        actions=["CLOSE_LANES"]
    )


def rejected(incident_id):
    return OperatorDecision(
        incident_id=incident_id,
        status=DecisionStatus.REJECTED,
        message="False alarm"
    )


# ============================================
# Resolution Tests
# ============================================

class TestResolve:
    """Tests for explicit resolution"""

    @pytest.mark.asyncio
    async def test_resolve_before_timeout(self):
        """Test resolve delivers the operator decision, never TIMEOUT"""
        coordinator = DecisionCoordinator(default_timeout=5.0)
        future = coordinator.register("inc-1")

        assert coordinator.resolve("inc-1", confirmed("inc-1")) is True

        decision = await future
        assert decision.status == DecisionStatus.CONFIRMED
        assert decision.actions == ["CLOSE_LANES"]
        assert not coordinator.is_pending("inc-1")

    @pytest.mark.asyncio
    async def test_second_resolve_fails(self):
        """Test duplicate resolution reports failure and keeps the first outcome"""
        coordinator = DecisionCoordinator(default_timeout=5.0)
        future = coordinator.register("inc-1")

        assert coordinator.resolve("inc-1", confirmed("inc-1")) is True
        assert coordinator.resolve("inc-1", rejected("inc-1")) is False

        decision = await future
        assert decision.status == DecisionStatus.CONFIRMED
        assert coordinator.total_misses == 1

    @pytest.mark.asyncio
    async def test_resolve_unknown_id(self):
        coordinator = DecisionCoordinator()
        assert coordinator.resolve("missing", confirmed("missing")) is False

    @pytest.mark.asyncio
    async def test_resolve_from_another_task(self):
        """Test waiter is released by a resolve issued while it is suspended"""
        coordinator = DecisionCoordinator(default_timeout=5.0)

        async def operator():
            await asyncio.sleep(0.01)
            coordinator.resolve("inc-1", rejected("inc-1"))

        waiter = asyncio.create_task(coordinator.await_decision("inc-1"))
        await operator()

        decision = await waiter
        assert decision.status == DecisionStatus.REJECTED

    @pytest.mark.asyncio
    async def test_duplicate_registration_rejected(self):
        coordinator = DecisionCoordinator(default_timeout=5.0)
        coordinator.register("inc-1")

        with pytest.raises(ValueError):
            coordinator.register("inc-1")

        coordinator.cancel_all()


# ============================================
# Timeout Tests
# ============================================

class TestTimeout:
    """Tests for timeout resolution"""

    @pytest.mark.asyncio
    async def test_timeout_without_resolve(self):
        """Test exactly one TIMEOUT decision after the timeout elapses"""
        coordinator = DecisionCoordinator(default_timeout=0.05)

        decision = await coordinator.await_decision("inc-1")

        assert decision.status == DecisionStatus.TIMEOUT
        assert decision.actions == []
        assert coordinator.total_timeouts == 1
        assert not coordinator.is_pending("inc-1")

    @pytest.mark.asyncio
    async def test_resolve_after_timeout_fails(self):
        """Test late operator decision is a no-op"""
        coordinator = DecisionCoordinator(default_timeout=0.02)
        decision = await coordinator.await_decision("inc-1")

        assert coordinator.resolve("inc-1", confirmed("inc-1")) is False
        assert decision.status == DecisionStatus.TIMEOUT
        assert coordinator.total_timeouts == 1

    @pytest.mark.asyncio
    async def test_resolved_entry_never_times_out(self):
        """Test cancelled timer does not deliver a second outcome"""
        coordinator = DecisionCoordinator(default_timeout=0.02)
        future = coordinator.register("inc-1")
        coordinator.resolve("inc-1", confirmed("inc-1"))

        await asyncio.sleep(0.05)

        assert future.result().status == DecisionStatus.CONFIRMED
        assert coordinator.total_timeouts == 0

    @pytest.mark.asyncio
    async def test_per_incident_timeouts(self):
        """Test pending incidents time out independently"""
        coordinator = DecisionCoordinator(default_timeout=5.0)

        fast = coordinator.register("fast", timeout=0.02)
        slow = coordinator.register("slow", timeout=5.0)

        assert (await fast).status == DecisionStatus.TIMEOUT
        assert coordinator.is_pending("slow")

        coordinator.resolve("slow", confirmed("slow"))
        assert (await slow).status == DecisionStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_many_concurrent_incidents(self):
        """Test resolving half of many pending incidents"""
        coordinator = DecisionCoordinator(default_timeout=0.05)
        ids = [f"inc-{i}" for i in range(20)]
        waiters = [asyncio.create_task(coordinator.await_decision(i)) for i in ids]
        await asyncio.sleep(0)

        for incident_id in ids[::2]:
            assert coordinator.resolve(incident_id, confirmed(incident_id)) is True

        decisions = await asyncio.gather(*waiters)

        statuses = [d.status for d in decisions]
        assert statuses[::2] == [DecisionStatus.CONFIRMED] * 10
        assert statuses[1::2] == [DecisionStatus.TIMEOUT] * 10
        assert coordinator.pending_ids() == []


# ============================================
# Lifecycle Tests
# ============================================

class TestLifecycle:
    """Tests for cancellation, shutdown and global instance"""

    @pytest.mark.asyncio
    async def test_cancelled_waiter_drops_entry(self):
        coordinator = DecisionCoordinator(default_timeout=5.0)
        waiter = asyncio.create_task(coordinator.await_decision("inc-1"))
        await asyncio.sleep(0)

        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        assert not coordinator.is_pending("inc-1")
        assert coordinator.resolve("inc-1", confirmed("inc-1")) is False

    @pytest.mark.asyncio
    async def test_cancel_all_releases_waiters(self):
        coordinator = DecisionCoordinator(default_timeout=5.0)
        futures = [coordinator.register(f"inc-{i}") for i in range(3)]

        coordinator.cancel_all()

        assert [(await f).status for f in futures] == [DecisionStatus.TIMEOUT] * 3
        assert coordinator.pending_ids() == []

    def test_global_instance(self):
        coordinator = init_decision_coordinator(default_timeout=12)
        assert get_decision_coordinator() is coordinator
        assert coordinator.get_statistics()["defaultTimeout"] == 12
