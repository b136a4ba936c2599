"""
Tests for the auto-restart rate limit and the RAM-critical handler.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from conftest import container
from hostwatch.event_logger import EventSeverity
from hostwatch.watchdogs.auto_restart import AutoRestartPolicy, RamCriticalHandler


@pytest.fixture
def policy(clock) -> AutoRestartPolicy:
    return AutoRestartPolicy(max_restarts=3, clock=clock)


@pytest.fixture
def handler(notifier, event_log, docker_probe, policy) -> RamCriticalHandler:
    return RamCriticalHandler(notifier, event_log, docker_probe, policy, ram_threshold=90)


# ===========================================================================
# Rate Limit
# ===========================================================================

class TestAutoRestartPolicy:
    """Tests for AutoRestartPolicy."""

    def test_fourth_restart_refused(self, policy, clock):
        """Three restarts within the hour use up the budget."""
        for _ in range(3):
            assert policy.can_auto_restart("web")
            policy.record("web")
            clock.advance(60)
        assert not policy.can_auto_restart("web")

    def test_budget_per_container(self, policy):
        """Budgets are independent per container."""
        for _ in range(3):
            policy.record("web")
        assert policy.can_auto_restart("db")

    def test_window_slides(self, policy, clock):
        """Restarts older than an hour stop counting."""
        for _ in range(3):
            policy.record("web")
        clock.advance(3601)
        assert policy.can_auto_restart("web")

    def test_non_positive_max_uses_default(self, clock):
        """A zero limit falls back to three."""
        assert AutoRestartPolicy(max_restarts=0, clock=clock).max_restarts == 3

    def test_cleanup_drops_old_records(self, policy, clock):
        """cleanup() prunes records older than two hours and empty entries."""
        policy.record("old")
        clock.advance(90 * 60)
        policy.record("recent")
        clock.advance(31 * 60)
        assert policy.cleanup() == 1
        assert policy.restart_count("old") == 0
        assert policy.restart_count("recent") == 1


# ===========================================================================
# RAM Critical
# ===========================================================================

class TestRamCriticalHandler:
    """Tests for RamCriticalHandler.handle()."""

    def test_ram_critical_scenario(self, handler, docker_probe, notifier, event_log, policy):
        """RAM 96% with one container at 55% restarts it once and records it."""
        docker_probe.memory = {"app": 55.0}
        restarted = handler.handle(96.0, [container("app")])

        assert restarted == "app"
        assert docker_probe.restarted == ["app"]
        assert len(notifier.sent) == 1
        assert notifier.messages[0].startswith("🔄 *Auto-restart done*")
        assert "Restarted: `app` (`55.0%` mem)" in notifier.messages[0]
        assert policy.restart_count("app") == 1
        assert event_log.get_by_severity(EventSeverity.ACTION)[0].message == "Auto-restart: app (RAM 96.0%)"

    def test_below_threshold_does_nothing(self, handler, docker_probe):
        """RAM under the threshold never restarts."""
        docker_probe.memory = {"app": 55.0}
        assert handler.handle(80.0, [container("app")]) is None
        assert docker_probe.restarted == []

    def test_picks_highest_memory(self, handler, docker_probe):
        """The running container using the most memory is chosen."""
        docker_probe.memory = {"a": 30.0, "b": 70.0, "c": 90.0}
        containers = [container("a"), container("b"), container("c", running=False)]
        assert handler.handle(95.0, containers) == "b"

    def test_memory_floor(self, handler, docker_probe, notifier):
        """Containers at or under 20% are not candidates."""
        docker_probe.memory = {"a": 20.0, "b": 5.0}
        assert handler.handle(95.0, [container("a"), container("b")]) is None
        assert notifier.sent == []

    def test_rate_limited(self, handler, docker_probe, policy):
        """A container over its budget is left alone."""
        docker_probe.memory = {"app": 60.0}
        for _ in range(3):
            policy.record("app")
        assert handler.handle(96.0, [container("app")]) is None
        assert docker_probe.restarted == []

    def test_failed_restart_is_recorded(self, handler, docker_probe, notifier, event_log, policy):
        """A failed restart still uses budget and is reported."""
        docker_probe.memory = {"app": 60.0}
        docker_probe.restart_errors = {"app": "timeout"}
        assert handler.handle(96.0, [container("app")]) == "app"
        assert policy.restart_count("app") == 1
        assert notifier.messages[0].startswith("❌ *Auto-restart failed*")
        assert "Error: timeout" in notifier.messages[0]
        assert event_log.get_by_severity(EventSeverity.CRITICAL)[0].message == "Auto-restart failed: app (timeout)"
