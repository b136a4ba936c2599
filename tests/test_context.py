"""
Integration tests for MonitorContext: whole ticks driven through fakes.
"""

import os
import sys
from datetime import datetime

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from conftest import FakeHardwareProbe, FakeKernelSource, container, make_stats
from hostwatch.context import MonitorContext
from hostwatch.event_logger import EventLog, EventSeverity
from hostwatch.notifier import RecordingNotifier
from hostwatch.stats import VolumeStats
from hostwatch.utils.error_handling import ErrorCategory, get_error_aggregator, handle_error

# A Wednesday noon, away from the weekly prune slot
WEDNESDAY_NOON = datetime(2024, 1, 3, 12, 0)


@pytest.fixture
def build_context(config, notifier, event_log, executor, docker_probe, kernel_source,
                  network_probe, raid_probe, hardware_probe, stats_store, clock):
    def build(**overrides) -> MonitorContext:
        kwargs = dict(
            notifier=notifier,
            event_log=event_log,
            executor=executor,
            docker_probe=docker_probe,
            kernel_source=kernel_source,
            network_probe=network_probe,
            raid_probe=raid_probe,
            hardware_probe=hardware_probe,
            stats_store=stats_store,
            clock=clock,
            now=lambda: WEDNESDAY_NOON,
        )
        kwargs.update(overrides)
        return MonitorContext(config, **kwargs)
    return build


pytestmark = pytest.mark.integration


# ===========================================================================
# Fast Tick
# ===========================================================================

class TestFastTick:
    """Tests for MonitorContext.run_fast_tick()."""

    def test_skipped_before_first_sample(self, build_context, notifier, docker_probe):
        ctx = build_context()
        assert ctx.run_fast_tick() is False
        assert notifier.sent == []

    def test_ram_critical_restarts_hungriest_container(self, config, build_context, notifier,
                                                       event_log, docker_probe, stats_store):
        """RAM 96% with one container at 55% memory restarts it once."""
        config.docker.auto_restart_on_ram_critical.ram_threshold = 90
        docker_probe.containers = [container("webapp")]
        docker_probe.memory = {"webapp": 55.0}
        stats_store.set(make_stats(ram=96.0))

        ctx = build_context()
        assert ctx.run_fast_tick() is True

        assert docker_probe.restarted == ["webapp"]
        assert len(notifier.messages) == 1
        assert "Auto-restart done" in notifier.messages[0]
        assert ctx.restart_policy.restart_count("webapp") == 1
        assert any(e.severity == EventSeverity.ACTION for e in event_log.get_events())

    def test_ram_below_threshold_no_restart(self, build_context, docker_probe, stats_store):
        docker_probe.containers = [container("webapp")]
        docker_probe.memory = {"webapp": 55.0}
        stats_store.set(make_stats(ram=96.0))

        build_context().run_fast_tick()
        assert docker_probe.restarted == []

    def test_sustained_stress_notifies_once(self, build_context, notifier, docker_probe, stats_store, clock):
        """CPU held above warning for the configured duration gives one notice."""
        docker_probe.containers = [container("web")]
        stats_store.set(make_stats(cpu=97.0))
        ctx = build_context()

        ctx.run_fast_tick()
        assert notifier.sent == []

        clock.advance(120)
        ctx.run_fast_tick()
        clock.advance(10)
        ctx.run_fast_tick()
        assert len(notifier.messages) == 1
        assert "CPU stress" in notifier.messages[0]

        stats_store.set(make_stats(cpu=20.0))
        clock.advance(10)
        ctx.run_fast_tick()
        assert "CPU back to normal" in notifier.messages[-1]

    def test_disabled_resource_not_tracked(self, config, build_context, stats_store, docker_probe):
        config.notifications.swap.enabled = False
        docker_probe.containers = [container("web")]
        stats_store.set(make_stats(swap=99.0))
        ctx = build_context()
        ctx.run_fast_tick()
        assert ctx.stress.get_state("Swap").stress_count == 0

    def test_ssd_stress_uses_volume_usage(self, build_context, stats_store, docker_probe):
        docker_probe.containers = [container("web")]
        stats_store.set(make_stats(vol_ssd=VolumeStats(used=93.0)))
        ctx = build_context()
        ctx.run_fast_tick()
        assert ctx.stress.get_state("SSD").active

    def test_critical_container_down(self, config, build_context, notifier, docker_probe, stats_store):
        config.critical_containers = ["db"]
        docker_probe.containers = [container("web"), container("db", running=False)]
        stats_store.set(make_stats())

        build_context().run_fast_tick()
        assert any("Critical container down" in m for m in notifier.messages)

    def test_container_transition(self, build_context, notifier, docker_probe, stats_store):
        docker_probe.containers = [container("web")]
        stats_store.set(make_stats())
        ctx = build_context()
        ctx.run_fast_tick()

        docker_probe.containers = [container("web", running=False)]
        ctx.run_fast_tick()
        assert any("Container DOWN" in m for m in notifier.messages)

    def test_listing_failure_restarts_docker_after_timeout(self, build_context, notifier, executor,
                                                           docker_probe, stats_store, clock):
        """An unanswered listing beyond the timeout restarts the Docker service."""
        docker_probe.list_error = "Cannot connect to the Docker daemon"
        stats_store.set(make_stats())
        ctx = build_context()

        ctx.run_fast_tick()
        assert ctx.last_containers is None
        clock.advance(121)
        ctx.run_fast_tick()

        assert ctx.docker.last_action.wait(5)
        assert "systemctl restart docker" in executor.calls
        assert any("Docker service restarted" in m for m in notifier.messages)

    def test_killed_listing_triggers_kernel_scan(self, build_context, docker_probe, stats_store, kernel_source):
        """A listing killed by SIGKILL triggers an immediate kernel log scan."""
        docker_probe.list_error = "signal: 9 (killed)"
        kernel_source.lines = ["[5.0] docker: started"]
        stats_store.set(make_stats())
        ctx = build_context()

        assert not ctx.kernel.initialized
        ctx.run_fast_tick()
        assert ctx.kernel.initialized


# ===========================================================================
# Other Jobs
# ===========================================================================

class TestJobs:
    """Tests for the slower scheduled jobs."""

    def test_monitor_tick_critical_alert(self, build_context, notifier, stats_store):
        stats_store.set(make_stats(cpu=99.0))
        build_context().run_monitor_tick()
        assert len(notifier.messages) == 1

    def test_monitor_tick_reports_failing_disk(self, config, build_context, notifier, stats_store, hardware_probe):
        """A failing SMART verdict alone is a critical line."""
        config.notifications.smart.devices = ["sda", "sdb"]
        hardware_probe.failing = ["sdb"]
        stats_store.set(make_stats())
        build_context().run_monitor_tick()
        assert hardware_probe.smart_queries == [["sda", "sdb"]]
        assert "Disk sdb FAILING, backup now!" in notifier.messages[0]

    def test_monitor_tick_smart_disabled(self, config, build_context, notifier, stats_store, hardware_probe):
        config.notifications.smart.enabled = False
        hardware_probe.failing = ["sda"]
        stats_store.set(make_stats())
        build_context().run_monitor_tick()
        assert hardware_probe.smart_queries == []
        assert notifier.sent == []

    def test_trend_and_disk_history(self, build_context, stats_store):
        ctx = build_context()
        ctx.run_trend()
        ctx.run_disk_history()
        assert ctx.trends.trend() == []

        stats_store.set(make_stats(cpu=50.0))
        ctx.run_trend()
        ctx.run_disk_history()
        assert len(ctx.trends.trend()) == 1
        assert len(ctx.trends.disk_history()) == 1

    def test_kernel_oom_after_baseline(self, build_context, notifier, kernel_source):
        """A baseline OOM line is ignored; a new one is reported with the process name."""
        kernel_source.lines = ["[1.0] Out of memory: Killed process 1234 (python3)"]
        ctx = build_context()
        assert ctx.run_kernel_check() == []
        assert ctx.run_kernel_check() == []

        kernel_source.lines.append("[2.0] Out of memory: Killed process 99 (java)")
        assert ctx.run_kernel_check() == ["OOM"]
        assert "java" in notifier.messages[-1]

    def test_kernel_disabled(self, config, build_context, kernel_source):
        config.kernel_watchdog.enabled = False
        kernel_source.lines = ["Kernel panic - not syncing"]
        assert build_context().run_kernel_check() == []

    def test_network_check(self, build_context, network_probe):
        network_probe.reachable = set()
        ctx = build_context()
        state = ctx.run_network_check()
        assert state.fail_count == 1

    def test_network_disabled(self, config, build_context):
        config.network_watchdog.enabled = False
        assert build_context().run_network_check() is None

    def test_raid_check(self, build_context, notifier, raid_probe):
        raid_probe.issues = ["md0: [U_] degraded"]
        assert build_context().run_raid_check() is True
        assert "RAID issue" in notifier.messages[0]

    def test_raid_disabled(self, config, build_context, raid_probe):
        config.raid_watchdog.enabled = False
        raid_probe.issues = ["md0: [U_] degraded"]
        assert build_context().run_raid_check() is False


class TestStartupReport:
    """Tests for MonitorContext.report_previous_boot()."""

    def test_previous_boot_report(self, build_context, quiet_notifier):
        """The crash report is sent even during quiet hours."""
        source = FakeKernelSource(previous=["Kernel panic - not syncing: Fatal exception"])
        ctx = build_context(notifier=quiet_notifier, kernel_source=source)
        report = ctx.report_previous_boot()
        assert "Previous boot crash report" in report
        assert quiet_notifier.messages == [report]

    def test_clean_previous_boot(self, build_context, notifier):
        ctx = build_context(kernel_source=FakeKernelSource(previous=["usb 1-1: new device"]))
        assert ctx.report_previous_boot() is None
        assert notifier.sent == []

    def test_close(self, build_context, docker_probe):
        build_context().close()
        assert docker_probe.closed


# ===========================================================================
# Collaborator Wiring
# ===========================================================================

class TestWiring:
    """Tests for how MonitorContext keeps injected collaborators."""

    def test_injected_empty_collaborators_are_kept(self, build_context, notifier, event_log, executor):
        """An empty event log or idle notifier is still the one passed in."""
        assert len(event_log) == 0
        ctx = build_context()
        assert ctx.event_log is event_log
        assert ctx.notifier is notifier
        assert ctx.executor is executor
        assert ctx.docker.event_log is event_log
        assert ctx.weekly_prune.executor is executor
        assert ctx.network.executor is executor

    def test_events_reach_injected_log(self, build_context, stats_store, docker_probe, event_log):
        docker_probe.containers = [container("webapp")]
        docker_probe.memory = {"webapp": 55.0}
        stats_store.set(make_stats(ram=96.0))
        build_context().run_fast_tick()
        assert len(event_log) > 0

    def test_defaults_created_when_missing(self, config, clock):
        ctx = MonitorContext(config, notifier=RecordingNotifier(), clock=clock, now=lambda: WEDNESDAY_NOON)
        assert isinstance(ctx.event_log, EventLog)
        assert ctx.stress.event_log is ctx.event_log
        ctx.close()


# ===========================================================================
# Temperature
# ===========================================================================

class TestTemperature:
    """Tests for the CPU temperature check in the fast tick."""

    def test_critical_temperature_alerts_once(self, build_context, notifier, stats_store, hardware_probe):
        hardware_probe.temperature = 91.5
        stats_store.set(make_stats())
        ctx = build_context()

        ctx.run_fast_tick()
        ctx.run_fast_tick()
        temperature_alerts = [m for m in notifier.messages if "Temperature" in m]
        assert len(temperature_alerts) == 1
        assert "CPU Temperature Critical" in temperature_alerts[0]
        assert "`91.5°C`" in temperature_alerts[0]

    def test_normal_temperature_silent(self, build_context, notifier, stats_store):
        stats_store.set(make_stats())
        build_context().run_fast_tick()
        assert not any("Temperature" in m for m in notifier.messages)

    def test_disabled(self, config, build_context, notifier, stats_store, hardware_probe):
        config.temperature.enabled = False
        hardware_probe.temperature = 99.0
        stats_store.set(make_stats())
        build_context().run_fast_tick()
        assert not any("Temperature" in m for m in notifier.messages)

    def test_sensor_error_is_contained(self, build_context, notifier, stats_store):
        """A sensor that raises reads as no temperature and the tick completes."""
        class BrokenSensor(FakeHardwareProbe):
            def cpu_temperature(self) -> float:
                raise OSError("thermal zone vanished")

        stats_store.set(make_stats())
        ctx = build_context(hardware_probe=BrokenSensor())
        assert ctx.run_temperature_check() is None
        assert ctx.run_fast_tick() is True


# ===========================================================================
# Scheduled Reports
# ===========================================================================

def at(hour: int, minute: int):
    return lambda: datetime(2024, 1, 3, hour, minute)


class TestReport:
    """Tests for MonitorContext.run_report()."""

    def test_morning_report_sent_once(self, build_context, notifier, stats_store, event_log):
        stats_store.set(make_stats(cpu=20.0, uptime=3 * 86400 + 4 * 3600))
        event_log.add(EventSeverity.ACTION, "Restarted webapp")
        ctx = build_context(now=at(7, 32))

        text = ctx.run_report()
        assert text.startswith("*Good morning*")
        assert "Restarted webapp" in text
        assert "Up for 3d4h" in text
        assert notifier.sent == [(text, True)]
        assert ctx.run_report() is None

    def test_not_due_outside_slot(self, build_context, notifier, stats_store):
        stats_store.set(make_stats())
        assert build_context().run_report() is None
        assert notifier.sent == []

    def test_disabled(self, config, build_context, notifier, stats_store):
        config.reports.enabled = False
        stats_store.set(make_stats())
        assert build_context(now=at(7, 30)).run_report() is None
        assert notifier.sent == []

    def test_waits_for_first_sample(self, build_context, notifier):
        assert build_context(now=at(18, 30)).run_report() is None
        assert notifier.sent == []

    def test_sent_during_quiet_hours(self, config, build_context, quiet_notifier, stats_store):
        """Reports ignore quiet hours like the boot report."""
        stats_store.set(make_stats())
        ctx = build_context(notifier=quiet_notifier, now=at(7, 30))
        assert ctx.run_report() is not None
        assert quiet_notifier.suppressed == []

    def test_resets_stress_counters(self, build_context, notifier, stats_store, clock):
        """The stress summary covers one report period."""
        ctx = build_context(now=at(18, 32))
        ctx.stress.evaluate("CPU", 97.0, 90.0, 60)
        clock.advance(6 * 60)
        ctx.stress.evaluate("CPU", 20.0, 90.0, 60)
        assert ctx.stress_summary() != ""

        stats_store.set(make_stats())
        text = ctx.run_report()
        assert "*Good evening*" in text
        assert "CPU 1x" in text
        assert ctx.stress_summary() == ""

    def test_includes_trends_and_containers(self, build_context, stats_store, docker_probe):
        docker_probe.containers = [container("web"), container("db", running=False)]
        stats_store.set(make_stats(cpu=50.0))
        ctx = build_context(now=at(7, 31))
        ctx.list_containers()
        ctx.run_trend()

        text = ctx.run_report()
        assert "Containers: 1 running, 1 stopped" in text
        assert "📈 CPU ▅" in text

    def test_reports_and_clears_handled_errors(self, build_context, stats_store):
        aggregator = get_error_aggregator()
        aggregator.clear()
        handle_error(OSError("no route"), "network check", category=ErrorCategory.NETWORK)
        stats_store.set(make_stats())

        text = build_context(now=at(7, 30)).run_report()
        assert "Errors handled: 1 (network 1)" in text
        assert aggregator.get_error_summary()['total_errors'] == 0

    def test_failed_delivery_retried(self, build_context, stats_store):
        class DownNotifier(RecordingNotifier):
            def send(self, message, bypass_quiet_hours=False):
                return False

        stats_store.set(make_stats())
        ctx = build_context(notifier=DownNotifier(), now=at(7, 30))
        assert ctx.run_report() is None
        assert ctx.report_schedule.due() == "morning"
