"""
Monitor Context - owns every probe, watchdog and sink of one hostwatch process.

All monitoring state lives here for the lifetime of the process. The
scheduler calls the ``run_*`` methods; each one reads the latest Stats and
drives the relevant watchdogs.
"""

import logging
import threading
import time
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from .config.settings import Config
from .constants import Defaults, Windows
from .event_logger import EventLog
from .notifier import Notifier, QuietHours, create_notifier
from .probes.docker_probe import ContainerInfo, ContainerProbeError, DockerProbe
from .probes.hardware_probe import HardwareProbe
from .probes.kernel_log import KernelLogSource
from .probes.network_probe import NetworkProbe
from .probes.raid_probe import RaidProbe
from .remediation import RemediationExecutor
from .report import (
    ReportData,
    ReportSchedule,
    filter_significant_events,
    format_error_summary,
    render_report,
)
from .stats import MetricsCollector, StatsCollector, StatsStore
from .utils.error_handling import ErrorCategory, get_error_aggregator, safe_execute
from .watchdogs import (
    AutoRestartPolicy,
    ContainerStateTracker,
    CriticalContainerMonitor,
    CriticalThresholdMonitor,
    DockerWatchdog,
    KernelWatchdog,
    NetworkWatchdog,
    OomLoopGuard,
    RaidWatchdog,
    RamCriticalHandler,
    StressTracker,
    TemperatureWatchdog,
    TrendRecorder,
    WeeklyPrune,
)

logger = logging.getLogger(__name__)


class MonitorContext:
    def __init__(
        self,
        config: Config,
        notifier: Optional[Notifier] = None,
        event_log: Optional[EventLog] = None,
        executor: Optional[RemediationExecutor] = None,
        docker_probe: Optional[DockerProbe] = None,
        kernel_source: Optional[KernelLogSource] = None,
        network_probe: Optional[NetworkProbe] = None,
        raid_probe: Optional[RaidProbe] = None,
        hardware_probe: Optional[HardwareProbe] = None,
        stats_store: Optional[StatsStore] = None,
        clock: Callable[[], float] = time.time,
        now: Optional[Callable[[], datetime]] = None,
    ):
        """
        Build the full monitoring graph from ``config``.

        Every collaborator can be injected; anything left out is created
        from the configuration.
        """
        self.config = config
        self._clock = clock

        self.quiet_hours = QuietHours(config.quiet_hours, config.timezone, now=now)
        if notifier is None:
            notifier = create_notifier(config.bot_token, config.allowed_user_id, self.quiet_hours)
        self.notifier = notifier
        if self.notifier.quiet_hours is None:
            self.notifier.quiet_hours = self.quiet_hours
        if event_log is None:
            event_log = EventLog(max_events=Defaults.EVENT_LOG_SIZE, clock=clock)
        self.event_log = event_log
        self.executor = executor if executor is not None else RemediationExecutor()

        self.docker_probe = docker_probe if docker_probe is not None else DockerProbe()
        self.kernel_source = kernel_source if kernel_source is not None else KernelLogSource(self.executor)
        self.network_probe = network_probe if network_probe is not None else NetworkProbe(self.executor)
        self.raid_probe = raid_probe if raid_probe is not None else RaidProbe(self.executor)
        self.hardware_probe = hardware_probe if hardware_probe is not None else HardwareProbe(self.executor)

        self.stats_store = stats_store if stats_store is not None else StatsStore()
        self.stats_collector = StatsCollector(
            MetricsCollector(config.paths.ssd, config.paths.hdd, clock=clock),
            self.stats_store,
            interval=config.intervals.stats_seconds,
        )

        self._build_watchdogs(now)
        self._last_restart_cleanup = clock()
        self._lock = threading.Lock()
        self._last_containers: Optional[List[ContainerInfo]] = None

    def _build_watchdogs(self, now: Optional[Callable[[], datetime]]):
        cfg = self.config
        notifier, event_log, clock = self.notifier, self.event_log, self._clock

        self.stress = StressTracker(notifier, event_log, clock=clock)

        self.oom_guard = OomLoopGuard(notifier, event_log, self.executor, clock=clock)
        self.kernel = KernelWatchdog(notifier, event_log, source=self.kernel_source, oom_guard=self.oom_guard)

        net = cfg.network_watchdog
        self.network = NetworkWatchdog(
            notifier, event_log, self.network_probe, self.executor,
            recovery_notify=net.recovery_notify,
            force_reboot_on_down=net.force_reboot_on_down,
            force_reboot_after_minutes=net.force_reboot_after_minutes,
            clock=clock,
        )

        self.raid = RaidWatchdog(
            notifier, event_log,
            cooldown_minutes=cfg.raid_watchdog.cooldown_minutes,
            recovery_notify=cfg.raid_watchdog.recovery_notify,
            clock=clock,
        )

        wd = cfg.docker.watchdog
        self.docker = DockerWatchdog(
            notifier, event_log, self.executor,
            timeout_minutes=wd.timeout_minutes,
            auto_restart_service=wd.auto_restart_service,
            on_probe_killed=self.run_kernel_check,
            clock=clock,
        )

        self.critical_containers = CriticalContainerMonitor(notifier, event_log, clock=clock)
        self.container_states = ContainerStateTracker(notifier, event_log, clock=clock)

        ar = cfg.docker.auto_restart_on_ram_critical
        self.restart_policy = AutoRestartPolicy(max_restarts=ar.max_restarts_per_hour, clock=clock)
        self.ram_critical = RamCriticalHandler(
            notifier, event_log, self.docker_probe, self.restart_policy, ram_threshold=ar.ram_threshold)

        self.thresholds = CriticalThresholdMonitor(
            notifier, event_log,
            cooldown_minutes=cfg.intervals.critical_alert_cooldown_minutes,
            clock=clock,
        )
        self.trends = TrendRecorder()
        self.temperature = TemperatureWatchdog(notifier, event_log, clock=clock)
        self.report_schedule = ReportSchedule(cfg.reports, cfg.timezone, now=now)

        prune = cfg.docker.weekly_prune
        self.weekly_prune = WeeklyPrune(
            notifier, event_log, self.executor,
            day=prune.day, hour=prune.hour, timezone=cfg.timezone, now=now,
        )

    # ==========================================================================
    # Containers
    # ==========================================================================

    def list_containers(self) -> Tuple[Optional[List[ContainerInfo]], Optional[str]]:
        """
        One container listing shared by everything in a tick.

        Returns:
            (containers, None) on success, (None, error) when Docker did not answer
        """
        try:
            containers = self.docker_probe.list_containers()
        except ContainerProbeError as e:
            logger.warning(f"Container listing failed: {e}")
            return None, str(e)
        with self._lock:
            self._last_containers = containers
        return containers, None

    @property
    def last_containers(self) -> Optional[List[ContainerInfo]]:
        with self._lock:
            return self._last_containers

    # ==========================================================================
    # Scheduled jobs
    # ==========================================================================

    def run_fast_tick(self) -> bool:
        """Stress, RAM-critical restarts and container checks. False when Stats are not ready."""
        stats = self.stats_store.get()
        if stats is None:
            return False

        cfg = self.config
        notif = cfg.notifications

        if cfg.stress_tracking.enabled:
            min_duration = cfg.stress_tracking.duration_threshold_minutes * 60
            if notif.disk_io.enabled:
                self.stress.evaluate("HDD", stats.disk_util, notif.disk_io.warning_threshold, min_duration)
            if notif.cpu.enabled:
                self.stress.evaluate("CPU", stats.cpu, notif.cpu.warning_threshold, min_duration)
            if notif.ram.enabled:
                self.stress.evaluate("RAM", stats.ram, notif.ram.warning_threshold, min_duration)
            if notif.swap.enabled:
                self.stress.evaluate("Swap", stats.swap, notif.swap.warning_threshold, min_duration)
            if notif.disk_ssd.enabled:
                self.stress.evaluate("SSD", stats.vol_ssd.used, notif.disk_ssd.warning_threshold, min_duration)

        if cfg.temperature.enabled:
            self.run_temperature_check()

        containers, error = self.list_containers()

        ar = cfg.docker.auto_restart_on_ram_critical
        if ar.enabled and containers and stats.ram >= ar.ram_threshold:
            self.ram_critical.handle(stats.ram, containers)

        self.run_restart_cleanup()

        if cfg.docker.watchdog.enabled:
            self.docker.check(len(containers or []), error)

        self.container_states.update(containers)
        self.critical_containers.check(cfg.critical_containers, containers or [])

        if cfg.docker.weekly_prune.enabled:
            self.weekly_prune.check()

        return True

    def run_restart_cleanup(self):
        now = self._clock()
        if now - self._last_restart_cleanup < Windows.RESTART_CLEANUP_INTERVAL:
            return
        self._last_restart_cleanup = now
        remaining = self.restart_policy.cleanup()
        logger.debug(f"Restart history cleaned, {remaining} containers tracked")

    def run_temperature_check(self) -> Optional[str]:
        temp = self.config.temperature
        with safe_execute("reading CPU temperature", ErrorCategory.RESOURCE, default_return=0.0) as result:
            result.value = self.hardware_probe.cpu_temperature()
        return self.temperature.check(result.value, temp.warning_threshold, temp.critical_threshold)

    def failing_disks(self) -> List[str]:
        smart = self.config.notifications.smart
        if not smart.enabled:
            return []
        with safe_execute("reading SMART health", ErrorCategory.STORAGE, default_return=[]) as result:
            result.value = self.hardware_probe.failing_devices(smart.devices)
        return result.value

    def run_monitor_tick(self):
        stats = self.stats_store.get()
        if stats is None:
            return
        self.thresholds.check(stats, self.config.notifications, self.failing_disks())

    def run_disk_history(self):
        stats = self.stats_store.get()
        if stats is not None:
            self.trends.record_disk(stats)

    def run_trend(self):
        stats = self.stats_store.get()
        if stats is not None:
            self.trends.record_trend(stats)

    def run_kernel_check(self) -> List[str]:
        if not self.config.kernel_watchdog.enabled:
            return []
        return self.kernel.check()

    def run_network_check(self):
        net = self.config.network_watchdog
        if not net.enabled:
            return None
        return self.network.check(
            ping_targets=net.targets,
            gateway=net.gateway,
            dns_host=net.dns_host,
            failure_threshold=net.failure_threshold,
            cooldown_minutes=net.cooldown_minutes,
        )

    def run_raid_check(self) -> bool:
        if not self.config.raid_watchdog.enabled:
            return False
        return self.raid.check(self.raid_probe.status())

    def report_previous_boot(self) -> Optional[str]:
        """Send the previous-boot crash report once, if there is one."""
        if not self.config.kernel_watchdog.enabled:
            return None
        report = self.kernel.check_previous_boot()
        if report:
            self.notifier.send(report, bypass_quiet_hours=True)
        return report

    def run_report(self, force: Optional[str] = None) -> Optional[str]:
        """
        Send the morning/evening report when its slot is due.

        A sent report marks the slot served, resets the stress counters and
        clears the handled-error tally. A failed send is retried on the next
        check inside the grace window.

        Args:
            force: Slot name to render regardless of the schedule

        Returns:
            The report text when one was sent
        """
        slot = force or self.report_schedule.due()
        if slot is None:
            return None
        stats = self.stats_store.get()
        if stats is None:
            logger.info(f"Skipping {slot} report, no stats yet")
            return None

        aggregator = get_error_aggregator()
        text = render_report(ReportData(
            slot=slot,
            now=self.report_schedule.now(),
            stats=stats,
            thresholds=self.config.notifications,
            events=filter_significant_events(self.event_log.get_events(), self._clock()),
            containers=self.last_containers,
            stress_summary=self.stress_summary(),
            cpu_graph=self.trends.cpu_graph(),
            ram_graph=self.trends.ram_graph(),
            error_summary=format_error_summary(aggregator.get_error_summary()),
        ))

        if not self.notifier.send(text, bypass_quiet_hours=True):
            logger.warning(f"{slot.capitalize()} report was not delivered")
            return None

        logger.info(f"{slot.capitalize()} report sent")
        self.report_schedule.mark_sent(slot)
        self.stress_summary(reset=True)
        aggregator.clear()
        return text

    def stress_summary(self, reset: bool = False) -> str:
        summary = self.stress.get_summary()
        if reset:
            self.stress.reset_counters()
        return summary

    def close(self):
        self.network_probe.close()
        self.docker_probe.close()
