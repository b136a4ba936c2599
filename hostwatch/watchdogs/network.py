"""
Network Watchdog - internet reachability and DNS health.

Two failure modes are tracked separately:
- full outage: no ping target answers. Counted per check; alerts only once
  ``failure_threshold`` consecutive failures have accumulated, then at most
  once per cooldown. Optionally forces a reboot after a sustained outage.
- DNS-only: pings succeed but the lookup fails. Alerted at most once per
  cooldown and never touches the failure counter.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from ..constants import Defaults, Timeouts
from ..event_logger import EventLog, EventSeverity
from ..notifier import Notifier
from ..probes.network_probe import NetworkProbe
from ..remediation import BackgroundAction, CommandResult, RemediationExecutor
from ..utils.formatting import format_duration

logger = logging.getLogger(__name__)


@dataclass
class NetworkState:
    fail_count: int = 0
    down_since: Optional[float] = None
    down_alert_time: float = 0.0
    dns_alert_time: float = 0.0
    force_reboot_triggered: bool = False
    last_check: Optional[float] = None


class NetworkWatchdog:
    def __init__(
        self,
        notifier: Notifier,
        event_log: EventLog,
        probe: NetworkProbe,
        executor: Optional[RemediationExecutor] = None,
        recovery_notify: bool = True,
        force_reboot_on_down: bool = False,
        force_reboot_after_minutes: float = Defaults.NETWORK_FORCE_REBOOT_AFTER_MINUTES,
        clock: Callable[[], float] = time.time,
    ):
        self.notifier = notifier
        self.event_log = event_log
        self.probe = probe
        self.executor = executor if executor is not None else RemediationExecutor()
        self.recovery_notify = recovery_notify
        self.force_reboot_on_down = force_reboot_on_down
        if force_reboot_after_minutes <= 0:
            force_reboot_after_minutes = Defaults.NETWORK_FORCE_REBOOT_AFTER_MINUTES
        self.force_reboot_after = force_reboot_after_minutes * 60
        self._clock = clock
        self._lock = threading.Lock()
        self.state = NetworkState()
        self.last_action: Optional[BackgroundAction] = None

    def check(
        self,
        ping_targets: Optional[Sequence[str]] = None,
        gateway: str = "",
        dns_host: str = "",
        failure_threshold: int = Defaults.NETWORK_FAILURE_THRESHOLD,
        cooldown_minutes: float = Defaults.NETWORK_COOLDOWN_MINUTES,
    ) -> NetworkState:
        """
        Probe the network once and update the outage state machine.

        Args:
            ping_targets: Hosts pinged in order until one answers
            gateway: Optional gateway address, pinged first; an answer counts as reachable
            dns_host: Hostname to resolve
            failure_threshold: Consecutive failures before declaring an outage
            cooldown_minutes: Minimum time between repeated alerts

        Returns:
            A copy of the state after this check
        """
        targets = [t for t in (ping_targets or []) if t] or list(Defaults.PING_TARGETS)
        dns_host = dns_host or Defaults.DNS_HOST
        if failure_threshold <= 0:
            failure_threshold = Defaults.NETWORK_FAILURE_THRESHOLD
        if cooldown_minutes <= 0:
            cooldown_minutes = Defaults.NETWORK_COOLDOWN_MINUTES
        cooldown = cooldown_minutes * 60

        reasons: List[str] = []

        ping_ok = False
        if gateway:
            if self.probe.ping(gateway, Timeouts.PING):
                ping_ok = True
            else:
                reasons.append(f"Gateway {gateway} unreachable")

        for target in targets:
            if self.probe.ping(target, Timeouts.PING):
                ping_ok = True
                break
        if not ping_ok:
            reasons.append("No ping targets reachable")

        dns_ok = self.probe.resolve_dns(dns_host, Timeouts.DNS_QUERY)
        if not dns_ok:
            reasons.append(f"DNS lookup failed: {dns_host}")

        now = self._clock()
        with self._lock:
            self.state.last_check = now

            if ping_ok and dns_ok:
                self._handle_healthy(now)
            elif ping_ok:
                self._handle_dns_failure(now, dns_host, cooldown)
            else:
                self._handle_outage(now, reasons, failure_threshold, cooldown)

            return NetworkState(**self.state.__dict__)

    def _handle_healthy(self, now: float):
        self.state.fail_count = 0
        if self.state.down_since is None:
            return

        downtime = now - self.state.down_since
        logger.info(f"Network recovered after {format_duration(downtime)}")
        if self.recovery_notify and not self.notifier.is_quiet_hours():
            self.notifier.send(f"✅ *Network recovered*\n\nDowntime: `{format_duration(downtime)}`")
        self.event_log.add(EventSeverity.INFO, f"Network recovered after {format_duration(downtime)}")
        self.state.down_since = None
        self.state.force_reboot_triggered = False

    def _handle_dns_failure(self, now: float, dns_host: str, cooldown: float):
        logger.warning(f"DNS lookup failed for {dns_host} while ping succeeds")
        if self.state.dns_alert_time and now - self.state.dns_alert_time < cooldown:
            return
        self.state.dns_alert_time = now
        self.notifier.send(
            f"⚠️ *DNS failure*\n\n"
            f"Ping OK, but `{dns_host}` does not resolve."
        )
        self.event_log.add(EventSeverity.WARNING, "DNS lookup failure")

    def _handle_outage(self, now: float, reasons: List[str], failure_threshold: int, cooldown: float):
        self.state.fail_count += 1
        logger.warning(f"Network check failed ({self.state.fail_count}/{failure_threshold}): {'; '.join(reasons)}")
        if self.state.fail_count < failure_threshold:
            return

        if self.state.down_since is None:
            self.state.down_since = now

        if not self.state.down_alert_time or now - self.state.down_alert_time >= cooldown:
            self.state.down_alert_time = now
            self.notifier.send(
                "🌐 *Network DOWN*\n\n- " + "\n- ".join(reasons)
            )
            self.event_log.add(EventSeverity.CRITICAL, "Network unreachable")

        self._maybe_force_reboot(now)

    def _maybe_force_reboot(self, now: float):
        if not self.force_reboot_on_down or self.state.force_reboot_triggered:
            return
        downtime = now - self.state.down_since
        if downtime < self.force_reboot_after:
            return

        self.state.force_reboot_triggered = True
        logger.critical(f"Network down for {format_duration(downtime)}, forcing reboot")
        self.event_log.add(EventSeverity.ACTION, f"Forced reboot: network down for {format_duration(downtime)}")
        self.notifier.send(
            f"🔌 *Network down for {format_duration(downtime)}*\n\n_Forcing reboot..._",
            bypass_quiet_hours=True,
        )
        self.last_action = self.executor.run_background(
            "reboot", ["-f"], timeout=Timeouts.REBOOT,
            on_complete=self._on_reboot_complete, name="network-reboot")

    def _on_reboot_complete(self, result: CommandResult):
        if not result.ok:
            logger.error(f"Forced reboot failed: {result.error}")
