"""
Critical Threshold Monitor - periodic comparison of Stats against thresholds.

Critical breaches are combined into one message per cooldown; warning-band
values only leave a trace in the event log.
"""

import logging
import threading
import time
from typing import Callable, List, Sequence

from ..config.settings import NotificationsConfig
from ..event_logger import EventLog, EventSeverity
from ..notifier import Notifier
from ..stats import Stats

logger = logging.getLogger(__name__)


class CriticalThresholdMonitor:
    def __init__(
        self,
        notifier: Notifier,
        event_log: EventLog,
        cooldown_minutes: float = 30,
        clock: Callable[[], float] = time.time,
    ):
        self.notifier = notifier
        self.event_log = event_log
        self.cooldown = max(cooldown_minutes, 1) * 60
        self._clock = clock
        self._lock = threading.Lock()
        self.last_critical_alert = 0.0

    def critical_lines(
        self, stats: Stats, thresholds: NotificationsConfig, failing_disks: Sequence[str] = ()
    ) -> List[str]:
        lines = []
        if thresholds.disk_ssd.enabled and stats.vol_ssd.used >= thresholds.disk_ssd.critical_threshold:
            lines.append(f"💿 SSD critical: `{stats.vol_ssd.used:.1f}%`")
        if thresholds.disk_hdd.enabled and stats.vol_hdd.used >= thresholds.disk_hdd.critical_threshold:
            lines.append(f"🗄 HDD critical: `{stats.vol_hdd.used:.1f}%`")
        for device in failing_disks:
            lines.append(f"🚨 Disk {device} FAILING, backup now!")
        if thresholds.cpu.enabled and stats.cpu >= thresholds.cpu.critical_threshold:
            lines.append(f"🧠 CPU critical: `{stats.cpu:.1f}%`")
        if thresholds.ram.enabled and stats.ram >= thresholds.ram.critical_threshold:
            lines.append(f"💾 RAM critical: `{stats.ram:.1f}%`")
        return lines

    def warning_messages(self, stats: Stats, thresholds: NotificationsConfig) -> List[str]:
        """Event log texts for values in the warning band (at or above warning, below critical)."""
        messages = []

        def in_band(cfg, value: float) -> bool:
            return cfg.enabled and cfg.warning_threshold <= value < cfg.critical_threshold

        if in_band(thresholds.cpu, stats.cpu):
            messages.append(f"CPU high: {stats.cpu:.1f}%")
        if in_band(thresholds.ram, stats.ram):
            messages.append(f"RAM high: {stats.ram:.1f}%")
        # Swap has no critical alert, only the warning trace
        if thresholds.swap.enabled and stats.swap >= thresholds.swap.warning_threshold:
            messages.append(f"Swap high: {stats.swap:.1f}%")
        if in_band(thresholds.disk_ssd, stats.vol_ssd.used):
            messages.append(f"SSD at {stats.vol_ssd.used:.1f}%")
        if in_band(thresholds.disk_hdd, stats.vol_hdd.used):
            messages.append(f"HDD at {stats.vol_hdd.used:.1f}%")
        return messages

    def check(
        self, stats: Stats, thresholds: NotificationsConfig, failing_disks: Sequence[str] = ()
    ) -> bool:
        """
        Args:
            failing_disks: Devices whose SMART verdict is failing

        Returns:
            True if a combined critical message was sent
        """
        lines = self.critical_lines(stats, thresholds, failing_disks)
        for line in lines:
            self.event_log.add(EventSeverity.CRITICAL, line.replace("`", ""))
        for message in self.warning_messages(stats, thresholds):
            self.event_log.add(EventSeverity.WARNING, message)

        if not lines:
            return False

        now = self._clock()
        with self._lock:
            if now - self.last_critical_alert < self.cooldown:
                return False
            if self.notifier.is_quiet_hours():
                return False
            self.last_critical_alert = now

        logger.warning(f"Critical thresholds breached: {len(lines)}")
        self.notifier.send("🚨 *Critical*\n\n" + "\n".join(lines))
        return True
