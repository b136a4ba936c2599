"""
RAID Watchdog - degraded or rebuilding arrays.

The list of current issues joined into a signature identifies the situation;
a new signature alerts immediately, an unchanged one is repeated only after
the cooldown. RAID alerts always bypass quiet hours.
"""

import logging
import threading
import time
from typing import Callable, List, Optional, Sequence

from ..constants import Defaults
from ..event_logger import EventLog, EventSeverity
from ..notifier import Notifier
from ..utils.formatting import format_duration

logger = logging.getLogger(__name__)


class RaidWatchdog:
    def __init__(
        self,
        notifier: Notifier,
        event_log: EventLog,
        cooldown_minutes: float = Defaults.RAID_COOLDOWN_MINUTES,
        recovery_notify: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.notifier = notifier
        self.event_log = event_log
        if cooldown_minutes <= 0:
            cooldown_minutes = Defaults.RAID_COOLDOWN_MINUTES
        self.cooldown = cooldown_minutes * 60
        self.recovery_notify = recovery_notify
        self._clock = clock
        self._lock = threading.Lock()
        self.last_signature = ""
        self.down_since: Optional[float] = None
        self.alert_time = 0.0

    def check(self, issues: Sequence[str]) -> bool:
        """
        Process the current RAID issue list.

        Returns:
            True if an alert was sent
        """
        issues: List[str] = [i for i in issues if i]
        now = self._clock()

        with self._lock:
            if not issues:
                if self.down_since is not None:
                    downtime = now - self.down_since
                    logger.info(f"RAID healthy again after {format_duration(downtime)}")
                    if self.recovery_notify and not self.notifier.is_quiet_hours():
                        self.notifier.send(f"✅ *RAID recovered*\n\nDegraded for `{format_duration(downtime)}`")
                    self.event_log.add(EventSeverity.INFO, f"RAID recovered after {format_duration(downtime)}")
                self.down_since = None
                self.last_signature = ""
                return False

            signature = " | ".join(issues)
            if self.down_since is None:
                self.down_since = now

            changed = signature != self.last_signature
            if not changed and now - self.alert_time < self.cooldown:
                return False

            self.last_signature = signature
            self.alert_time = now

        logger.critical(f"RAID issue: {signature}")
        self.notifier.send("🧱 *RAID issue*\n\n" + "\n".join(issues), bypass_quiet_hours=True)
        self.event_log.add(EventSeverity.CRITICAL, "RAID issue detected")
        return True
