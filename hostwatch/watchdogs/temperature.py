"""
Temperature Watchdog - CPU temperature against warning/critical thresholds.
"""

import logging
import threading
import time
from typing import Callable, Optional

from ..constants import Windows
from ..event_logger import EventLog, EventSeverity
from ..notifier import Notifier

logger = logging.getLogger(__name__)


class TemperatureWatchdog:
    def __init__(
        self,
        notifier: Notifier,
        event_log: EventLog,
        cooldown: float = Windows.TEMPERATURE_ALERT_COOLDOWN,
        clock: Callable[[], float] = time.time,
    ):
        self.notifier = notifier
        self.event_log = event_log
        self.cooldown = cooldown
        self._clock = clock
        self._lock = threading.Lock()
        self.last_alert = 0.0

    def check(self, temperature: float, warning: float, critical: float) -> Optional[str]:
        """
        Alert once per cooldown when ``temperature`` reaches a threshold.

        A reading of 0 or below means no sensor and is ignored. The alert
        time and event are recorded even when quiet hours hold the message.

        Returns:
            "critical" or "warning" when an alert was raised, else None
        """
        if temperature <= 0:
            return None

        if temperature >= critical:
            level = "critical"
        elif temperature >= warning:
            level = "warning"
        else:
            return None

        now = self._clock()
        with self._lock:
            if now - self.last_alert < self.cooldown:
                return None
            self.last_alert = now

        if level == "critical":
            message = (
                "🔥 *CPU Temperature Critical!*\n\n"
                f"Current: `{temperature:.1f}°C`\n"
                f"Threshold: `{critical:.0f}°C`\n\n"
                "_Consider checking cooling or reducing load_"
            )
            self.event_log.add(EventSeverity.CRITICAL, f"CPU temp critical: {temperature:.0f}°C")
        else:
            message = (
                "🌡 *CPU Temperature Warning*\n\n"
                f"Current: `{temperature:.1f}°C`\n"
                f"Threshold: `{warning:.0f}°C`"
            )
            self.event_log.add(EventSeverity.WARNING, f"CPU temp warning: {temperature:.0f}°C")

        logger.warning(f"CPU temperature {level}: {temperature:.1f}°C")
        self.notifier.send(message)
        return level
