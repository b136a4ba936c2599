"""
Weekly Prune - ``docker system prune`` once a week at a configured hour.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from ..config.settings import WEEKDAYS
from ..constants import Timeouts
from ..event_logger import EventLog, EventSeverity
from ..notifier import Notifier, load_timezone
from ..remediation import BackgroundAction, CommandResult, RemediationExecutor

logger = logging.getLogger(__name__)


class WeeklyPrune:
    """
    Runs the prune in the background on the first check inside the
    configured weekday/hour and not again until that hour has passed.
    """

    def __init__(
        self,
        notifier: Notifier,
        event_log: EventLog,
        executor: Optional[RemediationExecutor] = None,
        day: str = "sunday",
        hour: int = 4,
        timezone: str = "",
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.notifier = notifier
        self.event_log = event_log
        self.executor = executor if executor is not None else RemediationExecutor()
        day = (day or "sunday").strip().lower()
        if day not in WEEKDAYS:
            logger.warning(f"Unknown prune day '{day}', using sunday")
            day = "sunday"
        self.weekday = WEEKDAYS.index(day)
        self.hour = hour
        tz = load_timezone(timezone)
        self._now = now or (lambda: datetime.now(tz))
        self._lock = threading.Lock()
        self.done = False
        self.last_action: Optional[BackgroundAction] = None

    def check(self) -> bool:
        """Returns True when a prune was started by this call."""
        now = self._now()
        with self._lock:
            if now.weekday() != self.weekday or now.hour != self.hour:
                if now.hour != self.hour:
                    self.done = False
                return False
            if self.done:
                return False
            self.done = True

        logger.info("Starting weekly docker prune")
        self.last_action = self.executor.run_background(
            "docker", ["system", "prune", "-a", "-f"],
            timeout=Timeouts.DOCKER_PRUNE,
            on_complete=self._on_complete,
            name="weekly-prune",
        )
        return True

    def _on_complete(self, result: CommandResult):
        if not result.ok:
            error = result.error or ""
            if error.startswith("timed out"):
                error = f"timeout after {Timeouts.DOCKER_PRUNE / 60:.0f}m"
            logger.error(f"Weekly prune failed: {error}")
            self.notifier.send(f"🧹 *Weekly Prune Error*\n\n`{error}`")
            self.event_log.add(EventSeverity.WARNING, f"Weekly docker prune failed: {error}")
            return

        lines = [line for line in result.output.strip().split("\n") if line.strip()]
        last_line = lines[-1].strip() if lines else "done"
        logger.info(f"Weekly prune finished: {last_line}")
        self.notifier.send(f"🧹 *Weekly Prune*\n\nUnused images removed.\n`{last_line}`")
        self.event_log.add(EventSeverity.INFO, "Weekly docker prune completed")
