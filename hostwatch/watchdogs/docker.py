"""
Docker Watchdog - restarts the Docker service when it stops answering.

Zero visible containers (or a failed listing) starts a failure timer. When
the failure outlasts ``timeout_minutes`` the service is restarted, or the
operator is told if restarts are disabled. The timer then restarts from now
so a still-broken daemon is retried once per timeout.
"""

import logging
import threading
import time
from typing import Callable, Optional

from ..constants import Timeouts
from ..event_logger import EventLog, EventSeverity
from ..notifier import Notifier
from ..remediation import BackgroundAction, CommandResult, RemediationExecutor
from ..utils.formatting import format_duration

logger = logging.getLogger(__name__)

KILLED_MARKERS = ("killed", "signal: 9")


class DockerWatchdog:
    def __init__(
        self,
        notifier: Notifier,
        event_log: EventLog,
        executor: Optional[RemediationExecutor] = None,
        timeout_minutes: float = 2,
        auto_restart_service: bool = True,
        on_probe_killed: Optional[Callable[[], object]] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            notifier: Notification sink (quiet hours respected)
            event_log: Operational event log
            executor: Runs the service restart
            timeout_minutes: How long Docker may stay unresponsive
            auto_restart_service: Restart the service, or only report
            on_probe_killed: Called when the container listing was SIGKILLed,
                typically a kernel log scan to catch an OOM kill
        """
        self.notifier = notifier
        self.event_log = event_log
        self.executor = executor if executor is not None else RemediationExecutor()
        self.timeout = max(timeout_minutes, 1) * 60
        self.auto_restart_service = auto_restart_service
        self.on_probe_killed = on_probe_killed
        self._clock = clock
        self._lock = threading.Lock()
        self.failure_start: Optional[float] = None
        self.last_action: Optional[BackgroundAction] = None

    def check(self, container_count: int, error: Optional[str] = None) -> Optional[BackgroundAction]:
        """
        Feed the result of one container listing.

        Args:
            container_count: Number of containers seen
            error: Probe error message when the listing failed

        Returns:
            The background restart action when one was started
        """
        if error and any(marker in error.lower() for marker in KILLED_MARKERS):
            logger.warning(f"Container listing was killed ({error}), scanning kernel log")
            if self.on_probe_killed is not None:
                try:
                    self.on_probe_killed()
                except Exception as e:
                    logger.error(f"Kernel check after killed probe failed: {e}")

        now = self._clock()
        with self._lock:
            if container_count > 0 and not error:
                if self.failure_start is not None:
                    logger.info("Docker responsive again")
                self.failure_start = None
                return None

            if self.failure_start is None:
                self.failure_start = now
                logger.warning(f"Docker unresponsive or no containers{f' ({error})' if error else ''}")
                return None

            elapsed = now - self.failure_start
            if elapsed <= self.timeout:
                return None

            self.failure_start = now

        if not self.auto_restart_service:
            self.notifier.send(
                f"🐳 *Docker watchdog*\n\n"
                f"No containers for `{format_duration(elapsed)}`.\n"
                f"_Auto restart disabled._"
            )
            self.event_log.add(EventSeverity.WARNING, "Docker watchdog triggered (restart disabled)")
            return None

        if self.last_action is not None and not self.last_action.done:
            logger.warning("Docker service restart still running, not starting another")
            return None

        self.notifier.send(
            f"🐳 *Docker watchdog*\n\n"
            f"No containers for `{format_duration(elapsed)}`.\n"
            f"_Restarting Docker service..._"
        )
        self.event_log.add(EventSeverity.ACTION, "Docker watchdog restart triggered")
        if self.executor.exists("systemctl"):
            command, args = "systemctl", ["restart", "docker"]
        else:
            command, args = "service", ["docker", "restart"]
        self.last_action = self.executor.run_background(
            command, args, timeout=Timeouts.SERVICE_RESTART,
            on_complete=self._on_restart_complete, name="docker-restart")
        return self.last_action

    def _on_restart_complete(self, result: CommandResult):
        if result.ok:
            logger.info("Docker service restarted")
            self.notifier.send("✅ *Docker service restarted*")
            self.event_log.add(EventSeverity.INFO, "Docker service restarted")
        else:
            logger.error(f"Docker service restart failed: {result.error}")
            self.notifier.send(f"❌ *Docker restart failed*\n\n`{result.error}`")
            self.event_log.add(EventSeverity.WARNING, f"Docker service restart failed: {result.error}")
