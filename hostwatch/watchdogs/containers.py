"""
Container liveness - critical containers and running/stopped transitions.
"""

import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Sequence

from ..constants import Windows
from ..event_logger import EventLog, EventSeverity
from ..notifier import Notifier
from ..probes.docker_probe import ContainerInfo
from ..utils.formatting import format_duration

logger = logging.getLogger(__name__)


class CriticalContainerMonitor:
    """
    Alerts when a container the operator marked critical is missing or
    stopped. Alert-only: nothing is restarted. Each name is alerted at most
    once per ``cooldown`` seconds.
    """

    def __init__(
        self,
        notifier: Notifier,
        event_log: EventLog,
        cooldown: float = Windows.CRITICAL_CONTAINER_COOLDOWN,
        clock: Callable[[], float] = time.time,
    ):
        self.notifier = notifier
        self.event_log = event_log
        self.cooldown = cooldown
        self._clock = clock
        self._lock = threading.Lock()
        self._last_alert: Dict[str, float] = {}

    def check(self, critical_names: Sequence[str], containers: Sequence[ContainerInfo]) -> List[str]:
        """
        Returns:
            Names alerted on this call
        """
        if not critical_names:
            return []

        by_name = {c.name: c for c in containers}
        now = self._clock()
        alerted = []

        for name in critical_names:
            container = by_name.get(name)
            if container is not None and container.running:
                continue

            with self._lock:
                last = self._last_alert.get(name)
                if last is not None and now - last < self.cooldown:
                    continue
                self._last_alert[name] = now

            status = "not found" if container is None else "not running"
            logger.warning(f"Critical container {name} {status}")
            self.notifier.send(f"🚨 *Critical container down*\n\n📦 `{name}` is {status}")
            self.event_log.add(EventSeverity.CRITICAL, f"Critical container {name} down")
            alerted.append(name)

        return alerted

    def last_alert(self, name: str) -> Optional[float]:
        with self._lock:
            return self._last_alert.get(name)


class ContainerStateTracker:
    """
    Notifies on running -> stopped and stopped -> running transitions.

    The first listing only records states. A container that disappears from
    the listing is forgotten rather than reported as down.
    """

    def __init__(
        self,
        notifier: Notifier,
        event_log: EventLog,
        clock: Callable[[], float] = time.time,
    ):
        self.notifier = notifier
        self.event_log = event_log
        self._clock = clock
        self._lock = threading.Lock()
        self._last_states: Dict[str, bool] = {}
        self._down_since: Dict[str, float] = {}

    def update(self, containers: Optional[Sequence[ContainerInfo]]) -> None:
        # None means the listing failed; keep the previous states
        if containers is None:
            return

        now = self._clock()
        events = []
        with self._lock:
            current = {c.name: c.running for c in containers}
            for name, running in current.items():
                was_running = self._last_states.get(name)
                if was_running is None:
                    continue

                if was_running and not running:
                    self._down_since[name] = now
                    events.append((name, False, None))
                elif not was_running and running:
                    since = self._down_since.pop(name, None)
                    events.append((name, True, None if since is None else now - since))

            self._last_states = current

        for name, running, downtime in events:
            if not running:
                logger.warning(f"Container {name} stopped")
                self.notifier.send(
                    f"🔴 *Container DOWN*\n\n📦 `{name}`\n\n_The container has stopped unexpectedly._")
                self.event_log.add(EventSeverity.WARNING, f"Container stopped: {name}")
                continue

            message = f"🟢 *Container UP*\n\n📦 `{name}`"
            if downtime is not None:
                message += f"\n⏱ Downtime: `{format_duration(downtime)}`"
                self.event_log.add(
                    EventSeverity.INFO, f"Container recovered: {name} (down for {format_duration(downtime)})")
            else:
                self.event_log.add(EventSeverity.INFO, f"Container started: {name}")
            logger.info(f"Container {name} running again")
            self.notifier.send(message)

    def is_tracked(self, name: str) -> bool:
        with self._lock:
            return name in self._last_states
