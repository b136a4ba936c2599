"""
Auto Restart - relieve critical RAM pressure by restarting the hungriest container.

AutoRestartPolicy rate-limits restarts per container over a rolling window.
RamCriticalHandler picks the container and runs the restart.
"""

import logging
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional, Sequence, Tuple

from ..constants import Defaults, Windows
from ..event_logger import EventLog, EventSeverity
from ..notifier import Notifier
from ..probes.docker_probe import ContainerInfo, DockerProbe

logger = logging.getLogger(__name__)


class AutoRestartPolicy:
    """
    Per-container restart budget.

    A container may be restarted while fewer than ``max_restarts`` restarts
    are recorded for it in the last ``window`` seconds. Records are only
    added after a restart was permitted and attempted.
    """

    def __init__(
        self,
        max_restarts: int = Defaults.MAX_RESTARTS_PER_HOUR,
        window: float = Windows.RESTART_WINDOW,
        retention: float = Windows.RESTART_RETENTION,
        clock: Callable[[], float] = time.time,
    ):
        if max_restarts <= 0:
            max_restarts = Defaults.MAX_RESTARTS_PER_HOUR
        self.max_restarts = max_restarts
        self.window = window
        self.retention = retention
        self._clock = clock
        self._lock = threading.Lock()
        self._restarts: Dict[str, Deque[float]] = {}

    def can_auto_restart(self, name: str) -> bool:
        now = self._clock()
        with self._lock:
            history = self._restarts.get(name)
            if not history:
                return True
            cutoff = now - self.window
            while history and history[0] < cutoff:
                history.popleft()
            return len(history) < self.max_restarts

    def record(self, name: str):
        with self._lock:
            self._restarts.setdefault(name, deque()).append(self._clock())

    def cleanup(self) -> int:
        """Drop records older than the retention period. Returns how many containers remain tracked."""
        cutoff = self._clock() - self.retention
        with self._lock:
            for name in list(self._restarts):
                history = self._restarts[name]
                while history and history[0] < cutoff:
                    history.popleft()
                if not history:
                    del self._restarts[name]
            return len(self._restarts)

    def restart_count(self, name: str) -> int:
        with self._lock:
            return len(self._restarts.get(name, ()))


class RamCriticalHandler:
    def __init__(
        self,
        notifier: Notifier,
        event_log: EventLog,
        probe: DockerProbe,
        policy: AutoRestartPolicy,
        ram_threshold: float = 98.0,
        memory_floor: float = Windows.CONTAINER_MEMORY_FLOOR,
    ):
        self.notifier = notifier
        self.event_log = event_log
        self.probe = probe
        self.policy = policy
        self.ram_threshold = ram_threshold
        self.memory_floor = memory_floor

    def find_candidate(self, containers: Sequence[ContainerInfo]) -> Optional[Tuple[str, float]]:
        """Running container using the most memory above the floor, as (name, percent)."""
        best: Optional[Tuple[str, float]] = None
        for container in containers:
            if not container.running:
                continue
            mem = self.probe.memory_percent(container.name)
            if mem is None or mem <= self.memory_floor:
                continue
            if best is None or mem > best[1]:
                best = (container.name, mem)
        return best

    def handle(self, ram_percent: float, containers: Sequence[ContainerInfo]) -> Optional[str]:
        """
        Restart the hungriest container when RAM is critical.

        Returns:
            The name of the restarted container (even if the restart failed),
            or None when nothing was attempted
        """
        if ram_percent < self.ram_threshold:
            return None

        candidate = self.find_candidate(containers)
        if candidate is None:
            logger.warning(f"RAM critical ({ram_percent:.1f}%) but no container above {self.memory_floor:.0f}% memory")
            return None

        name, mem = candidate
        if not self.policy.can_auto_restart(name):
            logger.warning(f"RAM critical, {name} already restarted {self.policy.max_restarts}x this hour, skipping")
            return None

        logger.warning(f"RAM critical ({ram_percent:.1f}%), restarting {name} ({mem:.1f}% mem)")
        error = self.probe.restart_container(name)
        self.policy.record(name)

        if error:
            logger.error(f"Auto-restart of {name} failed: {error}")
            self.notifier.send(
                f"❌ *Auto-restart failed*\n\n"
                f"RAM critical: `{ram_percent:.1f}%`\n"
                f"Container: `{name}`\n"
                f"Error: {error}"
            )
            self.event_log.add(EventSeverity.CRITICAL, f"Auto-restart failed: {name} ({error})")
            return name

        self.notifier.send(
            f"🔄 *Auto-restart done*\n\n"
            f"RAM was critical: `{ram_percent:.1f}%`\n"
            f"Restarted: `{name}` (`{mem:.1f}%` mem)\n\n"
            f"_Watching..._"
        )
        self.event_log.add(EventSeverity.ACTION, f"Auto-restart: {name} (RAM {ram_percent:.1f}%)")
        return name
