"""
Stress Tracker - sustained high-usage episodes per resource.

An episode starts when a resource reaches its threshold and ends when it
drops below. The operator hears about it once, only after the episode has
lasted ``min_duration``, and once more when it ends. Counters feed the
periodic summary and are reset at report boundaries.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from ..constants import Windows
from ..event_logger import EventLog, EventSeverity
from ..notifier import Notifier
from ..utils.formatting import format_duration

logger = logging.getLogger(__name__)

RESOURCES = ("CPU", "RAM", "Swap", "SSD", "HDD")

# HDD stress is measured on disk I/O utilisation, not space
RESOURCE_LABELS = {
    "CPU": ("🧠", "Usage"),
    "RAM": ("💾", "Usage"),
    "Swap": ("🔄", "Usage"),
    "SSD": ("💿", "Usage"),
    "HDD": ("💾", "I/O"),
}


@dataclass
class ResourceStress:
    """Stress bookkeeping for one resource"""
    current_start: Optional[float] = None
    notified: bool = False
    stress_count: int = 0
    total_stress: float = 0.0
    longest_stress: float = 0.0

    @property
    def active(self) -> bool:
        return self.current_start is not None

    def to_dict(self) -> Dict:
        return {
            'active': self.active,
            'notified': self.notified,
            'stress_count': self.stress_count,
            'total_stress': self.total_stress,
            'longest_stress': self.longest_stress,
        }


@dataclass(frozen=True)
class StressResult:
    """Transitions produced by one evaluate() call"""
    started: bool = False
    ended: bool = False
    sustained_notify: bool = False
    duration: float = 0.0


class StressTracker:
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
        self._trackers: Dict[str, ResourceStress] = {}

    def evaluate(self, resource: str, current_value: float, threshold: float, min_duration: float) -> StressResult:
        """
        Feed one sample for ``resource``.

        Args:
            resource: One of CPU, RAM, Swap, SSD, HDD
            current_value: Current percentage
            threshold: Percentage at or above which the resource is stressed
            min_duration: Seconds an episode must last before the operator is told
        """
        now = self._clock()
        with self._lock:
            tracker = self._trackers.setdefault(resource, ResourceStress())

            if current_value >= threshold:
                started = False
                if tracker.current_start is None:
                    tracker.current_start = now
                    tracker.stress_count += 1
                    tracker.notified = False
                    started = True
                    self.event_log.add(
                        EventSeverity.INFO, f"{resource} above {threshold:.0f}% ({current_value:.0f}%)")

                duration = now - tracker.current_start
                if duration >= min_duration and not tracker.notified and not self.notifier.is_quiet_hours():
                    emoji, unit = RESOURCE_LABELS.get(resource, ("⚠️", "Usage"))
                    self.notifier.send(
                        f"{emoji} *{resource} stress*\n\n"
                        f"{unit}: `{current_value:.0f}%` for `{format_duration(duration)}`\n\n"
                        f"_Watching..._"
                    )
                    tracker.notified = True
                    self.event_log.add(
                        EventSeverity.WARNING,
                        f"{resource} high ({current_value:.0f}%) for {format_duration(duration)}")
                    logger.warning(f"{resource} stressed at {current_value:.0f}% for {format_duration(duration)}")
                    return StressResult(started=started, sustained_notify=True, duration=duration)

                return StressResult(started=started, duration=duration)

            if tracker.current_start is None:
                return StressResult()

            duration = now - tracker.current_start
            tracker.total_stress += duration
            tracker.longest_stress = max(tracker.longest_stress, duration)

            if tracker.notified:
                self.notifier.send(f"✅ *{resource} back to normal* after `{format_duration(duration)}`")
            self.event_log.add(EventSeverity.INFO, f"{resource} normalized after {format_duration(duration)}")

            tracker.current_start = None
            tracker.notified = False
            return StressResult(ended=True, duration=duration)

    def get_summary(self, min_longest: float = Windows.STRESS_SUMMARY_FLOOR) -> str:
        """One-line summary like ``CPU 2x `12m` · RAM 1x `6m```, skipping short episodes."""
        parts = []
        with self._lock:
            for resource in RESOURCES:
                tracker = self._trackers.get(resource)
                if tracker is None or tracker.stress_count == 0:
                    continue
                if tracker.longest_stress < min_longest:
                    continue
                entry = f"{resource} {tracker.stress_count}x"
                if tracker.longest_stress > 0:
                    entry += f" `{format_duration(tracker.longest_stress)}`"
                parts.append(entry)
        return " · ".join(parts)

    def reset_counters(self):
        """Zero the per-period counters; active episodes keep running."""
        with self._lock:
            for tracker in self._trackers.values():
                tracker.stress_count = 0
                tracker.longest_stress = 0.0
                tracker.total_stress = 0.0

    def get_state(self, resource: str) -> ResourceStress:
        with self._lock:
            tracker = self._trackers.get(resource, ResourceStress())
            return ResourceStress(**tracker.__dict__)
