"""
Event Logger - bounded in-memory log of notable monitoring events.

Watchdogs record what they saw and what they did here; reports read it back.
Only the most recent events are kept. When a file path is given, every event
is also appended to it as a JSON line.
"""

import json
import logging
import os
import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional

from .constants import Defaults

logger = logging.getLogger(__name__)


class EventSeverity(Enum):
    """Severity of a recorded event"""
    INFO = "info"
    WARNING = "warning"
    ACTION = "action"        # Autonomous remediation was performed
    CRITICAL = "critical"


@dataclass(frozen=True)
class MonitorEvent:
    """A single recorded event"""
    timestamp: float
    severity: EventSeverity
    message: str

    def to_dict(self) -> Dict:
        return {
            'timestamp': datetime.fromtimestamp(self.timestamp).isoformat(),
            'severity': self.severity.value,
            'message': self.message,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)


class EventLog:
    """
    Thread-safe ring buffer of MonitorEvents.

    Appending past ``max_events`` drops the oldest entry.
    """

    def __init__(
        self,
        max_events: int = Defaults.EVENT_LOG_SIZE,
        log_file_path: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._events: Deque[MonitorEvent] = deque(maxlen=max_events)
        self._lock = threading.Lock()
        self._clock = clock
        self.log_file_path = log_file_path

        if log_file_path:
            directory = os.path.dirname(log_file_path)
            if directory:
                os.makedirs(directory, exist_ok=True)

    def add(self, severity, message: str) -> MonitorEvent:
        """
        Record an event.

        Args:
            severity: EventSeverity or its string value (info, warning, action, critical)
            message: Short human-readable description
        """
        if not isinstance(severity, EventSeverity):
            severity = EventSeverity(severity)

        event = MonitorEvent(timestamp=self._clock(), severity=severity, message=message)
        with self._lock:
            self._events.append(event)
            if self.log_file_path:
                self._append_to_file(event)
        return event

    def _append_to_file(self, event: MonitorEvent):
        try:
            with open(self.log_file_path, 'a') as f:
                f.write(event.to_json() + '\n')
        except OSError as e:
            logger.error(f"Failed to append event to {self.log_file_path}: {e}")

    def get_events(self) -> List[MonitorEvent]:
        """Snapshot of the buffered events, oldest first."""
        with self._lock:
            return list(self._events)

    def get_recent(self, count: int = 10) -> List[MonitorEvent]:
        with self._lock:
            if count <= 0:
                return []
            return list(self._events)[-count:]

    def get_by_severity(self, severity: EventSeverity) -> List[MonitorEvent]:
        with self._lock:
            return [e for e in self._events if e.severity == severity]

    def clear(self):
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
