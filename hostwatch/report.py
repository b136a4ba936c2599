"""
Scheduled Reports - the morning/evening digest sent to the chat.

A report slot fires on the first check inside its grace window and at most
once per day. The digest combines the latest Stats, the recent notable
events, the CPU/RAM sparklines, the stress summary and the count of handled
errors since the previous report.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .config.settings import NotificationsConfig, ReportsConfig, ReportScheduleConfig
from .constants import Windows
from .event_logger import EventSeverity, MonitorEvent
from .notifier import load_timezone
from .probes.docker_probe import ContainerInfo
from .stats import Stats
from .utils.formatting import format_bytes, format_ram, format_uptime, progress_bar, truncate

logger = logging.getLogger(__name__)

MORNING = "morning"
EVENING = "evening"

GREETINGS = {
    MORNING: "Good morning",
    EVENING: "Good evening",
}

EVENT_ICONS = {
    EventSeverity.INFO: "·",
    EventSeverity.WARNING: "~",
    EventSeverity.CRITICAL: "!",
    EventSeverity.ACTION: ">",
}

# Short-lived stress notices that would only clutter a digest
TRANSIENT_MARKERS = ("for 30s", "for 1m", "after 30s", "after 1m")

EVENT_MESSAGE_WIDTH = 28


class ReportSchedule:
    """Decides when the morning and evening reports are due."""

    def __init__(
        self,
        config: ReportsConfig,
        timezone: str = "",
        now: Optional[Callable[[], datetime]] = None,
        grace: float = Windows.REPORT_GRACE,
    ):
        self.config = config
        tz = load_timezone(timezone)
        self._now = now or (lambda: datetime.now(tz))
        self.grace = timedelta(seconds=grace)
        self._lock = threading.Lock()
        self._sent_on: Dict[str, Any] = {}
        self.last_report: Optional[datetime] = None

    def now(self) -> datetime:
        return self._now()

    def slots(self) -> List[Tuple[str, ReportScheduleConfig]]:
        if not self.config.enabled:
            return []
        slots = []
        if self.config.morning.enabled:
            slots.append((MORNING, self.config.morning))
        if self.config.evening.enabled:
            slots.append((EVENING, self.config.evening))
        return slots

    @staticmethod
    def _slot_time(now: datetime, slot: ReportScheduleConfig) -> datetime:
        return now.replace(hour=slot.hour, minute=slot.minute, second=0, microsecond=0)

    def due(self) -> Optional[str]:
        """Name of the slot whose window is open and not yet served today, else None."""
        now = self._now()
        with self._lock:
            for name, slot in self.slots():
                start = self._slot_time(now, slot)
                if start <= now < start + self.grace and self._sent_on.get(name) != now.date():
                    return name
        return None

    def mark_sent(self, name: str):
        now = self._now()
        with self._lock:
            self._sent_on[name] = now.date()
            self.last_report = now

    def next_report(self) -> Optional[datetime]:
        """Start of the next slot not yet served, or None when reports are off."""
        now = self._now()
        candidates = []
        with self._lock:
            for name, slot in self.slots():
                start = self._slot_time(now, slot)
                if start + self.grace <= now or self._sent_on.get(name) == now.date():
                    start += timedelta(days=1)
                candidates.append(start)
        return min(candidates) if candidates else None


def filter_significant_events(
    events: Sequence[MonitorEvent],
    now: float,
    max_age: float = Windows.REPORT_EVENT_AGE,
    limit: int = Windows.REPORT_MAX_EVENTS,
) -> List[MonitorEvent]:
    """The newest ``limit`` events younger than ``max_age``, without transient stress notices."""
    kept = [
        event for event in events
        if now - event.timestamp <= max_age
        and not any(marker in event.message for marker in TRANSIENT_MARKERS)
    ]
    return kept[-limit:] if limit > 0 else []


def health_status(
    stats: Stats,
    thresholds: NotificationsConfig,
    events: Sequence[MonitorEvent] = (),
) -> Tuple[str, str]:
    """
    Overall verdict for the report header.

    Critical when a critical event was logged or a value is at its critical
    threshold. Warning when a warning was logged or a value is close to its
    warning threshold.

    Returns:
        (icon, text)
    """
    severities = {event.severity for event in events}

    def at_critical(cfg, value: float) -> bool:
        return cfg.enabled and value >= cfg.critical_threshold

    if EventSeverity.CRITICAL in severities or any((
        at_critical(thresholds.cpu, stats.cpu),
        at_critical(thresholds.ram, stats.ram),
        at_critical(thresholds.disk_ssd, stats.vol_ssd.used),
        at_critical(thresholds.disk_hdd, stats.vol_hdd.used),
    )):
        return "⚠️", "Critical issues"

    def near_warning(cfg, value: float, margin: float) -> bool:
        return cfg.enabled and value > cfg.warning_threshold * margin

    if EventSeverity.WARNING in severities or any((
        near_warning(thresholds.cpu, stats.cpu, 0.9),
        near_warning(thresholds.ram, stats.ram, 0.95),
        near_warning(thresholds.disk_io, stats.disk_util, 0.95),
        near_warning(thresholds.disk_ssd, stats.vol_ssd.used, 1.0),
        near_warning(thresholds.disk_hdd, stats.vol_hdd.used, 1.0),
    )):
        return "👀", "Needs attention"

    return "✨", "All systems OK"


def format_error_summary(summary: Dict[str, Any]) -> str:
    """``3 (network 2, container 1)``, or empty when nothing was handled."""
    total = summary.get('total_errors', 0)
    if not total:
        return ""
    by_category = sorted(summary.get('by_category', {}).items(), key=lambda item: (-item[1], item[0]))
    detail = ", ".join(f"{name} {count}" for name, count in by_category)
    return f"{total} ({detail})" if detail else str(total)


@dataclass
class ReportData:
    """Everything one report is rendered from."""
    slot: str
    now: datetime
    stats: Stats
    thresholds: NotificationsConfig
    events: Sequence[MonitorEvent] = ()
    containers: Optional[Sequence[ContainerInfo]] = None
    stress_summary: str = ""
    cpu_graph: str = ""
    ram_graph: str = ""
    error_summary: str = ""


def render_report(data: ReportData) -> str:
    stats = data.stats
    icon, status = health_status(stats, data.thresholds, data.events)
    tz = data.now.tzinfo

    lines = [
        f"*{GREETINGS.get(data.slot, 'Report')}*",
        f"_{data.now.strftime('%a %d/%m')}_",
        "",
        f"{icon} {status}",
        "",
    ]

    if data.events:
        lines.append("*Events*")
        for event in data.events:
            at = datetime.fromtimestamp(event.timestamp, tz).strftime('%H:%M')
            mark = EVENT_ICONS.get(event.severity, "·")
            lines.append(f"`{at}` {mark} {truncate(event.message, EVENT_MESSAGE_WIDTH)}")
    else:
        lines.append("_Nothing to report_")
    lines.append("")

    lines.append("*Resources*")
    lines.append(f"CPU `{progress_bar(stats.cpu)}` {stats.cpu:.0f}%")
    lines.append(f"RAM `{progress_bar(stats.ram)}` {stats.ram:.0f}% ({format_ram(stats.ram_free_mb)} free)")
    if stats.swap > 5:
        lines.append(f"Swap `{stats.swap:.0f}%`")
    lines.append(f"SSD `{stats.vol_ssd.used:.0f}%` · {format_bytes(stats.vol_ssd.free)} free")
    lines.append(f"HDD `{stats.vol_hdd.used:.0f}%` · {format_bytes(stats.vol_hdd.free)} free")
    if data.cpu_graph or data.ram_graph:
        lines.append(f"📈 CPU {data.cpu_graph or '-'} · RAM {data.ram_graph or '-'}")

    extras = []
    if data.containers is not None:
        running = sum(1 for c in data.containers if c.running)
        extras.append(f"🐳 Containers: {running} running, {len(data.containers) - running} stopped")
    if data.stress_summary:
        extras.append(f"💨 {data.stress_summary}")
    if data.error_summary:
        extras.append(f"⚙️ Errors handled: {data.error_summary}")
    if extras:
        lines.append("")
        lines.extend(extras)

    lines.append("")
    lines.append(f"⏱ Up for {format_uptime(stats.uptime)}")
    return "\n".join(lines)
