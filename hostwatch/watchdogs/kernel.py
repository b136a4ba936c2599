"""
Kernel Watchdog - critical kernel events from dmesg/journalctl.

Detects OOM kills, panics/oopses, filesystems forced read-only, I/O errors
and hung tasks. For each event type only the last matching line is kept as
its dedup signature: a line already seen is never alerted twice. The very
first scan after startup only seeds signatures, so old ring-buffer content
does not page the operator on every restart.

Repeated OOM kills inside a short window are treated as an OOM loop and
escalate to a reboot (see OomLoopGuard).
"""

import logging
import re
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional, Pattern, Sequence, Tuple

from ..constants import Timeouts, Windows
from ..event_logger import EventLog, EventSeverity
from ..notifier import Notifier
from ..probes.kernel_log import KernelLogSource
from ..remediation import BackgroundAction, CommandResult, RemediationExecutor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KernelEventType:
    """A named family of kernel log lines matched by keywords."""
    name: str
    keywords: Tuple[str, ...]
    emoji: str

    def compile(self) -> Pattern:
        # Keywords are literal substrings, except those carrying ``.*``
        parts = [kw if ".*" in kw else re.escape(kw) for kw in self.keywords]
        return re.compile("|".join(parts), re.IGNORECASE)


KERNEL_EVENT_TYPES: Tuple[KernelEventType, ...] = (
    KernelEventType("OOM", (
        "out of memory",
        "oom-kill",
        "oom kill",
        "killed process",
        "memory cgroup out of memory",
        "oom_reaper",
    ), "💀"),
    KernelEventType("KernelPanic", (
        "kernel panic",
        "kernel bug",
        "bug: unable to handle",
        "oops:",
        "general protection fault",
        "rcu_sched self-detected stall",
    ), "🔥"),
    KernelEventType("FSReadOnly", (
        "remounting filesystem read-only",
        "remount read-only",
        "ext4_abort",
        "abort (dev",
        "forcing read-only",
    ), "📛"),
    KernelEventType("IOError", (
        "i/o error",
        "buffer i/o error",
        "blk_update_request: i/o error",
        "ata error",
        "medium error",
        "end_request: i/o error",
    ), "💽"),
    KernelEventType("HungTask", (
        "info: task .* blocked for more than",
        "hung_task_timeout",
    ), "⏳"),
)

OOM_PROCESS_PATTERN = re.compile(r"(?:Killed process|reaped process) \d+ \((.+?)\)")

PREVIOUS_BOOT_EVENT_TYPES = ("OOM", "KernelPanic")
PREVIOUS_BOOT_MAX_LINES = 5


def extract_oom_process(line: str) -> str:
    """Name of the process the OOM killer took, or ``unknown``."""
    match = OOM_PROCESS_PATTERN.search(line)
    if match:
        return match.group(1)
    return "unknown"


def context_window(
    lines: Sequence[str],
    index: int,
    radius: int = Windows.KERNEL_CONTEXT_LINES,
    max_chars: int = Windows.KERNEL_CONTEXT_MAX_CHARS,
) -> str:
    start = max(index - radius, 0)
    end = min(index + radius + 1, len(lines))
    text = "\n".join(lines[start:end])
    if len(text) > max_chars:
        text = text[:max_chars] + "\n..."
    return text


# ==========================================================================
# OOM loop escalation
# ==========================================================================

class OomLoopGuard:
    """
    Reboots the host when OOM kills repeat.

    Every OOM event is recorded; once ``threshold`` of them fall inside
    ``window`` seconds the record is cleared, the operator is warned
    (regardless of quiet hours) and ``reboot`` is issued in the background.
    """

    def __init__(
        self,
        notifier: Notifier,
        event_log: EventLog,
        executor: RemediationExecutor,
        window: float = Windows.OOM_LOOP_WINDOW,
        threshold: int = Windows.OOM_LOOP_THRESHOLD,
        clock: Callable[[], float] = time.time,
    ):
        self.notifier = notifier
        self.event_log = event_log
        self.executor = executor
        self.window = window
        self.threshold = threshold
        self._clock = clock
        self._lock = threading.Lock()
        self._events: Deque[float] = deque()
        self.last_action: Optional[BackgroundAction] = None

    def record(self) -> bool:
        """Record one OOM kill. Returns True when this one triggered a reboot."""
        now = self._clock()
        with self._lock:
            self._events.append(now)
            cutoff = now - self.window
            while self._events and self._events[0] < cutoff:
                self._events.popleft()

            count = len(self._events)
            if count < self.threshold:
                logger.info(f"OOM kill recorded ({count}/{self.threshold} in {self.window / 60:.0f}m)")
                return False

            self._events.clear()

        logger.critical(f"OOM loop detected: {count} kills in {self.window / 60:.0f}m, rebooting")
        self.event_log.add(EventSeverity.CRITICAL, f"OOM loop: {count} kills in {self.window / 60:.0f}m, rebooting")
        self.notifier.send(
            f"🔁 *OOM loop detected*\n\n"
            f"`{count}` OOM kills in `{self.window / 60:.0f}m`\n\n"
            f"_Rebooting the host..._",
            bypass_quiet_hours=True,
        )
        self.last_action = self.executor.run_background(
            "reboot", timeout=Timeouts.REBOOT, on_complete=self._on_reboot_complete, name="oom-reboot")
        return True

    def _on_reboot_complete(self, result: CommandResult):
        if result.ok:
            logger.info("Reboot command issued")
        else:
            logger.error(f"Reboot failed: {result.error}")

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._events)


# ==========================================================================
# Kernel watchdog
# ==========================================================================

class KernelWatchdog:
    def __init__(
        self,
        notifier: Notifier,
        event_log: EventLog,
        source: Optional[KernelLogSource] = None,
        oom_guard: Optional[OomLoopGuard] = None,
        event_types: Sequence[KernelEventType] = KERNEL_EVENT_TYPES,
    ):
        """
        Args:
            notifier: Where alerts go (always bypassing quiet hours)
            event_log: Operational event log
            source: Kernel log source used by check()
            oom_guard: Receives every new OOM event
            event_types: Event families to match
        """
        self.notifier = notifier
        self.event_log = event_log
        self.source = source
        self.oom_guard = oom_guard
        self.event_types = tuple(event_types)
        self._patterns: Dict[str, Pattern] = {et.name: et.compile() for et in self.event_types}
        self._lock = threading.Lock()
        self._last_signature: Dict[str, str] = {}
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def check(self) -> List[str]:
        """Pull fresh lines from the kernel log and scan them."""
        if self.source is None:
            return []
        lines = self.source.tail()
        if not lines:
            return []
        return self.scan(lines)

    def scan(self, lines: Sequence[str]) -> List[str]:
        """
        Scan kernel log lines for new critical events.

        Returns:
            Names of the event types that alerted on this scan
        """
        alerts: List[Tuple[KernelEventType, str, str]] = []

        with self._lock:
            first_scan = not self._initialized
            for event_type in self.event_types:
                pattern = self._patterns[event_type.name]
                last_index = -1
                for i, line in enumerate(lines):
                    if pattern.search(line):
                        last_index = i
                if last_index < 0:
                    continue

                last_line = lines[last_index].strip()
                if not last_line:
                    continue

                if first_scan:
                    self._last_signature[event_type.name] = last_line
                    continue

                if self._last_signature.get(event_type.name) == last_line:
                    continue
                self._last_signature[event_type.name] = last_line
                alerts.append((event_type, last_line, context_window(lines, last_index)))

            self._initialized = True

        if first_scan:
            logger.info(f"Kernel watchdog baseline seeded ({len(self._last_signature)} event types seen)")

        for event_type, line, context in alerts:
            self._alert(event_type, line, context)

        return [event_type.name for event_type, _, _ in alerts]

    def _alert(self, event_type: KernelEventType, line: str, context: str):
        logger.critical(f"Kernel event {event_type.name}: {line}")
        self.event_log.add(EventSeverity.CRITICAL, f"{event_type.name} detected")

        if event_type.name == "OOM":
            if self.oom_guard is not None:
                self.oom_guard.record()
            process = extract_oom_process(line)
            self.notifier.send(
                f"{event_type.emoji} *OOM Killer*\n\n"
                f"Process killed: `{process}`",
                bypass_quiet_hours=True,
            )
            return

        self.notifier.send(
            f"{event_type.emoji} *Kernel: {event_type.name}*\n\n"
            f"```\n{context}\n```",
            bypass_quiet_hours=True,
        )

    def check_previous_boot(self) -> Optional[str]:
        """
        Look for OOM/panic lines in the previous boot's kernel log.

        Returns:
            A crash report to send once at startup, or None
        """
        if self.source is None:
            return None
        lines = self.source.previous_boot()
        if not lines:
            return None

        patterns = [self._patterns[name] for name in PREVIOUS_BOOT_EVENT_TYPES if name in self._patterns]
        found = [
            line.strip() for line in lines
            if line.strip() and any(p.search(line) for p in patterns)
        ]
        if not found:
            return None

        found = found[-PREVIOUS_BOOT_MAX_LINES:]
        self.event_log.add(EventSeverity.CRITICAL, "Previous boot ended with kernel errors")
        return (
            "⚠️ *Previous boot crash report*\n\n"
            "```\n" + "\n".join(found) + "\n```"
        )
