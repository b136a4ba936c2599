"""
Scheduler - the autonomous manager.

One supervising thread owns every periodic job. It sleeps on the shutdown
event until the earliest job is due, then runs the due jobs one after
another to completion. A job that comes due while another is running fires
once when the running one finishes; missed intervals are not replayed.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .constants import Defaults, Timeouts
from .context import MonitorContext
from .utils.error_handling import ErrorCategory, with_error_handling

logger = logging.getLogger(__name__)


@dataclass
class Job:
    name: str
    interval: float
    handler: Callable[[], object]
    next_due: float = 0.0
    runs: int = 0


# Job name -> (MonitorContext method, error category)
JOB_HANDLERS: Dict[str, tuple] = {
    'fast_tick': ('run_fast_tick', ErrorCategory.RESOURCE),
    'monitor': ('run_monitor_tick', ErrorCategory.RESOURCE),
    'disk_history': ('run_disk_history', ErrorCategory.STORAGE),
    'trend': ('run_trend', ErrorCategory.RESOURCE),
    'kernel': ('run_kernel_check', ErrorCategory.KERNEL),
    'network': ('run_network_check', ErrorCategory.NETWORK),
    'raid': ('run_raid_check', ErrorCategory.STORAGE),
    'report': ('run_report', ErrorCategory.NOTIFICATION),
}


def clamp_interval(seconds: float, minimum: float, default: float) -> float:
    """Intervals below ``minimum`` fall back to ``default``."""
    if seconds < minimum:
        return default
    return float(seconds)


def job_intervals(context: MonitorContext) -> Dict[str, float]:
    cfg = context.config
    return {
        'fast_tick': Defaults.FAST_TICK,
        'monitor': float(cfg.intervals.monitor_seconds) if cfg.intervals.monitor_seconds > 0
        else Defaults.MONITOR_INTERVAL,
        'disk_history': Defaults.DISK_HISTORY_INTERVAL,
        'trend': Defaults.TREND_INTERVAL,
        'kernel': clamp_interval(
            cfg.kernel_watchdog.check_interval_seconds, Defaults.KERNEL_MIN_INTERVAL, Defaults.KERNEL_INTERVAL),
        'network': clamp_interval(
            cfg.network_watchdog.check_interval_seconds, Defaults.NETWORK_MIN_INTERVAL, Defaults.NETWORK_INTERVAL),
        'raid': clamp_interval(
            cfg.raid_watchdog.check_interval_seconds, Defaults.RAID_MIN_INTERVAL, Defaults.RAID_INTERVAL),
        'report': Defaults.REPORT_CHECK_INTERVAL,
    }


class Scheduler:
    def __init__(self, context: MonitorContext, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            context: Owner of the watchdogs the jobs drive
            clock: Monotonic time source for job deadlines
        """
        self.context = context
        self._clock = clock
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._running = False

        intervals = job_intervals(context)
        self.jobs: Dict[str, Job] = {}
        for name, (method, category) in JOB_HANDLERS.items():
            handler = with_error_handling(category=category, operation=name)(getattr(context, method))
            self.jobs[name] = Job(name=name, interval=intervals[name], handler=handler)

    def start(self):
        with self._lock:
            if self._running:
                logger.warning("Scheduler already running")
                return
            self._running = True
            self._stop_event.clear()

        self._log_enabled_watchdogs()
        now = self._clock()
        for job in self.jobs.values():
            job.next_due = now + job.interval

        self._thread = threading.Thread(target=self._run_loop, name="hostwatch-scheduler", daemon=True)
        self._thread.start()
        logger.info("Scheduler started")

    def stop(self):
        with self._lock:
            if not self._running:
                return
            self._running = False
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=Timeouts.THREAD_JOIN_DEFAULT)
        logger.info("Scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    def _log_enabled_watchdogs(self):
        cfg = self.context.config
        if cfg.kernel_watchdog.enabled:
            logger.info(f"Kernel watchdog every {self.jobs['kernel'].interval:.0f}s")
        if cfg.network_watchdog.enabled:
            logger.info(f"Network watchdog every {self.jobs['network'].interval:.0f}s")
        if cfg.raid_watchdog.enabled:
            logger.info(f"RAID watchdog every {self.jobs['raid'].interval:.0f}s")

    def _run_loop(self):
        while not self._stop_event.is_set():
            delay = max(self.next_deadline() - self._clock(), 0.0)
            if self._stop_event.wait(delay):
                break
            self.run_due()

    def next_deadline(self) -> float:
        return min(job.next_due for job in self.jobs.values())

    def run_due(self) -> List[str]:
        """
        Run every job whose deadline has passed, in declaration order.

        Returns:
            Names of the jobs that ran
        """
        ran = []
        for job in self.jobs.values():
            if self._stop_event.is_set():
                break
            now = self._clock()
            if job.next_due > now:
                continue

            job.handler()
            job.runs += 1
            ran.append(job.name)

            next_due = job.next_due + job.interval
            after = self._clock()
            if next_due <= after:
                next_due = after + job.interval
            job.next_due = next_due
        return ran

    def run_job(self, name: str):
        """Run one job immediately, outside its schedule."""
        return self.jobs[name].handler()
