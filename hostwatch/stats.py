"""
Stats Collector - periodic host resource snapshots.

A background thread samples CPU, memory, swap, the two monitored volumes,
disk I/O, load, uptime and the top processes through psutil, and publishes
each sample as an immutable Stats value into a StatsStore. Watchdogs only
ever read whole snapshots.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from .constants import Defaults, Timeouts

logger = logging.getLogger(__name__)

try:
    import psutil
    PSUTIL_AVAILABLE = True
except ImportError:
    PSUTIL_AVAILABLE = False
    psutil = None


@dataclass(frozen=True)
class VolumeStats:
    """Usage of one mounted volume"""
    used: float = 0.0       # percent
    free: int = 0           # bytes


@dataclass(frozen=True)
class ProcInfo:
    name: str
    mem: float
    cpu: float


@dataclass(frozen=True)
class Stats:
    """One host snapshot. Replaced wholesale on every collection tick."""
    cpu: float = 0.0
    ram: float = 0.0
    ram_free_mb: int = 0
    ram_total_mb: int = 0
    swap: float = 0.0
    vol_ssd: VolumeStats = field(default_factory=VolumeStats)
    vol_hdd: VolumeStats = field(default_factory=VolumeStats)
    read_mbs: float = 0.0
    write_mbs: float = 0.0
    disk_util: float = 0.0
    load_1m: float = 0.0
    load_5m: float = 0.0
    load_15m: float = 0.0
    uptime: int = 0
    top_cpu: Tuple[ProcInfo, ...] = ()
    top_ram: Tuple[ProcInfo, ...] = ()
    timestamp: float = 0.0

    def to_dict(self) -> Dict:
        return {
            'cpu': self.cpu,
            'ram': self.ram,
            'ram_free_mb': self.ram_free_mb,
            'ram_total_mb': self.ram_total_mb,
            'swap': self.swap,
            'vol_ssd': {'used': self.vol_ssd.used, 'free': self.vol_ssd.free},
            'vol_hdd': {'used': self.vol_hdd.used, 'free': self.vol_hdd.free},
            'read_mbs': self.read_mbs,
            'write_mbs': self.write_mbs,
            'disk_util': self.disk_util,
            'load': [self.load_1m, self.load_5m, self.load_15m],
            'uptime': self.uptime,
            'top_cpu': [(p.name, p.cpu) for p in self.top_cpu],
            'top_ram': [(p.name, p.mem) for p in self.top_ram],
        }


class StatsStore:
    """Holds the latest Stats. Readers get the whole value, or None before the first sample."""

    def __init__(self):
        self._lock = threading.Lock()
        self._stats: Optional[Stats] = None

    def get(self) -> Optional[Stats]:
        with self._lock:
            return self._stats

    def set(self, stats: Stats):
        with self._lock:
            self._stats = stats

    @property
    def ready(self) -> bool:
        return self.get() is not None


class MetricsCollector:
    """
    Takes Stats snapshots with psutil.

    Disk throughput and utilisation are computed against the previous call,
    so the first snapshot reports zeros for them. ``collect()`` never raises:
    a failing sub-sample leaves its fields at zero.
    """

    def __init__(
        self,
        ssd_path: str,
        hdd_path: str,
        top_processes: int = Defaults.TOP_PROCESSES,
        clock: Callable[[], float] = time.time,
    ):
        self.ssd_path = ssd_path
        self.hdd_path = hdd_path
        self.top_processes = top_processes
        self._clock = clock
        self._last_io: Optional[Dict] = None
        self._last_io_time: Optional[float] = None

    @property
    def is_available(self) -> bool:
        return PSUTIL_AVAILABLE

    def collect(self) -> Stats:
        now = self._clock()
        if not PSUTIL_AVAILABLE:
            return Stats(timestamp=now)

        values: Dict = {'timestamp': now}

        try:
            values['cpu'] = psutil.cpu_percent(interval=None)
        except (psutil.Error, OSError) as e:
            logger.debug(f"cpu_percent failed: {e}")

        try:
            vm = psutil.virtual_memory()
            values['ram'] = vm.percent
            values['ram_free_mb'] = vm.available // 1024 // 1024
            values['ram_total_mb'] = vm.total // 1024 // 1024
        except (psutil.Error, OSError) as e:
            logger.debug(f"virtual_memory failed: {e}")

        try:
            values['swap'] = psutil.swap_memory().percent
        except (psutil.Error, OSError, RuntimeError) as e:
            logger.debug(f"swap_memory failed: {e}")

        try:
            values['load_1m'], values['load_5m'], values['load_15m'] = psutil.getloadavg()
        except (AttributeError, OSError) as e:
            logger.debug(f"getloadavg failed: {e}")

        try:
            values['uptime'] = max(int(now - psutil.boot_time()), 0)
        except (psutil.Error, OSError) as e:
            logger.debug(f"boot_time failed: {e}")

        values['vol_ssd'] = self._volume(self.ssd_path)
        values['vol_hdd'] = self._volume(self.hdd_path)

        read_mbs, write_mbs, util = self._disk_io(now)
        values['read_mbs'] = read_mbs
        values['write_mbs'] = write_mbs
        values['disk_util'] = util

        top_cpu, top_ram = self._top_processes()
        values['top_cpu'] = top_cpu
        values['top_ram'] = top_ram

        return Stats(**values)

    def _volume(self, path: str) -> VolumeStats:
        try:
            usage = psutil.disk_usage(path)
            return VolumeStats(used=usage.percent, free=usage.free)
        except (psutil.Error, OSError) as e:
            logger.debug(f"disk_usage({path}) failed: {e}")
            return VolumeStats()

    def _disk_io(self, now: float) -> Tuple[float, float, float]:
        """(read MB/s, write MB/s, max busy percent over all disks) since the last call."""
        try:
            current = psutil.disk_io_counters(perdisk=True) or {}
        except (psutil.Error, OSError, RuntimeError) as e:
            logger.debug(f"disk_io_counters failed: {e}")
            return 0.0, 0.0, 0.0

        read_mbs = write_mbs = max_util = 0.0
        if self._last_io is not None and self._last_io_time is not None:
            elapsed = now - self._last_io_time
            if elapsed > 0:
                read_bytes = write_bytes = 0
                for disk, counters in current.items():
                    prev = self._last_io.get(disk)
                    if prev is None:
                        continue
                    read_bytes += max(counters.read_bytes - prev.read_bytes, 0)
                    write_bytes += max(counters.write_bytes - prev.write_bytes, 0)
                    busy = getattr(counters, 'busy_time', None)
                    prev_busy = getattr(prev, 'busy_time', None)
                    if busy is not None and prev_busy is not None:
                        # busy_time is in ms: ms / (s * 1000) * 100
                        util = min((busy - prev_busy) / (elapsed * 10), 100.0)
                        max_util = max(max_util, util)
                read_mbs = read_bytes / elapsed / 1024 / 1024
                write_mbs = write_bytes / elapsed / 1024 / 1024

        self._last_io = current
        self._last_io_time = now
        return read_mbs, write_mbs, max_util

    def _top_processes(self) -> Tuple[Tuple[ProcInfo, ...], Tuple[ProcInfo, ...]]:
        procs: List[ProcInfo] = []
        try:
            for proc in psutil.process_iter(['name', 'memory_percent', 'cpu_percent']):
                info = proc.info
                name = info.get('name') or ''
                mem = info.get('memory_percent') or 0.0
                cpu = info.get('cpu_percent') or 0.0
                if name and (mem > 0.1 or cpu > 0.1):
                    procs.append(ProcInfo(name=name, mem=mem, cpu=cpu))
        except (psutil.Error, OSError) as e:
            logger.debug(f"process_iter failed: {e}")
            return (), ()

        limit = self.top_processes
        top_cpu = tuple(sorted(procs, key=lambda p: p.cpu, reverse=True)[:limit])
        top_ram = tuple(sorted(procs, key=lambda p: p.mem, reverse=True)[:limit])
        return top_cpu, top_ram


class StatsCollector:
    """Background thread publishing a MetricsCollector snapshot every ``interval`` seconds."""

    def __init__(self, collector: MetricsCollector, store: StatsStore, interval: float = Defaults.STATS_INTERVAL):
        self.collector = collector
        self.store = store
        self.interval = interval
        self._running = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        if self._running:
            return
        if not self.collector.is_available:
            logger.warning("psutil not installed, resource stats will read as zero")

        self._running = True
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._collect_loop, name="stats-collector", daemon=True)
        self._thread.start()
        logger.info(f"Stats collector started (interval: {self.interval}s)")

    def stop(self):
        self._running = False
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=Timeouts.THREAD_JOIN_DEFAULT)
        logger.info("Stats collector stopped")

    def collect_once(self) -> Stats:
        stats = self.collector.collect()
        self.store.set(stats)
        return stats

    def _collect_loop(self):
        while self._running:
            try:
                self.collect_once()
            except Exception as e:
                logger.error(f"Error in stats collector loop: {e}")
            self._stop_event.wait(self.interval)
