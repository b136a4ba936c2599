"""
Trend Recorder - small in-memory history of CPU/RAM and disk usage.
"""

import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, List

from ..constants import Defaults
from ..stats import Stats
from ..utils.formatting import mini_graph


@dataclass(frozen=True)
class TrendPoint:
    timestamp: float
    cpu: float
    ram: float


@dataclass(frozen=True)
class DiskPoint:
    timestamp: float
    ssd_used: float
    hdd_used: float


class TrendRecorder:
    def __init__(
        self,
        max_trend_points: int = Defaults.MAX_TREND_POINTS,
        max_disk_points: int = Defaults.MAX_DISK_HISTORY,
    ):
        self._lock = threading.Lock()
        self._trend: Deque[TrendPoint] = deque(maxlen=max_trend_points)
        self._disk: Deque[DiskPoint] = deque(maxlen=max_disk_points)

    def record_trend(self, stats: Stats) -> TrendPoint:
        point = TrendPoint(stats.timestamp, stats.cpu, stats.ram)
        with self._lock:
            self._trend.append(point)
        return point

    def record_disk(self, stats: Stats) -> DiskPoint:
        point = DiskPoint(stats.timestamp, stats.vol_ssd.used, stats.vol_hdd.used)
        with self._lock:
            self._disk.append(point)
        return point

    def trend(self) -> List[TrendPoint]:
        with self._lock:
            return list(self._trend)

    def disk_history(self) -> List[DiskPoint]:
        with self._lock:
            return list(self._disk)

    def cpu_graph(self, max_points: int = 12) -> str:
        return mini_graph((p.cpu for p in self.trend()), max_points)

    def ram_graph(self, max_points: int = 12) -> str:
        return mini_graph((p.ram for p in self.trend()), max_points)
