"""
Watchdogs - per-signal state machines that decide when to alert or act.
"""

from .stress import StressTracker, StressResult, ResourceStress, RESOURCES
from .kernel import (
    KernelWatchdog,
    KernelEventType,
    OomLoopGuard,
    KERNEL_EVENT_TYPES,
    extract_oom_process,
)
from .network import NetworkWatchdog, NetworkState
from .raid import RaidWatchdog
from .docker import DockerWatchdog
from .containers import CriticalContainerMonitor, ContainerStateTracker
from .auto_restart import AutoRestartPolicy, RamCriticalHandler
from .thresholds import CriticalThresholdMonitor
from .trends import TrendRecorder, TrendPoint, DiskPoint
from .prune import WeeklyPrune
from .temperature import TemperatureWatchdog

__all__ = [
    'StressTracker',
    'StressResult',
    'ResourceStress',
    'RESOURCES',
    'KernelWatchdog',
    'KernelEventType',
    'OomLoopGuard',
    'KERNEL_EVENT_TYPES',
    'extract_oom_process',
    'NetworkWatchdog',
    'NetworkState',
    'RaidWatchdog',
    'DockerWatchdog',
    'CriticalContainerMonitor',
    'ContainerStateTracker',
    'AutoRestartPolicy',
    'RamCriticalHandler',
    'CriticalThresholdMonitor',
    'TrendRecorder',
    'TrendPoint',
    'DiskPoint',
    'WeeklyPrune',
    'TemperatureWatchdog',
]
