"""
Probes - leaf producers of raw host signals.

Each probe wraps one external source (Docker daemon, kernel log, network,
RAID status, hardware sensors) and returns plain data; the watchdogs decide what it means.
"""

from .docker_probe import DockerProbe, ContainerInfo, ContainerProbeError, memory_percent_from_stats
from .kernel_log import KernelLogSource
from .network_probe import NetworkProbe
from .raid_probe import RaidProbe, parse_mdstat
from .hardware_probe import HardwareProbe, parse_smart_health

__all__ = [
    'DockerProbe',
    'ContainerInfo',
    'ContainerProbeError',
    'memory_percent_from_stats',
    'KernelLogSource',
    'NetworkProbe',
    'RaidProbe',
    'parse_mdstat',
    'HardwareProbe',
    'parse_smart_health',
]
