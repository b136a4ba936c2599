"""
Hardware Probe - CPU temperature and SMART disk health.
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from ..constants import Timeouts
from ..remediation import RemediationExecutor

logger = logging.getLogger(__name__)

try:
    import psutil
    PSUTIL_AVAILABLE = True
except ImportError:
    PSUTIL_AVAILABLE = False
    psutil = None

THERMAL_ZONE_PATH = "/sys/class/thermal/thermal_zone0/temp"
BLOCK_DIR = "/sys/block"

# Sensor chips that report the CPU package, in preference order
CPU_SENSORS = ("coretemp", "k10temp", "cpu_thermal", "soc_thermal", "acpitz")
DISK_PREFIXES = ("sd", "nvme", "hd", "vd")


def parse_smart_health(output: str) -> str:
    """Overall verdict from ``smartctl -H`` output: PASSED, FAILED! or OK when not stated."""
    health = "OK"
    for line in output.splitlines():
        if "PASSED" in line:
            health = "PASSED"
        elif "FAILED" in line:
            health = "FAILED!"
    return health


class HardwareProbe:
    def __init__(
        self,
        executor: Optional[RemediationExecutor] = None,
        thermal_path: str = THERMAL_ZONE_PATH,
        block_dir: str = BLOCK_DIR,
    ):
        self.executor = executor if executor is not None else RemediationExecutor()
        self.thermal_path = Path(thermal_path)
        self.block_dir = Path(block_dir)

    def cpu_temperature(self) -> float:
        """CPU temperature in degrees Celsius, 0.0 when no sensor is readable."""
        if PSUTIL_AVAILABLE and hasattr(psutil, "sensors_temperatures"):
            try:
                sensors = psutil.sensors_temperatures() or {}
            except (OSError, RuntimeError) as e:
                logger.debug(f"psutil sensors unavailable: {e}")
                sensors = {}
            for name in CPU_SENSORS:
                readings = sensors.get(name)
                if readings:
                    return max(r.current for r in readings)

        try:
            return int(self.thermal_path.read_text().strip()) / 1000.0
        except (OSError, ValueError):
            return 0.0

    def smart_devices(self, configured: Sequence[str] = ()) -> List[str]:
        """The configured devices, or every whole disk listed under /sys/block."""
        if configured:
            return list(configured)
        try:
            names = sorted(p.name for p in self.block_dir.iterdir())
        except OSError:
            return []
        return [n for n in names if n.startswith(DISK_PREFIXES)]

    def smart_health(self, device: str) -> str:
        """SMART verdict for one device; empty string when smartctl is missing or fails."""
        if not self.executor.exists("smartctl"):
            return ""
        path = device if device.startswith("/dev/") else f"/dev/{device}"
        result = self.executor.run("smartctl", ["-H", path], timeout=Timeouts.SMART_QUERY)
        # smartctl sets status bits even when it prints a verdict
        if not result.output and not result.ok:
            logger.debug(f"smartctl -H {path} failed: {result.error}")
            return ""
        return parse_smart_health(result.output)

    def failing_devices(self, configured: Sequence[str] = ()) -> List[str]:
        """Devices whose SMART verdict contains FAIL."""
        return [
            device for device in self.smart_devices(configured)
            if "FAIL" in self.smart_health(device).upper()
        ]
