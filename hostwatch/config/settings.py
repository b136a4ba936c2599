"""
Configuration loading for hostwatch.

The configuration file is YAML (or JSON, which YAML also parses). Missing keys
take their defaults, ``HOSTWATCH_BOT_TOKEN`` / ``HOSTWATCH_ALLOWED_USER_ID``
override the credentials, and ``sanitize()`` clamps out-of-range values,
returning a human-readable list of the corrections it made.
"""

import copy
import json
import logging
import os
from dataclasses import dataclass, field, fields, is_dataclass, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from ..utils.error_handling import HostwatchError

logger = logging.getLogger(__name__)

DEFAULT_PATH_SSD = "/Volume1"
DEFAULT_PATH_HDD = "/Volume2"
DEFAULT_CONFIG_FILE = "config.yaml"

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class ConfigError(HostwatchError):
    """Raised when the configuration file cannot be read or parsed."""


@dataclass
class PathsConfig:
    ssd: str = DEFAULT_PATH_SSD
    hdd: str = DEFAULT_PATH_HDD


@dataclass
class QuietHoursConfig:
    enabled: bool = True
    start_hour: int = 23
    start_minute: int = 30
    end_hour: int = 7
    end_minute: int = 0


@dataclass
class ResourceConfig:
    enabled: bool = True
    warning_threshold: float = 90.0
    critical_threshold: float = 95.0


@dataclass
class DiskIOConfig:
    enabled: bool = True
    warning_threshold: float = 95.0


@dataclass
class SmartConfig:
    enabled: bool = True
    devices: List[str] = field(default_factory=list)     # empty: every disk under /sys/block


@dataclass
class NotificationsConfig:
    cpu: ResourceConfig = field(default_factory=ResourceConfig)
    ram: ResourceConfig = field(default_factory=ResourceConfig)
    swap: ResourceConfig = field(
        default_factory=lambda: ResourceConfig(enabled=False, warning_threshold=50.0, critical_threshold=80.0))
    disk_ssd: ResourceConfig = field(default_factory=ResourceConfig)
    disk_hdd: ResourceConfig = field(default_factory=ResourceConfig)
    disk_io: DiskIOConfig = field(default_factory=DiskIOConfig)
    smart: SmartConfig = field(default_factory=SmartConfig)


@dataclass
class ReportScheduleConfig:
    enabled: bool = True
    hour: int = 7
    minute: int = 30


@dataclass
class ReportsConfig:
    enabled: bool = True
    morning: ReportScheduleConfig = field(default_factory=ReportScheduleConfig)
    evening: ReportScheduleConfig = field(default_factory=lambda: ReportScheduleConfig(hour=18, minute=30))


@dataclass
class TemperatureConfig:
    enabled: bool = True
    warning_threshold: float = 70.0
    critical_threshold: float = 85.0


@dataclass
class StressTrackingConfig:
    enabled: bool = True
    duration_threshold_minutes: int = 2


@dataclass
class DockerWatchdogConfig:
    enabled: bool = True
    timeout_minutes: int = 2
    auto_restart_service: bool = True


@dataclass
class DockerPruneConfig:
    enabled: bool = True
    day: str = "sunday"
    hour: int = 4


@dataclass
class DockerAutoRestartConfig:
    enabled: bool = True
    max_restarts_per_hour: int = 3
    ram_threshold: float = 98.0


@dataclass
class DockerConfig:
    watchdog: DockerWatchdogConfig = field(default_factory=DockerWatchdogConfig)
    weekly_prune: DockerPruneConfig = field(default_factory=DockerPruneConfig)
    auto_restart_on_ram_critical: DockerAutoRestartConfig = field(default_factory=DockerAutoRestartConfig)


@dataclass
class IntervalsConfig:
    stats_seconds: int = 5
    monitor_seconds: int = 30
    critical_alert_cooldown_minutes: int = 30


@dataclass
class KernelWatchdogConfig:
    enabled: bool = True
    check_interval_seconds: int = 60


@dataclass
class NetworkWatchdogConfig:
    enabled: bool = True
    check_interval_seconds: int = 60
    targets: List[str] = field(default_factory=lambda: ["1.1.1.1", "8.8.8.8"])
    dns_host: str = "google.com"
    gateway: str = ""
    failure_threshold: int = 3
    cooldown_minutes: int = 10
    recovery_notify: bool = True
    force_reboot_on_down: bool = True
    force_reboot_after_minutes: int = 3


@dataclass
class RaidWatchdogConfig:
    enabled: bool = True
    check_interval_seconds: int = 300
    cooldown_minutes: int = 30
    recovery_notify: bool = True


@dataclass
class Config:
    """Top-level hostwatch configuration."""
    bot_token: str = ""
    allowed_user_id: int = 0
    paths: PathsConfig = field(default_factory=PathsConfig)
    timezone: str = "Europe/Rome"
    reports: ReportsConfig = field(default_factory=ReportsConfig)
    quiet_hours: QuietHoursConfig = field(default_factory=QuietHoursConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    temperature: TemperatureConfig = field(default_factory=TemperatureConfig)
    critical_containers: List[str] = field(default_factory=list)
    stress_tracking: StressTrackingConfig = field(default_factory=StressTrackingConfig)
    docker: DockerConfig = field(default_factory=DockerConfig)
    intervals: IntervalsConfig = field(default_factory=IntervalsConfig)
    kernel_watchdog: KernelWatchdogConfig = field(default_factory=KernelWatchdogConfig)
    network_watchdog: NetworkWatchdogConfig = field(default_factory=NetworkWatchdogConfig)
    raid_watchdog: RaidWatchdogConfig = field(default_factory=RaidWatchdogConfig)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Config':
        """Build a config from a (possibly partial) nested dictionary."""
        return _build(cls, data or {}, "")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def redacted(self) -> Dict[str, Any]:
        """Dictionary form with the bot token hidden, safe to log."""
        data = self.to_dict()
        if data.get('bot_token'):
            data['bot_token'] = "REDACTED"
        return data

    def apply_environment(self) -> None:
        """Override credentials from HOSTWATCH_* environment variables."""
        token = os.environ.get("HOSTWATCH_BOT_TOKEN")
        if token:
            self.bot_token = token.strip()

        user_id = os.environ.get("HOSTWATCH_ALLOWED_USER_ID")
        if user_id:
            try:
                self.allowed_user_id = int(user_id)
            except ValueError:
                logger.warning(f"Invalid HOSTWATCH_ALLOWED_USER_ID={user_id!r}, keeping {self.allowed_user_id}")

    def sanitize(self) -> List[str]:
        """Clamp invalid values in place and return the corrections made."""
        changes: List[str] = []

        def add(name: str, value: Any) -> None:
            changes.append(f"{name} -> {value}")

        def clamp(obj: Any, attr: str, name: str, low: float, high: float) -> None:
            value = getattr(obj, attr)
            clamped = min(max(value, low), high)
            if clamped != value:
                setattr(obj, attr, clamped)
                add(name, clamped)

        def trim(obj: Any, attr: str, name: str) -> None:
            value = getattr(obj, attr)
            if value != value.strip():
                setattr(obj, attr, value.strip())
                add(name, value.strip())

        trim(self, 'timezone', 'timezone')
        trim(self.paths, 'ssd', 'paths.ssd')
        trim(self.paths, 'hdd', 'paths.hdd')
        if not self.paths.ssd:
            self.paths.ssd = DEFAULT_PATH_SSD
            add('paths.ssd', self.paths.ssd)
        if not self.paths.hdd:
            self.paths.hdd = DEFAULT_PATH_HDD
            add('paths.hdd', self.paths.hdd)

        qh = self.quiet_hours
        clamp(qh, 'start_hour', 'quiet_hours.start_hour', 0, 23)
        clamp(qh, 'start_minute', 'quiet_hours.start_minute', 0, 59)
        clamp(qh, 'end_hour', 'quiet_hours.end_hour', 0, 23)
        clamp(qh, 'end_minute', 'quiet_hours.end_minute', 0, 59)
        if qh.enabled and (qh.start_hour, qh.start_minute) == (qh.end_hour, qh.end_minute):
            qh.enabled = False
            add('quiet_hours.enabled', False)

        reports = self.reports
        if reports.enabled and not reports.morning.enabled and not reports.evening.enabled:
            reports.morning.enabled = True
            add('reports.morning.enabled', True)
        for slot in ('morning', 'evening'):
            schedule = getattr(reports, slot)
            clamp(schedule, 'hour', f"reports.{slot}.hour", 0, 23)
            clamp(schedule, 'minute', f"reports.{slot}.minute", 0, 59)

        for name in ('cpu', 'ram', 'swap', 'disk_ssd', 'disk_hdd'):
            rc = getattr(self.notifications, name)
            prefix = f"notifications.{name}"
            clamp(rc, 'warning_threshold', f"{prefix}.warning_threshold", 0.0, 100.0)
            clamp(rc, 'critical_threshold', f"{prefix}.critical_threshold", 0.0, 100.0)
            if 0 < rc.critical_threshold < rc.warning_threshold:
                rc.critical_threshold = rc.warning_threshold
                add(f"{prefix}.critical_threshold", f"{rc.critical_threshold:.2f}")
        clamp(self.notifications.disk_io, 'warning_threshold',
              'notifications.disk_io.warning_threshold', 0.0, 100.0)
        devices = _normalize_list(self.notifications.smart.devices)
        if devices != self.notifications.smart.devices:
            self.notifications.smart.devices = devices
            add('notifications.smart.devices', 'normalized')

        temp = self.temperature
        clamp(temp, 'warning_threshold', 'temperature.warning_threshold', 0.0, 120.0)
        clamp(temp, 'critical_threshold', 'temperature.critical_threshold', 0.0, 120.0)
        if 0 < temp.critical_threshold < temp.warning_threshold:
            temp.critical_threshold = temp.warning_threshold
            add('temperature.critical_threshold', f"{temp.critical_threshold:.2f}")

        normalized = _normalize_list(self.critical_containers)
        if normalized != self.critical_containers:
            self.critical_containers = normalized
            add('critical_containers', 'normalized')

        clamp(self.stress_tracking, 'duration_threshold_minutes',
              'stress_tracking.duration_threshold_minutes', 1, 1440)

        docker = self.docker
        clamp(docker.watchdog, 'timeout_minutes', 'docker.watchdog.timeout_minutes', 1, 120)
        clamp(docker.weekly_prune, 'hour', 'docker.weekly_prune.hour', 0, 23)
        day = docker.weekly_prune.day.strip().lower()
        if day not in WEEKDAYS:
            day = "sunday"
        if day != docker.weekly_prune.day:
            docker.weekly_prune.day = day
            add('docker.weekly_prune.day', day)
        clamp(docker.auto_restart_on_ram_critical, 'ram_threshold',
              'docker.auto_restart_on_ram_critical.ram_threshold', 0.0, 100.0)
        clamp(docker.auto_restart_on_ram_critical, 'max_restarts_per_hour',
              'docker.auto_restart_on_ram_critical.max_restarts_per_hour', 0, 100)

        clamp(self.intervals, 'stats_seconds', 'intervals.stats_seconds', 1, 3600)
        clamp(self.intervals, 'monitor_seconds', 'intervals.monitor_seconds', 5, 3600)
        clamp(self.intervals, 'critical_alert_cooldown_minutes',
              'intervals.critical_alert_cooldown_minutes', 1, 1440)

        clamp(self.kernel_watchdog, 'check_interval_seconds',
              'kernel_watchdog.check_interval_seconds', 10, 3600)

        net = self.network_watchdog
        clamp(net, 'check_interval_seconds', 'network_watchdog.check_interval_seconds', 10, 3600)
        clamp(net, 'failure_threshold', 'network_watchdog.failure_threshold', 1, 20)
        clamp(net, 'cooldown_minutes', 'network_watchdog.cooldown_minutes', 1, 120)
        if net.force_reboot_after_minutes <= 0:
            net.force_reboot_after_minutes = 3
            add('network_watchdog.force_reboot_after_minutes', 3)
        else:
            clamp(net, 'force_reboot_after_minutes', 'network_watchdog.force_reboot_after_minutes', 1, 1440)
        trim(net, 'dns_host', 'network_watchdog.dns_host')
        trim(net, 'gateway', 'network_watchdog.gateway')
        if not net.dns_host:
            net.dns_host = "google.com"
            add('network_watchdog.dns_host', net.dns_host)
        targets = _normalize_list(net.targets)
        if not targets:
            net.targets = ["1.1.1.1", "8.8.8.8"]
            add('network_watchdog.targets', 'default')
        elif targets != net.targets:
            net.targets = targets
            add('network_watchdog.targets', 'normalized')

        clamp(self.raid_watchdog, 'check_interval_seconds', 'raid_watchdog.check_interval_seconds', 30, 7200)
        clamp(self.raid_watchdog, 'cooldown_minutes', 'raid_watchdog.cooldown_minutes', 1, 1440)

        return changes


def _normalize_list(items: List[str]) -> List[str]:
    """Trim entries, drop blanks and duplicates, keep order."""
    seen = set()
    result = []
    for item in items:
        value = str(item).strip()
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


def _build(cls, data: Dict[str, Any], prefix: str, default: Any = None):
    """
    Recursively build dataclass ``cls`` from ``data``; unknown keys are ignored.

    Missing keys keep the value of ``default`` (the field's own default for
    nested sections), not the bare class default.
    """
    if default is None:
        default = cls()
    if not isinstance(data, dict):
        logger.warning(f"Expected a mapping for '{prefix or 'config'}', using defaults")
        return copy.deepcopy(default)

    result = copy.deepcopy(default)
    for f in fields(cls):
        if f.name not in data or data[f.name] is None:
            continue
        value = data[f.name]
        name = f"{prefix}{f.name}"
        current = getattr(default, f.name)
        if is_dataclass(current):
            setattr(result, f.name, _build(type(current), value, f"{name}.", current))
        else:
            setattr(result, f.name, _coerce(value, current, name))
    return result


def _coerce(value: Any, default: Any, name: str) -> Any:
    """Coerce ``value`` to the type of ``default``; fall back to the default."""
    try:
        if isinstance(default, bool):
            if isinstance(value, str):
                return value.strip().lower() in ('1', 'true', 'yes', 'on')
            return bool(value)
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
        if isinstance(default, list):
            if isinstance(value, str):
                return [v for v in value.split(',')]
            return [str(v) for v in value]
        if isinstance(default, str):
            return str(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid value for {name}: {value!r}, using default {default!r}")
        return copy.deepcopy(default)
    return value


def load_config(path: Optional[Union[str, Path]] = None) -> Tuple[Config, List[str]]:
    """
    Load, override and sanitize the configuration.

    A missing file yields the defaults (credentials may still come from the
    environment). An unreadable or malformed file raises ConfigError.

    Returns:
        (config, corrections) where corrections lists every clamped value
    """
    path = Path(path or os.environ.get("HOSTWATCH_CONFIG", DEFAULT_CONFIG_FILE))

    data: Dict[str, Any] = {}
    if path.exists():
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        try:
            if path.suffix.lower() == ".json":
                data = json.loads(content) if content.strip() else {}
            else:
                data = yaml.safe_load(content) or {}
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot parse config file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        logger.info(f"Loaded configuration from {path}")
    else:
        logger.warning(f"Config file not found: {path}, using defaults")

    config = Config.from_dict(data)
    config.apply_environment()
    changes = config.sanitize()
    if changes:
        logger.warning(f"Config corrected: {', '.join(changes)}")

    logger.info(
        f"Configuration ready: ssd={config.paths.ssd} hdd={config.paths.hdd} "
        f"stats_interval={config.intervals.stats_seconds}s "
        f"monitor_interval={config.intervals.monitor_seconds}s"
    )
    return config, changes


def save_config(config: Config, path: Union[str, Path]) -> None:
    """Write the configuration back as YAML (or JSON for .json paths)."""
    path = Path(path)
    data = config.to_dict()
    if path.suffix.lower() == ".json":
        content = json.dumps(data, indent=2)
    else:
        content = yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    path.write_text(content, encoding="utf-8")
