"""
Configuration Module for hostwatch.

Provides the typed configuration tree, YAML/JSON loading with defaults,
environment overrides for credentials and value sanitization.
"""

from .settings import (
    Config,
    ConfigError,
    PathsConfig,
    QuietHoursConfig,
    ResourceConfig,
    DiskIOConfig,
    NotificationsConfig,
    StressTrackingConfig,
    DockerConfig,
    DockerWatchdogConfig,
    DockerPruneConfig,
    DockerAutoRestartConfig,
    IntervalsConfig,
    KernelWatchdogConfig,
    NetworkWatchdogConfig,
    RaidWatchdogConfig,
    load_config,
    save_config,
)

__all__ = [
    'Config',
    'ConfigError',
    'PathsConfig',
    'QuietHoursConfig',
    'ResourceConfig',
    'DiskIOConfig',
    'NotificationsConfig',
    'StressTrackingConfig',
    'DockerConfig',
    'DockerWatchdogConfig',
    'DockerPruneConfig',
    'DockerAutoRestartConfig',
    'IntervalsConfig',
    'KernelWatchdogConfig',
    'NetworkWatchdogConfig',
    'RaidWatchdogConfig',
    'load_config',
    'save_config',
]
