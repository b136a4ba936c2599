"""
Centralized Constants Module for hostwatch.

Collects the thresholds, windows and timeouts shared by the watchdogs so the
values that drive alerting and remediation are auditable in one place.

Usage:
    from hostwatch.constants import Timeouts, Windows, Defaults

    executor.run("systemctl", ["restart", "docker"], timeout=Timeouts.SERVICE_RESTART)
"""

import os
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)


# =============================================================================
# ENVIRONMENT VARIABLE OVERRIDE UTILITIES
# =============================================================================

T = TypeVar('T')

ENV_PREFIX = "HOSTWATCH_"


def _env_override(
    env_var: str,
    default: T,
    converter: Callable[[str], T] = str,
    min_value: Optional[T] = None,
    max_value: Optional[T] = None,
) -> T:
    """Get a configuration value with environment variable override.

    Args:
        env_var: Environment variable name (will be prefixed with HOSTWATCH_)
        default: Default value if env var not set
        converter: Function to convert string to target type
        min_value: Optional minimum allowed value
        max_value: Optional maximum allowed value

    Returns:
        Configured value (from env var if valid, otherwise default)
    """
    full_env_var = f"{ENV_PREFIX}{env_var}"
    env_value = os.environ.get(full_env_var)

    if env_value is None:
        return default

    try:
        converted = converter(env_value)

        if min_value is not None and converted < min_value:
            logger.warning(f"{full_env_var}={env_value} below minimum {min_value}, using default")
            return default
        if max_value is not None and converted > max_value:
            logger.warning(f"{full_env_var}={env_value} above maximum {max_value}, using default")
            return default

        logger.info(f"Using {full_env_var}={converted} (override)")
        return converted

    except (ValueError, TypeError) as e:
        logger.warning(f"Invalid value for {full_env_var}: {e}, using default")
        return default


def _env_override_list(
    env_var: str,
    default: Tuple[str, ...],
    separator: str = ",",
) -> Tuple[str, ...]:
    """Get a list configuration value with environment variable override."""
    full_env_var = f"{ENV_PREFIX}{env_var}"
    env_value = os.environ.get(full_env_var)

    if env_value is None:
        return default

    items = tuple(item.strip() for item in env_value.split(separator) if item.strip())
    if not items:
        logger.warning(f"Empty list for {full_env_var}, using default")
        return default

    logger.info(f"Using {full_env_var}={items} (override)")
    return items


# =============================================================================
# TIMEOUT CONSTANTS
# =============================================================================

@dataclass(frozen=True)
class Timeouts:
    """
    Centralized timeout values in seconds. Every external command is bounded.
    """
    PING: float = 2.0                   # ping -W
    DNS_QUERY: float = 3.0              # getaddrinfo budget
    KERNEL_LOG: float = 5.0             # dmesg / journalctl
    PREVIOUS_BOOT_LOG: float = 10.0     # journalctl -b -1
    RAID_STATUS: float = 5.0            # zpool status -x
    CONTAINER_LIST: float = 15.0        # docker ps equivalent
    CONTAINER_STATS: float = 2.0        # per-container memory sample
    CONTAINER_RESTART: float = 30.0     # docker restart
    SMART_QUERY: float = 2.0            # smartctl -H per device
    SERVICE_RESTART: float = 60.0       # systemctl restart docker
    DOCKER_PRUNE: float = 300.0         # docker system prune
    REBOOT: float = 30.0                # reboot command
    HTTP_REQUEST: float = 15.0          # Telegram sendMessage

    THREAD_JOIN_DEFAULT: float = 5.0


# =============================================================================
# SLIDING WINDOWS AND ESCALATION THRESHOLDS
# =============================================================================

@dataclass(frozen=True)
class Windows:
    """Fixed windows used by the escalation and rate-limit state machines."""
    OOM_LOOP_WINDOW: float = 30 * 60.0          # OOM events counted inside 30 min
    OOM_LOOP_THRESHOLD: int = 5                 # OOMs in window that force a reboot
    RESTART_WINDOW: float = 60 * 60.0           # Auto-restart rate limit window
    RESTART_RETENTION: float = 2 * 60 * 60.0    # Records kept by the hourly cleanup
    RESTART_CLEANUP_INTERVAL: float = 60 * 60.0
    CRITICAL_CONTAINER_COOLDOWN: float = 10 * 60.0
    STRESS_SUMMARY_FLOOR: float = 5 * 60.0      # Shorter episodes hidden in summaries
    KERNEL_CONTEXT_LINES: int = 3               # Lines of context around a match
    KERNEL_CONTEXT_MAX_CHARS: int = 3000
    CONTAINER_MEMORY_FLOOR: float = 20.0        # % mem before a container is a restart candidate
    TEMPERATURE_ALERT_COOLDOWN: float = 30 * 60.0
    REPORT_GRACE: float = 5 * 60.0              # A missed report slot still fires inside this
    REPORT_EVENT_AGE: float = 24 * 60 * 60.0    # Older events are left out of reports
    REPORT_MAX_EVENTS: int = 20


# =============================================================================
# DEFAULTS APPLIED WHEN CONFIGURATION IS MISSING OR INVALID
# =============================================================================

@dataclass(frozen=True)
class Defaults:
    """Fallbacks for non-positive or missing configuration values."""
    PING_TARGETS: Tuple[str, ...] = _env_override_list('PING_TARGETS', ("1.1.1.1", "8.8.8.8"))
    DNS_HOST: str = _env_override('DNS_HOST', "google.com")
    NETWORK_FAILURE_THRESHOLD: int = 3
    NETWORK_COOLDOWN_MINUTES: int = 10
    NETWORK_FORCE_REBOOT_AFTER_MINUTES: int = 3
    RAID_COOLDOWN_MINUTES: int = 30
    MAX_RESTARTS_PER_HOUR: int = 3

    # Scheduler intervals (seconds)
    FAST_TICK: float = _env_override('FAST_TICK', 10.0, float, min_value=1.0)
    DISK_HISTORY_INTERVAL: float = 5 * 60.0
    TREND_INTERVAL: float = 5 * 60.0
    KERNEL_INTERVAL: float = 60.0
    KERNEL_MIN_INTERVAL: float = 10.0
    NETWORK_INTERVAL: float = 60.0
    NETWORK_MIN_INTERVAL: float = 10.0
    RAID_INTERVAL: float = 5 * 60.0
    RAID_MIN_INTERVAL: float = 30.0
    MONITOR_INTERVAL: float = 30.0
    STATS_INTERVAL: float = 5.0
    REPORT_CHECK_INTERVAL: float = 60.0

    # Bounded in-memory buffers
    EVENT_LOG_SIZE: int = 100
    MAX_TREND_POINTS: int = 72          # 6 hours at 5 min
    MAX_DISK_HISTORY: int = 2016        # 7 days at 5 min
    TOP_PROCESSES: int = 5

    # Telegram
    TELEGRAM_MAX_MESSAGE_LEN: int = 3900


__all__ = [
    'Timeouts',
    'Windows',
    'Defaults',
    'ENV_PREFIX',
]
