"""
hostwatch - autonomous host monitoring and alerting.

Watches system resources, the Docker runtime, the kernel log, network
reachability and RAID health of a single host, alerts one Telegram chat and
remediates a few well-defined failures on its own.
"""

__version__ = "1.0.0"

from .config.settings import Config, load_config
from .context import MonitorContext
from .event_logger import EventLog, EventSeverity, MonitorEvent
from .notifier import Notifier, QuietHours, RecordingNotifier, TelegramNotifier, create_notifier
from .scheduler import Scheduler

__all__ = [
    'Config',
    'load_config',
    'MonitorContext',
    'EventLog',
    'EventSeverity',
    'MonitorEvent',
    'Notifier',
    'QuietHours',
    'RecordingNotifier',
    'TelegramNotifier',
    'create_notifier',
    'Scheduler',
]
