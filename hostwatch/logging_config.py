"""
Logging Configuration for hostwatch.

Sets up the root handlers once at startup: colored text or JSON lines, to
the console and optionally a file. Each hostwatch package area can be
muted to WARNING, and verbose (DEBUG) output can be flipped at runtime.

Usage:
    from hostwatch.logging_config import configure_from_environment, toggle_verbose

    configure_from_environment(verbose=args.verbose)
    signal.signal(signal.SIGUSR1, lambda *_: toggle_verbose())
"""

import os
import sys
import json
import logging
import threading
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any, Set
from dataclasses import dataclass, field


class FeatureArea(Enum):
    """hostwatch package areas, valued by their logger name below ``hostwatch.``"""
    STATS = "stats"
    PROBES = "probes"
    WATCHDOGS = "watchdogs"
    SCHEDULER = "scheduler"
    NOTIFIER = "notifier"
    REMEDIATION = "remediation"
    CONFIG = "config"
    REPORT = "report"


# Libraries that log every HTTP request at DEBUG
NOISY_LOGGERS = ("urllib3", "docker", "requests")


@dataclass
class LoggingState:
    verbose: bool = False
    trace: bool = False
    log_file: Optional[str] = None
    console_enabled: bool = True
    json_format: bool = False
    enabled_features: Set[FeatureArea] = field(default_factory=lambda: set(FeatureArea))
    initialized: bool = False
    lock: threading.RLock = field(default_factory=threading.RLock)


_state = LoggingState()


class HostwatchFormatter(logging.Formatter):
    """``time LEVEL [area] message`` lines, or one JSON object per record."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33;1m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[31;1m',
    }
    RESET = '\033[0m'

    def __init__(self, use_colors: bool = True, json_format: bool = False):
        super().__init__()
        self.use_colors = use_colors and sys.stdout.isatty()
        self.json_format = json_format

    @staticmethod
    def feature_of(logger_name: str) -> str:
        # hostwatch.watchdogs.kernel -> watchdogs
        parts = logger_name.split('.')
        if parts[0] == 'hostwatch':
            return parts[1] if len(parts) > 1 else 'core'
        return parts[0]

    def format(self, record: logging.LogRecord) -> str:
        feature = self.feature_of(record.name)
        if self.json_format:
            data = {
                'timestamp': datetime.fromtimestamp(record.created).isoformat(),
                'level': record.levelname,
                'logger': record.name,
                'feature': feature,
                'message': record.getMessage(),
            }
            if record.exc_info:
                data['exception'] = self.formatException(record.exc_info)
            return json.dumps(data)

        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]
        level = f"{record.levelname:8}"
        if self.use_colors:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"
        line = f"{timestamp} {level} {'[' + feature + ']':20} {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _base_level() -> int:
    return logging.DEBUG if _state.verbose else logging.INFO


def _apply_levels():
    base = _base_level()
    root = logging.getLogger()
    root.setLevel(base)
    for handler in root.handlers:
        handler.setLevel(base)
    for feature in FeatureArea:
        level = base if feature in _state.enabled_features else logging.WARNING
        logging.getLogger(f"hostwatch.{feature.value}").setLevel(level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if _state.trace else logging.WARNING)


def setup_logging(
    verbose: bool = False,
    trace: bool = False,
    log_file: Optional[str] = None,
    console: bool = True,
    json_format: bool = False,
    features: Optional[Set[FeatureArea]] = None,
) -> None:
    """
    Replace the root handlers.

    Args:
        verbose: DEBUG for hostwatch loggers
        trace: Verbose, plus DEBUG for the HTTP and Docker client libraries
        log_file: Also append to this file
        console: Write to stdout
        json_format: One JSON object per line instead of text
        features: Areas logged at the base level; the rest only log WARNING and up
    """
    with _state.lock:
        _state.verbose = verbose or trace
        _state.trace = trace
        _state.log_file = log_file
        _state.console_enabled = console
        _state.json_format = json_format
        _state.enabled_features = set(features) if features is not None else set(FeatureArea)

        root = logging.getLogger()
        for handler in root.handlers[:]:
            root.removeHandler(handler)

        if console:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(HostwatchFormatter(use_colors=True, json_format=json_format))
            root.addHandler(handler)

        if log_file:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(log_file)
            handler.setFormatter(HostwatchFormatter(use_colors=False, json_format=json_format))
            root.addHandler(handler)

        _apply_levels()
        _state.initialized = True


def set_verbose(enabled: bool) -> None:
    """Switch DEBUG output on or off without touching the handlers."""
    with _state.lock:
        _state.verbose = enabled or _state.trace
        _apply_levels()


def toggle_verbose() -> bool:
    """Flip verbose mode. Returns the new setting."""
    with _state.lock:
        set_verbose(not _state.verbose)
        return _state.verbose


def get_logging_state() -> Dict[str, Any]:
    with _state.lock:
        return {
            'verbose': _state.verbose,
            'trace': _state.trace,
            'log_file': _state.log_file,
            'console_enabled': _state.console_enabled,
            'json_format': _state.json_format,
            'enabled_features': sorted(f.value for f in _state.enabled_features),
            'initialized': _state.initialized,
        }


def _env_flag(name: str) -> bool:
    return os.environ.get(name, '').lower() in ('1', 'true', 'yes')


def configure_from_environment(**overrides) -> None:
    """Configure logging from HOSTWATCH_* environment variables.

    Keyword arguments (e.g. from the command line) take precedence when set.
    """
    features = set(FeatureArea)
    for name in os.environ.get('HOSTWATCH_LOG_DISABLE_FEATURES', '').split(','):
        name = name.strip().lower()
        if not name:
            continue
        try:
            features.discard(FeatureArea(name))
        except ValueError:
            logging.getLogger(__name__).warning(f"Unknown log feature '{name}' ignored")

    settings = {
        'verbose': _env_flag('HOSTWATCH_VERBOSE'),
        'trace': _env_flag('HOSTWATCH_TRACE'),
        'log_file': os.environ.get('HOSTWATCH_LOG_FILE'),
        'console': not _env_flag('HOSTWATCH_LOG_NO_CONSOLE'),
        'json_format': _env_flag('HOSTWATCH_LOG_JSON'),
        'features': features,
    }
    for key, value in overrides.items():
        if value is not None and value is not False:
            settings[key] = value

    setup_logging(**settings)


__all__ = [
    'FeatureArea',
    'HostwatchFormatter',
    'setup_logging',
    'configure_from_environment',
    'set_verbose',
    'toggle_verbose',
    'get_logging_state',
]
