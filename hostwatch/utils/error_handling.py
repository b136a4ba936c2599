"""
Error Handling Utilities for hostwatch

A failing probe or remediation step must never stop the scheduling loop.
Scheduler jobs are wrapped with ``with_error_handling``; single risky reads
inside a job use ``safe_execute``. Every handled error is logged once with
its context and counted in a process-wide aggregator that the daily report
summarizes.

USAGE:
    from hostwatch.utils.error_handling import ErrorCategory, safe_execute

    with safe_execute("reading CPU temperature", ErrorCategory.RESOURCE, default_return=0.0) as result:
        result.value = hardware.cpu_temperature()
"""

import functools
import logging
import threading
import time
import traceback
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class HostwatchError(Exception):
    """Base class for errors raised by hostwatch components."""


class ErrorCategory(Enum):
    """Which subsystem an error came from."""
    CONTAINER = "container"         # Docker daemon / container runtime
    KERNEL = "kernel"               # Kernel log collection
    NETWORK = "network"             # Reachability checks
    STORAGE = "storage"             # RAID, SMART, volume usage
    COMMAND = "command"             # External command execution
    NOTIFICATION = "notification"   # Telegram delivery and reports
    CONFIG = "configuration"
    RESOURCE = "resource"           # Resource sampling and sensors
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"
    FATAL = "fatal"


LOG_LEVELS = {
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
    ErrorSeverity.FATAL: logging.CRITICAL,
}


@dataclass
class ErrorContext:
    """One handled error with where and when it happened."""
    error: Exception
    category: ErrorCategory
    severity: ErrorSeverity
    operation: str
    additional_context: Dict[str, Any] = field(default_factory=dict)
    thread_name: str = field(default_factory=lambda: threading.current_thread().name)
    stack_trace: str = ""

    def __post_init__(self):
        if not self.stack_trace:
            self.stack_trace = traceback.format_exc()

    @property
    def key(self) -> str:
        return f"{self.category.value}:{type(self.error).__name__}:{self.operation}"

    def format_log_message(self) -> str:
        lines = [
            f"ERROR [{self.severity.value.upper()}] in {self.operation}",
            f"  Category: {self.category.value}",
            f"  Type: {type(self.error).__name__}",
            f"  Message: {self.error}",
            f"  Thread: {self.thread_name}",
        ]
        for name, value in self.additional_context.items():
            lines.append(f"  {name}: {value}")
        # format_exc() outside an except block yields "NoneType: None"
        if self.stack_trace and not self.stack_trace.startswith("NoneType"):
            lines.append("  Stack Trace:")
            lines.extend(f"    {line}" for line in self.stack_trace.splitlines() if line.strip())
        return "\n".join(lines)


class ErrorAggregator:
    """
    Thread-safe tally of handled errors.

    A repeat of the same (category, type, operation) inside the dedup window
    only bumps its count; the first occurrence is kept.
    """

    def __init__(
        self,
        max_errors: int = 500,
        dedup_window_seconds: float = 60,
        clock: Callable[[], float] = time.time,
    ):
        self._errors: List[ErrorContext] = []
        self._counts: Dict[str, int] = {}
        self._last_seen: Dict[str, float] = {}
        self._lock = threading.Lock()
        self._max_errors = max_errors
        self._dedup_window = dedup_window_seconds
        self._clock = clock

    def add_error(self, context: ErrorContext) -> bool:
        """Returns False when ``context`` was folded into an earlier entry."""
        key = context.key
        now = self._clock()
        with self._lock:
            self._counts[key] = self._counts.get(key, 0) + 1
            last = self._last_seen.get(key)
            if last is not None and now - last < self._dedup_window:
                return False
            self._last_seen[key] = now
            self._errors.append(context)
            del self._errors[:-self._max_errors]
            return True

    def get_error_summary(self) -> Dict[str, Any]:
        with self._lock:
            by_category: Dict[str, int] = {}
            for key, count in self._counts.items():
                category = key.split(":", 1)[0]
                by_category[category] = by_category.get(category, 0) + count
            return {
                'total_errors': sum(self._counts.values()),
                'unique_errors': len(self._errors),
                'by_category': by_category,
                'deduplicated_counts': dict(self._counts),
            }

    def clear(self):
        with self._lock:
            self._errors.clear()
            self._counts.clear()
            self._last_seen.clear()


_global_aggregator = ErrorAggregator()


def get_error_aggregator() -> ErrorAggregator:
    return _global_aggregator


def determine_severity(error: Exception, category: ErrorCategory) -> ErrorSeverity:
    if isinstance(error, (SystemExit, KeyboardInterrupt)):
        return ErrorSeverity.FATAL
    if category == ErrorCategory.RESOURCE:
        return ErrorSeverity.CRITICAL
    # Missing binaries (zpool, smartctl, journalctl) are normal on many hosts
    if isinstance(error, FileNotFoundError):
        return ErrorSeverity.WARNING
    if 'timeout' in type(error).__name__.lower() or 'timeout' in str(error).lower():
        return ErrorSeverity.WARNING
    return ErrorSeverity.ERROR


def handle_error(
    error: Exception,
    operation: str,
    category: ErrorCategory = ErrorCategory.UNKNOWN,
    additional_context: Optional[Dict[str, Any]] = None,
) -> ErrorContext:
    """
    Log ``error`` with its context and record it in the global aggregator.

    Repeats inside the dedup window are logged on a single line.
    """
    context = ErrorContext(
        error=error,
        category=category,
        severity=determine_severity(error, category),
        operation=operation,
        additional_context=additional_context or {},
    )
    level = LOG_LEVELS[context.severity]
    if _global_aggregator.add_error(context):
        logger.log(level, context.format_log_message())
    else:
        logger.log(level, f"[DEDUPLICATED] {operation}: {type(error).__name__}: {error}")
    return context


class SafeResult:
    def __init__(self, default: Any):
        self.value = default
        self.error: Optional[ErrorContext] = None

    @property
    def success(self) -> bool:
        return self.error is None


@contextmanager
def safe_execute(
    operation: str,
    category: ErrorCategory = ErrorCategory.UNKNOWN,
    default_return: Any = None,
):
    """
    Run the ``with`` body; an exception is handled and ``value`` reset to ``default_return``.
    """
    result = SafeResult(default_return)
    try:
        yield result
    except Exception as e:
        result.error = handle_error(e, operation, category=category)
        result.value = default_return


def with_error_handling(
    category: ErrorCategory = ErrorCategory.UNKNOWN,
    operation: Optional[str] = None,
    default_return: Any = None,
):
    """
    Decorator: exceptions from the wrapped call are handled and ``default_return`` is returned.

    Usage:
        @with_error_handling(category=ErrorCategory.KERNEL, operation="kernel")
        def check_kernel():
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        op_name = operation or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                handle_error(e, op_name, category=category)
                return default_return

        return wrapper
    return decorator


def log_command_error(error: Exception, operation: str, **context) -> ErrorContext:
    """Log a command that could not be started."""
    return handle_error(error, operation, category=ErrorCategory.COMMAND, additional_context=context)


__all__ = [
    'HostwatchError',
    'ErrorCategory',
    'ErrorSeverity',
    'ErrorContext',
    'ErrorAggregator',
    'SafeResult',
    'get_error_aggregator',
    'handle_error',
    'safe_execute',
    'with_error_handling',
    'determine_severity',
    'log_command_error',
]
