"""
Utility modules for hostwatch.

Provides common utilities including:
- Error handling with aggregation
- Duration/size formatting for notification text
"""

from .error_handling import (
    HostwatchError,
    ErrorCategory,
    ErrorSeverity,
    ErrorContext,
    ErrorAggregator,
    SafeResult,
    get_error_aggregator,
    handle_error,
    safe_execute,
    with_error_handling,
    determine_severity,
    log_command_error,
)
from .formatting import (
    format_duration,
    format_uptime,
    format_bytes,
    format_ram,
    truncate,
    progress_bar,
    mini_graph,
)

__all__ = [
    # Error handling
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
    # Formatting
    'format_duration',
    'format_uptime',
    'format_bytes',
    'format_ram',
    'truncate',
    'progress_bar',
    'mini_graph',
]
