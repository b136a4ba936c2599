"""
hostwatch daemon - entry point.

Loads the configuration, builds the monitoring context, starts the stats
collector and the scheduler, and runs until SIGINT/SIGTERM. SIGUSR1 toggles
verbose logging.
"""

import argparse
import logging
import signal
import sys
import threading
from typing import List, Optional

from .config.settings import Config, ConfigError, load_config, save_config
from .context import MonitorContext
from .event_logger import EventSeverity
from .logging_config import configure_from_environment, toggle_verbose
from .scheduler import Scheduler

logger = logging.getLogger(__name__)


class HostwatchDaemon:
    """Lifecycle wrapper around MonitorContext, StatsCollector and Scheduler."""

    def __init__(self, config: Config, context: Optional[MonitorContext] = None):
        self.config = config
        self.context = context if context is not None else MonitorContext(config)
        self.scheduler = Scheduler(self.context)
        self._shutdown = threading.Event()

    def start(self):
        self.context.stats_collector.start()
        self.context.report_previous_boot()
        self.scheduler.start()
        self.context.event_log.add(EventSeverity.INFO, "hostwatch started")
        logger.info("hostwatch started")

    def stop(self):
        if self._shutdown.is_set():
            return
        self._shutdown.set()
        logger.info("Stopping hostwatch...")
        self.scheduler.stop()
        self.context.stats_collector.stop()
        self.context.close()
        logger.info("hostwatch stopped")

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._shutdown.wait(timeout)

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals"""
        logger.info(f"Received signal {signum}")
        self.stop()

    def _verbose_handler(self, signum, frame):
        """SIGUSR1 flips DEBUG logging"""
        enabled = toggle_verbose()
        logger.info(f"Verbose logging {'enabled' if enabled else 'disabled'}")

    def install_signal_handlers(self):
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)
        if hasattr(signal, "SIGUSR1"):
            signal.signal(signal.SIGUSR1, self._verbose_handler)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='hostwatch - autonomous host monitoring and alerting')
    parser.add_argument('--config', '-c', type=str, default=None,
                        help='Path to config.yaml / config.json (default: $HOSTWATCH_CONFIG or ./config.yaml)')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose logging')
    parser.add_argument('--log-file', type=str,
                        help='Additional log file path')
    parser.add_argument('--json-logs', action='store_true',
                        help='Output logs in JSON format')
    parser.add_argument('--write-default-config', type=str, metavar='PATH',
                        help='Write a config file with every default value and exit')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)

    configure_from_environment(
        verbose=args.verbose,
        log_file=args.log_file,
        json_format=args.json_logs,
    )

    if args.write_default_config:
        save_config(Config(), args.write_default_config)
        print(f"Default configuration written to {args.write_default_config}")
        return 0

    try:
        config, _ = load_config(args.config)
    except ConfigError as e:
        logger.error(str(e))
        return 1

    daemon = HostwatchDaemon(config)
    daemon.install_signal_handlers()
    daemon.start()

    try:
        while not daemon.wait(1.0):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        daemon.stop()
    return 0


if __name__ == '__main__':
    sys.exit(main())
