"""
Pytest configuration and shared fixtures for hostwatch tests.

Provides a controllable clock, in-memory notifier and event log, and fake
probes/executors so watchdogs can be driven without Docker, dmesg or a
network.
"""

import os
import shutil
import sys
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, Generator, List, Optional, Sequence

import pytest

# Add the parent directory to the path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from hostwatch.config.settings import Config, QuietHoursConfig
from hostwatch.event_logger import EventLog
from hostwatch.notifier import QuietHours, RecordingNotifier
from hostwatch.probes.docker_probe import ContainerInfo, ContainerProbeError
from hostwatch.remediation import CommandResult, RemediationExecutor
from hostwatch.stats import Stats, StatsStore


START_TIME = 1_700_000_000.0


# ===========================================================================
# Fakes
# ===========================================================================

class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = START_TIME):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class FakeExecutor(RemediationExecutor):
    """Records commands instead of running them."""

    def __init__(self, available: Sequence[str] = ("systemctl", "dmesg", "journalctl", "reboot", "docker", "ping")):
        super().__init__(platform="linux")
        self.available = set(available)
        self.results: Dict[str, CommandResult] = {}
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def set_result(self, label: str, output: str = "", error: Optional[str] = None):
        self.results[label] = CommandResult(label, output=output, error=error)

    def exists(self, name: str) -> bool:
        return name in self.available

    def run(self, command: str, args: Sequence[str] = (), timeout: float = 30.0) -> CommandResult:
        label = " ".join([command, *args])
        with self._lock:
            self.calls.append(label)
        if label in self.results:
            return self.results[label]
        if command in self.results:
            return self.results[command]
        return CommandResult(label, output="", returncode=0)


class FakeDockerProbe:
    def __init__(self, containers: Optional[List[ContainerInfo]] = None):
        self.containers = containers or []
        self.memory: Dict[str, float] = {}
        self.restart_errors: Dict[str, str] = {}
        self.restarted: List[str] = []
        self.list_error: Optional[str] = None
        self.closed = False

    def list_containers(self) -> List[ContainerInfo]:
        if self.list_error:
            raise ContainerProbeError(self.list_error)
        return list(self.containers)

    def memory_percent(self, name: str) -> Optional[float]:
        return self.memory.get(name)

    def restart_container(self, name: str) -> Optional[str]:
        self.restarted.append(name)
        return self.restart_errors.get(name)

    def close(self):
        self.closed = True


class FakeNetworkProbe:
    def __init__(self, reachable: Sequence[str] = ("1.1.1.1", "8.8.8.8"), dns_ok: bool = True):
        self.reachable = set(reachable)
        self.dns_ok = dns_ok
        self.pinged: List[str] = []

    def ping(self, host: str, timeout: float = 2) -> bool:
        self.pinged.append(host)
        return host in self.reachable

    def resolve_dns(self, host: str, timeout: float = 3) -> bool:
        return self.dns_ok

    def close(self):
        pass


class FakeKernelSource:
    def __init__(self, lines: Optional[List[str]] = None, previous: Optional[List[str]] = None):
        self.lines = lines or []
        self.previous = previous or []

    def tail(self) -> List[str]:
        return list(self.lines)

    def previous_boot(self) -> List[str]:
        return list(self.previous)


class FakeRaidProbe:
    def __init__(self, issues: Optional[List[str]] = None):
        self.issues = issues or []

    def status(self) -> List[str]:
        return list(self.issues)


class FakeHardwareProbe:
    def __init__(self, temperature: float = 45.0, failing: Optional[List[str]] = None):
        self.temperature = temperature
        self.failing = failing or []
        self.smart_queries: List[Sequence[str]] = []

    def cpu_temperature(self) -> float:
        return self.temperature

    def failing_devices(self, configured: Sequence[str] = ()) -> List[str]:
        self.smart_queries.append(list(configured))
        return list(self.failing)


def container(name: str, running: bool = True) -> ContainerInfo:
    return ContainerInfo(name=name, running=running, status="running" if running else "exited")


def make_stats(**overrides) -> Stats:
    values = dict(cpu=10.0, ram=40.0, swap=0.0, timestamp=START_TIME)
    values.update(overrides)
    return Stats(**values)


# ===========================================================================
# Temporary Directory Fixtures
# ===========================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that is cleaned up after the test."""
    tmpdir = tempfile.mkdtemp(prefix="hostwatch_test_")
    yield Path(tmpdir)
    shutil.rmtree(tmpdir, ignore_errors=True)


# ===========================================================================
# Clock, Sink and Config Fixtures
# ===========================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def no_quiet_hours() -> QuietHours:
    return QuietHours(QuietHoursConfig(enabled=False))


@pytest.fixture
def night_quiet_hours() -> QuietHours:
    """Default 23:30-07:00 window evaluated at 02:00."""
    return QuietHours(QuietHoursConfig(), timezone="", now=lambda: datetime(2024, 1, 1, 2, 0))


@pytest.fixture
def notifier(no_quiet_hours: QuietHours) -> RecordingNotifier:
    return RecordingNotifier(quiet_hours=no_quiet_hours)


@pytest.fixture
def quiet_notifier(night_quiet_hours: QuietHours) -> RecordingNotifier:
    return RecordingNotifier(quiet_hours=night_quiet_hours)


@pytest.fixture
def event_log(clock: FakeClock) -> EventLog:
    return EventLog(max_events=100, clock=clock)


@pytest.fixture
def config() -> Config:
    cfg = Config()
    cfg.quiet_hours.enabled = False
    return cfg


# ===========================================================================
# Probe and Executor Fixtures
# ===========================================================================

@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def docker_probe() -> FakeDockerProbe:
    return FakeDockerProbe()


@pytest.fixture
def network_probe() -> FakeNetworkProbe:
    return FakeNetworkProbe()


@pytest.fixture
def kernel_source() -> FakeKernelSource:
    return FakeKernelSource()


@pytest.fixture
def raid_probe() -> FakeRaidProbe:
    return FakeRaidProbe()


@pytest.fixture
def hardware_probe() -> FakeHardwareProbe:
    return FakeHardwareProbe()


@pytest.fixture
def stats_store() -> StatsStore:
    return StatsStore()


# ===========================================================================
# Pytest Configuration
# ===========================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests (>1s)")
