"""
Tests for the Scheduler and job interval resolution.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from conftest import FakeClock
from hostwatch.config.settings import Config
from hostwatch.constants import Defaults
from hostwatch.scheduler import JOB_HANDLERS, Scheduler, clamp_interval, job_intervals


class StubContext:
    """Stands in for MonitorContext; records which jobs ran."""

    def __init__(self, config: Config = None, failing=(), clock: FakeClock = None, job_cost: float = 0.0):
        self.config = config or Config()
        self.failing = set(failing)
        self.clock = clock
        self.job_cost = job_cost
        self.calls = []

    def _record(self, name):
        self.calls.append(name)
        if self.clock is not None and self.job_cost:
            self.clock.advance(self.job_cost)
        if name in self.failing:
            raise RuntimeError(f"{name} exploded")

    def run_fast_tick(self):
        self._record('fast_tick')

    def run_monitor_tick(self):
        self._record('monitor')

    def run_disk_history(self):
        self._record('disk_history')

    def run_trend(self):
        self._record('trend')

    def run_kernel_check(self):
        self._record('kernel')

    def run_network_check(self):
        self._record('network')

    def run_raid_check(self):
        self._record('raid')

    def run_report(self):
        self._record('report')


@pytest.fixture
def mono() -> FakeClock:
    return FakeClock(start=100.0)


# ===========================================================================
# Intervals
# ===========================================================================

class TestIntervals:
    """Tests for clamp_interval() and job_intervals()."""

    def test_clamp_interval(self):
        assert clamp_interval(5, 10, 60) == 60
        assert clamp_interval(10, 10, 60) == 10.0
        assert clamp_interval(120, 10, 60) == 120.0

    def test_defaults(self):
        intervals = job_intervals(StubContext())
        assert intervals['fast_tick'] == Defaults.FAST_TICK
        assert intervals['monitor'] == 30.0
        assert intervals['disk_history'] == 300.0
        assert intervals['trend'] == 300.0
        assert intervals['kernel'] == 60.0
        assert intervals['network'] == 60.0
        assert intervals['raid'] == 300.0
        assert intervals['report'] == Defaults.REPORT_CHECK_INTERVAL

    def test_too_small_intervals_fall_back(self):
        cfg = Config.from_dict({
            'kernel_watchdog': {'check_interval_seconds': 3},
            'network_watchdog': {'check_interval_seconds': 1},
            'raid_watchdog': {'check_interval_seconds': 10},
            'intervals': {'monitor_seconds': 0},
        })
        intervals = job_intervals(StubContext(cfg))
        assert intervals['kernel'] == Defaults.KERNEL_INTERVAL
        assert intervals['network'] == Defaults.NETWORK_INTERVAL
        assert intervals['raid'] == Defaults.RAID_INTERVAL
        assert intervals['monitor'] == Defaults.MONITOR_INTERVAL

    def test_every_job_has_an_interval(self):
        assert set(job_intervals(StubContext())) == set(JOB_HANDLERS)


# ===========================================================================
# Scheduler
# ===========================================================================

class TestScheduler:
    """Tests for Scheduler.run_due() with a manual monotonic clock."""

    def _scheduler(self, mono, **kwargs):
        context = StubContext(clock=mono, **kwargs)
        scheduler = Scheduler(context, clock=mono)
        for job in scheduler.jobs.values():
            job.next_due = mono() + job.interval
        return context, scheduler

    def test_nothing_due(self, mono):
        context, scheduler = self._scheduler(mono)
        assert scheduler.run_due() == []
        assert context.calls == []

    def test_fast_tick_due(self, mono):
        context, scheduler = self._scheduler(mono)
        mono.advance(Defaults.FAST_TICK)
        assert scheduler.run_due() == ['fast_tick']
        assert scheduler.jobs['fast_tick'].runs == 1
        assert scheduler.jobs['fast_tick'].next_due == pytest.approx(100.0 + 2 * Defaults.FAST_TICK)

    def test_declaration_order(self, mono):
        """Jobs due together run one after another in declaration order."""
        context, scheduler = self._scheduler(mono)
        mono.advance(300)
        assert scheduler.run_due() == list(JOB_HANDLERS)
        assert context.calls == list(JOB_HANDLERS)

    def test_missed_intervals_coalesce(self, mono):
        """A job far behind schedule fires once and is rescheduled from now."""
        context, scheduler = self._scheduler(mono)
        mono.advance(10_000)
        scheduler.run_due()
        assert context.calls.count('fast_tick') == 1
        job = scheduler.jobs['fast_tick']
        assert job.next_due == pytest.approx(mono() + job.interval)
        assert scheduler.run_due() == []

    def test_job_becoming_due_during_run(self, mono):
        """A job that comes due while another runs fires when that one ends."""
        context, scheduler = self._scheduler(mono, job_cost=Defaults.FAST_TICK)
        mono.advance(Defaults.MONITOR_INTERVAL - 1)
        ran = scheduler.run_due()
        assert ran == ['fast_tick', 'monitor']

    def test_failing_job_contained(self, mono):
        """An exception in one job neither stops the others nor the schedule."""
        context, scheduler = self._scheduler(mono, failing=('fast_tick',))
        mono.advance(300)
        ran = scheduler.run_due()
        assert ran == list(JOB_HANDLERS)
        assert scheduler.jobs['fast_tick'].next_due > mono()

    def test_stopped_scheduler_runs_nothing(self, mono):
        context, scheduler = self._scheduler(mono)
        scheduler._stop_event.set()
        mono.advance(300)
        assert scheduler.run_due() == []

    def test_run_job(self, mono):
        context, scheduler = self._scheduler(mono)
        scheduler.run_job('raid')
        assert context.calls == ['raid']

    def test_report_checked_every_minute(self, mono):
        context, scheduler = self._scheduler(mono)
        mono.advance(Defaults.REPORT_CHECK_INTERVAL)
        assert 'report' in scheduler.run_due()
        mono.advance(Defaults.REPORT_CHECK_INTERVAL)
        assert context.calls.count('report') == 1
        scheduler.run_due()
        assert context.calls.count('report') == 2

    def test_next_deadline(self, mono):
        context, scheduler = self._scheduler(mono)
        assert scheduler.next_deadline() == pytest.approx(100.0 + Defaults.FAST_TICK)


class TestSchedulerThread:
    """Tests for the scheduler thread lifecycle."""

    def test_start_stop(self):
        scheduler = Scheduler(StubContext())
        scheduler.start()
        assert scheduler.is_running
        scheduler.stop()
        assert not scheduler.is_running
        assert not scheduler._thread.is_alive()

    def test_double_start_ignored(self):
        scheduler = Scheduler(StubContext())
        scheduler.start()
        thread = scheduler._thread
        scheduler.start()
        assert scheduler._thread is thread
        scheduler.stop()
