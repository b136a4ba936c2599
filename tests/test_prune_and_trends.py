"""
Tests for the weekly Docker prune and the trend recorder.
"""

import os
import sys
from datetime import datetime

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from conftest import make_stats
from hostwatch.stats import VolumeStats
from hostwatch.watchdogs.prune import WeeklyPrune
from hostwatch.watchdogs.trends import TrendRecorder


# 2024-01-07 is a Sunday
SUNDAY_4AM = datetime(2024, 1, 7, 4, 0)
SUNDAY_4_30 = datetime(2024, 1, 7, 4, 30)
SUNDAY_5AM = datetime(2024, 1, 7, 5, 0)
MONDAY_4AM = datetime(2024, 1, 8, 4, 0)


class MutableNow:
    def __init__(self, value: datetime):
        self.value = value

    def __call__(self) -> datetime:
        return self.value


@pytest.fixture
def now() -> MutableNow:
    return MutableNow(SUNDAY_4AM)


@pytest.fixture
def prune(notifier, event_log, executor, now) -> WeeklyPrune:
    return WeeklyPrune(notifier, event_log, executor, day="sunday", hour=4, now=now)


# ===========================================================================
# Weekly Prune
# ===========================================================================

class TestWeeklyPrune:
    """Tests for WeeklyPrune.check()."""

    def test_runs_once_in_matching_hour(self, prune, executor, now):
        """The prune starts on the first check of the hour only."""
        assert prune.check() is True
        prune.last_action.wait(5)
        now.value = SUNDAY_4_30
        assert prune.check() is False
        assert executor.calls == ["docker system prune -a -f"]

    def test_rearms_after_hour(self, prune, executor, now):
        """Leaving the hour resets the done flag."""
        prune.check()
        prune.last_action.wait(5)
        now.value = SUNDAY_5AM
        prune.check()
        assert prune.done is False

    def test_wrong_day(self, prune, executor, now):
        """The hour on another weekday does nothing."""
        now.value = MONDAY_4AM
        assert prune.check() is False
        assert executor.calls == []

    def test_success_message(self, prune, executor, notifier, event_log):
        """The last output line is reported."""
        executor.set_result("docker system prune -a -f", output="Deleted Images:\nx\nTotal reclaimed space: 1.2GB\n")
        prune.check()
        assert prune.last_action.wait(5)
        assert notifier.messages == ["🧹 *Weekly Prune*\n\nUnused images removed.\n`Total reclaimed space: 1.2GB`"]
        assert event_log.get_events()[-1].message == "Weekly docker prune completed"

    def test_timeout_message(self, prune, executor, notifier):
        """A timed-out prune is reported as a 5 minute timeout."""
        executor.set_result("docker system prune -a -f", error="timed out after 300s")
        prune.check()
        assert prune.last_action.wait(5)
        assert notifier.messages == ["🧹 *Weekly Prune Error*\n\n`timeout after 5m`"]

    def test_error_message(self, prune, executor, notifier):
        """Other errors are reported verbatim."""
        executor.set_result("docker system prune -a -f", error="exit status 1")
        prune.check()
        assert prune.last_action.wait(5)
        assert notifier.messages == ["🧹 *Weekly Prune Error*\n\n`exit status 1`"]

    def test_unknown_day_defaults_to_sunday(self, notifier, event_log, executor, now):
        """An invalid day name falls back to sunday."""
        prune = WeeklyPrune(notifier, event_log, executor, day="funday", hour=4, now=now)
        assert prune.weekday == 6


# ===========================================================================
# Trends
# ===========================================================================

class TestTrendRecorder:
    """Tests for TrendRecorder."""

    def test_trend_buffer_bounded(self):
        """Only the newest points are kept."""
        recorder = TrendRecorder(max_trend_points=3)
        for i in range(5):
            recorder.record_trend(make_stats(cpu=float(i), timestamp=float(i)))
        assert [p.cpu for p in recorder.trend()] == [2.0, 3.0, 4.0]

    def test_disk_history(self):
        """Disk points capture both volumes."""
        recorder = TrendRecorder()
        point = recorder.record_disk(make_stats(vol_ssd=VolumeStats(used=50.0), vol_hdd=VolumeStats(used=70.0)))
        assert (point.ssd_used, point.hdd_used) == (50.0, 70.0)
        assert len(recorder.disk_history()) == 1

    def test_graphs(self):
        """CPU and RAM sparklines use the last twelve points."""
        recorder = TrendRecorder()
        for value in (0.0, 50.0, 100.0):
            recorder.record_trend(make_stats(cpu=value, ram=100.0 - value))
        assert recorder.cpu_graph() == "▁▅█"
        assert recorder.ram_graph() == "█▅▁"
