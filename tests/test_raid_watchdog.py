"""
Tests for the RAID Watchdog.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from hostwatch.event_logger import EventSeverity
from hostwatch.watchdogs.raid import RaidWatchdog


DEGRADED = ["mdadm degraded: md0: 976630464 blocks super 1.2 [2/1] [U_]"]
SYNCING = ["mdadm sync: md0: [==>.....]  recovery = 12.6%"]


@pytest.fixture
def watchdog(notifier, event_log, clock) -> RaidWatchdog:
    return RaidWatchdog(notifier, event_log, cooldown_minutes=30, clock=clock)


# ===========================================================================
# Watchdog
# ===========================================================================

class TestRaidWatchdog:
    """Tests for RaidWatchdog.check()."""

    def test_healthy_is_silent(self, watchdog, notifier):
        """No issues and no prior degradation sends nothing."""
        assert watchdog.check([]) is False
        assert notifier.sent == []

    def test_new_issue_alerts_bypassing_quiet_hours(self, quiet_notifier, event_log, clock):
        """RAID alerts are delivered during quiet hours."""
        watchdog = RaidWatchdog(quiet_notifier, event_log, clock=clock)
        assert watchdog.check(DEGRADED) is True
        assert len(quiet_notifier.sent) == 1
        assert quiet_notifier.sent[0][1] is True
        assert event_log.get_by_severity(EventSeverity.CRITICAL)[0].message == "RAID issue detected"

    def test_same_signature_respects_cooldown(self, watchdog, notifier, clock):
        """An unchanged signature is repeated only after the cooldown."""
        watchdog.check(DEGRADED)
        clock.advance(10 * 60)
        assert watchdog.check(DEGRADED) is False
        clock.advance(20 * 60)
        assert watchdog.check(DEGRADED) is True
        assert len(notifier.sent) == 2

    def test_changed_signature_alerts_immediately(self, watchdog, notifier, clock):
        """A different issue set alerts without waiting for the cooldown."""
        watchdog.check(DEGRADED)
        clock.advance(60)
        assert watchdog.check(DEGRADED + SYNCING) is True
        assert watchdog.last_signature == " | ".join(DEGRADED + SYNCING)
        assert notifier.messages[1].endswith("\n".join(DEGRADED + SYNCING))

    def test_recovery_reports_downtime(self, watchdog, notifier, clock):
        """Clearing issues sends one recovery notice and resets state."""
        watchdog.check(DEGRADED)
        clock.advance(45 * 60)
        watchdog.check([])
        assert "RAID recovered" in notifier.messages[-1]
        assert "`45m`" in notifier.messages[-1]
        assert watchdog.down_since is None
        assert watchdog.last_signature == ""

        watchdog.check([])
        assert len(notifier.sent) == 2

    def test_recovery_quiet_hours_suppressed(self, quiet_notifier, event_log, clock):
        """The recovery notice respects quiet hours."""
        watchdog = RaidWatchdog(quiet_notifier, event_log, clock=clock)
        watchdog.check(DEGRADED)
        watchdog.check([])
        assert len(quiet_notifier.sent) == 1
        assert watchdog.down_since is None

    def test_down_since_kept_across_changes(self, watchdog, clock):
        """down_since marks the first degradation, not the latest change."""
        start = clock.now
        watchdog.check(DEGRADED)
        clock.advance(60)
        watchdog.check(SYNCING)
        assert watchdog.down_since == start
