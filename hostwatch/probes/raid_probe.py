"""
RAID Probe - software RAID (mdadm) and ZFS pool health.
"""

import logging
import re
from pathlib import Path
from typing import List, Optional

from ..constants import Timeouts
from ..remediation import RemediationExecutor

logger = logging.getLogger(__name__)

MDSTAT_PATH = "/proc/mdstat"

ARRAY_LINE = re.compile(r"^(md\w*)\s*:")
MEMBER_MAP = re.compile(r"\[([U_]+)\]")
SYNC_WORDS = ("recovery", "resync", "reshape")


def parse_mdstat(text: str) -> List[str]:
    """
    Issues found in /proc/mdstat content.

    A member map containing ``_`` (e.g. ``[U_]``) is a degraded array; any
    recovery, resync or reshape progress line is reported as syncing. Status
    lines belong to the ``mdX :`` line above them.
    """
    issues = []
    array: Optional[str] = None
    for line in text.split("\n"):
        stripped = line.strip()
        if not stripped:
            array = None
            continue

        match = ARRAY_LINE.match(stripped)
        if match:
            array = match.group(1)
        if array is None:
            continue

        members = MEMBER_MAP.search(stripped)
        if members and "_" in members.group(1):
            issues.append(f"mdadm degraded: {array}: {stripped}")
        if any(word in stripped for word in SYNC_WORDS):
            issues.append(f"mdadm sync: {array}: {stripped}")
    return issues


class RaidProbe:
    def __init__(self, executor: Optional[RemediationExecutor] = None, mdstat_path: str = MDSTAT_PATH):
        self.executor = executor if executor is not None else RemediationExecutor()
        self.mdstat_path = Path(mdstat_path)

    def status(self) -> List[str]:
        """Current RAID issues; empty when every array and pool is healthy or none exist."""
        issues: List[str] = []

        try:
            issues.extend(parse_mdstat(self.mdstat_path.read_text()))
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.debug(f"Cannot read {self.mdstat_path}: {e}")

        if self.executor.exists("zpool"):
            result = self.executor.run("zpool", ["status", "-x"], timeout=Timeouts.RAID_STATUS)
            if result.ok:
                output = result.output.strip()
                if output and "all pools are healthy" not in output.lower():
                    issues.append(f"zpool: {output}")
            else:
                logger.debug(f"zpool status failed: {result.error}")

        return issues
