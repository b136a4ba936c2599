"""
Kernel Log Source - recent kernel ring buffer lines.

Tries ``dmesg --time-format reltime``, then plain ``dmesg`` (older util-linux),
then ``journalctl -k``. The previous boot is read from the journal only.
"""

import logging
from typing import List, Optional

from ..constants import Timeouts
from ..remediation import RemediationExecutor

logger = logging.getLogger(__name__)

KERNEL_LOG_COMMANDS = (
    ("dmesg", ("--time-format", "reltime")),
    ("dmesg", ()),
    ("journalctl", ("-k", "-n", "300", "--no-pager")),
)

PREVIOUS_BOOT_COMMAND = ("journalctl", ("-b", "-1", "-k", "-n", "100", "--no-pager"))


class KernelLogSource:
    def __init__(self, executor: Optional[RemediationExecutor] = None, timeout: float = Timeouts.KERNEL_LOG):
        self.executor = executor if executor is not None else RemediationExecutor()
        self.timeout = timeout

    def tail(self) -> List[str]:
        """Recent kernel log lines, oldest first. Empty when no source works."""
        for command, args in KERNEL_LOG_COMMANDS:
            result = self.executor.run(command, args, timeout=self.timeout)
            if result.ok:
                text = result.output.strip()
                return text.split("\n") if text else []
            logger.debug(f"Kernel log source '{result.command}' failed: {result.error}")
        logger.warning("No kernel log source available (dmesg/journalctl)")
        return []

    def previous_boot(self) -> List[str]:
        """Kernel lines from the previous boot, empty if the journal does not keep them."""
        command, args = PREVIOUS_BOOT_COMMAND
        if not self.executor.exists(command):
            return []
        result = self.executor.run(command, args, timeout=Timeouts.PREVIOUS_BOOT_LOG)
        if not result.ok:
            logger.debug(f"Previous boot log unavailable: {result.error}")
            return []
        return result.output.split("\n")
