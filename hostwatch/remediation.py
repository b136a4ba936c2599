"""
Remediation Executor - bounded execution of external commands.

Every remediation (container restart, Docker service restart, reboot, prune)
and every command-line probe goes through RemediationExecutor so that each
call has a timeout and a uniform result. Long-running actions that the caller
must not wait for (reboot, prune) run as BackgroundActions: non-daemon
threads that are never cancelled and report through a completion callback.
"""

import logging
import shutil
import subprocess
import threading
import sys
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .utils.error_handling import HostwatchError, log_command_error

logger = logging.getLogger(__name__)


class CommandError(HostwatchError):
    """Raised by CommandResult.raise_for_error() for a failed command."""

    def __init__(self, command: str, error: str, output: str = ""):
        super().__init__(f"{command}: {error}")
        self.command = command
        self.error = error
        self.output = output


@dataclass(frozen=True)
class CommandResult:
    """Combined stdout/stderr of a command and its error, if any."""
    command: str
    output: str = ""
    error: Optional[str] = None
    returncode: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> 'CommandResult':
        if self.error is not None:
            raise CommandError(self.command, self.error, self.output)
        return self


class RemediationExecutor:
    """Runs external commands with a timeout. Never raises for command failures."""

    def __init__(self, platform: str = sys.platform):
        self.platform = platform

    def exists(self, name: str) -> bool:
        return shutil.which(name) is not None

    def run(self, command: str, args: Sequence[str] = (), timeout: float = 30.0) -> CommandResult:
        """
        Run ``command args...`` and capture combined output.

        Returns:
            CommandResult whose ``error`` is set when the binary is missing,
            the command timed out or it exited non-zero
        """
        argv: List[str] = [command, *args]
        label = " ".join(argv)

        if not self.platform.startswith("linux"):
            return CommandResult(label, error="unsupported OS")
        if not self.exists(command):
            return CommandResult(label, error=f"command {command} not found")

        try:
            proc = subprocess.run(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                timeout=timeout,
                text=True,
                errors="replace",
            )
        except subprocess.TimeoutExpired as e:
            output = e.output if isinstance(e.output, str) else ""
            logger.warning(f"Command timed out after {timeout}s: {label}")
            return CommandResult(label, output=output or "", error=f"timed out after {timeout:.0f}s")
        except OSError as e:
            log_command_error(e, "run_command", command=label)
            return CommandResult(label, error=str(e))

        output = proc.stdout or ""
        if proc.returncode != 0:
            # Negative return codes mean the process was killed by a signal
            if proc.returncode < 0:
                error = f"signal: {-proc.returncode}"
                if -proc.returncode == 9:
                    error = "signal: 9 (killed)"
            else:
                error = f"exit status {proc.returncode}"
            logger.debug(f"Command failed ({error}): {label}")
            return CommandResult(label, output=output, error=error, returncode=proc.returncode)

        return CommandResult(label, output=output, returncode=0)

    def run_background(
        self,
        command: str,
        args: Sequence[str] = (),
        timeout: float = 30.0,
        on_complete: Optional[Callable[[CommandResult], None]] = None,
        name: Optional[str] = None,
    ) -> 'BackgroundAction':
        """Start ``command`` on a BackgroundAction and return it without waiting."""
        action = BackgroundAction(
            target=lambda: self.run(command, args, timeout),
            on_complete=on_complete,
            name=name or f"action-{command}",
        )
        action.start()
        return action


class BackgroundAction:
    """
    Fire-and-forget action on its own non-daemon thread.

    The thread is not a daemon so an in-flight reboot or prune is not killed
    when the main loop exits.
    """

    def __init__(
        self,
        target: Callable[[], CommandResult],
        on_complete: Optional[Callable[[CommandResult], None]] = None,
        name: str = "background-action",
    ):
        self._target = target
        self._on_complete = on_complete
        self.result: Optional[CommandResult] = None
        self._done = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=False)

    def start(self):
        self._thread.start()

    def _run(self):
        try:
            try:
                self.result = self._target()
            except Exception as e:
                logger.error(f"Background action {self._thread.name} failed: {e}")
                self.result = CommandResult(self._thread.name, error=str(e))

            if self._on_complete:
                try:
                    self._on_complete(self.result)
                except Exception as e:
                    logger.error(f"Error in completion callback of {self._thread.name}: {e}")
        finally:
            self._done.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the action finished; True if it did."""
        return self._done.wait(timeout)

    @property
    def done(self) -> bool:
        return self._done.is_set()
