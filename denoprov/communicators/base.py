"""
Communicator protocol.

A communicator is the channel to the target machine. It can:
- run a shell command line and report its exit status and output
- upload a byte stream to a remote path
- create a remote directory (idempotent)

Communicators report a command's non-zero exit as a value. Only channel
failures (transfer errors, unreachable target) raise CommunicatorError.
"""

import logging
import os
import shlex
import signal
import subprocess
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, BinaryIO, Optional

from denoprov.errors import CommunicatorError, RunCancelled
from denoprov.utils import truncate

if TYPE_CHECKING:
    from denoprov.cancel import CancelToken

logger = logging.getLogger(__name__)

TERMINATE_GRACE = 5.0
_POSIX = os.name == "posix"


@dataclass(frozen=True)
class CommandResult:
    """
    Result of executing a command on the target.

    Attributes:
        exit_code: Exit status of the command
        output: Combined stdout and stderr
    """
    exit_code: int
    output: str = ""

    @property
    def success(self) -> bool:
        """Check if command succeeded."""
        return self.exit_code == 0


class Communicator(ABC):
    """
    Abstract base class for remote execution channels.

    `cancel` is the token of the run currently using this communicator, if
    any. Subprocess-backed communicators hand it to run_process so a
    cancelled run stops the process in flight.
    """

    cancel: Optional["CancelToken"] = None

    def bind_cancel(self, token: Optional["CancelToken"]) -> Optional["CancelToken"]:
        """Attach a cancellation token; returns the previously bound one."""
        previous = self.cancel
        self.cancel = token
        return previous

    @abstractmethod
    def run_command(self, command: str) -> CommandResult:
        """
        Run a shell command line on the target and wait for it.

        Args:
            command: Command line, interpreted by the target's /bin/sh

        Returns:
            CommandResult with exit code and combined output

        Raises:
            CommunicatorError: If the command could not be run at all
        """
        pass

    @abstractmethod
    def upload_file(self, remote_path: str, stream: BinaryIO) -> None:
        """
        Write the full content of a local byte stream to a remote path.

        Raises:
            CommunicatorError: If the transfer fails
        """
        pass

    def create_directory(self, remote_path: str) -> None:
        """
        Create a remote directory and its parents; existing is fine.

        Raises:
            CommunicatorError: If the directory cannot be created
        """
        result = self.run_command(f"mkdir -p {shlex.quote(remote_path)}")
        if not result.success:
            raise CommunicatorError(
                f"mkdir {remote_path} failed with exit status {result.exit_code}: "
                f"{truncate(result.output)}"
            )

    def describe(self) -> str:
        """Short description of the target for progress messages."""
        return self.__class__.__name__


def run_process(
    args: list[str],
    *,
    input_bytes: Optional[bytes] = None,
    timeout: Optional[float] = None,
    cancel: Optional["CancelToken"] = None,
    terminate_grace: float = TERMINATE_GRACE,
) -> CommandResult:
    """
    Run a local process and fold stdout and stderr into one output string.

    The process runs in its own session so that stopping it also stops
    everything it started (the remote shell's children, ssh, docker exec).
    It is polled rather than waited on: when `cancel` fires the whole group
    gets SIGTERM, then SIGKILL after `terminate_grace` seconds.

    Raises:
        CommunicatorError: If the process cannot be started or times out
        RunCancelled: If `cancel` fires while the process runs
    """
    logger.debug("Executing: %s", " ".join(shlex.quote(a) for a in args))
    try:
        proc = subprocess.Popen(
            args,
            stdin=subprocess.PIPE if input_bytes is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            start_new_session=_POSIX,
        )
    except FileNotFoundError as e:
        raise CommunicatorError(f"executable not found: {args[0]}") from e
    except OSError as e:
        raise CommunicatorError(f"could not run {args[0]}: {e}") from e

    deadline = time.monotonic() + timeout if timeout is not None else None
    poll_interval = cancel.poll_interval if cancel is not None else None

    while True:
        wait = poll_interval
        if deadline is not None:
            remaining = max(deadline - time.monotonic(), 0.0)
            wait = remaining if wait is None else min(wait, remaining)
        try:
            stdout, _ = proc.communicate(input_bytes, timeout=wait)
            break
        except subprocess.TimeoutExpired:
            if cancel is not None and cancel.cancelled:
                logger.debug("Cancelled, stopping: %s", args[0])
                stop_process(proc, terminate_grace)
                raise RunCancelled()
            if deadline is not None and time.monotonic() >= deadline:
                stop_process(proc, terminate_grace)
                raise CommunicatorError(f"timed out after {timeout}s: {args[0]}")

    output = (stdout or b"").decode("utf-8", errors="replace")
    return CommandResult(exit_code=proc.returncode, output=output)


def stop_process(proc: subprocess.Popen, grace: float = TERMINATE_GRACE) -> None:
    """Terminate a process (and its session on POSIX), killing it after grace seconds."""
    _signal_process(proc, signal.SIGTERM)
    try:
        proc.communicate(timeout=grace)
    except subprocess.TimeoutExpired:
        _signal_process(proc, signal.SIGKILL if _POSIX else signal.SIGTERM)
        proc.communicate()


def _signal_process(proc: subprocess.Popen, sig: int) -> None:
    if not _POSIX:
        proc.kill()
        return
    try:
        os.killpg(proc.pid, sig)
    except ProcessLookupError:
        pass


def parse_timeout(value, name: str = "command_timeout") -> Optional[float]:
    """
    Coerce a timeout from config into seconds.

    Raises:
        ValueError: If the value is not a positive number
    """
    if value is None:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{name} must be numeric, got {value!r}") from e
    if seconds <= 0:
        raise ValueError(f"{name} must be positive, got {value!r}")
    return seconds
