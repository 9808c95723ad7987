"""Local communicator: the "remote" target is this machine."""

import os
from pathlib import Path
from typing import BinaryIO, Optional

from denoprov.communicators.base import CommandResult, Communicator, run_process
from denoprov.errors import CommunicatorError, RunCancelled

CHUNK_SIZE = 1024 * 1024


class LocalCommunicator(Communicator):
    """
    Runs commands with the local /bin/sh and writes uploads to local paths.

    Useful for provisioning the machine denoprov runs on, and for
    exercising a full run without a remote host.
    """

    def __init__(self, shell: str = "/bin/sh", command_timeout: Optional[float] = None):
        self.shell = shell
        self.command_timeout = command_timeout

    def run_command(self, command: str) -> CommandResult:
        return run_process(
            [self.shell, "-c", command], timeout=self.command_timeout, cancel=self.cancel
        )

    def upload_file(self, remote_path: str, stream: BinaryIO) -> None:
        try:
            with open(remote_path, "wb") as f:
                while True:
                    if self.cancel is not None and self.cancel.cancelled:
                        raise RunCancelled()
                    chunk = stream.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    f.write(chunk)
        except RunCancelled:
            # drop the partial file
            os.unlink(remote_path)
            raise
        except OSError as e:
            raise CommunicatorError(f"error writing {remote_path}: {e}") from e

    def create_directory(self, remote_path: str) -> None:
        try:
            Path(remote_path).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CommunicatorError(f"error creating directory {remote_path}: {e}") from e

    def describe(self) -> str:
        return "local host"
