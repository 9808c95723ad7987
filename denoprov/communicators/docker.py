"""Docker communicator: the target is a running container."""

import shlex
from typing import BinaryIO, Optional

from denoprov.communicators.base import CommandResult, Communicator, run_process
from denoprov.errors import CommunicatorError
from denoprov.utils import truncate


class DockerCommunicator(Communicator):
    """Runs commands with `docker exec` and streams uploads through `cat`."""

    def __init__(
        self,
        container: str,
        user: Optional[str] = None,
        docker_command: str = "docker",
        command_timeout: Optional[float] = None,
    ):
        self.container = container
        self.user = user
        self.docker_command = docker_command
        self.command_timeout = command_timeout
        self._verified = False

    def exec_args(self, command: str, interactive: bool = False) -> list[str]:
        args = [self.docker_command, "exec"]
        if interactive:
            args.append("-i")
        if self.user:
            args.extend(["-u", self.user])
        args.extend([self.container, "sh", "-c", command])
        return args

    def ensure_container(self) -> None:
        """
        Check once that the container exists and is running.

        `docker exec` against a missing or stopped container exits non-zero
        like a failed command would, so the check keeps that case a channel
        failure.

        Raises:
            CommunicatorError: If docker cannot inspect the container or it is not running
        """
        if self._verified:
            return
        result = run_process(
            [self.docker_command, "inspect", "-f", "{{.State.Running}}", self.container],
            timeout=self.command_timeout,
            cancel=self.cancel,
        )
        if not result.success:
            raise CommunicatorError(
                f"docker container {self.container} unavailable: {truncate(result.output)}"
            )
        if result.output.strip() != "true":
            raise CommunicatorError(f"docker container {self.container} is not running")
        self._verified = True

    def run_command(self, command: str) -> CommandResult:
        self.ensure_container()
        return run_process(self.exec_args(command), timeout=self.command_timeout, cancel=self.cancel)

    def upload_file(self, remote_path: str, stream: BinaryIO) -> None:
        self.ensure_container()
        result = run_process(
            self.exec_args(f"cat > {shlex.quote(remote_path)}", interactive=True),
            input_bytes=stream.read(),
            timeout=self.command_timeout,
            cancel=self.cancel,
        )
        if not result.success:
            raise CommunicatorError(
                f"upload to {self.container}:{remote_path} failed with exit status "
                f"{result.exit_code}: {truncate(result.output)}"
            )

    def describe(self) -> str:
        return f"docker://{self.container}"
