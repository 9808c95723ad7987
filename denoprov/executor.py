"""
Remote script execution.

Runs each uploaded script with the target's deno, one at a time, in
manifest order. The first non-zero exit stops the run; later scripts
never start.
"""

import logging
import shlex
from typing import Optional

from denoprov.communicators.base import Communicator
from denoprov.errors import CommunicatorError, ExecutionError
from denoprov.ui import NullReporter, Reporter
from denoprov.utils import truncate

logger = logging.getLogger(__name__)

# deno run with all permissions granted
RUN_ARGS = ("run", "-A")


def run_command_line(runtime_path: str, script_path: str) -> str:
    """Command line that runs one uploaded script."""
    parts = [runtime_path, *RUN_ARGS, script_path]
    return " ".join(shlex.quote(p) for p in parts)


class ScriptExecutor:
    """Runs uploaded scripts on the target."""

    def __init__(
        self,
        communicator: Communicator,
        runtime_path: str,
        reporter: Optional[Reporter] = None,
    ):
        self.communicator = communicator
        self.runtime_path = runtime_path
        self.reporter = reporter or NullReporter()
        self.executed: list[str] = []

    def run_all(self, manifest: list[str]) -> list[str]:
        """
        Run every script in the manifest, stopping at the first failure.

        Returns:
            Remote paths that ran successfully (all of them, on return)

        Raises:
            ExecutionError: Naming the failing script and command
        """
        for script in manifest:
            self.run_one(script)
        return list(self.executed)

    def run_one(self, script: str) -> None:
        command = run_command_line(self.runtime_path, script)
        self.reporter.message(command)
        logger.info(
            f"Running {script}",
            extra={"phase": "execute", "event": "script_started",
                   "metadata": {"script": script, "command": command}},
        )

        try:
            result = self.communicator.run_command(command)
        except CommunicatorError as e:
            raise ExecutionError(f"error running deno: {e}", subject=script, command=command) from e

        if result.output:
            logger.debug(f"{script} output: {truncate(result.output, 2000)}")

        if not result.success:
            logger.error(
                f"{script} exited with status {result.exit_code}",
                extra={"phase": "execute", "event": "script_failed",
                       "metadata": {"script": script, "command": command,
                                    "exit_code": result.exit_code}},
            )
            raise ExecutionError(
                f"error running deno: {command} non-zero exit status: {result.exit_code}",
                subject=script,
                exit_code=result.exit_code,
                output=result.output,
                command=command,
            )

        self.executed.append(script)
