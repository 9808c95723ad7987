"""
Runtime installation on the target.

Exactly one strategy runs per provisioning run:
- skip: the runtime is assumed present
- network: make sure curl exists (installing it with the first package
  manager found), then pipe the Deno bootstrap installer into sh
- local-binary: upload a local deno binary to the runtime path and mark
  it executable

Every remote command's exit status is checked; the first failure raises
InstallError and nothing is retried.
"""

import logging
import shlex
from dataclasses import dataclass
from typing import Optional

from denoprov.communicators.base import CommandResult, Communicator
from denoprov.errors import CommunicatorError, InstallError
from denoprov.schemas import (
    LocalBinaryUpload,
    NetworkInstall,
    ProvisioningPlan,
    SkipInstall,
)
from denoprov.ui import NullReporter, Reporter
from denoprov.utils import remote_parent, truncate

logger = logging.getLogger(__name__)

BOOTSTRAP_URL = "https://deno.land/x/install/install.sh"
DOWNLOADER_PROBE = "command -v curl"


@dataclass(frozen=True)
class PackageManager:
    """
    A package manager that can install the downloader.

    Attributes:
        name: Display name
        probe: Command that exits 0 when this package manager exists
        install: Commands that install curl, run in order
    """
    name: str
    probe: str
    install: tuple[str, ...]


PACKAGE_MANAGERS: tuple[PackageManager, ...] = (
    PackageManager(
        name="apt-get",
        probe="command -v apt-get",
        install=("apt-get update", "apt-get install -y curl"),
    ),
    PackageManager(
        name="yum",
        probe="command -v yum",
        install=("yum update -y", "yum install -y curl"),
    ),
    PackageManager(
        name="apk",
        probe="command -v apk",
        install=("apk add --no-cache curl",),
    ),
)


def bootstrap_command(runtime_path: str, version: Optional[str] = None) -> str:
    """
    Command line that downloads and runs the Deno installer.

    DENO_INSTALL points the installer at the parent of the runtime's bin
    directory, so deno lands exactly at runtime_path.
    """
    deno_install = remote_parent(remote_parent(runtime_path))
    command = f"curl -fsSL {BOOTSTRAP_URL} | DENO_INSTALL={shlex.quote(deno_install)} sh"
    if version:
        command += f" -s {shlex.quote(version)}"
    return command


class Installer:
    """Runs the plan's install strategy against a communicator."""

    def __init__(
        self,
        communicator: Communicator,
        reporter: Optional[Reporter] = None,
        package_managers: tuple[PackageManager, ...] = PACKAGE_MANAGERS,
    ):
        self.communicator = communicator
        self.reporter = reporter or NullReporter()
        self.package_managers = package_managers

    def install(self, plan: ProvisioningPlan) -> None:
        """
        Install the runtime according to plan.install_strategy.

        Raises:
            InstallError: On the first failing step
        """
        strategy = plan.install_strategy

        if isinstance(strategy, SkipInstall):
            self.reporter.message("Skipping Deno installation")
            logger.info("Install skipped", extra={"phase": "install", "event": "install_skipped"})
        elif isinstance(strategy, NetworkInstall):
            self._network_install(plan.remote_runtime_path, strategy.version)
        elif isinstance(strategy, LocalBinaryUpload):
            self._local_binary_install(plan.remote_runtime_path, strategy)
        else:
            raise InstallError(f"unknown install strategy: {strategy!r}")

    # ------------------------------------------------------------------
    # network
    # ------------------------------------------------------------------
    def _network_install(self, runtime_path: str, version: Optional[str]) -> None:
        self.ensure_downloader()

        command = bootstrap_command(runtime_path, version)
        self.reporter.message("Downloading and executing deno installer script")
        self._run_checked(command, "installer script")

    def ensure_downloader(self) -> None:
        """
        Make sure curl is available on the target.

        Package managers are probed in order; the first one present
        installs curl. None present is an error.
        """
        if self._probe(DOWNLOADER_PROBE):
            logger.debug("curl already present on target")
            return

        self.reporter.message("curl executable not detected")
        for manager in self.package_managers:
            if not self._probe(manager.probe):
                continue

            self.reporter.message(f"using {manager.name}")
            for command in manager.install:
                self._run_checked(command, f"install curl with {manager.name}")
            break
        else:
            tried = ", ".join(m.name for m in self.package_managers)
            raise InstallError(
                f"package manager not detected (tried {tried})",
                subject=DOWNLOADER_PROBE,
            )

        if not self._probe(DOWNLOADER_PROBE):
            raise InstallError(
                "curl installed, but not available to our process",
                subject=DOWNLOADER_PROBE,
            )

    # ------------------------------------------------------------------
    # local binary
    # ------------------------------------------------------------------
    def _local_binary_install(self, runtime_path: str, strategy: LocalBinaryUpload) -> None:
        parent = remote_parent(runtime_path)
        self.reporter.message(f"Creating directory: {parent}")
        try:
            self.communicator.create_directory(parent)
        except CommunicatorError as e:
            raise InstallError(
                f"mkdir for local deno bin on remote machine: {e}", subject=parent
            ) from e

        self.reporter.message(f"Uploading {strategy.path} to {runtime_path}")
        try:
            with open(strategy.path, "rb") as f:
                self.communicator.upload_file(runtime_path, f)
        except (OSError, CommunicatorError) as e:
            raise InstallError(
                f"upload local deno bin: {e}", subject=str(strategy.path)
            ) from e

        self._run_checked(f"chmod +x {shlex.quote(runtime_path)}", "set executable bit")

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _run(self, command: str, description: str) -> CommandResult:
        logger.debug(
            f"Running {description}: {command}",
            extra={"phase": "install", "event": "command_started",
                   "metadata": {"command": command}},
        )
        try:
            return self.communicator.run_command(command)
        except CommunicatorError as e:
            raise InstallError(f"error {description}: {e}", subject=command, command=command) from e

    def _probe(self, command: str) -> bool:
        return self._run(command, "probe").success

    def _run_checked(self, command: str, description: str) -> CommandResult:
        result = self._run(command, description)
        if not result.success:
            logger.error(
                f"{description} non-zero exit status: {result.exit_code}",
                extra={"phase": "install", "event": "command_failed",
                       "metadata": {"command": command, "exit_code": result.exit_code,
                                    "output": truncate(result.output, 1000)}},
            )
            raise InstallError(
                f"{description} non-zero exit status: {result.exit_code}",
                subject=command,
                exit_code=result.exit_code,
                output=result.output,
                command=command,
            )
        return result
