"""
Local script bundling.

With bundling enabled, each script is compiled into a single-file bundle
before upload, so the target needs nothing but the uploaded file. The
bundles live in a per-run temporary directory that the provisioner
removes when the run ends.
"""

import logging
import os
import subprocess
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from denoprov.cancel import CancelToken
from denoprov.communicators.base import stop_process
from denoprov.errors import BundleError, RunCancelled
from denoprov.schemas import Artifact, ProvisioningPlan
from denoprov.ui import NullReporter, Reporter
from denoprov.utils import truncate

logger = logging.getLogger(__name__)

BUNDLE_SUFFIX = ".bundle.js"
TEMP_PREFIX = "denoprov-"


class Bundler(ABC):
    """Turns one script into a standalone artifact."""

    @abstractmethod
    def bundle(self, source: Path, output: Path) -> None:
        """
        Bundle source into output.

        Raises:
            BundleError: If bundling fails
        """
        pass


class DenoBundler(Bundler):
    """
    Bundles with the local `deno bundle` command.

    The subprocess is polled rather than waited on, so a cancelled run
    terminates it instead of waiting for it to finish.
    """

    def __init__(
        self,
        executable: str = "deno",
        cancel: Optional[CancelToken] = None,
        terminate_grace: float = 5.0,
    ):
        self.executable = executable
        self.cancel = cancel
        self.terminate_grace = terminate_grace

    def command(self, source: Path, output: Path) -> list[str]:
        return [self.executable, "bundle", str(source), str(output)]

    def bundle(self, source: Path, output: Path) -> None:
        command = self.command(source, output)
        logger.debug(f"Executing: {' '.join(command)}")

        try:
            proc = subprocess.Popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                start_new_session=os.name == "posix",
            )
        except OSError as e:
            raise BundleError(
                f"could not run: {' '.join(command)}: {e}", subject=str(source)
            ) from e

        poll_interval = self.cancel.poll_interval if self.cancel else None
        while True:
            try:
                stdout, _ = proc.communicate(timeout=poll_interval)
                break
            except subprocess.TimeoutExpired:
                if self.cancel is not None and self.cancel.cancelled:
                    self._terminate(proc)
                    raise RunCancelled()

        output_text = (stdout or b"").decode("utf-8", errors="replace")
        if proc.returncode != 0:
            raise BundleError(
                f"error bundling {source}: exit status {proc.returncode}: {truncate(output_text)}",
                subject=str(source),
                exit_code=proc.returncode,
                output=output_text,
            )

    def _terminate(self, proc: subprocess.Popen) -> None:
        stop_process(proc, self.terminate_grace)


def bundle_path(run_dir: Path, source: Path) -> Path:
    """Output path for the bundle of source inside a run's temp directory."""
    return run_dir / f"{source.name}{BUNDLE_SUFFIX}"


def make_run_dir() -> Path:
    """Create a fresh temporary directory for one run's bundles."""
    return Path(tempfile.mkdtemp(prefix=TEMP_PREFIX))


def build_artifacts(
    plan: ProvisioningPlan,
    bundler: Optional[Bundler],
    run_dir: Optional[Path],
    reporter: Optional[Reporter] = None,
    cancel: Optional[CancelToken] = None,
) -> list[Artifact]:
    """
    Build the artifact set for a plan.

    With bundling disabled every script maps to itself and the bundler is
    never called. Otherwise scripts are bundled one at a time, in order,
    and the first failure stops the phase.

    Args:
        plan: Resolved plan
        bundler: Bundler to use (required when bundling is enabled)
        run_dir: Per-run temp directory for bundles
        reporter: Progress reporter
        cancel: Optional cancellation token

    Returns:
        One Artifact per script, in script order

    Raises:
        BundleError: On the first script that fails to bundle
        RunCancelled: If cancelled
    """
    reporter = reporter or NullReporter()

    if not plan.bundle_enabled:
        return [Artifact(source=script, path=script) for script in plan.scripts]

    if bundler is None or run_dir is None:
        raise BundleError("bundling is enabled but no bundler is configured")

    artifacts: list[Artifact] = []
    for script in plan.scripts:
        output = bundle_path(run_dir, script)
        reporter.message(f"bundling {script}")
        logger.info(
            f"Bundling {script} -> {output}",
            extra={"phase": "bundle", "event": "bundle_started",
                   "metadata": {"source": str(script), "output": str(output)}},
        )

        if cancel is not None:
            cancel.call(bundler.bundle, script, output)
        else:
            bundler.bundle(script, output)

        if not output.is_file():
            raise BundleError(
                f"bundler reported success but left no file at {output}",
                subject=str(script),
            )

        reporter.message(f"bundle output: {output}")
        artifacts.append(Artifact(source=script, path=output))

    return artifacts
