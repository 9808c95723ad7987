"""
Provisioner - runs one provisioning pass against a target.

A run is a single linear pass:

    bundle -> install -> create remote dir -> upload -> execute -> done

Each phase starts only when the previous one succeeded. The first error
ends the run with a failed (or cancelled) RunResult naming the phase;
no phase is retried or re-entered. Install is a pass-through for the
skip strategy, execute is a pass-through when skip_execution is set.
"""

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from denoprov.bundler import Bundler, DenoBundler, build_artifacts, make_run_dir
from denoprov.cancel import CancellableCommunicator, CancelToken
from denoprov.communicators.base import Communicator
from denoprov.errors import DenoprovError, ProvisionError, RunCancelled
from denoprov.executor import ScriptExecutor
from denoprov.installer import Installer
from denoprov.schemas import Phase, ProvisioningPlan, RunResult, RunStatus
from denoprov.ui import NullReporter, Reporter
from denoprov.uploader import Uploader
from denoprov.utils import format_duration

logger = logging.getLogger(__name__)


class Provisioner:
    """
    Orchestrates a provisioning run.

    Usage:
        plan = resolve_plan(load_config(Path("denoprov.yaml")))
        provisioner = Provisioner(
            communicator=SSHCommunicator(SSHConfig(host="10.0.0.5", user="root")),
            reporter=ConsoleReporter(),
        )
        result = provisioner.run(plan)
        if not result.success:
            print(result.describe())

    Nothing is shared between runs: each run gets its own bundle
    directory, artifact set and manifest.
    """

    def __init__(
        self,
        communicator: Communicator,
        reporter: Optional[Reporter] = None,
        bundler: Optional[Bundler] = None,
        cancel: Optional[CancelToken] = None,
    ):
        """
        Initialize the provisioner.

        Args:
            communicator: Channel to the target machine
            reporter: Progress reporter (defaults to NullReporter)
            bundler: Local bundler (defaults to DenoBundler when a plan
                     enables bundling)
            cancel: Caller-owned cancellation token
        """
        self.communicator = communicator
        self.reporter = reporter or NullReporter()
        self.bundler = bundler
        self.cancel = cancel

    def run(self, plan: ProvisioningPlan) -> RunResult:
        """
        Run the plan against the target.

        Returns:
            RunResult: success, or failed/cancelled naming the phase
        """
        result = RunResult(status=RunStatus.FAILED)
        communicator = self.communicator
        if self.cancel is not None:
            communicator = CancellableCommunicator(communicator, self.cancel)

        bundler = self.bundler
        if bundler is None and plan.bundle_enabled:
            bundler = DenoBundler(plan.local_bundler, cancel=self.cancel)

        installer = Installer(communicator, self.reporter)
        uploader = Uploader(communicator, self.reporter)
        executor = ScriptExecutor(communicator, plan.remote_runtime_path, self.reporter)

        logger.info(
            f"Starting provisioning run against {communicator.describe()}",
            extra={"event": "run_started", "metadata": plan.to_dict()},
        )

        phase = Phase.BUNDLE
        run_dir: Optional[Path] = None
        try:
            if self.cancel is not None:
                self.cancel.raise_if_cancelled()

            if plan.bundle_enabled:
                self.reporter.say("Bundling scripts locally before upload")
                run_dir = make_run_dir()
            result.artifacts = build_artifacts(
                plan, bundler, run_dir, reporter=self.reporter, cancel=self.cancel
            )

            phase = Phase.INSTALL
            self.reporter.say("Provisioning with Deno")
            installer.install(plan)

            phase = Phase.UPLOAD
            self.reporter.say("Uploading deno scripts...")
            uploader.create_work_dir(plan.remote_work_dir)
            result.manifest = uploader.upload(result.artifacts, plan.remote_work_dir)

            phase = Phase.EXECUTE
            if plan.skip_execution:
                self.reporter.say("Skipping provisioning scripts")
                logger.info("Execution skipped", extra={"phase": phase.value, "event": "execute_skipped"})
            else:
                self.reporter.say("Running provisioning scripts")
                executor.run_all(result.manifest)

            result.status = RunStatus.SUCCESS

        except RunCancelled as e:
            result.status = RunStatus.CANCELLED
            result.phase = phase
            result.error = e
            logger.warning(
                f"Provisioning cancelled during {phase.value}",
                extra={"phase": phase.value, "event": "run_cancelled"},
            )

        except ProvisionError as e:
            self._fail(result, phase, e)
            logger.error(
                f"Provisioning failed in {phase.value}: {e}",
                extra={"phase": phase.value, "event": "run_failed",
                       "metadata": {"subject": e.subject, "command": e.command,
                                    "exit_code": e.exit_code}},
            )

        except DenoprovError as e:
            self._fail(result, phase, e)
            logger.error(
                f"Provisioning failed in {phase.value}: {e}",
                extra={"phase": phase.value, "event": "run_failed"},
            )

        except Exception as e:
            self._fail(result, phase, e)
            logger.error(
                f"Provisioning failed in {phase.value} with exception: {e}",
                extra={"phase": phase.value, "event": "run_exception"},
                exc_info=True,
            )

        finally:
            if isinstance(communicator, CancellableCommunicator):
                communicator.release()
            result.executed = list(executor.executed)
            result.ended_at = datetime.now(timezone.utc)
            if run_dir is not None:
                self._cleanup(run_dir)

        if result.success:
            self.reporter.message(
                f"Provisioning completed in {format_duration(result.duration_seconds)}"
            )
            logger.info(
                "Provisioning completed successfully",
                extra={"event": "run_completed",
                       "metadata": {"duration_seconds": result.duration_seconds,
                                    "executed": result.executed}},
            )
        else:
            self.reporter.error(result.describe())

        return result

    def _fail(self, result: RunResult, phase: Phase, error: Exception) -> None:
        result.status = RunStatus.FAILED
        result.phase = phase
        result.error = error
        result.subject = getattr(error, "subject", None)

    def _cleanup(self, run_dir: Path) -> None:
        try:
            shutil.rmtree(run_dir)
        except OSError as e:
            logger.warning(
                f"Could not remove bundle directory {run_dir}: {e}",
                extra={"event": "cleanup_failed", "metadata": {"path": str(run_dir)}},
            )


def provision(
    plan: ProvisioningPlan,
    communicator: Communicator,
    reporter: Optional[Reporter] = None,
    bundler: Optional[Bundler] = None,
    cancel: Optional[CancelToken] = None,
) -> RunResult:
    """Run a plan once with a throwaway Provisioner."""
    return Provisioner(communicator, reporter, bundler, cancel).run(plan)
