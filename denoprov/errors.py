"""
Error classes for denoprov runs.

Every failure of a provisioning run is one of these exceptions:
- ConfigurationError: the configuration cannot produce a plan (all
  violations are collected and reported together)
- InstallError, BundleError, UploadError, ExecutionError: a phase of the
  run failed; the run stops at the first one
- CommunicatorError: the remote channel itself failed (not a non-zero exit)
- RunCancelled: the caller aborted the run

Error handling contract:
- Nothing is retried; the first error ends the run
- The Provisioner catches at the run boundary and turns the error
  into a RunResult naming the phase
"""

from typing import Optional

from denoprov.schemas.result import Phase


class DenoprovError(Exception):
    """Base exception for denoprov."""
    pass


class ConfigurationError(DenoprovError):
    """
    Configuration cannot be resolved into a provisioning plan.

    Carries every violation found, not only the first one:

        try:
            resolve_plan(config)
        except ConfigurationError as e:
            for message in e.errors:
                print(message)
    """

    def __init__(self, errors):
        if isinstance(errors, str):
            errors = [errors]
        self.errors: list[str] = list(errors)
        super().__init__("; ".join(self.errors))


class CommunicatorError(DenoprovError):
    """
    Remote channel failure.

    Raised by communicators when a transfer, a connection or a directory
    creation fails. A command that runs and exits non-zero is not a
    CommunicatorError; it comes back as a CommandResult.
    """
    pass


class RunCancelled(DenoprovError):
    """The run was cancelled by its caller while waiting on a blocking call."""

    def __init__(self, message: str = "provisioning run cancelled"):
        super().__init__(message)


class ProvisionError(DenoprovError):
    """
    A phase of the provisioning run failed.

    Attributes:
        phase: Phase that failed
        subject: The script path or command line involved
        command: The remote command line that failed, if any
        exit_code: Exit status of the failing remote command, if any
        output: Combined output of the failing command, if any
    """

    phase: Phase = Phase.INSTALL

    def __init__(
        self,
        message: str,
        subject: Optional[str] = None,
        exit_code: Optional[int] = None,
        output: Optional[str] = None,
        command: Optional[str] = None,
    ):
        self.subject = subject
        self.command = command
        self.exit_code = exit_code
        self.output = output
        super().__init__(message)


class InstallError(ProvisionError):
    """Installing the runtime on the target failed."""

    phase = Phase.INSTALL


class BundleError(ProvisionError):
    """Bundling a script locally failed or left no artifact."""

    phase = Phase.BUNDLE


class UploadError(ProvisionError):
    """Creating the remote work directory or transferring a file failed."""

    phase = Phase.UPLOAD


class ExecutionError(ProvisionError):
    """A provisioning script exited non-zero on the target."""

    phase = Phase.EXECUTE
