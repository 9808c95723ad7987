"""Shared fixtures and test doubles for denoprov tests."""

from pathlib import Path
from typing import BinaryIO, Optional

import pytest

from denoprov.bundler import Bundler
from denoprov.communicators.base import CommandResult, Communicator
from denoprov.errors import BundleError, CommunicatorError
from denoprov.schemas import NetworkInstall, ProvisioningPlan, SkipInstall
from denoprov.ui import Reporter


class MockCommunicator(Communicator):
    """
    In-memory target.

    Every call is appended to `calls` as (kind, argument), in order.
    `responses` maps a command line to an exit code, or to a list of exit
    codes consumed one per call (the last one repeats). Unknown commands
    exit 0.
    """

    def __init__(
        self,
        responses: Optional[dict] = None,
        fail_uploads: Optional[set[str]] = None,
        fail_mkdir: bool = False,
        output: str = "",
    ):
        self.responses = dict(responses or {})
        self.fail_uploads = fail_uploads or set()
        self.fail_mkdir = fail_mkdir
        self.output = output
        self.calls: list[tuple[str, str]] = []
        self.uploads: dict[str, bytes] = {}
        self.directories: set[str] = set()

    def run_command(self, command: str) -> CommandResult:
        self.calls.append(("run", command))
        code = self.responses.get(command, 0)
        if isinstance(code, list):
            code = code.pop(0) if len(code) > 1 else code[0]
        return CommandResult(exit_code=code, output=self.output)

    def upload_file(self, remote_path: str, stream: BinaryIO) -> None:
        self.calls.append(("upload", remote_path))
        if remote_path in self.fail_uploads:
            raise CommunicatorError(f"connection reset while writing {remote_path}")
        self.uploads[remote_path] = stream.read()

    def create_directory(self, remote_path: str) -> None:
        self.calls.append(("mkdir", remote_path))
        if self.fail_mkdir:
            raise CommunicatorError(f"permission denied: {remote_path}")
        self.directories.add(remote_path)

    @property
    def commands(self) -> list[str]:
        return [arg for kind, arg in self.calls if kind == "run"]

    @property
    def uploaded_paths(self) -> list[str]:
        return [arg for kind, arg in self.calls if kind == "upload"]

    def describe(self) -> str:
        return "mock target"


class MockBundler(Bundler):
    """Bundler that writes a marker file, or fails for chosen sources."""

    def __init__(self, fail_names: Optional[set[str]] = None, write_output: bool = True):
        self.fail_names = fail_names or set()
        self.write_output = write_output
        self.bundle_calls: list[tuple[Path, Path]] = []

    def bundle(self, source: Path, output: Path) -> None:
        self.bundle_calls.append((source, output))
        if source.name in self.fail_names:
            raise BundleError(f"error bundling {source}: exit status 1", subject=str(source), exit_code=1)
        if self.write_output:
            output.write_text(f"// bundle of {source.name}\n" + source.read_text())


class RecordingReporter(Reporter):
    """Reporter that keeps every line it is given."""

    def __init__(self):
        self.lines: list[tuple[str, str]] = []

    def say(self, message: str) -> None:
        self.lines.append(("say", message))

    def message(self, message: str) -> None:
        self.lines.append(("message", message))

    def error(self, message: str) -> None:
        self.lines.append(("error", message))

    def text(self) -> str:
        return "\n".join(line for _, line in self.lines)


@pytest.fixture
def communicator():
    return MockCommunicator()


@pytest.fixture
def reporter():
    return RecordingReporter()


@pytest.fixture
def scripts(tmp_path):
    """Two provisioning scripts on disk, in execution order."""
    script_dir = tmp_path / "scripts"
    script_dir.mkdir()
    first = script_dir / "a.ts"
    second = script_dir / "b.ts"
    first.write_text('console.log("a");\n')
    second.write_text('console.log("b");\n')
    return [first, second]


@pytest.fixture
def make_plan(scripts):
    """Factory for plans over the `scripts` fixture."""

    def _make(**overrides) -> ProvisioningPlan:
        values = dict(
            remote_work_dir="/tmp/w",
            remote_runtime_path="/root/.local/bin/deno",
            scripts=tuple(scripts),
            install_strategy=SkipInstall(),
        )
        values.update(overrides)
        return ProvisioningPlan(**values)

    return _make


@pytest.fixture
def network_plan(make_plan):
    return make_plan(install_strategy=NetworkInstall())
