"""
ProvisioningPlan schema - the resolved, immutable plan for one run.

A ProvisioningPlan is produced by resolve_plan() from a ProvisionerConfig.
All defaults are applied and all paths are checked before a plan exists,
so the run itself never has to look at raw configuration again.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

DEFAULT_REMOTE_FOLDER = "/tmp/denoprov-work"
DEFAULT_REMOTE_RUNTIME_PATH = "/root/.local/bin/deno"


@dataclass(frozen=True)
class SkipInstall:
    """Assume the runtime is already present on the target."""

    name = "skip"


@dataclass(frozen=True)
class NetworkInstall:
    """
    Fetch and run the Deno bootstrap installer on the target.

    Attributes:
        version: Optional release tag passed to the installer (e.g. "v1.40.0")
    """
    version: Optional[str] = None

    name = "network"


@dataclass(frozen=True)
class LocalBinaryUpload:
    """
    Upload a local Deno binary to the runtime path on the target.

    Attributes:
        path: Local path of the Deno executable to upload
    """
    path: Path

    name = "local-binary"


InstallStrategy = Union[SkipInstall, NetworkInstall, LocalBinaryUpload]


@dataclass(frozen=True)
class ProvisioningPlan:
    """
    Fully resolved provisioning plan.

    Attributes:
        remote_work_dir: Absolute directory on the target where scripts land
        remote_runtime_path: Absolute path of the Deno executable on the target
        scripts: Local script paths, in execution order (never empty)
        install_strategy: How the runtime gets onto the target
        bundle_enabled: Bundle scripts locally before upload
        skip_execution: Upload only, do not run anything
        local_bundler: Local Deno executable used for bundling
    """
    remote_work_dir: str
    remote_runtime_path: str
    scripts: tuple[Path, ...]
    install_strategy: InstallStrategy
    bundle_enabled: bool = False
    skip_execution: bool = False
    local_bundler: str = "deno"

    def to_dict(self) -> dict:
        """Serialize to dictionary for JSON output."""
        strategy = self.install_strategy
        install: dict = {"strategy": strategy.name}
        if isinstance(strategy, NetworkInstall) and strategy.version:
            install["version"] = strategy.version
        if isinstance(strategy, LocalBinaryUpload):
            install["path"] = str(strategy.path)
        return {
            "remote_work_dir": self.remote_work_dir,
            "remote_runtime_path": self.remote_runtime_path,
            "scripts": [str(s) for s in self.scripts],
            "install": install,
            "bundle_enabled": self.bundle_enabled,
            "skip_execution": self.skip_execution,
        }
