"""
Schemas for denoprov.

Plan side (produced once by the config resolver, immutable for a run):
- ProvisioningPlan
- InstallStrategy: SkipInstall | NetworkInstall | LocalBinaryUpload

Result side (produced by the provisioner):
- Phase, RunStatus
- Artifact (one entry of the artifact set)
- RunResult
"""

from .plan import (
    DEFAULT_REMOTE_FOLDER,
    DEFAULT_REMOTE_RUNTIME_PATH,
    InstallStrategy,
    LocalBinaryUpload,
    NetworkInstall,
    ProvisioningPlan,
    SkipInstall,
)
from .result import Artifact, Phase, RunResult, RunStatus

__all__ = [
    "DEFAULT_REMOTE_FOLDER",
    "DEFAULT_REMOTE_RUNTIME_PATH",
    "InstallStrategy",
    "LocalBinaryUpload",
    "NetworkInstall",
    "ProvisioningPlan",
    "SkipInstall",
    "Artifact",
    "Phase",
    "RunResult",
    "RunStatus",
]
