"""
denoprov - Deno provisioner

Installs the Deno runtime on a remote target, uploads Deno scripts
(optionally bundled locally first) and runs them in order.
"""

__version__ = "0.1.0"


__all__ = [
    "ProvisionerConfig",
    "ProvisioningPlan",
    "Provisioner",
    "RunResult",
    "load_config",
    "resolve_plan",
]

from .config import ProvisionerConfig, load_config, resolve_plan
from .provisioner import Provisioner
from .schemas import ProvisioningPlan, RunResult
