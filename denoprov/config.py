"""
Configuration management for denoprov.

Loads denoprov.yaml into a ProvisionerConfig and resolves it into a
ProvisioningPlan. Resolution collects every problem it finds and reports
them together in one ConfigurationError.
"""

import os
import posixpath
import shutil
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from denoprov.errors import ConfigurationError
from denoprov.schemas import (
    DEFAULT_REMOTE_FOLDER,
    DEFAULT_REMOTE_RUNTIME_PATH,
    InstallStrategy,
    LocalBinaryUpload,
    NetworkInstall,
    ProvisioningPlan,
    SkipInstall,
)

CONFIG_ENV_VAR = "DENOPROV_CONFIG"
DEFAULT_CONFIG_FILENAME = "denoprov.yaml"

_BOOL_KEYS = ("skip_install", "skip_provision", "bundle")
_STR_KEYS = (
    "remote_folder",
    "remote_runtime_path",
    "local_runtime_bin",
    "target_runtime_version",
    "local_bundler",
)


@dataclass
class ProvisionerConfig:
    """
    Raw provisioner configuration, as written by the user.

    Nothing here is validated beyond its type; resolve_plan() does the rest.
    """
    scripts: List[str] = field(default_factory=list)
    remote_folder: str = ""
    remote_runtime_path: str = ""
    local_runtime_bin: str = ""
    skip_install: bool = False
    skip_provision: bool = False
    target_runtime_version: str = ""
    bundle: bool = False
    local_bundler: str = "deno"
    target: Dict[str, Any] = field(default_factory=dict)
    config_path: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], config_path: Optional[Path] = None) -> "ProvisionerConfig":
        """
        Build a config from a parsed YAML mapping.

        Relative script and binary paths are taken relative to the config
        file's directory, so a config can travel with its scripts.

        Raises:
            ConfigurationError: Listing every unknown key and mistyped value
        """
        errors: list[str] = []
        known = {f.name for f in fields(cls)} - {"config_path"}

        for key in data:
            if key not in known:
                errors.append(f"unknown configuration key '{key}'")

        values: Dict[str, Any] = {}

        for key in _BOOL_KEYS:
            if key in data and data[key] is not None:
                if not isinstance(data[key], bool):
                    errors.append(f"'{key}' must be true or false, got {data[key]!r}")
                else:
                    values[key] = data[key]

        for key in _STR_KEYS:
            if key in data and data[key] is not None:
                if not isinstance(data[key], (str, int, float)) or isinstance(data[key], bool):
                    errors.append(f"'{key}' must be a string, got {data[key]!r}")
                else:
                    values[key] = str(data[key])

        scripts = data.get("scripts")
        if scripts is not None:
            if not isinstance(scripts, list):
                errors.append("'scripts' must be a list of paths")
            else:
                bad = [s for s in scripts if not isinstance(s, str) or not s]
                for s in bad:
                    errors.append(f"'scripts' entries must be non-empty strings, got {s!r}")
                values["scripts"] = [s for s in scripts if isinstance(s, str) and s]

        target = data.get("target")
        if target is not None:
            if not isinstance(target, dict):
                errors.append("'target' must be a mapping")
            else:
                values["target"] = dict(target)

        if errors:
            raise ConfigurationError(errors)

        base_dir = config_path.parent if config_path else None
        if base_dir is not None:
            values["scripts"] = [_relative_to(base_dir, s) for s in values.get("scripts", [])]
            if values.get("local_runtime_bin"):
                values["local_runtime_bin"] = _relative_to(base_dir, values["local_runtime_bin"])

        return cls(config_path=config_path, **values)

    def __repr__(self) -> str:
        return f"ProvisionerConfig(scripts={len(self.scripts)}, remote_folder={self.remote_folder!r})"


def _relative_to(base_dir: Path, value: str) -> str:
    path = Path(value).expanduser()
    if path.is_absolute():
        return str(path)
    return str(base_dir / path)


def default_config_path() -> Path:
    """Config path from DENOPROV_CONFIG, else ./denoprov.yaml."""
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return Path.cwd() / DEFAULT_CONFIG_FILENAME


def load_config(config_path: Optional[Path] = None) -> ProvisionerConfig:
    """
    Load provisioner configuration from a YAML file.

    Args:
        config_path: Path to config file. Defaults to $DENOPROV_CONFIG,
                     then ./denoprov.yaml

    Returns:
        ProvisionerConfig instance (not yet resolved)

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ConfigurationError: If the file is empty, not a mapping or not YAML
    """
    if config_path is None:
        config_path = default_config_path()
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"denoprov config not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"invalid YAML in {config_path}: {e}") from e

    if not data:
        raise ConfigurationError(f"configuration file is empty: {config_path}")
    if not isinstance(data, dict):
        raise ConfigurationError(f"configuration must be a mapping: {config_path}")

    return ProvisionerConfig.from_dict(data, config_path=config_path.resolve())


def _select_strategy(config: ProvisionerConfig, errors: list[str]) -> InstallStrategy:
    if config.local_runtime_bin:
        if not os.path.exists(config.local_runtime_bin):
            errors.append(f"bad path to local deno binary '{config.local_runtime_bin}': no such file")
        if config.skip_install:
            errors.append("if local_runtime_bin is set, skip_install cannot be true")
        return LocalBinaryUpload(path=Path(config.local_runtime_bin))
    if config.skip_install:
        return SkipInstall()
    return NetworkInstall(version=config.target_runtime_version or None)


def _local_bundler_available(bundler: str) -> bool:
    if shutil.which(bundler):
        return True
    return os.path.isfile(bundler) and os.access(bundler, os.X_OK)


def resolve_plan(config: ProvisionerConfig) -> ProvisioningPlan:
    """
    Resolve configuration into a provisioning plan.

    Applies defaults and checks every rule before returning; all
    violations are reported together.

    Args:
        config: Raw configuration

    Returns:
        ProvisioningPlan ready to run

    Raises:
        ConfigurationError: With one entry per violation
    """
    errors: list[str] = []

    remote_folder = config.remote_folder or DEFAULT_REMOTE_FOLDER
    runtime_path = config.remote_runtime_path or DEFAULT_REMOTE_RUNTIME_PATH

    strategy = _select_strategy(config, errors)

    if not posixpath.isabs(runtime_path):
        errors.append(f"remote runtime path must be an absolute path, got '{runtime_path}'")
    elif isinstance(strategy, NetworkInstall):
        if posixpath.basename(posixpath.dirname(runtime_path)) != "bin":
            errors.append(
                f"remote runtime path '{runtime_path}' must be inside a 'bin' directory "
                "when deno is installed over the network"
            )

    if not posixpath.isabs(remote_folder):
        errors.append(f"remote_folder must be an absolute path, got '{remote_folder}'")

    if not config.scripts:
        errors.append("at least one script must be specified")

    seen: Dict[str, str] = {}
    for script in config.scripts:
        if not os.path.exists(script):
            errors.append(f"bad script '{script}': no such file")
        name = Path(script).name
        if name in seen:
            errors.append(
                f"scripts '{seen[name]}' and '{script}' share the file name '{name}' "
                f"and would overwrite each other in {remote_folder}"
            )
        else:
            seen[name] = script

    if config.bundle and not _local_bundler_available(config.local_bundler):
        errors.append(f"bundle is enabled but local deno '{config.local_bundler}' was not found")

    if errors:
        raise ConfigurationError(errors)

    return ProvisioningPlan(
        remote_work_dir=remote_folder,
        remote_runtime_path=runtime_path,
        scripts=tuple(Path(s) for s in config.scripts),
        install_strategy=strategy,
        bundle_enabled=config.bundle,
        skip_execution=config.skip_provision,
        local_bundler=config.local_bundler,
    )
