"""
Communicators - channels to the target machine.

- Communicator: abstract channel (run_command, upload_file, create_directory)
- LocalCommunicator: this machine
- SSHCommunicator: ssh/scp
- DockerCommunicator: docker exec into a running container

build_communicator() picks one from the `target` section of the config.
"""

from typing import Any, Mapping, Optional

from denoprov.errors import ConfigurationError

from .base import CommandResult, Communicator, parse_timeout, run_process
from .docker import DockerCommunicator
from .local import LocalCommunicator
from .ssh import SSHCommunicator, SSHConfig

TARGET_TYPES = ("local", "ssh", "docker")


def build_communicator(target: Optional[Mapping[str, Any]] = None) -> Communicator:
    """
    Create a communicator from a target mapping.

    Args:
        target: Mapping with a "type" key (local, ssh, docker) plus
                type-specific keys. None means the local host.

    Returns:
        Communicator instance

    Raises:
        ConfigurationError: If the target type is unknown or incomplete
    """
    target = dict(target or {})
    target_type = str(target.get("type") or "local").lower()

    try:
        command_timeout = parse_timeout(target.get("command_timeout"))
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

    if target_type == "local":
        return LocalCommunicator(command_timeout=command_timeout)

    if target_type == "ssh":
        try:
            return SSHCommunicator(SSHConfig.from_mapping(target))
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    if target_type == "docker":
        container = target.get("container")
        if not container:
            raise ConfigurationError("docker target requires 'container'")
        return DockerCommunicator(
            container=str(container),
            user=target.get("user"),
            docker_command=str(target.get("docker_command") or "docker"),
            command_timeout=command_timeout,
        )

    raise ConfigurationError(
        f"unknown target type '{target_type}' (expected one of: {', '.join(TARGET_TYPES)})"
    )


__all__ = [
    "CommandResult",
    "Communicator",
    "DockerCommunicator",
    "LocalCommunicator",
    "SSHCommunicator",
    "SSHConfig",
    "TARGET_TYPES",
    "build_communicator",
    "parse_timeout",
    "run_process",
]
