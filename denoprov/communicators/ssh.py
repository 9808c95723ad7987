"""SSH communicator built on the ssh and scp command line clients."""

import os
import shlex
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Mapping, Optional

from denoprov.communicators.base import CommandResult, Communicator, parse_timeout, run_process
from denoprov.errors import CommunicatorError
from denoprov.utils import truncate

SSH_TRANSPORT_EXIT = 255


@dataclass
class SSHConfig:
    host: str
    user: Optional[str] = None
    port: Optional[int] = None
    identity: Optional[Path] = None
    ssh_command: str = "ssh"
    scp_command: str = "scp"
    connect_timeout: float = 10.0
    command_timeout: Optional[float] = None
    options: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "SSHConfig":
        data = dict(payload)
        host = data.get("host")
        if not host:
            raise ValueError("ssh target requires 'host'")

        port = data.get("port")
        try:
            port_value = int(port) if port is not None else None
        except (TypeError, ValueError) as e:
            raise ValueError(f"ssh port must be an integer, got {port!r}") from e

        timeout = data.get("connect_timeout")
        try:
            timeout_value = float(timeout) if timeout is not None else 10.0
        except (TypeError, ValueError) as e:
            raise ValueError(f"ssh connect_timeout must be numeric, got {timeout!r}") from e

        identity = data.get("identity") or data.get("identity_file")

        return cls(
            host=str(host),
            user=str(data["user"]) if data.get("user") else None,
            port=port_value,
            identity=Path(str(identity)).expanduser() if identity else None,
            ssh_command=str(data.get("ssh_command") or "ssh"),
            scp_command=str(data.get("scp_command") or "scp"),
            connect_timeout=timeout_value,
            command_timeout=parse_timeout(data.get("command_timeout"), "ssh command_timeout"),
            options={str(k): str(v) for k, v in (data.get("options") or {}).items()},
        )


class SSHCommunicator(Communicator):
    """Remote target reached over SSH."""

    def __init__(self, config: SSHConfig):
        self.config = config

    # ------------------------------------------------------------------
    # Argument builders
    # ------------------------------------------------------------------
    def _remote_target(self) -> str:
        cfg = self.config
        return f"{cfg.user}@{cfg.host}" if cfg.user else cfg.host

    def _common_options(self) -> list[str]:
        cfg = self.config
        args = ["-o", "BatchMode=yes", "-o", f"ConnectTimeout={int(cfg.connect_timeout)}"]
        for key, value in cfg.options.items():
            args.extend(["-o", f"{key}={value}"])
        if cfg.identity:
            args.extend(["-i", str(cfg.identity)])
        return args

    def ssh_args(self, command: str) -> list[str]:
        args = [self.config.ssh_command]
        if self.config.port:
            args.extend(["-p", str(self.config.port)])
        args.extend(self._common_options())
        args.append(self._remote_target())
        args.append(command)
        return args

    def scp_args(self, source: Path, remote_path: str) -> list[str]:
        args = [self.config.scp_command]
        if self.config.port:
            args.extend(["-P", str(self.config.port)])
        args.extend(self._common_options())
        args.extend([str(source), f"{self._remote_target()}:{shlex.quote(remote_path)}"])
        return args

    # ------------------------------------------------------------------
    # Communicator
    # ------------------------------------------------------------------
    def run_command(self, command: str) -> CommandResult:
        """
        Run a command over ssh.

        ssh exits 255 when it cannot reach or authenticate to the host, so
        255 is reported as a channel failure rather than a command result.
        A remote command that itself exits 255 is reported the same way.
        """
        result = run_process(
            self.ssh_args(command), timeout=self.config.command_timeout, cancel=self.cancel
        )
        if result.exit_code == SSH_TRANSPORT_EXIT:
            raise CommunicatorError(
                f"ssh to {self._remote_target()} failed: {truncate(result.output) or 'exit status 255'}"
            )
        return result

    def upload_file(self, remote_path: str, stream: BinaryIO) -> None:
        fd, tmp_name = tempfile.mkstemp(prefix="denoprov-upload-")
        try:
            with os.fdopen(fd, "wb") as tmp:
                shutil.copyfileobj(stream, tmp)
            result = run_process(
                self.scp_args(Path(tmp_name), remote_path),
                timeout=self.config.command_timeout,
                cancel=self.cancel,
            )
        finally:
            os.unlink(tmp_name)

        if not result.success:
            raise CommunicatorError(
                f"scp to {remote_path} failed with exit status {result.exit_code}: "
                f"{truncate(result.output)}"
            )

    def describe(self) -> str:
        port = f":{self.config.port}" if self.config.port else ""
        return f"ssh://{self._remote_target()}{port}"
