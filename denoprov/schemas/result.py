"""
Run result schemas.

A run moves through phases in a fixed order:

    bundle -> install -> upload -> execute

and ends in exactly one RunResult: success, failed (naming the phase that
failed) or cancelled. There is no partial success.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class Phase(str, Enum):
    """Phases of a provisioning run, in execution order."""
    BUNDLE = "bundle"
    INSTALL = "install"
    UPLOAD = "upload"
    EXECUTE = "execute"


class RunStatus(str, Enum):
    """Terminal status of a provisioning run."""
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Artifact:
    """
    One entry of the artifact set.

    Attributes:
        source: The configured script path
        path: The local file to upload (the bundle, or source itself
              when bundling is disabled)
    """
    source: Path
    path: Path


@dataclass
class RunResult:
    """
    Result of one provisioning run.

    Attributes:
        status: success, failed or cancelled
        phase: Phase that failed or was cancelled (None on success)
        subject: Script or command that failed, if known
        error: The exception that ended the run (None on success)
        artifacts: Artifact set built by the bundle phase
        manifest: Remote paths uploaded, in execution order
        executed: Remote paths that ran to completion
    """
    status: RunStatus
    phase: Optional[Phase] = None
    subject: Optional[str] = None
    error: Optional[Exception] = None
    artifacts: list[Artifact] = field(default_factory=list)
    manifest: list[str] = field(default_factory=list)
    executed: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=_utcnow)
    ended_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return self.status == RunStatus.SUCCESS

    @property
    def duration_seconds(self) -> float:
        if self.ended_at is None:
            return 0.0
        return (self.ended_at - self.started_at).total_seconds()

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None

    def describe(self) -> str:
        """One-line human-readable summary."""
        if self.success:
            return f"provisioning succeeded ({len(self.executed)} scripts run)"
        if self.status == RunStatus.CANCELLED:
            where = f" during {self.phase.value}" if self.phase else ""
            return f"provisioning cancelled{where}"
        where = self.phase.value if self.phase else "unknown"
        subject = f" [{self.subject}]" if self.subject else ""
        return f"provisioning failed in {where} phase{subject}: {self.error_message}"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        return {
            "status": self.status.value,
            "phase": self.phase.value if self.phase else None,
            "subject": self.subject,
            "error_message": self.error_message,
            "artifacts": [
                {"source": str(a.source), "path": str(a.path)} for a in self.artifacts
            ],
            "manifest": list(self.manifest),
            "executed": list(self.executed),
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_seconds": self.duration_seconds,
        }
