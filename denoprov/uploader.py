"""
Artifact upload.

Creates the remote work directory, then uploads each artifact to
<remote_work_dir>/<base name> in order. The returned manifest lists the
remote paths that were uploaded; it drives execution order.

Local artifact types:
- regular file: uploaded
- directory: configuration error, the run stops
- anything else (fifo, socket, device): logged and skipped
"""

import logging
import os
import stat
from typing import Optional

from denoprov.communicators.base import Communicator
from denoprov.errors import CommunicatorError, ConfigurationError, UploadError
from denoprov.schemas import Artifact
from denoprov.ui import NullReporter, Reporter
from denoprov.utils import remote_join

logger = logging.getLogger(__name__)


class Uploader:
    """Uploads an artifact set to the target."""

    def __init__(self, communicator: Communicator, reporter: Optional[Reporter] = None):
        self.communicator = communicator
        self.reporter = reporter or NullReporter()

    def create_work_dir(self, remote_dir: str) -> None:
        """
        Create the remote work directory; an existing one is fine.

        Raises:
            UploadError: If the directory cannot be created
        """
        self.reporter.message(f"Creating directory: {remote_dir}")
        try:
            self.communicator.create_directory(remote_dir)
        except CommunicatorError as e:
            raise UploadError(f"error creating remote directory: {e}", subject=remote_dir) from e

    def upload(self, artifacts: list[Artifact], remote_dir: str) -> list[str]:
        """
        Upload artifacts in order.

        Args:
            artifacts: Artifact set from the bundle phase
            remote_dir: Remote work directory (must already exist)

        Returns:
            Remote paths of uploaded artifacts, in artifact order

        Raises:
            ConfigurationError: If an artifact is a directory
            UploadError: If stat or transfer fails
        """
        manifest: list[str] = []

        for artifact in artifacts:
            src = artifact.path
            try:
                mode = os.stat(src).st_mode
            except OSError as e:
                raise UploadError(f"stat error: {e}", subject=str(src)) from e

            if stat.S_ISDIR(mode):
                raise ConfigurationError(f"{src} is a directory, expected deno script")

            if not stat.S_ISREG(mode):
                self.reporter.message(f"Skipping {src}: not a regular file")
                logger.warning(
                    f"Skipping {src}: not a regular file",
                    extra={"phase": "upload", "event": "upload_skipped",
                           "metadata": {"path": str(src), "mode": oct(mode)}},
                )
                continue

            dst = remote_join(remote_dir, src)
            self.reporter.message(f"Uploading {src}")
            try:
                with open(src, "rb") as f:
                    self.communicator.upload_file(dst, f)
            except (OSError, CommunicatorError) as e:
                raise UploadError(f"error uploading deno script {src}: {e}", subject=str(src)) from e

            logger.info(
                f"Uploaded {src} -> {dst}",
                extra={"phase": "upload", "event": "upload_completed",
                       "metadata": {"source": str(artifact.source), "destination": dst}},
            )
            manifest.append(dst)

        return manifest
