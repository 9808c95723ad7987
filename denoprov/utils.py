"""
Utility functions for denoprov.

Includes logging setup, remote path handling and formatting helpers.
"""

import json
import logging
import posixpath
from datetime import datetime, timezone
from pathlib import Path, PurePath
from typing import Optional

from rich.logging import RichHandler


LOGGER_NAME = "denoprov"


def setup_logging(
    log_file: Optional[Path] = None,
    log_level: str = "INFO",
    log_format: str = "pretty",
    console_output: bool = True,
) -> logging.Logger:
    """
    Set up logging for a provisioning run.

    Args:
        log_file: Optional path to a log file (always structured JSON)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Console format, "structured" (JSON) or "pretty" (rich)
        console_output: Also log to console

    Returns:
        Configured "denoprov" logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper()))
    logger.handlers = []  # Clear existing handlers
    logger.propagate = False

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredFormatter())
        logger.addHandler(file_handler)

    if console_output:
        if log_format == "pretty":
            console_handler = RichHandler(rich_tracebacks=True, show_time=False)
        else:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(StructuredFormatter())

        logger.addHandler(console_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add extra fields if present
        if hasattr(record, "phase"):
            log_data["phase"] = record.phase
        if hasattr(record, "event"):
            log_data["event"] = record.event
        if hasattr(record, "metadata"):
            log_data["metadata"] = record.metadata

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def remote_join(remote_dir: str, local_path: PurePath) -> str:
    """
    Destination of a local file inside a remote directory.

    The remote side always uses forward slashes, whatever the local
    host's separator is.

    Args:
        remote_dir: Remote directory (POSIX path)
        local_path: Local file whose base name is kept

    Returns:
        POSIX path remote_dir/<base name>
    """
    return posixpath.join(remote_dir.replace("\\", "/"), local_path.name)


def remote_parent(remote_path: str) -> str:
    """Parent directory of a remote POSIX path."""
    return posixpath.dirname(remote_path.rstrip("/")) or "/"


def truncate(text: Optional[str], max_length: int = 500) -> str:
    """Trim command output before it goes into a log line or error."""
    if not text:
        return ""
    text = text.strip()
    if len(text) > max_length:
        return text[:max_length] + "..."
    return text


def format_duration(seconds: float) -> str:
    """
    Format duration in seconds to human-readable string.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string (e.g., "1m 23s", "45s")
    """
    if seconds < 60:
        return f"{int(seconds)}s"

    minutes = int(seconds // 60)
    remaining_seconds = int(seconds % 60)

    if minutes < 60:
        return f"{minutes}m {remaining_seconds}s"

    hours = minutes // 60
    remaining_minutes = minutes % 60
    return f"{hours}h {remaining_minutes}m {remaining_seconds}s"
