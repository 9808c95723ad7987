"""Tests for denoprov utilities, reporters and result schemas."""

import json
import logging
from datetime import timedelta
from pathlib import Path, PureWindowsPath

from rich.console import Console

from denoprov.errors import ExecutionError
from denoprov.schemas import Phase, RunResult, RunStatus
from denoprov.ui import ConsoleReporter
from denoprov.utils import (
    StructuredFormatter,
    format_duration,
    remote_join,
    remote_parent,
    setup_logging,
    truncate,
)


class TestRemotePaths:
    def test_join_uses_base_name(self):
        assert remote_join("/opt/work", Path("/a/b/script.ts")) == "/opt/work/script.ts"

    def test_join_windows_local_path(self):
        assert remote_join("/opt/work", PureWindowsPath(r"C:\scripts\setup.ts")) == "/opt/work/setup.ts"

    def test_join_trailing_slash(self):
        assert remote_join("/opt/work/", Path("a.ts")) == "/opt/work/a.ts"

    def test_parent(self):
        assert remote_parent("/root/.local/bin/deno") == "/root/.local/bin"
        assert remote_parent("/deno") == "/"


class TestFormatting:
    def test_truncate(self):
        assert truncate(None) == ""
        assert truncate("  short \n") == "short"
        assert truncate("x" * 20, max_length=5) == "xxxxx..."

    def test_format_duration(self):
        assert format_duration(45) == "45s"
        assert format_duration(83) == "1m 23s"
        assert format_duration(3725) == "1h 2m 5s"


class TestLogging:
    def test_structured_formatter(self):
        record = logging.LogRecord("denoprov.x", logging.INFO, __file__, 1, "uploaded", None, None)
        record.phase = "upload"
        record.event = "upload_completed"
        record.metadata = {"destination": "/tmp/w/a.ts"}

        data = json.loads(StructuredFormatter().format(record))
        assert data["message"] == "uploaded"
        assert data["level"] == "INFO"
        assert data["phase"] == "upload"
        assert data["event"] == "upload_completed"
        assert data["metadata"] == {"destination": "/tmp/w/a.ts"}

    def test_setup_logging_file(self, tmp_path):
        log_file = tmp_path / "logs" / "denoprov.jsonl"
        logger = setup_logging(log_file, "DEBUG", console_output=False)
        logging.getLogger("denoprov.provisioner").info("hello", extra={"event": "run_started"})
        for handler in logger.handlers:
            handler.flush()

        data = json.loads(log_file.read_text().splitlines()[-1])
        assert data["logger"] == "denoprov.provisioner"
        assert data["event"] == "run_started"

    def test_setup_logging_replaces_handlers(self):
        setup_logging(console_output=True)
        logger = setup_logging(console_output=True, log_format="structured")
        assert len(logger.handlers) == 1
        assert logger.propagate is False


class TestRunResult:
    """Tests for RunResult summaries."""

    def test_success(self):
        result = RunResult(status=RunStatus.SUCCESS, executed=["/tmp/w/a.ts"])
        result.ended_at = result.started_at + timedelta(seconds=3)
        assert result.success
        assert result.duration_seconds == 3
        assert result.describe() == "provisioning succeeded (1 scripts run)"

    def test_failed(self):
        error = ExecutionError("exit status 2", subject="/tmp/w/b.ts")
        result = RunResult(status=RunStatus.FAILED, phase=Phase.EXECUTE,
                           subject="/tmp/w/b.ts", error=error)
        assert not result.success
        assert result.describe() == "provisioning failed in execute phase [/tmp/w/b.ts]: exit status 2"

        data = result.to_dict()
        assert data["status"] == "failed"
        assert data["phase"] == "execute"
        assert data["error_message"] == "exit status 2"
        assert data["ended_at"] is None


class TestConsoleReporter:
    def test_escapes_markup(self):
        console = Console(record=True, width=120)
        reporter = ConsoleReporter(console)
        reporter.message("Uploading [bold]a.ts[/bold]")
        reporter.error("failed")
        text = console.export_text()
        assert "Uploading [bold]a.ts[/bold]" in text
        assert "failed" in text
