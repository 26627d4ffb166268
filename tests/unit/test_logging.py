"""Unit tests for gitopsi structured logging."""

from __future__ import annotations

import json
from io import StringIO

from rich.console import Console

from gitopsi.core.logging import MarketplaceLogger, OperationLog, Verbosity


def _console() -> tuple[Console, StringIO]:
    buf = StringIO()
    return Console(file=buf, width=200), buf


def _events(logger: MarketplaceLogger) -> list[dict]:
    return [json.loads(line) for line in logger.log_path.read_text().splitlines()]


class TestOperationLog:
    def test_creation_defaults(self):
        log = OperationLog(run_id="r1")
        assert log.operations == []
        assert log.files_written == 0
        assert log.dependencies == {"installed": 0, "skipped": 0, "failed": 0}

    def test_to_dict(self):
        log = OperationLog(
            run_id="r1",
            operations=["install:monitoring"],
            files_written=5,
            files_removed=1,
            warnings=["w"],
            total_time=0.5,
        )
        d = log.to_dict()
        assert d["run_id"] == "r1"
        assert d["operations"] == ["install:monitoring"]
        assert d["files_written"] == 5
        assert d["files_removed"] == 1
        assert d["dependencies"] == {"installed": 0, "skipped": 0, "failed": 0}
        assert d["warnings"] == ["w"]
        assert d["total_time"] == 0.5


class TestMarketplaceLogger:
    def test_no_logs_dir_writes_nothing(self, tmp_path):
        console, _ = _console()
        logger = MarketplaceLogger(console=console)
        logger.operation_start("install", "monitoring")
        assert logger.log_path is None
        assert logger.finish().operations == ["install:monitoring"]

    def test_jsonl_events(self, tmp_path):
        console, _ = _console()
        logger = MarketplaceLogger(logs_dir=tmp_path / "logs", console=console)

        logger.operation_start("install", "monitoring", version="latest", dry_run=False)
        logger.pattern_resolved("monitoring", "1.0.0", "official")
        logger.dependency_result("monitoring", "cert-manager", "installed")
        logger.dependency_result("monitoring", "tracing", "failed", "not found")
        logger.files_written("monitoring", ["a.yaml", "b.yaml"])
        logger.files_removed("monitoring", ["old.yaml"])
        logger.ledger_saved(tmp_path / "patterns.yaml", 2)
        logger.warning("monitoring", "careful")
        logger.operation_finish("install", "monitoring", True, "done")
        log = logger.finish()

        assert log.files_written == 2
        assert log.files_removed == 1
        assert log.dependencies == {"installed": 1, "skipped": 0, "failed": 1}
        assert log.warnings == ["careful"]
        assert log.total_time >= 0

        events = _events(logger)
        assert [e["event"] for e in events] == [
            "operation_start",
            "pattern_resolved",
            "dependency_result",
            "dependency_result",
            "files_written",
            "files_removed",
            "ledger_saved",
            "warning",
            "operation_finish",
            "run_finish",
        ]
        assert events[0]["version"] == "latest"
        assert events[0]["dry_run"] is False
        assert events[4]["paths"] == ["a.yaml", "b.yaml"]
        assert events[-1]["files_written"] == 2
        assert all("timestamp" in e for e in events)

    def test_log_file_named_by_run_id(self, tmp_path):
        logger = MarketplaceLogger(logs_dir=tmp_path / "logs", console=_console()[0])
        assert logger.log_path == tmp_path / "logs" / f"{logger.log.run_id}.jsonl"
        logger.close()

    def test_default_verbosity_is_quiet(self):
        console, buf = _console()
        logger = MarketplaceLogger(console=console)
        logger.operation_start("install", "monitoring")
        logger.files_written("monitoring", ["a.yaml"])
        assert buf.getvalue() == ""

    def test_verbose_shows_progress_not_debug(self):
        console, buf = _console()
        logger = MarketplaceLogger(verbosity=Verbosity.VERBOSE, console=console)
        logger.operation_start("install", "monitoring")
        logger.files_written("monitoring", ["a.yaml"])
        logger.pattern_resolved("monitoring", "1.0.0", "official")
        out = buf.getvalue()
        assert "Install: monitoring" in out
        assert "a.yaml" in out
        assert "resolved" not in out

    def test_debug_shows_resolution(self):
        console, buf = _console()
        logger = MarketplaceLogger(verbosity=Verbosity.DEBUG, console=console)
        logger.pattern_resolved("monitoring", "1.0.0", "official")
        assert "resolved monitoring@1.0.0 from official" in buf.getvalue()
