"""Structured logging and verbosity levels for gitopsi operations."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from pathlib import Path
from typing import Any

from rich.console import Console


class Verbosity(IntEnum):
    """Verbosity levels for console output."""

    DEFAULT = 0   # Command summary only
    VERBOSE = 1   # + per-pattern progress, files written/removed
    DEBUG = 2     # + registry resolution, ledger writes


@dataclass
class OperationLog:
    """Structured log of one CLI invocation.

    The dict format is::

        {
            "run_id": "20261019T120000Z",
            "operations": ["install:monitoring", "install:cert-manager"],
            "files_written": 7,
            "files_removed": 0,
            "dependencies": {"installed": 1, "skipped": 0, "failed": 0},
            "warnings": ["Pattern may not be fully compatible with ..."],
            "total_time": 0.4,
        }
    """

    run_id: str = ""
    operations: list[str] = field(default_factory=list)
    files_written: int = 0
    files_removed: int = 0
    dependencies: dict[str, int] = field(
        default_factory=lambda: {"installed": 0, "skipped": 0, "failed": 0}
    )
    warnings: list[str] = field(default_factory=list)
    total_time: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "operations": list(self.operations),
            "files_written": self.files_written,
            "files_removed": self.files_removed,
            "dependencies": dict(self.dependencies),
            "warnings": list(self.warnings),
            "total_time": self.total_time,
        }


class MarketplaceLogger:
    """Structured logger for pattern operations.

    Writes JSONL log files to logs_dir/ and optionally emits
    console output via Rich based on verbosity level.
    """

    def __init__(
        self,
        verbosity: Verbosity = Verbosity.DEFAULT,
        logs_dir: Path | None = None,
        console: Console | None = None,
    ):
        self.verbosity = verbosity
        self.logs_dir = logs_dir
        self.console = console or Console()
        self.log = OperationLog(
            run_id=datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ"),
        )
        self._log_file = None
        self._log_path: Path | None = None
        self._start = time.time()

        if logs_dir is not None:
            logs_dir.mkdir(parents=True, exist_ok=True)
            self._log_path = logs_dir / f"{self.log.run_id}.jsonl"
            self._log_file = open(self._log_path, "a")

    @property
    def log_path(self) -> Path | None:
        return self._log_path

    def _write_event(self, event: dict[str, Any]) -> None:
        """Write a JSON event to the JSONL log file."""
        if self._log_file is not None:
            event["timestamp"] = datetime.now(timezone.utc).isoformat()
            self._log_file.write(json.dumps(event, default=str) + "\n")
            self._log_file.flush()

    def _console_print(self, message: str, min_verbosity: Verbosity) -> None:
        """Print to console if verbosity is high enough."""
        if self.verbosity >= min_verbosity:
            self.console.print(message)

    # -- Operation events --

    def operation_start(self, operation: str, pattern: str, **details: Any) -> None:
        """Log the start of install/uninstall/update for a pattern."""
        self.log.operations.append(f"{operation}:{pattern}")
        self._write_event({
            "event": "operation_start",
            "operation": operation,
            "pattern": pattern,
            **details,
        })
        self._console_print(
            f"  [bold]{operation.capitalize()}:[/bold] {pattern}",
            Verbosity.VERBOSE,
        )

    def operation_finish(self, operation: str, pattern: str, success: bool, message: str = "") -> None:
        self._write_event({
            "event": "operation_finish",
            "operation": operation,
            "pattern": pattern,
            "success": success,
            "message": message,
        })
        marker = "[green]ok[/green]" if success else "[yellow]--[/yellow]"
        self._console_print(f"    {marker} {pattern}: {message}", Verbosity.VERBOSE)

    def pattern_resolved(self, pattern: str, version: str, registry: str) -> None:
        self._write_event({
            "event": "pattern_resolved",
            "pattern": pattern,
            "version": version,
            "registry": registry,
        })
        self._console_print(
            f"    [dim]resolved {pattern}@{version} from {registry}[/dim]",
            Verbosity.DEBUG,
        )

    def dependency_result(self, parent: str, dependency: str, status: str, message: str = "") -> None:
        """Log the outcome of one dependency install (installed, skipped, failed)."""
        if status in self.log.dependencies:
            self.log.dependencies[status] += 1
        self._write_event({
            "event": "dependency_result",
            "pattern": parent,
            "dependency": dependency,
            "status": status,
            "message": message,
        })
        self._console_print(
            f"    [cyan]dep[/cyan] {parent} -> {dependency}: {status}",
            Verbosity.VERBOSE,
        )

    def files_written(self, pattern: str, paths: list[str]) -> None:
        self.log.files_written += len(paths)
        self._write_event({
            "event": "files_written",
            "pattern": pattern,
            "paths": list(paths),
        })
        for path in paths:
            self._console_print(f"      [green]+[/green] {path}", Verbosity.VERBOSE)

    def files_removed(self, pattern: str, paths: list[str]) -> None:
        self.log.files_removed += len(paths)
        self._write_event({
            "event": "files_removed",
            "pattern": pattern,
            "paths": list(paths),
        })
        for path in paths:
            self._console_print(f"      [red]-[/red] {path}", Verbosity.VERBOSE)

    def ledger_saved(self, path: Path, pattern_count: int) -> None:
        self._write_event({
            "event": "ledger_saved",
            "path": str(path),
            "patterns": pattern_count,
        })
        self._console_print(
            f"    [dim]ledger saved: {path} ({pattern_count} patterns)[/dim]",
            Verbosity.DEBUG,
        )

    def warning(self, pattern: str, message: str) -> None:
        self.log.warnings.append(message)
        self._write_event({
            "event": "warning",
            "pattern": pattern,
            "message": message,
        })
        self._console_print(f"    [yellow]warning:[/yellow] {message}", Verbosity.VERBOSE)

    # -- Run lifecycle --

    def finish(self) -> OperationLog:
        """Finalize totals and close the log file."""
        self.log.total_time = time.time() - self._start
        self._write_event({"event": "run_finish", **self.log.to_dict()})
        self.close()
        return self.log

    def close(self) -> None:
        """Close the log file if open."""
        if self._log_file is not None:
            self._log_file.close()
            self._log_file = None
