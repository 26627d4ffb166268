"""Install ledger — which patterns are installed, with what config, where.

Stored as YAML at ``<project>/.gitopsi/patterns.yaml``::

    version: "1.0"
    updated: "2026-10-19T12:00:00+00:00"
    patterns:
      monitoring:
        pattern: {apiVersion, kind, metadata, spec}
        installed_at: ...
        updated_at: ...
        config: {...}
        environments: [dev]
        status: installed
        paths: [...]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from gitopsi.core.errors import GitopsiError, LedgerError, atomic_write
from gitopsi.marketplace.pattern import Pattern

LEDGER_VERSION = "1.0"
STATUS_INSTALLED = "installed"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


@dataclass
class InstalledPattern:
    """One ledger record: a snapshot of the pattern as installed."""

    pattern: Pattern
    installed_at: datetime = field(default_factory=_now)
    updated_at: datetime | None = None
    config: dict[str, Any] = field(default_factory=dict)
    environments: list[str] = field(default_factory=list)
    status: str = STATUS_INSTALLED
    paths: list[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.pattern.name

    @property
    def version(self) -> str:
        return self.pattern.version

    @classmethod
    def from_dict(cls, data: dict) -> InstalledPattern:
        return cls(
            pattern=Pattern.from_dict(data.get("pattern") or {}),
            installed_at=_parse_time(data.get("installed_at")) or _now(),
            updated_at=_parse_time(data.get("updated_at")),
            config=dict(data.get("config") or {}),
            environments=[str(e) for e in data.get("environments") or []],
            status=data.get("status", STATUS_INSTALLED) or STATUS_INSTALLED,
            paths=[str(p) for p in data.get("paths") or []],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "pattern": self.pattern.to_dict(),
            "installed_at": self.installed_at.isoformat(),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "config": dict(self.config),
            "environments": list(self.environments),
            "status": self.status,
            "paths": list(self.paths),
        }


@dataclass
class LedgerState:
    version: str = LEDGER_VERSION
    updated: datetime | None = None
    patterns: dict[str, InstalledPattern] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> LedgerState:
        return cls(
            version=str(data.get("version", LEDGER_VERSION)),
            updated=_parse_time(data.get("updated")),
            patterns={
                name: InstalledPattern.from_dict(entry or {})
                for name, entry in (data.get("patterns") or {}).items()
            },
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "updated": self.updated.isoformat() if self.updated else None,
            "patterns": {name: entry.to_dict() for name, entry in self.patterns.items()},
        }


class StateStore:
    """File-backed ledger with load-modify-save semantics.

    There is no cross-process lock: two invocations against the same
    project can race and the last writer wins.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> LedgerState:
        """Load the ledger. A missing file is an empty ledger."""
        if not self.path.exists():
            return LedgerState()
        try:
            data = yaml.safe_load(self.path.read_text())
        except (OSError, yaml.YAMLError) as e:
            raise LedgerError(f"failed to read ledger {self.path}: {e}") from e

        if data is None:
            return LedgerState()
        if not isinstance(data, dict):
            raise LedgerError(f"malformed ledger {self.path}: document must be a mapping")
        try:
            return LedgerState.from_dict(data)
        except (GitopsiError, TypeError, ValueError, AttributeError) as e:
            raise LedgerError(f"malformed ledger {self.path}: {e}") from e

    def save(self, state: LedgerState) -> None:
        """Stamp ``updated`` and replace the ledger file atomically."""
        state.updated = _now()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write(
                self.path,
                yaml.safe_dump(state.to_dict(), sort_keys=False, default_flow_style=False),
            )
        except OSError as e:
            raise LedgerError(f"failed to write ledger {self.path}: {e}") from e
