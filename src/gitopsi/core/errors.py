"""gitopsi error types and utilities."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path


def atomic_write(path: Path, content: str) -> None:
    """Write content to a file atomically using temp file + rename.

    Writes to a temporary file in the same directory, fsyncs it,
    then atomically replaces the target path. The parent directory
    must already exist.
    """
    fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        os.write(fd, content.encode())
        os.fsync(fd)
        os.close(fd)
        os.replace(tmp, str(path))
    except BaseException:
        try:
            os.close(fd)
        except OSError:
            pass
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


class GitopsiError(Exception):
    """Base exception for gitopsi.

    When raised from an install, ``result`` holds the partially filled
    InstallResult (dependency outcomes, warnings, errors).
    """

    result = None


class NotFoundError(GitopsiError):
    """Pattern or registry not found (registry index or install ledger)."""

    pass


class RegistryError(GitopsiError):
    """Registry could not be reached or returned unreadable content."""

    pass


class InvalidPatternError(GitopsiError):
    """A pattern definition is structurally invalid."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(f"pattern validation failed: {'; '.join(self.errors)}")


class ValidationFailedError(GitopsiError):
    """Merged configuration violates the pattern's config schema."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(f"config validation failed: {'; '.join(self.errors)}")


class DependencyFailedError(GitopsiError):
    """A required dependency could not be installed."""

    pass


class CycleDetectedError(GitopsiError):
    """A pattern depends on itself, directly or transitively."""

    def __init__(self, cycle: list[str]):
        self.cycle = list(cycle)
        super().__init__(f"dependency cycle detected: {' -> '.join(self.cycle)}")


class LedgerError(GitopsiError):
    """Error reading or writing the install ledger."""

    pass


class GenerationError(GitopsiError):
    """Error writing generated manifests to disk."""

    pass
