"""Installer — install, uninstall and update patterns in a project.

Install walks dependencies depth first, generates manifests through the
Generator and records each install in the ledger. The ledger is loaded once
per top-level operation and shared by the nested dependency installs, so a
dependency is recorded (and persisted) before its dependent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from gitopsi.core.errors import (
    CycleDetectedError,
    DependencyFailedError,
    GitopsiError,
    LedgerError,
    NotFoundError,
)
from gitopsi.core.logging import MarketplaceLogger
from gitopsi.marketplace.conflicts import find_conflicts
from gitopsi.marketplace.generator import Generator
from gitopsi.marketplace.pattern import Dependency, Pattern
from gitopsi.marketplace.registry import PatternSource
from gitopsi.marketplace.state import STATUS_INSTALLED, InstalledPattern, LedgerState, StateStore

logger = logging.getLogger(__name__)

DEFAULT_ENVIRONMENTS = ["dev"]

STATUS_HEALTHY = "healthy"
STATUS_DEGRADED = "degraded"


@dataclass
class InstallOptions:
    version: str = ""
    config: dict[str, Any] = field(default_factory=dict)
    environments: list[str] = field(default_factory=list)
    dry_run: bool = False
    force: bool = False
    skip_deps: bool = False
    auto_approve: bool = False


@dataclass
class UninstallOptions:
    force: bool = False
    keep_files: bool = False


@dataclass
class UpdateOptions:
    version: str = ""
    force: bool = False


@dataclass
class DependencyResult:
    name: str
    version: str = ""
    status: str = ""  # installed, skipped, failed
    optional: bool = False
    message: str = ""


@dataclass
class InstallResult:
    pattern: str
    version: str = ""
    success: bool = False
    message: str = ""
    generated_paths: list[str] = field(default_factory=list)
    dependencies: list[DependencyResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _fail(result: InstallResult, exc: GitopsiError) -> GitopsiError:
    """Record a fatal error on the result and attach the result to the error."""
    result.success = False
    result.errors.append(str(exc))
    exc.result = result
    return exc


class Installer:
    """Pattern lifecycle operations against one project directory."""

    def __init__(
        self,
        source: PatternSource,
        project_dir: str | Path,
        gitops_tool: str = "argocd",
        platform: str = "kubernetes",
        repo_url: str = "",
        logger: MarketplaceLogger | None = None,
    ):
        self.source = source
        # Absolute, so every generated and recorded path is absolute
        self.project_dir = Path(project_dir).resolve()
        self.gitops_tool = gitops_tool
        self.platform = platform
        self.store = StateStore(self.project_dir / ".gitopsi" / "patterns.yaml")
        self.generator = Generator(self.project_dir, gitops_tool=gitops_tool, repo_url=repo_url)
        self.log = logger or MarketplaceLogger()

    # -- Registry helpers --

    def _fetch(self, name: str, version: str = "") -> tuple[Pattern, str]:
        """Resolve and fetch a pattern. Empty version means the registry's latest."""
        entry, registry_name = self.source.find_pattern(name)
        version = version or entry.latest
        pattern = self.source.fetch_pattern(registry_name, name, version)
        self.log.pattern_resolved(name, version, registry_name)
        return pattern, version

    # -- Install --

    def install(self, name: str, options: InstallOptions | None = None) -> InstallResult:
        """Install a pattern and, unless skip_deps, its dependencies.

        Returns an unsuccessful result without side effects when the pattern
        is already installed and force is not set. Fatal failures raise a
        GitopsiError whose ``result`` carries the partial InstallResult.
        """
        options = options or InstallOptions()
        warnings: list[str] = []
        try:
            state = self.store.load()
        except LedgerError as e:
            warnings.append(f"failed to load state: {e}")
            self.log.warning(name, warnings[-1])
            state = LedgerState()

        result = self._install(name, options, state, stack=[])
        result.warnings[:0] = warnings
        return result

    def _install(
        self,
        name: str,
        options: InstallOptions,
        state: LedgerState,
        stack: list[str],
    ) -> InstallResult:
        result = InstallResult(pattern=name)

        if name in stack:
            cycle = stack[stack.index(name):] + [name]
            raise _fail(result, CycleDetectedError(cycle))

        existing = state.patterns.get(name)
        if existing is not None and not options.force:
            result.version = existing.version
            result.message = (
                f"Pattern '{name}' is already installed (version {existing.version}). "
                "Use --force to reinstall."
            )
            return result

        self.log.operation_start("install", name, version=options.version or "latest",
                                 dry_run=options.dry_run)

        try:
            pattern, version = self._fetch(name, options.version)
        except GitopsiError as e:
            self.log.operation_finish("install", name, False, str(e))
            raise _fail(result, e)
        result.version = version

        if not pattern.is_compatible_with_platform(self.platform):
            result.warnings.append(
                f"Pattern may not be fully compatible with platform '{self.platform}'"
            )
        if not pattern.is_compatible_with_tool(self.gitops_tool):
            result.warnings.append(
                f"Pattern may not be fully compatible with GitOps tool '{self.gitops_tool}'"
            )
        for warning in result.warnings:
            self.log.warning(name, warning)

        if not options.skip_deps:
            stack.append(name)
            try:
                for dep in pattern.spec.dependencies:
                    dep_result = self._install_dependency(dep, options, state, stack)
                    result.dependencies.append(dep_result)
                    if dep_result.status == "failed" and not dep.optional:
                        self.log.operation_finish("install", name, False, dep_result.message)
                        raise _fail(result, DependencyFailedError(
                            f"required dependency '{dep.name}' failed to install: {dep_result.message}"
                        ))
            except CycleDetectedError as e:
                raise _fail(result, e)
            finally:
                stack.pop()

        config = pattern.merge_config_with_defaults(options.config)
        try:
            pattern.validate_config(config)
        except GitopsiError as e:
            self.log.operation_finish("install", name, False, str(e))
            raise _fail(result, e)

        environments = list(options.environments) or list(DEFAULT_ENVIRONMENTS)

        if options.dry_run:
            result.generated_paths = self.generator.plan(pattern, config, environments)
            result.success = True
            result.message = "Dry run - no changes made"
            self.log.operation_finish("install", name, True, result.message)
            return result

        try:
            result.generated_paths = self.generator.generate(pattern, config, environments)
        except GitopsiError as e:
            self.log.operation_finish("install", name, False, str(e))
            raise _fail(result, e)
        self.log.files_written(name, result.generated_paths)

        now = datetime.now(timezone.utc)
        record = InstalledPattern(
            pattern=pattern,
            installed_at=now,
            config=config,
            environments=environments,
            status=STATUS_INSTALLED,
            paths=list(result.generated_paths),
        )
        if existing is not None:
            record.installed_at = existing.installed_at
            record.updated_at = now
            self._remove_stale(name, existing.paths, result)
        state.patterns[name] = record

        try:
            self.store.save(state)
            self.log.ledger_saved(self.store.path, len(state.patterns))
        except LedgerError as e:
            result.warnings.append(f"failed to save state: {e}")
            self.log.warning(name, result.warnings[-1])

        result.success = True
        result.message = f"Pattern '{name}' version {version} installed successfully"
        self.log.operation_finish("install", name, True, result.message)
        return result

    def _install_dependency(
        self,
        dep: Dependency,
        options: InstallOptions,
        state: LedgerState,
        stack: list[str],
    ) -> DependencyResult:
        parent = stack[-1]
        result = DependencyResult(name=dep.name, version=dep.version, optional=dep.optional)

        existing = state.patterns.get(dep.name)
        if existing is not None:
            result.status = "skipped"
            result.message = f"already installed (v{existing.version})"
            self.log.dependency_result(parent, dep.name, result.status, result.message)
            return result

        dep_options = InstallOptions(
            version=dep.version,
            config={},
            dry_run=options.dry_run,
            auto_approve=options.auto_approve,
            skip_deps=False,
        )
        try:
            installed = self._install(dep.name, dep_options, state, stack)
        except CycleDetectedError:
            raise
        except GitopsiError as e:
            result.status = "failed"
            result.message = str(e)
            self.log.dependency_result(parent, dep.name, result.status, result.message)
            return result

        result.status = "installed"
        result.version = installed.version
        result.message = installed.message if options.dry_run else "installed successfully"
        self.log.dependency_result(parent, dep.name, result.status, result.message)
        return result

    def _project_path(self, path: str) -> Path:
        """A recorded path as an absolute path; relative entries are project-relative."""
        p = Path(path)
        if not p.is_absolute():
            p = self.project_dir / p
        return p.resolve()

    def _remove_stale(self, name: str, old_paths: list[str], result: InstallResult) -> None:
        """Remove files of a previous install that the new manifest set no longer has."""
        current = {self._project_path(p) for p in result.generated_paths}
        removed: list[str] = []
        for path in old_paths:
            if self._project_path(path) in current:
                continue
            try:
                self._project_path(path).unlink(missing_ok=True)
            except OSError as e:
                result.warnings.append(f"failed to remove stale file {path}: {e}")
                continue
            removed.append(path)
        if removed:
            self.log.files_removed(name, removed)

    # -- Uninstall / update --

    def uninstall(self, name: str, options: UninstallOptions | None = None) -> None:
        """Remove a pattern's files and ledger entry. Never cascades."""
        options = options or UninstallOptions()
        state = self.store.load()

        installed = state.patterns.get(name)
        if installed is None:
            raise NotFoundError(f"pattern '{name}' is not installed")

        self.log.operation_start("uninstall", name, keep_files=options.keep_files)

        if not options.keep_files:
            removed: list[str] = []
            for path in installed.paths:
                try:
                    self._project_path(path).unlink()
                except FileNotFoundError:
                    continue
                except OSError as e:
                    if not options.force:
                        self.log.operation_finish("uninstall", name, False, str(e))
                        raise GitopsiError(f"failed to remove {path}: {e}") from e
                    logger.debug("Ignoring removal error for %s: %s", path, e)
                    continue
                removed.append(path)
            self.log.files_removed(name, removed)

        del state.patterns[name]
        self.store.save(state)
        self.log.ledger_saved(self.store.path, len(state.patterns))
        self.log.operation_finish("uninstall", name, True, "uninstalled")

    def update(self, name: str, options: UpdateOptions | None = None) -> InstallResult:
        """Update is a forced reinstall that carries over config and environments."""
        options = options or UpdateOptions()
        state = self.store.load()

        installed = state.patterns.get(name)
        if installed is None:
            raise NotFoundError(f"pattern '{name}' is not installed")

        target = options.version
        if not target:
            entry, _registry = self.source.find_pattern(name)
            target = entry.latest

        if installed.version == target and not options.force:
            return InstallResult(
                pattern=name,
                version=target,
                success=True,
                message="Already at target version",
            )

        self.log.operation_start("update", name, current=installed.version, target=target)
        return self._install(
            name,
            InstallOptions(
                version=target,
                config=dict(installed.config),
                environments=list(installed.environments),
                force=True,
            ),
            state,
            stack=[],
        )

    # -- Queries --

    def list_installed(self) -> list[InstalledPattern]:
        state = self.store.load()
        return sorted(state.patterns.values(), key=lambda p: p.name)

    def get_installed(self, name: str) -> InstalledPattern:
        state = self.store.load()
        installed = state.patterns.get(name)
        if installed is None:
            raise NotFoundError(f"pattern '{name}' is not installed")
        return installed

    def get_status(self) -> dict[str, str]:
        """healthy when every recorded path exists, degraded otherwise."""
        state = self.store.load()
        status: dict[str, str] = {}
        for name, installed in state.patterns.items():
            if all(self._project_path(p).exists() for p in installed.paths):
                status[name] = STATUS_HEALTHY
            else:
                status[name] = STATUS_DEGRADED
        return status

    def check_updates(self) -> dict[str, str]:
        """Map of installed pattern name to newer registry version.

        Patterns the registries cannot resolve are left out.
        """
        state = self.store.load()
        updates: dict[str, str] = {}
        for name, installed in state.patterns.items():
            try:
                entry, _registry = self.source.find_pattern(name)
            except GitopsiError as e:
                logger.debug("Skipping update check for %s: %s", name, e)
                continue
            if entry.latest and entry.latest != installed.version:
                updates[name] = entry.latest
        return updates

    def get_dependency_tree(self, name: str) -> dict[str, list[str]]:
        """Flat map of pattern name to its direct dependency names, resolved recursively."""
        pattern, _version = self._fetch(name)
        tree: dict[str, list[str]] = {}
        self._build_tree(pattern, tree, stack=[])
        return tree

    def _build_tree(self, pattern: Pattern, tree: dict[str, list[str]], stack: list[str]) -> None:
        if pattern.name in stack:
            raise CycleDetectedError(stack[stack.index(pattern.name):] + [pattern.name])
        if pattern.name in tree:
            return

        stack.append(pattern.name)
        deps: list[str] = []
        for dep in pattern.spec.dependencies:
            deps.append(dep.name)
            if dep.name in stack:
                raise CycleDetectedError(stack[stack.index(dep.name):] + [dep.name])
            try:
                dep_pattern, _version = self._fetch(dep.name)
            except GitopsiError as e:
                logger.debug("Cannot resolve dependency %s of %s: %s", dep.name, pattern.name, e)
                continue
            self._build_tree(dep_pattern, tree, stack)
        stack.pop()

        tree[pattern.name] = deps

    def conflict_check(self, name: str) -> list[str]:
        """Advisory namespace/component conflicts between a candidate and installed patterns."""
        pattern, _version = self._fetch(name)
        state = self.store.load()
        return find_conflicts(pattern, state.patterns)
