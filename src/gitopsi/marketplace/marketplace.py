"""Marketplace facade — discovery, lifecycle and authoring in one place."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from gitopsi.core.errors import GitopsiError, InvalidPatternError, RegistryError, atomic_write
from gitopsi.core.logging import MarketplaceLogger
from gitopsi.marketplace.authoring import (
    PATTERN_FILE,
    generate_index,
    scaffold_pattern,
    validate_pattern_dir,
)
from gitopsi.marketplace.installer import (
    InstallOptions,
    InstallResult,
    Installer,
    UninstallOptions,
    UpdateOptions,
)
from gitopsi.marketplace.pattern import Dependency, Pattern, PatternCategory, load_pattern
from gitopsi.marketplace.registry import (
    CategoryIndexEntry,
    PatternIndexEntry,
    PatternSearchResult,
    Registry,
    RegistryManager,
    RegistryType,
    SearchOptions,
)
from gitopsi.marketplace.state import InstalledPattern

logger = logging.getLogger(__name__)


@dataclass
class PatternInfo:
    pattern: Pattern
    registry: str
    versions: list[str] = field(default_factory=list)
    rating: float = 0.0
    downloads: int = 0
    verified: bool = False
    installed: bool = False
    installed_version: str = ""
    installed_at: datetime | None = None


@dataclass
class PatternSuggestion:
    pattern: str
    reason: str
    category: str
    priority: int  # 1 is most important


@dataclass
class MarketplaceMetrics:
    installed_count: int = 0
    registries_count: int = 0
    categories: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "installed_count": self.installed_count,
            "registries_count": self.registries_count,
            "categories": dict(self.categories),
        }


# (capability, directory/pattern names that provide it, suggestion)
SUGGESTION_RULES = [
    ("monitoring", {"monitoring", "prometheus-stack"},
     PatternSuggestion("prometheus-stack", "No monitoring stack detected", PatternCategory.OBSERVABILITY.value, 1)),
    ("logging", {"logging", "loki-stack"},
     PatternSuggestion("loki-stack", "No logging solution detected", PatternCategory.OBSERVABILITY.value, 2)),
    ("ingress", {"ingress", "nginx-ingress"},
     PatternSuggestion("nginx-ingress", "No ingress controller detected", PatternCategory.NETWORKING.value, 1)),
    ("secrets", {"secrets", "sealed-secrets", "vault-integration"},
     PatternSuggestion("sealed-secrets", "No secrets management detected", PatternCategory.SECURITY.value, 1)),
]


def _official(name: str, description: str, category: PatternCategory, tags: list[str]) -> PatternIndexEntry:
    return PatternIndexEntry(
        name=name,
        description=description,
        category=category.value,
        tags=tags,
        versions=["1.0.0"],
        latest="1.0.0",
        verified=True,
    )


def official_patterns() -> list[PatternIndexEntry]:
    """The curated patterns published in the official registry."""
    return [
        _official("prometheus-stack", "Complete Prometheus + Grafana monitoring stack",
                  PatternCategory.OBSERVABILITY, ["monitoring", "observability", "alerting", "prometheus", "grafana"]),
        _official("loki-stack", "Grafana Loki for log aggregation",
                  PatternCategory.OBSERVABILITY, ["logging", "observability", "loki", "grafana"]),
        _official("cert-manager", "Automatic TLS certificate management",
                  PatternCategory.SECURITY, ["certificates", "tls", "security", "letsencrypt"]),
        _official("sealed-secrets", "Bitnami Sealed Secrets for GitOps-safe secrets",
                  PatternCategory.SECURITY, ["secrets", "encryption", "security"]),
        _official("vault-integration", "HashiCorp Vault integration with External Secrets",
                  PatternCategory.SECURITY, ["secrets", "vault", "security"]),
        _official("nginx-ingress", "NGINX Ingress Controller",
                  PatternCategory.NETWORKING, ["ingress", "networking", "nginx"]),
        _official("istio-mesh", "Istio Service Mesh with Kiali and Jaeger",
                  PatternCategory.NETWORKING, ["service-mesh", "istio", "networking", "security"]),
        _official("postgresql-operator", "CloudNativePG PostgreSQL Operator",
                  PatternCategory.DATA, ["database", "postgresql", "operator"]),
        _official("redis-operator", "Redis Operator for high availability Redis",
                  PatternCategory.DATA, ["cache", "redis", "operator"]),
        _official("kyverno-policies", "Kyverno policy engine with best practice policies",
                  PatternCategory.SECURITY, ["policies", "security", "compliance", "kyverno"]),
        _official("tekton-pipelines", "Tekton Pipelines for CI/CD",
                  PatternCategory.CICD, ["ci", "cd", "pipelines", "tekton"]),
        _official("external-dns", "External DNS for automatic DNS management",
                  PatternCategory.NETWORKING, ["dns", "networking"]),
    ]


class Marketplace:
    """Composes the registry manager and the installer for one project."""

    def __init__(
        self,
        project_dir: str | Path,
        registry: RegistryManager,
        gitops_tool: str = "argocd",
        platform: str = "kubernetes",
        repo_url: str = "",
        logger: MarketplaceLogger | None = None,
    ):
        self.project_dir = Path(project_dir)
        self.registry = registry
        self.installer = Installer(
            registry,
            self.project_dir,
            gitops_tool=gitops_tool,
            platform=platform,
            repo_url=repo_url,
            logger=logger,
        )

    def _installed_names(self) -> set[str]:
        try:
            return {p.name for p in self.installer.list_installed()}
        except GitopsiError as e:
            logger.debug("Cannot read ledger: %s", e)
            return set()

    # -- Discovery --

    def search(self, query: str = "", opts: SearchOptions | None = None) -> list[PatternSearchResult]:
        results = self.registry.search_patterns(query, opts)
        installed = self._installed_names()
        for result in results:
            result.installed = result.name in installed
        return results

    def list_categories(self) -> list[CategoryIndexEntry]:
        return self.registry.get_categories()

    def get_pattern_info(self, name: str) -> PatternInfo:
        entry, registry_name = self.registry.find_pattern(name)
        pattern = self.registry.fetch_pattern(registry_name, name, entry.latest)
        info = PatternInfo(
            pattern=pattern,
            registry=registry_name,
            versions=list(entry.versions),
            rating=entry.rating,
            downloads=entry.downloads,
            verified=entry.verified,
        )
        try:
            installed = self.installer.get_installed(name)
        except GitopsiError:
            return info
        info.installed = True
        info.installed_version = installed.version
        info.installed_at = installed.installed_at
        return info

    def get_versions(self, name: str) -> list[str]:
        return self.registry.get_pattern_versions(name)

    def get_dependencies(self, name: str) -> list[Dependency]:
        """Direct dependencies of the latest version of a pattern."""
        return list(self.get_pattern_info(name).pattern.spec.dependencies)

    def get_patterns_by_tag(self, tag: str) -> list[PatternSearchResult]:
        return self.search("", SearchOptions(tags=[tag]))

    def get_popular_patterns(self, limit: int = 10) -> list[PatternSearchResult]:
        """Most downloaded patterns first."""
        results = self.search("", SearchOptions(limit=100))
        results.sort(key=lambda r: -r.downloads)
        return results[:limit] if limit > 0 else results

    def get_recommended_patterns(self, limit: int = 10) -> list[PatternSearchResult]:
        """Patterns not yet installed.

        Those sharing a category with an installed pattern come first, then
        by rating.
        """
        try:
            installed = self.installer.list_installed()
        except GitopsiError as e:
            logger.debug("Cannot read ledger: %s", e)
            installed = []
        installed_names = {p.name for p in installed}
        categories = {p.pattern.metadata.category.lower() for p in installed}

        results = [r for r in self.search("") if r.name not in installed_names]
        results.sort(key=lambda r: (r.category.lower() not in categories, -r.rating))
        return results[:limit] if limit > 0 else results

    def get_recommended_patterns_for_category(self, category: str, limit: int = 10) -> list[PatternSearchResult]:
        results = self.search("", SearchOptions(category=category))
        results.sort(key=lambda r: -r.rating)
        return results[:limit] if limit > 0 else results

    def suggest_patterns(self) -> list[PatternSuggestion]:
        """Suggest patterns for capabilities the project does not have yet.

        A capability counts as present when a directory under
        ``infrastructure/`` (at category or pattern level) or an installed
        pattern carries one of its names.
        """
        present: set[str] = set()
        infra = self.project_dir / "infrastructure"
        if infra.is_dir():
            for child in infra.iterdir():
                if child.is_dir():
                    present.add(child.name)
                    present.update(c.name for c in child.iterdir() if c.is_dir())
        present |= self._installed_names()

        suggestions = [
            suggestion
            for _capability, names, suggestion in SUGGESTION_RULES
            if not names & present
        ]
        return sorted(suggestions, key=lambda s: s.priority)

    def get_metrics(self) -> MarketplaceMetrics:
        try:
            installed = self.installer.list_installed()
        except GitopsiError as e:
            logger.debug("Cannot read ledger: %s", e)
            installed = []

        metrics = MarketplaceMetrics(
            installed_count=len(installed),
            registries_count=len(self.registry.list_registries()),
        )
        for p in installed:
            category = p.pattern.metadata.category or "other"
            metrics.categories[category] = metrics.categories.get(category, 0) + 1
        return metrics

    # -- Lifecycle --

    def install(self, name: str, options: InstallOptions | None = None) -> InstallResult:
        return self.installer.install(name, options)

    def uninstall(self, name: str, options: UninstallOptions | None = None) -> None:
        self.installer.uninstall(name, options)

    def update(self, name: str, options: UpdateOptions | None = None) -> InstallResult:
        return self.installer.update(name, options)

    def list_installed(self) -> list[InstalledPattern]:
        return self.installer.list_installed()

    def get_status(self) -> dict[str, str]:
        return self.installer.get_status()

    def check_updates(self) -> dict[str, str]:
        return self.installer.check_updates()

    def get_dependency_tree(self, name: str) -> dict[str, list[str]]:
        return self.installer.get_dependency_tree(name)

    def conflict_check(self, name: str) -> list[str]:
        return self.installer.conflict_check(name)

    # -- Registries --

    def add_registry(self, registry: Registry) -> None:
        self.registry.add_registry(registry)

    def remove_registry(self, name: str) -> None:
        self.registry.remove_registry(name)

    def list_registries(self) -> list[Registry]:
        return self.registry.list_registries()

    # -- Authoring --

    def create_pattern(self, name: str, category: str, output_dir: str | Path | None = None) -> Pattern:
        return scaffold_pattern(name, category, output_dir or self.project_dir / "patterns")

    def validate_pattern(self, pattern_dir: str | Path) -> list[str]:
        return validate_pattern_dir(pattern_dir)

    def publish_pattern(self, pattern_dir: str | Path, registry_name: str) -> Path:
        """Copy a validated pattern into a local registry and regenerate its index.

        Advisory findings block publishing. Returns the destination directory.
        """
        pattern_dir = Path(pattern_dir)
        findings = validate_pattern_dir(pattern_dir)
        if findings:
            raise InvalidPatternError(findings)

        reg = self.registry.get_registry(registry_name)
        if reg.type != RegistryType.LOCAL:
            raise RegistryError("publishing to remote registries is not supported")

        pattern = load_pattern(pattern_dir / PATTERN_FILE)
        registry_root = Path(reg.url)
        dest = registry_root / "patterns" / pattern.name / pattern.version
        shutil.copytree(pattern_dir, dest, dirs_exist_ok=True)
        generate_index(registry_root / "patterns", registry_root / "index.yaml")
        logger.info("Published %s to %s", pattern.full_name, reg.name)
        return dest

    # -- Config export/import --

    def export_config(self, output_path: str | Path) -> int:
        """Write installed patterns (name, version, config, environments). Returns the count."""
        patterns: list[dict[str, Any]] = []
        for installed in self.list_installed():
            patterns.append({
                "name": installed.name,
                "version": installed.version,
                "config": dict(installed.config),
                "environments": list(installed.environments),
            })

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        atomic_write(output_path, yaml.safe_dump({"patterns": patterns}, sort_keys=False))
        return len(patterns)

    def import_config(self, config_path: str | Path) -> list[InstallResult]:
        """Install every pattern listed in an exported config file.

        A failing entry becomes an unsuccessful result; the batch continues.
        """
        config_path = Path(config_path)
        try:
            data = yaml.safe_load(config_path.read_text()) or {}
        except (OSError, yaml.YAMLError) as e:
            raise GitopsiError(f"failed to read config {config_path}: {e}") from e

        results: list[InstallResult] = []
        for item in data.get("patterns") or []:
            name = item.get("name", "")
            options = InstallOptions(
                version=str(item.get("version", "") or ""),
                config=dict(item.get("config") or {}),
                environments=list(item.get("environments") or []),
            )
            try:
                results.append(self.install(name, options))
            except GitopsiError as e:
                results.append(e.result or InstallResult(pattern=name, errors=[str(e)]))
        return results
