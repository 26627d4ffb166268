"""Manifest generation — render a pattern into Kustomize/Helm/GitOps files.

Generation happens in two phases. ``render_pattern`` builds an in-memory
ManifestSet without touching the filesystem; ``ManifestSet.commit`` writes
it. Dry-run planning uses the same ManifestSet, so planned, written and
recorded paths are identical.

Layout inside the project::

    infrastructure/<category>/<pattern>/base/<component files>
    infrastructure/<category>/<pattern>/base/kustomization.yaml
    infrastructure/<category>/<pattern>/overlays/<env>/kustomization.yaml
    <gitops-tool>/applications/<pattern>-<env>.yaml
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from gitopsi.core.errors import GenerationError, atomic_write
from gitopsi.marketplace.pattern import Component, ComponentType, Pattern, install_path

logger = logging.getLogger(__name__)

IN_CLUSTER_SERVER = "https://kubernetes.default.svc"
FLUX_NAMESPACE = "flux-system"


@dataclass
class GeneratedFile:
    path: Path
    content: str


@dataclass
class ManifestSet:
    """Ordered set of files to generate for one pattern."""

    files: list[GeneratedFile] = field(default_factory=list)

    @property
    def paths(self) -> list[str]:
        return [str(f.path) for f in self.files]

    def add(self, path: Path, document: dict[str, Any] | str) -> None:
        try:
            content = document if isinstance(document, str) else _dump(document)
        except yaml.YAMLError as e:
            raise GenerationError(f"failed to render {path.name}: {e}") from e
        self.files.append(GeneratedFile(path=path, content=content))

    def commit(self) -> list[str]:
        """Write every file. Returns the written paths in order.

        Rendering has already succeeded at this point, so a failure here can
        only come from the filesystem. Files written before the failure stay.
        """
        written: list[str] = []
        for generated in self.files:
            try:
                generated.path.parent.mkdir(parents=True, exist_ok=True)
                atomic_write(generated.path, generated.content)
            except OSError as e:
                raise GenerationError(f"failed to write {generated.path}: {e}") from e
            written.append(str(generated.path))
        logger.debug("Wrote %d manifest files", len(written))
        return written


def _dump(document: dict[str, Any]) -> str:
    return yaml.safe_dump(document, sort_keys=False, default_flow_style=False)


def merge_values(values: dict[str, Any], config: dict[str, Any]) -> dict[str, Any]:
    """Shallow merge: component values first, then config keys shadow them."""
    merged = dict(values or {})
    merged.update(config or {})
    return merged


def component_documents(comp: Component, config: dict[str, Any]) -> list[tuple[str, dict[str, Any] | str]]:
    """(filename, document) pairs for one component, in emission order.

    Operator components emit nothing at this layer.
    """
    if comp.type == ComponentType.HELM:
        repo = {
            "apiVersion": "source.toolkit.fluxcd.io/v1beta2",
            "kind": "HelmRepository",
            "metadata": {"name": comp.name},
            "spec": {"interval": "1h", "url": comp.repository},
        }
        release = {
            "apiVersion": "helm.toolkit.fluxcd.io/v2beta1",
            "kind": "HelmRelease",
            "metadata": {"name": comp.name},
            "spec": {
                "interval": "5m",
                "chart": {
                    "spec": {
                        "chart": comp.chart,
                        "version": comp.version,
                        "sourceRef": {"kind": "HelmRepository", "name": comp.name},
                    },
                },
                "values": merge_values(comp.values, config),
            },
        }
        if comp.namespace:
            repo["metadata"]["namespace"] = comp.namespace
            release["metadata"]["namespace"] = comp.namespace
        return [(f"{comp.name}-repo.yaml", repo), (f"{comp.name}-release.yaml", release)]

    if comp.type == ComponentType.KUSTOMIZE:
        kustomization = {
            "apiVersion": "kustomize.toolkit.fluxcd.io/v1",
            "kind": "Kustomization",
            "metadata": {"name": comp.name},
            "spec": {"interval": "5m", "path": comp.path, "prune": True},
        }
        return [(f"{comp.name}-kustomization.yaml", kustomization)]

    if comp.type == ComponentType.MANIFEST:
        return [(f"{comp.name}.yaml", f"# Manifest for {comp.name}\n")]

    return []


def base_kustomization(resources: list[str]) -> dict[str, Any]:
    return {
        "apiVersion": "kustomize.config.k8s.io/v1beta1",
        "kind": "Kustomization",
        "resources": list(resources),
    }


def overlay_kustomization(env: str) -> dict[str, Any]:
    return {
        "apiVersion": "kustomize.config.k8s.io/v1beta1",
        "kind": "Kustomization",
        "resources": ["../../base"],
        "commonLabels": {"environment": env},
    }


def overlay_source_path(pattern: Pattern, env: str) -> str:
    category = pattern.metadata.category.lower() or "other"
    return f"infrastructure/{category}/{pattern.name}/overlays/{env}"


def argocd_application(pattern: Pattern, env: str, repo_url: str) -> dict[str, Any]:
    return {
        "apiVersion": "argoproj.io/v1alpha1",
        "kind": "Application",
        "metadata": {"name": f"{pattern.name}-{env}"},
        "spec": {
            "project": "default",
            "source": {
                "repoURL": repo_url,
                "targetRevision": "HEAD",
                "path": overlay_source_path(pattern, env),
            },
            "destination": {"server": IN_CLUSTER_SERVER, "namespace": pattern.name},
            "syncPolicy": {"automated": {"prune": True, "selfHeal": True}},
        },
    }


def flux_kustomization(pattern: Pattern, env: str) -> dict[str, Any]:
    return {
        "apiVersion": "kustomize.toolkit.fluxcd.io/v1",
        "kind": "Kustomization",
        "metadata": {"name": f"{pattern.name}-{env}", "namespace": FLUX_NAMESPACE},
        "spec": {
            "interval": "10m",
            "path": f"./{overlay_source_path(pattern, env)}",
            "prune": True,
            "sourceRef": {"kind": "GitRepository", "name": FLUX_NAMESPACE},
            "targetNamespace": pattern.name,
        },
    }


class Generator:
    """Renders patterns into a project's GitOps layout."""

    def __init__(self, project_dir: str | Path, gitops_tool: str = "argocd", repo_url: str = ""):
        self.project_dir = Path(project_dir)
        self.gitops_tool = gitops_tool
        self.repo_url = repo_url

    def application(self, pattern: Pattern, env: str) -> dict[str, Any]:
        if self.gitops_tool == "flux":
            return flux_kustomization(pattern, env)
        return argocd_application(pattern, env, self.repo_url)

    def render(self, pattern: Pattern, config: dict[str, Any], environments: list[str]) -> ManifestSet:
        """Build the full manifest set for a pattern without writing anything."""
        manifests = ManifestSet()
        root = install_path(self.project_dir, pattern.metadata.category, pattern.name)
        base_dir = root / "base"

        resources: list[str] = []
        for comp in pattern.spec.components:
            for filename, document in component_documents(comp, config):
                manifests.add(base_dir / filename, document)
                resources.append(filename)
        manifests.add(base_dir / "kustomization.yaml", base_kustomization(resources))

        for env in environments:
            manifests.add(root / "overlays" / env / "kustomization.yaml", overlay_kustomization(env))

        app_dir = self.project_dir / self.gitops_tool / "applications"
        for env in environments:
            manifests.add(app_dir / f"{pattern.name}-{env}.yaml", self.application(pattern, env))

        return manifests

    def plan(self, pattern: Pattern, config: dict[str, Any], environments: list[str]) -> list[str]:
        """Paths that generate() would write, in the same order."""
        return self.render(pattern, config, environments).paths

    def generate(self, pattern: Pattern, config: dict[str, Any], environments: list[str]) -> list[str]:
        return self.render(pattern, config, environments).commit()
