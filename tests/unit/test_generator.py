"""Tests for manifest generation."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from gitopsi.core.errors import GenerationError
from gitopsi.marketplace.generator import Generator, ManifestSet, merge_values
from gitopsi.marketplace.pattern import Component
from tests.helpers.patterns import make_pattern

REPO_URL = "https://github.com/org/platform.git"


def _load(path: str):
    return yaml.safe_load(Path(path).read_text())


@pytest.fixture
def generator(project_dir):
    return Generator(project_dir, gitops_tool="argocd", repo_url=REPO_URL)


class TestMergeValues:
    def test_config_shadows_values(self):
        assert merge_values({"a": 1, "b": {"x": 1}}, {"b": 2, "c": 3}) == {"a": 1, "b": 2, "c": 3}

    def test_shallow(self):
        merged = merge_values({"grafana": {"enabled": True, "port": 80}}, {"grafana": {"enabled": False}})
        assert merged == {"grafana": {"enabled": False}}

    def test_inputs_not_mutated(self):
        values = {"a": 1}
        merge_values(values, {"a": 2})
        assert values == {"a": 1}


class TestRender:
    def test_monitoring_produces_five_files(self, generator, project_dir, monitoring):
        paths = generator.plan(monitoring, {"retention": "15d"}, ["dev"])
        base = project_dir / "infrastructure" / "observability" / "monitoring"
        assert paths == [
            str(base / "base" / "monitoring-repo.yaml"),
            str(base / "base" / "monitoring-release.yaml"),
            str(base / "base" / "kustomization.yaml"),
            str(base / "overlays" / "dev" / "kustomization.yaml"),
            str(project_dir / "argocd" / "applications" / "monitoring-dev.yaml"),
        ]

    def test_plan_writes_nothing(self, generator, project_dir, monitoring):
        generator.plan(monitoring, {}, ["dev", "prod"])
        assert list(project_dir.iterdir()) == []

    def test_plan_matches_generate(self, generator, monitoring):
        planned = generator.plan(monitoring, {}, ["dev", "staging"])
        written = generator.generate(monitoring, {}, ["dev", "staging"])
        assert planned == written
        assert all(Path(p).exists() for p in written)

    def test_helm_documents(self, generator, monitoring):
        paths = generator.generate(monitoring, {"retention": "30d", "replicas": 2}, ["dev"])
        repo, release = _load(paths[0]), _load(paths[1])

        assert repo["apiVersion"] == "source.toolkit.fluxcd.io/v1beta2"
        assert repo["kind"] == "HelmRepository"
        assert repo["spec"] == {
            "interval": "1h",
            "url": "https://prometheus-community.github.io/helm-charts",
        }
        assert repo["metadata"]["namespace"] == "monitoring"

        assert release["apiVersion"] == "helm.toolkit.fluxcd.io/v2beta1"
        assert release["spec"]["chart"]["spec"] == {
            "chart": "kube-prometheus-stack",
            "version": "45.0.0",
            "sourceRef": {"kind": "HelmRepository", "name": "monitoring"},
        }
        assert release["spec"]["values"] == {
            "grafana": {"enabled": True},
            "retention": "30d",
            "replicas": 2,
        }

    def test_base_kustomization_lists_component_files_in_order(self, generator, project_dir):
        pattern = make_pattern("stack", category="data", components=[
            Component(name="db", type="helm", chart="postgresql", repository="https://charts.bitnami.com"),
            Component(name="schema", type="kustomize", path="./schema"),
            Component(name="cfg", type="manifest"),
            Component(name="op", type="operator"),
        ])
        paths = generator.generate(pattern, {}, ["dev"])
        base = project_dir / "infrastructure" / "data" / "stack" / "base"

        kustomization = _load(str(base / "kustomization.yaml"))
        assert kustomization["resources"] == [
            "db-repo.yaml",
            "db-release.yaml",
            "schema-kustomization.yaml",
            "cfg.yaml",
        ]
        assert str(base / "op.yaml") not in paths

        ref = _load(str(base / "schema-kustomization.yaml"))
        assert ref["apiVersion"] == "kustomize.toolkit.fluxcd.io/v1"
        assert ref["spec"] == {"interval": "5m", "path": "./schema", "prune": True}
        assert (base / "cfg.yaml").read_text() == "# Manifest for cfg\n"

    def test_overlays_per_environment(self, generator, project_dir, monitoring):
        generator.generate(monitoring, {}, ["dev", "prod"])
        overlays = project_dir / "infrastructure" / "observability" / "monitoring" / "overlays"
        for env in ("dev", "prod"):
            overlay = _load(str(overlays / env / "kustomization.yaml"))
            assert overlay["resources"] == ["../../base"]
            assert overlay["commonLabels"] == {"environment": env}

    def test_argocd_application(self, generator, project_dir, monitoring):
        generator.generate(monitoring, {}, ["prod"])
        app = _load(str(project_dir / "argocd" / "applications" / "monitoring-prod.yaml"))
        assert app["apiVersion"] == "argoproj.io/v1alpha1"
        assert app["kind"] == "Application"
        assert app["metadata"]["name"] == "monitoring-prod"
        assert app["spec"]["project"] == "default"
        assert app["spec"]["source"] == {
            "repoURL": REPO_URL,
            "targetRevision": "HEAD",
            "path": "infrastructure/observability/monitoring/overlays/prod",
        }
        assert app["spec"]["destination"] == {
            "server": "https://kubernetes.default.svc",
            "namespace": "monitoring",
        }
        assert app["spec"]["syncPolicy"] == {"automated": {"prune": True, "selfHeal": True}}

    def test_flux_kustomization(self, project_dir, monitoring):
        generator = Generator(project_dir, gitops_tool="flux")
        paths = generator.generate(monitoring, {}, ["dev"])
        assert paths[-1] == str(project_dir / "flux" / "applications" / "monitoring-dev.yaml")

        app = _load(paths[-1])
        assert app["kind"] == "Kustomization"
        assert app["metadata"] == {"name": "monitoring-dev", "namespace": "flux-system"}
        assert app["spec"]["path"] == "./infrastructure/observability/monitoring/overlays/dev"
        assert app["spec"]["sourceRef"] == {"kind": "GitRepository", "name": "flux-system"}
        assert app["spec"]["targetNamespace"] == "monitoring"
        assert app["spec"]["prune"] is True

    def test_empty_category_uses_other(self, generator, project_dir):
        pattern = make_pattern("misc", category="")
        paths = generator.plan(pattern, {}, ["dev"])
        assert paths[0].startswith(str(project_dir / "infrastructure" / "other" / "misc"))
        app = generator.render(pattern, {}, ["dev"]).files[-1].content
        assert "infrastructure/other/misc/overlays/dev" in app


class TestManifestSet:
    def test_commit_wraps_os_errors(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        manifests = ManifestSet()
        manifests.add(blocker / "child.yaml", {"a": 1})
        with pytest.raises(GenerationError, match="failed to write"):
            manifests.commit()

    def test_unrenderable_value(self, tmp_path):
        manifests = ManifestSet()
        with pytest.raises(GenerationError, match="failed to render"):
            manifests.add(tmp_path / "x.yaml", {"value": object()})
