"""Shared test fixtures for gitopsi."""

from __future__ import annotations

import pytest

from gitopsi.core.config import reset_settings
from gitopsi.core.logging import MarketplaceLogger
from gitopsi.marketplace.installer import Installer
from gitopsi.marketplace.pattern import Component, ConfigItem, Dependency
from tests.helpers.patterns import InMemoryRegistry, make_pattern

REPO_URL = "https://github.com/org/platform.git"


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch, tmp_path):
    """Keep tests away from the real home directory and GITOPSI_* env vars."""
    for var in ("PROJECT_DIR", "GITOPS_TOOL", "PLATFORM", "HOME_DIR", "REPO_URL", "ENVIRONMENTS"):
        monkeypatch.delenv(f"GITOPSI_{var}", raising=False)
    monkeypatch.setenv("GITOPSI_HOME_DIR", str(tmp_path / "home"))
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def project_dir(tmp_path):
    """Empty GitOps repository."""
    d = tmp_path / "repo"
    d.mkdir()
    return d


@pytest.fixture
def monitoring():
    """monitoring v1.0.0: one Helm component in the monitoring namespace."""
    return make_pattern(
        "monitoring",
        components=[
            Component(
                name="monitoring",
                type="helm",
                chart="kube-prometheus-stack",
                version="45.0.0",
                repository="https://prometheus-community.github.io/helm-charts",
                namespace="monitoring",
                values={"grafana": {"enabled": True}, "retention": "7d"},
            ),
        ],
        config={
            "retention": ConfigItem(type="string", default="15d", description="Metrics retention"),
            "replicas": ConfigItem(type="integer", default=1, min=1, max=5),
        },
    )


@pytest.fixture
def cert_manager():
    return make_pattern("cert-manager", category="security")


@pytest.fixture
def registry(monitoring, cert_manager):
    return InMemoryRegistry(monitoring, cert_manager)


@pytest.fixture
def make_installer(registry, project_dir):
    """Installer factory bound to the shared registry and project."""

    def _make(source=None, **kwargs) -> Installer:
        kwargs.setdefault("repo_url", REPO_URL)
        kwargs.setdefault("logger", MarketplaceLogger())
        return Installer(source or registry, project_dir, **kwargs)

    return _make


@pytest.fixture
def installer(make_installer):
    return make_installer()


@pytest.fixture
def web_app(registry):
    """web-app depends on cert-manager (required) and tracing (optional, unpublished)."""
    return registry.add(make_pattern(
        "web-app",
        category="platforms",
        dependencies=[
            Dependency(name="cert-manager"),
            Dependency(name="tracing", optional=True),
        ],
    ))
