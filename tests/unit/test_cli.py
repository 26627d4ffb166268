"""Unit tests for gitopsi CLI commands."""

from __future__ import annotations

from pathlib import Path

import click
import pytest
import yaml
from click.testing import CliRunner

from gitopsi.cli.main import load_settings, main  # noqa: I001  (must load before install_commands)
from gitopsi.cli.install_commands import parse_set_values
from gitopsi.core.config import get_settings
from gitopsi.marketplace.registry import Registry, RegistryType, load_registries, save_registries
from gitopsi.marketplace.state import StateStore
from tests.helpers.patterns import write_local_registry


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def home(tmp_path):
    """GITOPSI_HOME_DIR as set by the autouse settings fixture."""
    return tmp_path / "home"


@pytest.fixture
def local_registry(tmp_path, home, monitoring, cert_manager):
    """A local registry holding monitoring and cert-manager, configured as the only registry."""
    root = write_local_registry(tmp_path / "registry", monitoring, cert_manager)
    save_registries(home / "registries.yaml", [
        Registry(name="local", type=RegistryType.LOCAL, url=str(root), priority=10),
    ])
    return root


@pytest.fixture
def invoke(runner, project_dir, local_registry):
    """Invoke the CLI against the test project."""

    def _invoke(*args, **kwargs):
        return runner.invoke(main, ["--project-dir", str(project_dir), *args], **kwargs)

    return _invoke


def _ledger(project_dir):
    return StateStore(project_dir / ".gitopsi" / "patterns.yaml").load()


def test_main_help(runner):
    """gitopsi --help lists the command groups."""
    result = runner.invoke(main, ["--help"])
    assert result.exit_code == 0
    for command in ("install", "patterns", "marketplace", "pattern", "registry"):
        assert command in result.output


def test_invalid_gitops_tool(runner):
    result = runner.invoke(main, ["--gitops-tool", "jenkins", "patterns", "list"])
    assert result.exit_code == 2


def test_flag_overrides_leave_cached_settings_alone(project_dir):
    ctx = click.Context(main, obj={"overrides": {"platform": "openshift", "project_dir": project_dir, "gitops_tool": None}})

    settings = load_settings(ctx)

    assert settings.platform == "openshift"
    assert settings.project_dir == project_dir
    assert settings.gitops_tool == "argocd"
    assert get_settings().platform == "kubernetes"
    assert get_settings().project_dir == Path(".")


class TestParseSetValues:
    def test_yaml_scalars(self):
        assert parse_set_values(("replicas=3", "enabled=true", "retention=30d", "empty=")) == {
            "replicas": 3,
            "enabled": True,
            "retention": "30d",
            "empty": "",
        }

    def test_missing_equals(self):
        with pytest.raises(click.BadParameter):
            parse_set_values(("replicas",))


class TestInstall:
    def test_install(self, invoke, project_dir):
        result = invoke("install", "monitoring", "--set", "replicas=3", "--env", "dev", "--env", "prod")
        assert result.exit_code == 0, result.output
        assert "installed successfully" in result.output

        installed = _ledger(project_dir).patterns["monitoring"]
        assert installed.config == {"retention": "15d", "replicas": 3}
        assert installed.environments == ["dev", "prod"]
        assert (project_dir / "argocd" / "applications" / "monitoring-prod.yaml").exists()
        assert list((project_dir / ".gitopsi" / "logs").glob("*.jsonl"))

    def test_dry_run_writes_nothing(self, invoke, project_dir):
        result = invoke("install", "monitoring", "--dry-run")
        assert result.exit_code == 0, result.output
        assert "Dry run - no changes made" in result.output
        assert list(project_dir.iterdir()) == []

    def test_already_installed(self, invoke):
        invoke("install", "monitoring")
        result = invoke("install", "monitoring")
        assert result.exit_code == 0
        assert "already installed" in result.output

    def test_config_file(self, invoke, project_dir, tmp_path):
        config = tmp_path / "values.yaml"
        config.write_text(yaml.safe_dump({"retention": "90d"}))
        result = invoke("install", "monitoring", "--config", str(config), "--set", "replicas=2")
        assert result.exit_code == 0, result.output
        assert _ledger(project_dir).patterns["monitoring"].config == {"retention": "90d", "replicas": 2}

    def test_invalid_config_fails(self, invoke, project_dir):
        result = invoke("install", "monitoring", "--set", "replicas=9")
        assert result.exit_code == 1
        assert "Error:" in result.output
        assert _ledger(project_dir).patterns == {}

    def test_unknown_pattern(self, invoke):
        result = invoke("install", "ghost")
        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "not found" in result.output


class TestPatterns:
    def test_list_empty(self, invoke):
        result = invoke("patterns", "list")
        assert result.exit_code == 0
        assert "No patterns installed" in result.output

    def test_list_and_status(self, invoke):
        invoke("install", "monitoring")
        result = invoke("patterns", "list")
        assert result.exit_code == 0
        assert "monitoring" in result.output

        result = invoke("patterns", "status")
        assert result.exit_code == 0
        assert "healthy" in result.output

    def test_remove(self, invoke, project_dir):
        invoke("install", "monitoring")
        result = invoke("patterns", "remove", "monitoring")
        assert result.exit_code == 0, result.output
        assert "Removed:" in result.output
        assert _ledger(project_dir).patterns == {}
        assert not (project_dir / "argocd" / "applications" / "monitoring-dev.yaml").exists()

    def test_remove_not_installed(self, invoke):
        result = invoke("patterns", "remove", "monitoring")
        assert result.exit_code == 1
        assert "not installed" in result.output

    def test_update_at_target(self, invoke):
        invoke("install", "monitoring")
        result = invoke("patterns", "update", "monitoring")
        assert result.exit_code == 0
        assert "Already at target version" in result.output

    def test_tree_and_conflicts(self, invoke):
        result = invoke("patterns", "tree", "monitoring")
        assert result.exit_code == 0
        assert "monitoring" in result.output

        result = invoke("patterns", "conflicts", "cert-manager")
        assert result.exit_code == 0
        assert "No conflicts" in result.output

    def test_export_and_import(self, invoke, runner, tmp_path, local_registry):
        invoke("install", "monitoring", "--set", "retention=30d")
        export = tmp_path / "export.yaml"
        result = invoke("patterns", "export", str(export))
        assert result.exit_code == 0, result.output
        assert "Exported 1 patterns" in result.output

        other = tmp_path / "other"
        other.mkdir()
        result = runner.invoke(main, ["--project-dir", str(other), "patterns", "import", str(export)])
        assert result.exit_code == 0, result.output
        assert _ledger(other).patterns["monitoring"].config["retention"] == "30d"

    def test_import_failure_exits_nonzero(self, invoke, tmp_path):
        config = tmp_path / "import.yaml"
        config.write_text(yaml.safe_dump({"patterns": [{"name": "ghost"}, {"name": "monitoring"}]}))
        result = invoke("patterns", "import", str(config))
        assert result.exit_code == 1
        assert "1 of 2 patterns failed" in result.output


class TestMarketplace:
    def test_search(self, invoke):
        result = invoke("marketplace", "search", "cert")
        assert result.exit_code == 0, result.output
        assert "cert-manager" in result.output
        assert "monitoring" not in result.output

    def test_search_no_results(self, invoke):
        result = invoke("marketplace", "search", "zzz")
        assert result.exit_code == 0
        assert "No patterns found" in result.output

    def test_info_unknown(self, invoke):
        result = invoke("marketplace", "info", "ghost")
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_categories(self, invoke):
        result = invoke("marketplace", "categories")
        assert result.exit_code == 0, result.output
        assert "observability" in result.output
        assert "security" in result.output

    def test_deps(self, invoke):
        result = invoke("marketplace", "deps", "monitoring")
        assert result.exit_code == 0, result.output
        assert "monitoring has no dependencies" in result.output

    def test_deps_unknown(self, invoke):
        result = invoke("marketplace", "deps", "ghost")
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_popular(self, invoke):
        result = invoke("marketplace", "popular", "--limit", "1")
        assert result.exit_code == 0, result.output
        assert "Popular (1)" in result.output

    def test_recommended_skips_installed(self, invoke):
        assert invoke("install", "cert-manager").exit_code == 0
        result = invoke("marketplace", "recommended")
        assert result.exit_code == 0, result.output
        assert "monitoring" in result.output
        assert "cert-manager" not in result.output

    def test_recommended_for_category(self, invoke):
        result = invoke("marketplace", "recommended", "--category", "security")
        assert result.exit_code == 0, result.output
        assert "cert-manager" in result.output
        assert "monitoring" not in result.output

    def test_suggest(self, invoke):
        assert invoke("install", "monitoring").exit_code == 0
        result = invoke("marketplace", "suggest")
        assert result.exit_code == 0, result.output
        assert "sealed-secrets" in result.output
        assert "prometheus-stack" not in result.output

    def test_metrics(self, invoke):
        assert invoke("install", "monitoring").exit_code == 0
        result = invoke("marketplace", "metrics")
        assert result.exit_code == 0, result.output
        assert "Installed patterns: 1" in result.output
        assert "Registries: 1" in result.output
        assert "observability: 1" in result.output

    def test_official(self, runner):
        result = runner.invoke(main, ["marketplace", "official"])
        assert result.exit_code == 0, result.output
        assert "prometheus-stack" in result.output
        assert "external-dns" in result.output


class TestRegistry:
    def test_list_defaults_to_official(self, runner):
        result = runner.invoke(main, ["registry", "list"])
        assert result.exit_code == 0, result.output
        assert "official" in result.output

    def test_add_and_remove(self, runner, home):
        result = runner.invoke(main, ["registry", "add", "team", "https://patterns.example.com", "--priority", "70"])
        assert result.exit_code == 0, result.output
        assert [(r.name, r.priority) for r in load_registries(home / "registries.yaml")] == [
            ("official", 100),
            ("team", 70),
        ]

        result = runner.invoke(main, ["registry", "add", "team", "https://other.example.com"])
        assert result.exit_code == 1
        assert "already exists" in result.output

        result = runner.invoke(main, ["registry", "remove", "team"])
        assert result.exit_code == 0
        assert [r.name for r in load_registries(home / "registries.yaml")] == ["official"]


class TestPatternAuthoring:
    def test_create_validate_index(self, runner, tmp_path):
        result = runner.invoke(main, ["pattern", "create", "redis", "--category", "data", "--output-dir", str(tmp_path)])
        assert result.exit_code == 0, result.output
        assert (tmp_path / "redis" / "pattern.yaml").exists()

        result = runner.invoke(main, ["pattern", "validate", str(tmp_path / "redis")])
        assert result.exit_code == 0
        assert "Valid:" in result.output

        result = runner.invoke(main, ["pattern", "index", str(tmp_path)])
        assert result.exit_code == 0, result.output
        assert "Indexed 1 patterns" in result.output
        assert (tmp_path / "index.yaml").exists()

    def test_validate_missing_definition(self, runner, tmp_path):
        result = runner.invoke(main, ["pattern", "validate", str(tmp_path)])
        assert result.exit_code == 1
        assert "missing" in result.output

    def test_publish(self, invoke, tmp_path, local_registry, runner):
        runner.invoke(main, ["pattern", "create", "redis", "--output-dir", str(tmp_path / "work")])
        result = invoke("pattern", "publish", str(tmp_path / "work" / "redis"), "--registry", "local")
        assert result.exit_code == 0, result.output
        assert (local_registry / "patterns" / "redis" / "0.1.0" / "pattern.yaml").exists()

        result = invoke("marketplace", "search", "redis")
        assert "redis" in result.output
