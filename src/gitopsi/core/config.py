"""Configuration settings for gitopsi.

Resolution order: CLI flag > environment (GITOPSI_*) > .env file > defaults.

Per-project state lives under ``<project_dir>/.gitopsi``:
- patterns.yaml: install ledger
- logs/: JSONL operation logs

Per-user state lives under ``home_dir`` (default ``~/.gitopsi``):
- cache/: cached registry indexes
- registries.yaml: configured pattern registries
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

SUPPORTED_GITOPS_TOOLS = ("argocd", "flux")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="GITOPSI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    project_dir: Path = Field(default=Path("."))
    gitops_tool: str = "argocd"
    platform: str = "kubernetes"
    home_dir: Path = Field(default_factory=lambda: Path.home() / ".gitopsi")

    # Git URL stamped into generated Application manifests
    repo_url: str = ""
    environments: list[str] = Field(default_factory=lambda: ["dev"])
    http_timeout: float = 30.0

    @property
    def state_dir(self) -> Path:
        return self.project_dir / ".gitopsi"

    @property
    def state_file(self) -> Path:
        """Path to the install ledger."""
        return self.state_dir / "patterns.yaml"

    @property
    def logs_dir(self) -> Path:
        return self.state_dir / "logs"

    @property
    def cache_dir(self) -> Path:
        return self.home_dir / "cache"

    @property
    def registries_file(self) -> Path:
        return self.home_dir / "registries.yaml"

    def resolve_repo_url(self) -> str:
        """Explicit repo URL, or a conventional one derived from the project directory name."""
        if self.repo_url:
            return self.repo_url
        return f"https://github.com/org/{self.project_dir.resolve().name}.git"


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings cache (useful for testing)."""
    global _settings
    _settings = None
