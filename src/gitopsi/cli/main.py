"""gitopsi CLI — main entry point and shared utilities."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from rich.console import Console

from gitopsi.core.config import SUPPORTED_GITOPS_TOOLS, Settings, get_settings
from gitopsi.core.logging import MarketplaceLogger, Verbosity

console = Console()

LOG_LEVELS = {0: logging.WARNING, 1: logging.INFO, 2: logging.DEBUG}


def fail(error: Exception | str) -> None:
    """Print an error and exit with status 1."""
    console.print(f"[red]Error:[/red] {error}")
    sys.exit(1)


def load_settings(ctx: click.Context) -> Settings:
    """Settings from env/.env with the global CLI flags layered on top."""
    obj = ctx.find_root().obj or {}
    overrides = {k: v for k, v in obj.get("overrides", {}).items() if v is not None}
    return get_settings().model_copy(update=overrides)


def build_marketplace(ctx: click.Context, dry_run: bool = False):
    """Construct a Marketplace for the current project.

    Dry runs get a logger without a log file so nothing under the project
    directory is touched.
    """
    from gitopsi.marketplace.marketplace import Marketplace
    from gitopsi.marketplace.registry import RegistryManager, load_registries

    settings = load_settings(ctx)
    obj = ctx.find_root().obj or {}
    registry = RegistryManager(
        cache_dir=settings.cache_dir,
        registries=load_registries(settings.registries_file),
        timeout=settings.http_timeout,
    )
    log = MarketplaceLogger(
        verbosity=Verbosity(min(obj.get("verbose", 0), Verbosity.DEBUG)),
        logs_dir=None if dry_run else settings.logs_dir,
        console=console,
    )
    return Marketplace(
        settings.project_dir,
        registry,
        gitops_tool=settings.gitops_tool,
        platform=settings.platform,
        repo_url=settings.resolve_repo_url(),
        logger=log,
    )


@click.group()
@click.option(
    "--project-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="GitOps repository to operate on (default: current directory)",
)
@click.option(
    "--gitops-tool",
    type=click.Choice(SUPPORTED_GITOPS_TOOLS),
    default=None,
    help="GitOps tool that consumes generated applications",
)
@click.option("--platform", default=None, help="Target platform, e.g. kubernetes or openshift")
@click.option("-v", "--verbose", count=True, help="Verbosity level (-v, -vv)")
@click.pass_context
def main(ctx: click.Context, project_dir: Path | None, gitops_tool: str | None,
         platform: str | None, verbose: int):
    """gitopsi — install reusable GitOps patterns into a repository."""
    logging.basicConfig(
        level=LOG_LEVELS.get(min(verbose, 2), logging.DEBUG),
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["overrides"] = {
        "project_dir": project_dir,
        "gitops_tool": gitops_tool,
        "platform": platform,
    }


def cli():
    """Entrypoint that loads .env before running the CLI."""
    from dotenv import load_dotenv

    load_dotenv()
    main()


# Import subcommand modules to register commands
from gitopsi.cli.install_commands import install  # noqa: E402
from gitopsi.cli.marketplace_commands import marketplace  # noqa: E402
from gitopsi.cli.pattern_commands import pattern  # noqa: E402
from gitopsi.cli.patterns_commands import patterns  # noqa: E402
from gitopsi.cli.registry_commands import registry  # noqa: E402

# Register commands
main.add_command(install)
main.add_command(patterns)
main.add_command(marketplace)
main.add_command(pattern)
main.add_command(registry)

