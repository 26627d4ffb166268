"""Install command — gitopsi install."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import click
import yaml
from rich import box
from rich.table import Table

from gitopsi.cli.main import build_marketplace, console, fail, load_settings
from gitopsi.core.errors import GitopsiError

DEPENDENCY_STYLES = {"installed": "green", "skipped": "dim", "failed": "red"}


def parse_set_values(values: tuple[str, ...]) -> dict[str, Any]:
    """Parse ``--set key=value`` pairs; values are read as YAML scalars."""
    config: dict[str, Any] = {}
    for item in values:
        key, sep, raw = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got '{item}'", param_hint="--set")
        config[key.strip()] = yaml.safe_load(raw) if raw else ""
    return config


def load_config_file(path: Path | None) -> dict[str, Any]:
    if path is None:
        return {}
    data = yaml.safe_load(path.read_text()) or {}
    if not isinstance(data, dict):
        raise click.BadParameter("config file must contain a mapping", param_hint="--config")
    return data


def print_install_result(result, show_errors: bool = True) -> None:
    """Render an InstallResult: dependencies, files, warnings, errors."""
    if result.dependencies:
        table = Table(title="Dependencies", box=box.ROUNDED)
        table.add_column("Name", style="bold")
        table.add_column("Version")
        table.add_column("Status")
        table.add_column("Message", style="dim")
        for dep in result.dependencies:
            style = DEPENDENCY_STYLES.get(dep.status, "white")
            name = f"{dep.name} [dim](optional)[/dim]" if dep.optional else dep.name
            table.add_row(name, dep.version or "latest", f"[{style}]{dep.status}[/{style}]", dep.message)
        console.print(table)

    if result.generated_paths:
        console.print(f"[bold]Files ({len(result.generated_paths)}):[/bold]")
        for path in result.generated_paths:
            console.print(f"  {path}")

    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")
    for error in result.errors if show_errors else []:
        console.print(f"[red]Error:[/red] {error}")


@click.command()
@click.argument("name")
@click.option("--version", "version", default="", help="Pattern version (default: latest)")
@click.option(
    "--config", "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML file with configuration values",
)
@click.option("--set", "set_values", multiple=True, help="Configuration override KEY=VALUE (repeatable)")
@click.option("--env", "environments", multiple=True, help="Target environment (repeatable)")
@click.option("--dry-run", is_flag=True, help="Show what would be generated without writing")
@click.option("--force", is_flag=True, help="Reinstall even if already installed")
@click.option("--skip-deps", is_flag=True, help="Do not install dependencies")
@click.option("-y", "--yes", is_flag=True, help="Skip the conflict confirmation prompt")
@click.pass_context
def install(ctx: click.Context, name: str, version: str, config_file: Path | None,
            set_values: tuple[str, ...], environments: tuple[str, ...], dry_run: bool,
            force: bool, skip_deps: bool, yes: bool):
    """Install a pattern and its dependencies into the project.

    NAME is the pattern name as listed by the registries.
    """
    from gitopsi.marketplace.installer import InstallOptions

    config = load_config_file(config_file)
    config.update(parse_set_values(set_values))
    settings = load_settings(ctx)
    mp = build_marketplace(ctx, dry_run=dry_run)

    try:
        conflicts = mp.conflict_check(name)
    except GitopsiError as e:
        fail(e)

    if conflicts:
        console.print("[yellow]Conflicts with installed patterns:[/yellow]")
        for conflict in conflicts:
            console.print(f"  - {conflict}")
        if not yes and not dry_run and not click.confirm("Continue anyway?"):
            console.print("[dim]Aborted.[/dim]")
            return

    options = InstallOptions(
        version=version,
        config=config,
        environments=list(environments) or list(settings.environments),
        dry_run=dry_run,
        force=force,
        skip_deps=skip_deps,
        auto_approve=yes,
    )

    try:
        result = mp.install(name, options)
    except GitopsiError as e:
        if e.result is not None:
            print_install_result(e.result, show_errors=False)
        fail(e)
    finally:
        mp.installer.log.finish()

    print_install_result(result)
    if result.success:
        console.print(f"[green]{result.message}[/green]")
    else:
        console.print(f"[dim]{result.message}[/dim]")
