"""Installed pattern commands — gitopsi patterns list/status/update/remove/tree/conflicts/export/import."""

from __future__ import annotations

from pathlib import Path

import click
from rich import box
from rich.table import Table
from rich.tree import Tree

from gitopsi.cli.install_commands import print_install_result
from gitopsi.cli.main import build_marketplace, console, fail
from gitopsi.core.errors import GitopsiError

STATUS_STYLES = {"healthy": "green", "degraded": "yellow"}


@click.group()
def patterns():
    """Manage patterns installed in the project."""
    pass


@patterns.command("list")
@click.pass_context
def list_patterns(ctx: click.Context):
    """List installed patterns."""
    mp = build_marketplace(ctx)
    try:
        installed = mp.list_installed()
    except GitopsiError as e:
        fail(e)

    if not installed:
        console.print("[dim]No patterns installed.[/dim]")
        return

    table = Table(title="Installed Patterns", box=box.ROUNDED)
    table.add_column("Name", style="bold")
    table.add_column("Version")
    table.add_column("Category")
    table.add_column("Environments")
    table.add_column("Installed", style="dim")
    for p in installed:
        table.add_row(
            p.name,
            p.version,
            p.pattern.metadata.category or "-",
            ", ".join(p.environments),
            p.installed_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@patterns.command()
@click.pass_context
def status(ctx: click.Context):
    """Show health of installed patterns and available updates."""
    mp = build_marketplace(ctx)
    try:
        health = mp.get_status()
        updates = mp.check_updates()
    except GitopsiError as e:
        fail(e)

    if not health:
        console.print("[dim]No patterns installed.[/dim]")
        return

    table = Table(title="Pattern Status", box=box.ROUNDED)
    table.add_column("Name", style="bold")
    table.add_column("Status")
    table.add_column("Update")
    for name in sorted(health):
        style = STATUS_STYLES.get(health[name], "white")
        update = f"[cyan]{updates[name]}[/cyan]" if name in updates else "[dim]-[/dim]"
        table.add_row(name, f"[{style}]{health[name]}[/{style}]", update)
    console.print(table)


@patterns.command()
@click.argument("name")
@click.option("--version", "version", default="", help="Target version (default: latest)")
@click.option("--force", is_flag=True, help="Reinstall even when already at the target version")
@click.pass_context
def update(ctx: click.Context, name: str, version: str, force: bool):
    """Update an installed pattern, keeping its config and environments."""
    from gitopsi.marketplace.installer import UpdateOptions

    mp = build_marketplace(ctx)
    try:
        result = mp.update(name, UpdateOptions(version=version, force=force))
    except GitopsiError as e:
        if e.result is not None:
            print_install_result(e.result, show_errors=False)
        fail(e)
    finally:
        mp.installer.log.finish()

    print_install_result(result)
    console.print(f"[green]{result.message}[/green]")


@patterns.command()
@click.argument("name")
@click.option("--force", is_flag=True, help="Ignore file removal errors")
@click.option("--keep-files", is_flag=True, help="Only remove the ledger entry")
@click.pass_context
def remove(ctx: click.Context, name: str, force: bool, keep_files: bool):
    """Uninstall a pattern. Dependencies and dependents are left in place."""
    from gitopsi.marketplace.installer import UninstallOptions

    mp = build_marketplace(ctx)
    try:
        mp.uninstall(name, UninstallOptions(force=force, keep_files=keep_files))
    except GitopsiError as e:
        fail(e)
    finally:
        mp.installer.log.finish()

    console.print(f"[green]Removed:[/green] {name}")


def _render_tree(node: Tree, name: str, deps: dict[str, list[str]], seen: set[str]) -> None:
    for child in deps.get(name, []):
        branch = node.add(child)
        if child in seen:
            continue
        _render_tree(branch, child, deps, seen | {child})


@patterns.command()
@click.argument("name")
@click.pass_context
def tree(ctx: click.Context, name: str):
    """Show the dependency tree of a pattern."""
    mp = build_marketplace(ctx, dry_run=True)
    try:
        deps = mp.get_dependency_tree(name)
    except GitopsiError as e:
        fail(e)

    root = Tree(f"[bold]{name}[/bold]")
    _render_tree(root, name, deps, {name})
    console.print(root)


@patterns.command()
@click.argument("name")
@click.pass_context
def conflicts(ctx: click.Context, name: str):
    """Check a pattern for conflicts with installed patterns."""
    mp = build_marketplace(ctx, dry_run=True)
    try:
        found = mp.conflict_check(name)
    except GitopsiError as e:
        fail(e)

    if not found:
        console.print(f"[green]No conflicts for {name}.[/green]")
        return
    for conflict in found:
        console.print(f"[yellow]-[/yellow] {conflict}")


@patterns.command("export")
@click.argument("output", type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
def export_patterns(ctx: click.Context, output: Path):
    """Export installed patterns and their config to a YAML file."""
    mp = build_marketplace(ctx, dry_run=True)
    try:
        count = mp.export_config(output)
    except GitopsiError as e:
        fail(e)
    console.print(f"[green]Exported {count} patterns to[/green] {output}")


@patterns.command("import")
@click.argument("config", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def import_patterns(ctx: click.Context, config: Path):
    """Install every pattern listed in an exported YAML file."""
    mp = build_marketplace(ctx)
    try:
        results = mp.import_config(config)
    except GitopsiError as e:
        fail(e)
    finally:
        mp.installer.log.finish()

    failed = 0
    for result in results:
        if result.success:
            console.print(f"[green]ok[/green] {result.pattern} {result.version}")
        elif result.errors:
            failed += 1
            console.print(f"[red]failed[/red] {result.pattern}: {'; '.join(result.errors)}")
        else:
            console.print(f"[dim]--[/dim] {result.pattern}: {result.message}")

    if failed:
        fail(f"{failed} of {len(results)} patterns failed to install")
