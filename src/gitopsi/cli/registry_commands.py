"""Registry commands — gitopsi registry list/add/remove."""

from __future__ import annotations

import click
from rich import box
from rich.table import Table

from gitopsi.cli.main import console, fail, load_settings
from gitopsi.core.errors import GitopsiError


@click.group()
def registry():
    """Manage pattern registries."""
    pass


@registry.command("list")
@click.pass_context
def list_registries(ctx: click.Context):
    """List configured registries in priority order."""
    from gitopsi.marketplace.registry import RegistryManager, load_registries

    settings = load_settings(ctx)
    try:
        manager = RegistryManager(registries=load_registries(settings.registries_file))
    except GitopsiError as e:
        fail(e)

    table = Table(title="Registries", box=box.ROUNDED)
    table.add_column("Name", style="bold")
    table.add_column("Type")
    table.add_column("URL")
    table.add_column("Priority", justify="right")
    table.add_column("Enabled")
    for reg in manager.list_registries():
        enabled = "[green]yes[/green]" if reg.enabled else "[dim]no[/dim]"
        table.add_row(reg.name, reg.type.value, reg.url, str(reg.priority), enabled)
    console.print(table)


@registry.command()
@click.argument("name")
@click.argument("url")
@click.option(
    "--type", "registry_type",
    type=click.Choice(["official", "community", "private", "local"]),
    default="community",
    help="Registry type (local registries are directories)",
)
@click.option("--priority", default=50, type=int, help="Higher priority registries are searched first")
@click.pass_context
def add(ctx: click.Context, name: str, url: str, registry_type: str, priority: int):
    """Add a registry. URL is a base URL, or a directory for local registries."""
    from gitopsi.marketplace.registry import (
        Registry,
        RegistryManager,
        RegistryType,
        load_registries,
        save_registries,
    )

    settings = load_settings(ctx)
    try:
        manager = RegistryManager(registries=load_registries(settings.registries_file))
        manager.add_registry(Registry(
            name=name, type=RegistryType(registry_type), url=url, priority=priority,
        ))
        save_registries(settings.registries_file, manager.list_registries())
    except GitopsiError as e:
        fail(e)
    console.print(f"[green]Added registry:[/green] {name}")


@registry.command()
@click.argument("name")
@click.pass_context
def remove(ctx: click.Context, name: str):
    """Remove a registry."""
    from gitopsi.marketplace.registry import RegistryManager, load_registries, save_registries

    settings = load_settings(ctx)
    try:
        manager = RegistryManager(registries=load_registries(settings.registries_file))
        manager.remove_registry(name)
        save_registries(settings.registries_file, manager.list_registries())
    except GitopsiError as e:
        fail(e)
    console.print(f"[green]Removed registry:[/green] {name}")
