"""Discovery commands — gitopsi marketplace search/info/versions/categories/deps/popular/recommended/suggest/metrics/official."""

from __future__ import annotations

import click
from rich import box
from rich.panel import Panel
from rich.table import Table

from gitopsi.cli.main import build_marketplace, console, fail
from gitopsi.core.errors import GitopsiError


@click.group()
def marketplace():
    """Discover patterns in the configured registries."""
    pass


@marketplace.command()
@click.argument("query", required=False, default="")
@click.option("--category", default="", help="Only patterns in this category")
@click.option("--tag", "tags", multiple=True, help="Only patterns with this tag (repeatable)")
@click.option("--limit", default=0, type=int, help="Maximum number of results")
@click.pass_context
def search(ctx: click.Context, query: str, category: str, tags: tuple[str, ...], limit: int):
    """Search patterns by name, description or tag."""
    from gitopsi.marketplace.registry import SearchOptions

    mp = build_marketplace(ctx, dry_run=True)
    try:
        results = mp.search(query, SearchOptions(category=category, tags=list(tags), limit=limit))
    except GitopsiError as e:
        fail(e)

    print_results(results, "Patterns")


def print_results(results, title: str) -> None:
    """Render search results as a table."""
    if not results:
        console.print("[dim]No patterns found.[/dim]")
        return

    table = Table(title=f"{title} ({len(results)})", box=box.ROUNDED)
    table.add_column("Name", style="bold")
    table.add_column("Version")
    table.add_column("Category")
    table.add_column("Description", max_width=60)
    table.add_column("Registry", style="dim")
    for r in results:
        name = f"{r.name} [green](installed)[/green]" if r.installed else r.name
        table.add_row(name, r.version, r.category, r.description, r.registry)
    console.print(table)


@marketplace.command()
@click.argument("name")
@click.pass_context
def info(ctx: click.Context, name: str):
    """Show details of a pattern."""
    mp = build_marketplace(ctx, dry_run=True)
    try:
        details = mp.get_pattern_info(name)
    except GitopsiError as e:
        fail(e)

    meta = details.pattern.metadata
    lines = [
        f"[bold]{meta.name}[/bold] {meta.version}",
        meta.description,
        "",
        f"Category: {meta.category or '-'}",
        f"Author: {meta.author or '-'}",
        f"Registry: {details.registry}",
        f"Versions: {', '.join(details.versions) or '-'}",
    ]
    if meta.tags:
        lines.append(f"Tags: {', '.join(meta.tags)}")
    if details.installed:
        lines.append(f"[green]Installed:[/green] {details.installed_version}")
    console.print(Panel("\n".join(lines), box=box.ROUNDED))

    spec = details.pattern.spec
    if spec.components:
        table = Table(title="Components", box=box.ROUNDED)
        table.add_column("Name", style="bold")
        table.add_column("Type")
        table.add_column("Namespace")
        for comp in spec.components:
            table.add_row(comp.name, comp.type, comp.namespace or "-")
        console.print(table)

    if spec.dependencies:
        console.print("[bold]Dependencies:[/bold]")
        for dep in spec.dependencies:
            optional = " [dim](optional)[/dim]" if dep.optional else ""
            console.print(f"  - {dep.name} {dep.version or 'latest'}{optional}")

    if spec.config:
        table = Table(title="Configuration", box=box.ROUNDED)
        table.add_column("Key", style="bold")
        table.add_column("Type")
        table.add_column("Default")
        table.add_column("Description")
        for key, item in spec.config.items():
            default = "" if item.default is None else str(item.default)
            table.add_row(key, item.type, default, item.description)
        console.print(table)


@marketplace.command()
@click.argument("name")
@click.pass_context
def versions(ctx: click.Context, name: str):
    """List the published versions of a pattern."""
    mp = build_marketplace(ctx, dry_run=True)
    try:
        found = mp.get_versions(name)
    except GitopsiError as e:
        fail(e)
    for version in found:
        console.print(version)


@marketplace.command()
@click.pass_context
def categories(ctx: click.Context):
    """List pattern categories."""
    mp = build_marketplace(ctx, dry_run=True)
    try:
        found = mp.list_categories()
    except GitopsiError as e:
        fail(e)

    table = Table(title="Categories", box=box.ROUNDED)
    table.add_column("Name", style="bold")
    table.add_column("Patterns", justify="right")
    table.add_column("Description")
    for cat in found:
        table.add_row(cat.name, str(cat.count), cat.description)
    console.print(table)


@marketplace.command()
@click.argument("name")
@click.pass_context
def deps(ctx: click.Context, name: str):
    """List the direct dependencies of a pattern."""
    mp = build_marketplace(ctx, dry_run=True)
    try:
        found = mp.get_dependencies(name)
    except GitopsiError as e:
        fail(e)

    if not found:
        console.print(f"[dim]{name} has no dependencies.[/dim]")
        return
    for dep in found:
        optional = " [dim](optional)[/dim]" if dep.optional else ""
        console.print(f"  - {dep.name} {dep.version or 'latest'}{optional}")


@marketplace.command()
@click.option("--limit", default=10, type=int, help="Maximum number of results")
@click.pass_context
def popular(ctx: click.Context, limit: int):
    """Show the most downloaded patterns."""
    mp = build_marketplace(ctx, dry_run=True)
    try:
        results = mp.get_popular_patterns(limit)
    except GitopsiError as e:
        fail(e)
    print_results(results, "Popular")


@marketplace.command()
@click.option("--category", default="", help="Recommend within this category only")
@click.option("--limit", default=10, type=int, help="Maximum number of results")
@click.pass_context
def recommended(ctx: click.Context, category: str, limit: int):
    """Recommend patterns that are not installed yet."""
    mp = build_marketplace(ctx, dry_run=True)
    try:
        if category:
            results = mp.get_recommended_patterns_for_category(category, limit)
        else:
            results = mp.get_recommended_patterns(limit)
    except GitopsiError as e:
        fail(e)
    print_results(results, "Recommended")


@marketplace.command()
@click.pass_context
def suggest(ctx: click.Context):
    """Suggest patterns for capabilities the project is missing."""
    mp = build_marketplace(ctx, dry_run=True)
    try:
        suggestions = mp.suggest_patterns()
    except (GitopsiError, OSError) as e:
        fail(e)

    if not suggestions:
        console.print("[green]Nothing to suggest.[/green]")
        return

    table = Table(title="Suggestions", box=box.ROUNDED)
    table.add_column("Priority", justify="right")
    table.add_column("Pattern", style="bold")
    table.add_column("Category")
    table.add_column("Reason", style="dim")
    for s in suggestions:
        table.add_row(str(s.priority), s.pattern, s.category, s.reason)
    console.print(table)


@marketplace.command()
@click.pass_context
def metrics(ctx: click.Context):
    """Show installed pattern and registry counts."""
    mp = build_marketplace(ctx, dry_run=True)
    found = mp.get_metrics()

    console.print(f"Installed patterns: {found.installed_count}")
    console.print(f"Registries: {found.registries_count}")
    for category, count in sorted(found.categories.items()):
        console.print(f"  {category}: {count}")


@marketplace.command()
def official():
    """List the curated official patterns."""
    from gitopsi.marketplace.marketplace import official_patterns

    table = Table(title="Official Patterns", box=box.ROUNDED)
    table.add_column("Name", style="bold")
    table.add_column("Category")
    table.add_column("Description")
    for entry in official_patterns():
        table.add_row(entry.name, entry.category, entry.description)
    console.print(table)
