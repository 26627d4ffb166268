"""Pattern authoring commands — gitopsi pattern create/validate/publish/index."""

from __future__ import annotations

from pathlib import Path

import click

from gitopsi.cli.main import build_marketplace, console, fail
from gitopsi.core.errors import GitopsiError


@click.group()
def pattern():
    """Author and publish patterns."""
    pass


@pattern.command()
@click.argument("name")
@click.option("--category", default="infrastructure", help="Pattern category")
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    help="Directory to create the pattern in",
)
def create(name: str, category: str, output_dir: Path):
    """Scaffold a new pattern directory with pattern.yaml and README.md."""
    from gitopsi.marketplace.authoring import scaffold_pattern

    try:
        scaffold_pattern(name, category, output_dir)
    except (GitopsiError, OSError) as e:
        fail(e)
    console.print(f"[green]Created:[/green] {output_dir / name}")


@pattern.command()
@click.argument(
    "directory",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path("."),
    required=False,
)
def validate(directory: Path):
    """Validate a pattern directory (defaults to the current directory)."""
    from gitopsi.marketplace.authoring import validate_pattern_dir

    try:
        findings = validate_pattern_dir(directory)
    except GitopsiError as e:
        fail(e)

    for finding in findings:
        console.print(f"[yellow]Warning:[/yellow] {finding}")
    console.print(f"[green]Valid:[/green] {directory}")


@pattern.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--registry", "registry_name", required=True, help="Local registry to publish to")
@click.pass_context
def publish(ctx: click.Context, directory: Path, registry_name: str):
    """Publish a pattern directory to a local registry."""
    mp = build_marketplace(ctx, dry_run=True)
    try:
        dest = mp.publish_pattern(directory, registry_name)
    except (GitopsiError, OSError) as e:
        fail(e)
    console.print(f"[green]Published:[/green] {dest}")


@pattern.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Index file to write (default: DIRECTORY/index.yaml)",
)
def index(directory: Path, output: Path | None):
    """Generate a registry index from a tree of pattern.yaml files."""
    from gitopsi.marketplace.authoring import generate_index

    output = output or directory / "index.yaml"
    try:
        result = generate_index(directory, output)
    except (GitopsiError, OSError) as e:
        fail(e)
    console.print(
        f"[green]Indexed {len(result.patterns)} patterns "
        f"in {len(result.categories)} categories:[/green] {output}"
    )
