"""Pattern authoring — scaffold, validate and index pattern definitions."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path

from gitopsi.core.errors import GitopsiError, InvalidPatternError, atomic_write
from gitopsi.marketplace.pattern import (
    Component,
    ComponentType,
    ConfigItem,
    ConfigType,
    Pattern,
    ValidationCheck,
    category_description,
    load_pattern,
    new_pattern,
)
from gitopsi.marketplace.registry import CategoryIndexEntry, PatternIndexEntry, RegistryIndex

logger = logging.getLogger(__name__)

PATTERN_FILE = "pattern.yaml"
README_FILE = "README.md"


def version_key(version: str) -> tuple:
    """Sort key for dotted versions: numeric parts compare numerically.

    ``1.10.0`` sorts after ``1.9.0``; a leading ``v`` is ignored.
    """
    parts = re.split(r"[.\-+]", version.lstrip("v"))
    return tuple((0, int(p), "") if p.isdigit() else (1, 0, p) for p in parts)


def scaffold_pattern(name: str, category: str, output_dir: str | Path) -> Pattern:
    """Write a starter ``pattern.yaml`` and ``README.md`` to ``<output_dir>/<name>/``."""
    pattern = new_pattern(name, "0.1.0", f"A GitOps pattern for {name}")
    pattern.metadata.category = category
    pattern.metadata.author = "your-name"
    pattern.metadata.tags = [category] if category else []

    pattern.spec.components = [
        Component(
            name=name,
            type=ComponentType.HELM.value,
            chart="example/chart",
            version="1.0.0",
            repository="https://charts.example.com",
        ),
    ]
    pattern.spec.config = {
        "replicas": ConfigItem(
            type=ConfigType.INTEGER.value, default=1, description="Number of replicas",
        ),
        "enabled": ConfigItem(
            type=ConfigType.BOOLEAN.value, default=True, description="Enable the component",
        ),
    }
    pattern.spec.validation = [
        ValidationCheck(name="deployment-ready", check=f"deployment/{name} ready", timeout="5m"),
    ]

    pattern_dir = Path(output_dir) / name
    pattern.save(pattern_dir / PATTERN_FILE)
    atomic_write(pattern_dir / README_FILE, render_readme(pattern))
    return pattern


def render_readme(pattern: Pattern) -> str:
    lines = [
        f"# {pattern.name}",
        "",
        pattern.metadata.description,
        "",
        "## Installation",
        "",
        "```bash",
        f"gitopsi install {pattern.name}",
        "```",
        "",
        "## Configuration",
        "",
        "| Key | Type | Default | Description |",
        "|-----|------|---------|-------------|",
    ]
    for key, item in pattern.spec.config.items():
        default = "" if item.default is None else item.default
        lines.append(f"| {key} | {item.type} | {default} | {item.description} |")

    lines += ["", "## Components", ""]
    for comp in pattern.spec.components:
        version = f" ({comp.version})" if comp.version else ""
        lines.append(f"- **{comp.name}**: {comp.type}{version}")

    return "\n".join(lines) + "\n"


def validate_pattern_dir(pattern_dir: str | Path) -> list[str]:
    """Validate a pattern directory.

    Raises InvalidPatternError when ``pattern.yaml`` is missing or invalid.
    Returns advisory findings (missing README, unknown component types).
    """
    pattern_dir = Path(pattern_dir)
    pattern_path = pattern_dir / PATTERN_FILE
    if not pattern_path.exists():
        raise InvalidPatternError([f"{PATTERN_FILE} is missing in {pattern_dir}"])

    pattern = load_pattern(pattern_path)
    findings: list[str] = []

    if not (pattern_dir / README_FILE).exists():
        findings.append(f"{README_FILE} is recommended but missing")

    valid_types = {t.value for t in ComponentType}
    for comp in pattern.spec.components:
        if comp.type not in valid_types:
            findings.append(f"component '{comp.name}' has invalid type '{comp.type}'")

    return findings


def build_index(patterns_dir: str | Path) -> RegistryIndex:
    """Walk a directory tree for pattern.yaml files and build a registry index.

    Invalid definitions are skipped. Multiple versions of one pattern are
    merged into one entry whose metadata comes from the highest version.
    """
    entries: dict[str, PatternIndexEntry] = {}
    latest_seen: dict[str, Pattern] = {}

    for path in sorted(Path(patterns_dir).rglob(PATTERN_FILE)):
        try:
            pattern = load_pattern(path)
        except GitopsiError as e:
            logger.debug("Skipping %s: %s", path, e)
            continue

        entry = entries.get(pattern.name)
        if entry is None:
            entry = entries[pattern.name] = PatternIndexEntry(name=pattern.name)
        if pattern.version not in entry.versions:
            entry.versions.append(pattern.version)

        current = latest_seen.get(pattern.name)
        if current is None or version_key(pattern.version) > version_key(current.version):
            latest_seen[pattern.name] = pattern

    for name, entry in entries.items():
        entry.versions.sort(key=version_key)
        latest = latest_seen[name]
        entry.latest = latest.version
        entry.description = latest.metadata.description
        entry.category = latest.metadata.category
        entry.tags = list(latest.metadata.tags)
        entry.author = latest.metadata.author

    counts: dict[str, int] = {}
    for entry in entries.values():
        if entry.category:
            counts[entry.category] = counts.get(entry.category, 0) + 1

    return RegistryIndex(
        version="1.0",
        generated=datetime.now(timezone.utc),
        categories=[
            CategoryIndexEntry(name=cat, description=category_description(cat), count=count)
            for cat, count in sorted(counts.items())
        ],
        patterns=sorted(entries.values(), key=lambda e: e.name),
    )


def generate_index(patterns_dir: str | Path, output_path: str | Path) -> RegistryIndex:
    """Build the index for ``patterns_dir`` and write it to ``output_path``."""
    index = build_index(patterns_dir)
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    atomic_write(output_path, index.to_yaml())
    return index
