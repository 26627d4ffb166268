"""Pattern builders and an in-memory registry for installer tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from gitopsi.core.errors import NotFoundError, RegistryError
from gitopsi.marketplace.authoring import generate_index, version_key
from gitopsi.marketplace.pattern import (
    Component,
    ConfigItem,
    Dependency,
    Pattern,
    PatternMetadata,
    PatternSpec,
)
from gitopsi.marketplace.registry import PatternIndexEntry, PatternSource


def make_pattern(
    name: str,
    version: str = "1.0.0",
    category: str = "observability",
    components: list[Component] | None = None,
    dependencies: list[Dependency] | None = None,
    config: dict[str, ConfigItem] | None = None,
    **metadata: Any,
) -> Pattern:
    """Build a valid pattern; defaults to one Helm component named after the pattern."""
    if components is None:
        components = [
            Component(
                name=name,
                type="helm",
                chart=name,
                version="1.0.0",
                repository=f"https://charts.example.com/{name}",
            ),
        ]
    return Pattern(
        metadata=PatternMetadata(
            name=name,
            version=version,
            description=metadata.pop("description", f"{name} pattern"),
            category=category,
            **metadata,
        ),
        spec=PatternSpec(
            components=components,
            dependencies=dependencies or [],
            config=config or {},
        ),
    )


class InMemoryRegistry(PatternSource):
    """PatternSource backed by a dict; latest is the highest published version."""

    name = "memory"

    def __init__(self, *patterns: Pattern):
        self.patterns: dict[str, dict[str, Pattern]] = {}
        self.fetches: list[tuple[str, str]] = []
        self.unreachable: set[str] = set()
        for pattern in patterns:
            self.add(pattern)

    def add(self, pattern: Pattern) -> Pattern:
        self.patterns.setdefault(pattern.name, {})[pattern.version] = pattern
        return pattern

    def find_pattern(self, name: str) -> tuple[PatternIndexEntry, str]:
        if name in self.unreachable:
            raise RegistryError(f"registry unreachable for '{name}'")
        versions = self.patterns.get(name)
        if not versions:
            raise NotFoundError(f"pattern '{name}' not found in any registry")
        ordered = sorted(versions, key=version_key)
        latest = versions[ordered[-1]]
        return (
            PatternIndexEntry(
                name=name,
                description=latest.metadata.description,
                category=latest.metadata.category,
                tags=list(latest.metadata.tags),
                versions=ordered,
                latest=ordered[-1],
            ),
            self.name,
        )

    def fetch_pattern(self, registry_name: str, name: str, version: str) -> Pattern:
        self.fetches.append((name, version))
        try:
            return self.patterns[name][version]
        except KeyError:
            raise NotFoundError(f"pattern '{name}' version {version} not found") from None


def write_local_registry(root: Path, *patterns: Pattern) -> Path:
    """Lay out patterns as a local registry directory with a generated index."""
    for pattern in patterns:
        pattern.save(root / "patterns" / pattern.name / pattern.version / "pattern.yaml")
    root.mkdir(parents=True, exist_ok=True)
    generate_index(root / "patterns", root / "index.yaml")
    return root
