"""Namespace and component-name conflict detection between patterns."""

from __future__ import annotations

from gitopsi.marketplace.pattern import Pattern
from gitopsi.marketplace.state import InstalledPattern


def find_conflicts(candidate: Pattern, installed: dict[str, InstalledPattern]) -> list[str]:
    """Compare a candidate against installed patterns.

    Returns human-readable conflict strings; conflicts are advisory and never
    raised. An installed entry with the candidate's own name is skipped, so
    a reinstall does not conflict with itself.
    """
    conflicts: list[str] = []
    # The candidate's own entry is skipped by the namespace scan as well as the
    # component scan; a reinstall keeps its namespaces.
    others = {name: entry for name, entry in installed.items() if name != candidate.name}

    for comp in candidate.spec.components:
        if not comp.namespace:
            continue
        for name, entry in others.items():
            if any(c.namespace == comp.namespace for c in entry.pattern.spec.components):
                conflicts.append(
                    f"namespace conflict with '{name}': both use namespace '{comp.namespace}'"
                )

    for comp in candidate.spec.components:
        for name, entry in others.items():
            if any(c.name == comp.name for c in entry.pattern.spec.components):
                conflicts.append(
                    f"component name conflict with '{name}': both have component '{comp.name}'"
                )

    return list(dict.fromkeys(conflicts))
