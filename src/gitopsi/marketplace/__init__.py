"""Pattern marketplace: registries, installer, generator and install ledger."""

from gitopsi.marketplace.installer import (
    DependencyResult,
    InstallOptions,
    InstallResult,
    Installer,
    UninstallOptions,
    UpdateOptions,
)
from gitopsi.marketplace.marketplace import (
    Marketplace,
    MarketplaceMetrics,
    PatternInfo,
    PatternSuggestion,
    official_patterns,
)
from gitopsi.marketplace.pattern import Component, ComponentType, ConfigItem, Dependency, Pattern
from gitopsi.marketplace.registry import PatternSource, Registry, RegistryManager, SearchOptions
from gitopsi.marketplace.state import InstalledPattern, StateStore

__all__ = [
    "Component",
    "ComponentType",
    "ConfigItem",
    "Dependency",
    "DependencyResult",
    "InstallOptions",
    "InstallResult",
    "InstalledPattern",
    "Installer",
    "Marketplace",
    "MarketplaceMetrics",
    "Pattern",
    "PatternInfo",
    "PatternSource",
    "PatternSuggestion",
    "Registry",
    "RegistryManager",
    "SearchOptions",
    "StateStore",
    "UninstallOptions",
    "UpdateOptions",
    "official_patterns",
]
