"""gitopsi - install reusable GitOps patterns into a repository.

Usage:
    from gitopsi import InstallOptions, Marketplace, RegistryManager

    registry = RegistryManager(cache_dir="~/.gitopsi/cache")
    mp = Marketplace("./my-gitops-repo", registry, gitops_tool="argocd")
    result = mp.install("monitoring", InstallOptions(environments=["dev", "prod"]))
    print(result.generated_paths)
"""

from gitopsi.marketplace import (
    InstallOptions,
    InstallResult,
    Installer,
    Marketplace,
    Pattern,
    RegistryManager,
    UninstallOptions,
    UpdateOptions,
)

__all__ = [
    "InstallOptions",
    "InstallResult",
    "Installer",
    "Marketplace",
    "Pattern",
    "RegistryManager",
    "UninstallOptions",
    "UpdateOptions",
]

__version__ = "0.1.0"
