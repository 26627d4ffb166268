"""Pattern registries — index lookup, pattern fetch, search, and caching.

A registry is either a local directory or a base URL with the layout::

    index.yaml
    patterns/<name>/<version>/pattern.yaml

The installer only depends on the narrow PatternSource interface
(find_pattern + fetch_pattern); RegistryManager is the production
implementation over an ordered list of registries.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

import requests
import yaml

from gitopsi.core.errors import NotFoundError, RegistryError, atomic_write
from gitopsi.marketplace.pattern import Pattern, category_description, load_pattern, parse_pattern

logger = logging.getLogger(__name__)

OFFICIAL_REGISTRY_URL = "https://raw.githubusercontent.com/gitopsi/patterns/main"
DEFAULT_TIMEOUT = 30.0


class RegistryType(str, Enum):
    OFFICIAL = "official"
    COMMUNITY = "community"
    PRIVATE = "private"
    LOCAL = "local"


@dataclass
class RegistryAuth:
    type: str  # token, basic
    token: str = ""
    username: str = ""
    password: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> RegistryAuth:
        return cls(
            type=data.get("type", ""),
            token=data.get("token", "") or "",
            username=data.get("username", "") or "",
            password=data.get("password", "") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        data = {"type": self.type}
        for key in ("token", "username", "password"):
            if getattr(self, key):
                data[key] = getattr(self, key)
        return data


@dataclass
class Registry:
    name: str
    type: RegistryType = RegistryType.COMMUNITY
    url: str = ""
    priority: int = 0
    auth: RegistryAuth | None = None
    enabled: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> Registry:
        auth = data.get("auth")
        return cls(
            name=data.get("name", ""),
            type=RegistryType(data.get("type", RegistryType.COMMUNITY.value)),
            url=data.get("url", "") or "",
            priority=int(data.get("priority", 0) or 0),
            auth=RegistryAuth.from_dict(auth) if auth else None,
            enabled=bool(data.get("enabled", True)),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "type": self.type.value,
            "url": self.url,
            "priority": self.priority,
            "enabled": self.enabled,
        }
        if self.auth is not None:
            data["auth"] = self.auth.to_dict()
        return data


def official_registry() -> Registry:
    return Registry(
        name="official",
        type=RegistryType.OFFICIAL,
        url=OFFICIAL_REGISTRY_URL,
        priority=100,
        enabled=True,
    )


@dataclass
class PatternIndexEntry:
    name: str
    description: str = ""
    category: str = ""
    tags: list[str] = field(default_factory=list)
    versions: list[str] = field(default_factory=list)
    latest: str = ""
    author: str = ""
    rating: float = 0.0
    downloads: int = 0
    verified: bool = False
    deprecated: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> PatternIndexEntry:
        return cls(
            name=data.get("name", ""),
            description=data.get("description", "") or "",
            category=data.get("category", "") or "",
            tags=list(data.get("tags") or []),
            versions=[str(v) for v in data.get("versions") or []],
            latest=str(data.get("latest", "") or ""),
            author=data.get("author", "") or "",
            rating=float(data.get("rating", 0.0) or 0.0),
            downloads=int(data.get("downloads", 0) or 0),
            verified=bool(data.get("verified", False)),
            deprecated=bool(data.get("deprecated", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "tags": list(self.tags),
            "versions": list(self.versions),
            "latest": self.latest,
            "author": self.author,
        }
        if self.rating:
            data["rating"] = self.rating
        if self.downloads:
            data["downloads"] = self.downloads
        if self.verified:
            data["verified"] = True
        if self.deprecated:
            data["deprecated"] = True
        return data


@dataclass
class CategoryIndexEntry:
    name: str
    description: str = ""
    count: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> CategoryIndexEntry:
        return cls(
            name=data.get("name", ""),
            description=data.get("description", "") or "",
            count=int(data.get("count", 0) or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description, "count": self.count}


@dataclass
class RegistryIndex:
    version: str = "1.0"
    generated: datetime | None = None
    categories: list[CategoryIndexEntry] = field(default_factory=list)
    patterns: list[PatternIndexEntry] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> RegistryIndex:
        generated = data.get("generated")
        if isinstance(generated, str):
            generated = datetime.fromisoformat(generated)
        return cls(
            version=str(data.get("version", "1.0")),
            generated=generated,
            categories=[CategoryIndexEntry.from_dict(c) for c in data.get("categories") or []],
            patterns=[PatternIndexEntry.from_dict(p) for p in data.get("patterns") or []],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "generated": self.generated.isoformat() if self.generated else None,
            "categories": [c.to_dict() for c in self.categories],
            "patterns": [p.to_dict() for p in self.patterns],
        }

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, default_flow_style=False)


def parse_index(text: str) -> RegistryIndex:
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise RegistryError(f"failed to parse index: {e}") from e
    if not isinstance(data, dict):
        raise RegistryError("failed to parse index: document must be a mapping")
    return RegistryIndex.from_dict(data)


@dataclass
class SearchOptions:
    category: str = ""
    tags: list[str] = field(default_factory=list)
    limit: int = 0


@dataclass
class PatternSearchResult:
    name: str
    version: str
    description: str = ""
    category: str = ""
    tags: list[str] = field(default_factory=list)
    rating: float = 0.0
    downloads: int = 0
    installed: bool = False
    registry: str = ""


class PatternSource(ABC):
    """The registry operations the installer depends on."""

    @abstractmethod
    def find_pattern(self, name: str) -> tuple[PatternIndexEntry, str]:
        """Resolve a pattern name to its index entry and the registry holding it.

        Raises NotFoundError when no registry lists the name.
        """
        ...

    @abstractmethod
    def fetch_pattern(self, registry_name: str, name: str, version: str) -> Pattern:
        """Fetch a concrete pattern version from a registry."""
        ...


def matches_search(entry: PatternIndexEntry, query: str, opts: SearchOptions) -> bool:
    """Category/tag filters first, then a substring match of the lowercase query."""
    if opts.category and entry.category.lower() != opts.category.lower():
        return False

    if opts.tags:
        wanted = {t.lower() for t in opts.tags}
        if not any(tag.lower() in wanted for tag in entry.tags):
            return False

    if not query:
        return True

    if query in entry.name.lower() or query in entry.description.lower():
        return True
    return any(query in tag.lower() for tag in entry.tags)


def sort_search_results(results: list[PatternSearchResult], query: str) -> None:
    """Exact name match, then name prefix, then rating, then downloads."""
    results.sort(
        key=lambda r: (
            r.name.lower() != query,
            not r.name.lower().startswith(query),
            -r.rating,
            -r.downloads,
        )
    )


class RegistryManager(PatternSource):
    """Manages multiple pattern registries in priority order."""

    def __init__(
        self,
        cache_dir: str | Path | None = None,
        registries: list[Registry] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.cache_dir = Path(cache_dir) if cache_dir else None
        self.timeout = timeout
        self._registries: list[Registry] = (
            list(registries) if registries is not None else [official_registry()]
        )
        self._sort()

    def _sort(self) -> None:
        self._registries.sort(key=lambda r: r.priority, reverse=True)

    # -- Registry configuration --

    def add_registry(self, registry: Registry) -> None:
        if not registry.name:
            raise RegistryError("registry name is required")
        if not registry.url and registry.type != RegistryType.LOCAL:
            raise RegistryError("registry URL is required")
        if any(r.name == registry.name for r in self._registries):
            raise RegistryError(f"registry '{registry.name}' already exists")
        self._registries.append(registry)
        self._sort()

    def remove_registry(self, name: str) -> None:
        for i, reg in enumerate(self._registries):
            if reg.name == name:
                del self._registries[i]
                return
        raise NotFoundError(f"registry '{name}' not found")

    def get_registry(self, name: str) -> Registry:
        for reg in self._registries:
            if reg.name == name:
                return reg
        raise NotFoundError(f"registry '{name}' not found")

    def list_registries(self) -> list[Registry]:
        return list(self._registries)

    # -- Index access --

    def fetch_index(self, registry_name: str) -> RegistryIndex:
        reg = self.get_registry(registry_name)
        if not reg.enabled:
            raise RegistryError(f"registry '{registry_name}' is disabled")

        if reg.type == RegistryType.LOCAL:
            return self._fetch_local_index(reg)
        return self._fetch_remote_index(reg)

    def _fetch_local_index(self, reg: Registry) -> RegistryIndex:
        index_path = Path(reg.url) / "index.yaml"
        try:
            text = index_path.read_text()
        except OSError as e:
            raise RegistryError(f"failed to read local index {index_path}: {e}") from e
        return parse_index(text)

    def _fetch_remote_index(self, reg: Registry) -> RegistryIndex:
        url = f"{reg.url.rstrip('/')}/index.yaml"
        index = parse_index(self._http_get(reg, url, "index"))

        try:
            self._cache_index(reg.name, index)
        except OSError as e:
            logger.warning("Failed to cache index for %s: %s", reg.name, e)

        return index

    def _http_get(self, reg: Registry, url: str, what: str) -> str:
        headers: dict[str, str] = {}
        auth = None
        if reg.auth is not None:
            if reg.auth.type == "token":
                headers["Authorization"] = f"Bearer {reg.auth.token}"
            elif reg.auth.type == "basic":
                auth = (reg.auth.username, reg.auth.password)

        logger.debug("GET %s", url)
        try:
            resp = requests.get(url, headers=headers, auth=auth, timeout=self.timeout)
        except requests.RequestException as e:
            raise RegistryError(f"failed to fetch {what}: {e}") from e

        if resp.status_code == 404 and what == "pattern":
            raise NotFoundError(f"pattern not found: HTTP {resp.status_code} from {url}")
        if resp.status_code != 200:
            raise RegistryError(f"failed to fetch {what}: HTTP {resp.status_code} from {url}")
        return resp.text

    def _cache_path(self, registry_name: str) -> Path | None:
        if self.cache_dir is None:
            return None
        return self.cache_dir / "registries" / registry_name / "index.yaml"

    def _cache_index(self, registry_name: str, index: RegistryIndex) -> None:
        path = self._cache_path(registry_name)
        if path is None:
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        atomic_write(path, index.to_yaml())

    def get_cached_index(self, registry_name: str) -> RegistryIndex:
        path = self._cache_path(registry_name)
        if path is None:
            raise RegistryError("cache not configured")
        try:
            text = path.read_text()
        except OSError as e:
            raise RegistryError(f"cached index not found: {e}") from e
        return parse_index(text)

    def _enabled_indexes(self, use_cache: bool = False):
        """Yield (registry, index) for each reachable enabled registry."""
        for reg in self._registries:
            if not reg.enabled:
                continue
            try:
                index = self.fetch_index(reg.name)
            except RegistryError as e:
                if not use_cache:
                    logger.debug("Skipping registry %s: %s", reg.name, e)
                    continue
                try:
                    index = self.get_cached_index(reg.name)
                except RegistryError:
                    logger.debug("Skipping registry %s: %s (no cache)", reg.name, e)
                    continue
            yield reg, index

    # -- PatternSource --

    def find_pattern(self, name: str) -> tuple[PatternIndexEntry, str]:
        for reg, index in self._enabled_indexes():
            for entry in index.patterns:
                if entry.name == name:
                    return entry, reg.name
        raise NotFoundError(f"pattern '{name}' not found in any registry")

    def fetch_pattern(self, registry_name: str, name: str, version: str) -> Pattern:
        reg = self.get_registry(registry_name)
        if reg.type == RegistryType.LOCAL:
            path = Path(reg.url) / "patterns" / name / version / "pattern.yaml"
            if not path.exists():
                raise NotFoundError(f"pattern '{name}' version {version} not found in registry '{reg.name}'")
            return load_pattern(path)

        url = f"{reg.url.rstrip('/')}/patterns/{name}/{version}/pattern.yaml"
        return parse_pattern(self._http_get(reg, url, "pattern"))

    # -- Discovery --

    def search_patterns(self, query: str, opts: SearchOptions | None = None) -> list[PatternSearchResult]:
        """Search all enabled registries; the first registry listing a name wins."""
        opts = opts or SearchOptions()
        query = query.lower()
        results: list[PatternSearchResult] = []
        seen: set[str] = set()

        for reg, index in self._enabled_indexes(use_cache=True):
            for entry in index.patterns:
                if entry.name in seen or not matches_search(entry, query, opts):
                    continue
                results.append(PatternSearchResult(
                    name=entry.name,
                    version=entry.latest,
                    description=entry.description,
                    category=entry.category,
                    tags=list(entry.tags),
                    rating=entry.rating,
                    downloads=entry.downloads,
                    registry=reg.name,
                ))
                seen.add(entry.name)

        sort_search_results(results, query)
        if opts.limit > 0:
            results = results[:opts.limit]
        return results

    def get_pattern_versions(self, name: str) -> list[str]:
        entry, _ = self.find_pattern(name)
        return list(entry.versions)

    def get_categories(self) -> list[CategoryIndexEntry]:
        merged: dict[str, CategoryIndexEntry] = {}

        for _reg, index in self._enabled_indexes():
            if index.categories:
                for cat in index.categories:
                    if cat.name in merged:
                        merged[cat.name].count += cat.count
                    else:
                        merged[cat.name] = CategoryIndexEntry(cat.name, cat.description, cat.count)
                continue

            for entry in index.patterns:
                if not entry.category:
                    continue
                if entry.category not in merged:
                    merged[entry.category] = CategoryIndexEntry(
                        entry.category, category_description(entry.category), 0,
                    )
                merged[entry.category].count += 1

        return sorted(merged.values(), key=lambda c: c.name)


def load_registries(path: str | Path) -> list[Registry]:
    """Load the configured registry list; a missing file means the official registry only."""
    path = Path(path)
    if not path.exists():
        return [official_registry()]
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as e:
        raise RegistryError(f"failed to parse registries file {path}: {e}") from e
    return [Registry.from_dict(r) for r in data.get("registries") or []]


def save_registries(path: str | Path, registries: list[Registry]) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    atomic_write(
        path,
        yaml.safe_dump({"registries": [r.to_dict() for r in registries]}, sort_keys=False),
    )
