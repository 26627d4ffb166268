"""Pattern model — the installable unit of the marketplace.

A pattern is a named, versioned bundle of infrastructure components, loaded
from a ``pattern.yaml`` file that mirrors this model one to one::

    apiVersion: gitopsi.io/v1
    kind: Pattern
    metadata: {name, version, description, author, category, tags, ...}
    spec:
      platforms: [{name, minVersion, maxVersion}]
      gitops_tools: [{name, minVersion}]
      dependencies: [{name, version, optional, reason}]
      components: [{name, type, chart, repository, version, path, values, namespace, labels}]
      config: {key: {type, default, description, required, enum, min, max}}
      validation: [{name, check, timeout}]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from gitopsi.core.errors import InvalidPatternError, ValidationFailedError, atomic_write

API_VERSION = "gitopsi.io/v1"
KIND = "Pattern"


class PatternCategory(str, Enum):
    INFRASTRUCTURE = "infrastructure"
    OBSERVABILITY = "observability"
    SECURITY = "security"
    NETWORKING = "networking"
    DATA = "data"
    CICD = "cicd"
    PLATFORMS = "platforms"
    ENTERPRISE = "enterprise"


CATEGORY_DESCRIPTIONS = {
    PatternCategory.INFRASTRUCTURE: "Networking, security, storage, and compute infrastructure",
    PatternCategory.OBSERVABILITY: "Monitoring, logging, tracing, and dashboards",
    PatternCategory.SECURITY: "Secrets management, policies, scanning, and certificates",
    PatternCategory.NETWORKING: "Ingress controllers, service mesh, and DNS",
    PatternCategory.DATA: "Databases, caching, messaging, and storage",
    PatternCategory.CICD: "Pipelines, workflows, and testing",
    PatternCategory.PLATFORMS: "Platform-specific patterns (OpenShift, AWS, Azure, GCP)",
    PatternCategory.ENTERPRISE: "Multi-tenancy, compliance, and cost management",
}


def category_description(category: str) -> str:
    """Description for a known category, or an empty string."""
    try:
        return CATEGORY_DESCRIPTIONS[PatternCategory(category)]
    except ValueError:
        return ""


class ComponentType(str, Enum):
    HELM = "helm"
    KUSTOMIZE = "kustomize"
    MANIFEST = "manifest"
    OPERATOR = "operator"


class ConfigType(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    SECRET = "secret"
    ARRAY = "array"
    OBJECT = "object"


def _compact(data: dict[str, Any]) -> dict[str, Any]:
    """Drop empty optional values so serialized patterns stay readable."""
    return {k: v for k, v in data.items() if v not in (None, "", [], {}, False)}


@dataclass
class PatternMetadata:
    name: str = ""
    version: str = ""
    description: str = ""
    author: str = ""
    license: str = ""
    repository: str = ""
    tags: list[str] = field(default_factory=list)
    category: str = ""
    icon: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> PatternMetadata:
        return cls(
            name=str(data.get("name", "") or ""),
            version=str(data.get("version", "") or ""),
            description=data.get("description", "") or "",
            author=data.get("author", "") or "",
            license=data.get("license", "") or "",
            repository=data.get("repository", "") or "",
            tags=list(dict.fromkeys(data.get("tags") or [])),
            category=data.get("category", "") or "",
            icon=data.get("icon", "") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            **_compact({
                "author": self.author,
                "license": self.license,
                "repository": self.repository,
                "tags": list(self.tags),
                "category": self.category,
                "icon": self.icon,
            }),
        }


@dataclass
class PlatformRequirement:
    name: str
    min_version: str = ""
    max_version: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> PlatformRequirement:
        return cls(
            name=data.get("name", ""),
            min_version=data.get("minVersion", "") or "",
            max_version=data.get("maxVersion", "") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, **_compact({"minVersion": self.min_version, "maxVersion": self.max_version})}


@dataclass
class ToolRequirement:
    name: str
    min_version: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> ToolRequirement:
        return cls(name=data.get("name", ""), min_version=data.get("minVersion", "") or "")

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, **_compact({"minVersion": self.min_version})}


@dataclass
class Dependency:
    """Reference to another pattern. An empty version means latest."""

    name: str
    version: str = ""
    optional: bool = False
    reason: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Dependency:
        return cls(
            name=data.get("name", ""),
            version=str(data.get("version", "") or ""),
            optional=bool(data.get("optional", False)),
            reason=data.get("reason", "") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            **_compact({"version": self.version, "optional": self.optional, "reason": self.reason}),
        }


@dataclass
class Component:
    """One deployable unit within a pattern.

    ``type`` is kept as the raw string from the definition so that unknown
    types survive loading and can be reported by validate_pattern_dir.
    """

    name: str
    type: str
    chart: str = ""
    repository: str = ""
    version: str = ""
    path: str = ""
    values: dict[str, Any] = field(default_factory=dict)
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> Component:
        return cls(
            name=data.get("name", "") or "",
            type=str(data.get("type", "") or ""),
            chart=data.get("chart", "") or "",
            repository=data.get("repository", "") or "",
            version=str(data.get("version", "") or ""),
            path=data.get("path", "") or "",
            values=dict(data.get("values") or {}),
            namespace=data.get("namespace", "") or "",
            labels=dict(data.get("labels") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": str(self.type.value if isinstance(self.type, ComponentType) else self.type),
            **_compact({
                "chart": self.chart,
                "repository": self.repository,
                "version": self.version,
                "path": self.path,
                "values": dict(self.values),
                "namespace": self.namespace,
                "labels": dict(self.labels),
            }),
        }


@dataclass
class ConfigItem:
    """Schema entry for one configuration key."""

    type: str
    default: Any = None
    description: str = ""
    required: bool = False
    enum: list[str] = field(default_factory=list)
    min: int | None = None
    max: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> ConfigItem:
        return cls(
            type=str(data.get("type", "") or ""),
            default=data.get("default"),
            description=data.get("description", "") or "",
            required=bool(data.get("required", False)),
            enum=[str(e) for e in data.get("enum") or []],
            min=data.get("min"),
            max=data.get("max"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": str(self.type.value if isinstance(self.type, ConfigType) else self.type)}
        if self.default is not None:
            data["default"] = self.default
        data.update(_compact({
            "description": self.description,
            "required": self.required,
            "enum": list(self.enum),
        }))
        if self.min is not None:
            data["min"] = self.min
        if self.max is not None:
            data["max"] = self.max
        return data


@dataclass
class ValidationCheck:
    """Advisory post-install check; recorded, never executed here."""

    name: str
    check: str
    timeout: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> ValidationCheck:
        return cls(
            name=data.get("name", ""),
            check=data.get("check", ""),
            timeout=data.get("timeout", "") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "check": self.check, **_compact({"timeout": self.timeout})}


@dataclass
class PatternSpec:
    platforms: list[PlatformRequirement] = field(default_factory=list)
    gitops_tools: list[ToolRequirement] = field(default_factory=list)
    dependencies: list[Dependency] = field(default_factory=list)
    components: list[Component] = field(default_factory=list)
    config: dict[str, ConfigItem] = field(default_factory=dict)
    validation: list[ValidationCheck] = field(default_factory=list)
    docs: dict[str, str] = field(default_factory=dict)
    hooks: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> PatternSpec:
        return cls(
            platforms=[PlatformRequirement.from_dict(p) for p in data.get("platforms") or []],
            gitops_tools=[ToolRequirement.from_dict(t) for t in data.get("gitops_tools") or []],
            dependencies=[Dependency.from_dict(d) for d in data.get("dependencies") or []],
            components=[Component.from_dict(c) for c in data.get("components") or []],
            config={
                key: ConfigItem.from_dict(item or {})
                for key, item in (data.get("config") or {}).items()
            },
            validation=[ValidationCheck.from_dict(v) for v in data.get("validation") or []],
            docs=dict(data.get("docs") or {}),
            hooks=dict(data.get("hooks") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "platforms": [p.to_dict() for p in self.platforms],
            "gitops_tools": [t.to_dict() for t in self.gitops_tools],
            "dependencies": [d.to_dict() for d in self.dependencies],
            "components": [c.to_dict() for c in self.components],
            "config": {key: item.to_dict() for key, item in self.config.items()},
            "validation": [v.to_dict() for v in self.validation],
            "docs": dict(self.docs),
            "hooks": dict(self.hooks),
        })


@dataclass
class Pattern:
    """A named, versioned unit of infrastructure."""

    metadata: PatternMetadata = field(default_factory=PatternMetadata)
    spec: PatternSpec = field(default_factory=PatternSpec)
    api_version: str = API_VERSION
    kind: str = KIND

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def version(self) -> str:
        return self.metadata.version

    @property
    def full_name(self) -> str:
        return f"{self.metadata.name}@{self.metadata.version}"

    @classmethod
    def from_dict(cls, data: dict) -> Pattern:
        if not isinstance(data, dict):
            raise InvalidPatternError(["pattern document must be a mapping"])
        return cls(
            api_version=data.get("apiVersion", "") or "",
            kind=data.get("kind", "") or "",
            metadata=PatternMetadata.from_dict(data.get("metadata") or {}),
            spec=PatternSpec.from_dict(data.get("spec") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": self.metadata.to_dict(),
            "spec": self.spec.to_dict(),
        }

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, default_flow_style=False)

    def save(self, path: str | Path) -> None:
        """Write the pattern definition to a YAML file, creating parent directories."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        atomic_write(path, self.to_yaml())

    def validate(self) -> None:
        """Structural validation of the definition. Raises InvalidPatternError."""
        errors: list[str] = []

        if not self.api_version:
            errors.append("apiVersion is required")
        if self.kind != KIND:
            errors.append("kind must be 'Pattern'")
        if not self.metadata.name:
            errors.append("metadata.name is required")
        if not self.metadata.version:
            errors.append("metadata.version is required")
        if not self.metadata.description:
            errors.append("metadata.description is required")

        for i, comp in enumerate(self.spec.components):
            if not comp.name:
                errors.append(f"components[{i}].name is required")
            if not comp.type:
                errors.append(f"components[{i}].type is required")

        valid_types = {t.value for t in ConfigType}
        for key, item in self.spec.config.items():
            if not item.type:
                errors.append(f"config.{key}.type is required")
            elif item.type not in valid_types:
                errors.append(f"config.{key}.type '{item.type}' is not one of {sorted(valid_types)}")

        if errors:
            raise InvalidPatternError(errors)

    def has_dependency(self, name: str) -> bool:
        return any(dep.name == name for dep in self.spec.dependencies)

    def get_dependency(self, name: str) -> Dependency | None:
        for dep in self.spec.dependencies:
            if dep.name == name:
                return dep
        return None

    def is_compatible_with_platform(self, platform: str) -> bool:
        """True when the pattern lists no platform restriction or names this one."""
        if not self.spec.platforms:
            return True
        return any(req.name.lower() == platform.lower() for req in self.spec.platforms)

    def is_compatible_with_tool(self, tool: str) -> bool:
        if not self.spec.gitops_tools:
            return True
        return any(req.name.lower() == tool.lower() for req in self.spec.gitops_tools)

    def required_config(self) -> list[str]:
        return [key for key, item in self.spec.config.items() if item.required]

    def merge_config_with_defaults(self, config: dict[str, Any] | None) -> dict[str, Any]:
        """Declared defaults first, then the user overlay (later wins)."""
        merged: dict[str, Any] = {}
        for key, item in self.spec.config.items():
            if item.default is not None:
                merged[key] = item.default
        merged.update(config or {})
        return merged

    def validate_config(self, config: dict[str, Any]) -> None:
        """Validate a merged config against the schema. Raises ValidationFailedError.

        Keys that the schema does not declare are allowed.
        """
        errors: list[str] = []

        for key in self.required_config():
            if key not in config:
                errors.append(f"required config '{key}' is missing")

        for key, value in config.items():
            item = self.spec.config.get(key)
            if item is None:
                continue
            problem = validate_config_value(key, value, item)
            if problem:
                errors.append(problem)

        if errors:
            raise ValidationFailedError(errors)


def validate_config_value(key: str, value: Any, item: ConfigItem) -> str | None:
    """Check one value against its schema entry; returns a message or None."""
    try:
        config_type = ConfigType(item.type)
    except ValueError:
        return f"{key} has unknown type '{item.type}'"

    if config_type in (ConfigType.STRING, ConfigType.SECRET):
        if not isinstance(value, str):
            return f"{key} must be a string"
    elif config_type is ConfigType.INTEGER:
        # bool is an int subclass, reject it explicitly
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return f"{key} must be an integer"
        if isinstance(value, float) and not value.is_integer():
            return f"{key} must be an integer"
        if item.min is not None and value < item.min:
            return f"{key} must be at least {item.min}"
        if item.max is not None and value > item.max:
            return f"{key} must be at most {item.max}"
    elif config_type is ConfigType.BOOLEAN:
        if not isinstance(value, bool):
            return f"{key} must be a boolean"
    elif config_type is ConfigType.ARRAY:
        if not isinstance(value, list):
            return f"{key} must be an array"
    elif config_type is ConfigType.OBJECT:
        if not isinstance(value, dict):
            return f"{key} must be an object"

    if item.enum and isinstance(value, str) and value not in item.enum:
        return f"{key} must be one of: {', '.join(item.enum)}"

    return None


def new_pattern(name: str, version: str, description: str) -> Pattern:
    """Create a pattern with default header values."""
    return Pattern(
        metadata=PatternMetadata(name=name, version=version, description=description, license="MIT"),
    )


def load_pattern(path: str | Path) -> Pattern:
    """Load and structurally validate a pattern from a YAML file."""
    path = Path(path)
    try:
        text = path.read_text()
    except OSError as e:
        raise InvalidPatternError([f"failed to read pattern file {path}: {e}"]) from e
    return parse_pattern(text)


def parse_pattern(text: str) -> Pattern:
    """Parse and structurally validate a pattern from YAML text."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise InvalidPatternError([f"failed to parse pattern: {e}"]) from e
    pattern = Pattern.from_dict(data)
    pattern.validate()
    return pattern


def install_path(project_dir: str | Path, category: str, name: str) -> Path:
    """Directory that holds a pattern's base/ and overlays/ inside a project."""
    return Path(project_dir) / "infrastructure" / (category.lower() or "other") / name
