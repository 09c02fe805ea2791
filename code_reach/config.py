"""Project settings: `.code-reach.yml` or `[tool.code-reach]` in pyproject.toml.

Settings are validated with pydantic before any file is scanned. A bad alias
table or an unreadable config would silently skew every resolution in the
run, so all such problems raise ConfigError up front.
"""

from __future__ import annotations

import logging
import re
import tomllib
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from code_reach.models import PathAlias

logger = logging.getLogger(__name__)

CONFIG_FILES = (".code-reach.yml", ".code-reach.yaml", "code-reach.yml")

# Probing order for extension-less specifiers. First existing path wins.
DEFAULT_EXTENSIONS: list[str] = [
    ".ts", ".tsx", ".mts", ".cts", ".js", ".jsx", ".mjs", ".cjs",
    ".vue", ".svelte", ".json",
    ".py", ".pyi", ".go", ".java", ".kt", ".kts", ".scala",
    ".rb", ".php", ".rs", ".dart",
    ".c", ".h", ".cc", ".cpp", ".cxx", ".hpp", ".hh",
]
DEFAULT_INDEX_NAMES: list[str] = ["index"]

# Structural entry point patterns, matched against project-relative paths in order.
DEFAULT_ENTRY_PATTERNS: list[str] = [
    # CLI commands and scripts
    r"(^|/)(bin|cli|commands|scripts?)/",
    # Root and src-level main files
    r"^(src/)?(index|main|server|app|cli|init|router)\.[a-z]+$",
    r"^(apps|packages|services)/[^/]+/(src/)?(index|main|server|app)\.[a-z]+$",
    # Tests
    r"(^|/)(tests?|__tests__|__mocks__|spec|specs|e2e)/",
    r"\.(test|spec|e2e|bench)(\.\w+)*\.[mc]?[jt]sx?$",
    r"(^|/)test_[^/]+\.py$",
    r"_test\.(py|go)$",
    r"(^|/)conftest\.py$",
    r"_spec\.rb$",
    r"Tests?\.(java|kt|scala)$",
    # Python program entry files
    r"(^|/)__main__\.py$",
    r"(^|/)(manage|setup|wsgi|asgi|fabfile|noxfile|tasks)\.py$",
    # Rust crate roots and build scripts
    r"(^|/)src/(main|lib)\.rs$",
    r"(^|/)src/bin/",
    r"(^|/)build\.rs$",
    # Dart / Flutter
    r"(^|/)lib/main\.dart$",
    # Framework conventions
    r"(^|/)(routes?|routers?|controllers?|handlers?|pages|views|api|middlewares?|resolvers|jobs|tasks|cron)/",
    # Tool configuration files
    r"\.(config|rc)(\.\w+)*\.([mc]?[jt]s|json)$",
    r"\.d\.ts$",
    r"(^|/)(gulpfile|plopfile|Gruntfile)\.[mc]?[jt]s$",
]

# Files matching these may be loaded by name at runtime rather than imported.
DEFAULT_DYNAMIC_PATTERNS: list[str] = [
    r"(^|/)plugins?/",
    r"(^|/)extensions?/",
    r"(^|/)templates?/",
    r"(^|/)migrations?/",
    r"(^|/)(locales?|i18n|lang)/",
    r"(^|/)(fixtures?|seeds?)/",
    r"(^|/)(themes?|skins?)/",
]


class ConfigError(ValueError):
    """Raised before scanning when project configuration is unusable."""


class AliasSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    pattern: str
    replacement: str

    @field_validator("pattern", "replacement")
    @classmethod
    def _single_wildcard(cls, value: str) -> str:
        if not value:
            raise ValueError("must not be empty")
        if value.count("*") > 1:
            raise ValueError(f"{value!r} has more than one '*' wildcard")
        return value

    def to_alias(self) -> PathAlias:
        if "*" in self.replacement and "*" not in self.pattern:
            raise ConfigError(
                f"Alias {self.pattern!r} -> {self.replacement!r}: "
                "replacement has a wildcard but the pattern does not"
            )
        return PathAlias(pattern=self.pattern, replacement=self.replacement)


class ProjectSettings(BaseModel):
    """Validated per-project settings."""

    model_config = ConfigDict(extra="forbid")

    entry_points: list[str] = Field(default_factory=list)
    entry_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_ENTRY_PATTERNS))
    extra_entry_patterns: list[str] = Field(default_factory=list)
    dynamic_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_DYNAMIC_PATTERNS))
    aliases: list[AliasSpec] = Field(default_factory=list)
    workspaces: list[str] = Field(default_factory=list)
    extensions: list[str] = Field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    index_names: list[str] = Field(default_factory=lambda: list(DEFAULT_INDEX_NAMES))
    exclude: list[str] = Field(default_factory=list)
    python_roots: list[str] = Field(default_factory=lambda: ["", "src", "lib", "app"])
    include_roots: list[str] = Field(default_factory=lambda: ["", "include", "src"])
    use_entry_hints: bool = True

    @field_validator("aliases", mode="before")
    @classmethod
    def _aliases_from_mapping(cls, value: Any) -> Any:
        # A mapping keeps declaration order, so {"@app/*": "src/*"} is accepted too.
        if isinstance(value, dict):
            return [{"pattern": k, "replacement": v} for k, v in value.items()]
        return value

    @field_validator("entry_patterns", "extra_entry_patterns", "dynamic_patterns")
    @classmethod
    def _valid_regexes(cls, patterns: list[str]) -> list[str]:
        for pattern in patterns:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"invalid regex {pattern!r}: {e}") from e
        return patterns

    @field_validator("extensions")
    @classmethod
    def _dotted_extensions(cls, extensions: list[str]) -> list[str]:
        for ext in extensions:
            if not ext.startswith("."):
                raise ValueError(f"extension {ext!r} must start with '.'")
        return extensions

    def path_aliases(self) -> list[PathAlias]:
        return [spec.to_alias() for spec in self.aliases]

    def all_entry_patterns(self) -> list[str]:
        return [*self.entry_patterns, *self.extra_entry_patterns]


def _format_validation_error(source: Path, err: ValidationError) -> str:
    problems = []
    for item in err.errors():
        loc = ".".join(str(part) for part in item["loc"]) or "<root>"
        problems.append(f"  {loc}: {item['msg']}")
    return f"Invalid configuration in {source}:\n" + "\n".join(problems)


def _read_raw_settings(root: Path) -> tuple[Path | None, dict[str, Any]]:
    for name in CONFIG_FILES:
        path = root / name
        if not path.is_file():
            continue
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a mapping at the top level")
        return path, data

    pyproject = root / "pyproject.toml"
    if pyproject.is_file():
        try:
            with pyproject.open("rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"Cannot read {pyproject}: {e}") from e
        section = data.get("tool", {}).get("code-reach")
        if section is not None:
            if not isinstance(section, dict):
                raise ConfigError(f"[tool.code-reach] in {pyproject} must be a table")
            return pyproject, section

    return None, {}


def load_settings(root: Path) -> ProjectSettings:
    """Load and validate settings for the project at `root`.

    Missing configuration is not an error; defaults apply.
    """
    source, raw = _read_raw_settings(root)
    try:
        settings = ProjectSettings.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(_format_validation_error(source or root, e)) from e

    # Surface alias wildcard mismatches now rather than at first use.
    settings.path_aliases()

    for ws in settings.workspaces:
        if "*" in ws:
            continue
        if not (root / ws / "package.json").is_file():
            raise ConfigError(
                f"Workspace {ws!r} declared in {source} has no package.json"
            )

    if source:
        logger.debug("Loaded settings from %s", source)
    return settings
