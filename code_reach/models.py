"""Data models for the code-reach scanner."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


class Language(enum.Enum):
    PYTHON = "python"
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    GO = "go"
    JAVA = "java"
    KOTLIN = "kotlin"
    SCALA = "scala"
    RUBY = "ruby"
    PHP = "php"
    RUST = "rust"
    C = "c"
    CPP = "cpp"
    DART = "dart"
    UNKNOWN = "unknown"


class Verdict(enum.Enum):
    REACHABLE = "reachable"
    POSSIBLY_LIVE = "possibly-live"
    PARTIALLY_UNREACHABLE = "partially-unreachable"
    UNREACHABLE = "unreachable"


@dataclass(frozen=True)
class FileHandle:
    """A discovered file. Created once at discovery time."""
    path: str  # project-relative, POSIX separators
    absolute_path: Path
    size_bytes: int
    language: Language


@dataclass(frozen=True)
class ImportEdge:
    """An import as declared in source, before resolution."""
    specifier: str
    kind: str  # "esm" | "commonjs" | "dynamic" | "dynamic-prefix" | "glob" | "re-export" | ...
    line: int = 0


@dataclass(frozen=True)
class ExportDecl:
    name: str
    kind: str
    line: int = 0
    source: str | None = None  # re-export origin


@dataclass
class ParseResult:
    """Uniform per-file extraction record.

    Must be a pure function of the file content: the cache relies on equal
    bytes producing an equal result.
    """
    imports: list[ImportEdge] = field(default_factory=list)
    exports: list[ExportDecl] = field(default_factory=list)
    annotations: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def error(self) -> str | None:
        return self.metadata.get("error")

    @classmethod
    def empty(cls, error: str | None = None) -> ParseResult:
        metadata: dict[str, Any] = {"lines": 0}
        if error:
            metadata["error"] = error
        return cls(metadata=metadata)

    def to_dict(self) -> dict[str, Any]:
        return {
            "imports": [[e.specifier, e.kind, e.line] for e in self.imports],
            "exports": [[e.name, e.kind, e.line, e.source] for e in self.exports],
            "annotations": list(self.annotations),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ParseResult:
        return cls(
            imports=[ImportEdge(s, k, ln) for s, k, ln in data.get("imports", [])],
            exports=[ExportDecl(n, k, ln, src) for n, k, ln, src in data.get("exports", [])],
            annotations=list(data.get("annotations", [])),
            metadata=dict(data.get("metadata", {})),
        )


@dataclass(frozen=True)
class WorkspacePackage:
    """A named package inside a monorepo."""
    name: str
    dir: str  # project-relative
    entry_point: str = "src/index"  # relative to dir, usually without extension
    exports: dict[str, str] = field(default_factory=dict, hash=False, compare=False)
    bin_files: tuple[str, ...] = ()


@dataclass(frozen=True)
class PathAlias:
    """Build-config path alias such as ``@app/*`` -> ``src/*``."""
    pattern: str
    replacement: str

    def match(self, specifier: str) -> str | None:
        """Return the substituted path, or None if the pattern does not apply."""
        if "*" not in self.pattern:
            if specifier == self.pattern:
                return self.replacement
            return None
        prefix, suffix = self.pattern.split("*", 1)
        if not (specifier.startswith(prefix) and specifier.endswith(suffix)):
            return None
        if len(specifier) < len(prefix) + len(suffix):
            return None
        captured = specifier[len(prefix):len(specifier) - len(suffix)]
        if "*" in self.replacement:
            return self.replacement.replace("*", captured, 1)
        return self.replacement


@dataclass(frozen=True)
class Confidence:
    score: float
    label: str  # "high" | "medium" | "low"


@dataclass
class Evidence:
    """Why a file was judged dead."""
    entry_points: dict[str, int]  # {"reached_by": 0, "total": N}
    confidence: Confidence
    dynamic_check: dict[str, str] | None = None  # {"matched_pattern", "source"}
    importers: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry_points": dict(self.entry_points),
            "dynamic_check": dict(self.dynamic_check) if self.dynamic_check else None,
            "importers": list(self.importers),
            "confidence": {"score": self.confidence.score, "label": self.confidence.label},
        }

    @property
    def summary(self) -> str:
        ep = self.entry_points
        return f"{ep['reached_by']} of {ep['total']} entry points reach it"


@dataclass
class DeadFile:
    path: str
    size: int
    lines: int
    exports: list[str]
    verdict: Verdict
    evidence: Evidence

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "size": self.size,
            "lines": self.lines,
            "exports": list(self.exports),
            "verdict": self.verdict.value,
            "evidence": self.evidence.to_dict(),
        }


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    entry_count: int


@dataclass
class ScanResult:
    """Result object handed to reporters. Read-only once built."""
    total_files: int
    entry_points: list[str]
    reachable_files: list[str]
    dead_files: list[DeadFile] = field(default_factory=list)
    languages: dict[str, int] = field(default_factory=dict)
    unresolved_imports: dict[str, list[str]] = field(default_factory=dict)
    cache_stats: CacheStats | None = None
    elapsed: float = 0.0

    @property
    def dead_paths(self) -> list[str]:
        return [f.path for f in self.dead_files]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_files": self.total_files,
            "entry_points": list(self.entry_points),
            "reachable_files": list(self.reachable_files),
            "dead_files": [f.to_dict() for f in self.dead_files],
            "languages": dict(self.languages),
            "unresolved_imports": {k: list(v) for k, v in self.unresolved_imports.items()},
            "cache": (
                {
                    "hits": self.cache_stats.hits,
                    "misses": self.cache_stats.misses,
                    "entries": self.cache_stats.entry_count,
                }
                if self.cache_stats else None
            ),
            "elapsed": round(self.elapsed, 3),
        }


DEFAULT_SKIP_DIRS: list[str] = [
    "node_modules", ".git", ".svn", ".hg", "__pycache__", ".dart_tool",
    "build", "dist", "out", ".next", ".nuxt", ".venv", "venv", "env",
    ".eggs", "*.egg-info", "vendor", "target", ".gradle", ".idea",
    ".vscode", "coverage", ".pytest_cache", ".mypy_cache", ".code-reach-cache",
]


@dataclass
class ScanConfig:
    """Configuration for a scan run."""
    project_root: Path = field(default_factory=lambda: Path("."))
    entry_points: list[str] = field(default_factory=list)
    skip_dirs: list[str] = field(default_factory=lambda: list(DEFAULT_SKIP_DIRS))
    workers: int | None = None  # None = cpu count - 1, 0 = always in-process
    parallel_threshold: int = 100
    use_cache: bool = True
    task_timeout: float | None = None
