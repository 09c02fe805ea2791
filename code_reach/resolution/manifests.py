"""Read project manifests into resolver inputs.

Covers monorepo workspace declarations (package.json, pnpm-workspace.yaml,
lerna.json, Nx), path aliases (tsconfig/jsconfig, vite.config, composer
PSR-4, pubspec), the Go module path and manifest-declared entry points.
"""

from __future__ import annotations

import json
import logging
import os
import posixpath
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from code_reach.config import ConfigError, ProjectSettings
from code_reach.extractor.base import blank_comments
from code_reach.models import DEFAULT_SKIP_DIRS, Language, PathAlias, WorkspacePackage
from code_reach.scanner import should_skip_dir

logger = logging.getLogger(__name__)

COMMON_WORKSPACE_DIRS = ("packages", "libs", "apps", "modules", "services", "tools", "plugins", "extensions")
NX_WORKSPACE_DIRS = ("apps", "libs", "packages", "tools", "services")
TSCONFIG_FILES = ("tsconfig.json", "tsconfig.base.json", "tsconfig.app.json", "jsconfig.json")
VITE_CONFIG_FILES = ("vite.config.ts", "vite.config.mts", "vite.config.js", "vite.config.mjs")

_BUILD_DIR_RE = re.compile(r"^(dist|build|out|lib)/")
_JS_EXT_RE = re.compile(r"(\.d)?\.[cm]?[jt]sx?$")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_GO_MODULE_RE = re.compile(r"^module\s+(\S+)", re.MULTILINE)
_VITE_ALIAS_RES = (
    re.compile(r"""['"](@[^'"]*)['"]\s*:\s*(?:path\.(?:resolve|join)\s*\([^)]*?,\s*)?['"]\.?/?(src[^'"]*)['"]"""),
    re.compile(
        r"""['"](@[^'"]*)['"]\s*:\s*fileURLToPath\(\s*new\s+URL\(\s*['"]\.?/?([^'"]+)['"]"""
    ),
)
_EXPORT_CONDITIONS = ("source", "import", "module", "default", "require", "node")
_SCRIPT_EXT = r"\.(?:[jt]sx|[mc]?[jt]s)(?=[\s&|;'\"]|$)"
_SCRIPT_ENTRY_RES = (
    re.compile(r"\b(?:node|tsx|ts-node|npx\s+tsx|npx\s+ts-node)(?:\s+-\S+)*\s+([^\s&|;'\"]+" + _SCRIPT_EXT + ")", re.I),
    re.compile(r"\b(?:cm-buildhelper|lezer-generator|esbuild|swc|rollup\s+-c|vite\s+build)\s+([^\s&|;'\"]+" + _SCRIPT_EXT + ")", re.I),
    re.compile(r"(?:^|\s)(\.{1,2}/[^\s&|;'\"]+" + _SCRIPT_EXT + ")", re.I),
)
_HTML_SCRIPT_RE = re.compile(r"""<script[^>]*\ssrc=["']([^"']+\.(?:[jt]sx|[mc]?[jt]s))["'][^>]*>""", re.I)


@dataclass
class ManifestInfo:
    """Everything the resolver and entry point detector learn from manifests."""
    packages: list[WorkspacePackage] = field(default_factory=list)
    aliases: list[PathAlias] = field(default_factory=list)
    go_module: str | None = None
    # (specifier, language) pairs; resolved against the project root
    entry_specifiers: list[tuple[str, Language | None]] = field(default_factory=list)


# -- file readers -----------------------------------------------------------

def read_json(path: Path, *, lenient: bool = False) -> Any:
    """Parse a JSON file. `lenient` accepts comments and trailing commas (tsconfig)."""
    text = path.read_text(encoding="utf-8")
    if lenient:
        text = _TRAILING_COMMA_RE.sub(r"\1", blank_comments(text, quotes='"'))
    return json.loads(text)


def _read_json_or_none(path: Path, *, lenient: bool = False) -> Any:
    if not path.is_file():
        return None
    try:
        return read_json(path, lenient=lenient)
    except (OSError, ValueError) as e:
        logger.debug("Skipping unreadable %s: %s", path, e)
        return None


def to_source_path(target: str) -> str:
    """Map a build-output path to its likely source, without extension.

    ``./dist/index.js`` -> ``src/index``
    """
    target = target.removeprefix("./")
    target = _BUILD_DIR_RE.sub("src/", target)
    return _JS_EXT_RE.sub("", target)


def export_target(value: Any) -> str | None:
    """Pick one path out of an exports-map value (string or condition object)."""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        for item in value:
            found = export_target(item)
            if found:
                return found
        return None
    if isinstance(value, dict):
        for key in _EXPORT_CONDITIONS:
            if key in value:
                found = export_target(value[key])
                if found:
                    return found
        for key, nested in value.items():
            if key != "types":
                found = export_target(nested)
                if found:
                    return found
    return None


def flatten_exports(exports: Any) -> dict[str, str]:
    """Normalise package.json `exports` to {"./subpath": "./target"}."""
    if exports is None:
        return {}
    if isinstance(exports, (str, list)):
        target = export_target(exports)
        return {".": target} if target else {}
    if not isinstance(exports, dict):
        return {}
    if not any(key.startswith(".") for key in exports):
        target = export_target(exports)
        return {".": target} if target else {}
    flat = {}
    for key, value in exports.items():
        if not key.startswith("."):
            continue
        target = export_target(value)
        if target:
            flat[key] = target
    return flat


def _bin_paths(pkg: dict[str, Any]) -> list[str]:
    value = pkg.get("bin")
    if isinstance(value, str):
        return [value.removeprefix("./")]
    if isinstance(value, dict):
        return [v.removeprefix("./") for v in value.values() if isinstance(v, str)]
    return []


def _has_source(directory: Path, stem: str) -> bool:
    candidate = directory / stem
    if candidate.is_file():
        return True
    parent = candidate.parent
    if not parent.is_dir():
        return False
    return any(p.is_file() and p.stem == candidate.name for p in parent.iterdir())


def package_entry_point(pkg: dict[str, Any], package_dir: Path) -> str:
    """Pick the package's source entry, relative to its dir, without extension."""
    candidates: list[str] = []
    if isinstance(pkg.get("source"), str):
        candidates.append(_JS_EXT_RE.sub("", pkg["source"].removeprefix("./")))
    dot_export = flatten_exports(pkg.get("exports")).get(".")
    for raw in (dot_export, pkg.get("module"), pkg.get("main")):
        if isinstance(raw, str):
            candidates.append(to_source_path(raw))
            candidates.append(_JS_EXT_RE.sub("", raw.removeprefix("./")))
    for candidate in candidates:
        if _has_source(package_dir, candidate):
            return candidate
    return candidates[0] if candidates else "src/index"


# -- workspaces -------------------------------------------------------------

def _workspace_patterns(root: Path, settings: ProjectSettings) -> list[str]:
    patterns: list[str] = list(settings.workspaces)

    pkg = _read_json_or_none(root / "package.json")
    if isinstance(pkg, dict):
        ws = pkg.get("workspaces")
        if isinstance(ws, dict):
            ws = ws.get("packages")
        if isinstance(ws, list):
            patterns.extend(p for p in ws if isinstance(p, str))

    pnpm = root / "pnpm-workspace.yaml"
    if pnpm.is_file():
        try:
            data = yaml.safe_load(pnpm.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.debug("Skipping unreadable %s: %s", pnpm, e)
            data = {}
        if isinstance(data, dict) and isinstance(data.get("packages"), list):
            patterns.extend(p for p in data["packages"] if isinstance(p, str))

    lerna = _read_json_or_none(root / "lerna.json")
    if isinstance(lerna, dict):
        patterns.extend(p for p in lerna.get("packages", ["packages/*"]) if isinstance(p, str))

    if (root / "nx.json").is_file() or (root / "workspace.json").is_file():
        patterns.extend(f"{d}/*" for d in NX_WORKSPACE_DIRS)

    patterns.extend(f"{d}/*" for d in COMMON_WORKSPACE_DIRS)
    return patterns


def _expand_workspace_pattern(root: Path, pattern: str) -> list[Path]:
    pattern = pattern.strip().removeprefix("./").rstrip("/")
    if not pattern or pattern.startswith("!"):
        return []
    if "*" not in pattern:
        directory = root / pattern
        return [directory] if directory.is_dir() else []
    if pattern.endswith("/**"):
        pattern = pattern[:-3] + "/*"
    return sorted(p for p in root.glob(pattern) if p.is_dir() and "node_modules" not in p.parts)


def discover_workspace_packages(root: Path, settings: ProjectSettings) -> list[WorkspacePackage]:
    """Find named packages declared by any supported workspace manifest."""
    seen_dirs: set[Path] = set()
    packages: dict[str, WorkspacePackage] = {}

    for pattern in _workspace_patterns(root, settings):
        for directory in _expand_workspace_pattern(root, pattern):
            if directory in seen_dirs or directory == root:
                continue
            seen_dirs.add(directory)
            pkg = _read_json_or_none(directory / "package.json")
            if not isinstance(pkg, dict) or not isinstance(pkg.get("name"), str):
                continue
            name = pkg["name"]
            if name in packages:
                continue
            packages[name] = WorkspacePackage(
                name=name,
                dir=directory.relative_to(root).as_posix(),
                entry_point=package_entry_point(pkg, directory),
                exports=flatten_exports(pkg.get("exports")),
                bin_files=tuple(_bin_paths(pkg)),
            )

    logger.debug("Found %d workspace packages", len(packages))
    return sorted(packages.values(), key=lambda p: p.name)


# -- aliases ----------------------------------------------------------------

def _read_tsconfig(path: Path, root: Path, visited: set[Path]) -> tuple[str | None, dict[str, Any], Path]:
    """Follow `extends`; returns (baseUrl, paths, dir the paths are relative to)."""
    path = path.resolve()
    if path in visited:
        return None, {}, path.parent
    visited.add(path)

    data = _read_json_or_none(path, lenient=True)
    if not isinstance(data, dict):
        return None, {}, path.parent

    base_url: str | None = None
    paths: dict[str, Any] = {}
    paths_dir = path.parent

    extends = data.get("extends")
    for parent in ([extends] if isinstance(extends, str) else extends or []):
        if not isinstance(parent, str):
            continue
        if parent.startswith("."):
            parent_path = path.parent / parent
        else:
            parent_path = root / "node_modules" / parent
            if parent_path.is_dir():
                parent_path = parent_path / "tsconfig.json"
        if parent_path.suffix != ".json":
            parent_path = parent_path.with_name(parent_path.name + ".json")
        if parent_path.is_file():
            base_url, paths, paths_dir = _read_tsconfig(parent_path, root, visited)

    options = data.get("compilerOptions") or {}
    if not isinstance(options, dict):
        raise ConfigError(f"{path}: compilerOptions must be an object")
    if isinstance(options.get("baseUrl"), str):
        base_url = options["baseUrl"]
        paths_dir = path.parent
    if "paths" in options:
        own = options["paths"]
        if not isinstance(own, dict) or not all(
            isinstance(v, list) and all(isinstance(t, str) for t in v) for v in own.values()
        ):
            raise ConfigError(f"{path}: compilerOptions.paths must map patterns to lists of strings")
        paths = own
        paths_dir = path.parent
    return base_url, paths, paths_dir


def _rel(root: Path, path: Path) -> str:
    rel = path.resolve().relative_to(root.resolve()).as_posix()
    return "" if rel == "." else rel


def load_tsconfig_aliases(root: Path, config_dir: Path | None = None) -> list[PathAlias]:
    config_dir = config_dir or root
    aliases: list[PathAlias] = []
    for name in TSCONFIG_FILES:
        path = config_dir / name
        if not path.is_file():
            continue
        base_url, paths, paths_dir = _read_tsconfig(path, root, set())
        base_dir = (paths_dir / base_url) if base_url else paths_dir
        try:
            base = _rel(root, base_dir)
        except ValueError:
            logger.debug("baseUrl of %s points outside the project", path)
            continue
        for pattern, targets in paths.items():
            for target in targets:
                target = target.removeprefix("./")
                replacement = f"{base}/{target}" if base else target
                aliases.append(PathAlias(pattern=pattern, replacement=replacement))
        if base_url:
            aliases.append(PathAlias(pattern="*", replacement=f"{base}/*" if base else "*"))
    return _dedupe(aliases)


def load_vite_aliases(root: Path, config_dir: Path | None = None) -> list[PathAlias]:
    config_dir = config_dir or root
    prefix = _rel(root, config_dir)
    aliases: list[PathAlias] = []
    for name in VITE_CONFIG_FILES:
        path = config_dir / name
        if not path.is_file():
            continue
        try:
            content = path.read_text(encoding="utf-8")
        except OSError:
            continue
        for regex in _VITE_ALIAS_RES:
            for m in regex.finditer(content):
                key = m.group(1).rstrip("/")
                target = m.group(2).removeprefix("./").rstrip("/")
                target = f"{prefix}/{target}" if prefix else target
                aliases.append(PathAlias(pattern=f"{key}/*", replacement=f"{target}/*"))
                aliases.append(PathAlias(pattern=key, replacement=target))
    return _dedupe(aliases)


def load_composer_aliases(root: Path) -> list[PathAlias]:
    """PSR-4 namespace prefixes as slash-separated aliases."""
    data = _read_json_or_none(root / "composer.json")
    if not isinstance(data, dict):
        return []
    aliases = []
    for section in ("autoload", "autoload-dev"):
        # PHP serialises an empty autoload as []
        autoload = data.get(section) or {}
        if not isinstance(autoload, dict):
            raise ConfigError(f"composer.json: {section} must be an object")
        psr4 = autoload.get("psr-4") or {}
        if not isinstance(psr4, dict):
            raise ConfigError(f"composer.json: {section}.psr-4 must be an object")
        for namespace, dirs in psr4.items():
            ns = namespace.replace("\\", "/").strip("/")
            dirs = [dirs] if isinstance(dirs, str) else dirs
            if not isinstance(dirs, list) or not all(isinstance(d, str) for d in dirs):
                raise ConfigError(f"composer.json: {section}.psr-4.{namespace} must be a path or list of paths")
            for directory in dirs:
                directory = directory.strip("/")
                target = f"{directory}/*" if directory else "*"
                aliases.append(PathAlias(pattern=f"{ns}/*", replacement=target))
    return aliases


def load_pubspec_alias(root: Path) -> list[PathAlias]:
    pubspec = root / "pubspec.yaml"
    if not pubspec.is_file():
        return []
    try:
        data = yaml.safe_load(pubspec.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.debug("Skipping unreadable %s: %s", pubspec, e)
        return []
    name = data.get("name") if isinstance(data, dict) else None
    if not isinstance(name, str):
        return []
    return [PathAlias(pattern=f"package:{name}/*", replacement="lib/*")]


def read_go_module(root: Path) -> str | None:
    go_mod = root / "go.mod"
    if not go_mod.is_file():
        return None
    try:
        text = go_mod.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise ConfigError(f"Cannot read {go_mod}: {e}") from e
    m = _GO_MODULE_RE.search(text)
    return m.group(1) if m else None


def _dedupe(aliases: list[PathAlias]) -> list[PathAlias]:
    return list(dict.fromkeys(aliases))


# -- entry points -------------------------------------------------------------

def _package_entry_specifiers(pkg: dict[str, Any], prefix: str) -> list[str]:
    raw: list[str] = []
    for key in ("source", "main", "module", "browser"):
        if isinstance(pkg.get(key), str):
            raw.append(pkg[key])
    raw.extend(_bin_paths(pkg))
    raw.extend(flatten_exports(pkg.get("exports")).values())

    specifiers: list[str] = []
    for target in raw:
        if "*" in target:
            continue
        target = target.removeprefix("./")
        for candidate in (target, to_source_path(target)):
            path = f"{prefix}/{candidate}" if prefix else candidate
            spec = f"./{path}"
            if spec not in specifiers:
                specifiers.append(spec)
    return specifiers


def _python_script_modules(root: Path) -> list[str]:
    pyproject = root / "pyproject.toml"
    if not pyproject.is_file():
        return []
    try:
        with pyproject.open("rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError):
        return []
    project = data.get("project", {})
    tables = [project.get("scripts", {}), project.get("gui-scripts", {})]
    tables.extend((project.get("entry-points") or {}).values())
    poetry = data.get("tool", {}).get("poetry", {})
    tables.append(poetry.get("scripts", {}))

    modules = []
    for table in tables:
        if not isinstance(table, dict):
            continue
        for target in table.values():
            if isinstance(target, str) and target.strip():
                module = target.split(":", 1)[0].strip()
                if module not in modules:
                    modules.append(module)
    return modules


def _cargo_entry_paths(root: Path) -> list[str]:
    cargo = root / "Cargo.toml"
    if not cargo.is_file():
        return []
    try:
        with cargo.open("rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError):
        return []
    paths = []
    for target in [data.get("lib") or {}, *(data.get("bin") or []), *(data.get("example") or [])]:
        if isinstance(target, dict) and isinstance(target.get("path"), str):
            paths.append("./" + target["path"].removeprefix("./"))
    return paths


def _under(prefix: str, path: str) -> str | None:
    """Join `path` onto a project-relative dir. None if it leaves the project."""
    joined = posixpath.normpath(posixpath.join(prefix, path)) if prefix else posixpath.normpath(path)
    if joined == ".." or joined.startswith("../"):
        return None
    return joined


def script_entry_paths(pkg: dict[str, Any], prefix: str = "") -> list[str]:
    """Files run by package.json `scripts`, e.g. ``node server/boot.js``."""
    scripts = pkg.get("scripts")
    if not isinstance(scripts, dict):
        return []
    paths: list[str] = []
    for command in scripts.values():
        if not isinstance(command, str):
            continue
        for regex in _SCRIPT_ENTRY_RES:
            for m in regex.finditer(command):
                path = _under(prefix, m.group(1))
                if path and path not in paths:
                    paths.append(path)
    return paths


def html_entry_paths(root: Path, skip_dirs: list[str] | None = None) -> list[str]:
    """Scripts loaded by ``<script src>`` in any index.html under `root`.

    A leading ``/`` is relative to the HTML file's directory, which is how
    Vite treats its project root.
    """
    skip_dirs = skip_dirs if skip_dirs is not None else DEFAULT_SKIP_DIRS
    paths: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not should_skip_dir(d, skip_dirs))
        if "index.html" not in filenames:
            continue
        html = Path(dirpath) / "index.html"
        try:
            content = html.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug("Skipping unreadable %s: %s", html, e)
            continue
        html_dir = Path(dirpath).relative_to(root).as_posix()
        html_dir = "" if html_dir == "." else html_dir
        for m in _HTML_SCRIPT_RE.finditer(content):
            src = m.group(1)
            if "://" in src or src.startswith("//"):
                continue
            path = _under(html_dir, src.lstrip("/"))
            if path and path not in paths:
                paths.append(path)
    return paths


def manifest_entry_specifiers(
    root: Path,
    packages: list[WorkspacePackage],
    skip_dirs: list[str] | None = None,
) -> list[tuple[str, Language | None]]:
    """Entry points declared by package.json (fields and scripts), index.html,
    pyproject.toml and Cargo.toml."""
    found: list[tuple[str, Language | None]] = []

    root_pkg = _read_json_or_none(root / "package.json")
    if isinstance(root_pkg, dict):
        found.extend((spec, None) for spec in _package_entry_specifiers(root_pkg, ""))
        found.extend((f"./{path}", None) for path in script_entry_paths(root_pkg))

    for package in packages:
        pkg = _read_json_or_none(root / package.dir / "package.json")
        if isinstance(pkg, dict):
            found.extend((spec, None) for spec in _package_entry_specifiers(pkg, package.dir))
            found.extend((f"./{path}", None) for path in script_entry_paths(pkg, package.dir))

    found.extend((f"./{path}", None) for path in html_entry_paths(root, skip_dirs))
    found.extend((module, Language.PYTHON) for module in _python_script_modules(root))
    found.extend((path, None) for path in _cargo_entry_paths(root))
    return list(dict.fromkeys(found))


def load_manifests(
    root: Path,
    settings: ProjectSettings,
    skip_dirs: list[str] | None = None,
) -> ManifestInfo:
    """Collect resolver inputs. Configured aliases take precedence over discovered ones."""
    root = root.resolve()
    packages = discover_workspace_packages(root, settings)

    aliases = settings.path_aliases()
    aliases.extend(load_tsconfig_aliases(root))
    aliases.extend(load_vite_aliases(root))
    for package in packages:
        package_dir = root / package.dir
        aliases.extend(load_tsconfig_aliases(root, package_dir))
        aliases.extend(load_vite_aliases(root, package_dir))
    aliases.extend(load_composer_aliases(root))
    aliases.extend(load_pubspec_alias(root))
    if not aliases and (root / "src").is_dir():
        aliases.append(PathAlias(pattern="@/*", replacement="src/*"))

    return ManifestInfo(
        packages=packages,
        aliases=_dedupe(aliases),
        go_module=read_go_module(root),
        entry_specifiers=manifest_entry_specifiers(root, packages, skip_dirs),
    )
