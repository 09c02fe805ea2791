"""Module resolver: import specifier + importing file -> project file(s).

Results are project-relative POSIX paths of files that exist inside the
root. Anything else (external packages, stdlib, paths escaping the root) is
unresolved. Resolution is a pure function of the specifier, the importer's
location, the language and the resolver's configuration, and is memoised.
"""

from __future__ import annotations

import logging
import os
import posixpath
import re
from pathlib import Path
from typing import Callable, Iterable

from code_reach.config import DEFAULT_EXTENSIONS, DEFAULT_INDEX_NAMES
from code_reach.models import Language, PathAlias, WorkspacePackage
from code_reach.resolution.manifests import to_source_path

logger = logging.getLogger(__name__)

JS_OUTPUT_EXTENSIONS = (".js", ".mjs", ".cjs", ".jsx")
PACKAGE_FALLBACKS = ("src/index", "index", "src/main")
JVM_EXTENSIONS = (".java", ".kt", ".scala")
MAX_ALIAS_DEPTH = 5

_JVM_ROOT_RE = re.compile(r"^((?:.*/)?src/(?:main|test)/(?:java|kotlin|scala))/")

# A strategy returns None to fall through to generic resolution, or a
# (possibly empty) tuple when it owns the specifier.
Strategy = Callable[[str, str, str], "tuple[str, ...] | None"]


def detect_jvm_roots(paths: Iterable[str]) -> list[str]:
    """Source roots such as ``src/main/java`` or ``svc/src/test/kotlin``."""
    roots = {m.group(1) for p in paths if (m := _JVM_ROOT_RE.match(p))}
    return sorted(roots) + ["src", ""]


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a path glob (``*``, ``**``, ``?``, ``{a,b}``) to a regex."""
    out = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
            continue
        if pattern.startswith("**", i):
            out.append(".*")
            i += 2
            continue
        if ch == "*":
            out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
        elif ch == "{":
            end = pattern.find("}", i)
            if end == -1:
                out.append(re.escape(ch))
            else:
                options = pattern[i + 1:end].split(",")
                out.append("(?:" + "|".join(re.escape(o) for o in options) + ")")
                i = end + 1
                continue
        else:
            out.append(re.escape(ch))
        i += 1
    return re.compile("".join(out) + r"\Z")


class Resolver:
    """Ordered resolution: language strategy, relative paths, workspace
    packages, path aliases, otherwise unresolved."""

    def __init__(
        self,
        root: Path | str,
        *,
        packages: Iterable[WorkspacePackage] = (),
        aliases: Iterable[PathAlias] = (),
        extensions: Iterable[str] | None = None,
        index_names: Iterable[str] | None = None,
        known_files: Iterable[str] | None = None,
        python_roots: Iterable[str] | None = None,
        include_roots: Iterable[str] | None = None,
        jvm_roots: Iterable[str] | None = None,
        go_module: str | None = None,
    ):
        self.root = Path(root).resolve()
        self.packages = {p.name: p for p in packages}
        self.aliases = list(aliases)
        self.extensions = list(extensions if extensions is not None else DEFAULT_EXTENSIONS)
        self.index_names = list(index_names if index_names is not None else DEFAULT_INDEX_NAMES)
        self.known_files = set(known_files) if known_files is not None else None
        self.python_roots = list(python_roots if python_roots is not None else ["", "src", "lib", "app"])
        self.include_roots = list(include_roots if include_roots is not None else ["", "include", "src"])
        if jvm_roots is None:
            jvm_roots = detect_jvm_roots(self.known_files or ())
        self.jvm_roots = list(jvm_roots)
        self.go_module = go_module

        self._memo: dict[tuple[str, str, Language | None], tuple[str, ...]] = {}
        self._is_file_cache: dict[str, bool] = {}
        self._dir_cache: dict[str, list[str]] = {}
        self._strategies: dict[Language, Strategy] = {
            Language.PYTHON: self._resolve_python,
            Language.GO: self._resolve_go,
            Language.JAVA: self._resolve_jvm,
            Language.KOTLIN: self._resolve_jvm,
            Language.SCALA: self._resolve_jvm,
            Language.RUST: self._resolve_rust,
            Language.C: self._resolve_c,
            Language.CPP: self._resolve_c,
            Language.RUBY: self._resolve_ruby,
            Language.PHP: self._resolve_php,
            Language.DART: self._resolve_dart,
        }

    # -- public API ---------------------------------------------------------

    def resolve(self, specifier: str, importer: str, language: Language | None = None) -> str | None:
        """Resolve to a single file, or None if unresolved."""
        targets = self.resolve_all(specifier, importer, language)
        return targets[0] if targets else None

    def resolve_all(self, specifier: str, importer: str, language: Language | None = None) -> tuple[str, ...]:
        """Resolve to every file the specifier names (Go packages, JVM wildcards)."""
        # Rust `mod` lookups depend on the importer's file name, not just its directory.
        scope = importer if language is Language.RUST else posixpath.dirname(importer)
        key = (scope, specifier, language)
        cached = self._memo.get(key)
        if cached is None:
            cached = self._resolve_uncached(specifier, importer, language)
            self._memo[key] = cached
        return cached

    def resolve_prefix(self, prefix: str, importer: str, language: Language | None = None) -> str | None:
        """Map a string-built import's static prefix to a project path prefix."""
        importer_dir = posixpath.dirname(importer)
        if language is Language.PYTHON:
            head = prefix.lstrip(".")
            parts = [p for p in head.split(".") if p]
            if not head.endswith(".") and parts:
                parts = parts[:-1]
            if not parts:
                return None
            for root in self.python_roots:
                directory = posixpath.join(root, *parts)
                if self._list_dir(directory):
                    return directory + "/"
            return None

        if prefix.startswith(("./", "../")):
            joined = self._normalize(posixpath.join(importer_dir, prefix))
        elif prefix.startswith("/"):
            joined = self._normalize(prefix.lstrip("/"))
        else:
            joined = None
            for alias in self.aliases:
                substituted = alias.match(prefix) if "*" not in alias.pattern else self._alias_prefix(alias, prefix)
                if substituted is not None:
                    joined = self._normalize(substituted)
                    break
        if joined is None:
            return None
        if prefix.endswith("/") and joined:
            joined += "/"
        return joined

    def expand_glob(self, pattern: str, importer: str, candidates: Iterable[str]) -> list[str]:
        """Files among `candidates` matched by a bundler glob import."""
        prefix = self.resolve_prefix(pattern, importer)
        if prefix is None:
            return []
        if pattern.endswith("/") and not prefix.endswith("/"):
            prefix += "/"
        regex = glob_to_regex(prefix)
        return sorted(c for c in candidates if regex.match(c))

    # -- generic steps --------------------------------------------------------

    def _resolve_uncached(self, specifier: str, importer: str, language: Language | None) -> tuple[str, ...]:
        if not specifier:
            return ()
        importer_dir = posixpath.dirname(importer)
        strategy = self._strategies.get(language) if language else None
        if strategy is not None:
            targets = strategy(specifier, importer_dir, importer)
            if targets is not None:
                return targets
        hit = self._resolve_generic(specifier, importer_dir)
        return (hit,) if hit else ()

    def _resolve_generic(self, specifier: str, importer_dir: str) -> str | None:
        if specifier in (".", "..") or specifier.startswith(("./", "../")):
            return self._probe(posixpath.join(importer_dir, specifier))
        if specifier.startswith("/"):
            return self._probe(specifier.lstrip("/"))
        return self._resolve_package(specifier) or self._resolve_alias(specifier, 0)

    def _resolve_package(self, specifier: str) -> str | None:
        if not self.packages:
            return None
        parts = specifier.split("/")
        width = 2 if specifier.startswith("@") else 1
        if len(parts) < width:
            return None
        package = self.packages.get("/".join(parts[:width]))
        if package is None:
            return None

        subpath = "/".join(parts[width:])
        if not subpath:
            for entry in (package.entry_point, *PACKAGE_FALLBACKS):
                hit = self._probe(posixpath.join(package.dir, entry))
                if hit:
                    return hit
            return None

        target = self._export_target(package, subpath)
        if target:
            target = target.removeprefix("./")
            for candidate in (target, to_source_path(target)):
                hit = self._probe(posixpath.join(package.dir, candidate))
                if hit:
                    return hit
        for candidate in (posixpath.join(package.dir, subpath), posixpath.join(package.dir, "src", subpath)):
            hit = self._probe(candidate)
            if hit:
                return hit
        return None

    @staticmethod
    def _export_target(package: WorkspacePackage, subpath: str) -> str | None:
        key = f"./{subpath}"
        if key in package.exports:
            return package.exports[key]
        for pattern, target in package.exports.items():
            if "*" in pattern:
                matched = PathAlias(pattern, target).match(key)
                if matched is not None:
                    return matched
        return None

    def _resolve_alias(self, specifier: str, depth: int) -> str | None:
        if depth >= MAX_ALIAS_DEPTH:
            return None
        for alias in self.aliases:
            substituted = alias.match(specifier)
            if substituted is None:
                continue
            hit = self._probe(substituted.lstrip("/"))
            if hit:
                return hit
            if substituted != specifier:
                hit = self._resolve_package(substituted) or self._resolve_alias(substituted, depth + 1)
                if hit:
                    return hit
        return None

    @staticmethod
    def _alias_prefix(alias: PathAlias, prefix: str) -> str | None:
        head, _, _ = alias.pattern.partition("*")
        if not prefix.startswith(head):
            return None
        rest = prefix[len(head):]
        return alias.replacement.replace("*", rest, 1) if "*" in alias.replacement else alias.replacement

    # -- filesystem probes ----------------------------------------------------

    def _normalize(self, path: str) -> str | None:
        """Collapse to a root-relative path; None if it escapes the root."""
        normalized = posixpath.normpath(path) if path else "."
        if normalized == "..":
            return None
        if normalized.startswith(("../", "/")):
            return None
        return "" if normalized == "." else normalized

    def _is_file(self, rel: str) -> bool:
        cached = self._is_file_cache.get(rel)
        if cached is None:
            if self.known_files is not None and rel in self.known_files:
                cached = True
            else:
                cached = bool(rel) and (self.root / rel).is_file()
            self._is_file_cache[rel] = cached
        return cached

    def _list_dir(self, rel_dir: str) -> list[str]:
        """Sorted project-relative paths of the files directly inside `rel_dir`."""
        cached = self._dir_cache.get(rel_dir)
        if cached is None:
            directory = self.root / rel_dir if rel_dir else self.root
            try:
                names = sorted(
                    entry.name for entry in os.scandir(directory) if entry.is_file()
                )
            except OSError:
                names = []
            cached = [posixpath.join(rel_dir, name) for name in names]
            self._dir_cache[rel_dir] = cached
        return cached

    def _exact(self, path: str) -> str | None:
        rel = self._normalize(path)
        return rel if rel is not None and self._is_file(rel) else None

    def _probe(self, path: str) -> str | None:
        """Literal path, then path + extension, then directory index files."""
        rel = self._normalize(path)
        if rel is None:
            return None
        if rel and self._is_file(rel):
            return rel
        if rel:
            for ext in self.extensions:
                if self._is_file(rel + ext):
                    return rel + ext
            stem, ext = posixpath.splitext(rel)
            if ext in JS_OUTPUT_EXTENSIONS:
                for alt in self.extensions:
                    if self._is_file(stem + alt):
                        return stem + alt
        for index in self.index_names:
            base = posixpath.join(rel, index)
            for ext in self.extensions:
                if self._is_file(base + ext):
                    return base + ext
        return None

    # -- language strategies ----------------------------------------------------

    def _resolve_python(self, specifier: str, importer_dir: str, importer: str) -> tuple[str, ...] | None:
        if specifier.startswith("."):
            level = len(specifier) - len(specifier.lstrip("."))
            rest = specifier[level:]
            base = importer_dir
            for _ in range(level - 1):
                base = posixpath.dirname(base)
            hit = self._python_module(base, rest.split(".") if rest else [], allow_package=True)
            return self._with_package_inits(hit, base) if hit else ()

        parts = specifier.split(".")
        for root in self.python_roots:
            hit = self._python_module(root, parts, allow_package=False)
            if hit:
                return self._with_package_inits(hit, root)
        return ()

    def _with_package_inits(self, module: str, base: str) -> tuple[str, ...]:
        """The module plus every enclosing __init__.py below `base`, which
        Python executes on import."""
        targets = [module]
        directory = posixpath.dirname(module)
        while directory and directory != base and directory.startswith(base):
            init = self._exact(posixpath.join(directory, "__init__.py"))
            if init and init != module:
                targets.append(init)
            directory = posixpath.dirname(directory)
        return tuple(targets)

    def _python_module(self, base: str, parts: list[str], allow_package: bool) -> str | None:
        # The last segments may name symbols rather than modules; shorten until a file matches.
        lowest = 0 if allow_package else 1
        for n in range(len(parts), lowest - 1, -1):
            path = posixpath.join(base, *parts[:n]) if n else base
            candidates = [posixpath.join(path, "__init__.py")]
            if n:
                candidates[:0] = [path + ".py", path + ".pyi"]
            for candidate in candidates:
                hit = self._exact(candidate)
                if hit:
                    return hit
        return None

    def _resolve_go(self, specifier: str, importer_dir: str, importer: str) -> tuple[str, ...] | None:
        module = self.go_module
        if not module or not (specifier == module or specifier.startswith(module + "/")):
            return ()
        package_dir = specifier[len(module):].strip("/")
        return tuple(
            path for path in self._list_dir(package_dir)
            if path.endswith(".go") and not path.endswith("_test.go")
        )

    def _resolve_jvm(self, specifier: str, importer_dir: str, importer: str) -> tuple[str, ...] | None:
        wildcard = specifier.endswith(".*")
        parts = (specifier[:-2] if wildcard else specifier).split(".")
        for root in self.jvm_roots:
            if wildcard:
                files = tuple(
                    path for path in self._list_dir(posixpath.join(root, *parts))
                    if path.endswith(JVM_EXTENSIONS)
                )
                if files:
                    return files
            # Static imports name a member; shorten to the declaring class.
            for n in range(len(parts), 0, -1):
                base = posixpath.join(root, *parts[:n])
                for ext in JVM_EXTENSIONS:
                    hit = self._exact(base + ext)
                    if hit:
                        return (hit,)
        return ()

    @staticmethod
    def _rust_module_dir(importer: str) -> str:
        directory, name = posixpath.split(importer)
        stem = posixpath.splitext(name)[0]
        if stem in ("mod", "lib", "main") or posixpath.basename(directory) == "bin":
            return directory
        return posixpath.join(directory, stem)

    @staticmethod
    def _rust_crate_src(importer: str) -> str:
        parts = importer.split("/")[:-1]
        for i in range(len(parts) - 1, -1, -1):
            if parts[i] == "src":
                return "/".join(parts[:i + 1])
        return "src"

    def _resolve_rust(self, specifier: str, importer_dir: str, importer: str) -> tuple[str, ...] | None:
        if "::" not in specifier:
            base = self._rust_module_dir(importer)
            for candidate in (posixpath.join(base, f"{specifier}.rs"), posixpath.join(base, specifier, "mod.rs")):
                hit = self._exact(candidate)
                if hit:
                    return (hit,)
            return ()

        head, *rest = specifier.split("::")
        if head == "crate":
            base = self._rust_crate_src(importer)
        elif head == "self":
            base = self._rust_module_dir(importer)
        elif head == "super":
            base = posixpath.dirname(self._rust_module_dir(importer))
        else:
            return ()
        for n in range(len(rest), 0, -1):
            path = posixpath.join(base, *rest[:n])
            for candidate in (path + ".rs", posixpath.join(path, "mod.rs")):
                hit = self._exact(candidate)
                if hit:
                    return (hit,)
        return ()

    def _resolve_c(self, specifier: str, importer_dir: str, importer: str) -> tuple[str, ...] | None:
        for base in (importer_dir, *self.include_roots):
            hit = self._exact(posixpath.join(base, specifier))
            if hit:
                return (hit,)
        return ()

    def _resolve_script_include(self, specifier: str, importer_dir: str, ext: str) -> tuple[str, ...]:
        if specifier.startswith("."):
            bases = [posixpath.join(importer_dir, specifier)]
        else:
            bases = [posixpath.join(importer_dir, specifier), specifier, posixpath.join("lib", specifier)]
        for base in bases:
            for candidate in (base, base + ext):
                hit = self._exact(candidate)
                if hit:
                    return (hit,)
        return ()

    def _resolve_ruby(self, specifier: str, importer_dir: str, importer: str) -> tuple[str, ...] | None:
        return self._resolve_script_include(specifier, importer_dir, ".rb")

    def _resolve_php(self, specifier: str, importer_dir: str, importer: str) -> tuple[str, ...] | None:
        if "\\" in specifier or not re.search(r"[./]", specifier):
            path = specifier.replace("\\", "/")
            hit = self._resolve_alias(path, 0) or self._exact(path + ".php")
            return (hit,) if hit else ()
        return self._resolve_script_include(specifier, importer_dir, ".php")

    def _resolve_dart(self, specifier: str, importer_dir: str, importer: str) -> tuple[str, ...] | None:
        if specifier.startswith("dart:"):
            return ()
        return None
