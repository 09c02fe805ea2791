"""JavaScript/TypeScript extractor using regex patterns.

Patterns run over the whole (comment-blanked) source, so multi-line import
lists are matched the same as single-line ones.
"""

from __future__ import annotations

import re

from code_reach.extractor.base import (
    BaseExtractor,
    LineIndex,
    blank_comments,
    collect_matches,
    ordered_imports,
)
from code_reach.models import ExportDecl, ImportEdge, Language, ParseResult

_Q = r"""['"]([^'"\n]+)['"]"""

_IMPORT_FROM_RE = re.compile(
    r"\bimport\s+(?:type\s+)?(?:[\w$*{}\s,]+?)\s*\bfrom\s*" + _Q
)
_SIDE_EFFECT_RE = re.compile(r"\bimport\s*" + _Q)
_REEXPORT_RE = re.compile(
    r"\bexport\s+(?:type\s+)?(?P<what>\*(?:\s+as\s+[\w$]+)?|\{[^}]*\})\s*from\s*" + _Q
)
_REQUIRE_RE = re.compile(r"\brequire\s*\(\s*" + _Q + r"\s*\)")
_DYNAMIC_RE = re.compile(r"\bimport\s*\(\s*" + _Q + r"\s*\)")
_DYNAMIC_TEMPLATE_RE = re.compile(r"\b(?:import|require)\s*\(\s*`([^`$]+)`\s*\)")
_DYNAMIC_PREFIX_RE = re.compile(
    r"""\b(?:import|require)\s*\(\s*(?:`([^`$]*)\$\{|['"]([^'"\n]*)['"]\s*\+)"""
)
_GLOB_RE = re.compile(r"\bimport\.meta\.glob(?:Eager)?\s*(?:<[^>]*>)?\s*\(\s*" + _Q)
_GLOB_ARRAY_RE = re.compile(r"\bimport\.meta\.glob(?:Eager)?\s*(?:<[^>]*>)?\s*\(\s*\[([^\]]*)\]")
_REQUIRE_CONTEXT_RE = re.compile(r"\brequire\.context\s*\(\s*" + _Q)

_EXPORT_DECL_RE = re.compile(
    r"\bexport\s+(?P<default>default\s+)?(?:declare\s+)?(?:async\s+)?"
    r"(?P<kind>function|abstract\s+class|class|const|let|var|interface|type|enum)\b\s*\*?\s*"
    r"(?P<name>[\w$]+)?"
)
_EXPORT_DEFAULT_RE = re.compile(r"\bexport\s+default\s+(?!(?:async\s+)?(?:function|class|abstract)\b)")
_EXPORT_LIST_RE = re.compile(r"\bexport\s+(?:type\s+)?\{([^}]*)\}(?!\s*from)")
_CJS_DEFAULT_RE = re.compile(r"\bmodule\.exports\s*=")
_CJS_NAMED_RE = re.compile(r"\b(?:module\.)?exports\.([\w$]+)\s*=")

_DECORATOR_RE = re.compile(r"^[ \t]*@([\w$.]+)", re.MULTILINE)
_SCRIPT_BLOCK_RE = re.compile(r"<script\b[^>]*>(.*?)</script>", re.DOTALL | re.IGNORECASE)
_SHEBANG_RE = re.compile(r"\A#![^\n]*\bnode\b")


def _script_only(source: str) -> str:
    """Blank everything outside <script> blocks, keeping line numbers."""
    out = [c if c == "\n" else " " for c in source]
    for m in _SCRIPT_BLOCK_RE.finditer(source):
        out[m.start(1):m.end(1)] = source[m.start(1):m.end(1)]
    return "".join(out)


def _names_from_list(body: str) -> list[str]:
    names = []
    for part in body.split(","):
        part = part.strip()
        if not part:
            continue
        part = re.sub(r"^type\s+", "", part)
        names.append(part.split(" as ")[-1].strip())
    return names


class JsExtractor(BaseExtractor):
    languages = (Language.JAVASCRIPT, Language.TYPESCRIPT)
    parse_method = "js-regex"

    def extract(self, file_path: str, content: str) -> ParseResult:
        source = content
        if file_path.endswith((".vue", ".svelte")):
            source = _script_only(source)
        entry_hint = bool(_SHEBANG_RE.match(source))
        if source.startswith("#!"):
            source = " " * source.index("\n") + source[source.index("\n"):] if "\n" in source else ""
        source = blank_comments(source)
        index = LineIndex(source)

        found: list[tuple[int, ImportEdge]] = []
        collect_matches(_IMPORT_FROM_RE, source, index, "esm", found)
        collect_matches(_SIDE_EFFECT_RE, source, index, "esm", found)
        collect_matches(_REEXPORT_RE, source, index, "re-export", found, group=2)
        collect_matches(_REQUIRE_RE, source, index, "commonjs", found)
        collect_matches(_DYNAMIC_RE, source, index, "dynamic", found)
        collect_matches(_DYNAMIC_TEMPLATE_RE, source, index, "dynamic", found)
        collect_matches(_GLOB_RE, source, index, "glob", found)
        collect_matches(_REQUIRE_CONTEXT_RE, source, index, "dynamic-prefix", found)

        for m in _GLOB_ARRAY_RE.finditer(source):
            for pattern in re.findall(_Q, m.group(1)):
                if not pattern.startswith("!"):
                    found.append((m.start(), ImportEdge(pattern, "glob", index.line_of(m.start()))))

        for m in _DYNAMIC_PREFIX_RE.finditer(source):
            prefix = m.group(1) if m.group(1) is not None else m.group(2)
            # A bare `import(name)` prefix says nothing about the target directory.
            if prefix and "/" in prefix:
                found.append((m.start(), ImportEdge(prefix, "dynamic-prefix", index.line_of(m.start()))))

        imports = ordered_imports(found)
        exports = self._exports(source, index)
        annotations = sorted({m.group(1) for m in _DECORATOR_RE.finditer(source)})

        metadata: dict = {
            "has_dynamic_imports": any(e.kind.startswith("dynamic") or e.kind == "glob" for e in imports),
        }
        if entry_hint:
            metadata["entry_hint"] = "shebang"
        return ParseResult(imports=imports, exports=exports, annotations=annotations, metadata=metadata)

    def _exports(self, source: str, index: LineIndex) -> list[ExportDecl]:
        exports: list[tuple[int, ExportDecl]] = []

        for m in _EXPORT_DECL_RE.finditer(source):
            kind = m.group("kind").split()[-1]
            name = "default" if m.group("default") else m.group("name")
            if not name:
                continue
            exports.append((m.start(), ExportDecl(name, kind, index.line_of(m.start()))))

        for m in _EXPORT_DEFAULT_RE.finditer(source):
            exports.append((m.start(), ExportDecl("default", "default", index.line_of(m.start()))))

        for m in _EXPORT_LIST_RE.finditer(source):
            line = index.line_of(m.start())
            for name in _names_from_list(m.group(1)):
                exports.append((m.start(), ExportDecl(name, "binding", line)))

        for m in _REEXPORT_RE.finditer(source):
            line = index.line_of(m.start())
            what, origin = m.group("what"), m.group(2)
            if what.startswith("*"):
                alias = what.split(" as ")[-1].strip() if " as " in what else "*"
                exports.append((m.start(), ExportDecl(alias, "re-export", line, origin)))
            else:
                for name in _names_from_list(what.strip("{}")):
                    exports.append((m.start(), ExportDecl(name, "re-export", line, origin)))

        for m in _CJS_DEFAULT_RE.finditer(source):
            exports.append((m.start(), ExportDecl("default", "commonjs", index.line_of(m.start()))))
        for m in _CJS_NAMED_RE.finditer(source):
            exports.append((m.start(), ExportDecl(m.group(1), "commonjs", index.line_of(m.start()))))

        exports.sort(key=lambda item: item[0])
        return [decl for _, decl in exports]
