"""Table-driven extractors for languages whose imports are a handful of
line-level statements: Ruby, PHP, Rust, C/C++ and Dart."""

from __future__ import annotations

import re
from typing import Callable, NamedTuple

from code_reach.extractor.base import (
    BaseExtractor,
    LineIndex,
    blank_comments,
    ordered_imports,
)
from code_reach.models import ExportDecl, ImportEdge, Language, ParseResult


class ImportRule(NamedTuple):
    pattern: re.Pattern[str]
    kind: str
    normalize: Callable[[re.Match[str]], str | None] | None = None


class ExportRule(NamedTuple):
    pattern: re.Pattern[str]
    kind: str  # "" means take the kind from group "kind"


def _group1(m: re.Match[str]) -> str | None:
    return m.group(1)


class PatternExtractor(BaseExtractor):
    """Applies `import_rules` and `export_rules` to comment-blanked source."""

    import_rules: tuple[ImportRule, ...] = ()
    export_rules: tuple[ExportRule, ...] = ()
    line_comments: tuple[str, ...] = ("//",)
    block_comment: tuple[str, str] | None = ("/*", "*/")
    quotes: str = "'\""
    entry_re: re.Pattern[str] | None = None

    def extract(self, file_path: str, content: str) -> ParseResult:
        source = blank_comments(content, self.line_comments, self.block_comment, self.quotes)
        index = LineIndex(source)

        found: list[tuple[int, ImportEdge]] = []
        for rule in self.import_rules:
            normalize = rule.normalize or _group1
            for m in rule.pattern.finditer(source):
                specifier = normalize(m)
                if specifier:
                    found.append((m.start(), ImportEdge(specifier, rule.kind, index.line_of(m.start()))))

        exports: list[ExportDecl] = []
        for rule in self.export_rules:
            for m in rule.pattern.finditer(source):
                kind = rule.kind or m.group("kind")
                exports.append(ExportDecl(m.group("name"), kind, index.line_of(m.start())))
        exports.sort(key=lambda e: e.line)

        metadata: dict = {}
        if self.entry_re is not None and self.entry_re.search(source):
            metadata["entry_hint"] = "main"
        return ParseResult(imports=ordered_imports(found), exports=exports, metadata=metadata)


# -- Ruby ------------------------------------------------------------------

def _ruby_relative(m: re.Match[str]) -> str:
    path = m.group(1)
    return path if path.startswith(".") else f"./{path}"


class RubyExtractor(PatternExtractor):
    languages = (Language.RUBY,)
    line_comments = ("#",)
    block_comment = ("=begin", "=end")
    import_rules = (
        ImportRule(re.compile(r"""\brequire_relative\s*\(?\s*['"]([^'"]+)['"]"""), "require", _ruby_relative),
        ImportRule(re.compile(r"""(?<![\w.])(?:require|load)\s*\(?\s*['"]([^'"]+)['"]"""), "require"),
        ImportRule(re.compile(r"""\bautoload\s*\(?\s*:\w+\s*,\s*['"]([^'"]+)['"]"""), "require"),
    )
    export_rules = (
        ExportRule(re.compile(r"^[ \t]*(?P<kind>class|module)\s+(?P<name>[A-Z]\w*(?:::\w+)*)", re.MULTILINE), ""),
        ExportRule(re.compile(r"^[ \t]*def\s+(?:self\.)?(?P<name>\w+[?!=]?)", re.MULTILINE), "method"),
    )


# -- PHP -------------------------------------------------------------------

def _php_include(m: re.Match[str]) -> str:
    path = m.group("path")
    if m.group("dir"):
        # __DIR__ . '/x.php' is relative to the including file
        return "." + path if path.startswith("/") else "./" + path
    return path


def _php_use(m: re.Match[str]) -> str:
    return m.group(1).lstrip("\\")


class PhpExtractor(PatternExtractor):
    languages = (Language.PHP,)
    line_comments = ("//", "#")
    import_rules = (
        ImportRule(
            re.compile(
                r"""\b(?:require|include)(?:_once)?\s*\(?\s*(?P<dir>(?:__DIR__|dirname\(__FILE__\))\s*\.\s*)?"""
                r"""['"](?P<path>[^'"]+)['"]"""
            ),
            "include",
            _php_include,
        ),
        ImportRule(re.compile(r"^[ \t]*use\s+(?:function\s+|const\s+)?([\w\\]+)", re.MULTILINE), "use", _php_use),
    )
    export_rules = (
        ExportRule(
            re.compile(
                r"^[ \t]*(?:(?:abstract|final|readonly)\s+)*(?P<kind>class|interface|trait|enum)\s+(?P<name>\w+)",
                re.MULTILINE,
            ),
            "",
        ),
        ExportRule(re.compile(r"^function\s+(?P<name>\w+)", re.MULTILINE), "function"),
    )


# -- Rust ------------------------------------------------------------------

def _rust_use(m: re.Match[str]) -> str:
    return f"{m.group(1)}::{m.group(2)}"


class RustExtractor(PatternExtractor):
    languages = (Language.RUST,)
    quotes = '"'
    import_rules = (
        ImportRule(re.compile(r"^[ \t]*(?:pub(?:\([^)]*\))?\s+)?mod\s+(\w+)\s*;", re.MULTILINE), "mod"),
        ImportRule(re.compile(r"\buse\s+(crate|self|super)::(\w+(?:::\w+)*)"), "use", _rust_use),
    )
    export_rules = (
        ExportRule(
            re.compile(
                r"^[ \t]*pub\s+(?:async\s+|unsafe\s+|const\s+)*"
                r"(?P<kind>fn|struct|enum|trait|type|const|static|mod|macro)\s+(?P<name>\w+)",
                re.MULTILINE,
            ),
            "",
        ),
    )
    entry_re = re.compile(r"^[ \t]*(?:async\s+)?fn\s+main\s*\(", re.MULTILINE)


# -- C / C++ ---------------------------------------------------------------

class CFamilyExtractor(PatternExtractor):
    languages = (Language.C, Language.CPP)
    import_rules = (
        ImportRule(re.compile(r'^[ \t]*#\s*include\s*"([^"]+)"', re.MULTILINE), "include"),
        ImportRule(re.compile(r"^[ \t]*#\s*include\s*<([^>]+)>", re.MULTILINE), "system-include"),
    )
    export_rules = (
        ExportRule(
            re.compile(
                r"^(?!static\b)(?:[A-Za-z_][\w:<>,]*[\s*&]+)+(?P<name>[A-Za-z_][\w:]*)\s*\([^;{)]*\)\s*(?:const\s*)?\{",
                re.MULTILINE,
            ),
            "function",
        ),
        ExportRule(
            re.compile(r"^[ \t]*(?:typedef\s+)?(?P<kind>struct|class|enum|union)\s+(?P<name>[A-Za-z_]\w*)\s*[{:]", re.MULTILINE),
            "",
        ),
    )
    entry_re = re.compile(r"^[ \t]*int\s+main\s*\(", re.MULTILINE)


# -- Dart ------------------------------------------------------------------

def _dart_uri(m: re.Match[str]) -> str:
    uri = m.group(2)
    if ":" in uri or uri.startswith((".", "/")):
        return uri
    return f"./{uri}"


class DartExtractor(PatternExtractor):
    languages = (Language.DART,)
    import_rules = (
        ImportRule(re.compile(r"""^[ \t]*(import|export|part)\s+['"]([^'"]+)['"]""", re.MULTILINE), "import", _dart_uri),
    )
    export_rules = (
        ExportRule(
            re.compile(
                r"^[ \t]*(?:abstract\s+|sealed\s+|base\s+|final\s+)*(?P<kind>class|mixin|enum|extension)\s+(?P<name>[A-Za-z]\w*)",
                re.MULTILINE,
            ),
            "",
        ),
    )
    entry_re = re.compile(r"^[ \t]*(?:void\s+|Future<void>\s+)?main\s*\(", re.MULTILINE)
