"""Go extractor."""

from __future__ import annotations

import re

from code_reach.extractor.base import BaseExtractor, LineIndex, blank_comments
from code_reach.models import ExportDecl, ImportEdge, Language, ParseResult

_PACKAGE_RE = re.compile(r"^[ \t]*package\s+(\w+)", re.MULTILINE)
_SINGLE_IMPORT_RE = re.compile(r'^[ \t]*import\s+(?:[\w.]+\s+)?"([^"]+)"', re.MULTILINE)
_BLOCK_IMPORT_RE = re.compile(r"^[ \t]*import\s*\(([^)]*)\)", re.MULTILINE)
_BLOCK_ENTRY_RE = re.compile(r'(?:[\w.]+\s+)?"([^"]+)"')
_FUNC_RE = re.compile(r"^func\s+(?:\([^)]*\)\s*)?([A-Z]\w*)\s*[\[(]", re.MULTILINE)
_TYPE_RE = re.compile(r"^type\s+([A-Z]\w*)\s+(struct|interface|\w+)", re.MULTILINE)
_MAIN_FUNC_RE = re.compile(r"^func\s+main\s*\(\s*\)", re.MULTILINE)


class GoExtractor(BaseExtractor):
    languages = (Language.GO,)
    parse_method = "go-regex"

    def extract(self, file_path: str, content: str) -> ParseResult:
        source = blank_comments(content, quotes='"`')
        index = LineIndex(source)
        found: list[tuple[int, ImportEdge]] = []

        for m in _SINGLE_IMPORT_RE.finditer(source):
            found.append((m.start(), ImportEdge(m.group(1), "import", index.line_of(m.start()))))

        for m in _BLOCK_IMPORT_RE.finditer(source):
            base = m.start(1)
            for entry in _BLOCK_ENTRY_RE.finditer(m.group(1)):
                offset = base + entry.start()
                found.append((offset, ImportEdge(entry.group(1), "import", index.line_of(offset))))

        found.sort(key=lambda item: item[0])
        imports = [edge for _, edge in found]

        exports = [
            ExportDecl(m.group(1), "function", index.line_of(m.start()))
            for m in _FUNC_RE.finditer(source)
        ]
        exports.extend(
            ExportDecl(m.group(1), "struct" if m.group(2) == "struct" else "type", index.line_of(m.start()))
            for m in _TYPE_RE.finditer(source)
        )
        exports.sort(key=lambda e: e.line)

        metadata: dict = {}
        package = _PACKAGE_RE.search(source)
        if package:
            metadata["package"] = package.group(1)
            if package.group(1) == "main" and _MAIN_FUNC_RE.search(source):
                metadata["entry_hint"] = "package main"
        return ParseResult(imports=imports, exports=exports, metadata=metadata)
