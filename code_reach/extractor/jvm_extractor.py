"""Java, Kotlin and Scala extractor."""

from __future__ import annotations

import re

from code_reach.extractor.base import BaseExtractor, LineIndex, blank_comments
from code_reach.models import ExportDecl, ImportEdge, Language, ParseResult

_PACKAGE_RE = re.compile(r"^[ \t]*package\s+([\w.]+)", re.MULTILINE)
_IMPORT_RE = re.compile(
    r"^[ \t]*import\s+(?P<static>static\s+)?(?P<name>[\w.`]+?)(?P<tail>\.\*|\._|\.\{[^}]*\})?\s*;?\s*(?:as\s+\w+)?$",
    re.MULTILINE,
)
_DECL_RE = re.compile(
    r"^[ \t]*(?P<mods>(?:(?:public|protected|private|internal|abstract|final|sealed|open|data|"
    r"inner|enum|annotation|static|case|implicit)\s+)*)"
    r"(?P<kind>class|interface|enum|record|object|trait|@interface)\s+(?P<name>\w+)",
    re.MULTILINE,
)
_ANNOTATION_RE = re.compile(r"@([A-Z]\w*(?:\.\w+)*)")
_JAVA_MAIN_RE = re.compile(r"\bstatic\s+(?:final\s+)?void\s+main\s*\(")
_KOTLIN_MAIN_RE = re.compile(r"^[ \t]*fun\s+main\s*\(", re.MULTILINE)
_SCALA_APP_RE = re.compile(r"\bextends\s+App\b|\bdef\s+main\s*\(|@main\b")

_ENTRY_ANNOTATIONS = {"SpringBootApplication", "QuarkusMain", "Application"}


class JvmExtractor(BaseExtractor):
    languages = (Language.JAVA, Language.KOTLIN, Language.SCALA)
    parse_method = "jvm-regex"

    def extract(self, file_path: str, content: str) -> ParseResult:
        source = blank_comments(content, quotes='"')
        index = LineIndex(source)
        imports: list[ImportEdge] = []

        for m in _IMPORT_RE.finditer(source):
            name = m.group("name").replace("`", "")
            tail = m.group("tail") or ""
            kind = "static" if m.group("static") else "import"
            line = index.line_of(m.start())
            if tail in (".*", "._"):
                imports.append(ImportEdge(f"{name}.*", kind, line))
            elif tail.startswith(".{"):
                for selector in tail[2:-1].split(","):
                    selector = selector.split("=>")[0].strip()
                    if selector in ("_", "*"):
                        imports.append(ImportEdge(f"{name}.*", kind, line))
                    elif selector:
                        imports.append(ImportEdge(f"{name}.{selector}", kind, line))
            else:
                imports.append(ImportEdge(name, kind, line))

        exports = []
        for m in _DECL_RE.finditer(source):
            mods = m.group("mods")
            if "private" in mods.split():
                continue
            kind = m.group("kind").lstrip("@")
            exports.append(ExportDecl(m.group("name"), kind, index.line_of(m.start())))

        annotations = sorted({m.group(1).split(".")[-1] for m in _ANNOTATION_RE.finditer(source)})

        metadata: dict = {}
        package = _PACKAGE_RE.search(source)
        if package:
            metadata["package"] = package.group(1)
        if (
            _JAVA_MAIN_RE.search(source)
            or _KOTLIN_MAIN_RE.search(source)
            or (file_path.endswith((".scala", ".sc")) and _SCALA_APP_RE.search(source))
        ):
            metadata["entry_hint"] = "main"
        elif _ENTRY_ANNOTATIONS.intersection(annotations):
            metadata["entry_hint"] = "application"

        return ParseResult(imports=imports, exports=exports, annotations=annotations, metadata=metadata)
