"""Parser registry: maps a file's language to its extractor."""

from __future__ import annotations

from code_reach.extractor.base import BaseExtractor
from code_reach.extractor.go_extractor import GoExtractor
from code_reach.extractor.js_extractor import JsExtractor
from code_reach.extractor.jvm_extractor import JvmExtractor
from code_reach.extractor.pattern_extractor import (
    CFamilyExtractor,
    DartExtractor,
    PhpExtractor,
    RubyExtractor,
    RustExtractor,
)
from code_reach.extractor.python_extractor import PythonExtractor
from code_reach.models import Language, ParseResult
from code_reach.scanner.language_map import EXT_TO_LANGUAGE, detect_language

_EXTRACTORS: dict[Language, BaseExtractor] = {}

for _cls in (
    JsExtractor,
    PythonExtractor,
    GoExtractor,
    JvmExtractor,
    RubyExtractor,
    PhpExtractor,
    RustExtractor,
    CFamilyExtractor,
    DartExtractor,
):
    _instance = _cls()
    for _lang in _cls.languages:
        _EXTRACTORS[_lang] = _instance


def get_extractor(language: Language) -> BaseExtractor | None:
    return _EXTRACTORS.get(language)


def parse_file(file_path: str, content: str) -> ParseResult:
    """Parse one file. Never raises; unsupported files yield an empty result."""
    language = detect_language(file_path)
    extractor = _EXTRACTORS.get(language) if language else None
    if extractor is None:
        return ParseResult.empty(error=f"Unsupported file type: {file_path}")
    return extractor.parse(file_path, content)


def supported_extensions() -> list[str]:
    return sorted(ext for ext, lang in EXT_TO_LANGUAGE.items() if lang in _EXTRACTORS)


__all__ = [
    "BaseExtractor",
    "get_extractor",
    "parse_file",
    "supported_extensions",
]
