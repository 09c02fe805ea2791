"""Shared extension-to-language mapping for discovery and the parser registry."""

from __future__ import annotations

from code_reach.models import Language

EXT_TO_LANGUAGE: dict[str, Language] = {
    ".js": Language.JAVASCRIPT,
    ".jsx": Language.JAVASCRIPT,
    ".mjs": Language.JAVASCRIPT,
    ".cjs": Language.JAVASCRIPT,
    ".vue": Language.JAVASCRIPT,
    ".svelte": Language.JAVASCRIPT,
    ".ts": Language.TYPESCRIPT,
    ".tsx": Language.TYPESCRIPT,
    ".mts": Language.TYPESCRIPT,
    ".cts": Language.TYPESCRIPT,
    ".py": Language.PYTHON,
    ".pyi": Language.PYTHON,
    ".go": Language.GO,
    ".java": Language.JAVA,
    ".kt": Language.KOTLIN,
    ".kts": Language.KOTLIN,
    ".scala": Language.SCALA,
    ".sc": Language.SCALA,
    ".rb": Language.RUBY,
    ".php": Language.PHP,
    ".rs": Language.RUST,
    ".c": Language.C,
    ".h": Language.C,
    ".cc": Language.CPP,
    ".cpp": Language.CPP,
    ".cxx": Language.CPP,
    ".hpp": Language.CPP,
    ".hh": Language.CPP,
    ".dart": Language.DART,
}

# Languages whose files in one directory/package compile together.
JVM_LANGUAGES: frozenset[Language] = frozenset({Language.JAVA, Language.KOTLIN, Language.SCALA})
JS_LANGUAGES: frozenset[Language] = frozenset({Language.JAVASCRIPT, Language.TYPESCRIPT})


def detect_language(path: str) -> Language | None:
    """Classify a path by extension. None for files the scanner ignores."""
    dot = path.rfind(".")
    if dot <= path.rfind("/"):
        return None
    return EXT_TO_LANGUAGE.get(path[dot:].lower())
