"""File discovery and language classification."""

from __future__ import annotations

from code_reach.scanner.discovery import discover_files, should_skip_dir
from code_reach.scanner.language_map import EXT_TO_LANGUAGE, detect_language

__all__ = [
    "EXT_TO_LANGUAGE",
    "detect_language",
    "discover_files",
    "should_skip_dir",
]
