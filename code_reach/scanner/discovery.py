"""File discovery with early directory pruning."""

from __future__ import annotations

import fnmatch
import logging
import os
import re
from pathlib import Path

from code_reach.models import DEFAULT_SKIP_DIRS, FileHandle
from code_reach.scanner.language_map import detect_language

logger = logging.getLogger(__name__)

_SKIP_FILE_RE = re.compile(r"\.(min|bundle|chunk)\.")


def should_skip_dir(name: str, skip_dirs: list[str]) -> bool:
    if name.startswith("."):
        return True
    return any(fnmatch.fnmatch(name, pattern) for pattern in skip_dirs)


def discover_files(
    root: Path,
    skip_dirs: list[str] | None = None,
    max_depth: int = 50,
) -> list[FileHandle]:
    """Walk `root` and return a handle for every file in a supported language.

    Hidden entries, skipped directories and minified bundles are ignored.
    Results are sorted by relative path so scans are reproducible.
    """
    root = root.resolve()
    skip_dirs = skip_dirs if skip_dirs is not None else DEFAULT_SKIP_DIRS
    handles: list[FileHandle] = []

    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = os.path.relpath(dirpath, root)
        depth = 0 if rel_dir == "." else rel_dir.count(os.sep) + 1
        if depth >= max_depth:
            dirnames[:] = []
        else:
            dirnames[:] = [d for d in dirnames if not should_skip_dir(d, skip_dirs)]

        for name in filenames:
            if name.startswith(".") or _SKIP_FILE_RE.search(name):
                continue
            rel = name if rel_dir == "." else f"{rel_dir}/{name}"
            rel = rel.replace(os.sep, "/")
            language = detect_language(rel)
            if language is None:
                continue
            abs_path = Path(dirpath) / name
            try:
                size = abs_path.stat().st_size
            except OSError:
                continue
            handles.append(FileHandle(
                path=rel,
                absolute_path=abs_path,
                size_bytes=size,
                language=language,
            ))

    handles.sort(key=lambda h: h.path)
    logger.debug("Discovered %d files under %s", len(handles), root)
    return handles
