"""Entry point detection and reachability walk."""

from __future__ import annotations

import logging
import re
from collections import deque
from typing import Iterable, Mapping

from code_reach.analysis.graph_models import ImportGraph
from code_reach.models import ParseResult

logger = logging.getLogger(__name__)


class EntryPointDetector:
    """Decide which files are roots of the reachability walk.

    Order: caller-supplied files, manifest-declared entries, files matching
    the structural patterns, then files whose extractor flagged them as a
    program entry (`__main__` guard, Go `package main`, JVM `main`).
    """

    def __init__(self, patterns: Iterable[str], use_hints: bool = True):
        self.patterns = [re.compile(p) for p in patterns]
        self.use_hints = use_hints

    def matches(self, path: str) -> bool:
        return any(p.search(path) for p in self.patterns)

    def detect(
        self,
        graph: ImportGraph,
        results: Mapping[str, ParseResult],
        explicit: Iterable[str] = (),
        manifest: Iterable[str] = (),
    ) -> list[str]:
        entries: dict[str, None] = {}

        for path in explicit:
            path = path.removeprefix("./")
            if path in graph.nodes:
                entries.setdefault(path, None)
            else:
                logger.warning("Entry point %s is not a scanned file", path)

        for path in manifest:
            if path in graph.nodes:
                entries.setdefault(path, None)

        discovered = sorted(graph.discovered_paths())
        for path in discovered:
            if self.matches(path):
                entries.setdefault(path, None)

        if self.use_hints:
            for path in discovered:
                result = results.get(path)
                if result is not None and result.metadata.get("entry_hint"):
                    entries.setdefault(path, None)

        return list(entries)


def walk(graph: ImportGraph, entry_points: Iterable[str]) -> set[str]:
    """BFS from every entry point; returns all reached paths."""
    reached: set[str] = set()
    queue: deque[str] = deque()
    for path in entry_points:
        if path in graph.nodes and path not in reached:
            reached.add(path)
            queue.append(path)

    while queue:
        current = queue.popleft()
        for neighbor in graph.successors(current):
            if neighbor not in reached:
                reached.add(neighbor)
                queue.append(neighbor)
    return reached
