"""Data models for the file import graph."""

from __future__ import annotations

from dataclasses import dataclass, field

from code_reach.models import FileHandle, ImportEdge


@dataclass
class GraphNode:
    handle: FileHandle
    discovered: bool = True  # False for targets created lazily during resolution
    links: list[str] = field(default_factory=list)  # resolved targets, in import order
    importers: set[str] = field(default_factory=set)
    unresolved: list[ImportEdge] = field(default_factory=list)

    @property
    def path(self) -> str:
        return self.handle.path

    @property
    def in_degree(self) -> int:
        return len(self.importers)


@dataclass
class ImportGraph:
    nodes: dict[str, GraphNode] = field(default_factory=dict)
    # project path prefix -> files that build imports from it at runtime
    dynamic_prefixes: dict[str, list[str]] = field(default_factory=dict)
    edge_count: int = 0

    def successors(self, path: str) -> list[str]:
        node = self.nodes.get(path)
        return node.links if node else []

    def discovered_paths(self) -> list[str]:
        return [path for path, node in self.nodes.items() if node.discovered]

    def unresolved_imports(self) -> dict[str, list[str]]:
        return {
            path: [edge.specifier for edge in node.unresolved]
            for path, node in sorted(self.nodes.items())
            if node.unresolved
        }
