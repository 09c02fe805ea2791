"""Import graph builder: resolves every extracted import into file edges."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Mapping

from code_reach.analysis.graph_models import GraphNode, ImportGraph
from code_reach.models import FileHandle, Language, ParseResult
from code_reach.resolution.resolver import Resolver
from code_reach.scanner.language_map import JVM_LANGUAGES, detect_language

logger = logging.getLogger(__name__)


class GraphBuilder:
    """Build an ImportGraph from discovered files and their parse results."""

    def __init__(self, resolver: Resolver):
        self.resolver = resolver

    def build(self, handles: list[FileHandle], results: Mapping[str, ParseResult]) -> ImportGraph:
        graph = ImportGraph()

        # Step 1: one node per discovered file
        for handle in handles:
            graph.nodes[handle.path] = GraphNode(handle=handle)
        known = [handle.path for handle in handles]

        # Step 2: edges from declared imports
        for handle in handles:
            result = results.get(handle.path)
            if result is None:
                continue
            node = graph.nodes[handle.path]
            for edge in result.imports:
                if edge.kind == "dynamic-prefix":
                    prefix = self.resolver.resolve_prefix(edge.specifier, handle.path, handle.language)
                    if prefix is not None:
                        graph.dynamic_prefixes.setdefault(prefix, []).append(handle.path)
                    continue
                if edge.kind == "glob":
                    targets = tuple(self.resolver.expand_glob(edge.specifier, handle.path, known))
                else:
                    targets = self.resolver.resolve_all(edge.specifier, handle.path, handle.language)
                if not targets:
                    node.unresolved.append(edge)
                    continue
                for target in targets:
                    self._add_edge(graph, handle.path, target)

        # Step 3: files compiled together reach each other
        self._link_go_packages(graph, handles)
        self._link_jvm_packages(graph, handles, results)

        logger.debug(
            "Built graph: %d nodes, %d edges, %d dynamic prefixes",
            len(graph.nodes), graph.edge_count, len(graph.dynamic_prefixes),
        )
        return graph

    def _add_edge(self, graph: ImportGraph, source: str, target: str) -> None:
        if source == target:
            return
        target_node = graph.nodes.get(target)
        # Avoid duplicate edges
        if target_node is not None and source in target_node.importers:
            return
        if target_node is None:
            target_node = graph.nodes[target] = self._lazy_node(target)
        graph.nodes[source].links.append(target)
        target_node.importers.add(source)
        graph.edge_count += 1

    def _lazy_node(self, path: str) -> GraphNode:
        absolute = self.resolver.root / path
        try:
            size = absolute.stat().st_size
        except OSError:
            size = 0
        handle = FileHandle(
            path=path,
            absolute_path=absolute,
            size_bytes=size,
            language=detect_language(path) or Language.UNKNOWN,
        )
        return GraphNode(handle=handle, discovered=False)

    def _link_go_packages(self, graph: ImportGraph, handles: list[FileHandle]) -> None:
        packages: dict[str, list[str]] = defaultdict(list)
        tests: dict[str, list[str]] = defaultdict(list)
        for handle in handles:
            if handle.language is not Language.GO:
                continue
            directory = handle.path.rpartition("/")[0]
            if handle.path.endswith("_test.go"):
                tests[directory].append(handle.path)
            else:
                packages[directory].append(handle.path)

        for directory, files in packages.items():
            for source in files:
                for target in files:
                    self._add_edge(graph, source, target)
            for test in tests.get(directory, []):
                for target in files:
                    self._add_edge(graph, test, target)

    def _link_jvm_packages(
        self,
        graph: ImportGraph,
        handles: list[FileHandle],
        results: Mapping[str, ParseResult],
    ) -> None:
        packages: dict[str, list[str]] = defaultdict(list)
        for handle in handles:
            if handle.language not in JVM_LANGUAGES:
                continue
            result = results.get(handle.path)
            package = result.metadata.get("package") if result else None
            if package:
                packages[package].append(handle.path)

        for files in packages.values():
            for source in files:
                for target in files:
                    self._add_edge(graph, source, target)
