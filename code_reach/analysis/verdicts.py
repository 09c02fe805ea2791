"""Verdict classifier: grades every unreached file."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Mapping

from code_reach.analysis.graph_models import GraphNode, ImportGraph
from code_reach.models import Confidence, DeadFile, Evidence, ParseResult, Verdict


@dataclass(frozen=True)
class ScoreWeights:
    unreachable: float = 0.95
    partially_unreachable: float = 0.8
    per_extra_importer: float = 0.05
    partial_floor: float = 0.6
    dynamic_cap: float = 0.35
    high: float = 0.85
    medium: float = 0.6

    def label(self, score: float) -> str:
        if score >= self.high:
            return "high"
        if score >= self.medium:
            return "medium"
        return "low"


class VerdictClassifier:
    """Classify unreached discovered files.

    - unreachable: nothing imports it and no dynamic-loading signal
    - partially-unreachable: only imported by other unreached files
    - possibly-live: path matches a dynamic-loading pattern, or falls under
      a string-built import prefix of a reached file
    """

    def __init__(self, dynamic_patterns: Iterable[str], weights: ScoreWeights | None = None):
        self.dynamic_patterns = [(p, re.compile(p)) for p in dynamic_patterns]
        self.weights = weights or ScoreWeights()

    def classify(
        self,
        graph: ImportGraph,
        reachable: set[str],
        results: Mapping[str, ParseResult],
        entry_point_count: int,
    ) -> list[DeadFile]:
        dead = []
        for path in sorted(graph.nodes):
            node = graph.nodes[path]
            if not node.discovered or path in reachable:
                continue
            dead.append(self.classify_node(node, graph, reachable, results.get(path), entry_point_count))
        return dead

    def classify_node(
        self,
        node: GraphNode,
        graph: ImportGraph,
        reachable: set[str],
        result: ParseResult | None,
        entry_point_count: int,
    ) -> DeadFile:
        w = self.weights
        importers = sorted(node.importers)
        dynamic_check = self._dynamic_check(node.path, graph, reachable)

        if importers:
            score = max(w.partial_floor, w.partially_unreachable - w.per_extra_importer * (len(importers) - 1))
            verdict = Verdict.PARTIALLY_UNREACHABLE
        else:
            score = w.unreachable
            verdict = Verdict.UNREACHABLE

        if dynamic_check is not None:
            score = min(score, w.dynamic_cap)
            verdict = Verdict.POSSIBLY_LIVE

        score = round(score, 2)
        evidence = Evidence(
            entry_points={"reached_by": 0, "total": entry_point_count},
            confidence=Confidence(score=score, label=w.label(score)),
            dynamic_check=dynamic_check,
            importers=importers,
        )
        return DeadFile(
            path=node.path,
            size=node.handle.size_bytes,
            lines=result.metadata.get("lines", 0) if result else 0,
            exports=[e.name for e in result.exports] if result else [],
            verdict=verdict,
            evidence=evidence,
        )

    def _dynamic_check(self, path: str, graph: ImportGraph, reachable: set[str]) -> dict[str, str] | None:
        for source, regex in self.dynamic_patterns:
            if regex.search(path):
                return {"matched_pattern": source, "source": "pattern"}
        for prefix, builders in sorted(graph.dynamic_prefixes.items()):
            if not path.startswith(prefix):
                continue
            live = [b for b in builders if b in reachable]
            if live:
                return {"matched_pattern": prefix, "source": live[0]}
        return None
