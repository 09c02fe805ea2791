"""Import graph, reachability and verdicts."""

from __future__ import annotations

from code_reach.analysis.graph_builder import GraphBuilder
from code_reach.analysis.graph_models import GraphNode, ImportGraph
from code_reach.analysis.reachability import EntryPointDetector, walk
from code_reach.analysis.verdicts import ScoreWeights, VerdictClassifier

__all__ = [
    "EntryPointDetector",
    "GraphBuilder",
    "GraphNode",
    "ImportGraph",
    "ScoreWeights",
    "VerdictClassifier",
    "walk",
]
