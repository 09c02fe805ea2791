"""Tests for the import graph, entry point detection, the walk and verdicts."""

from pathlib import Path

from code_reach.analysis import (
    EntryPointDetector,
    GraphBuilder,
    GraphNode,
    ImportGraph,
    ScoreWeights,
    VerdictClassifier,
    walk,
)
from code_reach.config import DEFAULT_DYNAMIC_PATTERNS, DEFAULT_ENTRY_PATTERNS
from code_reach.extractor import parse_file
from code_reach.models import ExportDecl, FileHandle, Language, ParseResult, Verdict
from code_reach.resolution import Resolver
from code_reach.scanner.language_map import detect_language


def _build(root, sources, hidden=(), **resolver_kwargs):
    """Write `sources` (and `hidden` files that discovery did not return),
    parse them and build the graph."""
    for rel, content in {**sources, **{h: "" for h in hidden}}.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    handles = [
        FileHandle(rel, root / rel, len(content), detect_language(rel) or Language.UNKNOWN)
        for rel, content in sorted(sources.items())
    ]
    results = {rel: parse_file(rel, content) for rel, content in sources.items()}
    resolver = Resolver(root, known_files=[*sources, *hidden], **resolver_kwargs)
    return GraphBuilder(resolver).build(handles, results), results


def _graph(edges=(), paths=(), undiscovered=()):
    graph = ImportGraph()
    for path in [*paths, *(p for edge in edges for p in edge)]:
        if path not in graph.nodes:
            handle = FileHandle(path, Path(path), 100, Language.TYPESCRIPT)
            graph.nodes[path] = GraphNode(handle=handle, discovered=path not in undiscovered)
    for source, target in edges:
        graph.nodes[source].links.append(target)
        graph.nodes[target].importers.add(source)
        graph.edge_count += 1
    return graph


# ── Graph Builder ─────────────────────────────────────────────

class TestGraphBuilder:
    def test_chain_and_isolated_file(self, tmp_path):
        graph, _ = _build(tmp_path, {
            "src/a.ts": "import './b';\n",
            "src/b.ts": "import { c } from './c';\n",
            "src/c.ts": "export const c = 1;\n",
            "src/d.ts": "",
        })
        assert graph.successors("src/a.ts") == ["src/b.ts"]
        assert graph.successors("src/b.ts") == ["src/c.ts"]
        assert graph.nodes["src/c.ts"].importers == {"src/b.ts"}
        assert graph.nodes["src/d.ts"].in_degree == 0
        assert graph.edge_count == 2

    def test_duplicate_imports_collapse(self, tmp_path):
        graph, _ = _build(tmp_path, {
            "src/a.ts": "import { x } from './b';\nimport { y } from './b';\nconst z = require('./b');\n",
            "src/b.ts": "",
        })
        assert graph.successors("src/a.ts") == ["src/b.ts"]
        assert graph.edge_count == 1

    def test_self_import_ignored(self, tmp_path):
        graph, _ = _build(tmp_path, {"src/a.ts": "import './a';\n"})
        assert graph.successors("src/a.ts") == []
        assert graph.edge_count == 0

    def test_unresolved_imports_recorded(self, tmp_path):
        graph, _ = _build(tmp_path, {
            "src/a.ts": "import React from 'react';\nimport './missing';\n",
        })
        assert graph.successors("src/a.ts") == []
        assert graph.unresolved_imports() == {"src/a.ts": ["react", "./missing"]}

    def test_lazy_node_for_undiscovered_target(self, tmp_path):
        graph, _ = _build(
            tmp_path,
            {"src/a.ts": "import './generated';\n"},
            hidden=["src/generated.ts"],
        )
        node = graph.nodes["src/generated.ts"]
        assert node.discovered is False
        assert node.handle.language is Language.TYPESCRIPT
        assert graph.discovered_paths() == ["src/a.ts"]

    def test_edges_are_consistent(self, tmp_path):
        graph, _ = _build(tmp_path, {
            "src/a.ts": "import './b';\nimport './c';\n",
            "src/b.ts": "import './c';\nimport './a';\n",
            "src/c.ts": "",
        })
        count = 0
        for path, node in graph.nodes.items():
            for target in node.links:
                assert target in graph.nodes
                assert path in graph.nodes[target].importers
                count += 1
        assert count == graph.edge_count == 4

    def test_go_package_files_link_together(self, tmp_path):
        graph, _ = _build(
            tmp_path,
            {
                "cmd/main.go": 'package main\n\nimport "example.com/app/util"\n\nfunc main() {}\n',
                "util/a.go": "package util\n",
                "util/b.go": "package util\n",
                "util/a_test.go": "package util\n",
            },
            go_module="example.com/app",
        )
        assert graph.successors("cmd/main.go") == ["util/a.go", "util/b.go"]
        assert graph.successors("util/a.go") == ["util/b.go"]
        assert set(graph.successors("util/a_test.go")) == {"util/a.go", "util/b.go"}
        assert graph.nodes["util/a_test.go"].importers == set()

    def test_jvm_same_package_links(self, tmp_path):
        graph, _ = _build(tmp_path, {
            "src/main/java/com/acme/A.java": "package com.acme;\n\npublic class A {}\n",
            "src/main/java/com/acme/B.java": "package com.acme;\n\npublic class B {}\n",
            "src/main/java/com/other/C.java": "package com.other;\n\npublic class C {}\n",
        })
        assert graph.successors("src/main/java/com/acme/A.java") == ["src/main/java/com/acme/B.java"]
        assert graph.successors("src/main/java/com/acme/B.java") == ["src/main/java/com/acme/A.java"]
        assert graph.nodes["src/main/java/com/other/C.java"].in_degree == 0

    def test_glob_import_expands(self, tmp_path):
        graph, _ = _build(tmp_path, {
            "src/main.ts": "const mods = import.meta.glob('./modules/*.ts');\n",
            "src/modules/x.ts": "",
            "src/modules/y.ts": "",
            "src/other.ts": "",
        })
        assert graph.successors("src/main.ts") == ["src/modules/x.ts", "src/modules/y.ts"]

    def test_dynamic_prefix_recorded(self, tmp_path):
        graph, _ = _build(tmp_path, {
            "src/router.ts": "const page = import(`./pages/${name}`);\n",
            "src/pages/home.ts": "",
        })
        assert graph.dynamic_prefixes == {"src/pages/": ["src/router.ts"]}
        assert graph.successors("src/router.ts") == []

    def test_python_package_imports(self, tmp_path):
        graph, _ = _build(tmp_path, {
            "main.py": "from app.core import run\n",
            "app/__init__.py": "",
            "app/core.py": "",
        })
        assert graph.successors("main.py") == ["app/core.py", "app/__init__.py"]


# ── Entry Points ──────────────────────────────────────────────

class TestEntryPointDetector:
    def test_order_and_sources(self):
        graph = _graph(paths=["src/index.ts", "src/app.ts", "src/lib/x.ts", "tools/run.py", "src/lib/y.ts"])
        results = {"tools/run.py": ParseResult(metadata={"entry_hint": "__main__"})}
        detector = EntryPointDetector(DEFAULT_ENTRY_PATTERNS)

        entries = detector.detect(
            graph, results, explicit=["./src/lib/x.ts", "missing.ts"], manifest=["src/app.ts", "nope.ts"],
        )
        assert entries == ["src/lib/x.ts", "src/app.ts", "src/index.ts", "tools/run.py"]

    def test_hints_can_be_disabled(self):
        graph = _graph(paths=["tools/run.py"])
        results = {"tools/run.py": ParseResult(metadata={"entry_hint": "__main__"})}
        assert EntryPointDetector(DEFAULT_ENTRY_PATTERNS, use_hints=False).detect(graph, results) == []

    def test_undiscovered_nodes_are_not_pattern_entries(self):
        graph = _graph(paths=["src/main.ts"], undiscovered=["src/main.ts"])
        assert EntryPointDetector(DEFAULT_ENTRY_PATTERNS).detect(graph, {}) == []

    def test_default_patterns(self):
        detector = EntryPointDetector(DEFAULT_ENTRY_PATTERNS)
        for path in (
            "index.ts",
            "src/main.py",
            "bin/tool.js",
            "tests/test_x.py",
            "src/a.test.tsx",
            "pkg/util_test.go",
            "src/main.rs",
            "lib/main.dart",
            "vite.config.ts",
            "src/pages/home.tsx",
        ):
            assert detector.matches(path), path
        for path in ("src/util.ts", "src/lib/helper.py", "pkg/util.go"):
            assert not detector.matches(path), path


# ── Walk ──────────────────────────────────────────────────────

class TestWalk:
    def test_reaches_transitive_imports(self):
        graph = _graph(edges=[("a", "b"), ("b", "c")], paths=["d"])
        assert walk(graph, ["a"]) == {"a", "b", "c"}

    def test_cycles_terminate(self):
        graph = _graph(edges=[("a", "b"), ("b", "a"), ("b", "c")])
        assert walk(graph, ["a"]) == {"a", "b", "c"}

    def test_unknown_entry_ignored(self):
        graph = _graph(edges=[("a", "b")])
        assert walk(graph, ["zzz"]) == set()

    def test_no_entries(self):
        assert walk(_graph(edges=[("a", "b")]), []) == set()


# ── Verdicts ──────────────────────────────────────────────────

class TestScoreWeights:
    def test_labels(self):
        weights = ScoreWeights()
        assert weights.label(0.95) == "high"
        assert weights.label(0.85) == "high"
        assert weights.label(0.84) == "medium"
        assert weights.label(0.6) == "medium"
        assert weights.label(0.59) == "low"


class TestVerdictClassifier:
    def _classify(self, graph, reachable, results=None, prefixes=None):
        if prefixes:
            graph.dynamic_prefixes.update(prefixes)
        classifier = VerdictClassifier(DEFAULT_DYNAMIC_PATTERNS)
        dead = classifier.classify(graph, reachable, results or {}, entry_point_count=1)
        return {d.path: d for d in dead}

    def test_unreachable_orphan(self):
        graph = _graph(edges=[("src/index.ts", "src/a.ts")], paths=["src/orphan.ts"])
        results = {"src/orphan.ts": ParseResult(exports=[ExportDecl("x", "function", 1)], metadata={"lines": 12})}
        dead = self._classify(graph, walk(graph, ["src/index.ts"]), results)

        assert list(dead) == ["src/orphan.ts"]
        orphan = dead["src/orphan.ts"]
        assert orphan.verdict is Verdict.UNREACHABLE
        assert orphan.evidence.confidence.score == 0.95
        assert orphan.evidence.confidence.label == "high"
        assert orphan.evidence.entry_points == {"reached_by": 0, "total": 1}
        assert orphan.evidence.importers == []
        assert orphan.evidence.dynamic_check is None
        assert (orphan.lines, orphan.exports, orphan.size) == (12, ["x"], 100)

    def test_partially_unreachable_chain(self):
        graph = _graph(edges=[("src/x.ts", "src/y.ts")])
        dead = self._classify(graph, set())
        assert dead["src/x.ts"].verdict is Verdict.UNREACHABLE
        y = dead["src/y.ts"]
        assert y.verdict is Verdict.PARTIALLY_UNREACHABLE
        assert y.evidence.confidence.score == 0.8
        assert y.evidence.confidence.label == "medium"
        assert y.evidence.importers == ["src/x.ts"]

    def test_score_drops_per_importer_with_floor(self):
        graph = _graph(edges=[("src/a.ts", "src/z.ts"), ("src/b.ts", "src/z.ts")])
        assert self._classify(graph, set())["src/z.ts"].evidence.confidence.score == 0.75

        many = _graph(edges=[(f"src/i{n}.ts", "src/z.ts") for n in range(6)])
        assert self._classify(many, set())["src/z.ts"].evidence.confidence.score == 0.6

    def test_dynamic_pattern_is_possibly_live(self):
        graph = _graph(paths=["src/index.ts", "src/plugins/chart.ts"])
        dead = self._classify(graph, {"src/index.ts"})
        chart = dead["src/plugins/chart.ts"]
        assert chart.verdict is Verdict.POSSIBLY_LIVE
        assert chart.evidence.confidence.score == 0.35
        assert chart.evidence.confidence.label == "low"
        assert chart.evidence.dynamic_check == {"matched_pattern": r"(^|/)plugins?/", "source": "pattern"}

    def test_prefix_from_reachable_builder(self):
        graph = _graph(paths=["src/router.ts", "src/screens/home.ts"])
        dead = self._classify(graph, {"src/router.ts"}, prefixes={"src/screens/": ["src/router.ts"]})
        home = dead["src/screens/home.ts"]
        assert home.verdict is Verdict.POSSIBLY_LIVE
        assert home.evidence.dynamic_check == {"matched_pattern": "src/screens/", "source": "src/router.ts"}

    def test_prefix_from_dead_builder_does_not_count(self):
        graph = _graph(paths=["src/old.ts", "src/screens/home.ts"])
        dead = self._classify(graph, set(), prefixes={"src/screens/": ["src/old.ts"]})
        assert dead["src/screens/home.ts"].verdict is Verdict.UNREACHABLE

    def test_reachable_and_lazy_nodes_skipped(self):
        graph = _graph(
            edges=[("src/index.ts", "src/gen.ts")],
            paths=["src/dead.ts"],
            undiscovered=["src/gen.ts"],
        )
        dead = self._classify(graph, {"src/index.ts"})
        assert list(dead) == ["src/dead.ts"]

    def test_results_sorted_by_path(self):
        graph = _graph(paths=["src/z.ts", "src/a.ts", "src/m.ts"])
        classifier = VerdictClassifier([])
        dead = classifier.classify(graph, set(), {}, entry_point_count=0)
        assert [d.path for d in dead] == ["src/a.ts", "src/m.ts", "src/z.ts"]
