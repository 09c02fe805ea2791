"""Tests for the full scan pipeline."""

import json
from pathlib import Path

import pytest

from code_reach.config import ConfigError, ProjectSettings
from code_reach.models import ScanConfig, Verdict
from code_reach.pipeline import run_scan

FIXTURES = Path(__file__).parent / "fixtures"


def _write(root, files):
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")


@pytest.fixture
def small_project(tmp_path):
    _write(tmp_path, {
        "src/main.ts": "import { util } from './util';\nutil();\n",
        "src/util.ts": "import { helper } from './helper';\nexport const util = () => helper();\n",
        "src/helper.ts": "export const helper = () => 1;\n",
        "src/orphan.ts": "export const unused = 1;\n",
    })
    return tmp_path


# ── Scan ──────────────────────────────────────────────────────

class TestScan:
    def test_finds_orphan(self, small_project):
        result = run_scan(ScanConfig(project_root=small_project, workers=0))

        assert result.total_files == 4
        assert result.entry_points == ["src/main.ts"]
        assert result.reachable_files == ["src/helper.ts", "src/main.ts", "src/util.ts"]
        assert result.dead_paths == ["src/orphan.ts"]
        orphan = result.dead_files[0]
        assert orphan.verdict is Verdict.UNREACHABLE
        assert orphan.exports == ["unused"]
        assert orphan.evidence.entry_points == {"reached_by": 0, "total": 1}
        assert result.languages == {"typescript": 4}

    def test_explicit_entry_point(self, small_project):
        config = ScanConfig(project_root=small_project, workers=0, entry_points=["./src/orphan.ts"])
        result = run_scan(config)
        assert result.entry_points == ["src/orphan.ts", "src/main.ts"]
        assert result.dead_paths == []

    def test_absolute_entry_point(self, small_project):
        entry = str((small_project / "src" / "orphan.ts").resolve())
        result = run_scan(ScanConfig(project_root=small_project, workers=0, entry_points=[entry]))
        assert "src/orphan.ts" in result.entry_points

    def test_settings_entry_points(self, small_project):
        settings = ProjectSettings(entry_points=["src/orphan.ts"])
        result = run_scan(ScanConfig(project_root=small_project, workers=0), settings=settings)
        assert result.dead_paths == []

    def test_exclude(self, small_project):
        settings = ProjectSettings(exclude=["src/orphan.ts"])
        result = run_scan(ScanConfig(project_root=small_project, workers=0, use_cache=False), settings=settings)
        assert result.total_files == 3
        assert result.dead_paths == []

    def test_unresolved_imports_reported(self, tmp_path):
        _write(tmp_path, {"src/main.ts": "import React from 'react';\n"})
        result = run_scan(ScanConfig(project_root=tmp_path, workers=0, use_cache=False))
        assert result.unresolved_imports == {"src/main.ts": ["react"]}

    def test_progress_callback(self, small_project):
        stages = []
        run_scan(
            ScanConfig(project_root=small_project, workers=0, use_cache=False),
            progress=lambda stage, current, total: stages.append(stage),
        )
        assert stages[0] == "Discovering"
        assert "Parsing" in stages
        assert stages[-1] == "Resolving imports"

    def test_json_shape(self, small_project):
        result = run_scan(ScanConfig(project_root=small_project, workers=0))
        data = json.loads(json.dumps(result.to_dict()))
        assert data["total_files"] == 4
        assert data["dead_files"][0]["path"] == "src/orphan.ts"
        assert data["dead_files"][0]["verdict"] == "unreachable"
        assert data["dead_files"][0]["evidence"]["confidence"] == {"score": 0.95, "label": "high"}
        assert set(data["cache"]) == {"hits", "misses", "entries"}

    def test_python_project(self, tmp_path):
        _write(tmp_path, {
            "main.py": "from app import core\n\nif __name__ == '__main__':\n    core.run()\n",
            "app/__init__.py": "",
            "app/core.py": "def run():\n    pass\n",
            "app/unused.py": "def nothing():\n    pass\n",
        })
        result = run_scan(ScanConfig(project_root=tmp_path, workers=0, use_cache=False))
        assert result.entry_points == ["main.py"]
        assert result.reachable_files == ["app/__init__.py", "app/core.py", "main.py"]
        assert result.dead_paths == ["app/unused.py"]

    def test_package_script_is_entry(self, tmp_path):
        _write(tmp_path, {
            "package.json": json.dumps({"scripts": {"start": "node server/boot.js"}}),
            "server/boot.js": "const db = require('./db');\n",
            "server/db.js": "module.exports = {};\n",
            "server/stale.js": "module.exports = 1;\n",
        })
        result = run_scan(ScanConfig(project_root=tmp_path, workers=0, use_cache=False))
        assert result.entry_points == ["server/boot.js"]
        assert result.dead_paths == ["server/stale.js"]

    def test_index_html_script_is_entry(self, tmp_path):
        _write(tmp_path, {
            "web/index.html": '<div id="app"></div>\n<script type="module" src="/boot.ts"></script>\n',
            "web/boot.ts": "import './widgets';\n",
            "web/widgets.ts": "export const widgets = [];\n",
            "web/unused.ts": "export const unused = 1;\n",
            # skipped directory, so not an entry source
            "dist/index.html": '<script src="../web/unused.ts"></script>\n',
        })
        result = run_scan(ScanConfig(project_root=tmp_path, workers=0, use_cache=False))
        assert result.entry_points == ["web/boot.ts"]
        assert result.reachable_files == ["web/boot.ts", "web/widgets.ts"]
        assert result.dead_paths == ["web/unused.ts"]

    def test_empty_project(self, tmp_path):
        result = run_scan(ScanConfig(project_root=tmp_path, workers=0, use_cache=False))
        assert result.total_files == 0
        assert result.dead_files == []
        assert result.cache_stats is None


# ── Fixture project ───────────────────────────────────────────

class TestWebappFixture:
    @pytest.fixture(scope="class")
    def result(self):
        return run_scan(ScanConfig(project_root=FIXTURES / "webapp", workers=0, use_cache=False))

    def test_entry_and_reachable(self, result):
        assert result.entry_points == ["src/index.ts"]
        assert result.reachable_files == ["src/index.ts", "src/lib/helper.ts", "src/util.ts"]

    def test_verdicts(self, result):
        verdicts = {d.path: (d.verdict, d.evidence.confidence.score, d.evidence.confidence.label)
                    for d in result.dead_files}
        assert verdicts == {
            "src/legacy/old.ts": (Verdict.UNREACHABLE, 0.95, "high"),
            "src/legacy/older.ts": (Verdict.PARTIALLY_UNREACHABLE, 0.8, "medium"),
            "src/orphan.ts": (Verdict.UNREACHABLE, 0.95, "high"),
            "src/plugins/chart.ts": (Verdict.POSSIBLY_LIVE, 0.35, "low"),
        }

    def test_evidence(self, result):
        by_path = {d.path: d for d in result.dead_files}
        assert by_path["src/legacy/older.ts"].evidence.importers == ["src/legacy/old.ts"]
        assert by_path["src/plugins/chart.ts"].evidence.dynamic_check["source"] == "pattern"

    def test_no_cache_written(self, result):
        assert result.cache_stats is None
        assert not (FIXTURES / "webapp" / ".code-reach-cache").exists()


# ── Cache ─────────────────────────────────────────────────────

class TestIncrementalScan:
    def test_rescan_hits_cache(self, small_project):
        first = run_scan(ScanConfig(project_root=small_project, workers=0))
        assert (first.cache_stats.hits, first.cache_stats.misses) == (0, 4)

        second = run_scan(ScanConfig(project_root=small_project, workers=0))
        assert (second.cache_stats.hits, second.cache_stats.misses) == (4, 0)
        assert second.dead_paths == first.dead_paths
        assert second.reachable_files == first.reachable_files

    def test_changed_file_is_reparsed(self, small_project):
        run_scan(ScanConfig(project_root=small_project, workers=0))
        (small_project / "src" / "orphan.ts").write_text("import './main';\n", encoding="utf-8")

        result = run_scan(ScanConfig(project_root=small_project, workers=0))
        assert (result.cache_stats.hits, result.cache_stats.misses) == (3, 1)
        assert result.dead_paths == ["src/orphan.ts"]

    def test_deleted_file_pruned(self, small_project):
        run_scan(ScanConfig(project_root=small_project, workers=0))
        (small_project / "src" / "orphan.ts").unlink()

        result = run_scan(ScanConfig(project_root=small_project, workers=0))
        assert result.cache_stats.entry_count == 3
        assert result.dead_paths == []

    def test_no_cache(self, small_project):
        result = run_scan(ScanConfig(project_root=small_project, workers=0, use_cache=False))
        assert result.cache_stats is None
        assert not (small_project / ".code-reach-cache").exists()


# ── Errors ────────────────────────────────────────────────────

class TestConfigErrors:
    def test_bad_alias_config(self, small_project):
        (small_project / ".code-reach.yml").write_text(
            "aliases:\n  - pattern: '@a/**'\n    replacement: 'src/*'\n", encoding="utf-8"
        )
        with pytest.raises(ConfigError):
            run_scan(ScanConfig(project_root=small_project, workers=0))
        assert not (small_project / ".code-reach-cache").exists()

    def test_root_must_be_directory(self, tmp_path):
        with pytest.raises(ConfigError):
            run_scan(ScanConfig(project_root=tmp_path / "missing"))


# ── Worker pool path ──────────────────────────────────────────

class TestParallelScan:
    def test_pool_matches_in_process(self, small_project):
        serial = run_scan(ScanConfig(project_root=small_project, workers=0, use_cache=False))
        pooled = run_scan(ScanConfig(
            project_root=small_project, workers=2, parallel_threshold=1, use_cache=False, task_timeout=60,
        ))
        assert pooled.reachable_files == serial.reachable_files
        assert pooled.dead_paths == serial.dead_paths
        assert pooled.entry_points == serial.entry_points
