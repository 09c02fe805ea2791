"""Tests for file discovery."""

from pathlib import Path

from code_reach.models import Language
from code_reach.scanner import detect_language, discover_files, should_skip_dir

FIXTURES = Path(__file__).parent / "fixtures"


def test_discover_fixture():
    handles = discover_files(FIXTURES / "webapp")
    paths = [h.path for h in handles]

    assert paths == sorted(paths)
    assert "src/index.ts" in paths
    assert "src/legacy/older.ts" in paths
    # manifests are read separately, not scanned as sources
    assert "package.json" not in paths
    assert all(h.language is Language.TYPESCRIPT for h in handles)
    assert all(h.absolute_path.is_file() for h in handles)


def test_skips_dependency_and_hidden_dirs(tmp_path):
    for rel in (
        "src/app.ts",
        "node_modules/react/index.js",
        ".git/hooks/pre-commit.py",
        ".hidden.ts",
        "dist/bundle.js",
        "src/vendor.min.js",
        "pkg/thing.egg-info/x.py",
        "README.md",
    ):
        path = tmp_path / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("", encoding="utf-8")

    assert [h.path for h in discover_files(tmp_path)] == ["src/app.ts"]


def test_custom_skip_dirs(tmp_path):
    for rel in ("src/a.py", "generated/b.py"):
        path = tmp_path / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("x = 1\n", encoding="utf-8")

    handles = discover_files(tmp_path, skip_dirs=["generated"])
    assert [h.path for h in handles] == ["src/a.py"]
    assert handles[0].size_bytes == 6


def test_max_depth(tmp_path):
    deep = tmp_path / "a" / "b" / "c"
    deep.mkdir(parents=True)
    (deep / "x.py").write_text("", encoding="utf-8")
    (tmp_path / "a" / "y.py").write_text("", encoding="utf-8")

    assert [h.path for h in discover_files(tmp_path, max_depth=2)] == ["a/y.py"]


def test_detect_language():
    assert detect_language("src/App.TSX") is Language.TYPESCRIPT
    assert detect_language("src/App.vue") is Language.JAVASCRIPT
    assert detect_language("lib/main.dart") is Language.DART
    assert detect_language("include/api.hpp") is Language.CPP
    assert detect_language("Makefile") is None
    assert detect_language("dir.d/file") is None


def test_should_skip_dir():
    assert should_skip_dir(".cache", [])
    assert should_skip_dir("node_modules", ["node_modules"])
    assert should_skip_dir("thing.egg-info", ["*.egg-info"])
    assert not should_skip_dir("src", ["node_modules", "*.egg-info"])
