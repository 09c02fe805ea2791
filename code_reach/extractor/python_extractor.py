"""Python extractor using the ast module, with a regex fallback for files
that do not parse under the running interpreter."""

from __future__ import annotations

import ast
import re

from code_reach.extractor.base import BaseExtractor
from code_reach.models import ExportDecl, ImportEdge, Language, ParseResult

_IMPORT_LINE_RE = re.compile(r"^[ \t]*import\s+([\w.]+(?:\s*,\s*[\w.]+)*)", re.MULTILINE)
_FROM_LINE_RE = re.compile(r"^[ \t]*from\s+(\.*[\w.]*)\s+import\s+(\([^)]*\)|[\w \t,*]+)", re.MULTILINE)
_DEF_RE = re.compile(r"^(?:async\s+)?(def|class)\s+([A-Za-z]\w*)", re.MULTILINE)
_MAIN_GUARD_RE = re.compile(r"""^if\s+__name__\s*==\s*['"]__main__['"]""", re.MULTILINE)

_IMPORT_FUNCS = {"import_module", "__import__"}


def _join(base: str, name: str) -> str:
    if not base or base.endswith("."):
        return base + name
    return f"{base}.{name}"


def _dotted_name(node: ast.expr) -> str | None:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        parent = _dotted_name(node.value)
        return f"{parent}.{node.attr}" if parent else None
    if isinstance(node, ast.Call):
        return _dotted_name(node.func)
    return None


def _string_prefix(node: ast.expr) -> str | None:
    """Literal head of an f-string or `"a." + x` expression."""
    if isinstance(node, ast.JoinedStr) and node.values:
        head = node.values[0]
        if isinstance(head, ast.Constant) and isinstance(head.value, str):
            return head.value
    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.Add):
        left = node.left
        if isinstance(left, ast.Constant) and isinstance(left.value, str):
            return left.value
    return None


def _is_main_guard(node: ast.stmt) -> bool:
    if not isinstance(node, ast.If) or not isinstance(node.test, ast.Compare):
        return False
    test = node.test
    if not (isinstance(test.left, ast.Name) and test.left.id == "__name__"):
        return False
    return any(
        isinstance(c, ast.Constant) and c.value == "__main__" for c in test.comparators
    )


class PythonExtractor(BaseExtractor):
    languages = (Language.PYTHON,)
    parse_method = "python-ast"

    def extract(self, file_path: str, content: str) -> ParseResult:
        try:
            tree = ast.parse(content, filename=file_path)
        except (SyntaxError, ValueError):
            return self._extract_regex(content)

        imports: list[ImportEdge] = []
        annotations: set[str] = set()

        for node in ast.walk(tree):
            if isinstance(node, ast.Import):
                for alias in node.names:
                    imports.append(ImportEdge(alias.name, "import", node.lineno))
            elif isinstance(node, ast.ImportFrom):
                base = "." * node.level + (node.module or "")
                for alias in node.names:
                    if alias.name == "*":
                        imports.append(ImportEdge(base, "from", node.lineno))
                    else:
                        imports.append(ImportEdge(_join(base, alias.name), "from", node.lineno))
            elif isinstance(node, ast.Call):
                edge = self._dynamic_import(node)
                if edge is not None:
                    imports.append(edge)
            elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
                for dec in node.decorator_list:
                    name = _dotted_name(dec)
                    if name:
                        annotations.add(name)

        imports.sort(key=lambda e: e.line)
        metadata: dict = {}
        if any(_is_main_guard(stmt) for stmt in tree.body):
            metadata["entry_hint"] = "__main__"

        return ParseResult(
            imports=list(dict.fromkeys(imports)),
            exports=self._exports(tree),
            annotations=sorted(annotations),
            metadata=metadata,
        )

    @staticmethod
    def _dynamic_import(node: ast.Call) -> ImportEdge | None:
        func = node.func
        name = func.attr if isinstance(func, ast.Attribute) else getattr(func, "id", None)
        if name not in _IMPORT_FUNCS or not node.args:
            return None
        arg = node.args[0]
        if isinstance(arg, ast.Constant) and isinstance(arg.value, str):
            return ImportEdge(arg.value, "dynamic", node.lineno)
        prefix = _string_prefix(arg)
        if prefix and "." in prefix:
            return ImportEdge(prefix, "dynamic-prefix", node.lineno)
        return None

    @staticmethod
    def _exports(tree: ast.Module) -> list[ExportDecl]:
        exports: list[ExportDecl] = []
        declared: list[str] | None = None

        for node in tree.body:
            if isinstance(node, ast.ClassDef) and not node.name.startswith("_"):
                exports.append(ExportDecl(node.name, "class", node.lineno))
            elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)) and not node.name.startswith("_"):
                exports.append(ExportDecl(node.name, "function", node.lineno))
            elif isinstance(node, ast.Assign):
                for target in node.targets:
                    if isinstance(target, ast.Name) and target.id == "__all__":
                        if isinstance(node.value, (ast.List, ast.Tuple)):
                            declared = [
                                elt.value for elt in node.value.elts
                                if isinstance(elt, ast.Constant) and isinstance(elt.value, str)
                            ]

        if declared is not None:
            by_name = {e.name: e for e in exports}
            return [by_name.get(name, ExportDecl(name, "binding")) for name in declared]
        return exports

    def _extract_regex(self, content: str) -> ParseResult:
        imports: list[ImportEdge] = []

        for m in _IMPORT_LINE_RE.finditer(content):
            line = content.count("\n", 0, m.start()) + 1
            for name in m.group(1).split(","):
                imports.append(ImportEdge(name.strip(), "import", line))

        for m in _FROM_LINE_RE.finditer(content):
            line = content.count("\n", 0, m.start()) + 1
            base = m.group(1)
            for name in m.group(2).strip("()").split(","):
                name = name.strip().split(" as ")[0].strip()
                if not name:
                    continue
                spec = base if name == "*" else _join(base, name)
                imports.append(ImportEdge(spec, "from", line))

        imports.sort(key=lambda e: e.line)
        exports = [
            ExportDecl(m.group(2), "class" if m.group(1) == "class" else "function",
                       content.count("\n", 0, m.start()) + 1)
            for m in _DEF_RE.finditer(content)
        ]
        metadata: dict = {"parse_method": "python-regex"}
        if _MAIN_GUARD_RE.search(content):
            metadata["entry_hint"] = "__main__"
        return ParseResult(imports=list(dict.fromkeys(imports)), exports=exports, metadata=metadata)
