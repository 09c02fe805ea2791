"""Abstract base extractor with shared lexical helpers."""

from __future__ import annotations

import abc
import bisect
import re

from code_reach.models import ImportEdge, Language, ParseResult


class BaseExtractor(abc.ABC):
    """Base class for language-specific extractors.

    `parse` never raises: any internal failure becomes an empty result with
    `metadata["error"]` set, and the file is treated as having no imports.
    """

    languages: tuple[Language, ...]
    parse_method: str = "regex"

    def parse(self, file_path: str, content: str) -> ParseResult:
        try:
            result = self.extract(file_path, content)
        except Exception as e:  # extractor bugs must not abort the batch
            return ParseResult.empty(error=f"Parse error: {type(e).__name__}: {e}")
        result.metadata.setdefault("lines", content.count("\n") + 1 if content else 0)
        result.metadata.setdefault("parse_method", self.parse_method)
        return result

    @abc.abstractmethod
    def extract(self, file_path: str, content: str) -> ParseResult:
        """Extract imports, exports and metadata from `content`."""


class LineIndex:
    """Maps character offsets to 1-based line numbers."""

    def __init__(self, source: str):
        self._starts = [0] + [m.end() for m in re.finditer("\n", source)]

    def line_of(self, offset: int) -> int:
        return bisect.bisect_right(self._starts, offset)


def blank_comments(
    source: str,
    line_comments: tuple[str, ...] = ("//",),
    block_comment: tuple[str, str] | None = ("/*", "*/"),
    quotes: str = "'\"`",
) -> str:
    """Replace comment text with spaces, keeping newlines and offsets intact.

    String literals are respected, so `"http://x"` is not treated as a
    comment opener.
    """
    out = list(source)
    length = len(source)
    pos = 0
    quote: str | None = None

    while pos < length:
        ch = source[pos]

        if quote is not None:
            if ch == "\\":
                pos += 2
                continue
            if ch == quote or (ch == "\n" and quote != "`"):
                quote = None
            pos += 1
            continue

        if ch in quotes:
            quote = ch
            pos += 1
            continue

        if block_comment and source.startswith(block_comment[0], pos):
            end = source.find(block_comment[1], pos + len(block_comment[0]))
            end = length if end == -1 else end + len(block_comment[1])
            for i in range(pos, end):
                if out[i] != "\n":
                    out[i] = " "
            pos = end
            continue

        opener = next((lc for lc in line_comments if source.startswith(lc, pos)), None)
        if opener is not None:
            end = source.find("\n", pos)
            end = length if end == -1 else end
            for i in range(pos, end):
                out[i] = " "
            pos = end
            continue

        pos += 1

    return "".join(out)


def collect_matches(
    pattern: re.Pattern[str],
    source: str,
    index: LineIndex,
    kind: str,
    found: list[tuple[int, ImportEdge]],
    group: int = 1,
) -> None:
    """Append an ImportEdge for every match of `pattern`, keyed by offset."""
    for m in pattern.finditer(source):
        specifier = m.group(group)
        if specifier:
            found.append((m.start(), ImportEdge(specifier, kind, index.line_of(m.start()))))


def ordered_imports(found: list[tuple[int, ImportEdge]]) -> list[ImportEdge]:
    """Sort by source offset and drop exact duplicates."""
    seen: set[ImportEdge] = set()
    imports: list[ImportEdge] = []
    for _, edge in sorted(found, key=lambda item: (item[0], item[1].kind)):
        if edge not in seen:
            seen.add(edge)
            imports.append(edge)
    return imports
