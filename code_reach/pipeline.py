"""Scan orchestrator: discover -> hash -> parse (cached/pooled) -> graph -> walk -> classify."""

from __future__ import annotations

import asyncio
import fnmatch
import logging
import time
from collections import Counter
from pathlib import Path
from typing import Callable

from code_reach.analysis import EntryPointDetector, GraphBuilder, VerdictClassifier, walk
from code_reach.cache import CacheStore, hash_content
from code_reach.config import ConfigError, ProjectSettings, load_settings
from code_reach.extractor import parse_file
from code_reach.models import FileHandle, ParseResult, ScanConfig, ScanResult
from code_reach.resolution import Resolver, load_manifests
from code_reach.scanner import discover_files
from code_reach.workers import WorkerPool, default_pool_size

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]

# (handle, decoded content or None if unreadable, content hash)
_FileData = tuple[FileHandle, "str | None", str]


def _read_files(handles: list[FileHandle]) -> list[_FileData]:
    files: list[_FileData] = []
    for handle in handles:
        try:
            data = handle.absolute_path.read_bytes()
        except OSError as e:
            logger.warning("Cannot read %s: %s", handle.path, e)
            files.append((handle, None, ""))
            continue
        files.append((handle, data.decode("utf-8", errors="replace"), hash_content(data)))
    return files


def _normalize_entry(root: Path, entry: str) -> str:
    path = Path(entry)
    if path.is_absolute():
        try:
            return path.resolve().relative_to(root).as_posix()
        except ValueError:
            return entry
    return entry.replace("\\", "/").removeprefix("./")


def _excluded(path: str, patterns: list[str]) -> bool:
    return any(fnmatch.fnmatch(path, pattern) for pattern in patterns)


async def _parse_batch(
    batch: list[tuple[FileHandle, str]],
    config: ScanConfig,
    progress: ProgressCallback | None,
) -> list[ParseResult | None]:
    """Parse cache misses. None marks a failure that must not be cached."""
    total = len(batch)
    if not batch:
        return []

    if config.workers == 0 or total < config.parallel_threshold:
        parsed: list[ParseResult | None] = []
        for i, (handle, content) in enumerate(batch):
            if progress:
                progress("Parsing", i, total)
            parsed.append(parse_file(handle.path, content))
        if progress:
            progress("Parsing", total, total)
        return parsed

    size = min(config.workers or default_pool_size(), total)
    if progress:
        progress(f"Parsing with {size} workers", 0, total)
    async with WorkerPool(size, task_timeout=config.task_timeout) as pool:
        raw = await pool.parse_files(
            ((handle.path, content) for handle, content in batch),
            return_exceptions=True,
        )
    if progress:
        progress("Parsing", total, total)

    parsed = []
    for (handle, _), item in zip(batch, raw):
        if isinstance(item, BaseException):
            logger.warning("Extraction failed for %s: %s", handle.path, item)
            parsed.append(None)
        else:
            parsed.append(item)
    return parsed


async def scan_project(
    config: ScanConfig,
    settings: ProjectSettings | None = None,
    progress: ProgressCallback | None = None,
) -> ScanResult:
    """Run a full scan. Raises ConfigError before touching any file if the
    project configuration is unusable."""
    started = time.perf_counter()
    root = config.project_root.resolve()
    if not root.is_dir():
        raise ConfigError(f"Project root {root} is not a directory")
    settings = settings or load_settings(root)
    skip_dirs = [*config.skip_dirs, *settings.exclude]
    manifests = load_manifests(root, settings, skip_dirs)

    # Stage 1: Discover
    if progress:
        progress("Discovering", 0, 1)
    handles = await asyncio.to_thread(discover_files, root, skip_dirs)
    if settings.exclude:
        handles = [h for h in handles if not _excluded(h.path, settings.exclude)]
    if progress:
        progress("Discovering", 1, 1)

    # Stage 2: Read and hash
    files = await asyncio.to_thread(_read_files, handles)

    # Stage 3: Cache lookup
    cache = CacheStore(root)
    if config.use_cache:
        await asyncio.to_thread(cache.load)

    results: dict[str, ParseResult] = {}
    misses: list[tuple[FileHandle, str, str]] = []
    for handle, content, digest in files:
        if content is None:
            results[handle.path] = ParseResult.empty(error="unreadable")
            continue
        cached = cache.get(handle.path, digest) if config.use_cache else None
        if cached is not None:
            results[handle.path] = cached
        else:
            misses.append((handle, content, digest))
    logger.debug("%d files, %d cache misses", len(files), len(misses))

    # Stage 4: Parse misses
    parsed = await _parse_batch([(h, c) for h, c, _ in misses], config, progress)
    for (handle, _, digest), result in zip(misses, parsed):
        if result is None:
            results[handle.path] = ParseResult.empty(error="extraction failed")
            continue
        results[handle.path] = result
        if config.use_cache:
            cache.set(handle.path, digest, result)

    if config.use_cache:
        cache.prune(h.path for h in handles)
        try:
            await asyncio.to_thread(cache.save)
        except OSError as e:
            logger.warning("Could not write cache %s: %s", cache.cache_path, e)

    # Stage 5: Graph
    if progress:
        progress("Resolving imports", 0, 1)
    resolver = Resolver(
        root,
        packages=manifests.packages,
        aliases=manifests.aliases,
        extensions=settings.extensions,
        index_names=settings.index_names,
        known_files=[h.path for h in handles],
        python_roots=settings.python_roots,
        include_roots=settings.include_roots,
        go_module=manifests.go_module,
    )
    graph = GraphBuilder(resolver).build(handles, results)
    if progress:
        progress("Resolving imports", 1, 1)

    # Stage 6: Walk
    manifest_entries = []
    for specifier, language in manifests.entry_specifiers:
        target = resolver.resolve(specifier, "package.json", language)
        if target:
            manifest_entries.append(target)
    detector = EntryPointDetector(settings.all_entry_patterns(), use_hints=settings.use_entry_hints)
    entry_points = detector.detect(
        graph,
        results,
        explicit=[_normalize_entry(root, e) for e in (*settings.entry_points, *config.entry_points)],
        manifest=manifest_entries,
    )
    reachable = walk(graph, entry_points)

    # Stage 7: Classify
    classifier = VerdictClassifier(settings.dynamic_patterns)
    dead_files = classifier.classify(graph, reachable, results, len(entry_points))

    languages = Counter(h.language.value for h in handles)
    return ScanResult(
        total_files=len(handles),
        entry_points=entry_points,
        reachable_files=sorted(p for p in reachable if graph.nodes[p].discovered),
        dead_files=dead_files,
        languages=dict(sorted(languages.items())),
        unresolved_imports=graph.unresolved_imports(),
        cache_stats=cache.stats() if config.use_cache else None,
        elapsed=time.perf_counter() - started,
    )


def run_scan(
    config: ScanConfig,
    settings: ProjectSettings | None = None,
    progress: ProgressCallback | None = None,
) -> ScanResult:
    """Synchronous wrapper around scan_project."""
    return asyncio.run(scan_project(config, settings=settings, progress=progress))
