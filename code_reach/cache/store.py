"""Scan cache: skips re-parsing files whose content has not changed."""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from pydantic import BaseModel, ValidationError

from code_reach.models import CacheStats, ParseResult

logger = logging.getLogger(__name__)

CACHE_VERSION = 1
CACHE_DIR = ".code-reach-cache"
CACHE_FILE = "scan-cache.json"


class _EntryModel(BaseModel):
    hash: str
    result: dict[str, Any]
    timestamp: float


class _SnapshotModel(BaseModel):
    version: int
    entries: dict[str, _EntryModel]


@dataclass
class CacheEntry:
    hash: str
    result: ParseResult
    timestamp: float


class CacheStore:
    """Project-scoped map of relative path -> (hash, ParseResult).

    An entry is only valid while its hash equals the file's current hash; a
    mismatch is a miss, never a partial reuse. Hit/miss counters belong to
    this instance, so create a fresh store for every scan.
    """

    def __init__(self, project_root: Path | str, cache_dir: str = CACHE_DIR):
        self.project_root = Path(project_root)
        self.cache_path = self.project_root / cache_dir / CACHE_FILE
        self.entries: dict[str, CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    def load(self) -> CacheStore:
        """Read the snapshot from disk. Any problem yields an empty cache."""
        self.entries = {}
        try:
            raw = self.cache_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return self
        except OSError as e:
            logger.debug("Cache unreadable (%s), starting fresh", e)
            return self

        try:
            data = json.loads(raw)
            if not isinstance(data, dict) or data.get("version") != CACHE_VERSION:
                logger.debug("Cache version mismatch, starting fresh")
                return self
            snapshot = _SnapshotModel.model_validate(data)
            self.entries = {
                path: CacheEntry(
                    hash=entry.hash,
                    result=ParseResult.from_dict(entry.result),
                    timestamp=entry.timestamp,
                )
                for path, entry in snapshot.entries.items()
            }
        except (ValueError, TypeError, ValidationError) as e:
            logger.debug("Cache corrupt (%s), starting fresh", e)
            self.entries = {}
        return self

    def get(self, relative_path: str, current_hash: str) -> ParseResult | None:
        entry = self.entries.get(relative_path)
        if entry is not None and entry.hash == current_hash:
            self.hits += 1
            return entry.result
        self.misses += 1
        return None

    def set(self, relative_path: str, hash: str, result: ParseResult) -> None:
        self.entries[relative_path] = CacheEntry(hash=hash, result=result, timestamp=time.time())

    def prune(self, keep: Iterable[str]) -> int:
        """Drop entries for paths not in `keep`. Returns the number removed."""
        keep = set(keep)
        stale = [path for path in self.entries if path not in keep]
        for path in stale:
            del self.entries[path]
        return len(stale)

    def save(self) -> None:
        self.cache_path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "version": CACHE_VERSION,
            "entries": {
                path: {
                    "hash": entry.hash,
                    "result": entry.result.to_dict(),
                    "timestamp": entry.timestamp,
                }
                for path, entry in self.entries.items()
            },
        }
        tmp_path = self.cache_path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(data), encoding="utf-8")
        os.replace(tmp_path, self.cache_path)

    def clear(self) -> None:
        self.cache_path.unlink(missing_ok=True)
        self.entries = {}
        self.hits = 0
        self.misses = 0

    def stats(self) -> CacheStats:
        return CacheStats(hits=self.hits, misses=self.misses, entry_count=len(self.entries))
