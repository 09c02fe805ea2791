"""Content hashing and the persistent scan cache."""

from __future__ import annotations

from code_reach.cache.hasher import hash_content, hash_file
from code_reach.cache.store import CACHE_VERSION, CacheEntry, CacheStore

__all__ = [
    "CACHE_VERSION",
    "CacheEntry",
    "CacheStore",
    "hash_content",
    "hash_file",
]
