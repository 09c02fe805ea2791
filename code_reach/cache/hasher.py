"""Content hashing for cache invalidation."""

from __future__ import annotations

import hashlib
from pathlib import Path

DIGEST_LENGTH = 16


def hash_content(data: bytes | str) -> str:
    """Return the first 16 hex chars of the SHA-256 digest of `data`."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()[:DIGEST_LENGTH]


def hash_file(path: Path | str) -> str:
    """Hash a file's bytes. Raises OSError if the file cannot be read."""
    sha256 = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            sha256.update(chunk)
    return sha256.hexdigest()[:DIGEST_LENGTH]
