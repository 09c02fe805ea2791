"""Process pool for parallel extraction."""

from __future__ import annotations

from code_reach.workers.pool import (
    WorkerError,
    WorkerPool,
    WorkerTaskError,
    WorkerTimeoutError,
    default_pool_size,
)

__all__ = [
    "WorkerError",
    "WorkerPool",
    "WorkerTaskError",
    "WorkerTimeoutError",
    "default_pool_size",
]
