"""Fixed-size process pool for per-file extraction.

Each executor owns an inbound task queue and an outbound pipe, so one
executor dying cannot corrupt another's channel. A supervisor thread waits
on every pipe and process sentinel, settles futures on the event loop and
replaces executors that exit.

Tasks already handed to an executor that crashes are not retried. Without a
`task_timeout` their callers wait forever; with one they get
WorkerTimeoutError.
"""

from __future__ import annotations

import asyncio
import logging
import multiprocessing
import os
import threading
from dataclasses import dataclass
from multiprocessing.connection import Connection, wait
from multiprocessing.process import BaseProcess
from multiprocessing.queues import Queue
from typing import Any, Iterable

from code_reach.models import ParseResult
from code_reach.workers.executor import executor_main

logger = logging.getLogger(__name__)

_WAIT_INTERVAL = 0.2


class WorkerError(Exception):
    """Base class for pool errors."""


class WorkerTaskError(WorkerError):
    """An executor reported a failure for one task."""


class WorkerTimeoutError(WorkerError):
    """No reply arrived within the pool's task_timeout."""


@dataclass
class _Executor:
    process: BaseProcess
    inbox: Queue
    reader: Connection


def default_pool_size() -> int:
    return max(1, (os.cpu_count() or 2) - 1)


class WorkerPool:
    """Round-robin pool of long-lived extraction processes.

    Usage::

        async with WorkerPool(4) as pool:
            results = await pool.parse_files([("a.ts", src_a), ("b.py", src_b)])
    """

    def __init__(self, size: int | None = None, *, task_timeout: float | None = None):
        self.size = size if size and size > 0 else default_pool_size()
        self.task_timeout = task_timeout
        self.restarts = 0

        self._ctx = multiprocessing.get_context("spawn")
        self._executors: list[_Executor] = []
        self._retired: list[_Executor] = []
        self._pending: dict[int, asyncio.Future[ParseResult]] = {}
        self._next_id = 0
        self._next_slot = 0
        self._lock = threading.Lock()
        self._stopping = threading.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._supervisor: threading.Thread | None = None

    # -- lifecycle ----------------------------------------------------------

    def start(self) -> WorkerPool:
        """Spawn executors and the supervisor. Must be called from a running loop."""
        if self._executors:
            return self
        self._loop = asyncio.get_running_loop()
        self._stopping.clear()
        with self._lock:
            self._executors = [self._spawn(i) for i in range(self.size)]
        self._supervisor = threading.Thread(
            target=self._supervise, name="code-reach-pool-supervisor", daemon=True
        )
        self._supervisor.start()
        logger.debug("Started worker pool with %d executors", self.size)
        return self

    def shutdown(self) -> None:
        """Terminate every executor. Pending callers are not settled."""
        self._stopping.set()
        if self._supervisor is not None:
            self._supervisor.join()
            self._supervisor = None
        with self._lock:
            executors, self._executors = self._executors, []
            executors.extend(self._retired)
            self._retired = []
        for ex in executors:
            if ex.process.is_alive():
                ex.process.terminate()
            ex.process.join(timeout=5)
            self._close(ex)
        self._pending.clear()
        logger.debug("Worker pool shut down")

    async def __aenter__(self) -> WorkerPool:
        return self.start()

    async def __aexit__(self, *exc_info: Any) -> None:
        self.shutdown()

    @property
    def processes(self) -> list[BaseProcess]:
        with self._lock:
            return [ex.process for ex in self._executors]

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # -- tasks --------------------------------------------------------------

    async def parse_file(self, file_path: str, content: str) -> ParseResult:
        """Parse one file in an executor.

        Raises WorkerTaskError if the executor reports a failure and
        WorkerTimeoutError if `task_timeout` elapses first.
        """
        self.start()
        task_id = self._next_id
        self._next_id += 1
        future: asyncio.Future[ParseResult] = asyncio.get_running_loop().create_future()
        self._pending[task_id] = future
        self._dispatch({"id": task_id, "file_path": file_path, "content": content})

        if self.task_timeout is None:
            return await future
        try:
            return await asyncio.wait_for(future, self.task_timeout)
        except asyncio.TimeoutError:
            self._pending.pop(task_id, None)
            raise WorkerTimeoutError(
                f"{file_path}: no result after {self.task_timeout}s"
            ) from None

    async def parse_files(
        self,
        files: Iterable[tuple[str, str]],
        return_exceptions: bool = False,
    ) -> list[Any]:
        """Parse (path, content) pairs; results match the input order."""
        return await asyncio.gather(
            *(self.parse_file(path, content) for path, content in files),
            return_exceptions=return_exceptions,
        )

    # -- internals ------------------------------------------------------------

    def _spawn(self, slot: int) -> _Executor:
        inbox = self._ctx.Queue()
        reader, writer = self._ctx.Pipe(duplex=False)
        process = self._ctx.Process(
            target=executor_main,
            args=(inbox, writer),
            name=f"code-reach-executor-{slot}",
            daemon=True,
        )
        process.start()
        # The child holds its own copy; closing ours lets the reader see EOF on exit.
        writer.close()
        return _Executor(process=process, inbox=inbox, reader=reader)

    def _replace(self, slot: int) -> _Executor:
        """Swap in a fresh executor. Caller holds the lock."""
        old = self._executors[slot]
        logger.warning(
            "Executor %d (pid %s) exited with code %s, restarting",
            slot, old.process.pid, old.process.exitcode,
        )
        self._retired.append(old)
        new = self._spawn(slot)
        self._executors[slot] = new
        self.restarts += 1
        return new

    def _dispatch(self, message: dict[str, Any]) -> None:
        with self._lock:
            slot = self._next_slot
            self._next_slot = (slot + 1) % len(self._executors)
            ex = self._executors[slot]
            if not ex.process.is_alive():
                ex = self._replace(slot)
            ex.inbox.put(message)

    def _supervise(self) -> None:
        while not self._stopping.is_set():
            self._reap_retired()
            with self._lock:
                executors = list(enumerate(self._executors))
            handles: dict[Any, tuple[int, _Executor]] = {}
            for slot, ex in executors:
                handles[ex.reader] = (slot, ex)
                handles[ex.process.sentinel] = (slot, ex)

            try:
                ready = wait(list(handles), timeout=_WAIT_INTERVAL)
            except OSError:
                continue

            exited: list[tuple[int, _Executor]] = []
            for handle in ready:
                slot, ex = handles[handle]
                if handle is ex.reader:
                    if not self._drain(ex):
                        exited.append((slot, ex))
                else:
                    exited.append((slot, ex))

            if self._stopping.is_set():
                break
            for slot, ex in exited:
                self._drain(ex)
                ex.process.join(timeout=1)
                with self._lock:
                    if self._executors and self._executors[slot] is ex and not ex.process.is_alive():
                        self._replace(slot)

    def _drain(self, ex: _Executor) -> bool:
        """Forward every buffered reply. False once the pipe hits EOF."""
        try:
            while ex.reader.poll():
                self._deliver(ex.reader.recv())
        except (EOFError, OSError):
            return False
        return True

    def _deliver(self, message: dict[str, Any]) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._settle, message)
        except RuntimeError:
            pass  # loop closed between the check and the call

    def _settle(self, message: dict[str, Any]) -> None:
        future = self._pending.pop(message["id"], None)
        if future is None or future.done():
            return
        if "error" in message:
            future.set_exception(WorkerTaskError(message["error"]))
        else:
            future.set_result(ParseResult.from_dict(message["result"]))

    def _reap_retired(self) -> None:
        with self._lock:
            retired, self._retired = self._retired, []
        for ex in retired:
            self._drain(ex)
            ex.process.join(timeout=1)
            self._close(ex)

    @staticmethod
    def _close(ex: _Executor) -> None:
        ex.inbox.cancel_join_thread()
        ex.inbox.close()
        ex.reader.close()
