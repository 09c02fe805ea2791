"""Tests for the extraction worker pool."""

import asyncio
import os
import signal
import sys

import pytest

from code_reach.models import ParseResult
from code_reach.workers import (
    WorkerPool,
    WorkerTaskError,
    WorkerTimeoutError,
    default_pool_size,
)
from code_reach.workers.executor import handle_task


# ── Executor ──────────────────────────────────────────────────

class TestHandleTask:
    def test_result_message(self):
        reply = handle_task({"id": 7, "file_path": "a.py", "content": "import os\n"})
        assert reply["id"] == 7
        result = ParseResult.from_dict(reply["result"])
        assert [e.specifier for e in result.imports] == ["os"]

    def test_error_message(self):
        reply = handle_task({"id": 3, "file_path": "a.ts"})
        assert reply == {"id": 3, "error": "KeyError: 'content'"}


# ── Pool ──────────────────────────────────────────────────────

class TestWorkerPool:
    def test_default_size(self, monkeypatch):
        assert default_pool_size() >= 1
        monkeypatch.setattr("code_reach.workers.pool.os.cpu_count", lambda: None)
        assert default_pool_size() == 1
        monkeypatch.setattr("code_reach.workers.pool.os.cpu_count", lambda: 8)
        assert default_pool_size() == 7
        assert WorkerPool(0).size == 7

    def test_results_match_input_order(self):
        async def _test():
            async with WorkerPool(2, task_timeout=60) as pool:
                results = await pool.parse_files([
                    ("src/a.ts", "import './b';\n"),
                    ("b.py", "import os\n"),
                    ("notes.md", "# notes\n"),
                ])
            assert [e.specifier for e in results[0].imports] == ["./b"]
            assert [e.specifier for e in results[1].imports] == ["os"]
            assert "Unsupported" in results[2].error
        asyncio.run(_test())

    def test_gather_keeps_positions(self, monkeypatch):
        async def slow_parse(self, file_path, content):
            await asyncio.sleep(0.05 if file_path == "first.ts" else 0)
            return ParseResult(metadata={"path": file_path})

        monkeypatch.setattr(WorkerPool, "parse_file", slow_parse)

        async def _test():
            pool = WorkerPool(1)
            results = await pool.parse_files([("first.ts", ""), ("second.ts", ""), ("third.ts", "")])
            assert [r.metadata["path"] for r in results] == ["first.ts", "second.ts", "third.ts"]
        asyncio.run(_test())

    def test_settle_error_raises_task_error(self):
        async def _test():
            pool = WorkerPool(1)
            future = asyncio.get_running_loop().create_future()
            pool._pending[0] = future
            pool._settle({"id": 0, "error": "ValueError: boom"})
            with pytest.raises(WorkerTaskError, match="boom"):
                await future
            assert pool.pending_count == 0
        asyncio.run(_test())

    def test_settle_unknown_id_ignored(self):
        pool = WorkerPool(1)
        pool._settle({"id": 99, "result": ParseResult().to_dict()})
        assert pool.pending_count == 0

    def test_executor_crash_is_replaced(self):
        async def _test():
            async with WorkerPool(1, task_timeout=60) as pool:
                await pool.parse_file("a.py", "import os\n")
                victim = pool.processes[0]
                victim.kill()
                victim.join(timeout=10)

                result = await pool.parse_file("b.py", "import sys\n")
                assert [e.specifier for e in result.imports] == ["sys"]
                assert pool.restarts >= 1
                assert pool.processes[0] is not victim
        asyncio.run(_test())

    @pytest.mark.skipif(sys.platform == "win32", reason="needs SIGSTOP")
    def test_task_timeout(self):
        async def _test():
            async with WorkerPool(1, task_timeout=1.0) as pool:
                await pool.parse_file("warmup.py", "")
                pid = pool.processes[0].pid
                os.kill(pid, signal.SIGSTOP)
                try:
                    with pytest.raises(WorkerTimeoutError):
                        await pool.parse_file("stuck.py", "import os\n")
                    assert pool.pending_count == 0
                finally:
                    os.kill(pid, signal.SIGCONT)
        asyncio.run(_test())

    def test_shutdown_stops_executors(self):
        async def _test():
            pool = WorkerPool(2)
            async with pool:
                processes = pool.processes
                assert len(processes) == 2
                assert all(p.is_alive() for p in processes)
            assert pool.processes == []
            assert not any(p.is_alive() for p in processes)
        asyncio.run(_test())
