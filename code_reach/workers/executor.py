"""Executor process body. Runs in a spawned child; imports nothing from the parent."""

from __future__ import annotations

import signal
from multiprocessing.connection import Connection
from multiprocessing.queues import Queue
from typing import Any

from code_reach.extractor import parse_file


def handle_task(task: dict[str, Any]) -> dict[str, Any]:
    """Parse one task message into a reply message. Stateless."""
    try:
        result = parse_file(task["file_path"], task["content"])
    except Exception as e:
        return {"id": task["id"], "error": f"{type(e).__name__}: {e}"}
    return {"id": task["id"], "result": result.to_dict()}


def executor_main(inbox: Queue, outbox: Connection) -> None:
    # Ctrl-C is handled by the parent, which terminates executors itself.
    signal.signal(signal.SIGINT, signal.SIG_IGN)
    try:
        while True:
            task = inbox.get()
            if task is None:
                break
            try:
                outbox.send(handle_task(task))
            except (BrokenPipeError, OSError):
                break
    finally:
        outbox.close()
