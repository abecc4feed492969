"""Polling and log helpers shared by the lifecycle tests."""

from __future__ import annotations

import asyncio
import time
from typing import Callable

from botkeeper.log_sink import LogSink


async def wait_until(predicate: Callable[[], bool], timeout: float = 10.0) -> None:
    """Poll ``predicate`` on the event loop until it holds or time runs out."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.02)


def read_log(sink: LogSink, workload_id: str) -> str:
    path = sink.path_for(workload_id)
    return path.read_text(encoding="utf-8") if path.exists() else ""


RESTART_DELAY = 0.3

LONG_RUNNING = """
import time
print("ready", flush=True)
time.sleep(60)
"""

CRASHING = """
import sys
print("boom", file=sys.stderr, flush=True)
sys.exit(3)
"""

THREE_LINES = """
import time
for word in ("A", "B", "C"):
    print(word, flush=True)
time.sleep(60)
"""

# The grandchild inherits stdout/stderr and keeps them open after its parent exits.
LEAVES_GRANDCHILD = """
import subprocess
import sys
subprocess.Popen([sys.executable, "-c", "import time; time.sleep(5)"])
print("parent exiting", flush=True)
"""

PRINTS_PID_AND_EXITS = """
import os
import sys
import time
print(f"pid-{os.getpid()}", flush=True)
time.sleep(0.2)
sys.exit(1)
"""

ENDLESS_LINE = """
import sys
import time
sys.stdout.write("x" * 200000)
sys.stdout.flush()
time.sleep(60)
"""
