"""Shared test fixtures and configuration."""

from __future__ import annotations

import io
import os
import sys
import textwrap
from pathlib import Path
from typing import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from rich.console import Console

os.environ.setdefault("BOTKEEPER_ENV", "test")
os.environ.setdefault("BOTKEEPER_LOG_LEVEL", "WARNING")

from botkeeper.log_sink import LogSink
from botkeeper.registry import ProcessRegistry
from botkeeper.supervisor import WorkloadSupervisor

from helpers import LONG_RUNNING, RESTART_DELAY


@pytest.fixture
def workload_root(tmp_path: Path) -> Path:
    root = tmp_path / "bots"
    root.mkdir()
    return root


@pytest.fixture
def make_workload(workload_root: Path) -> Callable[[str, str], Path]:
    """Create ``<root>/<id>/main.py`` with the given script body."""

    def _make(workload_id: str, script: str = LONG_RUNNING) -> Path:
        folder = workload_root / workload_id
        folder.mkdir(exist_ok=True)
        (folder / "main.py").write_text(textwrap.dedent(script), encoding="utf-8")
        return folder

    return _make


@pytest.fixture
def sink(tmp_path: Path) -> LogSink:
    return LogSink(tmp_path / "logs")


@pytest.fixture
def console_output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def error_output() -> io.StringIO:
    return io.StringIO()


@pytest_asyncio.fixture
async def supervisor(
    workload_root: Path,
    sink: LogSink,
    console_output: io.StringIO,
    error_output: io.StringIO,
) -> AsyncGenerator[WorkloadSupervisor, None]:
    """A supervisor running real Python children with a short restart delay."""
    sup = WorkloadSupervisor(
        workload_root,
        ProcessRegistry(),
        sink,
        entry_command=[sys.executable, "main.py"],
        restart_delay=RESTART_DELAY,
        stop_grace=2.0,
        drain_timeout=0.5,
        console=Console(file=console_output, width=200),
        err_console=Console(file=error_output, width=200),
    )
    yield sup
    await sup.shutdown()
