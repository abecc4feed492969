"""CLI entry point for the botkeeper supervisor."""

from __future__ import annotations

import asyncio
import signal
from pathlib import Path
from typing import Optional, TextIO

import typer
from rich.console import Console

from botkeeper.commands import LEGEND
from botkeeper.config import Settings, get_settings
from botkeeper.control import ControlSurface
from botkeeper.log_sink import LogSink
from botkeeper.logging_config import get_logger, setup_logging
from botkeeper.reconcile import Reconciler
from botkeeper.registry import ProcessRegistry
from botkeeper.supervisor import WorkloadSupervisor

app = typer.Typer(help="Keep every numbered bot directory running", add_completion=False)
console = Console()
logger = get_logger(__name__)


@app.command()
def run(
    root: Optional[Path] = typer.Option(None, "--root", help="Directory holding the numbered bot folders"),
    logs_dir: Optional[Path] = typer.Option(None, "--logs-dir", help="Where per-bot log files are written"),
) -> None:
    """Start every bot under the supervisor and accept commands on stdin."""
    settings = get_settings()
    overrides = {}
    if root is not None:
        overrides["workloads_root"] = root
    if logs_dir is not None:
        overrides["logs_path"] = logs_dir
    if overrides:
        settings = settings.model_copy(update=overrides)

    setup_logging()
    console.out(f"\n{LEGEND}\n", highlight=False)
    asyncio.run(serve(settings, console))


async def serve(settings: Settings, out: Console, stdin: Optional[TextIO] = None) -> None:
    """Wire the components together and run until SIGINT/SIGTERM."""
    registry = ProcessRegistry()
    sink = LogSink(settings.logs_dir, settings.log_extension)
    supervisor = WorkloadSupervisor.from_settings(settings, registry, sink, console=out)
    reconciler = Reconciler(supervisor, settings.workloads_root, settings.reconcile_interval_seconds)
    control = ControlSurface(supervisor, discover=reconciler.desired)

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_requested.set)
        except (NotImplementedError, RuntimeError):
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop_requested.set))

    logger.info(
        "supervisor_starting",
        root=str(settings.workloads_root),
        logs_dir=str(settings.logs_path),
        command=settings.entry_command,
    )
    await reconciler.start()
    control_task = asyncio.create_task(control.run(stdin), name="control")
    try:
        await stop_requested.wait()
    finally:
        out.out("Shutting down supervisor...", highlight=False)
        control_task.cancel()
        await asyncio.gather(control_task, return_exceptions=True)
        reconciler.stop()
        await supervisor.shutdown()
        logger.info("supervisor_stopped")
