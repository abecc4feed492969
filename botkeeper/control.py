"""Interactive control surface: operator commands read from stdin."""

from __future__ import annotations

import asyncio
import datetime as dt
import sys
import threading
from typing import Callable, Optional, TextIO

from rich.table import Table

from botkeeper.clock import format_duration, now
from botkeeper.commands import (
    ClearStream,
    Command,
    ListStatus,
    Restart,
    RestartAll,
    SelectStream,
    Stop,
    StopAll,
    parse_command,
)
from botkeeper.logging_config import get_logger
from botkeeper.supervisor import WorkloadSupervisor

logger = get_logger(__name__)

Discover = Callable[[], Optional[set[str]]]


class ControlSurface:
    """Maps operator commands onto the supervisor."""

    def __init__(
        self,
        supervisor: WorkloadSupervisor,
        discover: Optional[Discover] = None,
        clock: Callable[[], dt.datetime] = now,
    ) -> None:
        self._supervisor = supervisor
        self._discover = discover
        self._clock = clock

    async def handle_line(self, line: str) -> Optional[Command]:
        command = parse_command(line)
        if command is not None:
            await self.execute(command)
        return command

    async def execute(self, command: Command) -> None:
        sup = self._supervisor
        if isinstance(command, SelectStream):
            sup.selector.select(command.workload_id)
            sup.say(f"Showing logs for {command.workload_id}")
        elif isinstance(command, ClearStream):
            sup.selector.clear()
            sup.say("Stopped showing logs")
        elif isinstance(command, Restart):
            await sup.restart(command.workload_id)
        elif isinstance(command, RestartAll):
            await sup.restart_all()
        elif isinstance(command, Stop):
            sup.stop(command.workload_id)
        elif isinstance(command, StopAll):
            sup.stop_all()
        elif isinstance(command, ListStatus):
            sup.console.print()
            sup.console.print(self.status_table())
            sup.console.print()

    def status_table(self) -> Table:
        """Build the ``ls`` table: every known workload, running or not."""
        known: set[str] = set()
        if self._discover is not None:
            known = self._discover() or set()

        table = Table(title="Bot Status", title_justify="left")
        table.add_column("ID")
        table.add_column("Status")
        table.add_column("PID", justify="right")
        table.add_column("Uptime")

        current = self._clock()
        for workload_id, entry in self._supervisor.registry.snapshot(known):
            if entry is None:
                table.add_row(workload_id, "STOPPED", "", "")
                continue
            uptime = format_duration((current - entry.started_at).total_seconds())
            table.add_row(workload_id, "RUNNING", str(entry.pid), uptime)
        return table

    async def run(self, stream: Optional[TextIO] = None) -> None:
        """Read commands until the input stream closes.

        Lines are read on a daemon thread and handed to the event loop one at
        a time, so a blocked read never holds up the loop or interpreter exit.
        """
        stream = stream or sys.stdin
        loop = asyncio.get_running_loop()
        lines: asyncio.Queue[Optional[str]] = asyncio.Queue()

        def _reader() -> None:
            try:
                for line in iter(stream.readline, ""):
                    loop.call_soon_threadsafe(lines.put_nowait, line)
            except RuntimeError:
                return  # loop closed while reading
            except (OSError, ValueError) as exc:
                logger.warning("control_input_failed", error=str(exc))
            finally:
                try:
                    loop.call_soon_threadsafe(lines.put_nowait, None)
                except RuntimeError:
                    pass  # loop already closed

        threading.Thread(target=_reader, name="botkeeper-stdin", daemon=True).start()

        while True:
            line = await lines.get()
            if line is None:
                logger.info("control_input_closed")
                return
            try:
                await self.handle_line(line)
            except Exception as exc:
                logger.error("control_command_failed", line=line.strip(), error=str(exc))
