"""Workload Supervisor — spawns, watches, and restarts numbered workloads.

The supervisor is the core that keeps every workload running. It:
- Starts each workload's entry point inside the workload's own directory
- Pumps stdout/stderr line by line into the workload's log file
- Echoes the output of the one selected workload to the console
- Restarts any workload that exits, after a fixed delay, forever
- Stops workloads on request without triggering the restart policy

Everything runs on one asyncio event loop; the registry is the only record
of what is alive.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import os
import signal
import sys
from pathlib import Path
from typing import Any, Callable, Coroutine, Mapping, Optional, Sequence

from rich.console import Console

from botkeeper.clock import now, timestamp
from botkeeper.config import Settings
from botkeeper.discovery import sort_ids
from botkeeper.log_sink import LogSink
from botkeeper.logging_config import get_logger
from botkeeper.registry import ProcessRegistry

logger = get_logger(__name__)

READ_CHUNK = 64 * 1024
MAX_LINE = READ_CHUNK
EXIT_POLL_INTERVAL = 0.5
POSIX = sys.platform != "win32"


class LiveStreamSelector:
    """The one workload (or none) whose output is mirrored to the console.

    Selection is by id, so it keeps working across restarts of that workload.
    """

    def __init__(self) -> None:
        self._selected: Optional[str] = None

    @property
    def selected(self) -> Optional[str]:
        return self._selected

    def select(self, workload_id: str) -> None:
        self._selected = workload_id

    def clear(self) -> None:
        self._selected = None

    def matches(self, workload_id: str) -> bool:
        return self._selected is not None and self._selected == workload_id


class WorkloadSupervisor:
    """Starts, stops and restarts workloads and wires their output."""

    def __init__(
        self,
        root: Path,
        registry: ProcessRegistry,
        sink: LogSink,
        *,
        entry_command: Sequence[str] = ("node", "index.js"),
        restart_delay: float = 5.0,
        stop_grace: float = 10.0,
        drain_timeout: float = 1.0,
        selector: Optional[LiveStreamSelector] = None,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
        env: Optional[Mapping[str, str]] = None,
        clock: Callable[[], dt.datetime] = now,
    ) -> None:
        self._root = Path(root)
        self._registry = registry
        self._sink = sink
        self._command = list(entry_command)
        self._entry_label = Path(self._command[-1]).name
        self._restart_delay = restart_delay
        self._stop_grace = stop_grace
        self._drain_timeout = drain_timeout
        self.selector = selector or LiveStreamSelector()
        self._console = console or Console()
        self._err_console = err_console or Console(stderr=True)
        self._env = env
        self._clock = clock
        self._starting: set[str] = set()
        self._stop_requested: set[str] = set()
        self._pending: dict[str, asyncio.Task] = {}
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        registry: ProcessRegistry,
        sink: LogSink,
        **kwargs: Any,
    ) -> WorkloadSupervisor:
        return cls(
            settings.workloads_root,
            registry,
            sink,
            entry_command=settings.entry_command,
            restart_delay=settings.restart_delay_seconds,
            stop_grace=settings.stop_grace_seconds,
            drain_timeout=settings.drain_timeout_seconds,
            **kwargs,
        )

    @property
    def registry(self) -> ProcessRegistry:
        return self._registry

    @property
    def console(self) -> Console:
        return self._console

    @property
    def restart_delay(self) -> float:
        return self._restart_delay

    def pending_restarts(self) -> list[str]:
        """Ids that exited and are waiting for their scheduled relaunch."""
        return sort_ids(self._pending)

    # ── Lifecycle ─────────────────────────────────────────────────────

    async def start(self, workload_id: str) -> bool:
        """Launch ``workload_id`` unless it is already running or starting."""
        if self._registry.is_running(workload_id) or workload_id in self._starting:
            return False

        self._cancel_pending(workload_id)
        self._stop_requested.discard(workload_id)
        self._starting.add(workload_id)
        try:
            try:
                proc = await asyncio.create_subprocess_exec(
                    *self._command,
                    cwd=str(self._root / workload_id),
                    env=dict(self._env) if self._env is not None else None,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    start_new_session=POSIX,
                )
            except OSError as exc:
                logger.warning("workload_spawn_failed", workload_id=workload_id, error=str(exc))
                if workload_id in self._stop_requested:
                    self._stop_requested.discard(workload_id)
                    return False
                self.notice(
                    workload_id,
                    f"Failed to start {self._label(workload_id)}: {exc}. "
                    f"Restarting in {self._restart_delay:g}s...",
                )
                self._schedule_restart(workload_id)
                return False

            if workload_id in self._stop_requested:
                # Stopped while spawning: the new child never gets registered.
                self._stop_requested.discard(workload_id)
                logger.info("workload_stopped_during_start", workload_id=workload_id, pid=proc.pid)
                self._terminate(proc)
                self._spawn(self._reap(workload_id, proc), f"reap-{workload_id}")
                return False

            if not self._registry.register(workload_id, proc, self._clock()):
                logger.error("workload_double_start", workload_id=workload_id, pid=proc.pid)
                self._terminate(proc)
                return False
        finally:
            self._starting.discard(workload_id)

        logger.info("workload_started", workload_id=workload_id, pid=proc.pid)
        self.notice(workload_id, f"Started {self._label(workload_id)} (PID: {proc.pid})")
        self._spawn(self._watch(workload_id, proc), f"watch-{workload_id}")
        return True

    def stop(self, workload_id: str) -> bool:
        """Terminate ``workload_id`` without scheduling a restart.

        Returns as soon as the signal is sent; a reaper escalates to SIGKILL
        if the process outlives the grace period.
        """
        cancelled = self._cancel_pending(workload_id)
        entry = self._registry.unregister(workload_id)
        if entry is None:
            if workload_id in self._starting:
                self._stop_requested.add(workload_id)
                self.notice(workload_id, f"Stopped {workload_id} (start cancelled)")
                return True
            if cancelled:
                self.notice(workload_id, f"Stopped {workload_id} (pending restart cancelled)")
                return True
            self.say(f"{workload_id} not running.")
            return False

        self._terminate(entry.handle)
        self._spawn(self._reap(workload_id, entry.handle), f"reap-{workload_id}")
        logger.info("workload_stopped", workload_id=workload_id, pid=entry.pid)
        self.notice(workload_id, f"Stopped {workload_id}")
        return True

    async def restart(self, workload_id: str) -> None:
        """Bounce a running workload through the exit path, or start a stopped one."""
        entry = self._registry.get(workload_id)
        if entry is not None:
            self.notice(workload_id, f"Restarting {workload_id}...")
            self._terminate(entry.handle)
            self._spawn(self._reap(workload_id, entry.handle), f"reap-{workload_id}")
            return

        self.say(f"{workload_id} not running, starting...")
        await self.start(workload_id)

    def stop_all(self) -> list[str]:
        ids = self._registry.ids()
        for workload_id in ids:
            self.stop(workload_id)
        return ids

    async def restart_all(self) -> list[str]:
        ids = self._registry.ids()
        for workload_id in ids:
            await self.restart(workload_id)
        return ids

    def cancel_restart(self, workload_id: str) -> bool:
        """Drop a scheduled relaunch for an id that should no longer run."""
        return self._cancel_pending(workload_id)

    async def shutdown(self) -> None:
        """Stop everything and wait (bounded) for the children to go away."""
        for workload_id in list(self._pending):
            self._cancel_pending(workload_id)

        handles = []
        for workload_id in self._registry.ids():
            entry = self._registry.unregister(workload_id)
            if entry is None:
                continue
            self._terminate(entry.handle)
            self._sink.append(workload_id, f"Stopped {workload_id} (supervisor shutdown)")
            handles.append((workload_id, entry.handle))

        if handles:
            await asyncio.gather(*(self._reap(wid, proc) for wid, proc in handles))

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("supervisor_shutdown_complete", stopped=len(handles))

    # ── Console & log output ──────────────────────────────────────────

    def notice(self, workload_id: str, message: str) -> None:
        """Record a lifecycle message in the workload log and on the console."""
        self._sink.append(workload_id, message)
        self.say(message)

    def say(self, message: str) -> None:
        self._console.out(f"[{timestamp()}] {message}", highlight=False)

    def _emit(self, workload_id: str, raw: bytes, is_error: bool) -> None:
        text = raw.decode("utf-8", errors="replace").rstrip("\r")
        tag = f"[{workload_id} ERROR]" if is_error else f"[{workload_id}]"
        self._sink.append(workload_id, f"{tag} {text}")
        if self.selector.matches(workload_id):
            console = self._err_console if is_error else self._console
            console.out(f"[{timestamp()}] {tag} {text}", highlight=False)

    # ── Background tasks ──────────────────────────────────────────────

    async def _pump(self, workload_id: str, stream: Optional[asyncio.StreamReader], is_error: bool) -> None:
        if stream is None:
            return
        buffer = b""
        while True:
            chunk = await stream.read(READ_CHUNK)
            if not chunk:
                break
            *lines, tail = chunk.split(b"\n")
            if lines:
                lines[0] = buffer + lines[0]
                buffer = tail
            else:
                buffer += tail
            for line in lines:
                self._emit(workload_id, line, is_error)
            # A line with no newline in sight is flushed in MAX_LINE pieces.
            while len(buffer) >= MAX_LINE:
                self._emit(workload_id, buffer[:MAX_LINE], is_error)
                buffer = buffer[MAX_LINE:]
        if buffer:
            self._emit(workload_id, buffer, is_error)

    async def _wait_exit(self, proc: asyncio.subprocess.Process) -> Optional[int]:
        """Return once the child itself has exited, open pipes or not.

        ``returncode`` is set as soon as the child is reaped, while ``wait()``
        may hold out until every pipe is closed (a grandchild can keep them
        open), so both are watched.
        """
        waiter = asyncio.ensure_future(proc.wait())
        try:
            while not waiter.done() and proc.returncode is None:
                await asyncio.wait({waiter}, timeout=EXIT_POLL_INTERVAL)
        finally:
            waiter.cancel()
        return proc.returncode

    async def _watch(self, workload_id: str, proc: asyncio.subprocess.Process) -> None:
        pumps = [
            asyncio.create_task(self._pump(workload_id, proc.stdout, False)),
            asyncio.create_task(self._pump(workload_id, proc.stderr, True)),
        ]
        try:
            code = await self._wait_exit(proc)
            was_tracked = self._registry.unregister(workload_id, proc) is not None
            # Trailing output gets a bounded drain; pipes held open elsewhere are dropped.
            await asyncio.wait(pumps, timeout=self._drain_timeout)
        finally:
            for pump in pumps:
                pump.cancel()
            await asyncio.gather(*pumps, return_exceptions=True)

        if not was_tracked:
            # Stopped on purpose (or already replaced): no restart.
            logger.info("workload_exited_after_stop", workload_id=workload_id, exit_code=code)
            return

        logger.info("workload_exited", workload_id=workload_id, pid=proc.pid, exit_code=code)
        self.notice(
            workload_id,
            f"{self._label(workload_id)} exited with code {code}. "
            f"Restarting in {self._restart_delay:g}s...",
        )
        self._schedule_restart(workload_id)

    async def _reap(self, workload_id: str, proc: asyncio.subprocess.Process) -> None:
        try:
            await asyncio.wait_for(proc.wait(), timeout=self._stop_grace)
        except asyncio.TimeoutError:
            logger.warning("workload_kill_after_grace", workload_id=workload_id, pid=proc.pid)
            self._kill(proc)

    async def _restart_later(self, workload_id: str) -> None:
        await asyncio.sleep(self._restart_delay)
        if self._pending.get(workload_id) is asyncio.current_task():
            del self._pending[workload_id]
        await self.start(workload_id)

    def _schedule_restart(self, workload_id: str) -> None:
        self._cancel_pending(workload_id)
        self._pending[workload_id] = self._spawn(
            self._restart_later(workload_id), f"restart-{workload_id}"
        )

    def _cancel_pending(self, workload_id: str) -> bool:
        task = self._pending.pop(workload_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("supervisor_task_failed", task=task.get_name(), error=str(exc))

    # ── Signals ───────────────────────────────────────────────────────

    def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        try:
            if POSIX:
                os.killpg(proc.pid, signal.SIGTERM)
            else:
                proc.terminate()
        except ProcessLookupError:
            pass

    def _kill(self, proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        try:
            if POSIX:
                os.killpg(proc.pid, signal.SIGKILL)
            else:
                proc.kill()
        except ProcessLookupError:
            pass

    def _label(self, workload_id: str) -> str:
        return f"{workload_id}/{self._entry_label}"
