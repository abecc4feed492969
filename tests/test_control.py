"""Tests for the interactive control surface."""

from __future__ import annotations

import datetime as dt
import io
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from rich.console import Console

from botkeeper.commands import ListStatus, Restart, RestartAll, SelectStream, Stop, StopAll
from botkeeper.control import ControlSurface
from botkeeper.log_sink import LogSink
from botkeeper.registry import ProcessRegistry
from botkeeper.supervisor import WorkloadSupervisor

STARTED = dt.datetime(2024, 5, 1, 8, 0, 0)


@pytest.fixture
def output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def fake_supervisor(tmp_path: Path, output: io.StringIO) -> WorkloadSupervisor:
    """A supervisor whose registry is filled by hand; nothing is spawned."""
    sup = WorkloadSupervisor(
        tmp_path,
        ProcessRegistry(),
        LogSink(tmp_path / "logs"),
        console=Console(file=output, width=120),
    )
    sup.restart = AsyncMock()
    sup.restart_all = AsyncMock()
    sup.stop = MagicMock(return_value=True)
    sup.stop_all = MagicMock(return_value=[])
    return sup


class TestDispatch:
    """Parsed lines reach the matching supervisor operation."""

    @pytest.mark.asyncio
    async def test_select_and_clear_stream(self, fake_supervisor: WorkloadSupervisor) -> None:
        control = ControlSurface(fake_supervisor)
        assert await control.handle_line("2\n") == SelectStream("2")
        assert fake_supervisor.selector.selected == "2"

        await control.handle_line("0\n")
        assert fake_supervisor.selector.selected is None

    @pytest.mark.asyncio
    async def test_restart_and_stop(self, fake_supervisor: WorkloadSupervisor) -> None:
        control = ControlSurface(fake_supervisor)
        assert await control.handle_line("r3") == Restart("3")
        fake_supervisor.restart.assert_awaited_once_with("3")

        assert await control.handle_line("s4") == Stop("4")
        fake_supervisor.stop.assert_called_once_with("4")

    @pytest.mark.asyncio
    async def test_all_variants(self, fake_supervisor: WorkloadSupervisor) -> None:
        control = ControlSurface(fake_supervisor)
        assert await control.handle_line("ra") == RestartAll()
        assert await control.handle_line("sa") == StopAll()
        fake_supervisor.restart_all.assert_awaited_once()
        fake_supervisor.stop_all.assert_called_once()

    @pytest.mark.asyncio
    async def test_garbage_is_ignored(self, fake_supervisor: WorkloadSupervisor, output: io.StringIO) -> None:
        control = ControlSurface(fake_supervisor)
        assert await control.handle_line("reboot everything") is None
        fake_supervisor.restart.assert_not_awaited()
        fake_supervisor.stop.assert_not_called()
        assert output.getvalue() == ""

    @pytest.mark.asyncio
    async def test_run_reads_until_eof(self, fake_supervisor: WorkloadSupervisor) -> None:
        control = ControlSurface(fake_supervisor)
        await control.run(io.StringIO("7\nnonsense\ns7\n"))
        assert fake_supervisor.selector.selected == "7"
        fake_supervisor.stop.assert_called_once_with("7")

    @pytest.mark.asyncio
    async def test_failing_command_does_not_end_input(self, fake_supervisor: WorkloadSupervisor) -> None:
        fake_supervisor.restart.side_effect = RuntimeError("spawn exploded")
        control = ControlSurface(fake_supervisor)
        await control.run(io.StringIO("r1\ns1\n"))
        fake_supervisor.stop.assert_called_once_with("1")


class TestStatusTable:
    """``ls`` shows running and stopped workloads."""

    @pytest.mark.asyncio
    async def test_ls_prints_table(self, fake_supervisor: WorkloadSupervisor, output: io.StringIO) -> None:
        fake_supervisor.registry.register("7", MagicMock(pid=4242), STARTED)
        control = ControlSurface(
            fake_supervisor,
            discover=lambda: {"3", "7"},
            clock=lambda: STARTED + dt.timedelta(seconds=3661),
        )

        assert await control.handle_line("ls") == ListStatus()

        text = output.getvalue()
        running = next(line for line in text.splitlines() if "RUNNING" in line)
        stopped = next(line for line in text.splitlines() if "STOPPED" in line)
        assert "7" in running and "4242" in running and "1h 1m 1s" in running
        assert "3" in stopped
        assert "4242" not in stopped
        assert "0h" not in stopped

    def test_registered_ids_listed_even_if_folder_gone(self, fake_supervisor: WorkloadSupervisor) -> None:
        fake_supervisor.registry.register("9", MagicMock(pid=1), STARTED)
        control = ControlSurface(fake_supervisor, discover=lambda: None, clock=lambda: STARTED)

        table = control.status_table()

        assert table.row_count == 1
        assert list(table.columns[2].cells) == ["1"]
        assert list(table.columns[3].cells) == ["0h 0m 0s"]
