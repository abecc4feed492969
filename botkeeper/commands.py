"""Operator command grammar.

Parsing is pure: a line of input becomes one of the command variants below
(or None), and the control surface decides what to do with it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class SelectStream:
    """Echo this workload's output to the console."""
    workload_id: str


@dataclass(frozen=True)
class ClearStream:
    """Stop echoing workload output."""


@dataclass(frozen=True)
class Restart:
    workload_id: str


@dataclass(frozen=True)
class RestartAll:
    pass


@dataclass(frozen=True)
class Stop:
    workload_id: str


@dataclass(frozen=True)
class StopAll:
    pass


@dataclass(frozen=True)
class ListStatus:
    pass


Command = Union[SelectStream, ClearStream, Restart, RestartAll, Stop, StopAll, ListStatus]

_DIGITS = re.compile(r"^[0-9]+$")
_RESTART = re.compile(r"^r([0-9]+)$")
_STOP = re.compile(r"^s([0-9]+)$")

_KEYWORDS: dict[str, Command] = {
    "ra": RestartAll(),
    "sa": StopAll(),
    "ls": ListStatus(),
}

LEGEND = """\
Commands:
<number>  → Show logs for a specific bot
0         → Stop showing logs
rN        → Restart bot N (e.g. r2)
ra        → Restart all bots
sN        → Stop bot N (e.g. s2)
sa        → Stop all bots
ls        → List all bots with status, PID, and uptime"""


def parse_command(line: str) -> Optional[Command]:
    """Turn one input line into a command, or None if it means nothing.

    ``0`` always clears the selection, so a workload named ``0`` can not be
    selected for echoing.
    """
    text = line.strip()
    if text == "0":
        return ClearStream()
    if _DIGITS.match(text):
        return SelectStream(text)
    if match := _RESTART.match(text):
        return Restart(match.group(1))
    if match := _STOP.match(text):
        return Stop(match.group(1))
    return _KEYWORDS.get(text)
