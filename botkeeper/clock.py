"""Timestamp and uptime formatting shared by logs and the console."""

from __future__ import annotations

import datetime as dt
from typing import Optional

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def now() -> dt.datetime:
    return dt.datetime.now()


def timestamp(moment: Optional[dt.datetime] = None) -> str:
    """Format ``moment`` (default: now) as ``YYYY-MM-DD HH:MM:SS``."""
    return (moment or now()).strftime(TIMESTAMP_FORMAT)


def format_duration(seconds: float) -> str:
    """Render an elapsed time as ``"{h}h {m}m {s}s"``.

    Hours keep counting past a day, e.g. 90000 seconds is ``25h 0m 0s``.
    """
    total = max(int(seconds), 0)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours}h {minutes}m {secs}s"
