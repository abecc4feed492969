"""Finds the workloads to supervise: numerically named subdirectories."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, Optional

from botkeeper.logging_config import get_logger

logger = get_logger(__name__)

WORKLOAD_ID_PATTERN = re.compile(r"^[0-9]+$")


def is_workload_id(value: str) -> bool:
    return bool(WORKLOAD_ID_PATTERN.match(value))


def discover_workloads(root: Path) -> Optional[set[str]]:
    """Return the ids of all numeric subdirectories of ``root``.

    Returns None when ``root`` cannot be listed. Callers must read that as
    "unknown" and keep their current state, not as "nothing to run".
    """
    try:
        entries = list(Path(root).iterdir())
    except OSError as exc:
        logger.warning("workload_discovery_failed", root=str(root), error=str(exc))
        return None

    found: set[str] = set()
    for entry in entries:
        if not is_workload_id(entry.name):
            continue
        try:
            if entry.is_dir():
                found.add(entry.name)
        except OSError:
            continue
    return found


def sort_ids(ids: Iterable[str]) -> list[str]:
    """Order workload ids numerically ("2" before "10")."""
    return sorted(set(ids), key=lambda i: (int(i), i))
