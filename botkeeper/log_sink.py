"""Append-only, per-workload log files.

Each line is written with its own open/append/close so a crash of the
supervisor or the workload never loses an already-appended line, and no
file descriptor outlives a single write.
"""

from __future__ import annotations

import threading
from pathlib import Path

from botkeeper.clock import timestamp
from botkeeper.logging_config import get_logger

logger = get_logger(__name__)


class LogSink:
    """Writes ``[YYYY-MM-DD HH:MM:SS] <message>`` lines to ``<logs_dir>/<id>.<ext>``."""

    def __init__(self, logs_dir: Path, extension: str = "txt") -> None:
        self._dir = Path(logs_dir)
        self._ext = extension
        self._lock = threading.Lock()
        self._dir.mkdir(parents=True, exist_ok=True)

    @property
    def logs_dir(self) -> Path:
        return self._dir

    def path_for(self, workload_id: str) -> Path:
        return self._dir / f"{workload_id}.{self._ext}"

    def append(self, workload_id: str, message: str) -> bool:
        """Append one timestamped line for ``workload_id``.

        Returns False when the write failed; failures are logged, never raised.
        """
        text = message.rstrip("\n")
        line = f"[{timestamp()}] {text}\n"
        path = self.path_for(workload_id)
        with self._lock:
            try:
                self._dir.mkdir(parents=True, exist_ok=True)
                with open(path, "a", encoding="utf-8") as f:
                    f.write(line)
            except OSError as exc:
                logger.error("log_write_failed", workload_id=workload_id, path=str(path), error=str(exc))
                return False
        return True
