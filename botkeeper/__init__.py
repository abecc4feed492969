"""botkeeper: keeps a directory of numbered bots running.

Components:
- WorkloadSupervisor: spawns, watches, and restarts one workload per id
- ProcessRegistry: in-memory record of what is running
- LogSink: append-only, timestamped per-workload log files
- Reconciler: picks up bot folders added to or removed from disk
- ControlSurface: operator commands read from stdin
"""

__version__ = "0.1.0"

from botkeeper.control import ControlSurface
from botkeeper.log_sink import LogSink
from botkeeper.reconcile import Reconciler
from botkeeper.registry import ProcessRegistry, RegistryEntry
from botkeeper.supervisor import LiveStreamSelector, WorkloadSupervisor

__all__ = [
    "ControlSurface",
    "LiveStreamSelector",
    "LogSink",
    "ProcessRegistry",
    "Reconciler",
    "RegistryEntry",
    "WorkloadSupervisor",
]
