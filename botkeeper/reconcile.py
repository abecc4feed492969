"""Reconciliation loop. Converges running workloads toward what is on disk.

Runs once at startup and then on a fixed interval. New numeric directories
get started; workloads whose directory disappeared get stopped.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from botkeeper.discovery import discover_workloads, sort_ids
from botkeeper.logging_config import get_logger
from botkeeper.supervisor import WorkloadSupervisor

logger = get_logger(__name__)

JOB_ID = "reconcile_workloads"


class Reconciler:
    """Diffs discovered workloads against the registry and fixes the drift."""

    def __init__(
        self,
        supervisor: WorkloadSupervisor,
        root: Path,
        interval_seconds: float = 30 * 60,
        discover: Callable[[Path], Optional[set[str]]] = discover_workloads,
    ) -> None:
        self._supervisor = supervisor
        self._root = Path(root)
        self._interval = interval_seconds
        self._discover = discover
        self._scheduler: Optional[AsyncIOScheduler] = None

    def desired(self) -> Optional[set[str]]:
        return self._discover(self._root)

    async def tick(self) -> None:
        """Run one reconciliation pass."""
        desired = self.desired()
        if desired is None:
            # Unknown is not empty: never mass-stop on a failed listing.
            logger.warning("reconcile_skipped_discovery_failed", root=str(self._root))
            return

        sup = self._supervisor
        registry = sup.registry

        started = []
        for workload_id in sort_ids(desired):
            if not registry.is_running(workload_id) and await sup.start(workload_id):
                started.append(workload_id)

        removed = []
        for workload_id in registry.ids():
            if workload_id in desired:
                continue
            sup.notice(workload_id, f"Project {workload_id} folder deleted, stopping...")
            sup.stop(workload_id)
            removed.append(workload_id)

        for workload_id in sup.pending_restarts():
            if workload_id not in desired and sup.cancel_restart(workload_id):
                removed.append(workload_id)
                logger.info("reconcile_cancelled_restart", workload_id=workload_id)

        logger.info("reconcile_complete", desired=len(desired), started=started, removed=removed)

    # ── Scheduling ────────────────────────────────────────────────────

    async def start(self) -> None:
        """Run a pass now, then keep running one every interval."""
        await self.tick()
        if self._scheduler is not None and self._scheduler.running:
            return
        self._scheduler = AsyncIOScheduler(
            job_defaults={
                "misfire_grace_time": 60,
                "coalesce": True,
                "max_instances": 1,
            },
        )
        self._scheduler.add_job(
            self.tick,
            trigger=IntervalTrigger(seconds=self._interval),
            id=JOB_ID,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("reconcile_scheduled", interval_seconds=self._interval)

    def stop(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running
