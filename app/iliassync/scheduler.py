import asyncio
from pathlib import Path
from typing import Awaitable, Callable, Dict, NamedTuple
import logging

from .models import Resource, UnitState

logger = logging.getLogger(__name__)


class SyncUnit(NamedTuple):
    """One resource to process, and the local path it maps to."""
    resource: Resource
    path: Path


class Scheduler:
    """
    Bounded-concurrency work queue with quiescence detection.

    Every submitted unit becomes its own task right away, and every task handle
    goes into an unbounded queue. A task holds one of `jobs` permits for its whole
    run, so at most `jobs` units execute at once while any number may be pending.
    Units may submit further units; join() awaits handles until the queue is
    drained, which can only happen once no running unit is left to submit more.
    """

    def __init__(self, jobs: int, worker: Callable[[SyncUnit], Awaitable[None]]):
        """
        Initialize the scheduler.

        Args:
            jobs: Maximum number of units running at once
            worker: Processes a single unit
        """
        if jobs < 1:
            raise ValueError(f"jobs must be at least 1, got {jobs}")
        self.jobs = jobs
        self._worker = worker
        self._permits = asyncio.Semaphore(jobs)
        self._handles: asyncio.Queue = asyncio.Queue()
        self._running = 0
        self.peak_running = 0
        self._counts: Dict[UnitState, int] = {state: 0 for state in UnitState}

    def submit(self, resource: Resource, path: Path) -> asyncio.Task:
        """
        Schedule a unit. Never blocks, never fails.

        Returns:
            The unit's task handle
        """
        unit = SyncUnit(resource, path)
        self._counts[UnitState.QUEUED] += 1
        task = asyncio.get_running_loop().create_task(self._run(unit))
        self._handles.put_nowait(task)
        return task

    async def _run(self, unit: SyncUnit):
        async with self._permits:
            self._counts[UnitState.QUEUED] -= 1
            self._counts[UnitState.RUNNING] += 1
            self._running += 1
            self.peak_running = max(self.peak_running, self._running)
            try:
                await self._worker(unit)
            except Exception as e:
                self._counts[UnitState.FAILED] += 1
                logger.error(f"Syncing {unit.path}: {type(e).__name__}: {e}")
                logger.debug(f"Failed unit: {unit.resource}", exc_info=True)
            else:
                self._counts[UnitState.COMPLETED] += 1
            finally:
                self._running -= 1
                self._counts[UnitState.RUNNING] -= 1

    async def join(self):
        """Await task handles until none is left; afterwards the crawl is complete."""
        while True:
            try:
                handle = self._handles.get_nowait()
            except asyncio.QueueEmpty:
                break
            await handle

    @property
    def running(self) -> int:
        return self._running

    @property
    def failed(self) -> int:
        return self._counts[UnitState.FAILED]

    def get_stats(self) -> Dict[str, int]:
        stats = {state.value: count for state, count in self._counts.items()}
        stats['submitted'] = sum(self._counts[state] for state in UnitState)
        stats['peak_running'] = self.peak_running
        return stats
