"""Deferred removal of staging directories."""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path
from typing import Dict, Set

import structlog
from prometheus_client import Counter

logger = structlog.get_logger()

CLEANUP_REMOVALS = Counter(
    "static_deployer_cleanup_removals_total",
    "Staging directory removals",
    ["result"],
)

DEFAULT_DELAY_SECONDS = 5.0


class CleanupScheduler:
    """Owns one-shot, best-effort removals of staging directories.

    Removals never raise to the caller. A failed removal is logged and not
    retried. Scheduling the same path twice creates two independent removals.
    Once a removal has started deleting files it is no longer cancellable;
    ``cancel`` waits for it instead.
    """

    def __init__(self, delay_seconds: float = DEFAULT_DELAY_SECONDS):
        self.delay_seconds = delay_seconds
        self._pending: Dict[Path, Set[asyncio.Task]] = {}
        self._removing: Dict[Path, Set[asyncio.Task]] = {}

    def schedule_removal(self, path: Path, delay_seconds: float | None = None) -> asyncio.Task:
        """Remove ``path`` and everything below it after a delay.

        Must be called from a running event loop. Returns the removal task.
        """
        path = Path(path)
        delay = self.delay_seconds if delay_seconds is None else delay_seconds
        task = asyncio.create_task(self._remove_after(path, delay))
        self._pending.setdefault(path, set()).add(task)
        task.add_done_callback(lambda t: self._forget(path, t))
        logger.debug("Scheduled staging removal", path=str(path), delay_seconds=delay)
        return task

    async def cancel(self, path: Path) -> int:
        """Cancel pending removals of ``path``.

        Removals already deleting files are awaited, so the path is free to
        be written once this returns.

        Returns:
            How many removals were cancelled
        """
        path = Path(path)
        tasks = self._pending.pop(path, set())
        for task in tasks:
            task.cancel()
        if tasks:
            logger.debug("Cancelled staging removals", path=str(path), count=len(tasks))

        running = list(self._removing.get(path, ()))
        if running:
            logger.debug("Waiting for running staging removal", path=str(path))
            await asyncio.gather(*running, return_exceptions=True)
        return len(tasks)

    def pending_count(self) -> int:
        return sum(len(tasks) for tasks in self._pending.values()) + sum(
            len(tasks) for tasks in self._removing.values()
        )

    async def shutdown(self, flush: bool = True) -> None:
        """Flush or abandon every pending removal.

        With ``flush`` the directories are removed now instead of after their
        delay; otherwise the removals are cancelled and the directories stay.
        """
        pending = {path: tasks for path, tasks in self._pending.items() if tasks}
        self._pending = {}
        tasks = [task for group in pending.values() for task in group]
        for task in tasks:
            task.cancel()
        running = [task for group in self._removing.values() for task in group]
        if tasks or running:
            await asyncio.gather(*tasks, *running, return_exceptions=True)

        if flush:
            for path in pending:
                await self._remove(path)
        logger.info(
            "Cleanup scheduler stopped",
            flushed=len(pending) if flush else 0,
            abandoned=0 if flush else len(pending),
        )

    def _forget(self, path: Path, task: asyncio.Task) -> None:
        for registry in (self._pending, self._removing):
            tasks = registry.get(path)
            if tasks is None:
                continue
            tasks.discard(task)
            if not tasks:
                registry.pop(path, None)

    async def _remove_after(self, path: Path, delay: float) -> None:
        await asyncio.sleep(delay)
        task = asyncio.current_task()
        # Past this point the removal runs to completion
        self._forget(path, task)
        self._removing.setdefault(path, set()).add(task)
        await self._remove(path)

    async def _remove(self, path: Path) -> None:
        if not path.exists():
            CLEANUP_REMOVALS.labels(result="missing").inc()
            return
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, shutil.rmtree, path)
        except OSError as e:
            CLEANUP_REMOVALS.labels(result="failed").inc()
            logger.warning("Failed to remove staging directory", path=str(path), error=str(e))
            return
        CLEANUP_REMOVALS.labels(result="removed").inc()
        logger.info("Removed staging directory", path=str(path))
