"""
Background task tracking for consent synchronization.

Every sync runs as an asyncio task owned by a TaskTracker. A sync body
reports its outcome as a SyncResult; a task that raises anyway is a bug
and is logged with its traceback instead of disappearing with the task.

Usage:
    tracker = TaskTracker("consent")
    task = tracker.create_task(coordinator_sync(), name="set_status")
    await tracker.wait_all()
"""

import asyncio
import logging
import traceback
from collections import Counter
from typing import Any, Coroutine, Dict, List, Optional, Set

from consent_sync.models import SyncResult

logger = logging.getLogger(__name__)


class TaskTracker:
    """
    Owns the background sync tasks of one coordinator.

    Keeps a reference to every pending task (so none is garbage collected
    mid-flight), counts outcomes and lets the owner wait for or cancel
    whatever is still running.
    """

    def __init__(self, component_name: str = "consent"):
        self.component_name = component_name
        self._pending: Set[asyncio.Task] = set()
        self._sequence = 0
        self._outcomes: Counter = Counter()

    def create_task(self, coro: Coroutine, name: Optional[str] = None) -> asyncio.Task:
        """
        Schedule `coro` on the running loop and track it.

        Task names look like ``consent.set_status#3``.
        """
        self._sequence += 1
        task = asyncio.create_task(
            coro, name=f"{self.component_name}.{name or 'sync'}#{self._sequence}"
        )
        self._pending.add(task)
        self._outcomes["created"] += 1
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)

        if task.cancelled():
            self._outcomes["cancelled"] += 1
            logger.debug(f"[{task.get_name()}] cancelled")
            return

        exc = task.exception()
        if exc is not None:
            self._outcomes["crashed"] += 1
            logger.error(
                f"[{task.get_name()}] crashed: {type(exc).__name__}: {exc}\n"
                f"{''.join(traceback.format_exception(type(exc), exc, exc.__traceback__))}"
            )
            return

        result = task.result()
        if not isinstance(result, SyncResult):
            self._outcomes["finished"] += 1
        elif result.synced:
            self._outcomes["synced"] += 1
        elif result.superseded:
            self._outcomes["superseded"] += 1
        else:
            self._outcomes["failed"] += 1

    @property
    def pending(self) -> List[asyncio.Task]:
        return [task for task in self._pending if not task.done()]

    async def wait_all(self, timeout: Optional[float] = None) -> int:
        """
        Wait until no tracked task is pending, including tasks started meanwhile.

        Tasks still running when `timeout` expires keep running.

        Raises:
            asyncio.TimeoutError: If tasks are still pending after `timeout` seconds

        Returns:
            Number of tasks waited for
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        first_sequence = self._sequence
        initially_pending = len(self.pending)

        while self.pending:
            remaining = None if deadline is None else max(0.0, deadline - loop.time())
            _, still_running = await asyncio.wait(self.pending, timeout=remaining)
            if still_running:
                raise asyncio.TimeoutError(
                    f"[{self.component_name}] {len(still_running)} task(s) still running after {timeout}s"
                )

        return initially_pending + self._sequence - first_sequence

    async def cancel_all(self, timeout: float = 5.0) -> int:
        """Cancel every pending task. Returns how many were cancelled."""
        batch = self.pending
        for task in batch:
            task.cancel()
        if batch:
            done, still_running = await asyncio.wait(batch, timeout=timeout)
            if still_running:
                logger.warning(
                    f"[{self.component_name}] {len(still_running)} task(s) ignored cancellation"
                )
        return len(batch)

    def get_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {"component": self.component_name}
        for outcome in ("created", "synced", "superseded", "failed", "crashed", "cancelled"):
            stats[outcome] = self._outcomes[outcome]
        stats["pending"] = len(self.pending)
        return stats
