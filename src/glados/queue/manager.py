"""Queue manager: the worker pool that drains the task queue.

Every worker claims the lowest-priority-value ready item, so chat replies
(P0) are always taken before alert DMs (P1) that became ready at the same
time. A periodic housekeeping pass recovers stale claims, purges finished
items and runs the registered hooks (conversation retention and
unacknowledged-alert re-escalation).
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from glados.config import get_settings
from glados.logging import get_logger
from glados.queue.models import QueueItem, QueueStatus, QueueTask
from glados.queue.processors import QueueProcessors
from glados.queue.storage import QueueStorage

log = get_logger("glados.queue.manager")

_DRAIN_TIMEOUT_SECONDS = 30
_HOUSEKEEPING_INTERVAL_SECONDS = 60

# How long finished items stay in the table.
_RETENTION: dict[QueueStatus, timedelta] = {
    QueueStatus.COMPLETED: timedelta(hours=24),
    QueueStatus.DEAD: timedelta(days=7),
}

HousekeepingHook = Callable[[], Awaitable[Any]]


class QueueManager:
    """Implements ``TaskQueue`` and runs the workers that consume it."""

    def __init__(
        self,
        storage: QueueStorage,
        processors: QueueProcessors,
        *,
        housekeeping_hooks: list[HousekeepingHook] | None = None,
    ) -> None:
        self._storage = storage
        self._processors = processors
        self._housekeeping_hooks = housekeeping_hooks or []
        self._workers: list[asyncio.Task[None]] = []
        self._housekeeping_task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Spawn the workers and the housekeeping loop."""
        if self._running:
            log.warning("queue_manager_already_running")
            return

        settings = get_settings()
        poll_seconds = settings.queue_poll_interval_ms / 1000.0
        self._running = True
        self._workers = [
            asyncio.create_task(self._worker_loop(f"worker-{i}", poll_seconds))
            for i in range(settings.queue_workers)
        ]
        self._housekeeping_task = asyncio.create_task(self._housekeeping_loop())
        log.info("queue_manager_started", workers=settings.queue_workers)

    async def stop(self) -> None:
        """Stop claiming work, let in-flight items finish, then release stale claims."""
        if not self._running:
            return

        log.info("queue_manager_stopping")
        self._running = False

        if self._housekeeping_task is not None:
            await _cancel(self._housekeeping_task)
            self._housekeeping_task = None

        if self._workers:
            _, pending = await asyncio.wait(self._workers, timeout=_DRAIN_TIMEOUT_SECONDS)
            for task in pending:
                await _cancel(task)
            self._workers = []

        try:
            requeued = await self._storage.requeue_stale(timeout_seconds=0)
        except Exception:
            log.exception("queue_shutdown_requeue_failed")
        else:
            if requeued:
                log.info("queue_shutdown_requeued", count=requeued)
        log.info("queue_manager_stopped")

    async def enqueue(self, task: QueueTask) -> UUID:
        """Persist *task* and return its item id."""
        item = QueueItem(
            priority=task.priority,
            task_type=task.task_type.value,
            user_id=task.user_id,
            channel_id=task.channel_id,
            payload=task.payload,
            max_attempts=get_settings().queue_max_retry_attempts,
            scheduled_for=datetime.now(UTC),
            correlation_id=task.correlation_id,
        )
        item_id = await self._storage.enqueue(item)
        log.debug(
            "queue_item_submitted",
            item_id=str(item_id),
            task_type=item.task_type,
            priority=item.priority,
        )
        return item_id

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    async def _worker_loop(self, name: str, poll_seconds: float) -> None:
        log.debug("worker_started", worker=name)
        while self._running:
            try:
                item = await self._storage.dequeue(worker_id=name)
                if item is None:
                    await asyncio.sleep(poll_seconds)
                else:
                    await self._process_item(item, worker_name=name)
            except asyncio.CancelledError:
                break
            except Exception:
                log.exception("worker_error", worker=name)
                await asyncio.sleep(poll_seconds)
        log.debug("worker_stopped", worker=name)

    async def _process_item(self, item: QueueItem, worker_name: str) -> None:
        result = await self._processors.process(item.task_type, item.payload)
        if result.success:
            await self._storage.complete(item.id)
            log.debug(
                "item_completed",
                item_id=str(item.id),
                task_type=item.task_type,
                worker=worker_name,
            )
            return

        await self._storage.fail(item.id, result.error or "Unknown error")
        log.warning(
            "item_failed",
            item_id=str(item.id),
            task_type=item.task_type,
            attempt=item.attempt_count,
            error=result.error,
            worker=worker_name,
        )

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    async def _housekeeping_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(_HOUSEKEEPING_INTERVAL_SECONDS)
                if self._running:
                    await self.run_housekeeping()
            except asyncio.CancelledError:
                break
            except Exception:
                log.exception("housekeeping_error")

    async def run_housekeeping(self) -> None:
        """One housekeeping pass. Hook failures are logged and skipped."""
        await self._storage.requeue_stale(
            timeout_seconds=get_settings().queue_stale_timeout_seconds,
        )
        for status, retention in _RETENTION.items():
            await self._storage.purge(status.value, retention)

        for hook in self._housekeeping_hooks:
            try:
                await hook()
            except Exception:
                log.exception("housekeeping_hook_failed", hook=getattr(hook, "__name__", "?"))


async def _cancel(task: asyncio.Task[None]) -> None:
    if task.done():
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
