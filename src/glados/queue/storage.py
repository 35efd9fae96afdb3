"""PostgreSQL storage for the task queue.

Workers claim items with ``FOR UPDATE SKIP LOCKED`` so concurrent claims
never block each other or hand out the same item twice.
"""

from __future__ import annotations

import json
from dataclasses import fields
from datetime import UTC, datetime, timedelta
from uuid import UUID

import asyncpg  # type: ignore[import-not-found,import-untyped]

from glados.logging import get_logger
from glados.queue.models import QueueItem, QueueStatus

log = get_logger("glados.queue.storage")

# Delay before retry n (1-based); later retries reuse the last value.
RETRY_BACKOFF_SECONDS: list[int] = [5, 30, 300]

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS task_queue (
    id              UUID         PRIMARY KEY,
    priority        SMALLINT     NOT NULL DEFAULT 0,
    status          VARCHAR(12)  NOT NULL DEFAULT 'queued'
                    CHECK (status IN ('queued', 'processing', 'completed', 'dead')),
    task_type       VARCHAR(40)  NOT NULL,
    user_id         TEXT         NOT NULL DEFAULT '',
    channel_id      TEXT,
    payload         JSONB        NOT NULL DEFAULT '{}'::jsonb,
    attempt_count   INT          NOT NULL DEFAULT 0,
    max_attempts    INT          NOT NULL DEFAULT 3,
    last_error      TEXT,
    worker_id       TEXT,
    created_at      TIMESTAMPTZ  NOT NULL DEFAULT now(),
    scheduled_for   TIMESTAMPTZ  NOT NULL DEFAULT now(),
    started_at      TIMESTAMPTZ,
    completed_at    TIMESTAMPTZ,
    correlation_id  TEXT
);

CREATE INDEX IF NOT EXISTS idx_task_queue_ready
    ON task_queue (priority, scheduled_for) WHERE status = 'queued';
"""


_ITEM_FIELDS = tuple(f.name for f in fields(QueueItem))

_INSERT_SQL = """\
INSERT INTO task_queue
    (id, priority, status, task_type, user_id, channel_id, payload,
     attempt_count, max_attempts, scheduled_for, correlation_id)
VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb, $8, $9, $10, $11)
RETURNING id
"""


def _row_to_item(row: asyncpg.Record) -> QueueItem:
    data = {name: row[name] for name in _ITEM_FIELDS}
    # JSONB arrives as text unless a codec is registered on the pool
    if isinstance(data["payload"], str):
        data["payload"] = json.loads(data["payload"])
    return QueueItem(**data)


class QueueStorage:
    """Task queue rows on the shared asyncpg pool."""

    def __init__(self, pool: asyncpg.Pool) -> None:  # type: ignore[type-arg]
        self._pool = pool

    async def ensure_schema(self) -> None:
        try:
            async with self._pool.acquire() as conn:
                await conn.execute(_SCHEMA_SQL)
        except asyncpg.UniqueViolationError:
            log.info("queue_schema_ensured", note="concurrent creation resolved")
        else:
            log.info("queue_schema_ensured")

    async def enqueue(self, item: QueueItem) -> UUID:
        """Insert *item* and return its id."""
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                _INSERT_SQL,
                item.id,
                item.priority,
                item.status,
                item.task_type,
                item.user_id,
                item.channel_id,
                json.dumps(item.payload),
                item.attempt_count,
                item.max_attempts,
                item.scheduled_for,
                item.correlation_id,
            )
        item_id: UUID = row["id"]  # type: ignore[index]
        log.debug("queue_item_enqueued", item_id=str(item_id), task_type=item.task_type)
        return item_id

    async def dequeue(self, worker_id: str) -> QueueItem | None:
        """Claim the most urgent ready item for *worker_id*, or return ``None``."""
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                UPDATE task_queue
                SET status        = 'processing',
                    worker_id     = $1,
                    started_at    = now(),
                    attempt_count = attempt_count + 1
                WHERE id = (
                    SELECT id FROM task_queue
                    WHERE status = 'queued' AND scheduled_for <= now()
                    ORDER BY priority, scheduled_for
                    LIMIT 1
                    FOR UPDATE SKIP LOCKED
                )
                RETURNING *
                """,
                worker_id,
            )
        return _row_to_item(row) if row is not None else None

    async def complete(self, item_id: UUID) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(
                "UPDATE task_queue SET status = 'completed', completed_at = now() WHERE id = $1",
                item_id,
            )

    async def fail(self, item_id: UUID, error: str) -> str | None:
        """Record a failed attempt in one statement.

        The item is dead-lettered once ``attempt_count`` reaches
        ``max_attempts``; otherwise it is re-queued after the back-off delay
        for its attempt number.

        Returns:
            The item's new status, or ``None`` if the item no longer exists.
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                UPDATE task_queue
                SET status        = CASE WHEN attempt_count >= max_attempts
                                         THEN 'dead' ELSE 'queued' END,
                    completed_at  = CASE WHEN attempt_count >= max_attempts
                                         THEN now() END,
                    scheduled_for = CASE WHEN attempt_count >= max_attempts
                                         THEN scheduled_for
                                         ELSE now() + make_interval(secs => ($3::int[])[
                                             LEAST(GREATEST(attempt_count, 1),
                                                   cardinality($3::int[]))
                                         ]) END,
                    last_error    = $2,
                    worker_id     = NULL,
                    started_at    = NULL
                WHERE id = $1
                RETURNING status, attempt_count
                """,
                item_id,
                error,
                RETRY_BACKOFF_SECONDS,
            )
        if row is None:
            log.warning("queue_fail_item_not_found", item_id=str(item_id))
            return None

        status: str = row["status"]
        if status == QueueStatus.DEAD:
            log.warning(
                "queue_item_dead", item_id=str(item_id), attempts=row["attempt_count"], error=error
            )
        else:
            log.info("queue_item_requeued", item_id=str(item_id), attempt=row["attempt_count"])
        return status

    async def requeue_stale(self, timeout_seconds: int = 300) -> int:
        """Release items claimed more than *timeout_seconds* ago back to ``queued``."""
        cutoff = datetime.now(tz=UTC) - timedelta(seconds=timeout_seconds)
        async with self._pool.acquire() as conn:
            result: str = await conn.execute(
                """
                UPDATE task_queue
                SET status = 'queued', worker_id = NULL, started_at = NULL
                WHERE status = 'processing' AND started_at < $1
                """,
                cutoff,
            )
        count = _affected_rows(result)
        if count:
            log.info("queue_stale_requeued", count=count, timeout_seconds=timeout_seconds)
        return count

    async def purge(self, status: str, older_than: timedelta) -> int:
        """Delete items in a terminal *status* finished before ``now - older_than``."""
        async with self._pool.acquire() as conn:
            result: str = await conn.execute(
                "DELETE FROM task_queue WHERE status = $1 AND completed_at < $2",
                status,
                datetime.now(tz=UTC) - older_than,
            )
        count = _affected_rows(result)
        if count:
            log.info("queue_items_purged", status=status, count=count)
        return count


def _affected_rows(command_tag: str) -> int:
    # asyncpg returns the command tag, e.g. "UPDATE 3"
    return int(command_tag.split()[-1])
