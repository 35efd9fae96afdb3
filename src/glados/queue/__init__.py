"""Priority task queue for GLaDOS.

Provides a PostgreSQL-backed priority queue with ``FOR UPDATE SKIP LOCKED``
semantics, exponential-backoff retries, and dead-letter handling. Safety
alert DMs and queued chat messages are delivered through it.
"""

from glados.queue.manager import QueueManager
from glados.queue.models import (
    QueueItem,
    QueuePriority,
    QueueStatus,
    QueueTask,
    QueueTaskType,
    TaskQueue,
)
from glados.queue.processors import QueueProcessors
from glados.queue.storage import QueueStorage

__all__ = [
    "QueueItem",
    "QueueManager",
    "QueuePriority",
    "QueueProcessors",
    "QueueStatus",
    "QueueStorage",
    "QueueTask",
    "QueueTaskType",
    "TaskQueue",
]
