"""Queue models: task types, lifecycle states and the stored QueueItem.

A failed item goes back to QUEUED with a back-off delay until its attempts
run out, then to DEAD:

    QUEUED -> PROCESSING -> COMPLETED | QUEUED | DEAD

Delivery is at-least-once, so every task handler must tolerate redelivery.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, IntEnum
from typing import Any, Protocol
from uuid import UUID, uuid4


class QueuePriority(IntEnum):
    """Dequeue order; lower values are claimed first."""

    INTERACTIVE = 0  # chat messages awaiting a reply
    NEAR_INTERACTIVE = 1  # safety alert DMs


class QueueStatus(str, Enum):
    """Lifecycle states for a queue item."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    DEAD = "dead"


class QueueTaskType(str, Enum):
    """Task types processed by the queue."""

    AGENT_MESSAGE = "agent_message"
    SAFETY_ALERT_DM = "safety_alert_dm"


@dataclass(frozen=True)
class QueueTask:
    """A unit of work submitted through :class:`TaskQueue`."""

    task_type: QueueTaskType
    payload: dict[str, Any]
    user_id: str = ""
    channel_id: str | None = None
    priority: int = QueuePriority.INTERACTIVE
    correlation_id: str | None = None


class TaskQueue(Protocol):
    """Asynchronous task submission with at-least-once delivery."""

    async def enqueue(self, task: QueueTask) -> UUID: ...


@dataclass
class QueueItem:
    """A single item in the priority queue.

    Attributes:
        id: Unique item identifier.
        priority: Processing priority (0 = highest).
        status: Current lifecycle state.
        task_type: Categorisation of the work to perform.
        user_id: Chat user ID that originated the request.
        channel_id: Chat channel ID (optional).
        payload: Arbitrary JSON-serialisable task data.
        attempt_count: Number of processing attempts so far.
        max_attempts: Maximum attempts before moving to DEAD.
        last_error: Error message from the most recent failure.
        worker_id: Identifier of the worker currently processing.
        created_at: Timestamp when the item was enqueued.
        scheduled_for: Earliest time the item may be dequeued.
        started_at: Timestamp when processing began.
        completed_at: Timestamp when processing finished.
        correlation_id: Optional ID to correlate related items.
    """

    id: UUID = field(default_factory=uuid4)
    priority: int = QueuePriority.INTERACTIVE
    status: str = QueueStatus.QUEUED
    task_type: str = QueueTaskType.AGENT_MESSAGE
    user_id: str = ""
    channel_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    attempt_count: int = 0
    max_attempts: int = 3
    last_error: str | None = None
    worker_id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    scheduled_for: datetime = field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    completed_at: datetime | None = None
    correlation_id: str | None = None
