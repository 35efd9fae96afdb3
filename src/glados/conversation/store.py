"""Conversation history storage.

History is scoped by team and channel, appended one exchange at a time and
read back as the most recent N turns in chronological order. Turns older
than the retention window are purged by queue housekeeping.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum

import asyncpg  # type: ignore[import-not-found,import-untyped]

from glados.logging import get_logger

log = get_logger("glados.conversation.store")

# Channel key used for DMs and slash commands without a channel.
DEFAULT_CHANNEL = "default"

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS conversation_turns (
    id          BIGSERIAL    PRIMARY KEY,
    team_id     TEXT         NOT NULL,
    channel_id  TEXT         NOT NULL,
    user_id     TEXT,
    role        VARCHAR(10)  NOT NULL CHECK (role IN ('user', 'assistant')),
    content     TEXT         NOT NULL,
    created_at  TIMESTAMPTZ  NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_conversation_turns_scope
    ON conversation_turns (team_id, channel_id, id DESC);
"""


class ConversationRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ConversationTurn:
    role: ConversationRole
    content: str
    created_at: datetime | None = None

    def to_message(self) -> dict[str, str]:
        """Render as a model message."""
        return {"role": self.role.value, "content": self.content}


class ConversationStore:
    """PostgreSQL-backed conversation history."""

    def __init__(self, pool: asyncpg.Pool) -> None:  # type: ignore[type-arg]
        self._pool = pool

    async def ensure_schema(self) -> None:
        """Create the history table if absent."""
        try:
            async with self._pool.acquire() as conn:
                await conn.execute(_SCHEMA_SQL)
            log.info("conversation_schema_ensured")
        except asyncpg.UniqueViolationError:
            log.info("conversation_schema_ensured", note="concurrent creation resolved")

    async def get_recent(
        self, team_id: str, channel_id: str | None, limit: int = 10
    ) -> list[ConversationTurn]:
        """Return up to *limit* most recent turns, oldest first."""
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT role, content, created_at FROM (
                    SELECT id, role, content, created_at FROM conversation_turns
                    WHERE team_id = $1 AND channel_id = $2
                    ORDER BY id DESC
                    LIMIT $3
                ) recent
                ORDER BY id ASC
                """,
                team_id,
                channel_id or DEFAULT_CHANNEL,
                limit,
            )
        return [
            ConversationTurn(
                role=ConversationRole(r["role"]), content=r["content"], created_at=r["created_at"]
            )
            for r in rows
        ]

    async def append_exchange(
        self,
        team_id: str,
        channel_id: str | None,
        user_id: str,
        user_message: str,
        assistant_response: str,
    ) -> None:
        """Append one user turn and the assistant's reply in a single transaction."""
        channel = channel_id or DEFAULT_CHANNEL
        now = datetime.now(UTC)
        async with self._pool.acquire() as conn, conn.transaction():
            await conn.executemany(
                """
                INSERT INTO conversation_turns
                    (team_id, channel_id, user_id, role, content, created_at)
                VALUES ($1, $2, $3, $4, $5, $6)
                """,
                [
                    (team_id, channel, user_id, ConversationRole.USER.value, user_message, now),
                    (
                        team_id,
                        channel,
                        user_id,
                        ConversationRole.ASSISTANT.value,
                        assistant_response,
                        now,
                    ),
                ],
            )

    async def purge_older_than(self, retention: timedelta) -> int:
        """Delete turns older than *retention*. Returns the number removed."""
        cutoff = datetime.now(UTC) - retention
        async with self._pool.acquire() as conn:
            result: str = await conn.execute(
                "DELETE FROM conversation_turns WHERE created_at < $1", cutoff
            )
        count = int(result.split()[-1])
        if count > 0:
            log.info("conversation_turns_purged", count=count)
        return count
