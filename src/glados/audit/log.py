"""Append-only audit log of agent interactions.

There is deliberately no update or delete method: corrections are new
entries. Every read surface requires a mentor role; reporting users never
see the log.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

import asyncpg  # type: ignore[import-not-found,import-untyped]

from glados.audit.models import (
    AuditCounts,
    AuditLogEntry,
    MessageType,
    StoredAuditLogEntry,
    ToolCallRecord,
)
from glados.logging import get_logger
from glados.roles import require_elevated_role

log = get_logger("glados.audit.log")

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS agent_audit_logs (
    id                     BIGSERIAL    PRIMARY KEY,
    team_id                TEXT         NOT NULL,
    user_id                TEXT         NOT NULL,
    channel_id             TEXT,
    user_message           TEXT         NOT NULL,
    agent_response         TEXT         NOT NULL,
    tool_calls             JSONB        NOT NULL DEFAULT '[]'::jsonb,
    contains_safety_alert  BOOLEAN      NOT NULL DEFAULT false,
    message_type           VARCHAR(20)  NOT NULL,
    created_at             TIMESTAMPTZ  NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_agent_audit_logs_team_created
    ON agent_audit_logs (team_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_agent_audit_logs_team_user
    ON agent_audit_logs (team_id, user_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_agent_audit_logs_safety
    ON agent_audit_logs (team_id, created_at DESC) WHERE contains_safety_alert;
"""

_COLUMNS = """\
id, team_id, user_id, channel_id, user_message, agent_response, tool_calls,
contains_safety_alert, message_type, created_at"""


def _row_to_entry(row: asyncpg.Record) -> StoredAuditLogEntry:
    raw_calls = row["tool_calls"]
    calls = json.loads(raw_calls) if isinstance(raw_calls, str) else raw_calls
    return StoredAuditLogEntry(
        id=row["id"],
        team_id=row["team_id"],
        user_id=row["user_id"],
        channel_id=row["channel_id"],
        user_message=row["user_message"],
        agent_response=row["agent_response"],
        tool_calls=[ToolCallRecord.model_validate(c) for c in calls or []],
        contains_safety_alert=row["contains_safety_alert"],
        message_type=MessageType(row["message_type"]),
        created_at=row["created_at"],
    )


class AuditLog:
    """PostgreSQL-backed audit log."""

    def __init__(self, pool: asyncpg.Pool) -> None:  # type: ignore[type-arg]
        self._pool = pool

    async def ensure_schema(self) -> None:
        """Create the audit table and indexes if absent."""
        try:
            async with self._pool.acquire() as conn:
                await conn.execute(_SCHEMA_SQL)
            log.info("audit_schema_ensured")
        except asyncpg.UniqueViolationError:
            log.info("audit_schema_ensured", note="concurrent creation resolved")

    async def log(self, entry: AuditLogEntry) -> int:
        """Append *entry*. Returns the new entry id."""
        tool_calls = json.dumps([c.model_dump(mode="json") for c in entry.tool_calls])
        async with self._pool.acquire() as conn:
            entry_id = await conn.fetchval(
                """
                INSERT INTO agent_audit_logs
                    (team_id, user_id, channel_id, user_message, agent_response,
                     tool_calls, contains_safety_alert, message_type, created_at)
                VALUES ($1, $2, $3, $4, $5, $6::jsonb, $7, $8, $9)
                RETURNING id
                """,
                entry.team_id,
                entry.user_id,
                entry.channel_id,
                entry.user_message,
                entry.agent_response,
                tool_calls,
                entry.contains_safety_alert,
                entry.message_type.value,
                entry.created_at,
            )
        log.debug(
            "audit_entry_written",
            entry_id=entry_id,
            team_id=entry.team_id,
            message_type=entry.message_type.value,
            tool_call_count=len(entry.tool_calls),
            contains_safety_alert=entry.contains_safety_alert,
        )
        return int(entry_id)

    # ------------------------------------------------------------------
    # Read surfaces (mentor roles only)
    # ------------------------------------------------------------------

    async def list_by_team(
        self, team_id: str, *, viewer_role: str | None, limit: int = 100
    ) -> list[StoredAuditLogEntry]:
        require_elevated_role(viewer_role, "reading the audit log")
        rows = await self._fetch(
            f"""
            SELECT {_COLUMNS} FROM agent_audit_logs
            WHERE team_id = $1
            ORDER BY created_at DESC LIMIT $2
            """,
            team_id,
            limit,
        )
        return [_row_to_entry(r) for r in rows]

    async def list_by_team_user(
        self, team_id: str, user_id: str, *, viewer_role: str | None, limit: int = 100
    ) -> list[StoredAuditLogEntry]:
        require_elevated_role(viewer_role, "reading the audit log")
        rows = await self._fetch(
            f"""
            SELECT {_COLUMNS} FROM agent_audit_logs
            WHERE team_id = $1 AND user_id = $2
            ORDER BY created_at DESC LIMIT $3
            """,
            team_id,
            user_id,
            limit,
        )
        return [_row_to_entry(r) for r in rows]

    async def list_safety_alerts(
        self, team_id: str, *, viewer_role: str | None, limit: int = 50
    ) -> list[StoredAuditLogEntry]:
        require_elevated_role(viewer_role, "reading the audit log")
        rows = await self._fetch(
            f"""
            SELECT {_COLUMNS} FROM agent_audit_logs
            WHERE team_id = $1 AND contains_safety_alert
            ORDER BY created_at DESC LIMIT $2
            """,
            team_id,
            limit,
        )
        return [_row_to_entry(r) for r in rows]

    async def get(self, entry_id: int, *, viewer_role: str | None) -> StoredAuditLogEntry | None:
        require_elevated_role(viewer_role, "reading the audit log")
        rows = await self._fetch(
            f"SELECT {_COLUMNS} FROM agent_audit_logs WHERE id = $1", entry_id
        )
        return _row_to_entry(rows[0]) if rows else None

    async def count_by_team(
        self, team_id: str, *, viewer_role: str | None, since: datetime | None = None
    ) -> AuditCounts:
        require_elevated_role(viewer_role, "reading the audit log")
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT count(*)::int AS total,
                       count(*) FILTER (WHERE contains_safety_alert)::int AS with_alerts,
                       count(DISTINCT user_id)::int AS unique_users
                FROM agent_audit_logs
                WHERE team_id = $1 AND ($2::timestamptz IS NULL OR created_at >= $2)
                """,
                team_id,
                since,
            )
        if row is None:
            return AuditCounts()
        return AuditCounts(
            total=row["total"],
            with_safety_alerts=row["with_alerts"],
            unique_users=row["unique_users"],
        )

    async def _fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        async with self._pool.acquire() as conn:
            return await conn.fetch(query, *args)  # type: ignore[no-any-return]
