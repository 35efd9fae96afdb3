"""PostgreSQL storage for safety alerts and acknowledgment tokens.

Alerts are compliance records: there is no delete path. Token consumption
and alert status moves are single conditional ``UPDATE`` statements so that
concurrent acknowledgments (a reaction and a link click at the same moment)
resolve to exactly one winner without explicit locks.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import asyncpg  # type: ignore[import-not-found,import-untyped]

from glados.logging import get_logger
from glados.safety.models import (
    STATUS_ORDER,
    AckMethod,
    AlertAckToken,
    AlertSeverity,
    AlertStats,
    AlertStatus,
    AlertType,
    SafetyAlert,
)

log = get_logger("glados.safety.storage")

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS safety_alerts (
    id                TEXT         PRIMARY KEY,
    team_id           TEXT         NOT NULL,
    user_id           TEXT         NOT NULL,
    channel_id        TEXT,
    alert_type        VARCHAR(20)  NOT NULL
                      CHECK (alert_type IN ('escalation', 'crisis', 'review')),
    severity          VARCHAR(10)  NOT NULL CHECK (severity IN ('high', 'medium', 'low')),
    trigger_reason    TEXT         NOT NULL,
    message_content   TEXT         NOT NULL,
    status            VARCHAR(10)  NOT NULL DEFAULT 'pending'
                      CHECK (status IN ('pending', 'reviewed', 'resolved')),
    ack_method        VARCHAR(10),
    acknowledged_at   TIMESTAMPTZ,
    acknowledged_by   TEXT,
    reviewed_by       TEXT,
    reviewed_at       TIMESTAMPTZ,
    resolution_notes  TEXT,
    escalation_count  INT          NOT NULL DEFAULT 0,
    created_at        TIMESTAMPTZ  NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS alert_ack_tokens (
    token                 TEXT         PRIMARY KEY,
    alert_id              TEXT         NOT NULL REFERENCES safety_alerts (id),
    contact_member_id     TEXT         NOT NULL,
    contact_discord_id    TEXT,
    expires_at            TIMESTAMPTZ  NOT NULL,
    used_at               TIMESTAMPTZ,
    used_by               TEXT,
    delivered_message_id  TEXT         UNIQUE,
    delivered_at          TIMESTAMPTZ,
    created_at            TIMESTAMPTZ  NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_safety_alerts_team_status
    ON safety_alerts (team_id, status);
CREATE INDEX IF NOT EXISTS idx_safety_alerts_created_at
    ON safety_alerts (created_at DESC);
CREATE INDEX IF NOT EXISTS idx_alert_ack_tokens_alert_id
    ON alert_ack_tokens (alert_id);
"""

_ALERT_COLUMNS = """\
id, team_id, user_id, channel_id, alert_type, severity, trigger_reason,
message_content, status, created_at, ack_method, acknowledged_at,
acknowledged_by, reviewed_by, reviewed_at, resolution_notes, escalation_count"""

_TOKEN_COLUMNS = """\
token, alert_id, contact_member_id, contact_discord_id, expires_at, used_at,
used_by, delivered_message_id, delivered_at"""


def _row_to_alert(row: asyncpg.Record) -> SafetyAlert:
    """Convert an ``asyncpg.Record`` to a :class:`SafetyAlert`."""
    return SafetyAlert(
        id=row["id"],
        team_id=row["team_id"],
        user_id=row["user_id"],
        channel_id=row["channel_id"],
        alert_type=AlertType(row["alert_type"]),
        severity=AlertSeverity(row["severity"]),
        trigger_reason=row["trigger_reason"],
        message_content=row["message_content"],
        status=AlertStatus(row["status"]),
        created_at=row["created_at"],
        ack_method=AckMethod(row["ack_method"]) if row["ack_method"] else None,
        acknowledged_at=row["acknowledged_at"],
        acknowledged_by=row["acknowledged_by"],
        reviewed_by=row["reviewed_by"],
        reviewed_at=row["reviewed_at"],
        resolution_notes=row["resolution_notes"],
        escalation_count=row["escalation_count"],
    )


def _row_to_token(row: asyncpg.Record) -> AlertAckToken:
    """Convert an ``asyncpg.Record`` to an :class:`AlertAckToken`."""
    return AlertAckToken(
        token=row["token"],
        alert_id=row["alert_id"],
        contact_member_id=row["contact_member_id"],
        contact_discord_id=row["contact_discord_id"],
        expires_at=row["expires_at"],
        used_at=row["used_at"],
        used_by=row["used_by"],
        delivered_message_id=row["delivered_message_id"],
        delivered_at=row["delivered_at"],
    )


def statuses_before(status: AlertStatus) -> list[str]:
    """Statuses from which a move to *status* is a forward transition."""
    rank = STATUS_ORDER[status]
    return [s.value for s, r in STATUS_ORDER.items() if r < rank]


class SafetyStore:
    """PostgreSQL backend for alerts and their acknowledgment tokens."""

    def __init__(self, pool: asyncpg.Pool) -> None:  # type: ignore[type-arg]
        self._pool = pool

    async def ensure_schema(self) -> None:
        """Create tables and indexes if absent."""
        try:
            async with self._pool.acquire() as conn:
                await conn.execute(_SCHEMA_SQL)
            log.info("safety_schema_ensured")
        except asyncpg.UniqueViolationError:
            log.info("safety_schema_ensured", note="concurrent creation resolved")

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    async def insert_alert(self, alert: SafetyAlert) -> SafetyAlert:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO safety_alerts
                    (id, team_id, user_id, channel_id, alert_type, severity,
                     trigger_reason, message_content, status)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                RETURNING {_ALERT_COLUMNS}
                """,
                alert.id,
                alert.team_id,
                alert.user_id,
                alert.channel_id,
                alert.alert_type.value,
                alert.severity.value,
                alert.trigger_reason,
                alert.message_content,
                alert.status.value,
            )
        return _row_to_alert(row)

    async def get_alert(self, alert_id: str) -> SafetyAlert | None:
        row = await self._fetchrow(
            f"SELECT {_ALERT_COLUMNS} FROM safety_alerts WHERE id = $1", alert_id
        )
        return _row_to_alert(row) if row else None

    async def list_alerts(
        self, team_id: str, status: AlertStatus | None = None, limit: int = 50
    ) -> list[SafetyAlert]:
        rows = await self._fetch(
            f"""
            SELECT {_ALERT_COLUMNS} FROM safety_alerts
            WHERE team_id = $1 AND ($2::text IS NULL OR status = $2)
            ORDER BY created_at DESC
            LIMIT $3
            """,
            team_id,
            status.value if status else None,
            limit,
        )
        return [_row_to_alert(r) for r in rows]

    async def count_alerts(self, team_id: str, status: AlertStatus) -> int:
        async with self._pool.acquire() as conn:
            count = await conn.fetchval(
                "SELECT count(*)::int FROM safety_alerts WHERE team_id = $1 AND status = $2",
                team_id,
                status.value,
            )
        return int(count or 0)

    async def advance_status(
        self,
        alert_id: str,
        new_status: AlertStatus,
        *,
        reviewed_by: str | None = None,
        resolution_notes: str | None = None,
    ) -> SafetyAlert | None:
        """Move an alert forward to *new_status*.

        Returns the updated alert, or ``None`` if the alert is missing or
        already at or past *new_status*.
        """
        row = await self._fetchrow(
            f"""
            UPDATE safety_alerts
            SET status           = $2,
                reviewed_by      = coalesce($3, reviewed_by),
                reviewed_at      = now(),
                resolution_notes = coalesce($4, resolution_notes)
            WHERE id = $1 AND status = ANY($5::text[])
            RETURNING {_ALERT_COLUMNS}
            """,
            alert_id,
            new_status.value,
            reviewed_by,
            resolution_notes,
            statuses_before(new_status),
        )
        return _row_to_alert(row) if row else None

    async def record_acknowledgment(
        self,
        alert_id: str,
        *,
        method: AckMethod,
        acknowledged_by: str | None,
        acknowledged_at: datetime,
    ) -> None:
        """Stamp the first acknowledgment and move a pending alert to reviewed."""
        async with self._pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE safety_alerts
                SET ack_method      = coalesce(ack_method, $2),
                    acknowledged_at = coalesce(acknowledged_at, $3),
                    acknowledged_by = coalesce(acknowledged_by, $4),
                    status          = CASE WHEN status = 'pending'
                                           THEN 'reviewed' ELSE status END
                WHERE id = $1
                """,
                alert_id,
                method.value,
                acknowledged_at,
                acknowledged_by,
            )

    async def increment_escalation(self, alert_id: str) -> int | None:
        async with self._pool.acquire() as conn:
            value = await conn.fetchval(
                """
                UPDATE safety_alerts SET escalation_count = escalation_count + 1
                WHERE id = $1
                RETURNING escalation_count
                """,
                alert_id,
            )
        return int(value) if value is not None else None

    async def list_unacknowledged(self, created_before: datetime) -> list[SafetyAlert]:
        rows = await self._fetch(
            f"""
            SELECT {_ALERT_COLUMNS} FROM safety_alerts
            WHERE status = 'pending' AND acknowledged_at IS NULL AND created_at < $1
            ORDER BY created_at ASC
            """,
            created_before,
        )
        return [_row_to_alert(r) for r in rows]

    async def get_stats(self, team_id: str) -> AlertStats:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT status, severity, alert_type, count(*)::int AS cnt
                FROM safety_alerts WHERE team_id = $1
                GROUP BY status, severity, alert_type
                """,
                team_id,
            )
        stats = AlertStats()
        for row in rows:
            cnt: int = row["cnt"]
            stats.total += cnt
            stats.by_status[row["status"]] = stats.by_status.get(row["status"], 0) + cnt
            stats.by_severity[row["severity"]] = stats.by_severity.get(row["severity"], 0) + cnt
            stats.by_type[row["alert_type"]] = stats.by_type.get(row["alert_type"], 0) + cnt
        return stats

    # ------------------------------------------------------------------
    # Acknowledgment tokens
    # ------------------------------------------------------------------

    async def insert_token(self, token: AlertAckToken) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO alert_ack_tokens
                    (token, alert_id, contact_member_id, contact_discord_id, expires_at)
                VALUES ($1, $2, $3, $4, $5)
                """,
                token.token,
                token.alert_id,
                token.contact_member_id,
                token.contact_discord_id,
                token.expires_at,
            )

    async def get_token(self, token: str) -> AlertAckToken | None:
        row = await self._fetchrow(
            f"SELECT {_TOKEN_COLUMNS} FROM alert_ack_tokens WHERE token = $1", token
        )
        return _row_to_token(row) if row else None

    async def get_token_by_message(self, message_id: str) -> AlertAckToken | None:
        row = await self._fetchrow(
            f"SELECT {_TOKEN_COLUMNS} FROM alert_ack_tokens WHERE delivered_message_id = $1",
            message_id,
        )
        return _row_to_token(row) if row else None

    async def consume_token(self, token: str, *, used_by: str | None, now: datetime) -> bool:
        """Atomically mark *token* used.

        Returns ``True`` for exactly one caller per token; every other caller
        (already used, or expired) gets ``False``.
        """
        row = await self._fetchrow(
            """
            UPDATE alert_ack_tokens
            SET used_at = $2, used_by = $3
            WHERE token = $1 AND used_at IS NULL AND expires_at > $2
            RETURNING token
            """,
            token,
            now,
            used_by,
        )
        return row is not None

    async def mark_token_delivered(self, token: str, message_id: str | None) -> bool:
        """Record the DM that carried *token*. ``False`` if already recorded."""
        row = await self._fetchrow(
            """
            UPDATE alert_ack_tokens
            SET delivered_at = now(), delivered_message_id = $2
            WHERE token = $1 AND delivered_at IS NULL
            RETURNING token
            """,
            token,
            message_id,
        )
        return row is not None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        async with self._pool.acquire() as conn:
            return await conn.fetch(query, *args)  # type: ignore[no-any-return]

    async def _fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        async with self._pool.acquire() as conn:
            return await conn.fetchrow(query, *args)
