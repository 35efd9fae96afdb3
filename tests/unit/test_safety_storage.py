"""Tests for the PostgreSQL safety store."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from glados.safety.models import (
    AckMethod,
    AlertSeverity,
    AlertStatus,
    AlertType,
    SafetyAlert,
)
from glados.safety.storage import SafetyStore, _row_to_alert, statuses_before

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_pool() -> tuple[MagicMock, AsyncMock]:
    """Build a mock asyncpg.Pool and return ``(pool, conn)``.

    ``pool.acquire()`` returns a sync context manager (matching asyncpg behaviour).
    """
    pool = MagicMock()
    conn = AsyncMock()

    ctx = AsyncMock()
    ctx.__aenter__ = AsyncMock(return_value=conn)
    ctx.__aexit__ = AsyncMock(return_value=False)
    pool.acquire.return_value = ctx

    conn.fetch.return_value = []
    conn.fetchrow.return_value = None
    conn.execute.return_value = "UPDATE 0"
    return pool, conn


def _alert_row(**overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": "a-1",
        "team_id": "team-1",
        "user_id": "u-1",
        "channel_id": "c-1",
        "alert_type": "escalation",
        "severity": "high",
        "trigger_reason": "self_harm",
        "message_content": "verbatim",
        "status": "pending",
        "created_at": datetime.now(UTC),
        "ack_method": None,
        "acknowledged_at": None,
        "acknowledged_by": None,
        "reviewed_by": None,
        "reviewed_at": None,
        "resolution_notes": None,
        "escalation_count": 0,
    }
    row.update(overrides)
    return row


class TestStatusesBefore:
    def test_forward_sources(self) -> None:
        assert statuses_before(AlertStatus.PENDING) == []
        assert statuses_before(AlertStatus.REVIEWED) == ["pending"]
        assert statuses_before(AlertStatus.RESOLVED) == ["pending", "reviewed"]


class TestRowConversion:
    def test_row_to_alert(self) -> None:
        row = _alert_row(ack_method="emoji", status="reviewed")
        alert = _row_to_alert(row)  # type: ignore[arg-type]
        assert alert.alert_type is AlertType.ESCALATION
        assert alert.severity is AlertSeverity.HIGH
        assert alert.status is AlertStatus.REVIEWED
        assert alert.ack_method is AckMethod.EMOJI

    def test_to_dict_round_trips_enums_as_values(self) -> None:
        data = _row_to_alert(_alert_row()).to_dict()  # type: ignore[arg-type]
        assert data["severity"] == "high"
        assert data["ack_method"] is None
        assert isinstance(data["created_at"], str)


class TestSafetyStore:
    @pytest.mark.asyncio
    async def test_ensure_schema(self) -> None:
        pool, conn = _make_pool()
        await SafetyStore(pool).ensure_schema()
        sql = conn.execute.await_args.args[0]
        assert "CREATE TABLE IF NOT EXISTS safety_alerts" in sql
        assert "CREATE TABLE IF NOT EXISTS alert_ack_tokens" in sql

    @pytest.mark.asyncio
    async def test_insert_alert(self) -> None:
        pool, conn = _make_pool()
        conn.fetchrow.return_value = _alert_row()
        alert = SafetyAlert(
            id="a-1",
            team_id="team-1",
            user_id="u-1",
            channel_id="c-1",
            alert_type=AlertType.ESCALATION,
            severity=AlertSeverity.HIGH,
            trigger_reason="self_harm",
            message_content="verbatim",
        )

        stored = await SafetyStore(pool).insert_alert(alert)

        args = conn.fetchrow.await_args.args
        assert "INSERT INTO safety_alerts" in args[0]
        assert args[1:] == (
            "a-1",
            "team-1",
            "u-1",
            "c-1",
            "escalation",
            "high",
            "self_harm",
            "verbatim",
            "pending",
        )
        assert stored.created_at is not None

    @pytest.mark.asyncio
    async def test_consume_token_is_conditional(self) -> None:
        pool, conn = _make_pool()
        now = datetime.now(UTC)
        store = SafetyStore(pool)

        conn.fetchrow.return_value = {"token": "t"}
        assert await store.consume_token("t", used_by="m-1", now=now) is True

        sql = conn.fetchrow.await_args.args[0]
        assert "used_at IS NULL" in sql
        assert "expires_at > $2" in sql

        conn.fetchrow.return_value = None
        assert await store.consume_token("t", used_by="m-1", now=now) is False

    @pytest.mark.asyncio
    async def test_advance_status_only_from_earlier_statuses(self) -> None:
        pool, conn = _make_pool()
        conn.fetchrow.return_value = None

        result = await SafetyStore(pool).advance_status(
            "a-1", AlertStatus.RESOLVED, reviewed_by="m-1"
        )

        assert result is None
        args = conn.fetchrow.await_args.args
        assert "status = ANY($5::text[])" in args[0]
        assert args[-1] == ["pending", "reviewed"]

    @pytest.mark.asyncio
    async def test_record_acknowledgment_keeps_first(self) -> None:
        pool, conn = _make_pool()
        now = datetime.now(UTC)

        await SafetyStore(pool).record_acknowledgment(
            "a-1", method=AckMethod.LINK, acknowledged_by="m-1", acknowledged_at=now
        )

        sql = conn.execute.await_args.args[0]
        assert "coalesce(acknowledged_at, $3)" in sql
        assert "WHEN status = 'pending'" in sql

    @pytest.mark.asyncio
    async def test_mark_token_delivered_once(self) -> None:
        pool, conn = _make_pool()
        conn.fetchrow.return_value = None
        assert await SafetyStore(pool).mark_token_delivered("t", "msg-1") is False
        assert "delivered_at IS NULL" in conn.fetchrow.await_args.args[0]

    @pytest.mark.asyncio
    async def test_list_unacknowledged(self) -> None:
        pool, conn = _make_pool()
        conn.fetch.return_value = [_alert_row()]
        cutoff = datetime.now(UTC) - timedelta(hours=1)

        alerts = await SafetyStore(pool).list_unacknowledged(cutoff)

        assert [a.id for a in alerts] == ["a-1"]
        assert conn.fetch.await_args.args[1] == cutoff

    @pytest.mark.asyncio
    async def test_get_stats_aggregates(self) -> None:
        pool, conn = _make_pool()
        conn.fetch.return_value = [
            {"status": "pending", "severity": "high", "alert_type": "escalation", "cnt": 2},
            {"status": "resolved", "severity": "high", "alert_type": "escalation", "cnt": 1},
        ]

        stats = await SafetyStore(pool).get_stats("team-1")

        assert stats.total == 3
        assert stats.by_status == {"pending": 2, "resolved": 1}
        assert stats.by_severity == {"high": 3}

    @pytest.mark.asyncio
    async def test_increment_escalation_missing(self) -> None:
        pool, conn = _make_pool()
        conn.fetchval.return_value = None
        assert await SafetyStore(pool).increment_escalation("nope") is None
