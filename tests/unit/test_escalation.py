"""Tests for safety escalation and alert acknowledgment."""

from __future__ import annotations

import asyncio
from datetime import UTC, date, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from glados.queue.models import QueuePriority, QueueTaskType
from glados.roles import PermissionDeniedError
from glados.safety.escalation import SafetyEscalation, mint_ack_token
from glados.safety.models import (
    STATUS_ORDER,
    AckErrorKind,
    AckMethod,
    AcknowledgmentError,
    AlertAckToken,
    AlertSeverity,
    AlertStatus,
    InvalidStatusTransitionError,
    SafetyAlert,
)
from glados.teamdata.models import Member

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeSafetyStore:
    """In-memory stand-in for :class:`SafetyStore` with the same conditional writes."""

    def __init__(self) -> None:
        self.alerts: dict[str, SafetyAlert] = {}
        self.tokens: dict[str, AlertAckToken] = {}

    async def insert_alert(self, alert: SafetyAlert) -> SafetyAlert:
        alert.created_at = alert.created_at or datetime.now(UTC)
        self.alerts[alert.id] = alert
        return alert

    async def get_alert(self, alert_id: str) -> SafetyAlert | None:
        return self.alerts.get(alert_id)

    async def list_alerts(
        self, team_id: str, status: AlertStatus | None = None, limit: int = 50
    ) -> list[SafetyAlert]:
        alerts = [
            a
            for a in self.alerts.values()
            if a.team_id == team_id and (status is None or a.status == status)
        ]
        return alerts[:limit]

    async def count_alerts(self, team_id: str, status: AlertStatus) -> int:
        return len(await self.list_alerts(team_id, status))

    async def advance_status(
        self,
        alert_id: str,
        new_status: AlertStatus,
        *,
        reviewed_by: str | None = None,
        resolution_notes: str | None = None,
    ) -> SafetyAlert | None:
        alert = self.alerts.get(alert_id)
        if alert is None or STATUS_ORDER[alert.status] >= STATUS_ORDER[new_status]:
            return None
        alert.status = new_status
        alert.reviewed_by = reviewed_by or alert.reviewed_by
        alert.reviewed_at = datetime.now(UTC)
        alert.resolution_notes = resolution_notes or alert.resolution_notes
        return alert

    async def record_acknowledgment(
        self,
        alert_id: str,
        *,
        method: AckMethod,
        acknowledged_by: str | None,
        acknowledged_at: datetime,
    ) -> None:
        alert = self.alerts[alert_id]
        if alert.acknowledged_at is None:
            alert.ack_method = method
            alert.acknowledged_at = acknowledged_at
            alert.acknowledged_by = acknowledged_by
        if alert.status == AlertStatus.PENDING:
            alert.status = AlertStatus.REVIEWED

    async def increment_escalation(self, alert_id: str) -> int | None:
        alert = self.alerts.get(alert_id)
        if alert is None:
            return None
        alert.escalation_count += 1
        return alert.escalation_count

    async def list_unacknowledged(self, created_before: datetime) -> list[SafetyAlert]:
        return [
            a
            for a in self.alerts.values()
            if a.status == AlertStatus.PENDING
            and a.acknowledged_at is None
            and a.created_at is not None
            and a.created_at < created_before
        ]

    async def insert_token(self, token: AlertAckToken) -> None:
        self.tokens[token.token] = token

    async def get_token(self, token: str) -> AlertAckToken | None:
        return self.tokens.get(token)

    async def get_token_by_message(self, message_id: str) -> AlertAckToken | None:
        return next(
            (t for t in self.tokens.values() if t.delivered_message_id == message_id), None
        )

    async def consume_token(self, token: str, *, used_by: str | None, now: datetime) -> bool:
        record = self.tokens.get(token)
        if record is None or record.used_at is not None or record.expires_at <= now:
            return False
        record.used_at = now
        record.used_by = used_by
        return True


@pytest.fixture
def store() -> FakeSafetyStore:
    return FakeSafetyStore()


@pytest.fixture
def queue() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def escalation(store: FakeSafetyStore, mock_team_data: AsyncMock, queue: AsyncMock):
    return SafetyEscalation(
        store, mock_team_data, queue, token_ttl_days=7  # type: ignore[arg-type]
    )


async def _create(escalation: SafetyEscalation, severity: AlertSeverity = AlertSeverity.HIGH):
    return await escalation.create_alert(
        team_id="team-1",
        user_id="u-1",
        channel_id="c-1",
        severity=severity,
        reason="Pre-screen flagged message (self_harm)",
        content="verbatim message",
    )


def _only_token(store: FakeSafetyStore) -> AlertAckToken:
    assert len(store.tokens) == 1
    return next(iter(store.tokens.values()))


# ===========================================================================
# Alert creation
# ===========================================================================


class TestCreateAlert:
    @pytest.mark.asyncio
    async def test_persists_alert_and_schedules_dm(
        self, escalation: SafetyEscalation, store: FakeSafetyStore, queue: AsyncMock
    ) -> None:
        created = await _create(escalation)

        alert = store.alerts[created.alert_id]
        assert alert.status is AlertStatus.PENDING
        assert alert.severity is AlertSeverity.HIGH
        assert alert.message_content == "verbatim message"
        assert created.notified_count == 1

        token = _only_token(store)
        assert token.alert_id == created.alert_id
        assert token.contact_discord_id == "5551"
        assert token.expires_at - datetime.now(UTC) > timedelta(days=6)

        task = queue.enqueue.await_args.args[0]
        assert task.task_type is QueueTaskType.SAFETY_ALERT_DM
        assert task.priority == QueuePriority.NEAR_INTERACTIVE
        assert task.payload["token"] == token.token
        assert task.payload["team_number"] == "12345"
        assert task.payload["contact_name"] == "Dana Mentor"
        assert "verbatim message" not in str(task.payload)

    @pytest.mark.asyncio
    async def test_no_contacts_still_persists(
        self,
        escalation: SafetyEscalation,
        store: FakeSafetyStore,
        mock_team_data: AsyncMock,
        queue: AsyncMock,
    ) -> None:
        mock_team_data.list_ypp_contacts.return_value = []

        created = await _create(escalation)

        assert created.notified_count == 0
        assert created.alert_id in store.alerts
        assert store.tokens == {}
        queue.enqueue.assert_not_called()

    @pytest.mark.asyncio
    async def test_ineligible_and_unreachable_contacts_skipped(
        self,
        escalation: SafetyEscalation,
        store: FakeSafetyStore,
        mock_team_data: AsyncMock,
        mentor: Member,
    ) -> None:
        today = date.today()
        mock_team_data.list_ypp_contacts.return_value = [
            mentor,
            Member(id="s", name="Student", role="student", discord_user_id="1"),
            Member(
                id="y",
                name="Young Mentor",
                role="mentor",
                discord_user_id="2",
                birthdate=date(today.year - 16, 1, 1),
            ),
            Member(id="n", name="No Discord", role="lead_mentor"),
        ]

        created = await _create(escalation)

        assert created.notified_count == 1
        assert _only_token(store).contact_member_id == mentor.id

    @pytest.mark.asyncio
    async def test_queue_failure_does_not_fail_creation(
        self, escalation: SafetyEscalation, store: FakeSafetyStore, queue: AsyncMock
    ) -> None:
        queue.enqueue.side_effect = RuntimeError("queue down")

        created = await _create(escalation)

        assert created.notified_count == 0
        assert created.alert_id in store.alerts

    @pytest.mark.asyncio
    async def test_team_lookup_failure_does_not_fail_creation(
        self, escalation: SafetyEscalation, mock_team_data: AsyncMock
    ) -> None:
        mock_team_data.get_team.side_effect = RuntimeError("db down")
        created = await _create(escalation)
        assert created.notified_count == 0

    @pytest.mark.asyncio
    async def test_insert_failure_propagates(self, mock_team_data: AsyncMock) -> None:
        store = AsyncMock()
        store.insert_alert.side_effect = RuntimeError("db down")
        escalation = SafetyEscalation(store, mock_team_data, AsyncMock())
        with pytest.raises(RuntimeError):
            await _create(escalation)

    def test_minted_tokens_are_unique(self) -> None:
        first = mint_ack_token("a-1")
        second = mint_ack_token("a-1")
        assert first != second
        assert first.startswith("alert-a-1-")


# ===========================================================================
# Acknowledgment
# ===========================================================================


class TestAcknowledge:
    @pytest.mark.asyncio
    async def test_link_acknowledgment(
        self, escalation: SafetyEscalation, store: FakeSafetyStore
    ) -> None:
        created = await _create(escalation)
        token = _only_token(store)

        result = await escalation.acknowledge(token.token)

        assert result.alert_id == created.alert_id
        assert result.team_id == "team-1"
        alert = store.alerts[created.alert_id]
        assert alert.ack_method is AckMethod.LINK
        assert alert.acknowledged_by == "m-1"
        assert alert.status is AlertStatus.REVIEWED
        assert token.used_at is not None

    @pytest.mark.asyncio
    async def test_token_is_single_use(
        self, escalation: SafetyEscalation, store: FakeSafetyStore
    ) -> None:
        await _create(escalation)
        token = _only_token(store)
        await escalation.acknowledge(token.token)

        with pytest.raises(AcknowledgmentError) as exc_info:
            await escalation.acknowledge(token.token, method=AckMethod.EMOJI)
        assert exc_info.value.kind is AckErrorKind.ALREADY_USED

    @pytest.mark.asyncio
    async def test_concurrent_acknowledgments_have_one_winner(
        self, escalation: SafetyEscalation, store: FakeSafetyStore
    ) -> None:
        await _create(escalation)
        token = _only_token(store)

        results = await asyncio.gather(
            escalation.acknowledge(token.token, method=AckMethod.LINK),
            escalation.acknowledge(token.token, method=AckMethod.EMOJI),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, AcknowledgmentError)]
        assert len(errors) == 1
        assert errors[0].kind is AckErrorKind.ALREADY_USED

    @pytest.mark.asyncio
    async def test_unknown_token(self, escalation: SafetyEscalation) -> None:
        with pytest.raises(AcknowledgmentError) as exc_info:
            await escalation.acknowledge("alert-nope")
        assert exc_info.value.kind is AckErrorKind.INVALID_TOKEN

    @pytest.mark.asyncio
    async def test_expired_token(
        self, escalation: SafetyEscalation, store: FakeSafetyStore
    ) -> None:
        created = await _create(escalation)
        token = _only_token(store)
        token.expires_at = datetime.now(UTC) - timedelta(seconds=1)

        with pytest.raises(AcknowledgmentError) as exc_info:
            await escalation.acknowledge(token.token)

        assert exc_info.value.kind is AckErrorKind.EXPIRED_TOKEN
        assert store.alerts[created.alert_id].acknowledged_at is None

    @pytest.mark.asyncio
    async def test_expiry_checked_before_use(
        self, escalation: SafetyEscalation, store: FakeSafetyStore
    ) -> None:
        await _create(escalation)
        token = _only_token(store)
        await escalation.acknowledge(token.token)
        token.expires_at = datetime.now(UTC) - timedelta(seconds=1)

        with pytest.raises(AcknowledgmentError) as exc_info:
            await escalation.acknowledge(token.token)
        assert exc_info.value.kind is AckErrorKind.EXPIRED_TOKEN

    @pytest.mark.asyncio
    async def test_missing_alert(
        self, escalation: SafetyEscalation, store: FakeSafetyStore
    ) -> None:
        created = await _create(escalation)
        token = _only_token(store)
        del store.alerts[created.alert_id]

        with pytest.raises(AcknowledgmentError) as exc_info:
            await escalation.acknowledge(token.token)
        assert exc_info.value.kind is AckErrorKind.ALERT_NOT_FOUND

    @pytest.mark.asyncio
    async def test_first_acknowledgment_is_kept(
        self, escalation: SafetyEscalation, store: FakeSafetyStore, mock_team_data: AsyncMock
    ) -> None:
        second_mentor = Member(id="m-2", name="Lee", role="mentor", discord_user_id="5552")
        mock_team_data.list_ypp_contacts.return_value = [
            *mock_team_data.list_ypp_contacts.return_value,
            second_mentor,
        ]
        created = await _create(escalation)
        first, second = store.tokens.values()

        await escalation.acknowledge(first.token, method=AckMethod.EMOJI)
        await escalation.acknowledge(second.token, method=AckMethod.LINK)

        alert = store.alerts[created.alert_id]
        assert alert.ack_method is AckMethod.EMOJI
        assert alert.acknowledged_by == first.contact_member_id

    @pytest.mark.asyncio
    async def test_acknowledge_delivery(
        self, escalation: SafetyEscalation, store: FakeSafetyStore
    ) -> None:
        created = await _create(escalation)
        token = _only_token(store)
        token.delivered_message_id = "dm-1"

        assert (
            await escalation.acknowledge_delivery("other", method=AckMethod.EMOJI) is None
        )
        result = await escalation.acknowledge_delivery(
            "dm-1", method=AckMethod.REPLY, acknowledged_by="5551"
        )

        assert result is not None
        assert result.alert_id == created.alert_id
        assert store.alerts[created.alert_id].ack_method is AckMethod.REPLY
        assert store.alerts[created.alert_id].acknowledged_by == "5551"


# ===========================================================================
# Review surfaces
# ===========================================================================


class TestReview:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("role", [None, "student", "parent"])
    async def test_non_mentors_refused(self, escalation: SafetyEscalation, role: str) -> None:
        with pytest.raises(PermissionDeniedError):
            await escalation.list_alerts("team-1", viewer_role=role)
        with pytest.raises(PermissionDeniedError):
            await escalation.pending_count("team-1", viewer_role=role)

    @pytest.mark.asyncio
    async def test_mentor_sees_pending(self, escalation: SafetyEscalation) -> None:
        await _create(escalation)
        assert await escalation.pending_count("team-1", viewer_role="mentor") == 1
        alerts = await escalation.list_alerts("team-1", viewer_role="lead_mentor")
        assert len(alerts) == 1

    @pytest.mark.asyncio
    async def test_status_only_moves_forward(
        self, escalation: SafetyEscalation, store: FakeSafetyStore
    ) -> None:
        created = await _create(escalation)

        reviewed = await escalation.mark_reviewed(
            created.alert_id, reviewer_id="m-1", viewer_role="mentor"
        )
        assert reviewed.status is AlertStatus.REVIEWED

        resolved = await escalation.resolve(
            created.alert_id, reviewer_id="m-1", viewer_role="mentor", notes="talked to family"
        )
        assert resolved.status is AlertStatus.RESOLVED
        assert resolved.resolution_notes == "talked to family"

        with pytest.raises(InvalidStatusTransitionError):
            await escalation.mark_reviewed(
                created.alert_id, reviewer_id="m-1", viewer_role="mentor"
            )
        assert store.alerts[created.alert_id].status is AlertStatus.RESOLVED

    @pytest.mark.asyncio
    async def test_review_of_missing_alert(self, escalation: SafetyEscalation) -> None:
        with pytest.raises(AcknowledgmentError) as exc_info:
            await escalation.mark_reviewed("nope", reviewer_id="m-1", viewer_role="mentor")
        assert exc_info.value.kind is AckErrorKind.ALERT_NOT_FOUND


# ===========================================================================
# Re-escalation
# ===========================================================================


class TestEscalateUnacknowledged:
    @pytest.mark.asyncio
    async def test_counts_stale_pending_alerts(
        self, escalation: SafetyEscalation, store: FakeSafetyStore
    ) -> None:
        old = await _create(escalation)
        store.alerts[old.alert_id].created_at = datetime.now(UTC) - timedelta(hours=2)
        await _create(escalation)

        count = await escalation.escalate_unacknowledged(timedelta(hours=1))

        assert count == 1
        assert store.alerts[old.alert_id].escalation_count == 1

    @pytest.mark.asyncio
    async def test_acknowledged_alerts_are_not_escalated(
        self, escalation: SafetyEscalation, store: FakeSafetyStore
    ) -> None:
        created = await _create(escalation)
        store.alerts[created.alert_id].created_at = datetime.now(UTC) - timedelta(hours=2)
        await escalation.acknowledge(_only_token(store).token)

        assert await escalation.escalate_unacknowledged(timedelta(hours=1)) == 0

    @pytest.mark.asyncio
    async def test_escalate_missing_alert(self, escalation: SafetyEscalation) -> None:
        assert await escalation.escalate("nope") is None
