"""Alert DM formatting and delivery to YPP contacts.

Delivery runs on a queue worker, never on the chat request path. A task may
be delivered more than once; the token row records the DM that carried it,
and a token that already has a delivery is skipped.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from glados.constants import ACK_REACTION_EMOJI
from glados.logging import get_logger
from glados.safety.models import AlertSeverity
from glados.safety.storage import SafetyStore
from glados.transport import ChatTransport

log = get_logger("glados.safety.notifications")

_SEVERITY_EMOJI: dict[AlertSeverity, str] = {
    AlertSeverity.HIGH: "\U0001f6a8",
    AlertSeverity.MEDIUM: "⚠️",
    AlertSeverity.LOW: "\U0001f4cb",
}


class AlertDeliveryError(Exception):
    """A transient delivery failure; the queue will retry the task."""


@dataclass(frozen=True)
class AlertDM:
    """Payload of a ``safety_alert_dm`` task."""

    alert_id: str
    token: str
    team_number: str
    contact_name: str
    contact_discord_id: str
    severity: AlertSeverity
    reason: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "token": self.token,
            "team_number": self.team_number,
            "contact_name": self.contact_name,
            "contact_discord_id": self.contact_discord_id,
            "severity": self.severity.value,
            "reason": self.reason,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> AlertDM:
        return cls(
            alert_id=payload["alert_id"],
            token=payload["token"],
            team_number=payload.get("team_number", ""),
            contact_name=payload.get("contact_name") or "Mentor",
            contact_discord_id=payload["contact_discord_id"],
            severity=AlertSeverity(payload.get("severity", AlertSeverity.MEDIUM)),
            reason=payload.get("reason", ""),
        )


def ack_link(site_url: str, token: str) -> str:
    return f"{site_url.rstrip('/')}/ypp/alert/{token}"


def format_alert_dm(dm: AlertDM, site_url: str) -> str:
    """Render the private DM sent to one YPP contact.

    The DM never repeats the flagged message itself; reviewers read it on
    the dashboard.
    """
    emoji = _SEVERITY_EMOJI.get(dm.severity, _SEVERITY_EMOJI[AlertSeverity.LOW])
    return (
        f"{emoji} **YPP Alert - Team {dm.team_number}**\n\n"
        f"Hi {dm.contact_name}, GLaDOS has flagged a conversation that may need "
        f"your attention.\n\n"
        f"**Severity:** {dm.severity.value.upper()}\n"
        f"**Reason:** {dm.reason}\n\n"
        f"**How to acknowledge:**\n"
        f"- React with {ACK_REACTION_EMOJI} to this message\n"
        f"- Reply to this DM\n"
        f"- Or visit: {ack_link(site_url, dm.token)}"
    )


class AlertNotifier:
    """Deliver ``safety_alert_dm`` tasks over the chat transport."""

    def __init__(self, store: SafetyStore, transport: ChatTransport, *, site_url: str) -> None:
        self._store = store
        self._transport = transport
        self._site_url = site_url

    async def deliver(self, dm: AlertDM) -> bool:
        """Send the DM for *dm* unless it was already delivered.

        Returns:
            ``True`` if a DM was sent, ``False`` if it was skipped.

        Raises:
            AlertDeliveryError: If the transport refused the send.
        """
        token = await self._store.get_token(dm.token)
        if token is None:
            log.warning("alert_dm_token_missing", alert_id=dm.alert_id)
            return False
        if token.delivered_at is not None:
            log.info("alert_dm_already_delivered", alert_id=dm.alert_id)
            return False
        if token.used_at is not None:
            log.info("alert_dm_skipped_acknowledged", alert_id=dm.alert_id)
            return False

        result = await self._transport.send_direct_message(
            dm.contact_discord_id, format_alert_dm(dm, self._site_url)
        )
        if not result.success:
            log.warning(
                "alert_dm_failed",
                alert_id=dm.alert_id,
                contact_discord_id=dm.contact_discord_id,
                error=result.error,
            )
            raise AlertDeliveryError(result.error or "send failed")

        await self._store.mark_token_delivered(dm.token, result.message_id)
        log.info(
            "alert_dm_sent",
            alert_id=dm.alert_id,
            contact_discord_id=dm.contact_discord_id,
            severity=dm.severity.value,
        )
        return True
