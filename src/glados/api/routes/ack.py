"""Alert acknowledgment link endpoint.

The link in an alert DM is itself the credential: the token is single-use
and time-boxed, so the endpoint needs no other authentication.
"""

from __future__ import annotations

from aiohttp import web

from glados.logging import get_logger
from glados.safety.escalation import SafetyEscalation
from glados.safety.models import AckErrorKind, AckMethod, AcknowledgmentError

log = get_logger("glados.api.routes.ack")

_ERROR_RESPONSES: dict[AckErrorKind, tuple[int, str]] = {
    AckErrorKind.INVALID_TOKEN: (404, "This acknowledgment link is not valid."),
    AckErrorKind.EXPIRED_TOKEN: (410, "This acknowledgment link has expired."),
    AckErrorKind.ALREADY_USED: (409, "This alert was already acknowledged with this link."),
    AckErrorKind.ALERT_NOT_FOUND: (404, "The alert for this link no longer exists."),
}


async def handle_acknowledge(request: web.Request) -> web.Response:
    """GET /ypp/alert/{token}: acknowledge the alert the token belongs to."""
    escalation: SafetyEscalation = request.app["escalation"]
    token = request.match_info["token"]

    try:
        result = await escalation.acknowledge(token, method=AckMethod.LINK)
    except AcknowledgmentError as e:
        status, message = _ERROR_RESPONSES[e.kind]
        log.info("ack_link_refused", kind=e.kind.value)
        return web.json_response({"error": e.kind.value, "message": message}, status=status)

    return web.json_response(
        {
            "acknowledged": True,
            "team_id": result.team_id,
            "alert_id": result.alert_id,
        },
        status=200,
    )
