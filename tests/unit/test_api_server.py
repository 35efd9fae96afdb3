"""Unit tests for the acknowledgment HTTP server and its routes."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer

from glados import __version__
from glados.api.server import AckServer
from glados.safety.models import AckErrorKind, AckMethod, AckResult, AcknowledgmentError


@pytest_asyncio.fixture()
async def ack_client():
    """aiohttp TestClient over the real app with a mocked escalation service."""
    escalation = AsyncMock()
    escalation.acknowledge.return_value = AckResult(team_id="team-1", alert_id="alert-7")

    app = AckServer(escalation).create_app()
    async with TestClient(TestServer(app)) as client:
        yield client, escalation


class TestAckServerCreateApp:
    def test_routes_registered(self) -> None:
        app = AckServer(AsyncMock()).create_app()
        paths = {
            route.resource.canonical
            for route in app.router.routes()
            if route.resource is not None
        }
        assert "/api/v1/health" in paths
        assert "/ypp/alert/{token}" in paths

    def test_escalation_stored_on_app(self) -> None:
        escalation = AsyncMock()
        app = AckServer(escalation).create_app()
        assert app["escalation"] is escalation


class TestHealthRoute:
    @pytest.mark.asyncio
    async def test_health(self, ack_client) -> None:
        client, _ = ack_client
        resp = await client.get("/api/v1/health")
        assert resp.status == 200
        assert await resp.json() == {"status": "healthy", "version": __version__}


class TestAckRoute:
    @pytest.mark.asyncio
    async def test_ack_success(self, ack_client) -> None:
        client, escalation = ack_client

        resp = await client.get("/ypp/alert/alert-7-1700000000000-abc123")

        assert resp.status == 200
        assert await resp.json() == {
            "acknowledged": True,
            "team_id": "team-1",
            "alert_id": "alert-7",
        }
        escalation.acknowledge.assert_awaited_once_with(
            "alert-7-1700000000000-abc123", method=AckMethod.LINK
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("kind", "status"),
        [
            (AckErrorKind.INVALID_TOKEN, 404),
            (AckErrorKind.EXPIRED_TOKEN, 410),
            (AckErrorKind.ALREADY_USED, 409),
            (AckErrorKind.ALERT_NOT_FOUND, 404),
        ],
    )
    async def test_refusals_map_to_status(self, ack_client, kind, status) -> None:
        client, escalation = ack_client
        escalation.acknowledge.side_effect = AcknowledgmentError(kind)

        resp = await client.get("/ypp/alert/some-token")

        assert resp.status == status
        body = await resp.json()
        assert body["error"] == kind.value
        assert body["message"]

    @pytest.mark.asyncio
    async def test_refusal_body_does_not_leak_alert_ids(self, ack_client) -> None:
        client, escalation = ack_client
        escalation.acknowledge.side_effect = AcknowledgmentError(AckErrorKind.INVALID_TOKEN)

        resp = await client.get("/ypp/alert/forged")

        body = await resp.json()
        assert "alert_id" not in body
        assert "team_id" not in body


class TestAckServerLifecycle:
    @pytest.mark.asyncio
    async def test_start_creates_runner_and_site(self) -> None:
        runner = AsyncMock()
        site = AsyncMock()

        with (
            patch("glados.api.server.web.AppRunner", return_value=runner) as mock_runner_cls,
            patch("glados.api.server.web.TCPSite", return_value=site) as mock_site_cls,
        ):
            server = AckServer(AsyncMock(), host="127.0.0.1", port=9090)
            await server.start()

        mock_runner_cls.assert_called_once()
        runner.setup.assert_awaited_once()
        mock_site_cls.assert_called_once_with(runner, "127.0.0.1", 9090)
        site.start.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stop_cleans_runner(self) -> None:
        runner = AsyncMock()
        server = AckServer(AsyncMock())
        server._runner = runner

        await server.stop()

        runner.cleanup.assert_awaited_once()
        assert server._runner is None

    @pytest.mark.asyncio
    async def test_stop_is_noop_when_not_started(self) -> None:
        server = AckServer(AsyncMock())
        await server.stop()
        assert server._runner is None
