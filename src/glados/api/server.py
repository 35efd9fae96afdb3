"""HTTP server for alert acknowledgment links.

Runs inside the bot process on its own aiohttp runner.
"""

from __future__ import annotations

from aiohttp import web

from glados.api.routes.ack import handle_acknowledge
from glados.api.routes.health import handle_health
from glados.logging import get_logger
from glados.safety.escalation import SafetyEscalation

log = get_logger("glados.api.server")


class AckServer:
    """Serves ``/ypp/alert/{token}`` and a health check."""

    def __init__(
        self,
        escalation: SafetyEscalation,
        *,
        host: str = "0.0.0.0",  # nosec B104 - Intentional for Docker container
        port: int = 8080,
    ) -> None:
        self._escalation = escalation
        self._host = host
        self._port = port
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None

        log.info("ack_server_initialized", host=host, port=port)

    def create_app(self) -> web.Application:
        """Create and configure the aiohttp application."""
        app = web.Application()
        app["escalation"] = self._escalation

        app.router.add_get("/api/v1/health", handle_health)
        app.router.add_get("/ypp/alert/{token}", handle_acknowledge)

        self._app = app
        return app

    async def start(self) -> None:
        """Start the server."""
        if self._app is None:
            self.create_app()

        if self._app is None:  # pragma: no cover
            raise RuntimeError("create_app() must be called first")

        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        site = web.TCPSite(self._runner, self._host, self._port)
        await site.start()

        log.info("ack_server_started", host=self._host, port=self._port)

    async def stop(self) -> None:
        """Stop the server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            log.info("ack_server_stopped")
