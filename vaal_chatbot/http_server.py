"""HTTP surface for vaal-chatbot (aiohttp.web).

Routes:
    GET  /health           liveness snapshot
    POST /webhook/message  inject a chat message from an external system
    GET  /metrics          Prometheus text exposition of process counters
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from aiohttp import web

from .utils import rfc3339_utc

if TYPE_CHECKING:
    from .main import ChatBotApp


CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


class BotHttpServer:
    """Webhook, health and metrics endpoints."""

    def __init__(
        self,
        app: ChatBotApp,
        host: str = "0.0.0.0",
        port: int = 3001,
        shutdown_timeout: float = 5.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self._app = app
        self.host = host
        self.port = port
        self._shutdown_timeout = shutdown_timeout
        self._logger = logger or logging.getLogger("chatbot.http")
        self._runner: web.AppRunner | None = None

    def build_app(self) -> web.Application:
        web_app = web.Application()
        web_app.router.add_route("*", "/health", self._handle_health)
        web_app.router.add_route("*", "/webhook/message", self._handle_webhook)
        web_app.router.add_route("*", "/metrics", self._handle_metrics)
        return web_app

    async def start(self) -> None:
        self._runner = web.AppRunner(self.build_app(), shutdown_timeout=self._shutdown_timeout)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        self._logger.info("Webhook server listening on %s:%d", self.host, self.port)
        self._logger.info("   Endpoint: http://%s:%d/webhook/message", self.host, self.port)
        self._logger.info("   Health check: http://%s:%d/health", self.host, self.port)

    async def stop(self) -> None:
        """Stop accepting requests; in-flight ones get shutdown_timeout to finish."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            self._logger.info("HTTP server stopped")

    # ══════════════════════════════════════════════════════════
    #  Handlers
    # ══════════════════════════════════════════════════════════

    async def _handle_health(self, request: web.Request) -> web.Response:
        if request.method != "GET":
            return web.Response(status=405)
        return web.json_response(self.health_snapshot())

    def health_snapshot(self) -> dict[str, str]:
        # Coarse: a client handle counts as connected, live or not.
        return {
            "status": "ok",
            "bot": "connected" if self._app.client is not None else "disconnected",
            "channel": self._app.config.twitch.channel,
            "timestamp": rfc3339_utc(),
        }

    async def _handle_webhook(self, request: web.Request) -> web.Response:
        if request.method == "OPTIONS":
            return web.Response(status=200, headers=CORS_HEADERS)
        if request.method != "POST":
            return web.Response(status=405, headers=CORS_HEADERS)

        try:
            body: Any = await request.json()
        except ValueError as e:
            self._logger.warning("Error decoding webhook request: %s", e)
            return self._json_error("Invalid request")
        if not isinstance(body, dict):
            self._logger.warning("Webhook body is not a JSON object")
            return self._json_error("Invalid request")

        message = body.get("message")
        channel = body.get("channel")
        if (message is not None and not isinstance(message, str)) or (
            channel is not None and not isinstance(channel, str)
        ):
            return self._json_error("Invalid request")
        if not message or not message.strip() or not channel or not channel.strip():
            return self._json_error("Missing message or channel")

        client = self._app.client
        if client is None:
            return web.json_response(
                {"error": "Bot not connected"}, status=503, headers=CORS_HEADERS,
            )

        self._logger.info("📨 Received webhook message: %s", message)
        await client.say(channel, message)
        self._app.webhook_messages += 1
        return web.json_response({"ok": True}, headers=CORS_HEADERS)

    async def _handle_metrics(self, request: web.Request) -> web.Response:
        if request.method != "GET":
            return web.Response(status=405)
        body = "\n".join(self.collect_metrics()) + "\n"
        return web.Response(text=body, content_type="text/plain")

    def collect_metrics(self) -> list[str]:
        """Prometheus lines for the process counters."""
        app = self._app
        return [
            f"chatbot_messages_seen_total {app.messages_seen}",
            f"chatbot_commands_processed_total {app.commands_processed}",
            f"chatbot_lookups_failed_total {app.lookups_failed}",
            f"chatbot_webhook_messages_total {app.webhook_messages}",
            f"chatbot_store_configured {1 if app.store is not None else 0}",
            f"chatbot_uptime_seconds {app.uptime_seconds:.1f}",
        ]

    @staticmethod
    def _json_error(error: str, status: int = 400) -> web.Response:
        return web.json_response({"error": error}, status=status, headers=CORS_HEADERS)
