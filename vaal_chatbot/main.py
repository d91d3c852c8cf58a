"""Service orchestrator: ChatBotApp.

Startup sequence: store client → lookup service → chat client and
handlers → HTTP server → chat read loop. Shutdown runs in reverse.
"""

from __future__ import annotations

import asyncio
import logging
import time

from . import __version__
from .commands import ChatCommandHandler, ParsedCommand
from .config import BotConfig
from .http_server import BotHttpServer
from .lookup import LookupService
from .store_client import SupabaseClient
from .twitch_client import ChatMessage, TwitchChatClient


class ChatBotApp:
    """Top-level application orchestrator."""

    def __init__(self, config: BotConfig) -> None:
        self.config = config
        self.logger = logging.getLogger("chatbot")

        # Components (initialized in start())
        self.store: SupabaseClient | None = None
        self.lookup: LookupService | None = None
        self.client: TwitchChatClient | None = None
        self.command_handler: ChatCommandHandler | None = None
        self.http_server: BotHttpServer | None = None

        # State
        self._running = False
        self._started = False
        self._stop_task: asyncio.Task | None = None
        self._start_time: float | None = None

        # Counters (for metrics)
        self.messages_seen: int = 0
        self.commands_processed: int = 0
        self.webhook_messages: int = 0

    @property
    def lookups_failed(self) -> int:
        return self.lookup.failures if self.lookup else 0

    @property
    def uptime_seconds(self) -> float:
        if self._start_time is None:
            return 0.0
        return time.time() - self._start_time

    def _count_command(self, command: ParsedCommand) -> None:
        self.commands_processed += 1

    async def start(self) -> None:
        """Start the bot and block on the chat read loop."""
        self.logger.info("🤖 Twitch Bot Service starting (v%s)...", __version__)
        self.logger.info("   Channel: %s", self.config.twitch.channel)
        self.logger.info("   Username: %s", self.config.twitch.username)
        self._start_time = time.time()
        self._started = True

        # 1. Remote store (optional)
        if self.config.supabase.enabled:
            self.store = SupabaseClient(self.config.supabase, logging.getLogger("chatbot.store"))
            await self.store.start()
            self.logger.info("✅ Supabase client initialized")
        else:
            self.logger.warning(
                "⚠️  Supabase credentials not found - chat commands requiring Supabase will be disabled"
            )
        self.lookup = LookupService(
            self.store,
            users_table=self.config.supabase.users_table,
            logger=logging.getLogger("chatbot.lookup"),
        )

        # 2. Chat client and handlers (registered before connect)
        self.client = TwitchChatClient(self.config.twitch, logging.getLogger("chatbot.twitch"))
        self.command_handler = ChatCommandHandler(
            client=self.client,
            lookup=self.lookup,
            bot_username=self.config.twitch.username,
            ignored_users=self.config.ignored_users,
            logger=logging.getLogger("chatbot.commands"),
            on_command=self._count_command,
        )

        @self.client.on("message")
        async def handle_message(message: ChatMessage) -> None:
            try:
                self.messages_seen += 1
                await self.command_handler.handle_message(message)
            except Exception:
                self.logger.exception("message handler error for %s", message.username)

        @self.client.on("connected")
        async def handle_connected() -> None:
            self.logger.info("✅ Bot connected to Twitch chat: %s", self.config.twitch.channel)

        @self.client.on("disconnected")
        async def handle_disconnected() -> None:
            self.logger.warning("❌ Bot disconnected from Twitch")

        # 3. HTTP server
        self.http_server = BotHttpServer(
            self,
            host=self.config.http.host,
            port=self.config.http.port,
            shutdown_timeout=self.config.http.shutdown_timeout,
            logger=logging.getLogger("chatbot.http"),
        )
        await self.http_server.start()

        # Stop requested while components were still starting
        if self._stop_task is not None:
            await self._teardown()
            return

        # 4. Mark running
        self._running = True
        self.logger.info("🔌 Connecting to Twitch...")
        self.logger.info("✅ Service ready and listening for requests")

        # 5. Block on chat read loop
        await self.client.run()

    async def stop(self) -> None:
        """Gracefully shut down all components in reverse order.

        Every caller (signal handler, ``finally`` in the CLI) awaits the same
        shutdown task, so teardown runs to completion exactly once.
        """
        if not self._started:
            return
        if self._stop_task is None:
            self.logger.info("🛑 Shutting down bot...")
            self._stop_task = asyncio.ensure_future(self._teardown())
        await asyncio.shield(self._stop_task)

    async def _teardown(self) -> None:
        self._running = False

        if self.client:
            await self.client.close()
        if self.http_server:
            await self.http_server.stop()
        if self.store:
            await self.store.stop()

        self.logger.info("🛑 Bot stopped")
