"""Twitch chat client: IRC over WebSocket on aiohttp.

Owns the chat connection lifecycle: login, join, PING/PONG keepalive,
PRIVMSG parsing, sending, and reconnecting after the socket drops.
Handlers are registered with ``@client.on("message" | "connected" |
"disconnected")`` and each incoming event runs in its own task.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable

import aiohttp

from .utils import normalize_channel

if TYPE_CHECKING:
    from .config import TwitchConfig


Handler = Callable[..., Awaitable[None]]

EVENTS = ("message", "connected", "disconnected")


@dataclass(frozen=True)
class ChatMessage:
    channel: str
    username: str
    text: str
    tags: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class IrcLine:
    tags: dict[str, str]
    prefix: str
    command: str
    params: tuple[str, ...]


def parse_irc_line(raw: str) -> IrcLine | None:
    """Split one IRC line into tags, prefix, command and params."""
    raw = raw.strip("\r\n")
    if not raw:
        return None

    tags: dict[str, str] = {}
    if raw.startswith("@"):
        if " " not in raw:
            return None
        tag_part, raw = raw[1:].split(" ", 1)
        for pair in tag_part.split(";"):
            key, _, value = pair.partition("=")
            if key:
                tags[key] = value

    prefix = ""
    if raw.startswith(":"):
        if " " not in raw:
            return None
        prefix, raw = raw[1:].split(" ", 1)

    trailing: str | None = None
    if " :" in raw:
        raw, trailing = raw.split(" :", 1)
    elif raw.startswith(":"):
        raw, trailing = "", raw[1:]

    parts = raw.split()
    if not parts:
        return None
    params = parts[1:] + ([trailing] if trailing is not None else [])
    return IrcLine(tags=tags, prefix=prefix, command=parts[0].upper(), params=tuple(params))


def to_chat_message(line: IrcLine) -> ChatMessage | None:
    """Build a ChatMessage from a PRIVMSG line, else None."""
    if line.command != "PRIVMSG" or len(line.params) < 2:
        return None
    # Prefix example: nickname!nickname@nickname.tmi.twitch.tv
    username = line.prefix.split("!", 1)[0] if line.prefix else ""
    if not username:
        username = line.tags.get("display-name", "")
    return ChatMessage(
        channel=normalize_channel(line.params[0]),
        username=username,
        text=line.params[1],
        tags=line.tags,
    )


class TwitchChatClient:
    """Minimal Twitch IRC client speaking over the WebSocket endpoint."""

    def __init__(self, config: TwitchConfig, logger: logging.Logger | None = None) -> None:
        self._config = config
        self._logger = logger or logging.getLogger("chatbot.twitch")
        self.nickname = config.username.lower()
        self.channel = normalize_channel(config.channel)
        self._token = self._normalize_token(config.oauth_token)

        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._handlers: dict[str, list[Handler]] = {name: [] for name in EVENTS}
        self._tasks: set[asyncio.Task] = set()
        self._closing = False
        self._close_event = asyncio.Event()
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    def on(self, event_name: str) -> Callable[[Handler], Handler]:
        """Register an async handler for 'message', 'connected' or 'disconnected'."""
        if event_name not in self._handlers:
            raise ValueError(f"Unknown event: {event_name}")

        def decorator(func: Handler) -> Handler:
            self._handlers[event_name].append(func)
            return func
        return decorator

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def connect(self) -> None:
        """Open the socket, log in and join the configured channel."""
        if self._session is None:
            self._session = aiohttp.ClientSession()
        self._logger.info(
            "Connecting to Twitch IRC (%s) as %s, channel #%s",
            self._config.irc_url, self.nickname, self.channel,
        )
        self._ws = await self._session.ws_connect(self._config.irc_url, heartbeat=None)
        await self._send_raw(f"PASS {self._token}")
        await self._send_raw(f"NICK {self.nickname}")
        await self._send_raw("CAP REQ :twitch.tv/tags twitch.tv/commands")
        await self._send_raw(f"JOIN #{self.channel}")

    async def run(self) -> None:
        """Read chat until close() is called, reconnecting after drops."""
        while not self._closing:
            try:
                if self._ws is None or self._ws.closed:
                    await self.connect()
                await self._read_loop()
            except asyncio.CancelledError:
                raise
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError, RuntimeError) as e:
                self._logger.error("Twitch connection error: %s", e)

            if self._connected:
                self._connected = False
                self._dispatch("disconnected")
            if self._closing:
                break
            self._logger.info(
                "Reconnecting to Twitch in %.1fs", self._config.reconnect_delay_seconds,
            )
            try:
                await asyncio.wait_for(
                    self._close_event.wait(), timeout=self._config.reconnect_delay_seconds,
                )
            except asyncio.TimeoutError:
                pass

    async def close(self) -> None:
        """Disconnect from chat and stop reconnecting."""
        self._closing = True
        self._close_event.set()
        if self._ws is not None and not self._ws.closed:
            try:
                await self._send_raw(f"PART #{self.channel}")
            except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
                self._logger.debug("PART before close failed: %s", e)
            await self._ws.close()
        self._ws = None
        if self._session is not None:
            await self._session.close()
            self._session = None
        if self._connected:
            self._connected = False
            self._dispatch("disconnected")
        self._logger.info("Twitch chat connection closed")

    # ------------------------------------------------------------------ #
    # Messaging
    # ------------------------------------------------------------------ #

    async def say(self, channel: str, text: str) -> None:
        """Send a chat line to ``channel``. Fire-and-forget."""
        text = " ".join(text.splitlines())
        if not text.strip():
            return
        channel = normalize_channel(channel)
        if self._ws is None or self._ws.closed:
            self._logger.warning("Dropping message to #%s: not connected", channel)
            return
        try:
            await self._send_raw(f"PRIVMSG #{channel} :{text}")
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            self._logger.error("Failed to send message to #%s: %s", channel, e)

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    async def _read_loop(self) -> None:
        assert self._ws is not None
        async for msg in self._ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                for raw in msg.data.split("\r\n"):
                    await self._handle_line(raw)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                self._logger.error("Twitch socket error: %s", self._ws.exception())
                break
        self._logger.warning("Twitch IRC connection closed by remote")

    async def _handle_line(self, raw: str) -> None:
        line = parse_irc_line(raw)
        if line is None:
            return

        if line.command == "PING":
            payload = line.params[0] if line.params else "tmi.twitch.tv"
            await self._send_raw(f"PONG :{payload}")
        elif line.command == "001":
            self._connected = True
            self._logger.info("Bot connected to Twitch chat: #%s", self.channel)
            self._dispatch("connected")
        elif line.command == "PRIVMSG":
            message = to_chat_message(line)
            if message is not None:
                self._dispatch("message", message)
        elif line.command == "NOTICE":
            self._logger.warning("Twitch NOTICE: %s", line.params[-1] if line.params else "")
        elif line.command == "RECONNECT":
            self._logger.info("Twitch requested a reconnect")
            if self._ws is not None:
                await self._ws.close()

    def _dispatch(self, event_name: str, *args: Any) -> None:
        for handler in self._handlers[event_name]:
            task = asyncio.create_task(self._run_handler(event_name, handler, *args))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run_handler(self, event_name: str, handler: Handler, *args: Any) -> None:
        try:
            await handler(*args)
        except Exception:
            self._logger.exception("%s handler error", event_name)

    async def _send_raw(self, data: str) -> None:
        if self._ws is None:
            raise RuntimeError("Twitch socket is not open")
        await self._ws.send_str(data + "\r\n")

    @staticmethod
    def _normalize_token(token: str) -> str:
        token = token.strip()
        if not token.startswith("oauth:"):
            return f"oauth:{token}"
        return token
