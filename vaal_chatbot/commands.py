"""Chat command interpreter.

Parses chat lines such as ``!collection @alice`` into a ParsedCommand and
dispatches them. Unknown commands and empty lines are dropped without a
reply; the bot's own messages never reach the parser.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable

from .utils import normalize_username

if TYPE_CHECKING:
    from .lookup import LookupService
    from .twitch_client import ChatMessage, TwitchChatClient


PONG = "Pong!"


class CommandKind(enum.Enum):
    PING = "!ping"
    COLLECTION = "!collection"
    STATS = "!stats"
    VAAL_ORBS = "!vaal"


_BY_TOKEN: dict[str, CommandKind] = {kind.value: kind for kind in CommandKind}


@dataclass(frozen=True)
class ParsedCommand:
    kind: CommandKind
    target: str
    channel: str


def parse_command(text: str, sender: str, channel: str) -> ParsedCommand | None:
    """Return the command in ``text`` or None when there is nothing to do.

    The target is the second token (``@`` stripped) when present, otherwise
    the sender. Everything is lowercased.
    """
    tokens = text.strip().lower().split()
    if not tokens:
        return None

    kind = _BY_TOKEN.get(tokens[0])
    if kind is None:
        return None

    target = normalize_username(tokens[1]) if len(tokens) > 1 else normalize_username(sender)
    return ParsedCommand(kind=kind, target=target, channel=channel)


class ChatCommandHandler:
    """Handles chat messages from the Twitch channel."""

    def __init__(
        self,
        client: TwitchChatClient,
        lookup: LookupService,
        bot_username: str,
        ignored_users: list[str] | None = None,
        logger: logging.Logger | None = None,
        on_command: Callable[[ParsedCommand], None] | None = None,
    ) -> None:
        self._client = client
        self._lookup = lookup
        self._bot_username_lower = bot_username.lower()
        self._ignored_users: set[str] = {u.lower() for u in (ignored_users or [])}
        self._logger = logger or logging.getLogger("chatbot.commands")
        self._on_command = on_command

        self._command_map: dict[CommandKind, Callable[[ParsedCommand], Awaitable[str]]] = {
            CommandKind.PING: self._cmd_ping,
            CommandKind.COLLECTION: self._cmd_lookup,
            CommandKind.STATS: self._cmd_lookup,
            CommandKind.VAAL_ORBS: self._cmd_lookup,
        }

    async def handle_message(self, message: ChatMessage) -> None:
        """Process one incoming chat message."""
        username = message.username.lower()
        if username == self._bot_username_lower or username in self._ignored_users:
            return

        command = parse_command(message.text, message.username, message.channel)
        if command is None:
            return

        if self._on_command:
            self._on_command(command)

        reply = await self._command_map[command.kind](command)
        self._logger.debug(
            "%s from %s in #%s -> %s", command.kind.value, username, command.channel, reply,
        )
        await self._client.say(command.channel, reply)

    # ══════════════════════════════════════════════════════════
    #  Commands
    # ══════════════════════════════════════════════════════════

    async def _cmd_ping(self, command: ParsedCommand) -> str:
        return PONG

    async def _cmd_lookup(self, command: ParsedCommand) -> str:
        return await self._lookup.lookup(command.kind, command.target)
