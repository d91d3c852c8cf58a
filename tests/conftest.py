"""Shared test fixtures for vaal-chatbot."""

from __future__ import annotations

import logging
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from vaal_chatbot.commands import ChatCommandHandler
from vaal_chatbot.config import BotConfig
from vaal_chatbot.lookup import LookupService
from vaal_chatbot.store_client import QueryResult
from vaal_chatbot.twitch_client import ChatMessage


# ── Minimal config dict matching BotConfig schema ────────────

def make_config_dict(**overrides) -> dict:
    """Build a valid config dict with sensible test defaults."""
    base = {
        "twitch": {
            "username": "VaalBot",
            "oauth_token": "oauth:abc123",
            "channel": "testchannel",
        },
        "supabase": {
            "url": "https://project.supabase.co",
            "key": "service-key",
        },
        "http": {"host": "127.0.0.1", "port": 3001},
        "ignored_users": ["StreamElements"],
    }
    base.update(overrides)
    return base


def make_message(text: str, username: str = "carol", channel: str = "testchannel") -> ChatMessage:
    return ChatMessage(channel=channel, username=username, text=text)


def user_row(
    username: str,
    vaal_orbs: int | None = 0,
    collections: list[dict[str, Any]] | None = None,
    boosters: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Build a raw users row as PostgREST returns it with embedded children."""
    row: dict[str, Any] = {"twitch_username": username, "vaal_orbs": vaal_orbs}
    if collections is not None:
        row["user_collections"] = collections
    if boosters is not None:
        row["user_boosters"] = boosters
    return row


@pytest.fixture
def sample_config_dict() -> dict:
    return make_config_dict()


@pytest.fixture
def sample_config(sample_config_dict: dict) -> BotConfig:
    return BotConfig(**sample_config_dict)


@pytest.fixture
def mock_client() -> MagicMock:
    """Return a mock TwitchChatClient with async methods."""
    client = MagicMock()
    client.say = AsyncMock()
    client.connect = AsyncMock()
    client.run = AsyncMock()
    client.close = AsyncMock()
    return client


@pytest.fixture
def mock_store() -> MagicMock:
    """Return a mock SupabaseClient whose select() yields no rows by default."""
    store = MagicMock()
    store.select = AsyncMock(return_value=QueryResult(rows=[], count=0))
    store.start = AsyncMock()
    store.stop = AsyncMock()
    return store


@pytest.fixture
def lookup_service(mock_store: MagicMock) -> LookupService:
    return LookupService(mock_store, logger=logging.getLogger("test.lookup"))


@pytest.fixture
def command_handler(
    mock_client: MagicMock,
    lookup_service: LookupService,
    sample_config: BotConfig,
) -> ChatCommandHandler:
    return ChatCommandHandler(
        client=mock_client,
        lookup=lookup_service,
        bot_username=sample_config.twitch.username,
        ignored_users=sample_config.ignored_users,
        logger=logging.getLogger("test.commands"),
    )
