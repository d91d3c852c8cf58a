"""Shared utility helpers for vaal-chatbot."""

from __future__ import annotations

from datetime import datetime, timezone


def normalize_username(name: str) -> str:
    """Lowercase a chat username and drop a leading '@' mention marker."""
    name = name.strip()
    if name.startswith("@"):
        name = name[1:]
    return name.lower()


def normalize_channel(channel: str) -> str:
    """Channel name as Twitch IRC expects it after '#' (lowercase, no '#')."""
    return channel.strip().lstrip("#").lower()


def now_utc() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def rfc3339_utc(dt: datetime | None = None) -> str:
    """Format a datetime as RFC 3339 UTC with second precision, e.g. '2026-01-02T03:04:05Z'."""
    if dt is None:
        dt = now_utc()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
