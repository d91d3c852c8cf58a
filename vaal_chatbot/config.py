"""Configuration system for vaal-chatbot.

Settings come from an optional YAML file (with ``${VAR}`` expansion) and are
then overridden by the deployment environment variables the bot has always
used (``TWITCH_BOT_USERNAME``, ``SUPABASE_URL``, ``PORT`` ...). A ``.env``
file in the working directory is honoured for local development.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator


class ConfigError(Exception):
    """Raised when configuration is missing or invalid. Fatal at startup."""


# ═══════════════════════════════════════════════════════════════
#  Sections
# ═══════════════════════════════════════════════════════════════

class TwitchConfig(BaseModel):
    username: str
    oauth_token: str
    channel: str
    irc_url: str = "wss://irc-ws.chat.twitch.tv:443"
    reconnect_delay_seconds: float = 5.0

    @field_validator("username", "oauth_token", "channel")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v


class SupabaseConfig(BaseModel):
    """Remote user store. Lookups are disabled unless both url and key are set."""
    url: str = ""
    key: str = ""
    timeout_seconds: float = 10.0
    users_table: str = "users"

    @property
    def enabled(self) -> bool:
        return bool(self.url and self.key)


class HttpConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(default=3001, ge=1, le=65535)
    shutdown_timeout: float = 5.0


# ═══════════════════════════════════════════════════════════════
#  Top-Level Config
# ═══════════════════════════════════════════════════════════════

class BotConfig(BaseModel):
    twitch: TwitchConfig
    supabase: SupabaseConfig = Field(default_factory=SupabaseConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    ignored_users: list[str] = Field(default_factory=list)


# ═══════════════════════════════════════════════════════════════
#  Config Loading
# ═══════════════════════════════════════════════════════════════

# (env var names, config section, key); first non-empty env var wins
_ENV_OVERRIDES: list[tuple[tuple[str, ...], str, str]] = [
    (("TWITCH_BOT_USERNAME",), "twitch", "username"),
    (("TWITCH_BOT_OAUTH_TOKEN",), "twitch", "oauth_token"),
    (("TWITCH_CHANNEL_NAME",), "twitch", "channel"),
    (("SUPABASE_URL",), "supabase", "url"),
    (("SUPABASE_KEY", "SUPABASE_ANON_KEY"), "supabase", "key"),
    (("PORT", "WEBHOOK_PORT"), "http", "port"),
]


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand ${VAR} and ${VAR:-default} in string values."""
    if isinstance(obj, str):
        return re.sub(
            r"\$\{([^}:]+)(?::-(.*?))?\}",
            lambda m: os.environ.get(m.group(1), m.group(2) or ""),
            obj,
        )
    elif isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(v) for v in obj]
    return obj


def _apply_env_overrides(raw: dict[str, Any], environ: dict[str, str]) -> dict[str, Any]:
    for names, section, key in _ENV_OVERRIDES:
        value = next((environ[n] for n in names if environ.get(n)), None)
        if value is None:
            continue
        target = raw.get(section)
        if not isinstance(target, dict):
            target = {}
            raw[section] = target
        target[key] = value
    return raw


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file is not valid YAML: {e}") from e
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError("Config file must contain a YAML mapping at the top level.")
    return _expand_env_vars(raw)


def load_config(
    config_path: str | None = None,
    environ: dict[str, str] | None = None,
    *,
    load_env_file: bool = True,
) -> BotConfig:
    """Build and validate a BotConfig from an optional YAML file plus environment.

    Raises ConfigError if the Twitch credentials are missing or anything fails
    validation.
    """
    if load_env_file and environ is None:
        load_dotenv()
    env = dict(os.environ if environ is None else environ)

    raw = _read_yaml(Path(config_path)) if config_path else {}
    raw = _apply_env_overrides(raw, env)

    try:
        return BotConfig(**raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
