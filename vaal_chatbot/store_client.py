"""Supabase (PostgREST) client: async HTTP wrapper for read queries.

Only the read path the bot needs is implemented: a filtered ``select`` with
embedded child resources. Tests mock the HTTP layer and never talk to a real
Supabase project.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import aiohttp

if TYPE_CHECKING:
    from .config import SupabaseConfig


class StoreError(Exception):
    """Base class for remote store failures."""


class StoreQueryError(StoreError):
    """The store answered with an error status or could not be reached."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class StoreResponseError(StoreError):
    """The store answered 2xx but the body was not a JSON list of rows."""


@dataclass
class QueryResult:
    rows: list[dict[str, Any]] = field(default_factory=list)
    count: int | None = None


class SupabaseClient:
    """Async client for a Supabase project's PostgREST endpoint."""

    def __init__(self, config: SupabaseConfig, logger: logging.Logger | None = None) -> None:
        self._config = config
        self._logger = logger or logging.getLogger("chatbot.store")
        self._session: aiohttp.ClientSession | None = None

    @property
    def rest_url(self) -> str:
        return self._config.url.rstrip("/") + "/rest/v1"

    async def start(self) -> None:
        """Create the HTTP session."""
        key = self._config.key
        self._session = aiohttp.ClientSession(
            headers={
                "apikey": key,
                "Authorization": f"Bearer {key}",
                "Accept": "application/json",
                "Prefer": "count=exact",
            },
            timeout=aiohttp.ClientTimeout(total=self._config.timeout_seconds),
        )

    async def stop(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def select(
        self,
        table: str,
        columns: str,
        filters: dict[str, Any] | None = None,
    ) -> QueryResult:
        """Run ``GET /rest/v1/<table>?select=<columns>&<col>=eq.<value>``.

        Raises StoreQueryError on transport or HTTP errors and
        StoreResponseError if the body is not a list of objects.
        """
        if not self._session:
            raise StoreQueryError("Supabase session not started")

        params = {"select": columns}
        for column, value in (filters or {}).items():
            params[column] = f"eq.{value}"

        url = f"{self.rest_url}/{table}"
        self._logger.debug("Supabase select on %s: %s", table, params)
        try:
            async with self._session.get(url, params=params) as resp:
                body = await resp.text()
                if resp.status >= 400:
                    raise StoreQueryError(
                        self._error_message(resp.status, body), status=resp.status,
                    )
                count = self._parse_count(resp.headers.get("Content-Range"))
        except aiohttp.ClientError as e:
            raise StoreQueryError(f"Supabase request to {table} failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise StoreQueryError(f"Supabase request to {table} timed out") from e

        return QueryResult(rows=self._parse_rows(body), count=count)

    # ══════════════════════════════════════════════════════════
    #  Internal Helpers
    # ══════════════════════════════════════════════════════════

    @staticmethod
    def _parse_rows(body: str) -> list[dict[str, Any]]:
        try:
            data = json.loads(body) if body else []
        except ValueError as e:
            raise StoreResponseError(f"Unparseable Supabase response: {e}") from e
        if not isinstance(data, list) or not all(isinstance(row, dict) for row in data):
            raise StoreResponseError("Supabase response is not a list of rows")
        return data

    @staticmethod
    def _parse_count(content_range: str | None) -> int | None:
        """Parse PostgREST's 'Content-Range: 0-0/1' (or '*/0') into the total."""
        if not content_range or "/" not in content_range:
            return None
        total = content_range.rsplit("/", 1)[1]
        return int(total) if total.isdigit() else None

    @staticmethod
    def _error_message(status: int, body: str) -> str:
        try:
            payload = json.loads(body)
        except ValueError:
            payload = None
        if isinstance(payload, dict) and payload.get("message"):
            return f"HTTP {status}: {payload['message']}"
        return f"HTTP {status}: {body[:200]}"
