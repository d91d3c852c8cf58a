"""Lookup aggregator: turns a user lookup into a one-line chat reply.

Each view issues a single projected query against the ``users`` table,
sums the embedded child rows and formats the result. Every failure path
resolves to a user-facing French message; nothing is raised to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .commands import CommandKind
from .store_client import StoreError

if TYPE_CHECKING:
    from .store_client import SupabaseClient


SERVICE_UNAVAILABLE = "❌ Service non disponible"


@dataclass(frozen=True)
class LookupView:
    """Per-command projection and reply wording."""
    columns: str
    label: str           # used in log lines
    error_text: str
    no_data_text: str    # formatted with {user}


_VIEWS: dict[CommandKind, LookupView] = {
    CommandKind.COLLECTION: LookupView(
        columns="twitch_username,vaal_orbs,user_collections(quantity,normal_count,foil_count)",
        label="collection",
        error_text="❌ Erreur lors de la récupération de la collection",
        no_data_text="@{user} n'a pas encore de collection",
    ),
    CommandKind.STATS: LookupView(
        columns="twitch_username,vaal_orbs,user_collections(quantity),user_boosters(id)",
        label="stats",
        error_text="❌ Erreur lors de la récupération des stats",
        no_data_text="@{user} n'a pas encore de stats",
    ),
    CommandKind.VAAL_ORBS: LookupView(
        columns="twitch_username,vaal_orbs",
        label="vaal orbs",
        error_text="❌ Erreur lors de la récupération des Vaal Orbs",
        no_data_text="@{user} n'a pas encore de Vaal Orbs",
    ),
}


class MalformedUserRow(ValueError):
    """A user row came back with fields of the wrong shape."""


@dataclass(frozen=True)
class UserSummary:
    username: str
    vaal_orbs: int
    total_cards: int
    total_foil: int
    booster_count: int


def _as_int(value: Any, field_name: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedUserRow(f"{field_name} is not an integer: {value!r}")
    return value


def _as_rows(value: Any, field_name: str) -> list[dict[str, Any]]:
    """Embedded child resources: absent or null both mean 'no rows'."""
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
        raise MalformedUserRow(f"{field_name} is not a list of rows")
    return value


def summarize_user(row: dict[str, Any]) -> UserSummary:
    """Aggregate a raw user row (with embedded children) into totals."""
    collections = _as_rows(row.get("user_collections"), "user_collections")
    boosters = _as_rows(row.get("user_boosters"), "user_boosters")
    return UserSummary(
        username=str(row.get("twitch_username") or ""),
        vaal_orbs=_as_int(row.get("vaal_orbs"), "vaal_orbs"),
        total_cards=sum(_as_int(c.get("quantity"), "quantity") for c in collections),
        total_foil=sum(_as_int(c.get("foil_count"), "foil_count") for c in collections),
        booster_count=len(boosters),
    )


def format_reply(kind: CommandKind, user: str, summary: UserSummary) -> str:
    if kind is CommandKind.COLLECTION:
        return (
            f"📦 @{user} : {summary.total_cards} cartes ({summary.total_foil} ✨)"
            f" | {summary.vaal_orbs} Vaal Orbs"
        )
    if kind is CommandKind.STATS:
        return (
            f"📊 @{user} : {summary.total_cards} cartes"
            f" | {summary.booster_count} boosters ouverts"
            f" | {summary.vaal_orbs} Vaal Orbs"
        )
    return f"💎 @{user} a {summary.vaal_orbs} Vaal Orbs"


class LookupService:
    """Answers collection / stats / orb lookups from the remote user store."""

    def __init__(
        self,
        store: SupabaseClient | None,
        users_table: str = "users",
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._users_table = users_table
        self._logger = logger or logging.getLogger("chatbot.lookup")
        self.failures = 0

    @property
    def available(self) -> bool:
        return self._store is not None

    async def lookup(self, kind: CommandKind, username: str) -> str:
        """Return the chat reply for ``kind`` about ``username``.

        Only the three lookup kinds are accepted (``ValueError`` otherwise).
        Store and row failures resolve to the view's error text.
        """
        view = _VIEWS.get(kind)
        if view is None:
            raise ValueError(f"No lookup view for {kind}")

        if self._store is None:
            return SERVICE_UNAVAILABLE

        try:
            result = await self._store.select(
                self._users_table,
                view.columns,
                {"twitch_username": username},
            )
            if not result.rows:
                return view.no_data_text.format(user=username)
            summary = summarize_user(result.rows[0])
        except (StoreError, MalformedUserRow) as e:
            self._logger.error("Error fetching %s for %s: %s", view.label, username, e)
            self.failures += 1
            return view.error_text
        except Exception:
            self._logger.exception("Unexpected error fetching %s for %s", view.label, username)
            self.failures += 1
            return view.error_text

        if not summary.username:
            return view.no_data_text.format(user=username)
        return format_reply(kind, username, summary)
