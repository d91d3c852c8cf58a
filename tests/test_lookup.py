"""Tests for vaal_chatbot.lookup module."""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import user_row
from vaal_chatbot.commands import CommandKind
from vaal_chatbot.lookup import (
    SERVICE_UNAVAILABLE,
    LookupService,
    MalformedUserRow,
    summarize_user,
)
from vaal_chatbot.store_client import QueryResult, StoreQueryError, StoreResponseError


class TestSummarizeUser:
    """Aggregation over embedded child rows."""

    def test_sums(self):
        s = summarize_user(user_row(
            "alice", vaal_orbs=10,
            collections=[
                {"quantity": 3, "normal_count": 2, "foil_count": 1},
                {"quantity": 2, "normal_count": 2, "foil_count": 0},
            ],
            boosters=[{"id": "x"}],
        ))
        assert s.total_cards == 5
        assert s.total_foil == 1
        assert s.booster_count == 1
        assert s.vaal_orbs == 10

    def test_absent_and_null_children_sum_to_zero(self):
        absent = summarize_user(user_row("alice", vaal_orbs=3))
        null = summarize_user({
            "twitch_username": "alice", "vaal_orbs": 3,
            "user_collections": None, "user_boosters": None,
        })
        for s in (absent, null):
            assert (s.total_cards, s.total_foil, s.booster_count) == (0, 0, 0)

    def test_null_orbs_and_quantities(self):
        s = summarize_user(user_row("alice", vaal_orbs=None, collections=[{"quantity": None}]))
        assert s.vaal_orbs == 0
        assert s.total_cards == 0

    def test_large_values_do_not_truncate(self):
        big = 2**40
        s = summarize_user(user_row("alice", collections=[{"quantity": big}, {"quantity": big}]))
        assert s.total_cards == 2 * big

    @pytest.mark.parametrize("row", [
        {"twitch_username": "a", "vaal_orbs": "ten"},
        {"twitch_username": "a", "user_collections": {"quantity": 1}},
        {"twitch_username": "a", "user_collections": [{"quantity": "3"}]},
    ])
    def test_malformed(self, row: dict):
        with pytest.raises(MalformedUserRow):
            summarize_user(row)


class TestLookupService:
    """Queries, projections and reply texts."""

    async def test_unavailable_without_store(self):
        service = LookupService(None)
        for kind in (CommandKind.COLLECTION, CommandKind.STATS, CommandKind.VAAL_ORBS):
            assert await service.lookup(kind, "alice") == SERVICE_UNAVAILABLE
        assert service.available is False

    async def test_projection_per_kind(self, lookup_service: LookupService, mock_store: MagicMock):
        await lookup_service.lookup(CommandKind.COLLECTION, "alice")
        await lookup_service.lookup(CommandKind.STATS, "alice")
        await lookup_service.lookup(CommandKind.VAAL_ORBS, "alice")

        columns = [c.args[1] for c in mock_store.select.await_args_list]
        assert columns == [
            "twitch_username,vaal_orbs,user_collections(quantity,normal_count,foil_count)",
            "twitch_username,vaal_orbs,user_collections(quantity),user_boosters(id)",
            "twitch_username,vaal_orbs",
        ]
        for call in mock_store.select.await_args_list:
            assert call.args[0] == "users"
            assert call.args[2] == {"twitch_username": "alice"}

    async def test_custom_table(self, mock_store: MagicMock):
        service = LookupService(mock_store, users_table="profiles")
        await service.lookup(CommandKind.VAAL_ORBS, "alice")
        assert mock_store.select.call_args.args[0] == "profiles"

    @pytest.mark.parametrize("kind, expected", [
        (CommandKind.COLLECTION, "@dave n'a pas encore de collection"),
        (CommandKind.STATS, "@dave n'a pas encore de stats"),
        (CommandKind.VAAL_ORBS, "@dave n'a pas encore de Vaal Orbs"),
    ])
    async def test_no_rows(self, lookup_service: LookupService, kind: CommandKind, expected: str):
        assert await lookup_service.lookup(kind, "dave") == expected

    async def test_empty_username_is_no_data(self, lookup_service: LookupService, mock_store: MagicMock):
        mock_store.select.return_value = QueryResult(rows=[user_row("", vaal_orbs=5)])
        assert await lookup_service.lookup(CommandKind.VAAL_ORBS, "dave") == "@dave n'a pas encore de Vaal Orbs"

    async def test_vaal_reply(self, lookup_service: LookupService, mock_store: MagicMock):
        mock_store.select.return_value = QueryResult(rows=[user_row("erin", vaal_orbs=42)], count=1)
        assert await lookup_service.lookup(CommandKind.VAAL_ORBS, "erin") == "💎 @erin a 42 Vaal Orbs"

    @pytest.mark.parametrize("kind, expected", [
        (CommandKind.COLLECTION, "❌ Erreur lors de la récupération de la collection"),
        (CommandKind.STATS, "❌ Erreur lors de la récupération des stats"),
        (CommandKind.VAAL_ORBS, "❌ Erreur lors de la récupération des Vaal Orbs"),
    ])
    async def test_query_failure(
        self, lookup_service: LookupService, mock_store: MagicMock, kind: CommandKind, expected: str,
    ):
        mock_store.select.side_effect = StoreQueryError("HTTP 500: secret db detail", status=500)
        reply = await lookup_service.lookup(kind, "alice")
        assert reply == expected
        assert "secret" not in reply
        assert lookup_service.failures == 1

    async def test_stats_failure_is_logged(
        self, lookup_service: LookupService, mock_store: MagicMock, caplog: pytest.LogCaptureFixture,
    ):
        mock_store.select.side_effect = StoreQueryError("connection refused")
        with caplog.at_level(logging.ERROR, logger="test.lookup"):
            reply = await lookup_service.lookup(CommandKind.STATS, "bob")
        assert reply == "❌ Erreur lors de la récupération des stats"
        assert "connection refused" not in reply
        assert any("connection refused" in r.getMessage() for r in caplog.records)

    async def test_malformed_response_same_as_failure(self, lookup_service: LookupService, mock_store: MagicMock):
        mock_store.select.side_effect = StoreResponseError("not a list")
        assert await lookup_service.lookup(CommandKind.COLLECTION, "alice") == (
            "❌ Erreur lors de la récupération de la collection"
        )

    async def test_malformed_row_same_as_failure(self, lookup_service: LookupService, mock_store: MagicMock):
        mock_store.select.return_value = QueryResult(rows=[{"twitch_username": "alice", "vaal_orbs": "lots"}])
        assert await lookup_service.lookup(CommandKind.VAAL_ORBS, "alice") == (
            "❌ Erreur lors de la récupération des Vaal Orbs"
        )

    async def test_unexpected_exception_never_escapes(self, lookup_service: LookupService, mock_store: MagicMock):
        mock_store.select.side_effect = KeyError("boom")
        assert await lookup_service.lookup(CommandKind.STATS, "alice") == (
            "❌ Erreur lors de la récupération des stats"
        )

    async def test_first_row_used(self, lookup_service: LookupService, mock_store: MagicMock):
        mock_store.select.return_value = QueryResult(rows=[
            user_row("alice", vaal_orbs=1),
            user_row("alice", vaal_orbs=99),
        ])
        assert await lookup_service.lookup(CommandKind.VAAL_ORBS, "alice") == "💎 @alice a 1 Vaal Orbs"

    async def test_ping_has_no_lookup_view(self, lookup_service: LookupService, mock_store: MagicMock):
        with pytest.raises(ValueError):
            await lookup_service.lookup(CommandKind.PING, "alice")
        mock_store.select.assert_not_awaited()
