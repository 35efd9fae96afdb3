"""Tests for the team data store and record models."""

from __future__ import annotations

from datetime import date
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from glados.teamdata.models import DomainError, Member, Part
from glados.teamdata.storage import OPEN_ORDER_STATUSES, TeamDataStore


def _make_pool() -> tuple[MagicMock, AsyncMock]:
    """Mock asyncpg pool whose connection supports ``conn.transaction()``."""
    pool = MagicMock()
    conn = AsyncMock()

    ctx = AsyncMock()
    ctx.__aenter__ = AsyncMock(return_value=conn)
    ctx.__aexit__ = AsyncMock(return_value=False)
    pool.acquire.return_value = ctx

    tx_ctx = AsyncMock()
    tx_ctx.__aenter__ = AsyncMock(return_value=None)
    tx_ctx.__aexit__ = AsyncMock(return_value=False)
    conn.transaction = MagicMock(return_value=tx_ctx)
    return pool, conn


def _team_row(**overrides: Any) -> dict[str, Any]:
    row = {
        "id": "team-1",
        "name": "Circuit Breakers",
        "number": "12345",
        "program": "ftc",
        "discord_guild_id": "999",
    }
    row.update(overrides)
    return row


def _part_row(**overrides: Any) -> dict[str, Any]:
    row = {
        "id": "p1",
        "name": "REV Hex Motor",
        "quantity": 1,
        "reorder_point": 2,
        "part_number": "REV-41-1301",
        "vendor": "REV",
        "location": "Bin A",
        "unit_cost_cents": 3900,
    }
    row.update(overrides)
    return row


class TestTeamLookups:
    @pytest.mark.asyncio
    async def test_get_team(self) -> None:
        pool, conn = _make_pool()
        conn.fetchrow.return_value = _team_row()

        team = await TeamDataStore(pool).get_team("team-1")

        assert team is not None
        assert team.number == "12345"
        assert team.discord_guild_id == "999"

    @pytest.mark.asyncio
    async def test_get_team_missing(self) -> None:
        pool, conn = _make_pool()
        conn.fetchrow.return_value = None
        assert await TeamDataStore(pool).get_team("nope") is None

    @pytest.mark.asyncio
    async def test_find_team_for_discord_user(self) -> None:
        pool, conn = _make_pool()
        conn.fetchrow.return_value = _team_row()

        team = await TeamDataStore(pool).find_team_for_discord_user("456")

        assert team is not None
        assert conn.fetchrow.await_args.args[1] == "456"


class TestLoadTeamContext:
    @pytest.mark.asyncio
    async def test_missing_team(self) -> None:
        pool, conn = _make_pool()
        conn.fetchrow.return_value = None
        assert await TeamDataStore(pool).load_team_context("nope") is None

    @pytest.mark.asyncio
    async def test_builds_context(self) -> None:
        pool, conn = _make_pool()
        conn.fetchrow.side_effect = [
            _team_row(),
            {"name": "INTO THE DEEP", "year": "2024-2025"},
            {"cnt": 2, "total": 12550},
            {
                "id": "m-2",
                "name": "Sam",
                "role": "student",
                "discord_user_id": "456",
                "birthdate": None,
                "dietary_restrictions": None,
            },
        ]
        conn.fetchval.return_value = 42
        conn.fetch.return_value = [_part_row()]

        context = await TeamDataStore(pool).load_team_context("team-1", "456")

        assert context is not None
        assert context.season is not None
        assert context.season.year == "2024-2025"
        assert context.total_parts == 42
        assert [p.name for p in context.low_stock_parts] == ["REV Hex Motor"]
        assert context.open_order_count == 2
        assert context.open_order_total_cents == 12550
        assert context.user_role == "student"
        order_args = conn.fetchrow.await_args_list[2].args
        assert order_args[2] == list(OPEN_ORDER_STATUSES)

    @pytest.mark.asyncio
    async def test_off_season_without_user(self) -> None:
        pool, conn = _make_pool()
        conn.fetchrow.side_effect = [_team_row(), None, {"cnt": 0, "total": 0}]
        conn.fetchval.return_value = 0
        conn.fetch.return_value = []

        context = await TeamDataStore(pool).load_team_context("team-1")

        assert context is not None
        assert context.season is None
        assert context.user_role is None
        assert conn.fetchrow.await_count == 3


class TestAdjustPartQuantity:
    @pytest.mark.asyncio
    async def test_applies_adjustment(self) -> None:
        pool, conn = _make_pool()
        conn.fetchrow.side_effect = [{"quantity": 1}, _part_row(quantity=5)]

        previous, part = await TeamDataStore(pool).adjust_part_quantity("team-1", "p1", 4)

        assert previous == 1
        assert part.quantity == 5
        conn.transaction.assert_called_once()
        assert "FOR UPDATE" in conn.fetchrow.await_args_list[0].args[0]
        assert conn.fetchrow.await_args_list[1].args[1:] == ("team-1", "p1", 4)

    @pytest.mark.asyncio
    async def test_refuses_negative_result(self) -> None:
        pool, conn = _make_pool()
        conn.fetchrow.return_value = {"quantity": 1}

        with pytest.raises(DomainError, match="below zero"):
            await TeamDataStore(pool).adjust_part_quantity("team-1", "p1", -2)

        assert conn.fetchrow.await_count == 1

    @pytest.mark.asyncio
    async def test_missing_part(self) -> None:
        pool, conn = _make_pool()
        conn.fetchrow.return_value = None

        with pytest.raises(DomainError, match="Part not found"):
            await TeamDataStore(pool).adjust_part_quantity("team-1", "nope", 1)


class TestListQueries:
    @pytest.mark.asyncio
    async def test_search_parts_uses_wildcards(self) -> None:
        pool, conn = _make_pool()
        conn.fetch.return_value = [_part_row()]

        parts = await TeamDataStore(pool).search_parts("team-1", "motor")

        assert parts[0].part_number == "REV-41-1301"
        assert conn.fetch.await_args.args[2] == "%motor%"

    @pytest.mark.asyncio
    async def test_list_parts_low_stock_filter(self) -> None:
        pool, conn = _make_pool()
        await TeamDataStore(pool).list_parts("team-1", low_stock_only=True)
        assert "quantity <= reorder_point" in conn.fetch.await_args.args[0]

    @pytest.mark.asyncio
    async def test_get_order_with_items(self) -> None:
        pool, conn = _make_pool()
        conn.fetchrow.return_value = {
            "id": "o1",
            "status": "pending",
            "total_cents": 7800,
            "vendor": "REV",
            "notes": None,
            "created_at": None,
        }
        conn.fetch.return_value = [{"name": "Hex Motor", "quantity": 2, "unit_cost_cents": 3900}]

        order = await TeamDataStore(pool).get_order("team-1", "o1")

        assert order is not None
        assert order.items[0].quantity == 2

    @pytest.mark.asyncio
    async def test_members_dietary_restrictions_normalized(self) -> None:
        pool, conn = _make_pool()
        conn.fetch.return_value = [
            {
                "id": "m-1",
                "name": "Dana Mentor",
                "role": "mentor",
                "discord_user_id": "5551",
                "birthdate": date(1980, 4, 2),
                "dietary_restrictions": ("vegetarian",),
            }
        ]

        members = await TeamDataStore(pool).list_ypp_contacts("team-1")

        assert members == [
            Member(
                id="m-1",
                name="Dana Mentor",
                role="mentor",
                discord_user_id="5551",
                birthdate=date(1980, 4, 2),
                dietary_restrictions=["vegetarian"],
            )
        ]
        assert "is_ypp_contact" in conn.fetch.await_args.args[0]


def test_part_low_stock() -> None:
    assert Part(id="p", name="Servo", quantity=2, reorder_point=2).is_low_stock is True
    assert Part(id="p", name="Servo", quantity=3, reorder_point=2).is_low_stock is False
