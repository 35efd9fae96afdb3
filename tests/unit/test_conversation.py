"""Tests for conversation history storage."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from glados.conversation.store import (
    DEFAULT_CHANNEL,
    ConversationRole,
    ConversationStore,
    ConversationTurn,
)


def _make_pool() -> tuple[MagicMock, AsyncMock]:
    pool = MagicMock()
    conn = AsyncMock()

    ctx = AsyncMock()
    ctx.__aenter__ = AsyncMock(return_value=conn)
    ctx.__aexit__ = AsyncMock(return_value=False)
    pool.acquire.return_value = ctx

    tx_ctx = MagicMock()
    tx_ctx.__aenter__ = AsyncMock(return_value=conn)
    tx_ctx.__aexit__ = AsyncMock(return_value=False)
    conn.transaction = MagicMock(return_value=tx_ctx)

    conn.fetch.return_value = []
    conn.execute.return_value = "DELETE 0"
    return pool, conn


class TestConversationStore:
    def test_turn_to_message(self) -> None:
        turn = ConversationTurn(role=ConversationRole.ASSISTANT, content="hello")
        assert turn.to_message() == {"role": "assistant", "content": "hello"}

    @pytest.mark.asyncio
    async def test_get_recent_defaults_channel(self) -> None:
        pool, conn = _make_pool()
        conn.fetch.return_value = [
            {"role": "user", "content": "hi", "created_at": None},
            {"role": "assistant", "content": "hello", "created_at": None},
        ]

        turns = await ConversationStore(pool).get_recent("team-1", None, limit=4)

        assert [t.role for t in turns] == [ConversationRole.USER, ConversationRole.ASSISTANT]
        assert conn.fetch.await_args.args[1:] == ("team-1", DEFAULT_CHANNEL, 4)

    @pytest.mark.asyncio
    async def test_append_exchange_writes_both_turns(self) -> None:
        pool, conn = _make_pool()

        await ConversationStore(pool).append_exchange("team-1", "c-1", "u-1", "hi", "hello")

        conn.transaction.assert_called_once()
        rows = conn.executemany.await_args.args[1]
        assert [(r[3], r[4]) for r in rows] == [("user", "hi"), ("assistant", "hello")]
        assert all(r[1] == "c-1" for r in rows)

    @pytest.mark.asyncio
    async def test_purge_older_than(self) -> None:
        pool, conn = _make_pool()
        conn.execute.return_value = "DELETE 3"

        removed = await ConversationStore(pool).purge_older_than(timedelta(days=7))

        assert removed == 3
        assert "DELETE FROM conversation_turns" in conn.execute.await_args.args[0]
