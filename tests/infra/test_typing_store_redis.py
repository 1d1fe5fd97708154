"""Testes para TypingStore baseado em Redis."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from portal_chat.domain.enums import ChangeType, Table, TypingUserType
from portal_chat.domain.models import TypingState, utcnow
from portal_chat.domain.protocols.typing_store import TypingStoreError
from portal_chat.infra.change_feed_memory import InMemoryChangeFeed
from portal_chat.infra.typing_store_redis import RedisTypingStore


def _state(user_id: str = "agent-1", *, age_seconds: float = 0.0) -> TypingState:
    return TypingState(
        conversation_id="conv-123",
        user_id=user_id,
        user_name="سارة",
        user_type=TypingUserType.AGENT,
        is_typing=True,
        updated_at=utcnow() - timedelta(seconds=age_seconds),
    )


class TestRedisTypingStoreUpsert:
    """Testes para upsert."""

    @pytest.mark.asyncio
    async def test_upsert_writes_hash_and_refreshes_ttl(self) -> None:
        """Deve gravar na hash da conversa e renovar o TTL."""
        mock_redis = AsyncMock()
        mock_redis.hset.return_value = 1
        store = RedisTypingStore(mock_redis, ttl_seconds=7)

        await store.upsert(_state())

        args = mock_redis.hset.call_args[0]
        assert args[0] == "typing:conv-123"
        assert args[1] == "agent-1"
        assert TypingState.model_validate_json(args[2]).is_typing is True
        mock_redis.expire.assert_awaited_once_with("typing:conv-123", 7)

    @pytest.mark.asyncio
    async def test_upsert_publishes_insert_then_update(self) -> None:
        """Primeira escrita é INSERT; as seguintes são UPDATE."""
        feed = InMemoryChangeFeed()
        events = []
        feed.subscribe(Table.TYPING, events.append)
        mock_redis = AsyncMock()
        mock_redis.hset.side_effect = [1, 0]
        store = RedisTypingStore(mock_redis, feed)

        await store.upsert(_state())
        await store.upsert(_state())

        assert [e.change_type for e in events] == [ChangeType.INSERT, ChangeType.UPDATE]
        assert events[0].new["user_id"] == "agent-1"

    @pytest.mark.asyncio
    async def test_upsert_wraps_redis_errors(self) -> None:
        """Falha do Redis vira TypingStoreError."""
        mock_redis = AsyncMock()
        mock_redis.hset.side_effect = ConnectionError("down")
        store = RedisTypingStore(mock_redis)

        with pytest.raises(TypingStoreError, match="Redis upsert failed"):
            await store.upsert(_state())


class TestRedisTypingStoreRead:
    """Testes para list_states/delete/clear."""

    @pytest.mark.asyncio
    async def test_list_skips_stale_rows(self) -> None:
        """Linhas mais antigas que o TTL são ignoradas."""
        mock_redis = AsyncMock()
        mock_redis.hgetall.return_value = {
            "agent-1": _state("agent-1").model_dump_json(),
            "agent-2": _state("agent-2", age_seconds=60).model_dump_json().encode("utf-8"),
        }
        store = RedisTypingStore(mock_redis, ttl_seconds=10)

        states = await store.list_states("conv-123")

        assert [s.user_id for s in states] == ["agent-1"]

    @pytest.mark.asyncio
    async def test_delete_publishes_removed_row(self) -> None:
        feed = InMemoryChangeFeed()
        events = []
        feed.subscribe(Table.TYPING, events.append)
        mock_redis = AsyncMock()
        mock_redis.hget.return_value = _state().model_dump_json()
        mock_redis.hdel.return_value = 1
        store = RedisTypingStore(mock_redis, feed)

        assert await store.delete("conv-123", "agent-1") is True

        assert len(events) == 1
        assert events[0].change_type == ChangeType.DELETE
        assert events[0].old["user_id"] == "agent-1"

    @pytest.mark.asyncio
    async def test_delete_missing_row(self) -> None:
        mock_redis = AsyncMock()
        mock_redis.hget.return_value = None
        mock_redis.hdel.return_value = 0
        store = RedisTypingStore(mock_redis)

        assert await store.delete("conv-123", "agent-1") is False

    @pytest.mark.asyncio
    async def test_clear_conversation_deletes_key(self) -> None:
        mock_redis = AsyncMock()
        mock_redis.hgetall.return_value = {"agent-1": _state().model_dump_json()}
        store = RedisTypingStore(mock_redis)

        assert await store.clear_conversation("conv-123") == 1
        mock_redis.delete.assert_awaited_once_with("typing:conv-123")
