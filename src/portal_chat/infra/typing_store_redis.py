"""TypingStore em Redis (produção).

Uma hash por conversa (`typing:{conversation_id}`), campo = user_id,
valor = TypingState em JSON. O TTL da chave é renovado a cada escrita para
que linhas órfãs (cliente que caiu sem teardown) expirem sozinhas.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from portal_chat.domain.enums import ChangeType, Table
from portal_chat.domain.models import TypingState, utcnow
from portal_chat.domain.protocols.change_feed import ChangeEvent, ChangeFeed
from portal_chat.domain.protocols.typing_store import TypingStore, TypingStoreError
from portal_chat.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)


def _key(conversation_id: str) -> str:
    return f"typing:{conversation_id}"


class RedisTypingStore(TypingStore):
    """Armazenamento de digitação em Redis (cliente `redis.asyncio`)."""

    def __init__(
        self,
        redis_client: Any,
        feed: ChangeFeed | None = None,
        ttl_seconds: int = 10,
    ) -> None:
        self._redis = redis_client
        self._feed = feed
        self._ttl_seconds = ttl_seconds

    def _publish(self, change_type: ChangeType, row: dict[str, Any]) -> None:
        if self._feed is None:
            return
        is_delete = change_type == ChangeType.DELETE
        self._feed.publish(
            ChangeEvent(
                table=Table.TYPING,
                change_type=change_type,
                new=None if is_delete else row,
                old=row if is_delete else None,
            )
        )

    async def upsert(self, state: TypingState) -> None:
        key = _key(state.conversation_id)
        try:
            created = await self._redis.hset(key, state.user_id, state.model_dump_json())
            await self._redis.expire(key, self._ttl_seconds)
        except Exception as e:
            logger.error(
                "Failed to upsert typing state in Redis",
                extra={"conversation_id": short_id(state.conversation_id), "error": str(e)},
            )
            raise TypingStoreError(f"Redis upsert failed: {e}") from e

        change = ChangeType.INSERT if created else ChangeType.UPDATE
        self._publish(change, state.model_dump(mode="json"))

    async def delete(self, conversation_id: str, user_id: str) -> bool:
        key = _key(conversation_id)
        try:
            payload = await self._redis.hget(key, user_id)
            removed = await self._redis.hdel(key, user_id)
        except Exception as e:
            logger.error(
                "Failed to delete typing state from Redis",
                extra={"conversation_id": short_id(conversation_id), "error": str(e)},
            )
            raise TypingStoreError(f"Redis delete failed: {e}") from e

        if not removed:
            return False
        if payload:
            if isinstance(payload, bytes):
                payload = payload.decode("utf-8")
            self._publish(
                ChangeType.DELETE,
                TypingState.model_validate_json(payload).model_dump(mode="json"),
            )
        return True

    async def list_states(self, conversation_id: str) -> list[TypingState]:
        try:
            raw = await self._redis.hgetall(_key(conversation_id))
        except Exception as e:
            logger.error(
                "Failed to list typing states from Redis",
                extra={"conversation_id": short_id(conversation_id), "error": str(e)},
            )
            raise TypingStoreError(f"Redis list failed: {e}") from e

        cutoff = utcnow() - timedelta(seconds=self._ttl_seconds)
        states: list[TypingState] = []
        for payload in raw.values():
            if isinstance(payload, bytes):
                payload = payload.decode("utf-8")
            state = TypingState.model_validate_json(payload)
            if state.updated_at >= cutoff:
                states.append(state)
        return states

    async def clear_conversation(self, conversation_id: str) -> int:
        states = await self.list_states(conversation_id)
        try:
            await self._redis.delete(_key(conversation_id))
        except Exception as e:
            raise TypingStoreError(f"Redis clear failed: {e}") from e
        for state in states:
            self._publish(ChangeType.DELETE, state.model_dump(mode="json"))
        return len(states)
