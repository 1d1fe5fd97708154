"""TypingStore em memória (apenas dev/testes)."""

from __future__ import annotations

import logging

from portal_chat.domain.enums import ChangeType, Table
from portal_chat.domain.models import TypingState
from portal_chat.domain.protocols.change_feed import ChangeEvent, ChangeFeed
from portal_chat.domain.protocols.typing_store import TypingStore
from portal_chat.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)


class InMemoryTypingStore(TypingStore):
    """Linhas de digitação em dict (não usar em produção)."""

    def __init__(self, feed: ChangeFeed | None = None) -> None:
        self._feed = feed
        self._rows: dict[str, dict[str, TypingState]] = {}

    def _publish(self, change_type: ChangeType, state: TypingState) -> None:
        if self._feed is None:
            return
        row = state.model_dump(mode="json")
        self._feed.publish(
            ChangeEvent(
                table=Table.TYPING,
                change_type=change_type,
                new=None if change_type == ChangeType.DELETE else row,
                old=row if change_type == ChangeType.DELETE else None,
            )
        )

    async def upsert(self, state: TypingState) -> None:
        rows = self._rows.setdefault(state.conversation_id, {})
        change = ChangeType.UPDATE if state.user_id in rows else ChangeType.INSERT
        rows[state.user_id] = state.model_copy()
        self._publish(change, state)

    async def delete(self, conversation_id: str, user_id: str) -> bool:
        state = self._rows.get(conversation_id, {}).pop(user_id, None)
        if state is None:
            return False
        self._publish(ChangeType.DELETE, state)
        logger.debug(
            "Typing row deleted (in-memory)",
            extra={"conversation_id": short_id(conversation_id), "user_id": short_id(user_id)},
        )
        return True

    async def list_states(self, conversation_id: str) -> list[TypingState]:
        return [s.model_copy() for s in self._rows.get(conversation_id, {}).values()]

    async def clear_conversation(self, conversation_id: str) -> int:
        rows = self._rows.pop(conversation_id, {})
        for state in rows.values():
            self._publish(ChangeType.DELETE, state)
        return len(rows)
