"""Linha do tempo de mensagens: merge idempotente e ordenado."""

from __future__ import annotations

import bisect
from collections.abc import Iterable, Iterator
from datetime import datetime

from portal_chat.domain.models import Message


def _order_key(message: Message) -> tuple[datetime, str]:
    return (message.created_at, message.id)


class MessageTimeline:
    """Mensagens de uma conversa, únicas por id e ordenadas por created_at.

    A mesma mensagem pode chegar pela resposta do envio, pelo eco do feed e
    pela reconciliação; todas passam por `merge`, em qualquer ordem.
    """

    def __init__(self) -> None:
        self._by_id: dict[str, Message] = {}
        self._ordered: list[Message] = []

    def merge(self, message: Message) -> bool:
        """Insere a mensagem na posição cronológica.

        Retorna False se o id já existia (apenas o estado de leitura é
        atualizado; corpo e autor são imutáveis).
        """
        existing = self._by_id.get(message.id)
        if existing is not None:
            if message.is_read and not existing.is_read:
                index = bisect.bisect_left(self._ordered, _order_key(existing), key=_order_key)
                updated = existing.model_copy(
                    update={"is_read": True, "read_at": message.read_at}
                )
                self._ordered[index] = updated
                self._by_id[message.id] = updated
            return False

        self._by_id[message.id] = message
        bisect.insort(self._ordered, message, key=_order_key)
        return True

    def merge_many(self, messages: Iterable[Message]) -> list[Message]:
        """Merge em lote; retorna apenas as mensagens novas."""
        return [m for m in messages if self.merge(m)]

    @property
    def messages(self) -> list[Message]:
        return list(self._ordered)

    @property
    def last(self) -> Message | None:
        return self._ordered[-1] if self._ordered else None

    def clear(self) -> None:
        self._by_id.clear()
        self._ordered.clear()

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._by_id

    def __len__(self) -> int:
        return len(self._ordered)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._ordered))
