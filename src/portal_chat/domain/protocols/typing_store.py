"""Contrato de armazenamento efêmero de digitação."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from portal_chat.domain.models import TypingState


class TypingStoreError(Exception):
    """Erro de backend de digitação."""

    pass


class TypingStore(ABC):
    """Linhas de digitação por (conversa, usuário), last-write-wins."""

    @abstractmethod
    async def upsert(self, state: TypingState) -> None: ...

    @abstractmethod
    async def delete(self, conversation_id: str, user_id: str) -> bool: ...

    @abstractmethod
    async def list_states(self, conversation_id: str) -> list[TypingState]: ...

    @abstractmethod
    async def clear_conversation(self, conversation_id: str) -> int: ...
