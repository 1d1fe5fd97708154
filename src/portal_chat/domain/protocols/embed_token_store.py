"""Contrato de armazenamento de tokens embed."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from portal_chat.domain.models import EmbedToken


class EmbedTokenStore(ABC):
    @abstractmethod
    async def save(self, token: EmbedToken) -> EmbedToken: ...

    @abstractmethod
    async def get_by_token(self, token: str) -> EmbedToken | None: ...

    @abstractmethod
    async def get(self, token_id: str) -> EmbedToken | None: ...

    @abstractmethod
    async def record_usage(self, token_id: str, used_at: datetime) -> None:
        """Incrementa usage_count e atualiza last_used_at."""
