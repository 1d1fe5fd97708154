"""EmbedTokenStore em memória."""

from __future__ import annotations

from datetime import datetime

from portal_chat.domain.models import EmbedToken
from portal_chat.domain.protocols.embed_token_store import EmbedTokenStore


class InMemoryEmbedTokenStore(EmbedTokenStore):
    def __init__(self) -> None:
        self._tokens: dict[str, EmbedToken] = {}

    async def save(self, token: EmbedToken) -> EmbedToken:
        self._tokens[token.id] = token.model_copy(deep=True)
        return token

    async def get_by_token(self, token: str) -> EmbedToken | None:
        for stored in self._tokens.values():
            if stored.token == token:
                return stored.model_copy(deep=True)
        return None

    async def get(self, token_id: str) -> EmbedToken | None:
        stored = self._tokens.get(token_id)
        return stored.model_copy(deep=True) if stored else None

    async def record_usage(self, token_id: str, used_at: datetime) -> None:
        stored = self._tokens.get(token_id)
        if stored is None:
            return
        stored.usage_count += 1
        stored.last_used_at = used_at
