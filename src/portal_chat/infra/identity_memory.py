"""Diretório de identidades em memória (tokens de sessão pré-registrados)."""

from __future__ import annotations

from portal_chat.domain.identity import CallerContext
from portal_chat.domain.protocols.identity_directory import IdentityDirectory


class InMemoryIdentityDirectory(IdentityDirectory):
    """Mapeia bearer tokens para principais.

    A emissão de tokens e a consulta de papéis ficam fora do motor de chat;
    este diretório apenas recebe o resultado já resolvido.
    """

    def __init__(self) -> None:
        self._principals: dict[str, CallerContext] = {}

    def register(self, token: str, principal: CallerContext) -> None:
        self._principals[token] = principal

    def revoke(self, token: str) -> None:
        self._principals.pop(token, None)

    async def resolve_bearer(self, token: str) -> CallerContext | None:
        return self._principals.get(token)
