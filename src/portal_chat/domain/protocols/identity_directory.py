"""Contrato de resolução de credenciais bearer."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from portal_chat.domain.identity import CallerContext


class IdentityDirectory(ABC):
    """Resolve token de sessão em principal (staff ou cliente)."""

    @abstractmethod
    async def resolve_bearer(self, token: str) -> CallerContext | None: ...
