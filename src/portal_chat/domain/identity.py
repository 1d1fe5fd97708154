"""Contextos de identidade: credencial do cliente e principal no servidor."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from portal_chat.domain.enums import TypingUserType
from portal_chat.domain.errors import AuthorizationError

EMBED_TOKEN_HEADER = "x-embed-token"
EMBED_ORIGIN_HEADER = "x-embed-origin"


@dataclass(slots=True)
class AuthSession:
    """Credencial explícita usada pelos clientes do gateway.

    Substitui o estado global de autenticação: é passada a cada cliente e
    sessão. Após `invalidate()` (logout) qualquer chamada falha com
    AuthorizationError.
    """

    user_id: str
    display_name: str
    user_type: TypingUserType
    bearer_token: str | None = None
    embed_token: str | None = None
    embed_origin: str | None = None
    _valid: bool = field(default=True, repr=False)

    @property
    def is_valid(self) -> bool:
        return self._valid

    def invalidate(self) -> None:
        self._valid = False

    def ensure_valid(self) -> None:
        if not self._valid:
            raise AuthorizationError("Session has been signed out")

    def headers(self) -> dict[str, str]:
        """Headers de autenticação para o gateway."""
        self.ensure_valid()
        if self.embed_token:
            return {
                EMBED_TOKEN_HEADER: self.embed_token,
                EMBED_ORIGIN_HEADER: self.embed_origin or "",
            }
        if self.bearer_token:
            return {"Authorization": f"Bearer {self.bearer_token}"}
        raise AuthorizationError("No credentials in session")


class PrincipalKind(StrEnum):
    """Tipo de principal autenticado no gateway."""

    STAFF = "staff"
    CLIENT = "client"
    EMBED = "embed"


@dataclass(slots=True, frozen=True)
class CallerContext:
    """Principal resolvido no servidor para uma requisição.

    `is_privileged` corresponde aos papéis admin/editor; esses podem agir como
    agentes mesmo sem cadastro de staff.
    """

    kind: PrincipalKind
    user_id: str | None = None
    staff_id: str | None = None
    full_name: str | None = None
    client_account_id: str | None = None
    organization_id: str | None = None
    organization_name: str | None = None
    embed_token_id: str | None = None
    origin: str | None = None
    is_privileged: bool = False

    @property
    def is_staff(self) -> bool:
        return self.staff_id is not None

    @property
    def can_agent_act(self) -> bool:
        return self.is_staff or self.is_privileged
