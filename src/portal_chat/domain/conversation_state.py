"""Máquina de estados da conversa.

- TRANSITIONS[(status, action)] = next_status
- closed -> assigned apenas via REOPEN
- Arquivar/restaurar é ortogonal ao status e não aparece aqui
- Validação pura: sem side effects
"""

from __future__ import annotations

from enum import StrEnum

from portal_chat.domain.enums import ConversationStatus
from portal_chat.domain.errors import InvalidTransitionError


class ConversationAction(StrEnum):
    """Ações que alteram o status de uma conversa."""

    CLAIM = "claim"
    """Agente assume conversa sem dono (compare-and-set no store)."""

    ASSIGN = "assign"
    """Atribuição ou transferência feita pela equipe."""

    CLOSE = "close"
    REOPEN = "reopen"


TRANSITIONS: dict[tuple[ConversationStatus, ConversationAction], ConversationStatus] = {
    (ConversationStatus.UNASSIGNED, ConversationAction.CLAIM): ConversationStatus.ASSIGNED,
    (ConversationStatus.UNASSIGNED, ConversationAction.ASSIGN): ConversationStatus.ASSIGNED,
    (ConversationStatus.ASSIGNED, ConversationAction.ASSIGN): ConversationStatus.ASSIGNED,
    (ConversationStatus.UNASSIGNED, ConversationAction.CLOSE): ConversationStatus.CLOSED,
    (ConversationStatus.ASSIGNED, ConversationAction.CLOSE): ConversationStatus.CLOSED,
    (ConversationStatus.CLOSED, ConversationAction.REOPEN): ConversationStatus.ASSIGNED,
}


def validate_transition(
    current: ConversationStatus, action: ConversationAction
) -> tuple[bool, ConversationStatus | None, str]:
    """Valida se uma ação é permitida no status atual.

    Retorna:
    - (True, next_status, ""): transição válida
    - (False, None, motivo): transição inválida

    Nunca lança exceção; apenas valida.
    """
    next_status = TRANSITIONS.get((current, action))
    if next_status is None:
        return False, None, f"No transition from {current} on action {action}"
    return True, next_status, ""


def require_transition(
    current: ConversationStatus, action: ConversationAction
) -> ConversationStatus:
    """Como validate_transition, mas levanta InvalidTransitionError."""
    ok, next_status, reason = validate_transition(current, action)
    if not ok or next_status is None:
        raise InvalidTransitionError(reason)
    return next_status


def accepts_messages(status: ConversationStatus) -> bool:
    """Conversas encerradas não aceitam novas mensagens."""
    return status != ConversationStatus.CLOSED
