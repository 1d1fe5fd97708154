"""Taxonomia de erros do motor de conversas.

Cada erro carrega um `code` estável usado no corpo das respostas HTTP
e no mapeamento inverso feito pelo cliente HTTP do gateway.
"""

from __future__ import annotations


class ChatError(Exception):
    """Erro base do domínio de chat."""

    code: str = "chat_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class ValidationError(ChatError):
    """Entrada inválida (corpo vazio, campo obrigatório ausente)."""

    code = "validation_error"


class InvalidTransitionError(ValidationError):
    """Ação não permitida no estado atual da conversa."""

    code = "invalid_transition"


class AuthorizationError(ChatError):
    """Credencial ausente, inválida ou fora do escopo."""

    code = "unauthorized"


class NotFoundError(ChatError):
    """Conversa (ou recurso) inexistente ou inacessível."""

    code = "not_found"


class ConversationClosedError(ChatError):
    """Envio para conversa encerrada."""

    code = "conversation_closed"


class TransportError(ChatError):
    """Falha de rede, timeout ou erro inesperado do gateway."""

    code = "transport_error"


ERRORS_BY_CODE: dict[str, type[ChatError]] = {
    cls.code: cls
    for cls in (
        ChatError,
        ValidationError,
        InvalidTransitionError,
        AuthorizationError,
        NotFoundError,
        ConversationClosedError,
        TransportError,
    )
}
