"""Enums canônicos do domínio de conversas."""

from __future__ import annotations

from enum import StrEnum


class ConversationStatus(StrEnum):
    """Estados de uma conversa de suporte."""

    UNASSIGNED = "unassigned"
    """Aberta, aguardando um agente."""

    ASSIGNED = "assigned"
    """Atribuída a um agente (inclui conversas reabertas)."""

    CLOSED = "closed"
    """Encerrada; só volta a aceitar mensagens via reopen."""


class SenderType(StrEnum):
    """Autor de uma mensagem."""

    CLIENT = "client"
    AGENT = "agent"
    SYSTEM = "system"


class ConversationSource(StrEnum):
    """Origem da conversa."""

    PORTAL = "portal"
    """Cliente autenticado no portal."""

    EMBED = "embed"
    """Visitante via widget embutido em site externo."""

    INTERNAL = "internal"
    """Conversa entre membros da equipe (sem organização)."""


class TypingUserType(StrEnum):
    """Tipo do participante que está digitando."""

    AGENT = "agent"
    CLIENT = "client"
    EMBED = "embed"


class AgentStatusValue(StrEnum):
    """Disponibilidade auto-declarada do agente."""

    AVAILABLE = "available"
    BUSY = "busy"
    OFFLINE = "offline"


class AutoAssignMode(StrEnum):
    """Estratégia de atribuição automática de novas conversas."""

    DISABLED = "disabled"
    ROUND_ROBIN = "round_robin"
    LEAST_ACTIVE = "least_active"
    BY_TEAM = "by_team"
    """Sem cadastro de times: comporta-se como LEAST_ACTIVE."""


class ConversationEventType(StrEnum):
    """Eventos de auditoria registrados por conversa."""

    CREATED = "created"
    ASSIGNED = "assigned"
    TRANSFERRED = "transferred"
    CLOSED = "closed"
    REOPENED = "reopened"
    CONVERTED_TO_TICKET = "converted_to_ticket"
    ARCHIVED = "archived"
    RESTORED = "restored"


class ChangeType(StrEnum):
    """Tipo de alteração publicada no feed de mudanças."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class Table(StrEnum):
    """Tabelas observáveis pelo feed de mudanças."""

    CONVERSATIONS = "conversations"
    MESSAGES = "conversation_messages"
    TYPING = "typing_indicators"
    AGENT_STATUS = "agent_status"
