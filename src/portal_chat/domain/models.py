"""Modelos de domínio (pydantic) do motor de conversas."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, model_validator

from portal_chat.domain.enums import (
    AgentStatusValue,
    ConversationEventType,
    ConversationSource,
    ConversationStatus,
    SenderType,
    TypingUserType,
)


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


class Organization(BaseModel):
    """Organização cliente (escopo de autorização)."""

    id: str
    name: str | None = None
    contact_email: str | None = None


class Conversation(BaseModel):
    """Conversa de suporte.

    `assigned_agent_id` só é preenchido quando status != unassigned; conversas
    encerradas mantêm o último agente.
    """

    id: str
    subject: str | None = None
    status: ConversationStatus = ConversationStatus.UNASSIGNED
    source: ConversationSource = ConversationSource.PORTAL
    source_domain: str | None = None
    assigned_agent_id: str | None = None
    organization_id: str | None = None
    client_account_id: str | None = None
    embed_token_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    unread_count: int = Field(default=0, ge=0)
    last_message_at: datetime | None = None
    last_message_preview: str | None = None
    is_starred: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    closed_at: datetime | None = None
    archived_at: datetime | None = None

    @property
    def is_closed(self) -> bool:
        return self.status == ConversationStatus.CLOSED

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    @model_validator(mode="after")
    def _assignment_matches_status(self) -> Conversation:
        if self.status == ConversationStatus.ASSIGNED and not self.assigned_agent_id:
            raise ValueError("assigned conversations require assigned_agent_id")
        if self.status == ConversationStatus.UNASSIGNED and self.assigned_agent_id:
            raise ValueError("unassigned conversations must not carry assigned_agent_id")
        return self


class Message(BaseModel):
    """Mensagem de uma conversa. Corpo, autor e anexos são imutáveis."""

    id: str
    conversation_id: str
    sender_type: SenderType
    sender_id: str | None = None
    sender_name: str | None = None
    body: str = Field(min_length=1)
    attachments: list[str] = Field(default_factory=list)
    is_read: bool = False
    read_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _system_messages_have_no_sender(self) -> Message:
        if self.sender_type == SenderType.SYSTEM and self.sender_id is not None:
            raise ValueError("system messages must not carry sender_id")
        return self


class TypingState(BaseModel):
    """Presença efêmera de digitação; uma linha por (conversa, usuário)."""

    conversation_id: str
    user_id: str
    user_name: str
    user_type: TypingUserType
    is_typing: bool
    updated_at: datetime = Field(default_factory=utcnow)


class AgentProfile(BaseModel):
    """Membro da equipe que pode atender conversas."""

    staff_id: str
    full_name: str
    status: AgentStatusValue = AgentStatusValue.OFFLINE
    last_activity_at: datetime | None = None
    active_conversations_count: int = Field(default=0, ge=0)
    is_active: bool = True


class ConversationEvent(BaseModel):
    """Trilha de auditoria de uma conversa."""

    id: str
    conversation_id: str
    event_type: ConversationEventType
    performed_by: str | None = None
    performer_name: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)


class TicketRequest(BaseModel):
    """Dados opcionais informados ao converter conversa em ticket."""

    subject: str | None = None
    category: str = "technical"
    priority: str = "medium"


class Ticket(BaseModel):
    """Ticket de suporte gerado a partir de uma conversa."""

    id: str
    ticket_number: str
    subject: str
    description: str
    category: str
    priority: str
    organization_id: str | None = None
    source: str = "chat"
    guest_name: str | None = None
    guest_email: str | None = None
    assigned_to_staff: str | None = None
    admin_note: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class EmbedToken(BaseModel):
    """Token de widget embutido, escopado por organização e domínios."""

    id: str
    token: str
    organization_id: str
    is_active: bool = True
    allowed_domains: list[str] = Field(default_factory=list)
    expires_at: datetime | None = None
    usage_count: int = 0
    last_used_at: datetime | None = None


class EmbedVerification(BaseModel):
    """Resultado positivo da verificação de um token embed."""

    valid: bool = True
    organization: Organization
    token_id: str


class StartResult(BaseModel):
    """Resultado de start_conversation."""

    conversation: Conversation
    message: Message
    resumed: bool = False


class ClaimResult(BaseModel):
    """Resultado autoritativo de uma tentativa de claim."""

    won: bool
    conversation: Conversation
