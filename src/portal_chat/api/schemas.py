"""Contratos de entrada da API HTTP (camelCase no fio)."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from portal_chat.domain.enums import AgentStatusValue
from portal_chat.domain.models import TicketRequest


class ChatAction(StrEnum):
    """Verbos aceitos em POST /chat-api."""

    START_CONVERSATION = "start_conversation"
    START_INTERNAL_CONVERSATION = "start_internal_conversation"
    SEND_MESSAGE = "send_message"
    GET_MESSAGES = "get_messages"
    GET_CONVERSATIONS = "get_conversations"
    GET_CONVERSATION = "get_conversation"
    GET_ARCHIVED = "get_archived"
    MARK_READ = "mark_read"
    ASSIGN = "assign"
    CLAIM = "claim"
    CLOSE = "close"
    REOPEN = "reopen"
    CONVERT_TO_TICKET = "convert_to_ticket"
    ARCHIVE = "archive"
    RESTORE = "restore"
    DELETE_PERMANENTLY = "delete_permanently"
    DELETE_BULK = "delete_bulk"
    TOGGLE_STAR = "toggle_star"
    SET_AGENT_STATUS = "set_agent_status"
    LIST_AGENTS = "list_agents"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TicketData(_CamelModel):
    subject: str | None = None
    category: str = "technical"
    priority: str = "medium"

    def to_request(self) -> TicketRequest:
        return TicketRequest(subject=self.subject, category=self.category, priority=self.priority)


class ChatRequest(_CamelModel):
    """Envelope único de requisição do gateway."""

    action: ChatAction
    conversation_id: str | None = None
    conversation_ids: list[str] | None = None
    message: str | None = None
    sender_name: str | None = None
    sender_email: str | None = None
    subject: str | None = None
    attachments: list[str] | None = None
    agent_id: str | None = None
    recipient_id: str | None = None
    ticket_data: TicketData | None = None
    is_starred: bool | None = None
    status: AgentStatusValue | None = None


class EmbedVerifyRequest(BaseModel):
    token: str | None = None
