"""Contrato assíncrono de persistência de conversas."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from portal_chat.domain.enums import ConversationStatus
    from portal_chat.domain.models import (
        AgentProfile,
        Conversation,
        ConversationEvent,
        Message,
        Organization,
        Ticket,
    )


class ConversationStore(ABC):
    """Armazenamento autoritativo de conversas, mensagens e agentes.

    Implementações publicam cada mutação no feed de mudanças.
    """

    # Conversas

    @abstractmethod
    async def create_conversation(self, conversation: Conversation) -> Conversation: ...

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Conversation | None: ...

    @abstractmethod
    async def update_conversation(self, conversation_id: str, **changes: Any) -> Conversation:
        """Aplica alterações; levanta NotFoundError se não existir."""

    @abstractmethod
    async def compare_and_set(
        self,
        conversation_id: str,
        expected_status: ConversationStatus,
        **changes: Any,
    ) -> Conversation | None:
        """Aplica alterações somente se o status atual for o esperado.

        Operação atômica: retorna None quando outro escritor chegou antes.
        """

    @abstractmethod
    async def list_conversations(self, *, archived: bool = False) -> list[Conversation]:
        """Lista ordenada por last_message_at desc (nulos por último)."""

    @abstractmethod
    async def find_open_conversation(
        self,
        *,
        organization_id: str | None = None,
        embed_token_id: str | None = None,
        client_account_id: str | None = None,
    ) -> Conversation | None: ...

    @abstractmethod
    async def delete_conversation(self, conversation_id: str) -> bool:
        """Remove conversa com mensagens e eventos."""

    # Mensagens

    @abstractmethod
    async def append_message(self, message: Message) -> Message:
        """Insere mensagem e atualiza campos desnormalizados da conversa."""

    @abstractmethod
    async def list_messages(
        self, conversation_id: str, limit: int | None = None
    ) -> list[Message]:
        """Mensagens em ordem crescente de created_at."""

    @abstractmethod
    async def mark_messages_read(self, conversation_id: str) -> int:
        """Marca mensagens como lidas e zera unread_count."""

    # Auditoria e tickets

    @abstractmethod
    async def add_event(self, event: ConversationEvent) -> None: ...

    @abstractmethod
    async def list_events(self, conversation_id: str) -> list[ConversationEvent]: ...

    @abstractmethod
    async def save_ticket(self, ticket: Ticket) -> Ticket: ...

    # Agentes e organizações

    @abstractmethod
    async def save_agent(self, agent: AgentProfile) -> AgentProfile: ...

    @abstractmethod
    async def get_agent(self, staff_id: str) -> AgentProfile | None: ...

    @abstractmethod
    async def list_agents(self) -> list[AgentProfile]: ...

    @abstractmethod
    async def update_agent(self, staff_id: str, **changes: Any) -> AgentProfile | None: ...

    @abstractmethod
    async def save_organization(self, organization: Organization) -> Organization: ...

    @abstractmethod
    async def get_organization(self, organization_id: str) -> Organization | None: ...
