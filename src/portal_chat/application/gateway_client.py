"""Contrato do gateway visto pelos clientes (widget, janelas, inbox).

Toda chamada carrega a credencial do `AuthSession`; após `invalidate()` as
chamadas falham com AuthorizationError antes de sair do processo.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import TYPE_CHECKING

from portal_chat.domain.identity import AuthSession

if TYPE_CHECKING:
    from portal_chat.application.gateway import ChatGateway
    from portal_chat.domain.enums import AgentStatusValue
    from portal_chat.domain.identity import CallerContext
    from portal_chat.domain.models import (
        AgentProfile,
        ClaimResult,
        Conversation,
        Message,
        StartResult,
        Ticket,
        TicketRequest,
    )


class ChatGatewayClient(ABC):
    """Verbos do gateway disponíveis para o lado cliente."""

    def __init__(self, auth: AuthSession) -> None:
        self.auth = auth

    @abstractmethod
    async def get_conversations(self) -> list[Conversation]: ...

    @abstractmethod
    async def get_archived(self) -> list[Conversation]: ...

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Conversation: ...

    @abstractmethod
    async def get_messages(self, conversation_id: str) -> list[Message]:
        """Histórico crescente; efeito colateral: marca como lido."""

    @abstractmethod
    async def mark_read(self, conversation_id: str) -> int: ...

    @abstractmethod
    async def start_conversation(
        self,
        message: str,
        sender_name: str | None = None,
        sender_email: str | None = None,
        subject: str | None = None,
    ) -> StartResult: ...

    @abstractmethod
    async def start_internal_conversation(
        self, recipient_id: str, message: str, subject: str | None = None
    ) -> Conversation: ...

    @abstractmethod
    async def send_message(
        self,
        conversation_id: str,
        message: str,
        attachments: Iterable[str] | None = None,
        sender_name: str | None = None,
    ) -> Message: ...

    @abstractmethod
    async def assign(self, conversation_id: str, agent_id: str | None = None) -> Conversation: ...

    @abstractmethod
    async def claim(self, conversation_id: str) -> ClaimResult: ...

    @abstractmethod
    async def close(self, conversation_id: str) -> Conversation: ...

    @abstractmethod
    async def reopen(self, conversation_id: str) -> Conversation: ...

    @abstractmethod
    async def convert_to_ticket(
        self, conversation_id: str, request: TicketRequest | None = None
    ) -> Ticket: ...

    @abstractmethod
    async def archive(self, conversation_id: str) -> Conversation: ...

    @abstractmethod
    async def restore(self, conversation_id: str) -> Conversation: ...

    @abstractmethod
    async def delete_permanently(self, conversation_id: str) -> bool: ...

    @abstractmethod
    async def delete_bulk(self, conversation_ids: Iterable[str]) -> int: ...

    @abstractmethod
    async def toggle_star(self, conversation_id: str, is_starred: bool) -> Conversation: ...

    @abstractmethod
    async def set_agent_status(self, status: AgentStatusValue) -> AgentProfile: ...

    @abstractmethod
    async def list_agents(self) -> list[AgentProfile]: ...

    async def aclose(self) -> None:
        """Libera recursos (conexões HTTP); padrão: nada a fazer."""
        return None


class LocalGatewayClient(ChatGatewayClient):
    """Cliente em processo: autentica a cada chamada e delega ao ChatGateway."""

    def __init__(self, gateway: ChatGateway, auth: AuthSession) -> None:
        super().__init__(auth)
        self._gateway = gateway

    async def _caller(self) -> CallerContext:
        return await self._gateway.authenticate(self.auth.headers())

    async def get_conversations(self) -> list[Conversation]:
        return await self._gateway.get_conversations(await self._caller())

    async def get_archived(self) -> list[Conversation]:
        return await self._gateway.get_archived(await self._caller())

    async def get_conversation(self, conversation_id: str) -> Conversation:
        return await self._gateway.get_conversation(await self._caller(), conversation_id)

    async def get_messages(self, conversation_id: str) -> list[Message]:
        return await self._gateway.get_messages(await self._caller(), conversation_id)

    async def mark_read(self, conversation_id: str) -> int:
        return await self._gateway.mark_read(await self._caller(), conversation_id)

    async def start_conversation(
        self,
        message: str,
        sender_name: str | None = None,
        sender_email: str | None = None,
        subject: str | None = None,
    ) -> StartResult:
        return await self._gateway.start_conversation(
            await self._caller(),
            message,
            sender_name=sender_name,
            sender_email=sender_email,
            subject=subject,
        )

    async def start_internal_conversation(
        self, recipient_id: str, message: str, subject: str | None = None
    ) -> Conversation:
        return await self._gateway.start_internal_conversation(
            await self._caller(), recipient_id, message, subject=subject
        )

    async def send_message(
        self,
        conversation_id: str,
        message: str,
        attachments: Iterable[str] | None = None,
        sender_name: str | None = None,
    ) -> Message:
        return await self._gateway.send_message(
            await self._caller(),
            conversation_id,
            message,
            attachments=attachments,
            sender_name=sender_name,
        )

    async def assign(self, conversation_id: str, agent_id: str | None = None) -> Conversation:
        return await self._gateway.assign(await self._caller(), conversation_id, agent_id)

    async def claim(self, conversation_id: str) -> ClaimResult:
        return await self._gateway.claim(await self._caller(), conversation_id)

    async def close(self, conversation_id: str) -> Conversation:
        return await self._gateway.close(await self._caller(), conversation_id)

    async def reopen(self, conversation_id: str) -> Conversation:
        return await self._gateway.reopen(await self._caller(), conversation_id)

    async def convert_to_ticket(
        self, conversation_id: str, request: TicketRequest | None = None
    ) -> Ticket:
        return await self._gateway.convert_to_ticket(
            await self._caller(), conversation_id, request
        )

    async def archive(self, conversation_id: str) -> Conversation:
        return await self._gateway.archive(await self._caller(), conversation_id)

    async def restore(self, conversation_id: str) -> Conversation:
        return await self._gateway.restore(await self._caller(), conversation_id)

    async def delete_permanently(self, conversation_id: str) -> bool:
        return await self._gateway.delete_permanently(await self._caller(), conversation_id)

    async def delete_bulk(self, conversation_ids: Iterable[str]) -> int:
        return await self._gateway.delete_bulk(await self._caller(), list(conversation_ids))

    async def toggle_star(self, conversation_id: str, is_starred: bool) -> Conversation:
        return await self._gateway.toggle_star(await self._caller(), conversation_id, is_starred)

    async def set_agent_status(self, status: AgentStatusValue) -> AgentProfile:
        return await self._gateway.set_agent_status(await self._caller(), status)

    async def list_agents(self) -> list[AgentProfile]:
        return await self._gateway.list_agents(await self._caller())
