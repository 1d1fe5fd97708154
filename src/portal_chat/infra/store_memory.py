"""ConversationStore em memória (dev/testes e processo único).

Cada método conclui sem ceder o event loop, portanto é atômico em relação às
demais corrotinas; `compare_and_set` depende disso.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from portal_chat.domain.enums import ChangeType, ConversationStatus, SenderType, Table
from portal_chat.domain.errors import NotFoundError
from portal_chat.domain.models import (
    AgentProfile,
    Conversation,
    ConversationEvent,
    Message,
    Organization,
    Ticket,
    utcnow,
)
from portal_chat.domain.protocols.change_feed import ChangeEvent, ChangeFeed
from portal_chat.domain.protocols.conversation_store import ConversationStore
from portal_chat.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)

PREVIEW_MAX_CHARS = 100
_OPEN_STATUSES = (ConversationStatus.UNASSIGNED, ConversationStatus.ASSIGNED)


def _recency_key(conversation: Conversation) -> tuple[int, float, float]:
    if conversation.last_message_at is None:
        return (1, 0.0, -conversation.created_at.timestamp())
    return (0, -conversation.last_message_at.timestamp(), -conversation.created_at.timestamp())


class InMemoryConversationStore(ConversationStore):
    """Armazenamento em memória (não usar com múltiplas instâncias)."""

    def __init__(self, feed: ChangeFeed | None = None) -> None:
        self._feed = feed
        self._conversations: dict[str, Conversation] = {}
        self._messages: dict[str, list[Message]] = {}
        self._events: dict[str, list[ConversationEvent]] = {}
        self._tickets: dict[str, Ticket] = {}
        self._agents: dict[str, AgentProfile] = {}
        self._organizations: dict[str, Organization] = {}

    def _publish(
        self,
        table: Table,
        change_type: ChangeType,
        new: Any | None = None,
        old: Any | None = None,
    ) -> None:
        if self._feed is None:
            return
        self._feed.publish(
            ChangeEvent(
                table=table,
                change_type=change_type,
                new=new.model_dump(mode="json") if new is not None else None,
                old=old.model_dump(mode="json") if old is not None else None,
            )
        )

    def _require(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return conversation

    # Conversas

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        stored = conversation.model_copy(deep=True)
        self._conversations[stored.id] = stored
        self._messages.setdefault(stored.id, [])
        logger.debug(
            "Conversation created (in-memory)",
            extra={"conversation_id": short_id(stored.id), "status": str(stored.status)},
        )
        self._publish(Table.CONVERSATIONS, ChangeType.INSERT, new=stored)
        return stored.model_copy(deep=True)

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        conversation = self._conversations.get(conversation_id)
        return conversation.model_copy(deep=True) if conversation else None

    def _apply(self, current: Conversation, changes: dict[str, Any]) -> Conversation:
        changes.setdefault("updated_at", utcnow())
        updated = Conversation.model_validate({**current.model_dump(), **changes})
        self._conversations[updated.id] = updated
        self._publish(Table.CONVERSATIONS, ChangeType.UPDATE, new=updated, old=current)
        return updated.model_copy(deep=True)

    async def update_conversation(self, conversation_id: str, **changes: Any) -> Conversation:
        return self._apply(self._require(conversation_id), changes)

    async def compare_and_set(
        self,
        conversation_id: str,
        expected_status: ConversationStatus,
        **changes: Any,
    ) -> Conversation | None:
        current = self._require(conversation_id)
        if current.status != expected_status:
            logger.info(
                "Compare-and-set lost",
                extra={
                    "conversation_id": short_id(conversation_id),
                    "expected": str(expected_status),
                    "actual": str(current.status),
                },
            )
            return None
        return self._apply(current, changes)

    async def list_conversations(self, *, archived: bool = False) -> list[Conversation]:
        selected = [c for c in self._conversations.values() if c.is_archived == archived]
        return [c.model_copy(deep=True) for c in sorted(selected, key=_recency_key)]

    async def find_open_conversation(
        self,
        *,
        organization_id: str | None = None,
        embed_token_id: str | None = None,
        client_account_id: str | None = None,
    ) -> Conversation | None:
        candidates = sorted(
            (
                c
                for c in self._conversations.values()
                if c.status in _OPEN_STATUSES and not c.is_archived
            ),
            key=lambda c: c.created_at,
            reverse=True,
        )
        for conversation in candidates:
            if embed_token_id is not None:
                if (
                    conversation.embed_token_id == embed_token_id
                    and conversation.organization_id == organization_id
                ):
                    return conversation.model_copy(deep=True)
            elif client_account_id is not None:
                if conversation.client_account_id == client_account_id:
                    return conversation.model_copy(deep=True)
        return None

    async def delete_conversation(self, conversation_id: str) -> bool:
        conversation = self._conversations.pop(conversation_id, None)
        if conversation is None:
            return False
        messages = self._messages.pop(conversation_id, [])
        self._events.pop(conversation_id, None)
        for message in messages:
            self._publish(Table.MESSAGES, ChangeType.DELETE, old=message)
        self._publish(Table.CONVERSATIONS, ChangeType.DELETE, old=conversation)
        logger.info(
            "Conversation deleted (in-memory)",
            extra={"conversation_id": short_id(conversation_id), "messages": len(messages)},
        )
        return True

    # Mensagens

    async def append_message(self, message: Message) -> Message:
        conversation = self._require(message.conversation_id)
        history = self._messages.setdefault(message.conversation_id, [])

        stored = message.model_copy(deep=True)
        if history and stored.created_at <= history[-1].created_at:
            # created_at estritamente crescente por conversa
            stored.created_at = history[-1].created_at + timedelta(microseconds=1)
        history.append(stored)
        self._publish(Table.MESSAGES, ChangeType.INSERT, new=stored)

        unread = conversation.unread_count
        if stored.sender_type != SenderType.SYSTEM:
            unread += 1
        self._apply(
            conversation,
            {
                "last_message_at": stored.created_at,
                "last_message_preview": stored.body[:PREVIEW_MAX_CHARS],
                "unread_count": unread,
            },
        )
        return stored.model_copy(deep=True)

    async def list_messages(
        self, conversation_id: str, limit: int | None = None
    ) -> list[Message]:
        history = self._messages.get(conversation_id, [])
        selected = history if limit is None else history[:limit]
        return [m.model_copy(deep=True) for m in selected]

    async def mark_messages_read(self, conversation_id: str) -> int:
        conversation = self._require(conversation_id)
        now = utcnow()
        marked = 0
        for index, message in enumerate(self._messages.get(conversation_id, [])):
            if message.is_read:
                continue
            updated = message.model_copy(update={"is_read": True, "read_at": now})
            self._messages[conversation_id][index] = updated
            self._publish(Table.MESSAGES, ChangeType.UPDATE, new=updated, old=message)
            marked += 1
        if conversation.unread_count:
            self._apply(conversation, {"unread_count": 0})
        return marked

    # Auditoria e tickets

    async def add_event(self, event: ConversationEvent) -> None:
        self._events.setdefault(event.conversation_id, []).append(event.model_copy(deep=True))

    async def list_events(self, conversation_id: str) -> list[ConversationEvent]:
        return [e.model_copy(deep=True) for e in self._events.get(conversation_id, [])]

    async def save_ticket(self, ticket: Ticket) -> Ticket:
        self._tickets[ticket.id] = ticket.model_copy(deep=True)
        return ticket

    async def list_tickets(self) -> list[Ticket]:
        return [t.model_copy(deep=True) for t in self._tickets.values()]

    # Agentes e organizações

    async def save_agent(self, agent: AgentProfile) -> AgentProfile:
        previous = self._agents.get(agent.staff_id)
        stored = agent.model_copy(deep=True)
        self._agents[agent.staff_id] = stored
        change = ChangeType.UPDATE if previous else ChangeType.INSERT
        self._publish(Table.AGENT_STATUS, change, new=stored, old=previous)
        return stored.model_copy(deep=True)

    async def get_agent(self, staff_id: str) -> AgentProfile | None:
        agent = self._agents.get(staff_id)
        return agent.model_copy(deep=True) if agent else None

    async def list_agents(self) -> list[AgentProfile]:
        return [a.model_copy(deep=True) for a in self._agents.values()]

    async def update_agent(self, staff_id: str, **changes: Any) -> AgentProfile | None:
        current = self._agents.get(staff_id)
        if current is None:
            return None
        if "active_conversations_count" in changes:
            changes["active_conversations_count"] = max(0, changes["active_conversations_count"])
        updated = AgentProfile.model_validate({**current.model_dump(), **changes})
        self._agents[staff_id] = updated
        self._publish(Table.AGENT_STATUS, ChangeType.UPDATE, new=updated, old=current)
        return updated.model_copy(deep=True)

    async def save_organization(self, organization: Organization) -> Organization:
        self._organizations[organization.id] = organization.model_copy(deep=True)
        return organization

    async def get_organization(self, organization_id: str) -> Organization | None:
        organization = self._organizations.get(organization_id)
        return organization.model_copy(deep=True) if organization else None
