"""Testes do ConversationStore em memória."""

from __future__ import annotations

from datetime import timedelta

import pytest

from portal_chat.domain.enums import ChangeType, ConversationStatus, SenderType, Table
from portal_chat.domain.errors import NotFoundError
from portal_chat.domain.models import AgentProfile, Conversation, Message, utcnow
from portal_chat.infra.change_feed_memory import InMemoryChangeFeed
from portal_chat.infra.store_memory import InMemoryConversationStore


def _message(message_id: str, conversation_id: str = "c1", **kwargs) -> Message:
    kwargs.setdefault("sender_type", SenderType.CLIENT)
    kwargs.setdefault("body", f"msg {message_id}")
    return Message(id=message_id, conversation_id=conversation_id, **kwargs)


class TestMessages:
    """Gravação de mensagens e contadores."""

    @pytest.mark.asyncio
    async def test_append_updates_preview_and_unread(self) -> None:
        store = InMemoryConversationStore()
        await store.create_conversation(Conversation(id="c1"))

        await store.append_message(_message("m1", body="x" * 150))
        await store.append_message(
            _message("m2", sender_type=SenderType.SYSTEM, body="تم إغلاق المحادثة")
        )

        conversation = await store.get_conversation("c1")
        assert conversation.unread_count == 1
        assert conversation.last_message_preview == "تم إغلاق المحادثة"
        assert conversation.last_message_at is not None

    @pytest.mark.asyncio
    async def test_created_at_strictly_increasing(self) -> None:
        """Mensagens gravadas com o mesmo timestamp mantêm a ordem de escrita."""
        store = InMemoryConversationStore()
        await store.create_conversation(Conversation(id="c1"))
        moment = utcnow()

        first = await store.append_message(_message("m1", created_at=moment))
        second = await store.append_message(_message("m2", created_at=moment))

        assert second.created_at > first.created_at
        listed = await store.list_messages("c1")
        assert [m.id for m in listed] == ["m1", "m2"]

    @pytest.mark.asyncio
    async def test_mark_read_resets_unread_and_publishes(self) -> None:
        feed = InMemoryChangeFeed()
        store = InMemoryConversationStore(feed)
        await store.create_conversation(Conversation(id="c1"))
        await store.append_message(_message("m1"))
        await store.append_message(_message("m2"))
        updates = []
        feed.subscribe(Table.MESSAGES, updates.append)

        assert await store.mark_messages_read("c1") == 2
        assert await store.mark_messages_read("c1") == 0

        assert (await store.get_conversation("c1")).unread_count == 0
        assert all(e.change_type == ChangeType.UPDATE for e in updates)
        assert all(m.is_read for m in await store.list_messages("c1"))

    @pytest.mark.asyncio
    async def test_append_to_missing_conversation(self) -> None:
        store = InMemoryConversationStore()
        with pytest.raises(NotFoundError):
            await store.append_message(_message("m1", conversation_id="nope"))


class TestConversations:
    """Listagem, compare-and-set e exclusão."""

    @pytest.mark.asyncio
    async def test_list_orders_by_last_message_with_nulls_last(self) -> None:
        store = InMemoryConversationStore()
        now = utcnow()
        await store.create_conversation(Conversation(id="empty"))
        await store.create_conversation(
            Conversation(id="old", last_message_at=now - timedelta(hours=1))
        )
        await store.create_conversation(Conversation(id="new", last_message_at=now))
        await store.create_conversation(Conversation(id="archived", archived_at=now))

        active = await store.list_conversations()
        archived = await store.list_conversations(archived=True)

        assert [c.id for c in active] == ["new", "old", "empty"]
        assert [c.id for c in archived] == ["archived"]

    @pytest.mark.asyncio
    async def test_compare_and_set_single_winner(self) -> None:
        """Apenas a primeira troca a partir de unassigned vence."""
        store = InMemoryConversationStore()
        await store.create_conversation(Conversation(id="c1"))

        first = await store.compare_and_set(
            "c1",
            ConversationStatus.UNASSIGNED,
            status=ConversationStatus.ASSIGNED,
            assigned_agent_id="agent-1",
        )
        second = await store.compare_and_set(
            "c1",
            ConversationStatus.UNASSIGNED,
            status=ConversationStatus.ASSIGNED,
            assigned_agent_id="agent-2",
        )

        assert first is not None and first.assigned_agent_id == "agent-1"
        assert second is None
        assert (await store.get_conversation("c1")).assigned_agent_id == "agent-1"

    @pytest.mark.asyncio
    async def test_find_open_conversation_by_token_and_account(self) -> None:
        store = InMemoryConversationStore()
        await store.create_conversation(
            Conversation(id="embed", organization_id="org-1", embed_token_id="tok-1")
        )
        await store.create_conversation(
            Conversation(id="closed", client_account_id="acct-1", status=ConversationStatus.CLOSED)
        )

        by_token = await store.find_open_conversation(
            organization_id="org-1", embed_token_id="tok-1"
        )
        by_account = await store.find_open_conversation(client_account_id="acct-1")

        assert by_token is not None and by_token.id == "embed"
        assert by_account is None

    @pytest.mark.asyncio
    async def test_delete_cascades_and_publishes(self) -> None:
        feed = InMemoryChangeFeed()
        store = InMemoryConversationStore(feed)
        await store.create_conversation(Conversation(id="c1"))
        await store.append_message(_message("m1"))
        deletes = []
        feed.subscribe(Table.CONVERSATIONS, deletes.append, filter=("id", "c1"))

        assert await store.delete_conversation("c1") is True
        assert await store.delete_conversation("c1") is False

        assert await store.get_conversation("c1") is None
        assert await store.list_messages("c1") == []
        assert deletes[-1].change_type == ChangeType.DELETE


class TestAgents:
    """Perfis de agentes."""

    @pytest.mark.asyncio
    async def test_update_agent_clamps_count(self) -> None:
        feed = InMemoryChangeFeed()
        store = InMemoryConversationStore(feed)
        events = []
        feed.subscribe(Table.AGENT_STATUS, events.append)
        await store.save_agent(AgentProfile(staff_id="a1", full_name="سارة"))

        updated = await store.update_agent("a1", active_conversations_count=-3)

        assert updated.active_conversations_count == 0
        assert [e.change_type for e in events] == [ChangeType.INSERT, ChangeType.UPDATE]
        assert await store.update_agent("missing", status="busy") is None
