"""Testes do inbox do agente."""

from __future__ import annotations

import pytest

from portal_chat.application.inbox import InboxController
from portal_chat.application.session_controller import ConversationSession, SessionPhase
from portal_chat.domain.errors import NotFoundError
from portal_chat.domain.models import Conversation
from tests.helpers.chat_harness import ChatHarness


def _inbox(harness: ChatHarness, token: str = "agent-token") -> InboxController:
    client = harness.client_for(harness.auth_for(token))
    return InboxController(
        client, harness.feed, lambda cid: ConversationSession(cid, client, harness.feed)
    )


async def _client_conversation(harness: ChatHarness, body: str = "مرحباً") -> str:
    result = await harness.client_for(harness.auth_for("client-token")).start_conversation(body)
    return result.conversation.id


class TestInboxList:
    """Lista e recarga por eventos."""

    @pytest.mark.asyncio
    async def test_start_loads_visible_conversations(self, harness: ChatHarness) -> None:
        await harness.seed()
        conversation_id = await _client_conversation(harness)
        inbox = _inbox(harness)

        await inbox.start()

        assert [c.id for c in inbox.conversations] == [conversation_id]
        assert inbox.total_unread == 1
        await inbox.stop()

    @pytest.mark.asyncio
    async def test_new_conversation_triggers_refresh(self, harness: ChatHarness) -> None:
        await harness.seed()
        inbox = _inbox(harness)
        snapshots: list[list[Conversation]] = []
        inbox.on_change(snapshots.append)
        await inbox.start()
        assert inbox.conversations == []

        conversation_id = await _client_conversation(harness)
        await inbox.wait_idle()

        assert [c.id for c in inbox.conversations] == [conversation_id]
        assert len(snapshots) >= 2
        await inbox.stop()

    @pytest.mark.asyncio
    async def test_bursts_are_coalesced(self, harness: ChatHarness) -> None:
        await harness.seed()
        inbox = _inbox(harness)
        await inbox.start()
        calls = 0
        original = inbox.refresh

        async def counting_refresh():
            nonlocal calls
            calls += 1
            return await original()

        inbox.refresh = counting_refresh  # type: ignore[method-assign]

        for i in range(5):
            await harness.store.create_conversation(Conversation(id=f"c{i}", organization_id="org-1"))
        await inbox.wait_idle()

        assert 1 <= calls <= 2
        assert len(inbox.conversations) == 5
        await inbox.stop()

    @pytest.mark.asyncio
    async def test_archived_view(self, harness: ChatHarness) -> None:
        await harness.seed()
        conversation_id = await _client_conversation(harness)
        await harness.client_for(harness.auth_for("agent-token")).archive(conversation_id)
        inbox = _inbox(harness)
        await inbox.start()
        assert inbox.conversations == []

        archived = await inbox.set_show_archived(True)

        assert [c.id for c in archived] == [conversation_id]
        await inbox.stop()

    @pytest.mark.asyncio
    async def test_dropped_subscription_is_restored_once(self, harness: ChatHarness) -> None:
        await harness.seed()
        inbox = _inbox(harness)
        await inbox.start()

        harness.feed.drop_subscriptions()
        assert harness.feed.subscriber_count == 1

        harness.feed.drop_subscriptions()
        assert harness.feed.subscriber_count == 0
        await inbox.stop()


class TestInboxSelection:
    """Uma conversa em foco por vez."""

    @pytest.mark.asyncio
    async def test_select_opens_and_marks_read(self, harness: ChatHarness) -> None:
        await harness.seed()
        conversation_id = await _client_conversation(harness)
        inbox = _inbox(harness)
        await inbox.start()

        session = await inbox.select(conversation_id)

        assert session.phase == SessionPhase.OPEN
        assert inbox.selected is session
        assert inbox.total_unread == 0
        await inbox.stop()

    @pytest.mark.asyncio
    async def test_switching_selection_closes_previous(self, harness: ChatHarness) -> None:
        await harness.seed()
        first = await _client_conversation(harness)
        second = (
            await harness.client_for(harness.guest_auth()).start_conversation("زائر هنا")
        ).conversation.id
        inbox = _inbox(harness)
        await inbox.start()

        previous = await inbox.select(first)
        current = await inbox.select(second)

        assert previous.phase == SessionPhase.CLOSED
        assert inbox.selected is current
        assert await inbox.select(second) is current
        await inbox.stop()
        assert current.phase == SessionPhase.CLOSED

    @pytest.mark.asyncio
    async def test_failed_select_clears_focus(self, harness: ChatHarness) -> None:
        await harness.seed()
        inbox = _inbox(harness)
        await inbox.start()

        with pytest.raises(NotFoundError):
            await inbox.select("ghost")

        assert inbox.selected is None
        await inbox.stop()

    @pytest.mark.asyncio
    async def test_deselect(self, harness: ChatHarness) -> None:
        await harness.seed()
        conversation_id = await _client_conversation(harness)
        inbox = _inbox(harness)
        await inbox.start()
        session = await inbox.select(conversation_id)

        await inbox.deselect()

        assert inbox.selected is None
        assert session.phase == SessionPhase.CLOSED
        await inbox.stop()
