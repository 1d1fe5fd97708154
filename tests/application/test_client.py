"""Testes da composição ChatClient."""

from __future__ import annotations

import pytest

from portal_chat.application.client import ChatClient
from portal_chat.config.settings import Settings
from portal_chat.domain.enums import AgentStatusValue
from portal_chat.domain.errors import AuthorizationError
from tests.helpers.chat_harness import ChatHarness


def _agent_client(harness: ChatHarness, settings: Settings, with_typing: bool = True) -> ChatClient:
    gateway = harness.client_for(harness.auth_for("agent-token"))
    return ChatClient(
        gateway,
        harness.feed,
        harness.typing_store if with_typing else None,
        settings,
    )


class TestCreateSession:
    """Sessões criadas pelo cliente."""

    def test_session_gets_typing_coordinator(self, harness: ChatHarness, settings: Settings) -> None:
        client = _agent_client(harness, settings)

        session = client.create_session("c1")

        assert session.typing is not None
        assert session.typing.user_id == "agent-1"
        assert session.typing.user_name == "سارة"

    def test_session_without_typing_store(self, harness: ChatHarness, settings: Settings) -> None:
        client = _agent_client(harness, settings, with_typing=False)
        assert client.create_session("c1").typing is None

    def test_window_limit_from_settings(self, harness: ChatHarness) -> None:
        client = _agent_client(harness, Settings(max_open_windows=5))
        assert client.windows.max_windows == 5

    @pytest.mark.asyncio
    async def test_send_stops_typing(self, harness: ChatHarness, settings: Settings) -> None:
        await harness.seed()
        result = await harness.client_for(harness.guest_auth()).start_conversation("مرحباً")
        client = _agent_client(harness, settings)
        window = await client.windows.open(result.conversation.id)

        await window.session.typing.notify_typing()
        assert window.session.typing.is_typing is True
        await window.session.send("تفضل")

        assert window.session.typing.is_typing is False
        states = await harness.typing_store.list_states(result.conversation.id)
        assert [s.is_typing for s in states] == [False]
        await client.sign_out()


class TestSignOut:
    """Logout encerra tudo e invalida a credencial."""

    @pytest.mark.asyncio
    async def test_sign_out_closes_surfaces(self, harness: ChatHarness, settings: Settings) -> None:
        await harness.seed()
        result = await harness.client_for(harness.guest_auth()).start_conversation("مرحباً")
        client = _agent_client(harness, settings)
        await client.windows.open(result.conversation.id)
        await client.inbox.start()
        await client.presence.watch_roster()
        await client.windows.get(result.conversation.id).session.typing.notify_typing()

        await client.sign_out()

        assert len(client.windows) == 0
        assert harness.feed.subscriber_count == 0
        assert client.auth.is_valid is False
        assert await harness.typing_store.list_states(result.conversation.id) == []

    @pytest.mark.asyncio
    async def test_calls_after_sign_out_fail(self, harness: ChatHarness, settings: Settings) -> None:
        await harness.seed()
        client = _agent_client(harness, settings)

        await client.sign_out()

        with pytest.raises(AuthorizationError):
            await client.gateway.get_conversations()
        with pytest.raises(AuthorizationError):
            await client.presence.set_status(AgentStatusValue.AVAILABLE)
