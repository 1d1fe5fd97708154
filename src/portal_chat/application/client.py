"""Composição do lado cliente: sessões, janelas, inbox e presença.

Um `ChatClient` por sessão de navegação. Todas as peças compartilham o mesmo
`AuthSession`; `sign_out()` o invalida e encerra tudo.
"""

from __future__ import annotations

import logging

import httpx

from portal_chat.application.agent_presence import AgentPresence
from portal_chat.application.gateway_client import ChatGatewayClient
from portal_chat.application.inbox import InboxController
from portal_chat.application.session_controller import ConversationSession
from portal_chat.application.typing_coordinator import TypingCoordinator
from portal_chat.application.window_orchestrator import WindowOrchestrator
from portal_chat.config.settings import Settings, get_settings
from portal_chat.domain.identity import AuthSession
from portal_chat.domain.protocols.change_feed import ChangeFeed
from portal_chat.domain.protocols.typing_store import TypingStore
from portal_chat.infra.gateway_http import HttpGatewayClient
from portal_chat.infra.http import create_http_client
from portal_chat.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)


class ChatClient:
    """Raiz de composição das superfícies de chat de um usuário."""

    def __init__(
        self,
        gateway: ChatGatewayClient,
        feed: ChangeFeed,
        typing_store: TypingStore | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.gateway = gateway
        self.feed = feed
        self.typing_store = typing_store
        self.windows = WindowOrchestrator(
            self.create_session,
            gateway=gateway,
            max_windows=self.settings.max_open_windows,
        )
        self.inbox = InboxController(gateway, feed, self.create_session)
        self.presence = AgentPresence(gateway, feed)

    @property
    def auth(self) -> AuthSession:
        return self.gateway.auth

    def create_session(self, conversation_id: str) -> ConversationSession:
        """Nova sessão com coordenador de digitação (se houver store)."""
        typing = None
        if self.typing_store is not None:
            typing = TypingCoordinator(
                conversation_id,
                self.auth.user_id,
                self.auth.display_name,
                self.auth.user_type,
                self.typing_store,
                self.feed,
                throttle_seconds=self.settings.typing_throttle_seconds,
                expiry_seconds=self.settings.typing_expiry_seconds,
            )
        return ConversationSession(
            conversation_id,
            self.gateway,
            self.feed,
            typing=typing,
            poll_interval_seconds=self.settings.poll_interval_seconds,
        )

    async def sign_out(self) -> None:
        """Invalida a credencial e encerra janelas, inbox e roster."""
        self.auth.invalidate()
        await self.windows.close_all()
        await self.inbox.stop()
        self.presence.stop()
        await self.gateway.aclose()
        logger.info("Signed out", extra={"user_id": short_id(self.auth.user_id)})


def create_remote_client(
    auth: AuthSession,
    feed: ChangeFeed,
    typing_store: TypingStore | None = None,
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ChatClient:
    """ChatClient que fala com o gateway por HTTP (`CHAT_GATEWAY_URL`)."""
    settings = settings or get_settings()
    http = create_http_client(settings, transport=transport)
    gateway = HttpGatewayClient(http, settings.chat_gateway_url, auth)
    return ChatClient(gateway, feed, typing_store, settings)
