"""Inbox do agente: lista de conversas e uma conversa em foco.

A lista é recarregada a cada mudança na tabela de conversas (assinatura sem
filtro); recargas concorrentes são coalescidas em uma única em andamento.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from portal_chat.application.gateway_client import ChatGatewayClient
from portal_chat.application.session_controller import ConversationSession
from portal_chat.domain.enums import Table
from portal_chat.domain.errors import ChatError
from portal_chat.domain.models import Conversation
from portal_chat.domain.protocols.change_feed import ChangeEvent, ChangeFeed, Subscription
from portal_chat.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)

SessionFactory = Callable[[str], ConversationSession]
InboxListener = Callable[[list[Conversation]], None]


class InboxController:
    """Inbox de página inteira (um foco por vez, independente das janelas)."""

    def __init__(
        self,
        gateway: ChatGatewayClient,
        feed: ChangeFeed,
        session_factory: SessionFactory,
    ) -> None:
        self._gateway = gateway
        self._feed = feed
        self._session_factory = session_factory

        self.conversations: list[Conversation] = []
        self.show_archived = False
        self._selected: ConversationSession | None = None
        self._subscription: Subscription | None = None
        self._refresh_task: asyncio.Task[None] | None = None
        self._dirty = False
        self._running = False
        self._resubscribed = False
        self._listeners: list[InboxListener] = []

    @property
    def selected(self) -> ConversationSession | None:
        return self._selected

    @property
    def total_unread(self) -> int:
        return sum(c.unread_count for c in self.conversations)

    def on_change(self, listener: InboxListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # ------------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Carrega a lista e assina mudanças de conversas."""
        if self._running:
            return
        self._running = True
        self._subscribe()
        await self.refresh()

    async def stop(self) -> None:
        self._running = False
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        task, self._refresh_task = self._refresh_task, None
        if task is not None:
            task.cancel()
        session, self._selected = self._selected, None
        if session is not None:
            await session.close()
        self._listeners.clear()

    def _subscribe(self) -> None:
        self._subscription = self._feed.subscribe(
            Table.CONVERSATIONS, self._on_conversation_event, on_error=self._on_feed_error
        )

    def _on_feed_error(self, exc: Exception) -> None:
        if not self._running:
            return
        logger.warning("Inbox subscription dropped", extra={"error": str(exc)})
        if self._resubscribed:
            self._subscription = None
            return
        self._resubscribed = True
        try:
            self._subscribe()
        except ChatError as e:
            self._subscription = None
            logger.warning("Inbox resubscribe failed", extra={"error": str(e)})

    # ------------------------------------------------------------------
    # Lista
    # ------------------------------------------------------------------

    async def refresh(self) -> list[Conversation]:
        if self.show_archived:
            conversations = await self._gateway.get_archived()
        else:
            conversations = await self._gateway.get_conversations()
        if not self._running:
            return conversations
        self.conversations = conversations
        for listener in list(self._listeners):
            listener(conversations)
        return conversations

    def _on_conversation_event(self, event: ChangeEvent) -> None:
        if not self._running:
            return
        self._schedule_refresh()

    def _schedule_refresh(self) -> None:
        if self._refresh_task is not None and not self._refresh_task.done():
            self._dirty = True
            return
        self._refresh_task = asyncio.get_running_loop().create_task(self._refresh_loop())

    async def _refresh_loop(self) -> None:
        while self._running:
            self._dirty = False
            try:
                await self.refresh()
            except ChatError as e:
                logger.warning("Inbox refresh failed", extra={"error_code": e.code})
            if not self._dirty:
                break

    async def wait_idle(self) -> None:
        """Aguarda a recarga em andamento (se houver)."""
        task = self._refresh_task
        if task is not None:
            await task

    async def set_show_archived(self, value: bool) -> list[Conversation]:
        self.show_archived = value
        return await self.refresh()

    # ------------------------------------------------------------------
    # Foco
    # ------------------------------------------------------------------

    async def select(self, conversation_id: str) -> ConversationSession:
        """Abre a conversa em foco, fechando a anterior.

        O histórico é marcado como lido na abertura; a lista é recarregada em
        seguida para refletir o unread_count zerado.
        """
        if self._selected is not None and self._selected.conversation_id == conversation_id:
            return self._selected

        previous, self._selected = self._selected, None
        if previous is not None:
            await previous.close()

        session = self._session_factory(conversation_id)
        self._selected = session
        try:
            await session.open()
        except BaseException:
            if self._selected is session:
                self._selected = None
            await session.close()
            raise

        if self._selected is not session:
            # Outra seleção venceu enquanto esta abria
            await session.close()
            return session

        logger.info("Inbox selection", extra={"conversation_id": short_id(conversation_id)})
        if self._running:
            await self.refresh()
        return session

    async def deselect(self) -> None:
        session, self._selected = self._selected, None
        if session is not None:
            await session.close()
