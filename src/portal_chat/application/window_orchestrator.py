"""Orquestrador de janelas de conversa simultâneas.

Conjunto limitado (FIFO por ordem de abertura) de janelas, cada uma dona de
uma ConversationSession própria. Janelas minimizadas continuam assinadas e
contando não lidas.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from portal_chat.application.gateway_client import ChatGatewayClient
from portal_chat.application.session_controller import ConversationSession
from portal_chat.domain.enums import SenderType
from portal_chat.domain.errors import NotFoundError, ValidationError
from portal_chat.domain.models import Message, StartResult
from portal_chat.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)

SessionFactory = Callable[[str], ConversationSession]

DEFAULT_MAX_WINDOWS = 3


@dataclass(slots=True)
class ChatWindow:
    """Descritor de uma janela aberta."""

    conversation_id: str
    session: ConversationSession
    seq: int
    title: str | None = None
    minimized: bool = False
    unread: int = 0
    _detach: Callable[[], None] | None = field(default=None, repr=False)


class WindowOrchestrator:
    """Gerencia até `max_windows` janelas; a mais antiga é despejada."""

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        gateway: ChatGatewayClient | None = None,
        max_windows: int = DEFAULT_MAX_WINDOWS,
    ) -> None:
        if max_windows < 1:
            raise ValueError("max_windows must be >= 1")
        self._session_factory = session_factory
        self._gateway = gateway
        self.max_windows = max_windows
        self._windows: dict[str, ChatWindow] = {}
        self._pending: dict[str, asyncio.Task[ChatWindow]] = {}
        self._active_id: str | None = None
        self._seq = itertools.count(1)

    # ------------------------------------------------------------------
    # Consulta
    # ------------------------------------------------------------------

    @property
    def windows(self) -> list[ChatWindow]:
        """Janelas em ordem de abertura."""
        return sorted(self._windows.values(), key=lambda w: w.seq)

    @property
    def active(self) -> ChatWindow | None:
        return self._windows.get(self._active_id) if self._active_id else None

    def get(self, conversation_id: str) -> ChatWindow | None:
        return self._windows.get(conversation_id)

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._windows

    def __len__(self) -> int:
        return len(self._windows)

    # ------------------------------------------------------------------
    # Abertura
    # ------------------------------------------------------------------

    async def open(self, conversation_id: str) -> ChatWindow:
        """Abre (ou restaura e foca) a janela da conversa.

        Aberturas concorrentes do mesmo id compartilham uma única sessão. A
        ordem de despejo segue a ordem das chamadas, não a de conclusão.

        Raises:
            NotFoundError: conversa inacessível ou janela fechada durante a
                abertura
        """
        window = self._windows.get(conversation_id)
        if window is not None:
            self.focus(conversation_id)
            return window

        task = self._pending.get(conversation_id)
        if task is None:
            task = asyncio.get_running_loop().create_task(
                self._open_new(conversation_id, next(self._seq))
            )
            self._pending[conversation_id] = task
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if not task.cancelled() or (current is not None and current.cancelling()):
                raise
            raise NotFoundError("Window closed while opening") from None

    async def _open_new(self, conversation_id: str, seq: int) -> ChatWindow:
        session = self._session_factory(conversation_id)
        try:
            await session.open()
        except BaseException:
            await session.close()
            raise
        finally:
            if self._pending.get(conversation_id) is asyncio.current_task():
                del self._pending[conversation_id]

        window = ChatWindow(
            conversation_id=conversation_id,
            session=session,
            seq=seq,
            title=session.conversation.subject if session.conversation else None,
        )
        window._detach = session.on_message(lambda m: self._count_unread(window, m))

        evicted: list[ChatWindow] = []
        while len(self._windows) >= self.max_windows:
            oldest = self.windows[0]
            evicted.append(self._remove(oldest.conversation_id))
        self._windows[conversation_id] = window
        self._active_id = conversation_id

        logger.info(
            "Window opened",
            extra={
                "conversation_id": short_id(conversation_id),
                "open_windows": len(self._windows),
                "evicted": len(evicted),
            },
        )
        for old in evicted:
            await old.session.close()
        return window

    def _count_unread(self, window: ChatWindow, message: Message) -> None:
        if message.sender_type == SenderType.SYSTEM or window.session.is_own(message):
            return
        if window.minimized or self._active_id != window.conversation_id:
            window.unread += 1

    async def start_conversation(
        self,
        message: str,
        sender_name: str | None = None,
        sender_email: str | None = None,
        subject: str | None = None,
    ) -> tuple[StartResult, ChatWindow]:
        """Inicia (ou retoma) uma conversa pelo launcher e abre sua janela."""
        gateway = self._require_gateway()
        result = await gateway.start_conversation(
            message, sender_name=sender_name, sender_email=sender_email, subject=subject
        )
        return result, await self.open(result.conversation.id)

    async def start_internal_conversation(
        self, recipient_id: str, message: str, subject: str | None = None
    ) -> ChatWindow:
        gateway = self._require_gateway()
        conversation = await gateway.start_internal_conversation(
            recipient_id, message, subject=subject
        )
        return await self.open(conversation.id)

    def _require_gateway(self) -> ChatGatewayClient:
        if self._gateway is None:
            raise RuntimeError("WindowOrchestrator created without a gateway client")
        return self._gateway

    # ------------------------------------------------------------------
    # Estado visual
    # ------------------------------------------------------------------

    def focus(self, conversation_id: str) -> ChatWindow | None:
        """Torna a janela ativa (restaurando se minimizada) e zera não lidas."""
        window = self._windows.get(conversation_id)
        if window is None:
            return None
        window.minimized = False
        window.unread = 0
        self._active_id = conversation_id
        return window

    def minimize(self, conversation_id: str) -> None:
        window = self._windows.get(conversation_id)
        if window is None:
            return
        window.minimized = True
        if self._active_id == conversation_id:
            self._active_id = self._next_active(exclude=conversation_id)

    def restore(self, conversation_id: str) -> None:
        self.focus(conversation_id)

    def toggle_minimize(self, conversation_id: str) -> None:
        window = self._windows.get(conversation_id)
        if window is None:
            return
        if window.minimized:
            self.restore(conversation_id)
        else:
            self.minimize(conversation_id)

    def _next_active(self, exclude: str | None = None) -> str | None:
        candidates = [
            w for w in self._windows.values() if not w.minimized and w.conversation_id != exclude
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda w: w.seq).conversation_id

    # ------------------------------------------------------------------
    # Envio
    # ------------------------------------------------------------------

    async def send(
        self,
        body: str,
        attachments: Iterable[str] | None = None,
        sender_name: str | None = None,
    ) -> Message:
        """Envia pela janela ativa."""
        window = self.active
        if window is None:
            raise ValidationError("No active window")
        return await window.session.send(body, attachments=attachments, sender_name=sender_name)

    # ------------------------------------------------------------------
    # Encerramento
    # ------------------------------------------------------------------

    def _remove(self, conversation_id: str) -> ChatWindow:
        window = self._windows.pop(conversation_id)
        if window._detach is not None:
            window._detach()
            window._detach = None
        if self._active_id == conversation_id:
            self._active_id = self._next_active()
        return window

    async def close(self, conversation_id: str) -> None:
        """Fecha a janela (ou cancela uma abertura em andamento)."""
        task = self._pending.pop(conversation_id, None)
        if task is not None:
            task.cancel()
        if conversation_id not in self._windows:
            return
        window = self._remove(conversation_id)
        await window.session.close()
        logger.info(
            "Window closed",
            extra={"conversation_id": short_id(conversation_id), "open_windows": len(self._windows)},
        )

    async def close_all(self) -> None:
        for task in list(self._pending.values()):
            task.cancel()
        self._pending.clear()
        for conversation_id in list(self._windows):
            await self.close(conversation_id)
