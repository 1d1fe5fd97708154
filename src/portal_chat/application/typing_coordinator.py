"""Coordenação do indicador de digitação por (conversa, usuário).

- `notify_typing` grava no máximo uma vez por janela de throttle
- cada chamada rearma o timer de inatividade; ao expirar grava is_typing=false
- observadores nunca veem o próprio usuário
- teardown remove a linha do usuário

Digitação é presença last-write-wins: falhas de escrita são registradas e
ignoradas.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from portal_chat.domain.enums import ChangeType, Table, TypingUserType
from portal_chat.domain.errors import ChatError
from portal_chat.domain.models import TypingState, utcnow
from portal_chat.domain.protocols.change_feed import ChangeEvent, ChangeFeed, Subscription
from portal_chat.domain.protocols.typing_store import TypingStore, TypingStoreError
from portal_chat.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)

TypingListener = Callable[[list[TypingState]], None]


class TypingCoordinator:
    """Publica a digitação local e observa a dos demais participantes."""

    def __init__(
        self,
        conversation_id: str,
        user_id: str,
        user_name: str,
        user_type: TypingUserType,
        store: TypingStore,
        feed: ChangeFeed,
        *,
        throttle_seconds: float = 1.0,
        expiry_seconds: float = 3.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.conversation_id = conversation_id
        self.user_id = user_id
        self.user_name = user_name
        self.user_type = user_type
        self._store = store
        self._feed = feed
        self._throttle = throttle_seconds
        self._expiry = expiry_seconds
        self._clock = clock

        self._last_write_at: float | None = None
        self._is_typing = False
        self._expiry_task: asyncio.Task[None] | None = None
        self._subscription: Subscription | None = None
        self._others: dict[str, TypingState] = {}
        self._listeners: list[TypingListener] = []
        self._closed = False

    @property
    def is_typing(self) -> bool:
        return self._is_typing

    @property
    def typing_users(self) -> list[TypingState]:
        """Outros usuários digitando agora (nunca o próprio)."""
        return [s for s in self._others.values() if s.is_typing]

    def add_listener(self, listener: TypingListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    # Publicação

    async def notify_typing(self) -> bool:
        """Registra uma tecla; retorna True se houve escrita no store."""
        if self._closed:
            return False
        self._rearm_expiry()

        now = self._clock()
        if self._last_write_at is not None and now - self._last_write_at < self._throttle:
            return False

        self._last_write_at = now
        self._is_typing = True
        await self._write(True)
        return True

    async def stop_typing(self) -> None:
        """Grava is_typing=false (envio de mensagem ou inatividade)."""
        self._cancel_expiry()
        if not self._is_typing:
            return
        self._is_typing = False
        self._last_write_at = None
        await self._write(False)

    def _rearm_expiry(self) -> None:
        self._cancel_expiry()
        self._expiry_task = asyncio.get_running_loop().create_task(self._expire())

    def _cancel_expiry(self) -> None:
        task, self._expiry_task = self._expiry_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _expire(self) -> None:
        await asyncio.sleep(self._expiry)
        self._expiry_task = None
        if not self._closed:
            logger.debug(
                "Typing expired", extra={"conversation_id": short_id(self.conversation_id)}
            )
            await self.stop_typing()

    async def _write(self, is_typing: bool) -> None:
        try:
            await self._store.upsert(
                TypingState(
                    conversation_id=self.conversation_id,
                    user_id=self.user_id,
                    user_name=self.user_name,
                    user_type=self.user_type,
                    is_typing=is_typing,
                    updated_at=utcnow(),
                )
            )
        except (TypingStoreError, ChatError) as e:
            logger.warning(
                "Typing write failed",
                extra={"conversation_id": short_id(self.conversation_id), "error": str(e)},
            )

    # Observação

    async def observe(self) -> None:
        """Assina mudanças de digitação da conversa e carrega o estado atual."""
        if self._closed or self._subscription is not None:
            return
        self._subscription = self._feed.subscribe(
            Table.TYPING,
            self._on_change,
            filter=("conversation_id", self.conversation_id),
        )
        try:
            states = await self._store.list_states(self.conversation_id)
        except TypingStoreError as e:
            logger.warning("Typing snapshot failed", extra={"error": str(e)})
            return
        if self._closed:
            return
        for state in states:
            if state.user_id != self.user_id:
                self._others.setdefault(state.user_id, state)
        self._notify()

    def _on_change(self, event: ChangeEvent) -> None:
        if self._closed:
            return
        row = event.row
        user_id = row.get("user_id")
        if not user_id or user_id == self.user_id:
            return
        if event.change_type == ChangeType.DELETE:
            self._others.pop(user_id, None)
        else:
            self._others[user_id] = TypingState.model_validate(row)
        self._notify()

    def _notify(self) -> None:
        snapshot = self.typing_users
        for listener in list(self._listeners):
            listener(snapshot)

    # Encerramento

    async def teardown(self) -> None:
        """Para de observar e remove a própria linha de digitação."""
        if self._closed:
            return
        self._closed = True
        self._cancel_expiry()
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._others.clear()
        self._listeners.clear()
        try:
            await self._store.delete(self.conversation_id, self.user_id)
        except TypingStoreError as e:
            logger.warning(
                "Typing teardown failed",
                extra={"conversation_id": short_id(self.conversation_id), "error": str(e)},
            )
