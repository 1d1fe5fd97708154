"""Controlador de sessão de uma conversa (lado cliente).

Responsabilidades:
- carregar histórico (marca lido) e assinar inserts da conversa
- envio request-then-append: nada entra na linha do tempo antes da resposta
- merge idempotente de resposta, eco do feed e reconciliação
- refletir mudanças de status feitas por outros agentes
- encerrar assinaturas, polling e digitação ao fechar

Toda continuação assíncrona confere `is_alive` antes de mutar estado: uma
sessão fechada não processa mais nada.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from enum import StrEnum

from portal_chat.application.gateway_client import ChatGatewayClient
from portal_chat.application.timeline import MessageTimeline
from portal_chat.application.typing_coordinator import TypingCoordinator
from portal_chat.domain.conversation_state import accepts_messages
from portal_chat.domain.enums import ChangeType, ConversationStatus, SenderType, Table, TypingUserType
from portal_chat.domain.errors import (
    AuthorizationError,
    ChatError,
    ConversationClosedError,
    NotFoundError,
    ValidationError,
)
from portal_chat.domain.identity import AuthSession
from portal_chat.domain.models import Conversation, Message
from portal_chat.domain.protocols.change_feed import ChangeEvent, ChangeFeed, Subscription
from portal_chat.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)

MessageListener = Callable[[Message], None]
ConversationListener = Callable[[Conversation], None]


class SessionPhase(StrEnum):
    """Ciclo de vida do controlador."""

    NEW = "new"
    OPENING = "opening"
    OPEN = "open"
    UNAVAILABLE = "unavailable"
    """Conversa inexistente ou sem acesso; terminal."""

    CLOSED = "closed"


class ComposerState(StrEnum):
    """O que a caixa de texto deve oferecer ao usuário."""

    READY = "ready"
    CONVERSATION_CLOSED = "conversation_closed"
    UNAVAILABLE = "unavailable"


class ConversationSession:
    """Sessão de uma conversa aberta em uma superfície (widget, janela, inbox)."""

    def __init__(
        self,
        conversation_id: str,
        gateway: ChatGatewayClient,
        feed: ChangeFeed,
        *,
        typing: TypingCoordinator | None = None,
        poll_interval_seconds: float = 0.0,
    ) -> None:
        self.conversation_id = conversation_id
        self._gateway = gateway
        self._feed = feed
        self.typing = typing
        self._poll_interval = poll_interval_seconds

        self._phase = SessionPhase.NEW
        self._conversation: Conversation | None = None
        self._conversation_version = 0
        self._timeline = MessageTimeline()
        self._subscriptions: list[Subscription] = []
        self._subscription_generation = 0
        self._feed_failures = 0
        self._stale = False
        self._poll_task: asyncio.Task[None] | None = None
        self._message_listeners: list[MessageListener] = []
        self._conversation_listeners: list[ConversationListener] = []
        self.failed_draft: str | None = None

    # ------------------------------------------------------------------
    # Estado
    # ------------------------------------------------------------------

    @property
    def auth(self) -> AuthSession:
        return self._gateway.auth

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def is_alive(self) -> bool:
        return self._phase in (SessionPhase.NEW, SessionPhase.OPENING, SessionPhase.OPEN)

    @property
    def is_stale(self) -> bool:
        return self._stale

    @property
    def conversation(self) -> Conversation | None:
        return self._conversation

    @property
    def status(self) -> ConversationStatus | None:
        return self._conversation.status if self._conversation else None

    @property
    def messages(self) -> list[Message]:
        return self._timeline.messages

    @property
    def composer_state(self) -> ComposerState:
        if self._phase in (SessionPhase.UNAVAILABLE, SessionPhase.CLOSED):
            return ComposerState.UNAVAILABLE
        if self.status is not None and not accepts_messages(self.status):
            return ComposerState.CONVERSATION_CLOSED
        return ComposerState.READY

    def is_own(self, message: Message) -> bool:
        """Mensagem escrita pelo usuário desta sessão.

        Agentes são identificados pelo staff id (`AuthSession.user_id`); do
        lado do cliente, toda mensagem `client` da conversa é própria.
        """
        if self.auth.user_type == TypingUserType.AGENT:
            return message.sender_type == SenderType.AGENT and message.sender_id in (
                self.auth.user_id,
                None,
            )
        return message.sender_type == SenderType.CLIENT

    def on_message(self, listener: MessageListener) -> Callable[[], None]:
        """Registra listener de mensagens novas; retorna função de remoção."""
        self._message_listeners.append(listener)

        def remove() -> None:
            if listener in self._message_listeners:
                self._message_listeners.remove(listener)

        return remove

    def on_conversation_change(self, listener: ConversationListener) -> Callable[[], None]:
        self._conversation_listeners.append(listener)

        def remove() -> None:
            if listener in self._conversation_listeners:
                self._conversation_listeners.remove(listener)

        return remove

    # ------------------------------------------------------------------
    # Abertura
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Carrega conversa e histórico e assina o feed.

        Raises:
            NotFoundError: conversa inexistente ou inacessível (sessão fica
                UNAVAILABLE, sem polling)
        """
        if self._phase != SessionPhase.NEW:
            return
        self._phase = SessionPhase.OPENING

        try:
            conversation = await self._gateway.get_conversation(self.conversation_id)
            if not self.is_alive:
                return
            # Snapshot antes de assinar: atualizações do feed são mais novas
            self._set_conversation(conversation)
            self._subscribe()
            history = await self._gateway.get_messages(self.conversation_id)
        except (NotFoundError, AuthorizationError) as e:
            if self.is_alive:
                self._become_unavailable()
            logger.info(
                "Conversation unavailable",
                extra={"conversation_id": short_id(self.conversation_id), "reason": e.code},
            )
            raise NotFoundError("Conversation not found") from e
        except ChatError:
            if self.is_alive:
                self._unsubscribe_all()
                self._phase = SessionPhase.NEW
            raise

        if not self.is_alive:
            return

        self._merge_all(history)
        self._phase = SessionPhase.OPEN

        if self.typing is not None:
            await self.typing.observe()
        if self._poll_interval > 0 and self.is_alive:
            self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())

        logger.info(
            "Session opened",
            extra={
                "conversation_id": short_id(self.conversation_id),
                "messages": len(self._timeline),
                "status": str(conversation.status),
            },
        )

    def _become_unavailable(self) -> None:
        self._phase = SessionPhase.UNAVAILABLE
        self._unsubscribe_all()
        self._cancel_polling()

    # ------------------------------------------------------------------
    # Envio
    # ------------------------------------------------------------------

    async def send(
        self,
        body: str,
        attachments: Iterable[str] | None = None,
        sender_name: str | None = None,
    ) -> Message:
        """Envia e só então insere a mensagem canônica na linha do tempo.

        Em falha a linha do tempo não muda e o texto fica em `failed_draft`.
        """
        if self._phase != SessionPhase.OPEN:
            raise ValidationError("Session is not open")
        if not (body or "").strip():
            raise ValidationError("Message body must not be empty")
        if self.status == ConversationStatus.CLOSED:
            self.failed_draft = body
            raise ConversationClosedError("Conversation is closed")

        try:
            message = await self._gateway.send_message(
                self.conversation_id, body, attachments=attachments, sender_name=sender_name
            )
        except ConversationClosedError:
            if self.is_alive:
                self.failed_draft = body
                self._mark_closed_locally()
            raise
        except ChatError as e:
            if self.is_alive:
                self.failed_draft = body
            logger.warning(
                "Send failed",
                extra={"conversation_id": short_id(self.conversation_id), "error_code": e.code},
            )
            raise

        if not self.is_alive:
            return message

        self.failed_draft = None
        self._merge(message)
        if self.typing is not None:
            await self.typing.stop_typing()
        return message

    def _mark_closed_locally(self) -> None:
        if self._conversation is None or self._conversation.is_closed:
            return
        self._set_conversation(
            self._conversation.model_copy(update={"status": ConversationStatus.CLOSED})
        )

    # ------------------------------------------------------------------
    # Tempo real
    # ------------------------------------------------------------------

    def on_realtime_insert(self, message: Message) -> None:
        """Merge idempotente de uma mensagem recebida pelo feed."""
        if not self.is_alive or message.conversation_id != self.conversation_id:
            return
        self._merge(message)

    def _merge(self, message: Message) -> None:
        if self._timeline.merge(message):
            for listener in list(self._message_listeners):
                listener(message)

    def _merge_all(self, messages: Iterable[Message]) -> None:
        for message in messages:
            self._merge(message)

    def _set_conversation(self, conversation: Conversation) -> None:
        self._conversation = conversation
        self._conversation_version += 1
        for listener in list(self._conversation_listeners):
            listener(conversation)

    def _is_newer(self, conversation: Conversation) -> bool:
        current = self._conversation
        return current is None or conversation.updated_at > current.updated_at

    def _on_message_event(self, event: ChangeEvent) -> None:
        self._feed_failures = 0
        if event.change_type != ChangeType.INSERT or event.new is None:
            return
        self.on_realtime_insert(Message.model_validate(event.new))

    def _on_conversation_event(self, event: ChangeEvent) -> None:
        if not self.is_alive:
            return
        self._feed_failures = 0
        if event.change_type == ChangeType.DELETE:
            logger.info(
                "Conversation deleted remotely",
                extra={"conversation_id": short_id(self.conversation_id)},
            )
            self._become_unavailable()
            return
        if event.new is not None:
            self._set_conversation(Conversation.model_validate(event.new))

    def _subscribe(self) -> None:
        self._unsubscribe_all()
        self._subscription_generation += 1
        generation = self._subscription_generation

        def on_error(exc: Exception) -> None:
            self._on_feed_error(generation, exc)

        self._subscriptions = [
            self._feed.subscribe(
                Table.MESSAGES,
                self._on_message_event,
                filter=("conversation_id", self.conversation_id),
                on_error=on_error,
            ),
            self._feed.subscribe(
                Table.CONVERSATIONS,
                self._on_conversation_event,
                filter=("id", self.conversation_id),
                on_error=on_error,
            ),
        ]

    def _unsubscribe_all(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription.unsubscribe()

    def _on_feed_error(self, generation: int, exc: Exception) -> None:
        """Primeira queda reassina; nova queda sem entregas entre elas marca stale."""
        if not self.is_alive or generation != self._subscription_generation:
            return
        self._feed_failures += 1
        logger.warning(
            "Feed subscription dropped",
            extra={
                "conversation_id": short_id(self.conversation_id),
                "failures": self._feed_failures,
                "error": str(exc),
            },
        )
        if self._feed_failures > 1:
            self._mark_stale()
            return
        try:
            self._subscribe()
        except ChatError as e:
            logger.warning("Resubscribe failed", extra={"error": str(e)})
            self._mark_stale()

    def _mark_stale(self) -> None:
        self._stale = True
        self._subscription_generation += 1
        self._unsubscribe_all()
        logger.warning(
            "Session marked stale", extra={"conversation_id": short_id(self.conversation_id)}
        )

    # ------------------------------------------------------------------
    # Reconciliação
    # ------------------------------------------------------------------

    async def reconcile(self) -> None:
        """Rebusca conversa e histórico e aplica o mesmo merge idempotente.

        Também repara uma sessão marcada como stale, reassinando o feed.
        """
        if self._phase != SessionPhase.OPEN:
            return
        version = self._conversation_version
        try:
            conversation = await self._gateway.get_conversation(self.conversation_id)
            if not self.is_alive:
                return
            history = await self._gateway.get_messages(self.conversation_id)
        except (NotFoundError, AuthorizationError):
            if self.is_alive:
                self._become_unavailable()
            raise
        if not self.is_alive:
            return

        # Atualização do feed recebida durante a busca prevalece se for mais nova
        if self._conversation_version == version or self._is_newer(conversation):
            self._set_conversation(conversation)
        self._merge_all(history)

        if self._stale:
            try:
                self._subscribe()
            except ChatError as e:
                logger.warning("Resubscribe after reconcile failed", extra={"error": str(e)})
                return
            self._stale = False
            self._feed_failures = 0
            logger.info(
                "Session repaired", extra={"conversation_id": short_id(self.conversation_id)}
            )

    async def _poll_loop(self) -> None:
        while self.is_alive:
            await asyncio.sleep(self._poll_interval)
            if not self.is_alive:
                break
            try:
                await self.reconcile()
            except NotFoundError:
                break
            except AuthorizationError:
                break
            except ChatError as e:
                logger.warning(
                    "Reconcile failed",
                    extra={"conversation_id": short_id(self.conversation_id), "error": e.code},
                )

    def _cancel_polling(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    # ------------------------------------------------------------------
    # Encerramento
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Encerra a sessão; nenhuma entrega posterior altera o estado."""
        if self._phase == SessionPhase.CLOSED:
            return
        self._phase = SessionPhase.CLOSED
        self._subscription_generation += 1
        self._unsubscribe_all()
        self._cancel_polling()
        self._message_listeners.clear()
        self._conversation_listeners.clear()
        if self.typing is not None:
            await self.typing.teardown()
        logger.debug(
            "Session closed", extra={"conversation_id": short_id(self.conversation_id)}
        )
