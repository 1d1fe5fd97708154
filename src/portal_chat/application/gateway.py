"""Gateway de chat (lado servidor): autorização e verbos de conversa.

Ponto único de mutação: clientes nunca escrevem direto no store. Cada verbo
recebe o principal já autenticado (`CallerContext`) e valida escopo:

- privilegiados (admin/editor) e staff podem agir como agentes
- clientes e visitantes embed só acessam conversas da própria organização
- exclusão permanente é restrita a privilegiados
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from portal_chat.application.embed_tokens import EmbedTokenVerifier
from portal_chat.config.settings import Settings
from portal_chat.domain.conversation_state import (
    ConversationAction,
    accepts_messages,
    require_transition,
)
from portal_chat.domain.enums import (
    AgentStatusValue,
    AutoAssignMode,
    ConversationEventType,
    ConversationSource,
    ConversationStatus,
    SenderType,
)
from portal_chat.domain.errors import (
    AuthorizationError,
    ConversationClosedError,
    NotFoundError,
    ValidationError,
)
from portal_chat.domain.identity import (
    EMBED_ORIGIN_HEADER,
    EMBED_TOKEN_HEADER,
    CallerContext,
    PrincipalKind,
)
from portal_chat.domain.models import (
    AgentProfile,
    ClaimResult,
    Conversation,
    ConversationEvent,
    Message,
    StartResult,
    Ticket,
    TicketRequest,
    utcnow,
)
from portal_chat.domain.protocols.conversation_store import ConversationStore
from portal_chat.domain.protocols.identity_directory import IdentityDirectory
from portal_chat.domain.protocols.typing_store import TypingStore, TypingStoreError
from portal_chat.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)

AUTO_ASSIGN_PERFORMER = "النظام (إسناد تلقائي)"
DEFAULT_TICKET_SUBJECT = "تذكرة من المحادثة"
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _new_id() -> str:
    return str(uuid.uuid4())


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def ticket_number_for(moment: datetime) -> str:
    """`CHAT-` + base36 (maiúsculo) do timestamp em milissegundos."""
    return f"CHAT-{to_base36(int(moment.timestamp() * 1000)).upper()}"


def clean_body(body: str | None, max_length: int) -> str:
    """Normaliza o corpo da mensagem; vazio após trim é inválido."""
    text = (body or "").strip()
    if not text:
        raise ValidationError("Message body must not be empty")
    if len(text) > max_length:
        raise ValidationError(f"Message body exceeds {max_length} characters")
    return text


@dataclass(slots=True)
class ChatGateway:
    """Casos de uso do chat sobre o ConversationStore."""

    store: ConversationStore
    typing_store: TypingStore
    embed_verifier: EmbedTokenVerifier
    identities: IdentityDirectory
    settings: Settings
    id_factory: Callable[[], str] = field(default=_new_id)
    clock: Callable[[], datetime] = field(default=utcnow)
    _round_robin_cursor: int = field(default=0, init=False)

    # ------------------------------------------------------------------
    # Autenticação e escopo
    # ------------------------------------------------------------------

    async def authenticate(self, headers: Mapping[str, str]) -> CallerContext:
        """Resolve o principal a partir dos headers (embed token ou bearer)."""
        embed_token = headers.get(EMBED_TOKEN_HEADER)
        if embed_token:
            origin = headers.get(EMBED_ORIGIN_HEADER) or headers.get("origin")
            verification = await self.embed_verifier.verify(embed_token, origin)
            return CallerContext(
                kind=PrincipalKind.EMBED,
                organization_id=verification.organization.id,
                organization_name=verification.organization.name,
                embed_token_id=verification.token_id,
                origin=origin,
            )

        authorization = headers.get("authorization") or headers.get("Authorization")
        if authorization and authorization.startswith("Bearer "):
            principal = await self.identities.resolve_bearer(authorization[len("Bearer ") :])
            if principal is None:
                raise AuthorizationError("Invalid auth token")
            return principal

        raise AuthorizationError("Authentication required")

    async def _load(self, caller: CallerContext, conversation_id: str | None) -> Conversation:
        if not conversation_id:
            raise ValidationError("Conversation ID required")
        conversation = await self.store.get_conversation(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        if not caller.can_agent_act and conversation.organization_id != caller.organization_id:
            logger.warning(
                "Conversation access denied",
                extra={"conversation_id": short_id(conversation_id), "kind": str(caller.kind)},
            )
            raise AuthorizationError("Access denied")
        return conversation

    @staticmethod
    def _require_agent(caller: CallerContext) -> None:
        if not caller.can_agent_act:
            raise AuthorizationError("Staff access required")

    @staticmethod
    def _require_privileged(caller: CallerContext) -> None:
        if not caller.is_privileged:
            raise AuthorizationError("Admin access required")

    def _visible_to(self, caller: CallerContext, conversation: Conversation) -> bool:
        if caller.is_privileged:
            return True
        if caller.is_staff:
            participants = conversation.metadata.get("participants") or []
            return (
                conversation.assigned_agent_id == caller.staff_id
                or conversation.status == ConversationStatus.UNASSIGNED
                or caller.staff_id in participants
            )
        if caller.organization_id is None:
            return False
        return conversation.organization_id == caller.organization_id

    async def _performer_name(self, caller: CallerContext) -> str:
        if caller.full_name:
            return caller.full_name
        if caller.staff_id:
            agent = await self.store.get_agent(caller.staff_id)
            if agent is not None:
                return agent.full_name
        if caller.can_agent_act:
            return self.settings.default_admin_name
        return self.settings.default_client_name

    # ------------------------------------------------------------------
    # Helpers de escrita
    # ------------------------------------------------------------------

    async def _log_event(
        self,
        conversation_id: str,
        event_type: ConversationEventType,
        performed_by: str | None = None,
        performer_name: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        await self.store.add_event(
            ConversationEvent(
                id=self.id_factory(),
                conversation_id=conversation_id,
                event_type=event_type,
                performed_by=performed_by,
                performer_name=performer_name,
                data=data or {},
                created_at=self.clock(),
            )
        )
        logger.info(
            "Conversation event",
            extra={"conversation_id": short_id(conversation_id), "event": str(event_type)},
        )

    async def _system_message(self, conversation_id: str, body: str) -> Message:
        return await self.store.append_message(
            Message(
                id=self.id_factory(),
                conversation_id=conversation_id,
                sender_type=SenderType.SYSTEM,
                sender_name=self.settings.system_sender_name,
                body=body,
                created_at=self.clock(),
            )
        )

    async def _client_message(
        self,
        conversation_id: str,
        caller: CallerContext,
        body: str,
        sender_name: str | None,
        attachments: Iterable[str] | None,
    ) -> Message:
        return await self.store.append_message(
            Message(
                id=self.id_factory(),
                conversation_id=conversation_id,
                sender_type=SenderType.CLIENT,
                sender_id=caller.client_account_id,
                sender_name=sender_name or self.settings.default_client_name,
                body=body,
                attachments=list(attachments or []),
                created_at=self.clock(),
            )
        )

    async def _clear_typing(self, conversation_id: str) -> None:
        try:
            await self.typing_store.clear_conversation(conversation_id)
        except TypingStoreError as e:
            logger.warning(
                "Typing cleanup failed",
                extra={"conversation_id": short_id(conversation_id), "error": str(e)},
            )

    async def _adjust_agent_load(self, staff_id: str | None, delta: int) -> None:
        if not staff_id:
            return
        agent = await self.store.get_agent(staff_id)
        if agent is None:
            return
        await self.store.update_agent(
            staff_id, active_conversations_count=agent.active_conversations_count + delta
        )

    async def _pick_agent(self) -> AgentProfile | None:
        try:
            mode = AutoAssignMode(self.settings.auto_assign_mode.lower())
        except ValueError:
            logger.warning("Unknown auto-assign mode", extra={"mode": self.settings.auto_assign_mode})
            return None
        if mode == AutoAssignMode.DISABLED:
            return None

        candidates = sorted(
            (
                a
                for a in await self.store.list_agents()
                if a.is_active and a.status == AgentStatusValue.AVAILABLE
            ),
            key=lambda a: a.staff_id,
        )
        if not candidates:
            return None

        if mode == AutoAssignMode.ROUND_ROBIN:
            agent = candidates[self._round_robin_cursor % len(candidates)]
            self._round_robin_cursor += 1
            return agent

        # LEAST_ACTIVE e BY_TEAM (sem times cadastrados)
        return min(
            candidates,
            key=lambda a: (
                a.active_conversations_count,
                a.last_activity_at.timestamp() if a.last_activity_at else 0.0,
            ),
        )

    # ------------------------------------------------------------------
    # Leitura
    # ------------------------------------------------------------------

    async def get_conversations(self, caller: CallerContext) -> list[Conversation]:
        conversations = await self.store.list_conversations(archived=False)
        return [c for c in conversations if self._visible_to(caller, c)]

    async def get_archived(self, caller: CallerContext) -> list[Conversation]:
        self._require_agent(caller)
        return await self.store.list_conversations(archived=True)

    async def get_conversation(self, caller: CallerContext, conversation_id: str) -> Conversation:
        return await self._load(caller, conversation_id)

    async def get_messages(self, caller: CallerContext, conversation_id: str) -> list[Message]:
        """Histórico em ordem crescente; marca as mensagens como lidas."""
        await self._load(caller, conversation_id)
        await self.store.mark_messages_read(conversation_id)
        return await self.store.list_messages(conversation_id)

    async def mark_read(self, caller: CallerContext, conversation_id: str) -> int:
        await self._load(caller, conversation_id)
        return await self.store.mark_messages_read(conversation_id)

    async def list_agents(self, caller: CallerContext) -> list[AgentProfile]:
        self._require_agent(caller)
        return [a for a in await self.store.list_agents() if a.is_active]

    # ------------------------------------------------------------------
    # Início de conversa e mensagens
    # ------------------------------------------------------------------

    async def start_conversation(
        self,
        caller: CallerContext,
        message: str | None,
        sender_name: str | None = None,
        sender_email: str | None = None,
        subject: str | None = None,
        attachments: Iterable[str] | None = None,
        source_domain: str | None = None,
    ) -> StartResult:
        """Inicia (ou retoma) a conversa do cliente/visitante."""
        body = clean_body(message, self.settings.message_max_length_chars)
        if caller.organization_id is None:
            raise ValidationError("Organization context required")

        existing = None
        if caller.embed_token_id:
            existing = await self.store.find_open_conversation(
                organization_id=caller.organization_id, embed_token_id=caller.embed_token_id
            )
        elif caller.client_account_id:
            existing = await self.store.find_open_conversation(
                client_account_id=caller.client_account_id
            )

        if existing is not None:
            sent = await self._client_message(existing.id, caller, body, sender_name, attachments)
            logger.info(
                "Conversation resumed", extra={"conversation_id": short_id(existing.id)}
            )
            conversation = await self.store.get_conversation(existing.id) or existing
            return StartResult(conversation=conversation, message=sent, resumed=True)

        source = ConversationSource.EMBED if caller.embed_token_id else ConversationSource.PORTAL
        agent = await self._pick_agent()
        conversation = await self.store.create_conversation(
            Conversation(
                id=self.id_factory(),
                subject=subject or self.settings.default_conversation_subject,
                status=ConversationStatus.ASSIGNED if agent else ConversationStatus.UNASSIGNED,
                source=source,
                source_domain=source_domain or caller.origin,
                assigned_agent_id=agent.staff_id if agent else None,
                organization_id=caller.organization_id,
                client_account_id=caller.client_account_id,
                embed_token_id=caller.embed_token_id,
                metadata={
                    "sender_name": sender_name,
                    "sender_email": sender_email,
                    "organization_name": caller.organization_name,
                },
                created_at=self.clock(),
                updated_at=self.clock(),
            )
        )
        await self._log_event(
            conversation.id,
            ConversationEventType.CREATED,
            performer_name=sender_name or "Client",
            data={"source": str(source)},
        )

        if self.settings.welcome_message:
            await self._system_message(conversation.id, self.settings.welcome_message)
        sent = await self._client_message(conversation.id, caller, body, sender_name, attachments)

        if agent is not None:
            await self._log_event(
                conversation.id,
                ConversationEventType.ASSIGNED,
                performed_by=agent.staff_id,
                performer_name=AUTO_ASSIGN_PERFORMER,
                data={"agent_name": agent.full_name, "auto": True},
            )
            await self._adjust_agent_load(agent.staff_id, +1)

        conversation = await self.store.get_conversation(conversation.id) or conversation
        return StartResult(conversation=conversation, message=sent, resumed=False)

    async def start_internal_conversation(
        self,
        caller: CallerContext,
        recipient_id: str,
        message: str | None,
        subject: str | None = None,
    ) -> Conversation:
        """Conversa entre membros da equipe; nasce atribuída ao destinatário."""
        if not caller.is_staff:
            raise AuthorizationError("Staff profile required")
        body = clean_body(message, self.settings.message_max_length_chars)
        recipient = await self.store.get_agent(recipient_id)
        if recipient is None or not recipient.is_active:
            raise NotFoundError("Recipient not found")

        sender_name = await self._performer_name(caller)
        conversation = await self.store.create_conversation(
            Conversation(
                id=self.id_factory(),
                subject=subject or self.settings.default_conversation_subject,
                status=ConversationStatus.ASSIGNED,
                source=ConversationSource.INTERNAL,
                assigned_agent_id=recipient.staff_id,
                metadata={
                    "sender_name": sender_name,
                    "participants": [caller.staff_id, recipient.staff_id],
                },
                created_at=self.clock(),
                updated_at=self.clock(),
            )
        )
        await self._log_event(
            conversation.id,
            ConversationEventType.CREATED,
            performed_by=caller.staff_id,
            performer_name=sender_name,
            data={"source": str(ConversationSource.INTERNAL)},
        )
        await self.store.append_message(
            Message(
                id=self.id_factory(),
                conversation_id=conversation.id,
                sender_type=SenderType.AGENT,
                sender_id=caller.staff_id,
                sender_name=sender_name,
                body=body,
                created_at=self.clock(),
            )
        )
        return await self.store.get_conversation(conversation.id) or conversation

    async def send_message(
        self,
        caller: CallerContext,
        conversation_id: str,
        message: str | None,
        attachments: Iterable[str] | None = None,
        sender_name: str | None = None,
    ) -> Message:
        """Grava a mensagem e devolve o registro canônico."""
        body = clean_body(message, self.settings.message_max_length_chars)
        conversation = await self._load(caller, conversation_id)
        if not accepts_messages(conversation.status):
            raise ConversationClosedError("Conversation is closed")

        if not caller.can_agent_act:
            return await self._client_message(
                conversation_id, caller, body, sender_name, attachments
            )

        if caller.staff_id:
            agent = await self.store.get_agent(caller.staff_id)
            name = (
                (agent.full_name if agent else None)
                or caller.full_name
                or sender_name
                or self.settings.default_agent_name
            )
        else:
            name = sender_name or self.settings.default_admin_name

        sent = await self.store.append_message(
            Message(
                id=self.id_factory(),
                conversation_id=conversation_id,
                sender_type=SenderType.AGENT,
                sender_id=caller.staff_id,
                sender_name=name,
                body=body,
                attachments=list(attachments or []),
                created_at=self.clock(),
            )
        )
        if caller.staff_id:
            await self.store.update_agent(caller.staff_id, last_activity_at=self.clock())
        return sent

    # ------------------------------------------------------------------
    # Atribuição e ciclo de vida
    # ------------------------------------------------------------------

    async def assign(
        self, caller: CallerContext, conversation_id: str, agent_id: str | None = None
    ) -> Conversation:
        """Atribui (ou transfere) a conversa; padrão é o próprio chamador."""
        self._require_agent(caller)
        conversation = await self._load(caller, conversation_id)
        target = agent_id or caller.staff_id
        if not target:
            raise ValidationError("Agent ID required")
        agent = await self.store.get_agent(target)
        if agent is None or not agent.is_active:
            raise NotFoundError("Agent not found")

        next_status = require_transition(conversation.status, ConversationAction.ASSIGN)
        previous = conversation.assigned_agent_id
        updated = await self.store.update_conversation(
            conversation_id, status=next_status, assigned_agent_id=target
        )

        is_transfer = previous is not None and previous != target
        await self._log_event(
            conversation_id,
            ConversationEventType.TRANSFERRED if is_transfer else ConversationEventType.ASSIGNED,
            performed_by=caller.staff_id,
            performer_name=await self._performer_name(caller),
            data={"from_agent": previous, "to_agent": target, "agent_name": agent.full_name},
        )
        if previous != target:
            await self._adjust_agent_load(previous, -1)
            await self._adjust_agent_load(target, +1)
        if caller.staff_id:
            await self.store.update_agent(caller.staff_id, last_activity_at=self.clock())
        return updated

    async def claim(self, caller: CallerContext, conversation_id: str) -> ClaimResult:
        """Assume conversa sem dono; no máximo um agente vence a disputa."""
        if not caller.is_staff:
            raise AuthorizationError("Staff profile required")
        await self._load(caller, conversation_id)

        next_status = require_transition(ConversationStatus.UNASSIGNED, ConversationAction.CLAIM)
        won = await self.store.compare_and_set(
            conversation_id,
            ConversationStatus.UNASSIGNED,
            status=next_status,
            assigned_agent_id=caller.staff_id,
        )
        if won is None:
            current = await self._load(caller, conversation_id)
            return ClaimResult(won=False, conversation=current)

        await self._log_event(
            conversation_id,
            ConversationEventType.ASSIGNED,
            performed_by=caller.staff_id,
            performer_name=await self._performer_name(caller),
            data={"claimed": True},
        )
        await self._adjust_agent_load(caller.staff_id, +1)
        return ClaimResult(won=True, conversation=won)

    async def close(self, caller: CallerContext, conversation_id: str) -> Conversation:
        self._require_agent(caller)
        conversation = await self._load(caller, conversation_id)
        next_status = require_transition(conversation.status, ConversationAction.CLOSE)

        updated = await self.store.update_conversation(
            conversation_id, status=next_status, closed_at=self.clock()
        )
        name = await self._performer_name(caller)
        await self._log_event(
            conversation_id,
            ConversationEventType.CLOSED,
            performed_by=caller.staff_id,
            performer_name=name,
        )
        await self._adjust_agent_load(conversation.assigned_agent_id, -1)
        await self._clear_typing(conversation_id)
        await self._system_message(conversation_id, f"تم إغلاق المحادثة بواسطة {name}")
        return await self.store.get_conversation(conversation_id) or updated

    async def reopen(self, caller: CallerContext, conversation_id: str) -> Conversation:
        """closed -> assigned; mantém o agente anterior (ou assume o chamador)."""
        self._require_agent(caller)
        conversation = await self._load(caller, conversation_id)
        next_status = require_transition(conversation.status, ConversationAction.REOPEN)

        agent_id = conversation.assigned_agent_id or caller.staff_id
        if not agent_id:
            raise ValidationError("Agent ID required to reopen")
        updated = await self.store.update_conversation(
            conversation_id,
            status=next_status,
            closed_at=None,
            assigned_agent_id=agent_id,
        )
        await self._log_event(
            conversation_id,
            ConversationEventType.REOPENED,
            performed_by=caller.staff_id,
            performer_name=await self._performer_name(caller),
        )
        await self._adjust_agent_load(agent_id, +1)
        return updated

    async def convert_to_ticket(
        self,
        caller: CallerContext,
        conversation_id: str,
        request: TicketRequest | None = None,
    ) -> Ticket:
        """Gera ticket a partir do histórico; não altera o status da conversa."""
        self._require_agent(caller)
        conversation = await self._load(caller, conversation_id)
        request = request or TicketRequest()

        history = await self.store.list_messages(
            conversation_id, limit=self.settings.ticket_history_limit
        )
        transcript = "\n".join(
            f"[{m.created_at:%Y-%m-%d %H:%M}] {m.sender_name or ''}: {m.body}" for m in history
        )

        guest_email = conversation.metadata.get("sender_email")
        if not guest_email and conversation.organization_id:
            organization = await self.store.get_organization(conversation.organization_id)
            guest_email = organization.contact_email if organization else None

        now = self.clock()
        ticket = await self.store.save_ticket(
            Ticket(
                id=self.id_factory(),
                ticket_number=ticket_number_for(now),
                subject=request.subject or conversation.subject or DEFAULT_TICKET_SUBJECT,
                description=f"--- محول من محادثة ---\n\n{transcript}",
                category=request.category,
                priority=request.priority,
                organization_id=conversation.organization_id,
                guest_name=conversation.metadata.get("sender_name"),
                guest_email=guest_email,
                assigned_to_staff=caller.staff_id,
                admin_note=f"محول من محادثة رقم: {conversation_id}",
                created_at=now,
            )
        )
        await self._log_event(
            conversation_id,
            ConversationEventType.CONVERTED_TO_TICKET,
            performed_by=caller.staff_id,
            data={"ticket_id": ticket.id, "ticket_number": ticket.ticket_number},
        )
        await self._system_message(
            conversation_id, f"تم تحويل هذه المحادثة إلى تذكرة رقم: {ticket.ticket_number}"
        )
        return ticket

    # ------------------------------------------------------------------
    # Arquivo, favoritos e exclusão
    # ------------------------------------------------------------------

    async def archive(self, caller: CallerContext, conversation_id: str) -> Conversation:
        self._require_agent(caller)
        await self._load(caller, conversation_id)
        updated = await self.store.update_conversation(conversation_id, archived_at=self.clock())
        await self._log_event(
            conversation_id,
            ConversationEventType.ARCHIVED,
            performed_by=caller.staff_id,
            performer_name=await self._performer_name(caller),
        )
        return updated

    async def restore(self, caller: CallerContext, conversation_id: str) -> Conversation:
        self._require_agent(caller)
        await self._load(caller, conversation_id)
        updated = await self.store.update_conversation(conversation_id, archived_at=None)
        await self._log_event(
            conversation_id,
            ConversationEventType.RESTORED,
            performed_by=caller.staff_id,
            performer_name=await self._performer_name(caller),
        )
        return updated

    async def toggle_star(
        self, caller: CallerContext, conversation_id: str, is_starred: bool
    ) -> Conversation:
        self._require_agent(caller)
        await self._load(caller, conversation_id)
        return await self.store.update_conversation(conversation_id, is_starred=is_starred)

    async def delete_permanently(self, caller: CallerContext, conversation_id: str) -> bool:
        """Remove conversa, mensagens, eventos e linhas de digitação."""
        self._require_privileged(caller)
        await self._load(caller, conversation_id)
        await self._clear_typing(conversation_id)
        deleted = await self.store.delete_conversation(conversation_id)
        logger.info(
            "Conversation permanently deleted",
            extra={"conversation_id": short_id(conversation_id)},
        )
        return deleted

    async def delete_bulk(self, caller: CallerContext, conversation_ids: Iterable[str]) -> int:
        """Exclusão em lote; ids inexistentes são ignorados."""
        self._require_privileged(caller)
        deleted = 0
        for conversation_id in dict.fromkeys(conversation_ids):
            if await self.store.get_conversation(conversation_id) is None:
                continue
            await self._clear_typing(conversation_id)
            if await self.store.delete_conversation(conversation_id):
                deleted += 1
        logger.info("Conversations bulk deleted", extra={"count": deleted})
        return deleted

    # ------------------------------------------------------------------
    # Presença de agentes
    # ------------------------------------------------------------------

    async def set_agent_status(
        self, caller: CallerContext, status: AgentStatusValue
    ) -> AgentProfile:
        """Status auto-declarado; propagado aos observadores do roster."""
        if not caller.is_staff or caller.staff_id is None:
            raise AuthorizationError("Staff profile required")
        updated = await self.store.update_agent(
            caller.staff_id, status=status, last_activity_at=self.clock()
        )
        if updated is None:
            raise NotFoundError("Agent not found")
        return updated
