"""Presença de agentes e disputa de atribuição (lado cliente)."""

from __future__ import annotations

import logging
from collections.abc import Callable

from portal_chat.application.gateway_client import ChatGatewayClient
from portal_chat.domain.enums import AgentStatusValue, ChangeType, Table
from portal_chat.domain.errors import ChatError
from portal_chat.domain.models import AgentProfile, ClaimResult
from portal_chat.domain.protocols.change_feed import ChangeEvent, ChangeFeed, Subscription
from portal_chat.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)

RosterListener = Callable[[list[AgentProfile]], None]


class AgentPresence:
    """Status próprio, roster da equipe e claim de conversas.

    O claim nunca é assumido localmente: o resultado autoritativo do gateway
    (vencedor ou não) vem acompanhado da conversa atualizada.
    """

    def __init__(self, gateway: ChatGatewayClient, feed: ChangeFeed) -> None:
        self._gateway = gateway
        self._feed = feed
        self._roster: dict[str, AgentProfile] = {}
        self._subscription: Subscription | None = None
        self._listeners: list[RosterListener] = []

    @property
    def roster(self) -> list[AgentProfile]:
        return sorted(self._roster.values(), key=lambda a: a.full_name)

    @property
    def available_agents(self) -> list[AgentProfile]:
        return [
            a for a in self.roster if a.is_active and a.status == AgentStatusValue.AVAILABLE
        ]

    def on_change(self, listener: RosterListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def set_status(self, status: AgentStatusValue) -> AgentProfile:
        profile = await self._gateway.set_agent_status(status)
        self._apply(profile)
        logger.info(
            "Agent status changed",
            extra={"staff_id": short_id(profile.staff_id), "status": str(status)},
        )
        return profile

    async def watch_roster(self) -> list[AgentProfile]:
        """Carrega os agentes ativos e acompanha mudanças de status."""
        if self._subscription is None:
            self._subscription = self._feed.subscribe(Table.AGENT_STATUS, self._on_change)
        agents = await self._gateway.list_agents()
        if self._subscription is None:
            return agents
        self._roster = {a.staff_id: a for a in agents}
        self._notify()
        return self.roster

    def _on_change(self, event: ChangeEvent) -> None:
        if event.change_type == ChangeType.DELETE:
            staff_id = event.row.get("staff_id")
            if staff_id is not None and self._roster.pop(staff_id, None) is not None:
                self._notify()
            return
        if event.new is not None:
            self._apply(AgentProfile.model_validate(event.new))

    def _apply(self, profile: AgentProfile) -> None:
        if not profile.is_active:
            self._roster.pop(profile.staff_id, None)
        else:
            self._roster[profile.staff_id] = profile
        self._notify()

    def _notify(self) -> None:
        snapshot = self.roster
        for listener in list(self._listeners):
            listener(snapshot)

    async def claim(self, conversation_id: str) -> ClaimResult:
        """Tenta assumir a conversa; perdedores recebem a visão atualizada."""
        try:
            result = await self._gateway.claim(conversation_id)
        except ChatError as e:
            logger.info(
                "Claim failed",
                extra={"conversation_id": short_id(conversation_id), "error_code": e.code},
            )
            raise
        logger.info(
            "Claim resolved",
            extra={"conversation_id": short_id(conversation_id), "won": result.won},
        )
        return result

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._roster.clear()
        self._listeners.clear()
