"""Cliente HTTP do gateway de chat (POST /chat-api despachado por `action`)."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from portal_chat.application.gateway_client import ChatGatewayClient
from portal_chat.domain.enums import AgentStatusValue
from portal_chat.domain.errors import (
    ERRORS_BY_CODE,
    AuthorizationError,
    ChatError,
    ConversationClosedError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from portal_chat.domain.identity import AuthSession
from portal_chat.domain.models import (
    AgentProfile,
    ClaimResult,
    Conversation,
    Message,
    StartResult,
    Ticket,
    TicketRequest,
)
from portal_chat.infra.http import HttpClient, HttpError
from portal_chat.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)

_STATUS_ERRORS: dict[int, type[ChatError]] = {
    400: ValidationError,
    401: AuthorizationError,
    403: AuthorizationError,
    404: NotFoundError,
    409: ConversationClosedError,
}


def map_http_error(error: HttpError) -> ChatError:
    """Converte falha HTTP em erro de domínio (código do corpo, depois status)."""
    code = error.body.get("error")
    detail = error.body.get("detail") or str(error)
    error_type = ERRORS_BY_CODE.get(code) if isinstance(code, str) else None
    if error_type is None and error.status_code is not None:
        error_type = _STATUS_ERRORS.get(error.status_code)
    return (error_type or TransportError)(detail)


class HttpGatewayClient(ChatGatewayClient):
    """Fala com o gateway remoto usando o HttpClient compartilhado."""

    def __init__(self, http: HttpClient, base_url: str, auth: AuthSession) -> None:
        super().__init__(auth)
        self._http = http
        self._url = base_url

    async def _call(self, action: str, **fields: Any) -> dict[str, Any]:
        headers = self.auth.headers()
        payload = {"action": action, **{k: v for k, v in fields.items() if v is not None}}
        try:
            response = await self._http.post(self._url, json=payload, headers=headers)
        except HttpError as e:
            mapped = map_http_error(e)
            logger.info(
                "Gateway call failed",
                extra={"action": action, "status_code": e.status_code, "error_code": mapped.code},
            )
            raise mapped from e
        try:
            return response.json()
        except ValueError as e:
            raise TransportError("Invalid gateway response") from e

    async def get_conversations(self) -> list[Conversation]:
        data = await self._call("get_conversations")
        return [Conversation.model_validate(c) for c in data.get("conversations", [])]

    async def get_archived(self) -> list[Conversation]:
        data = await self._call("get_archived")
        return [Conversation.model_validate(c) for c in data.get("conversations", [])]

    async def get_conversation(self, conversation_id: str) -> Conversation:
        data = await self._call("get_conversation", conversationId=conversation_id)
        return Conversation.model_validate(data["conversation"])

    async def get_messages(self, conversation_id: str) -> list[Message]:
        data = await self._call("get_messages", conversationId=conversation_id)
        return [Message.model_validate(m) for m in data.get("messages", [])]

    async def mark_read(self, conversation_id: str) -> int:
        data = await self._call("mark_read", conversationId=conversation_id)
        return int(data.get("marked", 0))

    async def start_conversation(
        self,
        message: str,
        sender_name: str | None = None,
        sender_email: str | None = None,
        subject: str | None = None,
    ) -> StartResult:
        data = await self._call(
            "start_conversation",
            message=message,
            senderName=sender_name,
            senderEmail=sender_email,
            subject=subject,
        )
        return StartResult.model_validate(data)

    async def start_internal_conversation(
        self, recipient_id: str, message: str, subject: str | None = None
    ) -> Conversation:
        data = await self._call(
            "start_internal_conversation",
            recipientId=recipient_id,
            message=message,
            subject=subject,
        )
        return Conversation.model_validate(data["conversation"])

    async def send_message(
        self,
        conversation_id: str,
        message: str,
        attachments: Iterable[str] | None = None,
        sender_name: str | None = None,
    ) -> Message:
        data = await self._call(
            "send_message",
            conversationId=conversation_id,
            message=message,
            attachments=list(attachments) if attachments is not None else None,
            senderName=sender_name,
        )
        return Message.model_validate(data["message"])

    async def assign(self, conversation_id: str, agent_id: str | None = None) -> Conversation:
        data = await self._call("assign", conversationId=conversation_id, agentId=agent_id)
        return Conversation.model_validate(data["conversation"])

    async def claim(self, conversation_id: str) -> ClaimResult:
        return ClaimResult.model_validate(
            await self._call("claim", conversationId=conversation_id)
        )

    async def close(self, conversation_id: str) -> Conversation:
        data = await self._call("close", conversationId=conversation_id)
        return Conversation.model_validate(data["conversation"])

    async def reopen(self, conversation_id: str) -> Conversation:
        data = await self._call("reopen", conversationId=conversation_id)
        return Conversation.model_validate(data["conversation"])

    async def convert_to_ticket(
        self, conversation_id: str, request: TicketRequest | None = None
    ) -> Ticket:
        ticket_data = request.model_dump() if request else None
        data = await self._call(
            "convert_to_ticket", conversationId=conversation_id, ticketData=ticket_data
        )
        return Ticket.model_validate(data["ticket"])

    async def archive(self, conversation_id: str) -> Conversation:
        data = await self._call("archive", conversationId=conversation_id)
        return Conversation.model_validate(data["conversation"])

    async def restore(self, conversation_id: str) -> Conversation:
        data = await self._call("restore", conversationId=conversation_id)
        return Conversation.model_validate(data["conversation"])

    async def delete_permanently(self, conversation_id: str) -> bool:
        data = await self._call("delete_permanently", conversationId=conversation_id)
        return bool(data.get("success"))

    async def delete_bulk(self, conversation_ids: Iterable[str]) -> int:
        data = await self._call("delete_bulk", conversationIds=list(conversation_ids))
        return int(data.get("deleted", 0))

    async def toggle_star(self, conversation_id: str, is_starred: bool) -> Conversation:
        data = await self._call(
            "toggle_star", conversationId=conversation_id, isStarred=is_starred
        )
        return Conversation.model_validate(data["conversation"])

    async def set_agent_status(self, status: AgentStatusValue) -> AgentProfile:
        data = await self._call("set_agent_status", status=str(status))
        return AgentProfile.model_validate(data["agent"])

    async def list_agents(self) -> list[AgentProfile]:
        data = await self._call("list_agents")
        return [AgentProfile.model_validate(a) for a in data.get("agents", [])]

    async def aclose(self) -> None:
        await self._http.close()
