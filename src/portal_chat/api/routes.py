"""Rotas HTTP: health, verificação de token embed e gateway de chat."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter, Depends, Request

from portal_chat.api.dependencies import get_embed_verifier, get_gateway, get_settings
from portal_chat.api.schemas import ChatAction, ChatRequest, EmbedVerifyRequest
from portal_chat.application.embed_tokens import EmbedTokenVerifier
from portal_chat.application.gateway import ChatGateway
from portal_chat.config.settings import Settings
from portal_chat.domain.errors import ValidationError
from portal_chat.domain.identity import EMBED_ORIGIN_HEADER, CallerContext
from portal_chat.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)
router = APIRouter()

_Handler = Callable[[ChatGateway, CallerContext, ChatRequest], Awaitable[dict[str, Any]]]


def _dump(model: Any) -> dict[str, Any]:
    return model.model_dump(mode="json")


def _require_id(req: ChatRequest) -> str:
    if not req.conversation_id:
        raise ValidationError("Conversation ID required")
    return req.conversation_id


async def _start(gw: ChatGateway, caller: CallerContext, req: ChatRequest) -> dict[str, Any]:
    result = await gw.start_conversation(
        caller,
        req.message,
        sender_name=req.sender_name,
        sender_email=req.sender_email,
        subject=req.subject,
        attachments=req.attachments,
    )
    return {
        "conversation": _dump(result.conversation),
        "message": _dump(result.message),
        "resumed": result.resumed,
    }


async def _start_internal(
    gw: ChatGateway, caller: CallerContext, req: ChatRequest
) -> dict[str, Any]:
    if not req.recipient_id:
        raise ValidationError("Recipient ID required")
    conversation = await gw.start_internal_conversation(
        caller, req.recipient_id, req.message, subject=req.subject
    )
    return {"conversation": _dump(conversation)}


async def _send(gw: ChatGateway, caller: CallerContext, req: ChatRequest) -> dict[str, Any]:
    message = await gw.send_message(
        caller,
        _require_id(req),
        req.message,
        attachments=req.attachments,
        sender_name=req.sender_name,
    )
    return {"message": _dump(message)}


async def _messages(gw: ChatGateway, caller: CallerContext, req: ChatRequest) -> dict[str, Any]:
    messages = await gw.get_messages(caller, _require_id(req))
    return {"messages": [_dump(m) for m in messages]}


async def _conversations(
    gw: ChatGateway, caller: CallerContext, req: ChatRequest
) -> dict[str, Any]:
    conversations = await gw.get_conversations(caller)
    return {"conversations": [_dump(c) for c in conversations]}


async def _archived(gw: ChatGateway, caller: CallerContext, req: ChatRequest) -> dict[str, Any]:
    conversations = await gw.get_archived(caller)
    return {"conversations": [_dump(c) for c in conversations]}


async def _conversation(
    gw: ChatGateway, caller: CallerContext, req: ChatRequest
) -> dict[str, Any]:
    return {"conversation": _dump(await gw.get_conversation(caller, _require_id(req)))}


async def _mark_read(gw: ChatGateway, caller: CallerContext, req: ChatRequest) -> dict[str, Any]:
    marked = await gw.mark_read(caller, _require_id(req))
    return {"success": True, "marked": marked}


async def _assign(gw: ChatGateway, caller: CallerContext, req: ChatRequest) -> dict[str, Any]:
    conversation = await gw.assign(caller, _require_id(req), req.agent_id)
    return {"success": True, "conversation": _dump(conversation)}


async def _claim(gw: ChatGateway, caller: CallerContext, req: ChatRequest) -> dict[str, Any]:
    return _dump(await gw.claim(caller, _require_id(req)))


async def _close(gw: ChatGateway, caller: CallerContext, req: ChatRequest) -> dict[str, Any]:
    conversation = await gw.close(caller, _require_id(req))
    return {"success": True, "conversation": _dump(conversation)}


async def _reopen(gw: ChatGateway, caller: CallerContext, req: ChatRequest) -> dict[str, Any]:
    conversation = await gw.reopen(caller, _require_id(req))
    return {"success": True, "conversation": _dump(conversation)}


async def _ticket(gw: ChatGateway, caller: CallerContext, req: ChatRequest) -> dict[str, Any]:
    request = req.ticket_data.to_request() if req.ticket_data else None
    ticket = await gw.convert_to_ticket(caller, _require_id(req), request)
    return {"ticket": _dump(ticket)}


async def _archive(gw: ChatGateway, caller: CallerContext, req: ChatRequest) -> dict[str, Any]:
    conversation = await gw.archive(caller, _require_id(req))
    return {"success": True, "conversation": _dump(conversation)}


async def _restore(gw: ChatGateway, caller: CallerContext, req: ChatRequest) -> dict[str, Any]:
    conversation = await gw.restore(caller, _require_id(req))
    return {"success": True, "conversation": _dump(conversation)}


async def _delete(gw: ChatGateway, caller: CallerContext, req: ChatRequest) -> dict[str, Any]:
    return {"success": await gw.delete_permanently(caller, _require_id(req))}


async def _delete_bulk(
    gw: ChatGateway, caller: CallerContext, req: ChatRequest
) -> dict[str, Any]:
    if not req.conversation_ids:
        raise ValidationError("Conversation IDs required")
    deleted = await gw.delete_bulk(caller, req.conversation_ids)
    return {"success": True, "deleted": deleted}


async def _star(gw: ChatGateway, caller: CallerContext, req: ChatRequest) -> dict[str, Any]:
    if req.is_starred is None:
        raise ValidationError("isStarred required")
    conversation = await gw.toggle_star(caller, _require_id(req), req.is_starred)
    return {"success": True, "conversation": _dump(conversation)}


async def _agent_status(
    gw: ChatGateway, caller: CallerContext, req: ChatRequest
) -> dict[str, Any]:
    if req.status is None:
        raise ValidationError("Status required")
    return {"agent": _dump(await gw.set_agent_status(caller, req.status))}


async def _agents(gw: ChatGateway, caller: CallerContext, req: ChatRequest) -> dict[str, Any]:
    return {"agents": [_dump(a) for a in await gw.list_agents(caller)]}


HANDLERS: dict[ChatAction, _Handler] = {
    ChatAction.START_CONVERSATION: _start,
    ChatAction.START_INTERNAL_CONVERSATION: _start_internal,
    ChatAction.SEND_MESSAGE: _send,
    ChatAction.GET_MESSAGES: _messages,
    ChatAction.GET_CONVERSATIONS: _conversations,
    ChatAction.GET_CONVERSATION: _conversation,
    ChatAction.GET_ARCHIVED: _archived,
    ChatAction.MARK_READ: _mark_read,
    ChatAction.ASSIGN: _assign,
    ChatAction.CLAIM: _claim,
    ChatAction.CLOSE: _close,
    ChatAction.REOPEN: _reopen,
    ChatAction.CONVERT_TO_TICKET: _ticket,
    ChatAction.ARCHIVE: _archive,
    ChatAction.RESTORE: _restore,
    ChatAction.DELETE_PERMANENTLY: _delete,
    ChatAction.DELETE_BULK: _delete_bulk,
    ChatAction.TOGGLE_STAR: _star,
    ChatAction.SET_AGENT_STATUS: _agent_status,
    ChatAction.LIST_AGENTS: _agents,
}


@router.get("/health")
def health(settings: Settings = Depends(get_settings)) -> dict[str, str]:
    """Health check simples."""

    return {"status": "ok", "service": settings.service_name, "version": settings.version}


@router.post("/embed/verify")
async def verify_embed_token(
    payload: EmbedVerifyRequest,
    request: Request,
    verifier: EmbedTokenVerifier = Depends(get_embed_verifier),
) -> dict[str, Any]:
    """Valida token do widget para a origem informada."""

    origin = request.headers.get(EMBED_ORIGIN_HEADER) or request.headers.get("origin") or ""
    verification = await verifier.verify(payload.token, origin)
    return {
        "valid": True,
        "organization": _dump(verification.organization),
        "tokenId": verification.token_id,
    }


@router.post("/chat-api")
async def chat_api(
    payload: ChatRequest,
    request: Request,
    gateway: ChatGateway = Depends(get_gateway),
) -> dict[str, Any]:
    """Entrada única do gateway, despachada por `action`."""

    caller = await gateway.authenticate(request.headers)
    logger.info(
        "Chat API action",
        extra={
            "action": str(payload.action),
            "kind": str(caller.kind),
            "can_agent_act": caller.can_agent_act,
        },
    )
    return await HANDLERS[payload.action](gateway, caller, payload)
