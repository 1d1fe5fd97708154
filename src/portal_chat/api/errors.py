"""Mapeamento de erros de domínio para respostas HTTP."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from portal_chat.domain.errors import (
    AuthorizationError,
    ChatError,
    ConversationClosedError,
    InvalidTransitionError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from portal_chat.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)

# Ordem importa: subclasses antes das bases
STATUS_BY_ERROR: tuple[tuple[type[ChatError], int], ...] = (
    (InvalidTransitionError, 409),
    (ValidationError, 400),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (ConversationClosedError, 409),
    (TransportError, 502),
)


def status_for(error: ChatError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return 500


async def _chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    status_code = status_for(exc)
    log = logger.error if status_code >= 500 else logger.info
    log(
        "Chat request rejected",
        extra={"error_code": exc.code, "status_code": status_code, "path": request.url.path},
    )
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.code, "detail": exc.message},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ChatError, _chat_error_handler)  # type: ignore[arg-type]
