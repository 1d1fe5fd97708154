"""Dependências injetadas nas rotas."""

from __future__ import annotations

from fastapi import Request

from portal_chat.application.embed_tokens import EmbedTokenVerifier
from portal_chat.application.gateway import ChatGateway
from portal_chat.config.settings import Settings


def get_settings(request: Request) -> Settings:
    """Retorna settings da aplicação."""

    return request.app.state.settings


def get_gateway(request: Request) -> ChatGateway:
    """Retorna o gateway de chat ativo."""

    return request.app.state.gateway


def get_embed_verifier(request: Request) -> EmbedTokenVerifier:
    """Retorna o verificador de tokens embed."""

    return request.app.state.embed_verifier
