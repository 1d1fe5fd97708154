"""Verificação de tokens do widget embutido."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime

from portal_chat.domain.errors import AuthorizationError, ValidationError
from portal_chat.domain.models import EmbedVerification, Organization, utcnow
from portal_chat.domain.protocols.conversation_store import ConversationStore
from portal_chat.domain.protocols.embed_token_store import EmbedTokenStore
from portal_chat.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)


def origin_domain(origin: str) -> str:
    """Extrai o host de uma origem (`https://app.example.com/x` -> `app.example.com`)."""
    value = origin.strip()
    for scheme in ("https://", "http://"):
        if value.startswith(scheme):
            value = value[len(scheme) :]
            break
    return value.split("/")[0]


def is_origin_allowed(allowed_domains: Iterable[str], origin: str) -> bool:
    """Aplica a allow-list de domínios.

    `*.example.com` aceita o domínio base e qualquer subdomínio; demais
    entradas precisam coincidir com o host ou com a origem completa.
    Lista vazia libera qualquer origem.
    """
    allowed = list(allowed_domains)
    if not allowed:
        return True

    host = origin_domain(origin)
    for domain in allowed:
        if domain.startswith("*."):
            base = domain[2:]
            if host == base or host.endswith("." + base):
                return True
        elif domain in (host, origin):
            return True
    return False


@dataclass(slots=True)
class EmbedTokenVerifier:
    """Valida token + origem e devolve a organização do widget."""

    tokens: EmbedTokenStore
    organizations: ConversationStore
    clock: Callable[[], datetime] = field(default=utcnow)

    async def verify(self, token: str | None, origin: str | None) -> EmbedVerification:
        if not token:
            raise ValidationError("Token is required")

        embed_token = await self.tokens.get_by_token(token)
        if embed_token is None or not embed_token.is_active:
            logger.info("Embed token not found or inactive")
            raise AuthorizationError("Invalid or inactive token")

        now = self.clock()
        if embed_token.expires_at is not None and embed_token.expires_at < now:
            logger.info("Embed token expired", extra={"token_id": short_id(embed_token.id)})
            raise AuthorizationError("Token has expired")

        if not is_origin_allowed(embed_token.allowed_domains, origin or ""):
            logger.warning(
                "Embed origin not allowed",
                extra={"token_id": short_id(embed_token.id), "origin": origin_domain(origin or "")},
            )
            raise AuthorizationError("Origin not allowed")

        await self.tokens.record_usage(embed_token.id, now)

        organization = await self.organizations.get_organization(embed_token.organization_id)
        if organization is None:
            organization = Organization(id=embed_token.organization_id)

        return EmbedVerification(organization=organization, token_id=embed_token.id)
