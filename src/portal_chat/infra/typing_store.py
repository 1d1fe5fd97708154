"""Factory de TypingStore conforme backend configurado."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from portal_chat.infra.typing_store_memory import InMemoryTypingStore
from portal_chat.infra.typing_store_redis import RedisTypingStore
from portal_chat.observability.logging import get_logger

if TYPE_CHECKING:
    from portal_chat.config.settings import Settings
    from portal_chat.domain.protocols.change_feed import ChangeFeed
    from portal_chat.domain.protocols.typing_store import TypingStore

logger: logging.Logger = get_logger(__name__)


def create_typing_store(
    settings: Settings,
    feed: ChangeFeed | None = None,
    client: Any | None = None,
) -> TypingStore:
    """Cria o store de digitação.

    Args:
        settings: Configurações (backend, redis_url, TTL)
        feed: Feed onde as alterações de digitação são publicadas
        client: Cliente redis.asyncio já criado (opcional, útil em testes)

    Raises:
        ValueError: Backend inválido ou Redis sem URL
    """
    backend = settings.typing_store_backend.lower()

    if backend == "memory":
        return InMemoryTypingStore(feed)

    if backend == "redis":
        if client is None:
            if not settings.redis_url:
                raise ValueError("TYPING_STORE_BACKEND=redis requer REDIS_URL configurado")
            import redis.asyncio as redis_asyncio

            client = redis_asyncio.from_url(settings.redis_url, decode_responses=True)
        logger.info("Typing store backend: redis", extra={"ttl": settings.typing_ttl_seconds})
        return RedisTypingStore(client, feed, ttl_seconds=settings.typing_ttl_seconds)

    raise ValueError(f"Backend de digitação inválido: {backend}")
