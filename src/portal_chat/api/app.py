"""Fábrica da aplicação FastAPI."""

from __future__ import annotations

from fastapi import FastAPI

from portal_chat.api.errors import register_error_handlers
from portal_chat.api.routes import router
from portal_chat.application.embed_tokens import EmbedTokenVerifier
from portal_chat.application.gateway import ChatGateway
from portal_chat.config.settings import Settings, get_settings
from portal_chat.domain.protocols.change_feed import ChangeFeed
from portal_chat.domain.protocols.conversation_store import ConversationStore
from portal_chat.domain.protocols.embed_token_store import EmbedTokenStore
from portal_chat.domain.protocols.identity_directory import IdentityDirectory
from portal_chat.domain.protocols.typing_store import TypingStore
from portal_chat.infra.change_feed_memory import InMemoryChangeFeed
from portal_chat.infra.embed_token_store_memory import InMemoryEmbedTokenStore
from portal_chat.infra.identity_memory import InMemoryIdentityDirectory
from portal_chat.infra.store_memory import InMemoryConversationStore
from portal_chat.infra.typing_store import create_typing_store
from portal_chat.observability.logging import configure_logging, get_logger
from portal_chat.observability.middleware import CorrelationIdMiddleware

logger = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    feed: ChangeFeed | None = None,
    store: ConversationStore | None = None,
    typing_store: TypingStore | None = None,
    embed_tokens: EmbedTokenStore | None = None,
    identities: IdentityDirectory | None = None,
) -> FastAPI:
    """Cria a aplicação FastAPI com o gateway de chat.

    Backends não informados usam implementações em memória (processo único).
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.service_name)

    errors = settings.validate_all()
    if errors:
        raise ValueError(
            f"Configuração inválida para '{settings.environment}': {'; '.join(errors)}"
        )

    app = FastAPI(title=settings.service_name, version=settings.version)
    app.add_middleware(CorrelationIdMiddleware)
    register_error_handlers(app)
    app.include_router(router)

    feed = feed or InMemoryChangeFeed()
    store = store or InMemoryConversationStore(feed)
    typing_store = typing_store or create_typing_store(settings, feed)
    verifier = EmbedTokenVerifier(
        tokens=embed_tokens or InMemoryEmbedTokenStore(), organizations=store
    )

    app.state.settings = settings
    app.state.feed = feed
    app.state.store = store
    app.state.typing_store = typing_store
    app.state.embed_verifier = verifier
    app.state.identities = identities or InMemoryIdentityDirectory()
    app.state.gateway = ChatGateway(
        store=store,
        typing_store=typing_store,
        embed_verifier=verifier,
        identities=app.state.identities,
        settings=settings,
    )

    logger.info(
        "chat_gateway_initialized",
        extra={
            "environment": settings.environment,
            "typing_backend": settings.typing_store_backend,
            "auto_assign_mode": settings.auto_assign_mode,
        },
    )
    return app
