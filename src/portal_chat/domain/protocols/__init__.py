"""Protocolos de domínio (portas) para persistência e tempo real."""

from portal_chat.domain.protocols.change_feed import (
    ChangeCallback,
    ChangeEvent,
    ChangeFeed,
    ErrorCallback,
    Subscription,
)
from portal_chat.domain.protocols.conversation_store import ConversationStore
from portal_chat.domain.protocols.embed_token_store import EmbedTokenStore
from portal_chat.domain.protocols.identity_directory import IdentityDirectory
from portal_chat.domain.protocols.typing_store import TypingStore, TypingStoreError

__all__ = [
    "ChangeCallback",
    "ChangeEvent",
    "ChangeFeed",
    "ConversationStore",
    "EmbedTokenStore",
    "ErrorCallback",
    "IdentityDirectory",
    "Subscription",
    "TypingStore",
    "TypingStoreError",
]
