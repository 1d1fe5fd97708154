"""Testes da verificação de tokens do widget embutido."""

from __future__ import annotations

from datetime import timedelta

import pytest

from portal_chat.application.embed_tokens import (
    EmbedTokenVerifier,
    is_origin_allowed,
    origin_domain,
)
from portal_chat.domain.errors import AuthorizationError, ValidationError
from portal_chat.domain.models import EmbedToken, Organization, utcnow
from portal_chat.infra.embed_token_store_memory import InMemoryEmbedTokenStore
from portal_chat.infra.store_memory import InMemoryConversationStore


class TestOriginMatching:
    """Allow-list de domínios."""

    def test_origin_domain_strips_scheme_and_path(self) -> None:
        assert origin_domain("https://app.acme.com/chat?x=1") == "app.acme.com"
        assert origin_domain("acme.com") == "acme.com"

    @pytest.mark.parametrize(
        "origin",
        ["https://acme.com", "https://help.acme.com", "http://a.b.acme.com"],
    )
    def test_wildcard_matches_base_and_subdomains(self, origin: str) -> None:
        assert is_origin_allowed(["*.acme.com"], origin) is True

    @pytest.mark.parametrize("origin", ["https://evilacme.com", "https://acme.com.evil.io"])
    def test_wildcard_rejects_lookalikes(self, origin: str) -> None:
        assert is_origin_allowed(["*.acme.com"], origin) is False

    def test_exact_entry(self) -> None:
        assert is_origin_allowed(["portal.acme.com"], "https://portal.acme.com") is True
        assert is_origin_allowed(["portal.acme.com"], "https://help.acme.com") is False

    def test_empty_allow_list_accepts_any_origin(self) -> None:
        assert is_origin_allowed([], "https://anything.io") is True


class TestEmbedTokenVerifier:
    """Validade, expiração e uso do token."""

    async def _verifier(self, **token_fields) -> tuple[EmbedTokenVerifier, InMemoryEmbedTokenStore]:
        tokens = InMemoryEmbedTokenStore()
        store = InMemoryConversationStore()
        await store.save_organization(Organization(id="org-1", name="Acme"))
        fields = {"id": "tok-1", "token": "secret", "organization_id": "org-1"}
        fields.update(token_fields)
        await tokens.save(EmbedToken(**fields))
        return EmbedTokenVerifier(tokens=tokens, organizations=store), tokens

    @pytest.mark.asyncio
    async def test_valid_token_returns_organization_and_counts_usage(self) -> None:
        verifier, tokens = await self._verifier(allowed_domains=["*.acme.com"])

        result = await verifier.verify("secret", "https://help.acme.com")

        assert result.valid is True
        assert result.organization.name == "Acme"
        assert result.token_id == "tok-1"
        stored = await tokens.get("tok-1")
        assert stored.usage_count == 1
        assert stored.last_used_at is not None

    @pytest.mark.asyncio
    async def test_missing_token(self) -> None:
        verifier, _ = await self._verifier()
        with pytest.raises(ValidationError):
            await verifier.verify(None, "https://acme.com")

    @pytest.mark.asyncio
    async def test_unknown_or_inactive_token(self) -> None:
        verifier, _ = await self._verifier(is_active=False)
        with pytest.raises(AuthorizationError):
            await verifier.verify("secret", "https://acme.com")
        with pytest.raises(AuthorizationError):
            await verifier.verify("other", "https://acme.com")

    @pytest.mark.asyncio
    async def test_expired_token(self) -> None:
        verifier, _ = await self._verifier(expires_at=utcnow() - timedelta(minutes=1))
        with pytest.raises(AuthorizationError, match="expired"):
            await verifier.verify("secret", "https://acme.com")

    @pytest.mark.asyncio
    async def test_origin_not_allowed_does_not_count_usage(self) -> None:
        verifier, tokens = await self._verifier(allowed_domains=["*.acme.com"])
        with pytest.raises(AuthorizationError, match="Origin"):
            await verifier.verify("secret", "https://evil.io")
        assert (await tokens.get("tok-1")).usage_count == 0
