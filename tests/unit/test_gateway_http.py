"""Testes unitários do cliente HTTP do gateway."""

from __future__ import annotations

import json

import httpx
import pytest

from portal_chat.domain.enums import AgentStatusValue, TypingUserType
from portal_chat.domain.errors import (
    AuthorizationError,
    ConversationClosedError,
    InvalidTransitionError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from portal_chat.domain.identity import AuthSession
from portal_chat.infra.gateway_http import HttpGatewayClient, map_http_error
from portal_chat.infra.http import HttpClient, HttpClientConfig, HttpError

GATEWAY_URL = "https://chat.example.com/chat-api"

CONVERSATION = {"id": "c1", "status": "assigned", "assigned_agent_id": "agent-1"}
MESSAGE = {
    "id": "m1",
    "conversation_id": "c1",
    "sender_type": "agent",
    "sender_id": "agent-1",
    "body": "كيف أساعدك؟",
    "created_at": "2026-01-01T10:00:00+00:00",
}


def _auth() -> AuthSession:
    return AuthSession(
        user_id="agent-1",
        display_name="سارة",
        user_type=TypingUserType.AGENT,
        bearer_token="agent-token",
    )


def _client(handler, auth: AuthSession | None = None) -> tuple[HttpGatewayClient, list]:
    requests: list[httpx.Request] = []

    def recording(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    http = HttpClient(HttpClientConfig(transport=httpx.MockTransport(recording)))
    return HttpGatewayClient(http, GATEWAY_URL, auth or _auth()), requests


class TestMapHttpError:
    """Código do corpo tem precedência sobre o status."""

    @pytest.mark.parametrize(
        ("code", "expected"),
        [
            ("validation_error", ValidationError),
            ("invalid_transition", InvalidTransitionError),
            ("unauthorized", AuthorizationError),
            ("not_found", NotFoundError),
            ("conversation_closed", ConversationClosedError),
        ],
    )
    def test_code_from_body(self, code: str, expected: type) -> None:
        error = HttpError("HTTP 4xx", status_code=400, body={"error": code, "detail": "x"})
        mapped = map_http_error(error)
        assert type(mapped) is expected
        assert mapped.message == "x"

    @pytest.mark.parametrize(
        ("status", "expected"),
        [(400, ValidationError), (403, AuthorizationError), (404, NotFoundError)],
    )
    def test_status_fallback(self, status: int, expected: type) -> None:
        assert type(map_http_error(HttpError("HTTP", status_code=status))) is expected

    def test_network_failure_is_transport_error(self) -> None:
        assert type(map_http_error(HttpError("Timeout", is_retryable=True))) is TransportError

    def test_server_error_is_transport_error(self) -> None:
        assert type(map_http_error(HttpError("HTTP 500", status_code=500))) is TransportError


class TestHttpGatewayClient:
    """Envelope de requisição e parsing de respostas."""

    @pytest.mark.asyncio
    async def test_send_message_payload_and_headers(self) -> None:
        gateway, requests = _client(
            lambda request: httpx.Response(200, json={"message": MESSAGE})
        )

        message = await gateway.send_message("c1", "كيف أساعدك؟")

        assert message.id == "m1"
        body = json.loads(requests[0].content)
        assert body == {"action": "send_message", "conversationId": "c1", "message": "كيف أساعدك؟"}
        assert requests[0].headers["authorization"] == "Bearer agent-token"
        await gateway.aclose()

    @pytest.mark.asyncio
    async def test_embed_credentials_are_sent_as_headers(self) -> None:
        auth = AuthSession(
            user_id="guest",
            display_name="زائر",
            user_type=TypingUserType.EMBED,
            embed_token="tok",
            embed_origin="https://help.acme.com",
        )
        gateway, requests = _client(
            lambda request: httpx.Response(200, json={"conversations": [CONVERSATION]}), auth
        )

        conversations = await gateway.get_conversations()

        assert [c.id for c in conversations] == ["c1"]
        assert requests[0].headers["x-embed-token"] == "tok"
        assert requests[0].headers["x-embed-origin"] == "https://help.acme.com"

    @pytest.mark.asyncio
    async def test_claim_result(self) -> None:
        gateway, requests = _client(
            lambda request: httpx.Response(200, json={"won": False, "conversation": CONVERSATION})
        )

        result = await gateway.claim("c1")

        assert result.won is False
        assert result.conversation.assigned_agent_id == "agent-1"

    @pytest.mark.asyncio
    async def test_set_agent_status(self) -> None:
        gateway, requests = _client(
            lambda request: httpx.Response(
                200, json={"agent": {"staff_id": "agent-1", "full_name": "سارة", "status": "busy"}}
            )
        )

        profile = await gateway.set_agent_status(AgentStatusValue.BUSY)

        assert profile.status == AgentStatusValue.BUSY
        assert json.loads(requests[0].content) == {"action": "set_agent_status", "status": "busy"}

    @pytest.mark.asyncio
    async def test_domain_error_is_mapped(self) -> None:
        gateway, _ = _client(
            lambda request: httpx.Response(
                409, json={"error": "conversation_closed", "detail": "Conversation is closed"}
            )
        )

        with pytest.raises(ConversationClosedError, match="closed"):
            await gateway.send_message("c1", "مرحباً")

    @pytest.mark.asyncio
    async def test_invalid_json_is_transport_error(self) -> None:
        gateway, _ = _client(lambda request: httpx.Response(200, content=b"<html>"))

        with pytest.raises(TransportError):
            await gateway.get_conversations()

    @pytest.mark.asyncio
    async def test_signed_out_session_makes_no_request(self) -> None:
        auth = _auth()
        gateway, requests = _client(lambda request: httpx.Response(200, json={}), auth)
        auth.invalidate()

        with pytest.raises(AuthorizationError):
            await gateway.get_conversations()

        assert requests == []
