"""Testes dos modelos de domínio e da taxonomia de erros."""

from __future__ import annotations

import pydantic
import pytest

from portal_chat.domain.enums import ConversationStatus, SenderType
from portal_chat.domain.errors import (
    ERRORS_BY_CODE,
    AuthorizationError,
    ConversationClosedError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from portal_chat.domain.models import AgentProfile, Conversation, Message


class TestConversation:
    """Modelo Conversation."""

    def test_defaults(self) -> None:
        """Nova conversa nasce sem dono, sem não lidas e sem favorito."""
        conversation = Conversation(id="c1")
        assert conversation.status == ConversationStatus.UNASSIGNED
        assert conversation.unread_count == 0
        assert conversation.is_starred is False
        assert conversation.is_closed is False
        assert conversation.is_archived is False

    def test_unread_count_cannot_be_negative(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            Conversation(id="c1", unread_count=-1)

    def test_round_trip_from_json_row(self) -> None:
        """Linhas publicadas no feed (mode=json) voltam ao modelo."""
        conversation = Conversation(id="c1", status=ConversationStatus.CLOSED)
        row = conversation.model_dump(mode="json")
        restored = Conversation.model_validate(row)
        assert restored.is_closed is True
        assert restored.created_at == conversation.created_at


    def test_assigned_requires_agent(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            Conversation(id="c1", status=ConversationStatus.ASSIGNED)

    def test_unassigned_has_no_agent(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            Conversation(id="c1", assigned_agent_id="agent-1")

    def test_closed_keeps_last_agent(self) -> None:
        conversation = Conversation(
            id="c1", status=ConversationStatus.CLOSED, assigned_agent_id="agent-1"
        )
        assert conversation.assigned_agent_id == "agent-1"


class TestMessage:
    """Modelo Message."""

    def test_body_must_not_be_empty(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            Message(id="m1", conversation_id="c1", sender_type=SenderType.CLIENT, body="")

    def test_system_message_has_no_sender_id(self) -> None:
        """Mensagens de sistema não podem ter sender_id."""
        with pytest.raises(pydantic.ValidationError):
            Message(
                id="m1",
                conversation_id="c1",
                sender_type=SenderType.SYSTEM,
                sender_id="agent-1",
                body="تم إغلاق المحادثة",
            )

    def test_agent_profile_count_non_negative(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            AgentProfile(staff_id="a1", full_name="سارة", active_conversations_count=-1)


class TestErrors:
    """Códigos estáveis dos erros de domínio."""

    def test_codes_are_unique_and_registered(self) -> None:
        expected = {
            "validation_error": ValidationError,
            "unauthorized": AuthorizationError,
            "not_found": NotFoundError,
            "conversation_closed": ConversationClosedError,
            "transport_error": TransportError,
        }
        for code, error_type in expected.items():
            assert ERRORS_BY_CODE[code] is error_type

    def test_message_defaults_to_class_name(self) -> None:
        error = NotFoundError()
        assert error.message == "NotFoundError"
        assert str(error) == "NotFoundError"
