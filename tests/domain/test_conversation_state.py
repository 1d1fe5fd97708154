"""Testes da máquina de estados da conversa."""

from __future__ import annotations

import pytest

from portal_chat.domain.conversation_state import (
    TRANSITIONS,
    ConversationAction,
    accepts_messages,
    require_transition,
    validate_transition,
)
from portal_chat.domain.enums import ConversationStatus
from portal_chat.domain.errors import InvalidTransitionError, ValidationError


class TestValidTransitions:
    """Transições permitidas."""

    @pytest.mark.parametrize(
        ("current", "action", "expected"),
        [
            (ConversationStatus.UNASSIGNED, ConversationAction.CLAIM, ConversationStatus.ASSIGNED),
            (ConversationStatus.UNASSIGNED, ConversationAction.ASSIGN, ConversationStatus.ASSIGNED),
            (ConversationStatus.ASSIGNED, ConversationAction.ASSIGN, ConversationStatus.ASSIGNED),
            (ConversationStatus.UNASSIGNED, ConversationAction.CLOSE, ConversationStatus.CLOSED),
            (ConversationStatus.ASSIGNED, ConversationAction.CLOSE, ConversationStatus.CLOSED),
            (ConversationStatus.CLOSED, ConversationAction.REOPEN, ConversationStatus.ASSIGNED),
        ],
    )
    def test_transition_allowed(self, current, action, expected) -> None:
        """Deve retornar o próximo status sem motivo de erro."""
        ok, next_status, reason = validate_transition(current, action)
        assert ok is True
        assert next_status == expected
        assert reason == ""


class TestInvalidTransitions:
    """Transições proibidas."""

    def test_closed_only_leaves_through_reopen(self) -> None:
        """Conversa encerrada não pode ser assumida, atribuída nem fechada de novo."""
        for action in (ConversationAction.CLAIM, ConversationAction.ASSIGN, ConversationAction.CLOSE):
            ok, next_status, reason = validate_transition(ConversationStatus.CLOSED, action)
            assert ok is False
            assert next_status is None
            assert "closed" in reason

    def test_claim_requires_unassigned(self) -> None:
        """Claim em conversa já atribuída é inválido."""
        ok, _, _ = validate_transition(ConversationStatus.ASSIGNED, ConversationAction.CLAIM)
        assert ok is False

    def test_reopen_requires_closed(self) -> None:
        """Reabrir conversa aberta é inválido."""
        for status in (ConversationStatus.UNASSIGNED, ConversationStatus.ASSIGNED):
            ok, _, _ = validate_transition(status, ConversationAction.REOPEN)
            assert ok is False

    def test_require_transition_raises(self) -> None:
        """require_transition deve levantar InvalidTransitionError (subclasse de ValidationError)."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            require_transition(ConversationStatus.CLOSED, ConversationAction.CLOSE)
        assert isinstance(exc_info.value, ValidationError)
        assert exc_info.value.code == "invalid_transition"

    def test_no_transition_back_to_unassigned(self) -> None:
        """Nenhuma ação leva de volta a unassigned."""
        assert ConversationStatus.UNASSIGNED not in TRANSITIONS.values()


def test_accepts_messages_only_when_open() -> None:
    assert accepts_messages(ConversationStatus.UNASSIGNED) is True
    assert accepts_messages(ConversationStatus.ASSIGNED) is True
    assert accepts_messages(ConversationStatus.CLOSED) is False
