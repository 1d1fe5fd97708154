"""Testes da linha do tempo de mensagens (merge idempotente e ordenado)."""

from __future__ import annotations

import itertools
from datetime import timedelta

from portal_chat.application.timeline import MessageTimeline
from portal_chat.domain.enums import SenderType
from portal_chat.domain.models import Message, utcnow

BASE = utcnow()


def _msg(message_id: str, offset_seconds: int, **kwargs) -> Message:
    return Message(
        id=message_id,
        conversation_id="c1",
        sender_type=kwargs.pop("sender_type", SenderType.CLIENT),
        body=kwargs.pop("body", f"body {message_id}"),
        created_at=BASE + timedelta(seconds=offset_seconds),
        **kwargs,
    )


class TestIdempotentMerge:
    """A mesma mensagem por resposta e por eco resulta em uma cópia."""

    def test_response_then_echo(self) -> None:
        timeline = MessageTimeline()
        message = _msg("m1", 0)

        assert timeline.merge(message) is True
        assert timeline.merge(message.model_copy()) is False

        assert len(timeline) == 1
        assert "m1" in timeline

    def test_echo_then_response(self) -> None:
        timeline = MessageTimeline()
        echo = _msg("m1", 0)
        response = echo.model_copy()

        timeline.merge(echo)
        timeline.merge(response)

        assert [m.id for m in timeline] == ["m1"]

    def test_duplicate_only_updates_read_state(self) -> None:
        """Corpo é imutável; apenas is_read avança."""
        timeline = MessageTimeline()
        timeline.merge(_msg("m1", 0, body="original"))

        timeline.merge(_msg("m1", 0, body="altered", is_read=True, read_at=BASE))

        stored = timeline.messages[0]
        assert stored.body == "original"
        assert stored.is_read is True

    def test_merge_many_returns_only_new(self) -> None:
        timeline = MessageTimeline()
        timeline.merge(_msg("m1", 0))
        new = timeline.merge_many([_msg("m1", 0), _msg("m2", 1)])
        assert [m.id for m in new] == ["m2"]


class TestChronologicalOrder:
    """Ordem definida por created_at, nunca pela chegada."""

    def test_late_message_is_inserted_in_position(self) -> None:
        timeline = MessageTimeline()
        timeline.merge(_msg("m1", 0))
        timeline.merge(_msg("m3", 20))

        timeline.merge(_msg("m2", 10))

        assert [m.id for m in timeline.messages] == ["m1", "m2", "m3"]
        assert timeline.last.id == "m3"

    def test_every_arrival_order_yields_sorted_sequence(self) -> None:
        messages = [_msg(f"m{i}", i) for i in range(5)]
        for permutation in itertools.permutations(messages):
            timeline = MessageTimeline()
            for message in permutation:
                timeline.merge(message)
            # Cada mensagem entregue duas vezes (resposta + eco)
            for message in reversed(permutation):
                timeline.merge(message)
            assert [m.id for m in timeline.messages] == [f"m{i}" for i in range(5)]

    def test_same_timestamp_ties_broken_by_id(self) -> None:
        timeline = MessageTimeline()
        timeline.merge(_msg("b", 0))
        timeline.merge(_msg("a", 0))
        assert [m.id for m in timeline.messages] == ["a", "b"]


def test_clear_empties_timeline() -> None:
    timeline = MessageTimeline()
    timeline.merge(_msg("m1", 0))
    timeline.clear()
    assert len(timeline) == 0
    assert timeline.last is None
