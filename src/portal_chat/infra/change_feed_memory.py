"""Feed de mudanças em memória (dev/testes e processo único)."""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any

from portal_chat.domain.enums import Table
from portal_chat.domain.errors import TransportError
from portal_chat.domain.protocols.change_feed import (
    ChangeCallback,
    ChangeEvent,
    ChangeFeed,
    ErrorCallback,
    Subscription,
)
from portal_chat.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


class _MemorySubscription(Subscription):
    def __init__(
        self,
        feed: InMemoryChangeFeed,
        sub_id: int,
        table: Table,
        callback: ChangeCallback,
        filter_: tuple[str, Any] | None,
        on_error: ErrorCallback | None,
    ) -> None:
        self._feed = feed
        self.sub_id = sub_id
        self.table = table
        self.callback = callback
        self.filter = filter_
        self.on_error = on_error
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._feed._detach(self.sub_id)

    def wants(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        if self.filter is None:
            return True
        column, value = self.filter
        return event.matches(column, value)


class InMemoryChangeFeed(ChangeFeed):
    """Feed em memória.

    `deferred=True` agenda as entregas via `loop.call_soon`, simulando a
    latência do canal real (eco pode chegar depois da resposta da mutation).
    """

    def __init__(self, *, deferred: bool = False) -> None:
        self._deferred = deferred
        self._subs: dict[int, _MemorySubscription] = {}
        self._ids = itertools.count(1)
        self._reject_subscribe = False

    @property
    def subscriber_count(self) -> int:
        return len(self._subs)

    def subscribe(
        self,
        table: Table,
        callback: ChangeCallback,
        *,
        filter: tuple[str, Any] | None = None,  # noqa: A002
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        if self._reject_subscribe:
            raise TransportError(f"Subscription to {table} rejected")
        sub = _MemorySubscription(self, next(self._ids), table, callback, filter, on_error)
        self._subs[sub.sub_id] = sub
        logger.debug(
            "Feed subscription opened",
            extra={"table": str(table), "sub_id": sub.sub_id, "filtered": filter is not None},
        )
        return sub

    def publish(self, event: ChangeEvent) -> None:
        targets = [sub for sub in list(self._subs.values()) if sub.wants(event)]
        for sub in targets:
            if self._deferred:
                asyncio.get_running_loop().call_soon(self._deliver, sub, event)
            else:
                self._deliver(sub, event)

    def _deliver(self, sub: _MemorySubscription, event: ChangeEvent) -> None:
        if not sub.active:
            return
        try:
            sub.callback(event)
        except Exception:
            logger.exception(
                "Feed subscriber failed",
                extra={"table": str(event.table), "sub_id": sub.sub_id},
            )

    def _detach(self, sub_id: int) -> None:
        self._subs.pop(sub_id, None)

    # Injeção de falhas (testes)

    def drop_subscriptions(
        self, table: Table | None = None, error: Exception | None = None
    ) -> int:
        """Derruba assinaturas ativas, notificando `on_error` de cada uma."""
        error = error or TransportError("channel dropped")
        dropped = [s for s in list(self._subs.values()) if table is None or s.table == table]
        for sub in dropped:
            sub.unsubscribe()
            if sub.on_error is not None:
                sub.on_error(error)
        logger.warning(
            "Feed subscriptions dropped",
            extra={"table": str(table) if table else None, "count": len(dropped)},
        )
        return len(dropped)

    def reject_subscriptions(self, reject: bool = True) -> None:
        self._reject_subscribe = reject
