"""Contrato do feed de mudanças em tempo real."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from portal_chat.domain.enums import ChangeType, Table


@dataclass(slots=True, frozen=True)
class ChangeEvent:
    """Notificação de alteração de uma linha."""

    table: Table
    change_type: ChangeType
    new: dict[str, Any] | None = None
    old: dict[str, Any] | None = None

    @property
    def row(self) -> dict[str, Any]:
        """Linha atual (ou removida, em DELETE)."""
        return self.new or self.old or {}

    def matches(self, column: str, value: Any) -> bool:
        return any(row is not None and row.get(column) == value for row in (self.new, self.old))


ChangeCallback = Callable[[ChangeEvent], None]
ErrorCallback = Callable[[Exception], None]


class Subscription(ABC):
    """Handle explícito de uma assinatura; o dono deve chamar unsubscribe()."""

    @property
    @abstractmethod
    def active(self) -> bool: ...

    @abstractmethod
    def unsubscribe(self) -> None: ...


class ChangeFeed(ABC):
    """Assinatura por (tabela, filtro de igualdade opcional)."""

    @abstractmethod
    def subscribe(
        self,
        table: Table,
        callback: ChangeCallback,
        *,
        filter: tuple[str, Any] | None = None,  # noqa: A002
        on_error: ErrorCallback | None = None,
    ) -> Subscription: ...

    @abstractmethod
    def publish(self, event: ChangeEvent) -> None: ...
