"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for storage, notification, and platform
adapters so that the core can be reused with different backends.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional, Protocol, Sequence

from reportwatch.core.events import ConnectorEvent
from reportwatch.core.models import (
    AlertRecord,
    ChatCounts,
    ChatDelta,
    ChatRecord,
    Classification,
    InboundEvent,
    ReportRecord,
)

EventSink = Callable[[ConnectorEvent], Awaitable[None]]


class StoragePort(Protocol):
    """Storage operations required by the core pipeline."""

    def save_message(self, event: InboundEvent, classification: Classification) -> Optional[int]:
        """Return the new row id, or None when the external id was already stored."""
        ...

    def save_report(self, record: ReportRecord) -> Optional[int]:
        """Return the new row id, or None when the message id was already reported."""
        ...

    def upsert_chat(self, delta: ChatDelta) -> ChatCounts:
        ...

    def increment_report_counter(self, chat_id: str, counter: str) -> int:
        ...

    def append_alert(self, record: AlertRecord) -> int:
        ...

    def list_unsent_alerts(self) -> Sequence[AlertRecord]:
        ...

    def mark_alert_sent(self, alert_id: int) -> None:
        ...


class NotifierPort(Protocol):
    """Alert delivery. Raises DeliveryError when the alert was not delivered."""

    async def send(self, alert: AlertRecord) -> None:
        ...


class ConnectorPort(Protocol):
    """Live chat-platform session.

    The connector reports everything it observes through the bound sink as
    ``ConnectorEvent`` values.
    """

    def bind(self, sink: EventSink) -> None:
        ...

    async def connect(self) -> None:
        ...

    async def request_challenge(self) -> None:
        ...

    async def disconnect(self) -> None:
        ...

    async def send_text(self, chat_id: str, text: str) -> bool:
        ...


class CommandStoragePort(Protocol):
    """Read and maintenance queries behind the in-chat commands."""

    def get_stats(self) -> dict[str, int]:
        ...

    def list_chats(self, limit: int = 10) -> Sequence[ChatRecord]:
        ...

    def backup(self, path: str) -> str:
        ...

    def vacuum(self) -> None:
        ...
