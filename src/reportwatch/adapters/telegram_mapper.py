"""Telegram-to-core message mapping adapter.

This keeps Telethon-specific details out of the core pipeline.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from telethon.tl.custom import Message

from reportwatch.core.models import ChatKind, InboundEvent

LOGGER = logging.getLogger(__name__)


class ParticipantCounter:
    """Resolve group participant counts, with a chat_id cache."""

    def __init__(self, client) -> None:
        self._client = client
        self._cache: dict[int, int] = {}

    async def count(self, chat_id: int) -> int:
        if chat_id in self._cache:
            return self._cache[chat_id]
        try:
            participants = await self._client.get_participants(chat_id, limit=0)
            total = int(getattr(participants, "total", 0) or 0)
        except Exception:
            # Channels without admin rights hide their member list.
            LOGGER.debug("Participant count unavailable for %s", chat_id)
            total = 0
        self._cache[chat_id] = total
        return total


def external_id_from_message(message: Message) -> str:
    """Telegram message ids are only unique per chat, so prefix the chat id."""

    return f"{message.chat_id}:{message.id}"


def chat_kind_from_message(message: Message) -> ChatKind:
    if getattr(message, "is_private", False):
        return ChatKind.DIRECT
    return ChatKind.GROUP


def chat_title_from_message(message: Message) -> Optional[str]:
    chat: Any = getattr(message, "chat", None)
    title = getattr(chat, "title", None)
    if title:
        return str(title)
    first = getattr(chat, "first_name", None)
    last = getattr(chat, "last_name", None)
    if first or last:
        return " ".join(part for part in [first, last] if part)
    username = getattr(chat, "username", None)
    if username:
        return f"@{username}"
    return None


def message_type_from_message(message: Message) -> str:
    if getattr(message, "photo", None):
        return "photo"
    if getattr(message, "video", None):
        return "video"
    if getattr(message, "voice", None) or getattr(message, "audio", None):
        return "audio"
    if getattr(message, "sticker", None):
        return "sticker"
    if getattr(message, "document", None):
        return "document"
    if getattr(message, "raw_text", None):
        return "text"
    return "unknown"


async def build_event(message: Message, counter: Optional[ParticipantCounter] = None) -> InboundEvent:
    """Build a core InboundEvent from a Telethon Message."""

    kind = chat_kind_from_message(message)
    participant_count = 1
    if kind is ChatKind.GROUP and counter is not None:
        participant_count = await counter.count(message.chat_id)

    sender_id = getattr(message, "sender_id", None) or message.chat_id
    # raw_text carries the caption for media messages.
    text = message.raw_text or ""

    return InboundEvent(
        external_id=external_id_from_message(message),
        chat_id=str(message.chat_id),
        sender_id=str(sender_id),
        raw_content=text,
        timestamp=message.date,
        chat_title=chat_title_from_message(message),
        chat_kind=kind,
        participant_count=participant_count,
        message_type=message_type_from_message(message),
    )
