"""Telethon connector adapter.

Translates the Telethon session lifecycle into core ConnectorEvent values.
Reconnect decisions are left to the core connection manager, so the client
must be built with Telethon's own auto-reconnect disabled.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from telethon import TelegramClient, errors, events

from reportwatch.adapters.telegram_mapper import ParticipantCounter, build_event
from reportwatch.core.errors import TerminalAuthError, TransientConnectionError
from reportwatch.core.events import (
    ConnectorEvent,
    CredentialChallenge,
    MessageReceived,
    SessionClosed,
    SessionOpened,
)
from reportwatch.core.ports import EventSink

LOGGER = logging.getLogger(__name__)

# 401-family errors mean the authorization itself is gone.
TERMINAL_ERRORS = (errors.UnauthorizedError, errors.AuthKeyDuplicatedError)


def is_terminal_error(exc: BaseException) -> bool:
    return isinstance(exc, TERMINAL_ERRORS)


def _peer(chat_id: str):
    stripped = chat_id.lstrip("-")
    if stripped.isdigit():
        return int(chat_id)
    return chat_id


class TelethonConnector:
    """ConnectorPort implementation backed by a Telethon user session."""

    def __init__(
        self,
        client: TelegramClient,
        two_factor_password: Optional[str] = None,
        challenge_timeout: float = 60.0,
    ) -> None:
        self._client = client
        self._password = two_factor_password
        self._challenge_timeout = challenge_timeout
        self._counter = ParticipantCounter(client)
        self._sink: Optional[EventSink] = None
        self._qr = None
        self._login_task: Optional[asyncio.Task] = None
        self._watch_task: Optional[asyncio.Task] = None
        self._handler_registered = False

    def bind(self, sink: EventSink) -> None:
        self._sink = sink

    async def _emit(self, event: ConnectorEvent) -> None:
        if self._sink is None:
            LOGGER.debug("No sink bound; dropping %s", type(event).__name__)
            return
        await self._sink(event)

    async def connect(self) -> None:
        """Open the transport and either resume the session or issue a challenge."""

        try:
            await self._client.connect()
            authorized = await self._client.is_user_authorized()
        except TERMINAL_ERRORS as exc:
            raise TerminalAuthError(str(exc)) from exc
        except (OSError, ConnectionError, asyncio.TimeoutError) as exc:
            raise TransientConnectionError(str(exc) or type(exc).__name__) from exc

        if not self._handler_registered:
            # Outgoing messages are our own and never classified.
            self._client.add_event_handler(self._on_new_message, events.NewMessage(incoming=True))
            self._handler_registered = True

        if authorized:
            await self._session_opened()
            return
        await self.request_challenge()

    async def request_challenge(self) -> None:
        """Issue a QR login URL; a previous one is recreated in place."""

        try:
            if self._qr is None:
                self._qr = await self._client.qr_login()
            else:
                await self._qr.recreate()
        except (OSError, ConnectionError) as exc:
            raise TransientConnectionError(str(exc) or type(exc).__name__) from exc

        self._cancel(self._login_task)
        self._login_task = asyncio.create_task(self._await_login(self._qr))
        await self._emit(CredentialChallenge(payload=self._qr.url))

    async def _await_login(self, qr) -> None:
        try:
            await qr.wait(timeout=self._challenge_timeout)
        except asyncio.TimeoutError:
            # The connection manager owns the challenge timeout and asks again.
            return
        except errors.SessionPasswordNeededError:
            self._login_task = None
            if not await self._sign_in_with_password():
                return
        except (OSError, ConnectionError) as exc:
            self._login_task = None
            await self._emit(SessionClosed(terminal=False, detail=str(exc) or type(exc).__name__))
            return
        # Detach first: the events emitted below may tear this connector down.
        self._login_task = None
        await self._session_opened()

    async def _sign_in_with_password(self) -> bool:
        if not self._password:
            await self._emit(SessionClosed(terminal=True, detail="2FA password required"))
            return False
        try:
            await self._client.sign_in(password=self._password)
        except errors.PasswordHashInvalidError:
            await self._emit(SessionClosed(terminal=True, detail="2FA password rejected"))
            return False
        return True

    async def _session_opened(self) -> None:
        self._qr = None
        self._cancel(self._watch_task)
        self._watch_task = asyncio.create_task(self._watch_disconnect())
        LOGGER.info("Telegram session authorized")
        await self._emit(SessionOpened())

    async def _watch_disconnect(self) -> None:
        try:
            await self._client.disconnected
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._watch_task = None
            await self._emit(SessionClosed(terminal=is_terminal_error(exc), detail=str(exc) or type(exc).__name__))
            return
        self._watch_task = None
        await self._emit(SessionClosed(terminal=False, detail="connection lost"))

    async def _on_new_message(self, event) -> None:
        try:
            inbound = await build_event(event.message, self._counter)
            await self._emit(MessageReceived(event=inbound))
        except Exception:
            LOGGER.exception("Error while mapping incoming message")

    async def disconnect(self) -> None:
        # Watchers go first so our own disconnect is not reported as a drop.
        self._cancel(self._watch_task)
        self._cancel(self._login_task)
        self._watch_task = None
        self._login_task = None
        if self._client.is_connected():
            await self._client.disconnect()

    async def send_text(self, chat_id: str, text: str) -> bool:
        try:
            await self._client.send_message(_peer(chat_id), text, parse_mode="md")
        except (errors.RPCError, OSError, ConnectionError) as exc:
            LOGGER.warning("Failed to send message to %s: %s", chat_id, exc)
            return False
        return True

    @staticmethod
    def _cancel(task: Optional[asyncio.Task]) -> None:
        if task is not None and not task.done():
            task.cancel()
