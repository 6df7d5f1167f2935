from __future__ import annotations

import asyncio

import pytest

from reportwatch.adapters.telegram_connector import TelethonConnector
from reportwatch.core.errors import TransientConnectionError
from reportwatch.core.events import CredentialChallenge, SessionClosed, SessionOpened


class DummyQRLogin:
    def __init__(self) -> None:
        self.url = "tg://login?token=first"
        self.recreated = 0

    async def recreate(self) -> None:
        self.recreated += 1
        self.url = f"tg://login?token={self.recreated + 1}"

    async def wait(self, timeout=None) -> None:
        await asyncio.sleep(3600)


class DummyClient:
    def __init__(self, authorized: bool = True, connect_error: "Exception | None" = None) -> None:
        self._authorized = authorized
        self._connect_error = connect_error
        self._connected = False
        self._disconnected: "asyncio.Future | None" = None
        self.handlers = []
        self.sent = []
        self.qr = DummyQRLogin()

    @property
    def disconnected(self) -> asyncio.Future:
        if self._disconnected is None:
            self._disconnected = asyncio.get_running_loop().create_future()
        return self._disconnected

    async def connect(self) -> None:
        if self._connect_error is not None:
            raise self._connect_error
        self._connected = True

    async def is_user_authorized(self) -> bool:
        return self._authorized

    def add_event_handler(self, callback, event) -> None:
        self.handlers.append(callback)

    async def qr_login(self) -> DummyQRLogin:
        return self.qr

    def is_connected(self) -> bool:
        return self._connected

    async def disconnect(self) -> None:
        self._connected = False

    async def send_message(self, entity, text, parse_mode=None) -> None:
        if not self._connected:
            raise ConnectionError("not connected")
        self.sent.append((entity, text))

    def drop(self) -> None:
        self._connected = False
        self.disconnected.set_result(None)


class Sink:
    def __init__(self) -> None:
        self.events = []

    async def __call__(self, event) -> None:
        self.events.append(event)


def _connector(client: DummyClient) -> tuple[TelethonConnector, Sink]:
    sink = Sink()
    connector = TelethonConnector(client, challenge_timeout=1.0)
    connector.bind(sink)
    return connector, sink


def test_authorized_session_opens_and_reports_drop() -> None:
    client = DummyClient(authorized=True)
    connector, sink = _connector(client)

    async def _run() -> None:
        await connector.connect()
        client.drop()
        await asyncio.sleep(0)
        await asyncio.sleep(0)

    asyncio.run(_run())

    assert sink.events == [SessionOpened(), SessionClosed(terminal=False, detail="connection lost")]
    assert len(client.handlers) == 1


def test_handler_is_registered_once_across_reconnects() -> None:
    client = DummyClient(authorized=True)
    connector, _ = _connector(client)

    async def _run() -> None:
        await connector.connect()
        await connector.disconnect()
        await connector.connect()
        await connector.disconnect()

    asyncio.run(_run())

    assert len(client.handlers) == 1


def test_unauthorized_session_issues_qr_challenge() -> None:
    client = DummyClient(authorized=False)
    connector, sink = _connector(client)

    async def _run() -> None:
        await connector.connect()
        await connector.request_challenge()
        await connector.disconnect()

    asyncio.run(_run())

    assert sink.events == [
        CredentialChallenge(payload="tg://login?token=first"),
        CredentialChallenge(payload="tg://login?token=2"),
    ]


def test_network_error_becomes_transient() -> None:
    connector, _ = _connector(DummyClient(connect_error=OSError("unreachable")))

    with pytest.raises(TransientConnectionError):
        asyncio.run(connector.connect())


def test_send_text_reports_failure_as_false() -> None:
    client = DummyClient()
    connector, _ = _connector(client)

    async def _run() -> tuple[bool, bool]:
        failed = await connector.send_text("me", "hello")
        await connector.connect()
        sent = await connector.send_text("-100123", "hello")
        await connector.disconnect()
        return failed, sent

    assert asyncio.run(_run()) == (False, True)
    assert client.sent == [(-100123, "hello")]
