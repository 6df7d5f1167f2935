"""Connection state machine (core domain).

``transition`` is a pure function from (status, event) to (status, effects);
``ConnectionManager`` owns the live connector, runs the effects, and keeps
the reconnect and credential challenge timers. Feeding synthetic events into
``transition`` exercises every reconnect decision without a network session.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from enum import Enum
import logging
from typing import Awaitable, Callable, List, Optional, Tuple, Union

from reportwatch.core.config import ConnectionPolicy
from reportwatch.core.errors import QueueFullError, TerminalAuthError
from reportwatch.core.events import (
    ChallengeExpired,
    ConnectorEvent,
    CredentialChallenge,
    InitializeRequested,
    LifecycleEvent,
    MessageReceived,
    ReconnectDue,
    SessionClosed,
    SessionOpened,
    StopRequested,
)
from reportwatch.core.ports import ConnectorPort
from reportwatch.core.queue import InboundQueue, SequentialConsumer

LOGGER = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    IDLE = "idle"
    AWAITING_CREDENTIAL = "awaiting_credential"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    TERMINATED = "terminated"


# States in which a live or pending session exists.
_ACTIVE_STATES = frozenset(
    {
        ConnectionState.CONNECTING,
        ConnectionState.AWAITING_CREDENTIAL,
        ConnectionState.CONNECTED,
        ConnectionState.RECONNECTING,
    }
)


@dataclass(frozen=True)
class ConnectionStatus:
    state: ConnectionState = ConnectionState.IDLE
    reconnect_attempts: int = 0
    last_disconnect_reason: Optional[str] = None
    credential_challenge: Optional[str] = None

    @property
    def has_credential_challenge(self) -> bool:
        return self.credential_challenge is not None


@dataclass(frozen=True)
class StatusSnapshot:
    """Operator-facing view of the connection and the inbound backlog."""

    connection_state: str
    reconnect_attempts: int
    has_credential_challenge: bool
    queue_depth: int


@dataclass(frozen=True)
class Connect:
    pass


@dataclass(frozen=True)
class RequestChallenge:
    pass


@dataclass(frozen=True)
class PublishChallenge:
    payload: str


@dataclass(frozen=True)
class ArmChallengeTimeout:
    seconds: float


@dataclass(frozen=True)
class ScheduleReconnect:
    delay: float


@dataclass(frozen=True)
class StartProcessor:
    pass


@dataclass(frozen=True)
class StopProcessor:
    pass


@dataclass(frozen=True)
class Teardown:
    pass


Effect = Union[
    Connect,
    RequestChallenge,
    PublishChallenge,
    ArmChallengeTimeout,
    ScheduleReconnect,
    StartProcessor,
    StopProcessor,
    Teardown,
]


def _on_session_closed(
    status: ConnectionStatus,
    event: SessionClosed,
    policy: ConnectionPolicy,
) -> Tuple[ConnectionStatus, List[Effect]]:
    if event.terminal:
        terminated = replace(
            status,
            state=ConnectionState.TERMINATED,
            last_disconnect_reason=event.detail or "logged out",
            credential_challenge=None,
        )
        return terminated, [StopProcessor(), Teardown()]

    # A reconnect is already pending; a late close must not double count.
    if status.state is ConnectionState.RECONNECTING:
        return status, []

    attempts = status.reconnect_attempts + 1
    if attempts > policy.max_reconnect_attempts:
        terminated = replace(
            status,
            state=ConnectionState.TERMINATED,
            last_disconnect_reason=f"max reconnect attempts reached ({event.detail})",
            credential_challenge=None,
        )
        return terminated, [StopProcessor(), Teardown()]

    reconnecting = replace(
        status,
        state=ConnectionState.RECONNECTING,
        reconnect_attempts=attempts,
        last_disconnect_reason=event.detail,
        credential_challenge=None,
    )
    # Linear backoff, not exponential.
    return reconnecting, [ScheduleReconnect(delay=policy.base_interval * attempts)]


def transition(
    status: ConnectionStatus,
    event: Union[ConnectorEvent, LifecycleEvent],
    policy: ConnectionPolicy,
) -> Tuple[ConnectionStatus, List[Effect]]:
    """Return the next status and the effects to run for one event.

    TERMINATED is absorbing. Events that make no sense in the current state
    are ignored and return the status unchanged with no effects.
    """

    state = status.state
    if state is ConnectionState.TERMINATED:
        return status, []

    if isinstance(event, InitializeRequested):
        if state is not ConnectionState.IDLE:
            return status, []
        return replace(status, state=ConnectionState.CONNECTING), [Connect()]

    if isinstance(event, StopRequested):
        return ConnectionStatus(state=ConnectionState.IDLE), [StopProcessor(), Teardown()]

    if isinstance(event, CredentialChallenge):
        if state not in (ConnectionState.CONNECTING, ConnectionState.AWAITING_CREDENTIAL):
            return status, []
        awaiting = replace(
            status,
            state=ConnectionState.AWAITING_CREDENTIAL,
            credential_challenge=event.payload,
        )
        return awaiting, [PublishChallenge(event.payload), ArmChallengeTimeout(policy.challenge_timeout)]

    if isinstance(event, ChallengeExpired):
        if state is not ConnectionState.AWAITING_CREDENTIAL:
            return status, []
        return replace(status, state=ConnectionState.CONNECTING, credential_challenge=None), [RequestChallenge()]

    if isinstance(event, SessionOpened):
        if state not in (
            ConnectionState.CONNECTING,
            ConnectionState.AWAITING_CREDENTIAL,
            ConnectionState.RECONNECTING,
        ):
            return status, []
        connected = replace(
            status,
            state=ConnectionState.CONNECTED,
            reconnect_attempts=0,
            credential_challenge=None,
        )
        return connected, [StartProcessor()]

    if isinstance(event, SessionClosed):
        if state not in _ACTIVE_STATES:
            return status, []
        return _on_session_closed(status, event, policy)

    if isinstance(event, ReconnectDue):
        if state is not ConnectionState.RECONNECTING:
            return status, []
        return replace(status, state=ConnectionState.CONNECTING), [Connect()]

    # MessageReceived does not change the connection state.
    return status, []


class ConnectionManager:
    """Owns the platform session and feeds its messages into the queue."""

    def __init__(
        self,
        connector: ConnectorPort,
        queue: InboundQueue,
        consumer: SequentialConsumer,
        policy: ConnectionPolicy,
        on_challenge: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._connector = connector
        self._queue = queue
        self._consumer = consumer
        self._policy = policy
        self._on_challenge = on_challenge
        self._status = ConnectionStatus()
        self._reconnect_task: Optional[asyncio.Task] = None
        self._challenge_task: Optional[asyncio.Task] = None
        self._closed = asyncio.Event()
        connector.bind(self.dispatch)

    @property
    def state(self) -> ConnectionState:
        return self._status.state

    @property
    def connection_status(self) -> ConnectionStatus:
        return self._status

    def is_connected(self) -> bool:
        return self._status.state is ConnectionState.CONNECTED

    def status(self) -> StatusSnapshot:
        return StatusSnapshot(
            connection_state=self._status.state.value,
            reconnect_attempts=self._status.reconnect_attempts,
            has_credential_challenge=self._status.has_credential_challenge,
            queue_depth=self._queue.depth,
        )

    async def initialize(self) -> None:
        self._closed.clear()
        await self._apply(InitializeRequested())

    async def stop(self) -> None:
        await self._apply(StopRequested())
        self._cancel_timers()
        await self._consumer.wait_stopped()
        self._closed.set()

    async def wait_closed(self) -> None:
        """Block until the manager is stopped or terminated."""

        await self._closed.wait()

    async def dispatch(self, event: ConnectorEvent) -> None:
        """Single entry point for everything the connector reports."""

        if isinstance(event, MessageReceived):
            try:
                await self._queue.put(event.event)
            except QueueFullError:
                LOGGER.warning("Dropping message %s: inbound queue is full", event.event.external_id)
            return
        await self._apply(event)

    async def _apply(self, event: Union[ConnectorEvent, LifecycleEvent]) -> None:
        previous = self._status
        self._status, effects = transition(previous, event, self._policy)
        if self._status.state is not previous.state:
            LOGGER.info("Connection state %s -> %s", previous.state.value, self._status.state.value)
        self._cancel_stale_timers()
        for effect in effects:
            await self._run_effect(effect)

    async def _run_effect(self, effect: Effect) -> None:
        if isinstance(effect, Connect):
            await self._guarded(self._connector.connect)
        elif isinstance(effect, RequestChallenge):
            await self._guarded(self._connector.request_challenge)
        elif isinstance(effect, PublishChallenge):
            LOGGER.info("Credential challenge issued")
            if self._on_challenge is not None:
                self._on_challenge(effect.payload)
        elif isinstance(effect, ArmChallengeTimeout):
            self._cancel_task(self._challenge_task)
            self._challenge_task = asyncio.create_task(self._expire_challenge(effect.seconds))
        elif isinstance(effect, ScheduleReconnect):
            LOGGER.warning(
                "Connection closed (%s). Attempting reconnect %s/%s in %.1fs",
                self._status.last_disconnect_reason,
                self._status.reconnect_attempts,
                self._policy.max_reconnect_attempts,
                effect.delay,
            )
            self._cancel_task(self._reconnect_task)
            self._reconnect_task = asyncio.create_task(self._reconnect_later(effect.delay))
        elif isinstance(effect, StartProcessor):
            self._consumer.start()
        elif isinstance(effect, StopProcessor):
            self._consumer.stop()
        elif isinstance(effect, Teardown):
            await self._teardown()

    async def _guarded(self, operation: Callable[[], Awaitable[None]]) -> None:
        """Run a connector call, turning its failure into a close event."""

        try:
            await operation()
        except TerminalAuthError as exc:
            await self._apply(SessionClosed(terminal=True, detail=str(exc)))
        except Exception as exc:
            LOGGER.warning("Connector call failed: %s", exc)
            await self._apply(SessionClosed(terminal=False, detail=str(exc) or type(exc).__name__))

    async def _teardown(self) -> None:
        try:
            await self._connector.disconnect()
        except Exception:
            LOGGER.exception("Error while disconnecting from the platform")
        if self._status.state is ConnectionState.TERMINATED:
            LOGGER.error("Session terminated: %s", self._status.last_disconnect_reason)
            self._closed.set()

    async def _expire_challenge(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
        self._challenge_task = None
        LOGGER.info("Credential challenge expired; requesting a new one")
        await self._apply(ChallengeExpired())

    async def _reconnect_later(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._reconnect_task = None
        await self._apply(ReconnectDue())

    def _cancel_stale_timers(self) -> None:
        state = self._status.state
        if state is not ConnectionState.AWAITING_CREDENTIAL:
            self._cancel_task(self._challenge_task)
            self._challenge_task = None
        if state is not ConnectionState.RECONNECTING:
            self._cancel_task(self._reconnect_task)
            self._reconnect_task = None

    def _cancel_timers(self) -> None:
        self._cancel_task(self._challenge_task)
        self._cancel_task(self._reconnect_task)
        self._challenge_task = None
        self._reconnect_task = None

    @staticmethod
    def _cancel_task(task: Optional[asyncio.Task]) -> None:
        if task is not None and not task.done():
            task.cancel()
