"""Connector events and the manager's own lifecycle events.

The connector talks to the core only through ``ConnectorEvent`` values, which
keeps the connection state machine testable without a network session.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from reportwatch.core.models import InboundEvent


@dataclass(frozen=True)
class CredentialChallenge:
    """Out-of-band pairing artifact, e.g. a QR login URL."""

    payload: str


@dataclass(frozen=True)
class SessionOpened:
    pass


@dataclass(frozen=True)
class SessionClosed:
    terminal: bool
    detail: str = ""


@dataclass(frozen=True)
class MessageReceived:
    event: InboundEvent


ConnectorEvent = Union[CredentialChallenge, SessionOpened, SessionClosed, MessageReceived]


@dataclass(frozen=True)
class InitializeRequested:
    pass


@dataclass(frozen=True)
class StopRequested:
    pass


@dataclass(frozen=True)
class ChallengeExpired:
    pass


@dataclass(frozen=True)
class ReconnectDue:
    pass


LifecycleEvent = Union[InitializeRequested, StopRequested, ChallengeExpired, ReconnectDue]
