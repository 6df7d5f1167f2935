from __future__ import annotations

from reportwatch.core.config import ConnectionPolicy
from reportwatch.core.connection import (
    ArmChallengeTimeout,
    Connect,
    ConnectionState,
    ConnectionStatus,
    PublishChallenge,
    RequestChallenge,
    ScheduleReconnect,
    StartProcessor,
    StopProcessor,
    Teardown,
    transition,
)
from reportwatch.core.events import (
    ChallengeExpired,
    CredentialChallenge,
    InitializeRequested,
    ReconnectDue,
    SessionClosed,
    SessionOpened,
    StopRequested,
)

POLICY = ConnectionPolicy(base_interval=5.0, max_reconnect_attempts=10, challenge_timeout=60.0)


def _status(state: ConnectionState, attempts: int = 0) -> ConnectionStatus:
    return ConnectionStatus(state=state, reconnect_attempts=attempts)


def test_initialize_connects_from_idle_only() -> None:
    status, effects = transition(ConnectionStatus(), InitializeRequested(), POLICY)
    assert status.state is ConnectionState.CONNECTING
    assert effects == [Connect()]

    connected = _status(ConnectionState.CONNECTED)
    assert transition(connected, InitializeRequested(), POLICY) == (connected, [])


def test_challenge_is_published_and_timed() -> None:
    status, effects = transition(_status(ConnectionState.CONNECTING), CredentialChallenge("tg://login?token=abc"), POLICY)

    assert status.state is ConnectionState.AWAITING_CREDENTIAL
    assert status.has_credential_challenge
    assert effects == [PublishChallenge("tg://login?token=abc"), ArmChallengeTimeout(60.0)]


def test_expired_challenge_requests_a_new_one() -> None:
    awaiting = ConnectionStatus(state=ConnectionState.AWAITING_CREDENTIAL, credential_challenge="x")

    status, effects = transition(awaiting, ChallengeExpired(), POLICY)

    assert status.state is ConnectionState.CONNECTING
    assert not status.has_credential_challenge
    assert effects == [RequestChallenge()]


def test_session_opened_resets_attempts_and_starts_processor() -> None:
    status, effects = transition(_status(ConnectionState.CONNECTING, attempts=4), SessionOpened(), POLICY)

    assert status.state is ConnectionState.CONNECTED
    assert status.reconnect_attempts == 0
    assert effects == [StartProcessor()]


def test_terminal_close_terminates_without_reconnect() -> None:
    status, effects = transition(
        _status(ConnectionState.CONNECTED, attempts=2),
        SessionClosed(terminal=True, detail="logged out"),
        POLICY,
    )

    assert status.state is ConnectionState.TERMINATED
    assert status.last_disconnect_reason == "logged out"
    assert not any(isinstance(effect, ScheduleReconnect) for effect in effects)
    assert effects == [StopProcessor(), Teardown()]


def test_transient_close_schedules_linear_backoff() -> None:
    status, effects = transition(
        _status(ConnectionState.CONNECTING, attempts=2),
        SessionClosed(terminal=False, detail="network down"),
        POLICY,
    )

    assert status.state is ConnectionState.RECONNECTING
    assert status.reconnect_attempts == 3
    assert effects == [ScheduleReconnect(delay=15.0)]


def test_attempts_never_exceed_the_bound() -> None:
    policy = ConnectionPolicy(base_interval=1.0, max_reconnect_attempts=3)
    status = _status(ConnectionState.CONNECTING)
    states = []
    for _ in range(5):
        status, _ = transition(status, SessionClosed(terminal=False), policy)
        assert status.reconnect_attempts <= policy.max_reconnect_attempts
        states.append(status.state)
        status, _ = transition(status, ReconnectDue(), policy)

    assert states[:3] == [ConnectionState.RECONNECTING] * 3
    assert states[3] is ConnectionState.TERMINATED
    assert status.state is ConnectionState.TERMINATED


def test_close_while_reconnecting_is_not_double_counted() -> None:
    reconnecting = _status(ConnectionState.RECONNECTING, attempts=1)
    assert transition(reconnecting, SessionClosed(terminal=False), POLICY) == (reconnecting, [])


def test_terminated_is_absorbing() -> None:
    terminated = _status(ConnectionState.TERMINATED)
    for event in [InitializeRequested(), SessionOpened(), ReconnectDue(), StopRequested(), SessionClosed(False)]:
        assert transition(terminated, event, POLICY) == (terminated, [])


def test_stop_returns_to_idle() -> None:
    status, effects = transition(_status(ConnectionState.RECONNECTING, attempts=3), StopRequested(), POLICY)

    assert status == ConnectionStatus()
    assert effects == [StopProcessor(), Teardown()]
