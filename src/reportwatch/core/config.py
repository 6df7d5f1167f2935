"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet

OVERFLOW_POLICIES = ("block", "reject")


@dataclass(frozen=True)
class ConnectionPolicy:
    """Reconnect and credential challenge settings."""

    base_interval: float = 5.0
    max_reconnect_attempts: int = 10
    challenge_timeout: float = 60.0


@dataclass(frozen=True)
class QueueConfig:
    """Inbound queue capacity and backpressure settings."""

    capacity: int = 10000
    overflow: str = "block"
    idle_poll_seconds: float = 0.1

    def __post_init__(self) -> None:
        if self.overflow not in OVERFLOW_POLICIES:
            raise ValueError(f"Unsupported queue overflow policy: {self.overflow}")
        if self.capacity <= 0:
            raise ValueError("Queue capacity must be positive")


@dataclass(frozen=True)
class ThresholdConfig:
    """Alert thresholds per rule."""

    high_severity: int = 1
    spam_reports: int = 5
    channel_reports: int = 10


@dataclass(frozen=True)
class DispatcherConfig:
    """Alert outbox sweep settings."""

    sweep_interval: float = 30.0


@dataclass(frozen=True)
class ProcessingConfig:
    """Settings consumed by the message processor."""

    max_content_chars: int = 1000


@dataclass(frozen=True)
class CommandConfig:
    """In-chat command settings. Admin users are platform sender ids."""

    admin_users: FrozenSet[str] = frozenset()
    backup_dir: str = "backups"
