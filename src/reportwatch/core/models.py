"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class ChatKind(str, Enum):
    GROUP = "group"
    DIRECT = "direct"


class ReportType(str, Enum):
    SPAM = "spam"
    VIOLATION = "violation"
    INAPPROPRIATE = "inappropriate"
    GENERAL = "general"


class ReportStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


@dataclass(frozen=True)
class InboundEvent:
    """Raw platform message, owned by the inbound queue until consumed."""

    external_id: str
    chat_id: str
    sender_id: str
    raw_content: str
    timestamp: datetime
    chat_title: Optional[str] = None
    chat_kind: ChatKind = ChatKind.DIRECT
    participant_count: int = 1
    message_type: str = "text"


@dataclass(frozen=True)
class Classification:
    """Result of running message text through the keyword rules."""

    is_report: bool
    is_request: bool
    severity: int
    report_type: Optional[ReportType]
    confidence: float = 0.0


@dataclass(frozen=True)
class ChatDelta:
    """Upsert payload for a chat: metadata plus counter increments."""

    chat_id: str
    display_name: str
    kind: ChatKind
    participant_count: int
    messages: int = 1
    reports: int = 0
    requests: int = 0
    activity_at: Optional[datetime] = None


@dataclass(frozen=True)
class ChatCounts:
    """Counters of a chat after an upsert."""

    message_count: int
    report_count: int
    request_count: int


@dataclass(frozen=True)
class ChatRecord:
    chat_id: str
    display_name: str
    kind: ChatKind
    participant_count: int
    message_count: int
    report_count: int
    request_count: int
    last_activity: datetime


@dataclass(frozen=True)
class ReportRecord:
    """Persisted report. Immutable once created."""

    message_id: str
    chat_id: str
    sender_id: str
    content: str
    report_type: ReportType
    severity: int
    created_at: datetime
    status: ReportStatus = ReportStatus.PENDING


@dataclass(frozen=True)
class AlertRecord:
    """Outbox entry. Only the dispatcher flips ``sent``."""

    chat_id: str
    alert_type: str
    message: str
    severity: int
    created_at: datetime
    sent: bool = False
    id: Optional[int] = None
