"""Error taxonomy shared by the core and adapters."""

from __future__ import annotations


class ReportWatchError(Exception):
    """Base class for all reportwatch errors."""


class TransientConnectionError(ReportWatchError):
    """Connection dropped or could not be established; retry with backoff."""


class TerminalAuthError(ReportWatchError):
    """Session logged out or revoked. No automatic recovery."""


class ProcessingError(ReportWatchError):
    """Classification or persistence failed for a single inbound event."""

    def __init__(self, external_id: str, message: str) -> None:
        super().__init__(f"{external_id}: {message}")
        self.external_id = external_id


class QueueFullError(ReportWatchError):
    """Inbound queue is at capacity and the overflow policy is ``reject``."""


class DeliveryError(ReportWatchError):
    """An alert could not be delivered; it stays in the outbox."""
