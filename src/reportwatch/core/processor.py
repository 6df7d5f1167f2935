"""Core message processing pipeline.

This module is integration-agnostic. It only relies on the storage port,
enabling future frontends or adapters without changes here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import List, Optional

from reportwatch.core.classifier import classify
from reportwatch.core.commands import CommandHandler, parse_command
from reportwatch.core.config import ProcessingConfig
from reportwatch.core.errors import ProcessingError
from reportwatch.core.models import (
    AlertRecord,
    ChatDelta,
    ChatKind,
    Classification,
    InboundEvent,
    ReportRecord,
)
from reportwatch.core.ports import StoragePort
from reportwatch.core.thresholds import ThresholdEngine

LOGGER = logging.getLogger(__name__)

SKIPPED = "skipped"
DUPLICATE = "duplicate"
PROCESSED = "processed"
COMMAND = "command"

# Commands are logged but never classified, so "/report" is not a report.
_UNCLASSIFIED = Classification(is_report=False, is_request=False, severity=1, report_type=None)


@dataclass(frozen=True)
class ProcessingOutcome:
    status: str
    classification: Optional[Classification] = None
    report_id: Optional[int] = None
    alerts: List[AlertRecord] = field(default_factory=list)


def _display_name(event: InboundEvent) -> str:
    if event.chat_title:
        return event.chat_title
    if event.chat_kind is ChatKind.DIRECT:
        return "Private Chat"
    return event.chat_id


class MessageProcessor:
    """Orchestrates classification, persistence, and threshold evaluation."""

    def __init__(
        self,
        storage: StoragePort,
        thresholds: ThresholdEngine,
        config: Optional[ProcessingConfig] = None,
        commands: Optional[CommandHandler] = None,
    ) -> None:
        self._storage = storage
        self._thresholds = thresholds
        self._config = config or ProcessingConfig()
        self._commands = commands

    async def handle(self, event: InboundEvent) -> ProcessingOutcome:
        """Process one inbound event through the core pipeline."""

        # Media-only messages without captions are ignored
        if not event.raw_content.strip():
            return ProcessingOutcome(status=SKIPPED)

        command = parse_command(event.raw_content) if self._commands is not None else None
        if command is None:
            try:
                return self._process(event)
            except Exception as exc:
                raise ProcessingError(event.external_id, str(exc)) from exc

        try:
            fresh = self._log_command(event)
        except Exception as exc:
            raise ProcessingError(event.external_id, str(exc)) from exc
        if not fresh:
            return ProcessingOutcome(status=DUPLICATE)
        await self._commands.handle(event, command)
        return ProcessingOutcome(status=COMMAND)

    def _log_command(self, event: InboundEvent) -> bool:
        """Record a command message; False when it was already seen."""

        if self._storage.save_message(event, _UNCLASSIFIED) is None:
            LOGGER.info("Duplicate command %s skipped", event.external_id)
            return False
        self._storage.upsert_chat(
            ChatDelta(
                chat_id=event.chat_id,
                display_name=_display_name(event),
                kind=event.chat_kind,
                participant_count=event.participant_count,
                activity_at=event.timestamp,
            )
        )
        return True

    def _process(self, event: InboundEvent) -> ProcessingOutcome:
        classification = classify(event.raw_content)

        # Message-level idempotency: a platform may redeliver the same message
        # after a reconnect, and the message log rejects known external ids.
        if self._storage.save_message(event, classification) is None:
            LOGGER.info("Duplicate message %s skipped", event.external_id)
            return ProcessingOutcome(status=DUPLICATE, classification=classification)

        self._storage.upsert_chat(
            ChatDelta(
                chat_id=event.chat_id,
                display_name=_display_name(event),
                kind=event.chat_kind,
                participant_count=event.participant_count,
                messages=1,
                reports=int(classification.is_report),
                requests=int(classification.is_request),
                activity_at=event.timestamp,
            )
        )

        if not classification.is_report or classification.report_type is None:
            return ProcessingOutcome(status=PROCESSED, classification=classification)

        # Content is clipped to keep the DB row reasonably small without
        # losing the gist of the report.
        report = ReportRecord(
            message_id=event.external_id,
            chat_id=event.chat_id,
            sender_id=event.sender_id,
            content=event.raw_content[: self._config.max_content_chars].strip(),
            report_type=classification.report_type,
            severity=classification.severity,
            created_at=event.timestamp,
        )
        report_id = self._storage.save_report(report)
        if report_id is None:
            LOGGER.info("Report for %s already stored", event.external_id)
            return ProcessingOutcome(status=DUPLICATE, classification=classification)

        alerts = self._thresholds.record(report)
        LOGGER.info(
            "Report %s saved for %s (%s, severity=%s)",
            report_id,
            event.chat_id,
            report.report_type.value,
            report.severity,
        )
        return ProcessingOutcome(
            status=PROCESSED,
            classification=classification,
            report_id=report_id,
            alerts=alerts,
        )
