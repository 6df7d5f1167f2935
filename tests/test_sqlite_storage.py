from __future__ import annotations

from datetime import datetime, timezone

from reportwatch.adapters.sqlite_storage import SQLiteStorage
from reportwatch.core.classifier import classify
from reportwatch.core.models import (
    AlertRecord,
    ChatDelta,
    ChatKind,
    InboundEvent,
    ReportRecord,
    ReportStatus,
    ReportType,
)

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _storage(tmp_path) -> SQLiteStorage:
    storage = SQLiteStorage(str(tmp_path / "reportwatch.db"))
    storage.init_db()
    return storage


def _event(external_id: str, text: str = "spam report") -> InboundEvent:
    return InboundEvent(
        external_id=external_id,
        chat_id="-100",
        sender_id="7",
        raw_content=text,
        timestamp=NOW,
        chat_kind=ChatKind.GROUP,
    )


def _report(message_id: str) -> ReportRecord:
    return ReportRecord(
        message_id=message_id,
        chat_id="-100",
        sender_id="7",
        content="spam report",
        report_type=ReportType.SPAM,
        severity=2,
        created_at=NOW,
    )


def test_save_message_rejects_duplicate_external_id(tmp_path) -> None:
    storage = _storage(tmp_path)
    event = _event("-100:1")

    assert storage.save_message(event, classify(event.raw_content)) is not None
    assert storage.save_message(event, classify(event.raw_content)) is None


def test_save_report_rejects_duplicate_message_id(tmp_path) -> None:
    storage = _storage(tmp_path)

    first = storage.save_report(_report("-100:1"))
    second = storage.save_report(_report("-100:1"))

    assert first is not None
    assert second is None
    reports = storage.list_reports("-100")
    assert len(reports) == 1
    assert reports[0].status is ReportStatus.PENDING
    assert reports[0].report_type is ReportType.SPAM


def test_upsert_chat_accumulates_counts(tmp_path) -> None:
    storage = _storage(tmp_path)
    delta = ChatDelta(chat_id="-100", display_name="Mods", kind=ChatKind.GROUP, participant_count=5, reports=1)

    storage.upsert_chat(delta)
    counts = storage.upsert_chat(ChatDelta(chat_id="-100", display_name="Mods 2", kind=ChatKind.GROUP, participant_count=6, requests=1))

    assert (counts.message_count, counts.report_count, counts.request_count) == (2, 1, 1)
    chat = storage.get_chat("-100")
    assert chat.display_name == "Mods 2"
    assert chat.participant_count == 6


def test_counters_are_durable_per_chat(tmp_path) -> None:
    storage = _storage(tmp_path)

    assert storage.increment_report_counter("a", "spam") == 1
    assert storage.increment_report_counter("a", "spam") == 2
    assert storage.increment_report_counter("b", "spam") == 1

    reopened = SQLiteStorage(str(tmp_path / "reportwatch.db"))
    assert reopened.increment_report_counter("a", "spam") == 3


def test_alert_outbox_lifecycle(tmp_path) -> None:
    storage = _storage(tmp_path)
    for name in ["high_severity", "spam_reports"]:
        storage.append_alert(AlertRecord(chat_id="-100", alert_type=name, message=name, severity=2, created_at=NOW))

    unsent = storage.list_unsent_alerts()
    assert [alert.alert_type for alert in unsent] == ["high_severity", "spam_reports"]

    storage.mark_alert_sent(unsent[0].id)
    assert [alert.id for alert in storage.list_unsent_alerts()] == [unsent[1].id]


def test_stats_and_chat_listing(tmp_path) -> None:
    storage = _storage(tmp_path)
    storage.upsert_chat(ChatDelta(chat_id="-100", display_name="Mods", kind=ChatKind.GROUP, participant_count=5, reports=1))
    storage.upsert_chat(ChatDelta(chat_id="9", display_name="Private Chat", kind=ChatKind.DIRECT, participant_count=1))
    storage.save_report(_report("-100:1"))

    stats = storage.get_stats()

    assert stats["total_reports"] == 1
    assert stats["pending_reports"] == 1
    assert stats["high_severity_reports"] == 1
    assert stats["total_chats"] == 2
    assert stats["total_messages"] == 2
    assert stats["unsent_alerts"] == 0
    assert [chat.chat_id for chat in storage.list_chats(limit=1)] == ["-100"]


def test_cleanup_keeps_recent_messages(tmp_path) -> None:
    storage = _storage(tmp_path)
    event = _event("-100:1")
    storage.save_message(event, classify(event.raw_content))

    assert storage.cleanup_messages(retention_days=1) == 0
    # Still known, so a redelivery stays a duplicate.
    assert storage.save_message(event, classify(event.raw_content)) is None


def test_cleanup_keeps_messages_that_back_a_report(tmp_path) -> None:
    storage = _storage(tmp_path)
    reported, plain = _event("-100:1"), _event("-100:2", text="hello")
    storage.save_message(reported, classify(reported.raw_content))
    storage.save_message(plain, classify(plain.raw_content))
    storage.save_report(_report("-100:1"))

    assert storage.cleanup_messages(retention_days=-1) == 1
    # A redelivered report must not count again.
    assert storage.save_message(reported, classify(reported.raw_content)) is None
    assert storage.save_message(plain, classify(plain.raw_content)) is not None


def test_backup_and_vacuum(tmp_path) -> None:
    storage = _storage(tmp_path)
    storage.save_report(_report("-100:1"))
    target = tmp_path / "backups" / "copy.db"

    assert storage.backup(str(target)) == str(target)
    assert target.exists()
    copy = SQLiteStorage(str(target))
    assert copy.get_stats()["total_reports"] == 1

    storage.vacuum()
    assert storage.get_stats()["total_reports"] == 1
