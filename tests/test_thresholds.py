from __future__ import annotations

from datetime import datetime, timezone

from fakes import FakeStorage

from reportwatch.core.config import ThresholdConfig
from reportwatch.core.models import ReportRecord, ReportType
from reportwatch.core.thresholds import ThresholdEngine, crossed


def _report(message_id: str, report_type: ReportType = ReportType.SPAM, severity: int = 1, chat_id: str = "c1") -> ReportRecord:
    return ReportRecord(
        message_id=message_id,
        chat_id=chat_id,
        sender_id="u1",
        content="spam",
        report_type=report_type,
        severity=severity,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def test_crossed_is_edge_triggered() -> None:
    assert crossed(4, 5, 5)
    assert not crossed(5, 6, 5)
    assert not crossed(3, 4, 5)


def test_spam_rule_fires_on_fifth_report_only() -> None:
    storage = FakeStorage()
    engine = ThresholdEngine(storage, ThresholdConfig())

    fired = [engine.record(_report(f"m{i}")) for i in range(1, 8)]

    assert [len(alerts) for alerts in fired[:4]] == [0, 0, 0, 0]
    assert [alert.alert_type for alert in fired[4]] == ["spam_reports"]
    assert fired[5] == [] and fired[6] == []
    assert storage.counters[("c1", "spam")] == 7


def test_high_severity_fires_on_first_qualifying_report() -> None:
    storage = FakeStorage()
    engine = ThresholdEngine(storage, ThresholdConfig())

    alerts = engine.record(_report("m1", ReportType.VIOLATION, severity=3))

    assert [alert.alert_type for alert in alerts] == ["high_severity"]
    assert alerts[0].severity == 3
    assert alerts[0].id == 1
    assert storage.alerts[0].sent is False


def test_low_severity_does_not_count_as_high() -> None:
    storage = FakeStorage()
    engine = ThresholdEngine(storage, ThresholdConfig())

    engine.record(_report("m1", ReportType.GENERAL, severity=1))

    assert ("c1", "high_severity") not in storage.counters
    assert storage.counters[("c1", "total")] == 1
    assert storage.alerts == []


def test_one_report_can_fire_several_rules() -> None:
    storage = FakeStorage()
    engine = ThresholdEngine(storage, ThresholdConfig(high_severity=1, spam_reports=1, channel_reports=1))

    alerts = engine.record(_report("m1", ReportType.SPAM, severity=2))

    assert [alert.alert_type for alert in alerts] == ["high_severity", "spam_reports", "channel_reports"]


def test_counters_are_per_chat() -> None:
    storage = FakeStorage()
    engine = ThresholdEngine(storage, ThresholdConfig(spam_reports=2))

    engine.record(_report("a1", chat_id="a"))
    alerts = engine.record(_report("b1", chat_id="b"))

    assert alerts == []
    assert storage.counters[("a", "spam")] == 1
    assert storage.counters[("b", "spam")] == 1
