"""Per-chat report counters and threshold alerts (core domain)."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
import logging
from typing import List

from reportwatch.core.config import ThresholdConfig
from reportwatch.core.models import AlertRecord, ReportRecord
from reportwatch.core.ports import StoragePort

LOGGER = logging.getLogger(__name__)

HIGH_SEVERITY_COUNTER = "high_severity"
TOTAL_COUNTER = "total"


@dataclass(frozen=True)
class ThresholdRule:
    """Named predicate over one per-chat counter."""

    name: str
    counter: str
    threshold: int
    severity: int
    template: str


def build_threshold_rules(config: ThresholdConfig) -> List[ThresholdRule]:
    """Return the rules in evaluation order."""

    return [
        ThresholdRule(
            name="high_severity",
            counter=HIGH_SEVERITY_COUNTER,
            threshold=config.high_severity,
            severity=3,
            template="High-severity reports in chat {chat_id} reached {count}",
        ),
        ThresholdRule(
            name="spam_reports",
            counter="spam",
            threshold=config.spam_reports,
            severity=2,
            template="Spam reports in chat {chat_id} reached {count}",
        ),
        ThresholdRule(
            name="channel_reports",
            counter=TOTAL_COUNTER,
            threshold=config.channel_reports,
            severity=2,
            template="Total reports in chat {chat_id} reached {count}",
        ),
    ]


def crossed(previous: int, current: int, threshold: int) -> bool:
    """True only in the cycle where the counter reaches the threshold from below."""

    return previous < threshold <= current


class ThresholdEngine:
    """Increments durable counters and appends alerts to the outbox.

    Rules are edge-triggered: a rule fires once when its counter crosses the
    threshold and stays silent on later increments. Counters are never reset,
    so each rule fires at most once per chat.
    """

    def __init__(self, storage: StoragePort, config: ThresholdConfig) -> None:
        self._storage = storage
        self._rules = build_threshold_rules(config)

    @property
    def rules(self) -> List[ThresholdRule]:
        return list(self._rules)

    def _counters_for(self, report: ReportRecord) -> List[str]:
        counters = [report.report_type.value]
        if report.severity >= 2:
            counters.append(HIGH_SEVERITY_COUNTER)
        counters.append(TOTAL_COUNTER)
        return counters

    def record(self, report: ReportRecord) -> List[AlertRecord]:
        """Count a persisted report and return the alerts it triggered."""

        updated: dict[str, int] = {}
        for counter in self._counters_for(report):
            updated[counter] = self._storage.increment_report_counter(report.chat_id, counter)

        alerts: List[AlertRecord] = []
        # Every rule is evaluated; one report may trigger several alerts.
        for rule in self._rules:
            if rule.counter not in updated:
                continue
            current = updated[rule.counter]
            if not crossed(current - 1, current, rule.threshold):
                continue

            alert = AlertRecord(
                chat_id=report.chat_id,
                alert_type=rule.name,
                message=rule.template.format(chat_id=report.chat_id, count=current),
                severity=rule.severity,
                created_at=datetime.now(timezone.utc),
            )
            alert_id = self._storage.append_alert(alert)
            alerts.append(replace(alert, id=alert_id))
            LOGGER.info("Alert %s queued for %s (count=%s)", rule.name, report.chat_id, current)

        return alerts
