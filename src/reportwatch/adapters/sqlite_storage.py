"""SQLite storage adapter.

Implements the core StoragePort using a simple SQLite database.
"""

from __future__ import annotations

import os
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from reportwatch.core.models import (
    AlertRecord,
    ChatCounts,
    ChatDelta,
    ChatKind,
    ChatRecord,
    Classification,
    InboundEvent,
    ReportRecord,
    ReportStatus,
    ReportType,
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value)


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the StoragePort contract."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - chats: one row per chat with activity counters
        - messages: log of every processed message, keyed by external id
        - reports: one row per message classified as a report
        - report_counters: per-chat threshold counters
        - alerts: outbox of threshold alerts awaiting delivery
        """

        with self._connect() as conn:
            # chats keeps metadata and running counters per chat.
            # Fields:
            # - chat_id: platform chat identifier (UNIQUE)
            # - kind: "group" or "direct"
            # - message_count/report_count/request_count: running totals
            # - last_activity: timestamp of the newest processed message
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chats (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    chat_id TEXT UNIQUE NOT NULL,
                    display_name TEXT,
                    kind TEXT CHECK(kind IN ('group', 'direct')) DEFAULT 'direct',
                    participant_count INTEGER DEFAULT 0,
                    message_count INTEGER NOT NULL DEFAULT 0,
                    report_count INTEGER NOT NULL DEFAULT 0,
                    request_count INTEGER NOT NULL DEFAULT 0,
                    last_activity TIMESTAMP NOT NULL,
                    created_at TIMESTAMP NOT NULL
                )
                """
            )
            # messages doubles as the idempotency log: a redelivered external_id
            # is rejected by the UNIQUE constraint.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    external_id TEXT UNIQUE NOT NULL,
                    chat_id TEXT NOT NULL,
                    sender_id TEXT NOT NULL,
                    message_type TEXT,
                    is_report INTEGER NOT NULL DEFAULT 0,
                    is_request INTEGER NOT NULL DEFAULT 0,
                    severity INTEGER NOT NULL DEFAULT 1,
                    date TIMESTAMP NOT NULL,
                    created_at TIMESTAMP NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS reports (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    message_id TEXT UNIQUE NOT NULL,
                    chat_id TEXT NOT NULL,
                    sender_id TEXT NOT NULL,
                    content TEXT NOT NULL,
                    report_type TEXT CHECK(report_type IN ('spam', 'violation', 'inappropriate', 'general'))
                        DEFAULT 'general',
                    severity INTEGER CHECK(severity BETWEEN 1 AND 3) DEFAULT 1,
                    status TEXT CHECK(status IN ('pending', 'reviewed', 'resolved', 'dismissed'))
                        DEFAULT 'pending',
                    created_at TIMESTAMP NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS report_counters (
                    chat_id TEXT NOT NULL,
                    counter TEXT NOT NULL,
                    count INTEGER NOT NULL DEFAULT 0,
                    PRIMARY KEY (chat_id, counter)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS alerts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    chat_id TEXT NOT NULL,
                    alert_type TEXT NOT NULL,
                    message TEXT NOT NULL,
                    severity INTEGER DEFAULT 1,
                    is_sent INTEGER NOT NULL DEFAULT 0,
                    created_at TIMESTAMP NOT NULL,
                    sent_at TIMESTAMP
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_reports_chat_id ON reports(chat_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_reports_created_at ON reports(created_at)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_reports_status ON reports(status)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_messages_created_at ON messages(created_at)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_alerts_unsent ON alerts(is_sent, id)")

    def save_message(self, event: InboundEvent, classification: Classification) -> Optional[int]:
        """Log a processed message; None when the external id is already known."""

        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO messages (
                    external_id,
                    chat_id,
                    sender_id,
                    message_type,
                    is_report,
                    is_request,
                    severity,
                    date,
                    created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.external_id,
                    event.chat_id,
                    event.sender_id,
                    event.message_type,
                    int(classification.is_report),
                    int(classification.is_request),
                    classification.severity,
                    event.timestamp.isoformat(),
                    _now(),
                ),
            )
            if cur.rowcount == 0:
                return None
            return int(cur.lastrowid)

    def save_report(self, record: ReportRecord) -> Optional[int]:
        """Insert a report; None when the message id was already reported."""

        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO reports (
                    message_id,
                    chat_id,
                    sender_id,
                    content,
                    report_type,
                    severity,
                    status,
                    created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.message_id,
                    record.chat_id,
                    record.sender_id,
                    record.content,
                    record.report_type.value,
                    record.severity,
                    record.status.value,
                    record.created_at.isoformat(),
                ),
            )
            if cur.rowcount == 0:
                return None
            return int(cur.lastrowid)

    def upsert_chat(self, delta: ChatDelta) -> ChatCounts:
        """Insert or update a chat row and return its counters."""

        activity = (delta.activity_at or datetime.now(timezone.utc)).isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO chats (
                    chat_id,
                    display_name,
                    kind,
                    participant_count,
                    message_count,
                    report_count,
                    request_count,
                    last_activity,
                    created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(chat_id) DO UPDATE SET
                    display_name = excluded.display_name,
                    kind = excluded.kind,
                    participant_count = excluded.participant_count,
                    message_count = message_count + excluded.message_count,
                    report_count = report_count + excluded.report_count,
                    request_count = request_count + excluded.request_count,
                    last_activity = excluded.last_activity
                """,
                (
                    delta.chat_id,
                    delta.display_name,
                    delta.kind.value,
                    delta.participant_count,
                    delta.messages,
                    delta.reports,
                    delta.requests,
                    activity,
                    _now(),
                ),
            )
            row = conn.execute(
                "SELECT message_count, report_count, request_count FROM chats WHERE chat_id = ?",
                (delta.chat_id,),
            ).fetchone()
        return ChatCounts(
            message_count=int(row["message_count"]),
            report_count=int(row["report_count"]),
            request_count=int(row["request_count"]),
        )

    def increment_report_counter(self, chat_id: str, counter: str) -> int:
        """Add one to a per-chat counter and return the new value."""

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO report_counters (chat_id, counter, count)
                VALUES (?, ?, 1)
                ON CONFLICT(chat_id, counter) DO UPDATE SET count = count + 1
                """,
                (chat_id, counter),
            )
            row = conn.execute(
                "SELECT count FROM report_counters WHERE chat_id = ? AND counter = ?",
                (chat_id, counter),
            ).fetchone()
        return int(row["count"])

    def append_alert(self, record: AlertRecord) -> int:
        """Append an alert to the outbox as unsent."""

        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO alerts (chat_id, alert_type, message, severity, is_sent, created_at)
                VALUES (?, ?, ?, ?, 0, ?)
                """,
                (
                    record.chat_id,
                    record.alert_type,
                    record.message,
                    record.severity,
                    record.created_at.isoformat(),
                ),
            )
            return int(cur.lastrowid)

    def list_unsent_alerts(self) -> list[AlertRecord]:
        """Return unsent alerts in creation order."""

        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM alerts WHERE is_sent = 0 ORDER BY id").fetchall()
        return [
            AlertRecord(
                id=int(row["id"]),
                chat_id=row["chat_id"],
                alert_type=row["alert_type"],
                message=row["message"],
                severity=int(row["severity"]),
                sent=False,
                created_at=_parse_ts(row["created_at"]),
            )
            for row in rows
        ]

    def mark_alert_sent(self, alert_id: int) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE alerts SET is_sent = 1, sent_at = ? WHERE id = ?",
                (_now(), alert_id),
            )

    def cleanup_messages(self, retention_days: int) -> int:
        """Delete message log rows older than the retention window.

        Rows backing a stored report are kept so a redelivered report stays a
        duplicate and never re-counts.
        """

        cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
        with self._connect() as conn:
            cur = conn.execute(
                """
                DELETE FROM messages
                WHERE created_at < ?
                  AND external_id NOT IN (SELECT message_id FROM reports)
                """,
                (cutoff.isoformat(),),
            )
            return cur.rowcount

    def backup(self, path: str) -> str:
        """Copy the live database to path with SQLite's online backup API."""

        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        source = self._connect()
        target = sqlite3.connect(path)
        try:
            source.backup(target)
        finally:
            target.close()
            source.close()
        return path

    def vacuum(self) -> None:
        conn = self._connect()
        try:
            conn.execute("VACUUM")
        finally:
            conn.close()

    def get_chat(self, chat_id: str) -> Optional[ChatRecord]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM chats WHERE chat_id = ?", (chat_id,)).fetchone()
        return self._chat_from_row(row) if row else None

    def list_chats(self, limit: int = 10) -> list[ChatRecord]:
        """Return the chats with the most reports, most recent activity first."""

        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM chats ORDER BY report_count DESC, last_activity DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [self._chat_from_row(row) for row in rows]

    def list_reports(self, chat_id: Optional[str] = None) -> list[ReportRecord]:
        """Return reports in insertion order, optionally for one chat."""

        query = "SELECT * FROM reports"
        params: tuple[Any, ...] = ()
        if chat_id is not None:
            query += " WHERE chat_id = ?"
            params = (chat_id,)
        query += " ORDER BY id"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [
            ReportRecord(
                message_id=row["message_id"],
                chat_id=row["chat_id"],
                sender_id=row["sender_id"],
                content=row["content"],
                report_type=ReportType(row["report_type"]),
                severity=int(row["severity"]),
                status=ReportStatus(row["status"]),
                created_at=_parse_ts(row["created_at"]),
            )
            for row in rows
        ]

    def get_stats(self) -> dict[str, int]:
        """Return report and message totals for operator summaries."""

        since_day = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
        since_week = (datetime.now(timezone.utc) - timedelta(days=7)).isoformat()
        with self._connect() as conn:
            reports = conn.execute(
                """
                SELECT
                    COUNT(*) AS total_reports,
                    COUNT(CASE WHEN created_at >= ? THEN 1 END) AS reports_today,
                    COUNT(CASE WHEN created_at >= ? THEN 1 END) AS reports_this_week,
                    COUNT(CASE WHEN status = 'pending' THEN 1 END) AS pending_reports,
                    COUNT(CASE WHEN severity >= 2 THEN 1 END) AS high_severity_reports
                FROM reports
                """,
                (since_day, since_week),
            ).fetchone()
            chats = conn.execute(
                """
                SELECT
                    COUNT(*) AS total_chats,
                    COALESCE(SUM(message_count), 0) AS total_messages,
                    COALESCE(SUM(request_count), 0) AS total_requests
                FROM chats
                """
            ).fetchone()
            unsent = conn.execute("SELECT COUNT(*) AS unsent_alerts FROM alerts WHERE is_sent = 0").fetchone()
        stats = {key: int(reports[key]) for key in reports.keys()}
        stats.update({key: int(chats[key]) for key in chats.keys()})
        stats["unsent_alerts"] = int(unsent["unsent_alerts"])
        return stats

    @staticmethod
    def _chat_from_row(row: sqlite3.Row) -> ChatRecord:
        return ChatRecord(
            chat_id=row["chat_id"],
            display_name=row["display_name"],
            kind=ChatKind(row["kind"]),
            participant_count=int(row["participant_count"]),
            message_count=int(row["message_count"]),
            report_count=int(row["report_count"]),
            request_count=int(row["request_count"]),
            last_activity=_parse_ts(row["last_activity"]),
        )
