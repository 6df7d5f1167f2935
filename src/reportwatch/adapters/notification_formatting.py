"""Shared alert formatting helpers.

Keeping formatting here prevents drift between notifiers and keeps alerts
consistent regardless of delivery channel.
"""

from __future__ import annotations

import html

from reportwatch.core.models import AlertRecord

SEVERITY_LABELS = {1: "low", 2: "medium", 3: "high"}
DIVIDER = "──────────────"


def severity_label(severity: int) -> str:
    return SEVERITY_LABELS.get(severity, str(severity))


def _timestamp(alert: AlertRecord) -> str:
    return alert.created_at.astimezone().strftime("%H:%M:%S %d-%m-%Y").strip()


def _format_markdown(alert: AlertRecord) -> str:
    """Create the Markdown body used by Saved Messages."""

    def escape_md(value: str) -> str:
        for ch in r"*[`":
            value = value.replace(ch, f"\\{ch}")
        return value

    lines = [
        f"[{_timestamp(alert)}]",
        f"**Alert:**    {escape_md(alert.alert_type)}",
        f"**Chat:**     {escape_md(alert.chat_id)}",
        f"**Severity:** {severity_label(alert.severity)}",
        DIVIDER,
        "",
        escape_md(alert.message),
        "",
        DIVIDER,
    ]
    return "\n".join(lines)


def _format_html(alert: AlertRecord) -> str:
    """Create the HTML body used by the Bot API notifier."""

    parts = [
        f"[{html.escape(_timestamp(alert))}]",
        f"<b>Alert:</b> {html.escape(alert.alert_type)}",
        f"<b>Chat:</b> {html.escape(alert.chat_id)}",
        f"<b>Severity:</b> {severity_label(alert.severity)}",
        DIVIDER,
        "",
        html.escape(alert.message),
        "",
        DIVIDER,
    ]
    return "\n".join(parts)


def format_alert(alert: AlertRecord, mode: str) -> str:
    """Return the alert formatted for the requested mode."""

    if mode == "markdown":
        return _format_markdown(alert)
    if mode == "html":
        return _format_html(alert)
    raise ValueError(f"Unsupported notification format: {mode}")


def alert_payload(alert: AlertRecord) -> dict:
    """JSON-serializable form of an alert, used by the webhook notifier."""

    return {
        "id": alert.id,
        "chat_id": alert.chat_id,
        "alert_type": alert.alert_type,
        "message": alert.message,
        "severity": alert.severity,
        "severity_label": severity_label(alert.severity),
        "created_at": alert.created_at.isoformat(),
    }
