"""Telegram notification adapter for Saved Messages.

Formats a Markdown alert and sends it to the account's own Saved Messages
through the live connector session.
"""

from __future__ import annotations

from reportwatch.adapters.notification_formatting import format_alert
from reportwatch.core.errors import DeliveryError
from reportwatch.core.models import AlertRecord
from reportwatch.core.ports import ConnectorPort


class SavedMessagesNotifier:
    """Notifier adapter that sends alerts to the user's Saved Messages."""

    def __init__(self, connector: ConnectorPort) -> None:
        self._connector = connector

    async def send(self, alert: AlertRecord) -> None:
        message = format_alert(alert, mode="markdown")
        if not await self._connector.send_text("me", message):
            raise DeliveryError(f"Saved Messages delivery failed for alert {alert.id}")
