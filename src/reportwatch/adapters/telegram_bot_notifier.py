"""Telegram Bot API notification adapter.

Uses the Bot API for delivery so alerts can be routed via a bot chat.
"""

from __future__ import annotations

import asyncio
import json
import urllib.error
import urllib.request

from reportwatch.adapters.notification_formatting import format_alert
from reportwatch.core.errors import DeliveryError
from reportwatch.core.models import AlertRecord


class TelegramBotNotifier:
    """Notifier adapter that sends alerts via the Telegram Bot API."""

    def __init__(self, bot_token: str, chat_id: str, timeout: float = 10.0) -> None:
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._timeout = timeout

    def _endpoint(self) -> str:
        return f"https://api.telegram.org/bot{self._bot_token}/sendMessage"

    def _build_request(self, alert: AlertRecord) -> urllib.request.Request:
        payload = {
            "chat_id": self._chat_id,
            "text": format_alert(alert, mode="html"),
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(self._endpoint(), data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        return request

    def _post(self, request: urllib.request.Request) -> None:
        try:
            with urllib.request.urlopen(request, timeout=self._timeout):
                pass
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            raise DeliveryError(f"Bot API error {e.code}: {body}") from e
        except (urllib.error.URLError, OSError) as e:
            raise DeliveryError(f"Bot API unreachable: {e}") from e

    async def send(self, alert: AlertRecord) -> None:
        """Send the formatted alert via the Bot API."""

        # urllib blocks, so the request runs off the event loop.
        await asyncio.to_thread(self._post, self._build_request(alert))
