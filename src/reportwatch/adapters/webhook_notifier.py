"""Webhook notification adapter.

Posts each alert as JSON to every configured URL. The alert counts as
delivered only when every endpoint accepted it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.request
from typing import Sequence

from reportwatch import __version__
from reportwatch.adapters.notification_formatting import alert_payload
from reportwatch.core.errors import DeliveryError
from reportwatch.core.models import AlertRecord

LOGGER = logging.getLogger(__name__)


class WebhookNotifier:
    """Notifier adapter fanning alerts out to HTTP webhooks."""

    def __init__(self, urls: Sequence[str], timeout: float = 10.0) -> None:
        if not urls:
            raise ValueError("Webhook notifier needs at least one URL")
        self._urls = list(urls)
        self._timeout = timeout

    def _post(self, url: str, data: bytes) -> None:
        request = urllib.request.Request(url, data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        request.add_header("User-Agent", f"reportwatch/{__version__}")
        try:
            with urllib.request.urlopen(request, timeout=self._timeout):
                pass
        except urllib.error.HTTPError as e:
            raise DeliveryError(f"Webhook {url} returned {e.code}") from e
        except (urllib.error.URLError, OSError) as e:
            raise DeliveryError(f"Webhook {url} unreachable: {e}") from e

    async def send(self, alert: AlertRecord) -> None:
        data = json.dumps(alert_payload(alert)).encode("utf-8")
        failed = []
        for url in self._urls:
            try:
                await asyncio.to_thread(self._post, url, data)
            except DeliveryError as exc:
                LOGGER.warning("%s", exc)
                failed.append(url)
        if failed:
            raise DeliveryError(f"{len(failed)} of {len(self._urls)} webhooks failed for alert {alert.id}")
