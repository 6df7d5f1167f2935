"""Alert outbox dispatcher.

Delivery is at-least-once: an alert is marked sent only after the notifier
returned without error, so a failed alert is retried on every later sweep.
"""

from __future__ import annotations

import asyncio
import logging

from reportwatch.core.config import DispatcherConfig
from reportwatch.core.errors import DeliveryError
from reportwatch.core.ports import NotifierPort, StoragePort

LOGGER = logging.getLogger(__name__)


class AlertDispatcher:
    """Periodically drains unsent alerts through a notifier."""

    def __init__(self, storage: StoragePort, notifier: NotifierPort, config: DispatcherConfig) -> None:
        self._storage = storage
        self._notifier = notifier
        self._config = config
        self._stopping = asyncio.Event()

    async def sweep(self) -> int:
        """Attempt every unsent alert once and return how many were delivered."""

        delivered = 0
        for alert in self._storage.list_unsent_alerts():
            if alert.id is None:
                continue
            try:
                await self._notifier.send(alert)
            except DeliveryError as exc:
                LOGGER.warning("Alert %s not delivered: %s", alert.id, exc)
                continue
            except Exception:
                LOGGER.exception("Unexpected error while delivering alert %s", alert.id)
                continue
            self._storage.mark_alert_sent(alert.id)
            delivered += 1
            LOGGER.info("Alert %s (%s) delivered for %s", alert.id, alert.alert_type, alert.chat_id)
        return delivered

    async def run(self) -> None:
        """Sweep on a fixed interval until stop() is called."""

        LOGGER.info("Alert dispatcher started (every %ss)", self._config.sweep_interval)
        while not self._stopping.is_set():
            try:
                await self.sweep()
            except Exception:
                LOGGER.exception("Error while processing unsent alerts")
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self._config.sweep_interval)
            except asyncio.TimeoutError:
                continue
        LOGGER.info("Alert dispatcher stopped")

    def stop(self) -> None:
        """Ask run() to exit; a stop before run() starts is honoured too."""

        self._stopping.set()
