"""Inbound queue and its single sequential consumer.

Exactly one event is in flight at a time. That is what keeps per-chat counter
updates race-free without locks and makes alert order follow arrival order.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from reportwatch.core.config import QueueConfig
from reportwatch.core.errors import QueueFullError
from reportwatch.core.models import InboundEvent
from reportwatch.core.processor import MessageProcessor

LOGGER = logging.getLogger(__name__)


class InboundQueue:
    """Bounded FIFO buffer of inbound events with a backpressure policy."""

    def __init__(self, config: QueueConfig) -> None:
        self._config = config
        self._queue: asyncio.Queue[InboundEvent] = asyncio.Queue(maxsize=config.capacity)
        # One-slot holdover in front of the queue for an event taken but not processed.
        self._front: Optional[InboundEvent] = None

    @property
    def depth(self) -> int:
        return self._queue.qsize() + (1 if self._front is not None else 0)

    async def put(self, event: InboundEvent) -> None:
        """Append an event to the tail.

        With the ``block`` policy the producer waits for free space; with
        ``reject`` a full queue raises QueueFullError immediately.
        """

        if self._config.overflow == "reject":
            try:
                self._queue.put_nowait(event)
            except asyncio.QueueFull as exc:
                raise QueueFullError(f"Inbound queue full ({self._config.capacity} events)") from exc
            return
        await self._queue.put(event)

    async def get(self, timeout: float) -> Optional[InboundEvent]:
        """Return the head event, or None if nothing arrived within timeout."""

        if self._front is not None:
            event, self._front = self._front, None
            return event
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def push_front(self, event: InboundEvent) -> None:
        """Put back an event returned by get() so it is the next one out."""

        if self._front is not None:
            raise RuntimeError("Holdover slot already in use")
        self._front = event

    def task_done(self) -> None:
        self._queue.task_done()


class SequentialConsumer:
    """Drains the inbound queue one event at a time while the session is up."""

    def __init__(
        self,
        queue: InboundQueue,
        processor: MessageProcessor,
        config: QueueConfig,
        is_active: Callable[[], bool] = lambda: True,
    ) -> None:
        self._queue = queue
        self._processor = processor
        self._idle_poll = config.idle_poll_seconds
        self._is_active = is_active
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start the consume loop unless it is already running."""

        self._running = True
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(), name="reportwatch-consumer")

    def stop(self) -> None:
        """Ask the loop to exit; observed within one idle poll interval."""

        self._running = False

    async def wait_stopped(self) -> None:
        if self._task is not None:
            await self._task

    async def _run(self) -> None:
        LOGGER.info("Message consumer started")
        try:
            while self._running and self._is_active():
                event = await self._queue.get(self._idle_poll)
                if event is None:
                    continue
                if not (self._running and self._is_active()):
                    # The session went away while we waited; keep it for the next one.
                    self._queue.push_front(event)
                    break
                try:
                    await self._processor.handle(event)
                except Exception:
                    # One bad event never halts the pipeline; it is not retried.
                    LOGGER.exception("Error while processing message %s", event.external_id)
                finally:
                    self._queue.task_done()
        finally:
            self._running = False
            LOGGER.info("Message consumer stopped")

