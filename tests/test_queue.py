from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from reportwatch.core.config import QueueConfig
from reportwatch.core.errors import QueueFullError
from reportwatch.core.models import InboundEvent
from reportwatch.core.queue import InboundQueue, SequentialConsumer


def _event(external_id: str) -> InboundEvent:
    return InboundEvent(
        external_id=external_id,
        chat_id="1",
        sender_id="2",
        raw_content="report",
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


class RecordingProcessor:
    def __init__(self, fail_on: tuple[str, ...] = ()) -> None:
        self.handled: list[str] = []
        self._fail_on = fail_on

    async def handle(self, event: InboundEvent) -> None:
        if event.external_id in self._fail_on:
            raise RuntimeError("boom")
        self.handled.append(event.external_id)


async def _consume(queue: InboundQueue, processor: RecordingProcessor, config: QueueConfig, expected: int) -> None:
    consumer = SequentialConsumer(queue, processor, config)
    consumer.start()
    for _ in range(200):
        if queue.depth == 0 and len(processor.handled) >= expected:
            break
        await asyncio.sleep(0.01)
    consumer.stop()
    await consumer.wait_stopped()


def test_reject_policy_raises_when_full() -> None:
    async def _run() -> None:
        queue = InboundQueue(QueueConfig(capacity=1, overflow="reject"))
        await queue.put(_event("a"))
        with pytest.raises(QueueFullError):
            await queue.put(_event("b"))
        assert queue.depth == 1

    asyncio.run(_run())


def test_get_times_out_to_none() -> None:
    async def _run():
        queue = InboundQueue(QueueConfig())
        return await queue.get(timeout=0.01)

    assert asyncio.run(_run()) is None


def test_unknown_overflow_policy_is_rejected() -> None:
    with pytest.raises(ValueError):
        QueueConfig(overflow="drop_oldest")


def test_consumer_preserves_arrival_order() -> None:
    config = QueueConfig(idle_poll_seconds=0.01)
    processor = RecordingProcessor()

    async def _run() -> None:
        queue = InboundQueue(config)
        for name in ["a", "b", "c", "d"]:
            await queue.put(_event(name))
        await _consume(queue, processor, config, expected=4)

    asyncio.run(_run())

    assert processor.handled == ["a", "b", "c", "d"]


def test_failing_event_does_not_stop_consumer() -> None:
    config = QueueConfig(idle_poll_seconds=0.01)
    processor = RecordingProcessor(fail_on=("b",))

    async def _run() -> None:
        queue = InboundQueue(config)
        for name in ["a", "b", "c"]:
            await queue.put(_event(name))
        await _consume(queue, processor, config, expected=2)

    asyncio.run(_run())

    assert processor.handled == ["a", "c"]


def test_consumer_exits_when_inactive() -> None:
    config = QueueConfig(idle_poll_seconds=0.01)
    processor = RecordingProcessor()

    async def _run() -> bool:
        queue = InboundQueue(config)
        consumer = SequentialConsumer(queue, processor, config, is_active=lambda: False)
        consumer.start()
        await asyncio.wait_for(consumer.wait_stopped(), timeout=1)
        return consumer.running

    assert asyncio.run(_run()) is False


def test_pushed_back_event_is_next_out() -> None:
    async def _run() -> list:
        queue = InboundQueue(QueueConfig())
        await queue.put(_event("b"))
        first = await queue.get(timeout=0.01)
        await queue.put(_event("c"))
        queue.push_front(first)
        assert queue.depth == 2
        return [(await queue.get(timeout=0.01)).external_id for _ in range(2)]

    assert asyncio.run(_run()) == ["b", "c"]


def test_consumer_holds_event_when_session_drops_mid_wait() -> None:
    config = QueueConfig(idle_poll_seconds=0.5)
    processor = RecordingProcessor()
    active = {"value": True}

    async def _run() -> int:
        queue = InboundQueue(config)
        consumer = SequentialConsumer(queue, processor, config, is_active=lambda: active["value"])
        consumer.start()
        await asyncio.sleep(0.01)
        # The consumer is parked in get() when the session drops.
        active["value"] = False
        await queue.put(_event("late"))
        await asyncio.wait_for(consumer.wait_stopped(), timeout=1)
        return queue.depth

    assert asyncio.run(_run()) == 1
    assert processor.handled == []
