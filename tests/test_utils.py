from __future__ import annotations

import asyncio

import pytest

from cutover_engine.engine.events import CutoverEvent, EventStream, EventType
from cutover_engine.utils.cancellation import CancelToken, OperationCancelled
from cutover_engine.utils.time import format_duration


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [
        (0, "0s"),
        (30, "30s"),
        (300, "5m0s"),
        (3600, "1h0m0s"),
        (5430, "1h30m30s"),
        (1.5, "1.5s"),
    ],
)
def test_format_duration(seconds: float, expected: str) -> None:
    assert format_duration(seconds) == expected


@pytest.mark.asyncio
async def test_cancel_token_first_reason_wins() -> None:
    token = CancelToken()
    token.cancel("cutover timed out")
    token.cancel("cancelled by user")

    assert token.cancelled
    assert token.reason == "cutover timed out"
    with pytest.raises(OperationCancelled, match="cutover timed out"):
        token.raise_if_cancelled()


@pytest.mark.asyncio
async def test_cancel_token_sleep() -> None:
    token = CancelToken()
    assert await token.sleep(0.01) is False

    asyncio.get_running_loop().call_later(0.01, token.cancel, "stop")
    assert await token.sleep(30) is True


@pytest.mark.asyncio
async def test_guard_returns_result_or_interrupts() -> None:
    token = CancelToken()

    async def quick() -> str:
        return "done"

    assert await token.guard(quick()) == "done"

    finished = asyncio.Event()

    async def slow() -> None:
        try:
            await asyncio.sleep(30)
        finally:
            finished.set()

    asyncio.get_running_loop().call_later(0.01, token.cancel, "stop")
    with pytest.raises(OperationCancelled):
        await token.guard(slow())
    assert finished.is_set()


@pytest.mark.asyncio
async def test_event_stream_replays_to_late_subscribers() -> None:
    stream = EventStream()
    stream.publish(CutoverEvent(type=EventType.STEP_START, plan_id="p", step_index=0))

    async def consume() -> list[EventType]:
        return [event.type async for event in stream.subscribe()]

    early = asyncio.create_task(consume())
    await asyncio.sleep(0)
    stream.publish(CutoverEvent(type=EventType.STEP_COMPLETE, plan_id="p", step_index=0))
    stream.publish(CutoverEvent(type=EventType.COMPLETE, plan_id="p"))
    stream.close()

    expected = [EventType.STEP_START, EventType.STEP_COMPLETE, EventType.COMPLETE]
    assert await early == expected
    assert await consume() == expected

    with pytest.raises(RuntimeError):
        stream.publish(CutoverEvent(type=EventType.ERROR, plan_id="p"))


def test_event_to_dict() -> None:
    event = CutoverEvent(type=EventType.STEP_FAILED, plan_id="p", step_index=2, error="boom")
    data = event.to_dict()
    assert data["type"] == "step_failed"
    assert data["step_index"] == 2
    assert data["error"] == "boom"
    assert isinstance(data["timestamp"], str)
