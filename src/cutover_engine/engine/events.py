"""Progress events emitted while a cutover executes."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from cutover_engine.utils.time import utc_now


class EventType(str, Enum):
    STEP_START = "step_start"
    STEP_COMPLETE = "step_complete"
    STEP_FAILED = "step_failed"
    ROLLBACK = "rollback"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class CutoverEvent:
    type: EventType
    plan_id: str
    step_index: int | None = None
    step_type: str = ""
    step_description: str = ""
    status: str = ""
    error: str = ""
    message: str = ""
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "plan_id": self.plan_id,
            "step_index": self.step_index,
            "step_type": self.step_type,
            "step_description": self.step_description,
            "status": self.status,
            "error": self.error,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


class EventStream:
    """Append-only event log that any number of consumers can iterate.

    Each ``subscribe()`` call replays every event published so far and then
    follows new ones until the stream is closed.
    """

    def __init__(self) -> None:
        self._events: list[CutoverEvent] = []
        self._closed = False
        self._signal = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> list[CutoverEvent]:
        return list(self._events)

    def publish(self, event: CutoverEvent) -> None:
        if self._closed:
            raise RuntimeError("event stream is closed")
        self._events.append(event)
        self._wake()

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._wake()

    async def subscribe(self) -> AsyncIterator[CutoverEvent]:
        index = 0
        while True:
            while index < len(self._events):
                yield self._events[index]
                index += 1
            if self._closed:
                return
            await self._signal.wait()

    def _wake(self) -> None:
        signal, self._signal = self._signal, asyncio.Event()
        signal.set()
