"""Cooperative cancellation for long-running cutover work.

A ``CancelToken`` is shared between the orchestrator and everything that
may block on the network or a timer. Waits go through ``sleep`` and
I/O goes through ``guard`` so that a cancel request (user cancel or
plan timeout) interrupts the wait instead of letting it run to completion.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

T = TypeVar("T")


class OperationCancelled(Exception):
    """Raised when guarded work is interrupted by its cancel token."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class CancelToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        # First reason wins; later cancels are no-ops.
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled(self._reason or "cancelled")

    async def sleep(self, seconds: float) -> bool:
        """Sleep for ``seconds``; return True if the token fired first."""
        if self.cancelled:
            return True
        if seconds <= 0:
            return False
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        Raises ``OperationCancelled`` when the token wins; the pending
        operation is cancelled and awaited before returning.
        """
        operation = asyncio.ensure_future(awaitable)
        if self.cancelled:
            await _discard(operation)
            raise OperationCancelled(self._reason or "cancelled")

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {operation, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            await _discard(operation)
            raise
        finally:
            waiter.cancel()

        if operation in done:
            return operation.result()

        await _discard(operation)
        raise OperationCancelled(self._reason or "cancelled")


async def _discard(task: asyncio.Future) -> None:
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
