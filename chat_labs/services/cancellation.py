"""
Cancellation Signal
===================

Request-scoped cancellation shared by every outbound call of a chat turn.
Set when the client disconnects; in-flight calls wrapped with ``run`` are
cancelled and raise ``asyncio.CancelledError``.
"""

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationSignal:
    """Cooperative cancellation backed by an asyncio.Event."""

    def __init__(self):
        self._cancelled = asyncio.Event()
        self._reason: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: Optional[str] = None) -> None:
        if self._cancelled.is_set():
            return
        self._reason = reason
        self._cancelled.set()
        logger.info(f"[CANCEL] Request cancelled: {reason or 'no reason given'}")

    def check(self) -> None:
        """Raise CancelledError if cancellation was requested."""
        if self._cancelled.is_set():
            raise asyncio.CancelledError(self._reason or "cancelled")

    async def wait(self) -> None:
        await self._cancelled.wait()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` unless the signal fires first.

        Raises:
            asyncio.CancelledError: The signal fired before completion
        """
        if self.is_cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.check()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._cancelled.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        raise asyncio.CancelledError(self._reason or "cancelled")
