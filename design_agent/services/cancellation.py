"""Cancellation token shared by the reducer and every in-flight tool invocation."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from design_agent.errors import OperationCancelled
from design_agent.utils.logging import get_logger

logger = get_logger(__name__)


class CancellationToken:
    """One-shot cancellation signal for a single query.

    Firing the token is idempotent. Awaiting work through ``race`` lets a
    caller stop waiting as soon as the token fires; the awaited task is
    cancelled and given a chance to run its cleanup before
    ``OperationCancelled`` is raised.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._callbacks: list[Callable[[], Any]] = []
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled by user") -> None:
        """Fire the token. Later calls are ignored."""
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        logger.info(f"Cancellation requested: {reason}")

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Cancellation callback failed: {e}", exc_info=True)

    def on_cancel(self, callback: Callable[[], Any]) -> None:
        """Register a callback, invoked immediately if the token already fired."""
        if self.cancelled:
            callback()
            return
        self._callbacks.append(callback)

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled(self.reason or "cancelled")

    async def wait(self) -> None:
        """Block until the token fires."""
        await self._event.wait()

    async def race[T](self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        Raises:
            OperationCancelled: If the token fired before the work finished
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise OperationCancelled(self.reason or "cancelled")

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"Work interrupted by cancellation raised: {e}")
        raise OperationCancelled(self.reason or "cancelled")
