"""Trailing-edge coalescing for bursts of editor events."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Generic, TypeVar

__all__ = ["CoalescingGate"]

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class CoalescingGate(Generic[T]):
    """Run an async callable only for the last call of a burst.

    Every :meth:`schedule` cancels the pending, not yet fired invocation and
    restarts the delay. Callers whose invocation was superseded resolve to
    ``None``. An invocation that has already fired keeps running to
    completion even if newer calls arrive.

    Example:
        >>> gate = CoalescingGate(fetch_suggestions, delay=0.3)
        >>> items = await gate.schedule(document, position)
    """

    def __init__(self, func: Callable[..., Awaitable[T]], delay: float) -> None:
        self._func = func
        self._delay = max(0.0, float(delay))
        self._timer: asyncio.TimerHandle | None = None
        self._waiter: asyncio.Future[T | None] | None = None
        self._running: set[asyncio.Task[None]] = set()

    @property
    def delay(self) -> float:
        return self._delay

    @delay.setter
    def delay(self, value: float) -> None:
        self._delay = max(0.0, float(value))

    @property
    def pending(self) -> bool:
        """Whether an invocation is waiting for its delay to elapse."""
        return self._timer is not None

    async def schedule(self, *args: Any, **kwargs: Any) -> T | None:
        self._supersede_pending()
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[T | None] = loop.create_future()
        self._waiter = waiter
        self._timer = loop.call_later(self._delay, self._fire, waiter, args, kwargs)
        try:
            return await waiter
        except asyncio.CancelledError:
            if self._waiter is waiter:
                self._cancel_timer()
                self._waiter = None
            raise

    def cancel(self) -> None:
        """Drop the pending invocation, resolving its caller to ``None``."""
        self._supersede_pending()

    async def drain(self) -> None:
        """Wait for invocations that already fired."""
        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)

    def _supersede_pending(self) -> None:
        self._cancel_timer()
        waiter, self._waiter = self._waiter, None
        if waiter is not None and not waiter.done():
            waiter.set_result(None)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self, waiter: asyncio.Future[T | None], args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        if self._waiter is waiter:
            self._timer = None
            self._waiter = None
        if waiter.done():
            return
        task = asyncio.get_running_loop().create_task(self._run(waiter, args, kwargs))
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _run(self, waiter: asyncio.Future[T | None], args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        try:
            result = await self._func(*args, **kwargs)
        except asyncio.CancelledError:
            if not waiter.done():
                waiter.cancel()
            raise
        except Exception as exc:
            if not waiter.done():
                waiter.set_exception(exc)
            else:
                LOGGER.debug("Coalesced call failed after its caller went away", exc_info=True)
            return
        if not waiter.done():
            waiter.set_result(result)
