"""Concurrency budget shared by every language-model request in the process."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterator

from ..errors import BudgetExceededError

__all__ = ["ConcurrencyBudget", "DEFAULT_MAX_REQUESTS", "DEFAULT_POLL_INTERVAL"]

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS = 5
DEFAULT_POLL_INTERVAL = 0.5


class ConcurrencyBudget:
    """Bounded counter of free request slots.

    The counter starts at ``max_requests``; acquiring takes one slot and
    releasing gives it back. Waiters poll on a fixed interval and are not
    served in FIFO order.

    Example:
        >>> budget = ConcurrencyBudget(2)
        >>> budget.try_acquire(); budget.try_acquire()
        >>> budget.available
        0
    """

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._max = self._normalize_max(max_requests)
        self._available = self._max
        self._poll_interval = max(0.001, float(poll_interval))

    @property
    def max_requests(self) -> int:
        return self._max

    @property
    def available(self) -> int:
        """Number of slots currently free."""
        return self._available

    @property
    def in_flight(self) -> int:
        return max(0, self._max - self._available)

    def try_acquire(self) -> None:
        """Take a slot immediately or raise :class:`BudgetExceededError`."""

        if self._available <= 0:
            raise BudgetExceededError(self._max)
        self._available -= 1

    async def acquire(self) -> None:
        """Take a slot, suspending the caller until one frees up."""

        if self._available <= 0:
            LOGGER.debug("Budget exhausted (max=%s); waiting for a free slot", self._max)
            while self._available <= 0:
                await asyncio.sleep(self._poll_interval)
        self._available -= 1

    def release(self) -> None:
        self._available = min(self._max, self._available + 1)

    def reconfigure(self, max_requests: int) -> None:
        """Apply a new maximum while requests may be in flight.

        Slots already taken stay taken and the free count shifts by the delta.
        Lowering the maximum below the in-flight count can admit more than
        ``max_requests`` calls until the older requests have released.
        """

        new_max = self._normalize_max(max_requests)
        delta = new_max - self._max
        self._max = new_max
        self._available = max(0, min(new_max, self._available + delta))
        LOGGER.debug("Budget reconfigured: max=%s available=%s", self._max, self._available)

    @contextlib.asynccontextmanager
    async def slot(self, *, wait: bool = True) -> AsyncIterator[None]:
        """Hold one slot for the duration of the block."""

        if wait:
            await self.acquire()
        else:
            self.try_acquire()
        try:
            yield
        finally:
            self.release()

    @staticmethod
    def _normalize_max(value: int) -> int:
        try:
            number = int(value)
        except (TypeError, ValueError):
            return DEFAULT_MAX_REQUESTS
        return number if number > 0 else DEFAULT_MAX_REQUESTS
