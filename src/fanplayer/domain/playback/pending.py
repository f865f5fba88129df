"""
Pending intent with a bounded confirmation window.

Guards an optimistic local write against stale echoes from an eventually
consistent device. While an intent is pending, observed values equal to it
confirm it and anything else is rejected as stale. If no confirmation arrives
within the timeout the intent lapses and observations are trusted again.
"""

import asyncio
from typing import Generic, Optional, TypeVar

from loguru import logger

T = TypeVar("T")


class PendingIntent(Generic[T]):
    """Single pending value plus its expiry timer."""

    def __init__(self, name: str, timeout: float):
        self.name = name
        self.timeout = timeout
        self._pending = False
        self._value: Optional[T] = None
        self._timer: Optional[asyncio.Task] = None

    @property
    def is_pending(self) -> bool:
        return self._pending

    @property
    def value(self) -> Optional[T]:
        return self._value if self._pending else None

    def begin(self, value: T) -> None:
        """Record value as pending and (re)start the expiry timer.

        Must be called from a running event loop.
        """
        self._cancel_timer()
        self._pending = True
        self._value = value
        self._timer = asyncio.create_task(self._expire_after(self.timeout))
        logger.debug(f"{self.name}: pending {value!r} for {self.timeout}s")

    def reconcile(self, observed: T) -> bool:
        """Decide whether an observed value may be applied.

        Returns:
            True if observed should be accepted, False if it is a stale echo
        """
        if not self._pending:
            return True
        if observed == self._value:
            logger.debug(f"{self.name}: confirmed {observed!r}")
            self.clear()
            return True
        logger.debug(f"{self.name}: discarding stale {observed!r} (pending {self._value!r})")
        return False

    def clear(self) -> None:
        self._cancel_timer()
        self._pending = False
        self._value = None

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _expire_after(self, timeout: float) -> None:
        await asyncio.sleep(timeout)
        if self._pending:
            logger.debug(f"{self.name}: no confirmation after {timeout}s, trusting device again")
        self._pending = False
        self._value = None
        self._timer = None
