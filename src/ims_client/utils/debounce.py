"""Debounce primitive on top of the asyncio event loop.

A Debouncer holds a committed value and at most one pending commit. Every
push re-arms the timer, so the committed value only changes once input has
been quiet for ``delay_ms``.
"""

import asyncio
from typing import Any, Callable, List, Optional


class Debouncer:
    """Delays propagation of a rapidly changing value."""

    def __init__(
        self,
        delay_ms: float,
        on_commit: Optional[Callable[[Any], None]] = None,
        initial: Any = None,
    ):
        if delay_ms < 0:
            raise ValueError(f"Debounce delay must be >= 0, got {delay_ms}")
        self.delay_ms = delay_ms
        self.on_commit = on_commit
        self.value = initial
        self._pending_value: Any = None
        self._handle: Optional[asyncio.TimerHandle] = None
        self._waiters: List[asyncio.Future] = []

    @property
    def pending(self) -> bool:
        """True while a commit is scheduled."""
        return self._handle is not None

    def push(self, value: Any) -> Callable[[], None]:
        """
        Schedule ``value`` to be committed after the delay.

        Any earlier pending commit is dropped. Must be called from a running
        event loop.

        Returns:
            A function that cancels this particular scheduled commit. It is a
            no-op once the commit fired or a newer push replaced it.
        """
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
        self._pending_value = value
        handle = loop.call_later(self.delay_ms / 1000.0, self._fire)
        self._handle = handle

        def cancel() -> None:
            if self._handle is handle:
                self.cancel()

        return cancel

    def cancel(self) -> None:
        """Drop the pending commit, keeping the last committed value."""
        if self._handle is None:
            return
        self._handle.cancel()
        self._handle = None
        self._pending_value = None
        self._release_waiters()

    def flush(self) -> None:
        """Commit the pending value right away."""
        if self._handle is None:
            return
        self._handle.cancel()
        self._handle = None
        self._commit(self._pending_value)

    async def settled(self) -> None:
        """Wait until no commit is pending."""
        if self._handle is None:
            return
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        await waiter

    def _fire(self) -> None:
        self._handle = None
        self._commit(self._pending_value)

    def _commit(self, value: Any) -> None:
        self.value = value
        self._pending_value = None
        try:
            if self.on_commit is not None:
                self.on_commit(value)
        finally:
            self._release_waiters()

    def _release_waiters(self) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)


async def debounce(value: Any, delay_ms: float) -> Any:
    """Single-shot form: return ``value`` once ``delay_ms`` has elapsed."""
    if delay_ms < 0:
        raise ValueError(f"Debounce delay must be >= 0, got {delay_ms}")
    await asyncio.sleep(delay_ms / 1000.0)
    return value
