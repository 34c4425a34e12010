"""
Coalescing signals.

A single-slot mailbox: ``notify()`` never blocks, and any number of
notifications that arrive before the consumer wakes up collapse into one.
"""
import asyncio


class CoalescingSignal:
    """Single-slot notification with at-most-one-pending semantics."""

    def __init__(self, name: str = ""):
        self.name = name
        self._slot: asyncio.Queue = asyncio.Queue(maxsize=1)

    def notify(self) -> bool:
        """
        Post a notification without blocking.

        Returns False when one is already pending (the call is dropped).
        """
        try:
            self._slot.put_nowait(None)
        except asyncio.QueueFull:
            return False
        return True

    async def wait(self) -> None:
        """Wait until a notification is pending and consume it."""
        await self._slot.get()

    def consume(self) -> bool:
        """Consume a pending notification without waiting. Returns whether one was pending."""
        try:
            self._slot.get_nowait()
        except asyncio.QueueEmpty:
            return False
        return True

    @property
    def pending(self) -> bool:
        return self._slot.full()

    def __repr__(self) -> str:
        return f"CoalescingSignal(name={self.name!r}, pending={self.pending})"
