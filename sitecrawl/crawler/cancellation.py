"""
Cooperative cancellation shared by the coordinator and its workers.
"""

import asyncio


class CancellationToken:
    """Flag polled by workers at the top of each loop iteration."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self):
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def sleep(self, seconds: float) -> bool:
        """
        Sleep up to `seconds`, waking early on cancellation.
        Returns True if cancellation was signalled.
        """
        if seconds <= 0:
            return self.is_cancelled
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
        return self.is_cancelled
