"""
Backoff between failed monitor cycles.
"""
import asyncio


class RetryPolicy:
    """
    Exponential backoff: starts at initial_delay, doubles per consecutive
    failure, capped at max_delay. A successful cycle resets it.
    """

    def __init__(self, initial_delay: float = 1.0, max_delay: float = 60.0):
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self._current_delay = initial_delay

    @property
    def current_delay(self) -> float:
        return self._current_delay

    def reset(self):
        self._current_delay = self.initial_delay

    async def wait(self):
        """Sleep for the current delay, then double it for next time."""
        await asyncio.sleep(self._current_delay)
        self._current_delay = min(self._current_delay * 2, self.max_delay)
