"""
Paces sequential work items to stay under the P1Doks rate limits.
"""

import asyncio
import logging
import time

log = logging.getLogger(__name__)


class RequestPacer:
    """
    Enforces a minimum delay between work items, doubled after a 429
    "Too Many Requests" response and slowly recovered afterwards.
    """

    def __init__(self, delay_seconds: float = 0.5, max_delay_seconds: float = 8.0):
        """
        Initializes the pacer.

        Args:
            delay_seconds: The normal delay between two work items.
            max_delay_seconds: The upper bound reached by repeated back-off.
        """
        self._base_delay = delay_seconds
        self._max_delay = max_delay_seconds
        self._delay = delay_seconds
        self._last_call_time: float | None = None
        self._last_429_time = 0.0
        self._lock = asyncio.Lock()

    @property
    def delay(self) -> float:
        return self._delay

    async def on_429(self) -> None:
        """Called when a 429 error is received. Doubles the current delay."""
        async with self._lock:
            self._delay = min(self._max_delay, max(self._delay, 0.1) * 2)
            self._last_429_time = time.monotonic()
            log.warning(
                f"[yellow]Rate limit hit. New delay: {self._delay:.1f}s[/yellow]"
            )

    async def acquire(self) -> None:
        """
        Waits until the current delay has passed since the previous item.
        The first item never waits.
        """
        async with self._lock:
            # Recover towards the base delay once no 429 was seen for a minute
            if (
                self._delay > self._base_delay
                and time.monotonic() - self._last_429_time > 60
            ):
                self._delay = max(self._base_delay, self._delay * 0.5)

            loop = asyncio.get_running_loop()
            if self._last_call_time is not None:
                time_since_last = loop.time() - self._last_call_time
                if time_since_last < self._delay:
                    await asyncio.sleep(self._delay - time_since_last)

            self._last_call_time = loop.time()
