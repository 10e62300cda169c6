"""
feeshare/pacing.py

Pacing policies for sequential per-asset work.

The scheduler and batch distributor call `await pacer.wait()` after each
asset that reached the chain. FixedDelayPacer holds for a fixed delay;
the base Pacer only counts waits.
"""

import logging

import trio

logger = logging.getLogger("feeshare.pacing")


class Pacer:
    """Base pacing policy. Does not hold."""

    def __init__(self):
        self.waits = 0

    async def wait(self) -> None:
        self.waits += 1

    def reset(self) -> None:
        """Forget previous releases (called at the start of each run)."""
        self.waits = 0


class FixedDelayPacer(Pacer):

    def __init__(self, delay: float):
        super().__init__()
        if delay < 0:
            raise ValueError("delay must be non-negative")
        self.delay = delay

    async def wait(self) -> None:
        await super().wait()
        if self.delay > 0:
            await trio.sleep(self.delay)
