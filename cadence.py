"""
Update cadence
Countdown until the peripheral's next expected notification, and the 1 Hz
ticker that republishes it while a session is live.
"""

import asyncio
import logging
from typing import Callable, Optional

from sensor_models import Mode

logger = logging.getLogger(__name__)

# Seconds between device notifications in each mode
MODE_INTERVALS = {
    Mode.REALTIME: 1.0,
    Mode.PERIODIC: 300.0,
}

TICK_SECONDS = 1.0


def interval_for(mode: Mode) -> float:
    return MODE_INTERVALS[mode]


def next_update_in(last_seen_at: Optional[float], mode: Mode, now: float) -> float:
    """
    Seconds until the next expected reading, never negative.

    Returns 0 when nothing has been received yet. Advisory only: the device
    sends on its own schedule regardless of this value.
    """
    if last_seen_at is None:
        return 0.0
    elapsed = now - last_seen_at
    return max(0.0, interval_for(mode) - elapsed)


class CadenceTicker:
    """Calls `callback` once per period on the running event loop until stopped."""

    def __init__(self, callback: Callable[[], None], period: float = TICK_SECONDS):
        self._callback = callback
        self._period = period
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self):
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self):
        while True:
            await asyncio.sleep(self._period)
            try:
                self._callback()
            except Exception:
                logger.exception("[CADENCE] Tick callback failed")
