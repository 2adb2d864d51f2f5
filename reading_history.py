# Author: Omi Shrestha

from collections import deque
from dataclasses import dataclass
from typing import Optional

from sensor_models import MoistureState


@dataclass(frozen=True)
class HistorySummary:
    """Aggregates over a history snapshot, for charts"""
    count: int
    wet_count: int
    min_temperature: Optional[float]    # None when no reading had a temperature
    max_temperature: Optional[float]
    mean_temperature: Optional[float]

    def to_dict(self):
        return {
            "count": self.count,
            "wet_count": self.wet_count,
            "min_temperature": self.min_temperature,
            "max_temperature": self.max_temperature,
            "mean_temperature": self.mean_temperature,
        }


class ReadingHistory:
    """Rolling readings in arrival order; the oldest is evicted once full."""

    def __init__(self, capacity):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._readings = deque(maxlen=capacity)

    @property
    def capacity(self):
        return self._readings.maxlen

    def __len__(self):
        return len(self._readings)

    def append(self, reading):
        self._readings.append(reading)

    def latest(self):
        return self._readings[-1] if self._readings else None

    def snapshot(self):
        # A tuple copy: later evictions never change a view already handed out
        return tuple(self._readings)

    def clear(self):
        self._readings.clear()


def summarize(readings):
    """Count readings and wet readings; temperature stats skip absent values."""
    readings = list(readings)
    wet_count = sum(1 for r in readings if r.moisture_state is MoistureState.WET)
    temperatures = [r.temperature_celsius for r in readings if r.temperature_celsius is not None]

    if not temperatures:
        return HistorySummary(len(readings), wet_count, None, None, None)
    return HistorySummary(
        count=len(readings),
        wet_count=wet_count,
        min_temperature=min(temperatures),
        max_temperature=max(temperatures),
        mean_temperature=sum(temperatures) / len(temperatures),
    )
