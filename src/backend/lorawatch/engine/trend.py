"""Sustained-and-rising trend detection for defrost zones."""

from datetime import timedelta
from typing import Sequence

import structlog

from lorawatch.engine.protocols import (
    Alarm,
    AlarmMetric,
    Clock,
    Sample,
    TelemetryHistoryStore,
)
from lorawatch.engine.schedule import SystemClock

logger = structlog.get_logger()


def is_sustained_rise(values: Sequence[float], max_threshold: float) -> bool:
    """True when every value is at or above ``max_threshold`` and the series
    ends on a strict rise.

    A single value only needs to be at or above the threshold.
    """
    if not values:
        return False

    if any(v < max_threshold for v in values):
        return False

    if len(values) > 1 and values[-1] <= values[-2]:
        return False

    return True


class TrendDetector:
    """Requires persistence and a rising trend before a defrost alarm fires."""

    def __init__(self, history: TelemetryHistoryStore, clock: Clock | None = None):
        self.history = history
        self.clock = clock or SystemClock()

    async def should_fire(
        self,
        alarm: Alarm,
        field: str = AlarmMetric.TEMPERATURE.value,
        unit_divisor: float = 1.0,
    ) -> bool:
        """Evaluate the lookback window of ``field`` for ``alarm``.

        Stored samples are divided by ``unit_divisor`` so they compare in the
        alarm's units (1000 for distances recorded in millimeters).

        Falls back to the latest sample when the window is empty and returns
        False when the device has no history at all.
        """
        if alarm.max_threshold is None:
            return False

        since = self.clock.now() - timedelta(minutes=max(alarm.defrost_minutes, 0))
        samples: Sequence[Sample] = await self.history.window(
            alarm.dev_eui, field, since
        )

        if not samples:
            latest = await self.history.latest(alarm.dev_eui, field)
            if latest is None:
                logger.debug(
                    "No history for trend evaluation",
                    alarm_id=alarm.id,
                    dev_eui=alarm.dev_eui,
                )
                return False
            samples = [latest]

        return is_sustained_rise(
            [s.value / unit_divisor for s in samples], alarm.max_threshold
        )
