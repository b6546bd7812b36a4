"""Threshold evaluation with zone-category dispatch."""

import structlog

from lorawatch.engine.protocols import (
    Alarm,
    AlarmMetric,
    EvaluationOutcome,
    TelemetryReading,
    ZoneCategory,
)
from lorawatch.engine.trend import TrendDetector

logger = structlog.get_logger()

MILLIMETERS_PER_METER = 1000.0

# Readings and stored samples keep device units; alarm thresholds use these
UNIT_DIVISORS: dict[AlarmMetric, float] = {
    AlarmMetric.DISTANCE: MILLIMETERS_PER_METER,
}

# Canonical reading fields consulted for each metric, first match wins
METRIC_FIELDS: dict[AlarmMetric, tuple[str, ...]] = {
    AlarmMetric.TEMPERATURE: ("temperature", "soil_temperature"),
    AlarmMetric.HUMIDITY: ("humidity", "soil_moisture"),
    AlarmMetric.EC: ("soil_conductivity",),
    AlarmMetric.CO2: ("co2",),
    AlarmMetric.PRESSURE: ("pressure",),
    AlarmMetric.DISTANCE: ("distance",),
    AlarmMetric.DOOR: ("door_status",),
    AlarmMetric.WATER_LEAK: ("water_leak",),
    AlarmMetric.BUTTON: ("button_pressed",),
    AlarmMetric.EMERGENCY: ("emergency",),
}

IMMEDIATE_CATEGORIES = (ZoneCategory.DEFAULT, ZoneCategory.INDUSTRIAL)


def resolve_field(reading: TelemetryReading, metric: AlarmMetric) -> str | None:
    """Name of the reading field that carries ``metric``, if present."""
    for name in METRIC_FIELDS[metric]:
        if reading.numeric(name) is not None:
            return name
    return None


def metric_value(reading: TelemetryReading, metric: AlarmMetric) -> float | None:
    """Value of ``metric`` in alarm units (distance in meters)."""
    name = resolve_field(reading, metric)
    if name is None:
        return None
    return to_alarm_units(metric, reading.numeric(name))


def to_alarm_units(metric: AlarmMetric, value: float) -> float:
    return value / UNIT_DIVISORS.get(metric, 1.0)


def is_breach_candidate(value: float, min_threshold: float | None, max_threshold: float | None) -> bool:
    """Outside the [min, max] band; a missing bound is not checked."""
    if min_threshold is not None and value < min_threshold:
        return True
    if max_threshold is not None and value > max_threshold:
        return True
    return False


class ThresholdEvaluator:
    """Compares readings against alarm thresholds.

    Zone category 1 (defrost) alarms only fire when the trend detector sees a
    sustained and rising excursion. Categories 0 and 2 fire on any breach,
    and so does any category not listed here.
    """

    def __init__(self, trend_detector: TrendDetector):
        self.trend_detector = trend_detector

    async def evaluate(
        self,
        alarm: Alarm,
        reading: TelemetryReading,
        metric: AlarmMetric,
    ) -> EvaluationOutcome:
        value = metric_value(reading, metric)
        if value is None:
            return EvaluationOutcome.NO_BREACH

        if metric.is_event:
            return EvaluationOutcome.BREACH if value == 1 else EvaluationOutcome.NO_BREACH

        if not is_breach_candidate(value, alarm.min_threshold, alarm.max_threshold):
            return EvaluationOutcome.NO_BREACH

        category = alarm.zone_category
        if category == ZoneCategory.DEFROST:
            field = resolve_field(reading, metric) or metric.value
            fired = await self.trend_detector.should_fire(
                alarm, field, unit_divisor=UNIT_DIVISORS.get(metric, 1.0)
            )
            return EvaluationOutcome.BREACH if fired else EvaluationOutcome.NO_BREACH

        if category not in IMMEDIATE_CATEGORIES:
            logger.info(
                "Unmapped zone category, firing immediately",
                alarm_id=alarm.id,
                zone_category=category,
            )

        return EvaluationOutcome.BREACH
