"""Alarm evaluation service.

Runs every active alarm of a device against a decoded reading: schedule
gate, threshold or trend check, then one notification per fired metric.
"""

from dataclasses import dataclass

import structlog

from lorawatch.core.errors import StoreError
from lorawatch.core.metrics import record_alarm_fired
from lorawatch.engine.composer import NotificationComposer
from lorawatch.engine.protocols import (
    Alarm,
    AlarmMetric,
    AlarmStore,
    AuditSink,
    DeviceContext,
    DeviceRegistry,
    EvaluationOutcome,
    NotificationStore,
    TelemetryReading,
    ZoneCategory,
    ZoneInfo,
)
from lorawatch.engine.schedule import ScheduleMatcher
from lorawatch.engine.threshold import ThresholdEvaluator, metric_value

logger = structlog.get_logger()

# Enum declaration order, so notifications come out deterministically
METRIC_ORDER = {metric: index for index, metric in enumerate(AlarmMetric)}


@dataclass(frozen=True)
class FiredAlarm:
    """An alarm that fired for a given metric and value."""
    alarm: Alarm
    metric: AlarmMetric
    value: float


class AlarmEvaluationService:
    """Evaluates a device's alarms against one reading."""

    def __init__(
        self,
        alarm_store: AlarmStore,
        registry: DeviceRegistry,
        schedule: ScheduleMatcher,
        evaluator: ThresholdEvaluator,
        composer: NotificationComposer,
        notification_store: NotificationStore,
        audit_sink: AuditSink | None = None,
    ):
        self.alarm_store = alarm_store
        self.registry = registry
        self.schedule = schedule
        self.evaluator = evaluator
        self.composer = composer
        self.notification_store = notification_store
        self.audit_sink = audit_sink

    async def evaluate(self, device: DeviceContext, reading: TelemetryReading) -> list[FiredAlarm]:
        """Evaluate all alarms of ``device``.

        A failure in one alarm is logged and does not stop the others.

        Raises:
            StoreError: Alarm configuration could not be read, or a store
                failed mid-evaluation. The device's evaluation is abandoned.
        """
        alarms = await self.alarm_store.list_for_device(device.dev_eui)
        if not alarms:
            return []

        zone: ZoneInfo | None = None
        fired: list[FiredAlarm] = []

        for alarm in alarms:
            if not alarm.is_active or not self.schedule.is_armed(alarm):
                continue

            for metric in sorted(alarm.enabled_metrics, key=METRIC_ORDER.__getitem__):
                try:
                    outcome = await self.evaluator.evaluate(alarm, reading, metric)
                    if outcome is not EvaluationOutcome.BREACH:
                        continue

                    if zone is None:
                        zone = await self.registry.get_zone(device.dev_eui)

                    value = metric_value(reading, metric) or 0.0
                    message = await self._notify(alarm, device, metric, value, zone)
                    fired.append(FiredAlarm(alarm=alarm, metric=metric, value=value))
                    await self._audit(alarm, device, metric, value, message)
                except StoreError:
                    raise
                except Exception as e:
                    logger.error(
                        "Alarm evaluation failed",
                        alarm_id=alarm.id,
                        dev_eui=device.dev_eui,
                        metric=metric.value,
                        error=str(e),
                    )

        return fired

    async def _notify(
        self,
        alarm: Alarm,
        device: DeviceContext,
        metric: AlarmMetric,
        value: float,
        zone: ZoneInfo,
    ) -> str:
        notification = self.composer.compose(
            alarm,
            device_name=device.name or device.dev_eui,
            metric=metric,
            value=value,
            zone=zone,
            qualify_organization=alarm.zone_category == ZoneCategory.DEFROST,
            at=self.schedule.local_now(),
        )
        await self.notification_store.add(notification)

        record_alarm_fired(metric.value, alarm.zone_category)
        logger.info(
            "Alarm fired",
            alarm_id=alarm.id,
            dev_eui=device.dev_eui,
            metric=metric.value,
            value=value,
            recipients=len(notification.recipient_ids),
        )

        return notification.message

    async def _audit(
        self,
        alarm: Alarm,
        device: DeviceContext,
        metric: AlarmMetric,
        value: float,
        message: str,
    ) -> None:
        if not self.audit_sink:
            return
        # The notification is already stored at this point
        try:
            await self.audit_sink.record(
                "alarm_fired",
                entity_type="alarm",
                entity_id=str(alarm.id),
                description=message,
                dev_eui=device.dev_eui,
                new_values={"metric": metric.value, "value": value},
            )
        except Exception as e:
            logger.error(
                "Failed to audit fired alarm",
                alarm_id=alarm.id,
                dev_eui=device.dev_eui,
                error=str(e),
            )
