"""SQLAlchemy-backed stores for configuration, history and device state.

Every store wraps driver errors in ``StoreError`` so callers can abort a
single device's evaluation without inspecting SQLAlchemy internals.
"""

from datetime import datetime, timezone
from typing import Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from lorawatch.core.errors import NotFoundError, StoreError
from lorawatch.engine.protocols import (
    Alarm,
    AlarmMetric,
    AlarmWindow,
    AutomationRule,
    Calibration,
    DeviceContext,
    Notification,
    NotificationChannels,
    Sample,
    TelemetryReading,
    TriggerType,
    ZoneInfo,
)
from lorawatch.models.alarm import Alarm as AlarmModel
from lorawatch.models.automation import AutomationRule as AutomationRuleModel
from lorawatch.models.device import Device, Tenant, Zone, ZoneDevice
from lorawatch.models.notification import Notification as NotificationModel
from lorawatch.models.telemetry import DeviceState, TelemetrySample

logger = structlog.get_logger()

# Reading fields kept as the controller's last-known discrete state
DISCRETE_PREFIXES = ("gpio_", "adc_", "adv_", "switch_")
DISCRETE_FIELDS = frozenset({"ro1_status", "ro2_status", "status"})


def _aware(value: datetime) -> datetime:
    """SQLite drops tzinfo; everything is stored in UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _is_discrete(name: str) -> bool:
    return name in DISCRETE_FIELDS or name.startswith(DISCRETE_PREFIXES)


def alarm_from_model(model: AlarmModel) -> Alarm:
    """Convert an alarm row into the engine's immutable alarm."""
    metrics = set()
    for name in model.metrics or []:
        try:
            metrics.add(AlarmMetric(name))
        except ValueError:
            logger.warning("Unknown alarm metric ignored", alarm_id=model.id, metric=name)

    windows = tuple(
        AlarmWindow(
            day_of_week=w.day_of_week,
            start_time=w.start_time,
            end_time=w.end_time,
        )
        for w in model.windows
        if w.is_active
    )

    return Alarm(
        id=model.id,
        dev_eui=model.dev_eui,
        min_threshold=model.min_threshold,
        max_threshold=model.max_threshold,
        enabled_metrics=frozenset(metrics),
        windows=windows,
        time_limit_active=model.is_time_limit_active,
        zone_category=model.zone_category,
        is_active=model.is_active,
        defrost_minutes=model.defrost_minutes,
        channels=NotificationChannels(
            sms=model.sms,
            email=model.email,
            push=model.notification,
        ),
        recipient_ids=tuple(str(r) for r in (model.recipient_ids or []) if r),
    )


def rule_from_model(model: AutomationRuleModel) -> AutomationRule:
    try:
        trigger_type = TriggerType(model.trigger_type)
    except ValueError:
        trigger_type = TriggerType.DEVICE

    return AutomationRule(
        id=model.id,
        condition=model.condition,
        action=model.action,
        sender_dev_eui=model.sender_dev_eui,
        sender_device_type=model.sender_device_type,
        receiver_dev_eui=model.receiver_dev_eui,
        receiver_device_type=model.receiver_device_type,
        trigger_type=trigger_type,
        is_active=model.is_active,
        sender_name=model.sender_name,
        receiver_name=model.receiver_name,
        tenant_id=model.tenant_id,
    )


class SqlAlarmStore:
    """Alarm configuration reads."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def list_for_device(self, dev_eui: str) -> list[Alarm]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(AlarmModel)
                    .where(AlarmModel.dev_eui == dev_eui)
                    .where(AlarmModel.is_active.is_(True))
                    .order_by(AlarmModel.id)
                )
                return [alarm_from_model(m) for m in result.scalars().all()]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load alarms: {e}", dev_eui=dev_eui) from e


class SqlAutomationStore:
    """Automation rule reads by trigger."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def _query(self, *criteria) -> list[AutomationRule]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(AutomationRuleModel)
                    .where(AutomationRuleModel.is_active.is_(True), *criteria)
                    .order_by(AutomationRuleModel.id)
                )
                return [rule_from_model(m) for m in result.scalars().all()]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load automation rules: {e}") from e

    async def list_device_rules(self, sender_dev_eui: str) -> list[AutomationRule]:
        return await self._query(
            AutomationRuleModel.trigger_type == TriggerType.DEVICE.value,
            AutomationRuleModel.sender_dev_eui == sender_dev_eui,
        )

    async def list_time_rules(self) -> list[AutomationRule]:
        return await self._query(
            AutomationRuleModel.trigger_type == TriggerType.TIME.value,
        )

    async def list_alarm_rules(self, alarm_id: int) -> list[AutomationRule]:
        return await self._query(
            AutomationRuleModel.trigger_type == TriggerType.ALARM.value,
            AutomationRuleModel.condition == str(alarm_id),
        )


class SqlDeviceRegistry:
    """Device, zone and organization lookups."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def get_device(self, dev_eui: str) -> DeviceContext | None:
        try:
            async with self.session_factory() as session:
                device = await session.get(Device, dev_eui)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load device: {e}", dev_eui=dev_eui) from e

        if device is None:
            return None

        return DeviceContext(
            dev_eui=device.dev_eui,
            device_type=device.device_type,
            name=device.name,
            calibration=Calibration(
                temperature_offset=device.temperature_calibration or 0.0,
                humidity_offset=device.humidity_calibration or 0.0,
            ),
            tenant_id=device.tenant_id,
            is_active=device.is_active,
        )

    async def get_zone(self, dev_eui: str) -> ZoneInfo:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Zone.name, Zone.category, Tenant.name)
                    .join(ZoneDevice, ZoneDevice.zone_id == Zone.id)
                    .outerjoin(Tenant, Tenant.id == Zone.tenant_id)
                    .where(ZoneDevice.dev_eui == dev_eui)
                    .order_by(Zone.id)
                    .limit(1)
                )
                row = result.first()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load zone: {e}", dev_eui=dev_eui) from e

        if row is None:
            return ZoneInfo()
        return ZoneInfo(name=row[0], category=row[1], organization=row[2])


class SqlTelemetryHistoryStore:
    """Numeric history reads for trend detection."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def window(self, dev_eui: str, metric: str, since: datetime) -> Sequence[Sample]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(TelemetrySample.time, TelemetrySample.value_numeric)
                    .where(TelemetrySample.dev_eui == dev_eui)
                    .where(TelemetrySample.metric_name == metric)
                    .where(TelemetrySample.time >= since)
                    .order_by(TelemetrySample.time.asc())
                )
                return [Sample(time=_aware(t), value=v) for t, v in result.all()]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load telemetry window: {e}", dev_eui=dev_eui) from e

    async def latest(self, dev_eui: str, metric: str) -> Sample | None:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(TelemetrySample.time, TelemetrySample.value_numeric)
                    .where(TelemetrySample.dev_eui == dev_eui)
                    .where(TelemetrySample.metric_name == metric)
                    .order_by(TelemetrySample.time.desc())
                    .limit(1)
                )
                row = result.first()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load latest sample: {e}", dev_eui=dev_eui) from e

        if row is None:
            return None
        return Sample(time=_aware(row[0]), value=row[1])


class SqlDeviceStateStore:
    """Last-known discrete outputs of controllers."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def latest_state(self, dev_eui: str) -> dict[str, str]:
        try:
            async with self.session_factory() as session:
                row = await session.get(DeviceState, dev_eui)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load device state: {e}", dev_eui=dev_eui) from e

        if row is None:
            raise NotFoundError("No recorded device state", dev_eui=dev_eui)
        return {k: str(v) for k, v in (row.state or {}).items()}


class SqlNotificationStore:
    """Append-only notification writes."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def add(self, notification: Notification) -> None:
        try:
            async with self.session_factory() as session:
                session.add(
                    NotificationModel(
                        sender_alarm_id=notification.sender_alarm_id,
                        recipient_ids=list(notification.recipient_ids),
                        message=notification.message,
                        category_id=notification.category_id,
                        is_read=notification.is_read,
                        send_time=notification.created_at,
                        sender_ip=notification.sender_ip,
                        device_name=notification.device_name,
                        dev_eui=notification.dev_eui,
                    )
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(
                f"Failed to store notification: {e}", dev_eui=notification.dev_eui
            ) from e


class TelemetryRecorder:
    """Persists decoded readings: numeric history plus latest discrete state."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    @staticmethod
    def split_fields(reading: TelemetryReading) -> tuple[dict[str, float], dict[str, str]]:
        """Separate a reading into numeric samples and discrete outputs."""
        numeric: dict[str, float] = {}
        discrete: dict[str, str] = {}
        for name, value in reading.fields.items():
            if _is_discrete(name):
                discrete[name] = str(value)
            # bool is an int subclass, test it first
            elif isinstance(value, bool):
                continue
            elif isinstance(value, (int, float)):
                numeric[name] = float(value)
        return numeric, discrete

    async def record(self, reading: TelemetryReading) -> None:
        numeric, discrete = self.split_fields(reading)
        observed_at = reading.observed_at or datetime.now(timezone.utc)

        try:
            async with self.session_factory() as session:
                for name, value in numeric.items():
                    await session.merge(
                        TelemetrySample(
                            time=observed_at,
                            dev_eui=reading.dev_eui,
                            metric_name=name,
                            value_numeric=value,
                        )
                    )

                if discrete:
                    state = await session.get(DeviceState, reading.dev_eui)
                    if state is None:
                        session.add(DeviceState(dev_eui=reading.dev_eui, state=discrete))
                    else:
                        # Reassign so the JSON column is flagged dirty
                        state.state = {**(state.state or {}), **discrete}

                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to record reading: {e}", dev_eui=reading.dev_eui) from e

        logger.debug(
            "Reading recorded",
            dev_eui=reading.dev_eui,
            samples=len(numeric),
            discrete=len(discrete),
        )
