"""Tests for the SQLAlchemy-backed stores."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from unittest.mock import AsyncMock, MagicMock

from lorawatch.core.errors import NotFoundError, StoreError
from lorawatch.engine.protocols import (
    AlarmMetric,
    Notification,
    TelemetryReading,
    TriggerType,
)
from lorawatch.models import (
    Alarm,
    AlarmWindow,
    AuditAction,
    AuditLog,
    AutomationRule,
    Device,
    Notification as NotificationModel,
)
from lorawatch.services.audit_service import SqlAuditSink
from lorawatch.services.stores import (
    SqlAlarmStore,
    SqlAutomationStore,
    SqlDeviceRegistry,
    SqlDeviceStateStore,
    SqlNotificationStore,
    SqlTelemetryHistoryStore,
    TelemetryRecorder,
)

DEV_EUI = "a84041000181c061"
RELAY_DEV_EUI = "a8404127a1839e2b"
T0 = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)


def _failing_factory() -> MagicMock:
    """Session factory whose sessions fail on every query."""
    mock_session = AsyncMock()
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=False)
    mock_session.execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("db down")))
    mock_session.get = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("db down")))

    factory = MagicMock()
    factory.return_value = mock_session
    return factory


class TestSqlAlarmStore:
    """Tests for SqlAlarmStore."""

    @pytest.mark.asyncio
    async def test_list_for_device(self, session_factory, db_session, test_alarm):
        """Test active alarms load with their active windows."""
        db_session.add_all(
            [
                AlarmWindow(alarm_id=test_alarm.id, day_of_week=0, start_time=22.0, end_time=6.0),
                AlarmWindow(alarm_id=test_alarm.id, day_of_week=3, start_time=8.0, end_time=9.0, is_active=False),
                Alarm(dev_eui=DEV_EUI, metrics=["humidity"], is_active=False),
            ]
        )
        await db_session.commit()

        alarms = await SqlAlarmStore(session_factory).list_for_device(DEV_EUI)

        assert len(alarms) == 1
        alarm = alarms[0]
        assert alarm.id == test_alarm.id
        assert alarm.enabled_metrics == frozenset({AlarmMetric.TEMPERATURE})
        assert alarm.min_threshold == 10.0
        assert len(alarm.windows) == 1
        assert alarm.windows[0].start_time == 22.0
        assert alarm.recipient_ids == ("user-1", "user-2")

    @pytest.mark.asyncio
    async def test_unknown_metric_ignored(self, session_factory, db_session, test_device):
        db_session.add(Alarm(dev_eui=DEV_EUI, metrics=["temperature", "radiation"]))
        await db_session.commit()

        alarms = await SqlAlarmStore(session_factory).list_for_device(DEV_EUI)

        assert alarms[0].enabled_metrics == frozenset({AlarmMetric.TEMPERATURE})

    @pytest.mark.asyncio
    async def test_store_failure(self):
        """Test driver errors surface as StoreError."""
        with pytest.raises(StoreError):
            await SqlAlarmStore(_failing_factory()).list_for_device(DEV_EUI)


class TestSqlAutomationStore:
    """Tests for SqlAutomationStore."""

    @pytest.mark.asyncio
    async def test_rules_by_trigger(self, session_factory, db_session, test_relay_rule):
        db_session.add_all(
            [
                AutomationRule(condition="1,2;08:00", action="AwAA", trigger_type="time"),
                AutomationRule(condition="5", action="AwEB", trigger_type="alarm", receiver_dev_eui=RELAY_DEV_EUI),
                AutomationRule(condition="6", action="AwEB", trigger_type="alarm"),
                AutomationRule(
                    condition="temperature,over,10",
                    action="AwAA",
                    sender_dev_eui=DEV_EUI,
                    is_active=False,
                ),
            ]
        )
        await db_session.commit()
        store = SqlAutomationStore(session_factory)

        device_rules = await store.list_device_rules(DEV_EUI)
        assert [r.id for r in device_rules] == [test_relay_rule.id]
        assert device_rules[0].trigger_type is TriggerType.DEVICE
        assert device_rules[0].receiver_device_type == 6

        time_rules = await store.list_time_rules()
        assert [r.condition for r in time_rules] == ["1,2;08:00"]

        alarm_rules = await store.list_alarm_rules(5)
        assert len(alarm_rules) == 1
        assert alarm_rules[0].receiver_dev_eui == RELAY_DEV_EUI


class TestSqlDeviceRegistry:
    """Tests for SqlDeviceRegistry."""

    @pytest.mark.asyncio
    async def test_get_device(self, session_factory, test_device):
        device = await SqlDeviceRegistry(session_factory).get_device(DEV_EUI)

        assert device.device_type == 12
        assert device.name == "Cold Room Sensor"
        assert device.calibration.temperature_offset == 0.5
        assert device.tenant_id == "tenant-1"
        assert device.is_active is True

    @pytest.mark.asyncio
    async def test_inactive_device(self, session_factory, db_session):
        db_session.add(Device(dev_eui="0000000000000001", name="Old", device_type=12, tags={"status": "inactive"}))
        await db_session.commit()

        device = await SqlDeviceRegistry(session_factory).get_device("0000000000000001")

        assert device.is_active is False

    @pytest.mark.asyncio
    async def test_unknown_device(self, session_factory):
        assert await SqlDeviceRegistry(session_factory).get_device("ffffffffffffffff") is None

    @pytest.mark.asyncio
    async def test_get_zone(self, session_factory, test_device):
        """Test the zone and owning organization are resolved."""
        zone = await SqlDeviceRegistry(session_factory).get_zone(DEV_EUI)

        assert zone.name == "Cold Room 1"
        assert zone.category == 0
        assert zone.organization == "Acme Foods"

    @pytest.mark.asyncio
    async def test_device_without_zone(self, session_factory):
        zone = await SqlDeviceRegistry(session_factory).get_zone("ffffffffffffffff")
        assert zone.name is None
        assert zone.organization is None

    @pytest.mark.asyncio
    async def test_store_failure(self):
        with pytest.raises(StoreError):
            await SqlDeviceRegistry(_failing_factory()).get_device(DEV_EUI)


class TestTelemetryRecorder:
    """Tests for TelemetryRecorder and the history/state stores."""

    def test_split_fields(self):
        """Test discrete outputs are kept apart from numeric samples."""
        reading = TelemetryReading(
            dev_eui=RELAY_DEV_EUI,
            device_type=6,
            fields={
                "ro1_status": 1,
                "gpio_out_1": "1",
                "switch_2": 0,
                "temperature": 4.5,
                "position": "normal",
                "flag": True,
            },
        )
        numeric, discrete = TelemetryRecorder.split_fields(reading)

        assert numeric == {"temperature": 4.5}
        assert discrete == {"ro1_status": "1", "gpio_out_1": "1", "switch_2": "0"}

    @pytest.mark.asyncio
    async def test_history_window(self, session_factory):
        recorder = TelemetryRecorder(session_factory)
        for minutes, value in [(0, 18.0), (5, 19.0), (10, 20.0)]:
            await recorder.record(
                TelemetryReading(
                    dev_eui=DEV_EUI,
                    device_type=12,
                    fields={"temperature": value},
                    observed_at=T0 + timedelta(minutes=minutes),
                )
            )

        history = SqlTelemetryHistoryStore(session_factory)
        samples = await history.window(DEV_EUI, "temperature", T0 + timedelta(minutes=5))
        assert [s.value for s in samples] == [19.0, 20.0]
        assert samples[0].time.tzinfo is not None

        latest = await history.latest(DEV_EUI, "temperature")
        assert latest.value == 20.0
        assert await history.latest(DEV_EUI, "humidity") is None

    @pytest.mark.asyncio
    async def test_device_state_merged(self, session_factory, db_session):
        """Test discrete state is merged across uplinks."""
        recorder = TelemetryRecorder(session_factory)
        await recorder.record(
            TelemetryReading(RELAY_DEV_EUI, 28, {"gpio_out_1": "1", "gpio_out_2": "0"}, observed_at=T0)
        )
        await recorder.record(
            TelemetryReading(RELAY_DEV_EUI, 28, {"gpio_out_2": "1"}, observed_at=T0 + timedelta(minutes=1))
        )

        state = await SqlDeviceStateStore(session_factory).latest_state(RELAY_DEV_EUI)
        assert state == {"gpio_out_1": "1", "gpio_out_2": "1"}

    @pytest.mark.asyncio
    async def test_missing_state(self, session_factory):
        with pytest.raises(NotFoundError):
            await SqlDeviceStateStore(session_factory).latest_state(RELAY_DEV_EUI)


class TestNotificationAndAudit:
    """Tests for the append-only sinks."""

    @pytest.mark.asyncio
    async def test_notification_added(self, session_factory, db_session):
        await SqlNotificationStore(session_factory).add(
            Notification(
                sender_alarm_id=1,
                recipient_ids=["user-1"],
                message="Cold Room door opened",
                dev_eui=DEV_EUI,
                device_name="Door",
                created_at=T0,
            )
        )

        rows = (await db_session.execute(select(NotificationModel))).scalars().all()
        assert len(rows) == 1
        assert rows[0].message == "Cold Room door opened"
        assert rows[0].recipient_ids == ["user-1"]
        assert rows[0].sender_ip == "System"
        assert rows[0].is_read is False

    @pytest.mark.asyncio
    async def test_audit_entry(self, session_factory, db_session):
        await SqlAuditSink(session_factory).record(
            "automation_executed",
            entity_type="automation_rule",
            entity_id="3",
            dev_eui=RELAY_DEV_EUI,
            new_values={"action": "AwEA"},
        )

        entry = (await db_session.execute(select(AuditLog))).scalar_one()
        assert entry.action is AuditAction.AUTOMATION_EXECUTED
        assert entry.changed_by == "system"
        assert entry.new_values == {"action": "AwEA"}

    @pytest.mark.asyncio
    async def test_unknown_audit_action(self, session_factory):
        with pytest.raises(ValueError):
            await SqlAuditSink(session_factory).record("deleted", entity_type="x", entity_id="1")
