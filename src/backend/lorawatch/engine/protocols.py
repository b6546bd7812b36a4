"""Engine data structures and collaborator protocols."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Protocol, Sequence


FieldValue = float | int | str


@dataclass(frozen=True)
class Calibration:
    """Per-device additive calibration offsets."""
    temperature_offset: float = 0.0
    humidity_offset: float = 0.0


@dataclass(frozen=True)
class TelemetryReading:
    """Normalized reading produced by a payload decoder."""
    dev_eui: str
    device_type: int
    fields: dict[str, FieldValue]
    observed_at: datetime | None = None

    def get(self, name: str) -> FieldValue | None:
        return self.fields.get(name)

    def numeric(self, name: str) -> float | None:
        """Return a field as float, or None when absent or non-numeric."""
        value = self.fields.get(name)
        if isinstance(value, bool) or value is None:
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None


@dataclass(frozen=True)
class DeviceContext:
    """Registry record for the device that sent an uplink."""
    dev_eui: str
    device_type: int | None
    name: str = ""
    calibration: Calibration = field(default_factory=Calibration)
    tenant_id: str | None = None
    is_active: bool = True


class AlarmMetric(str, Enum):
    """Metric an alarm watches."""
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    EC = "ec"
    CO2 = "co2"
    PRESSURE = "pressure"
    DISTANCE = "distance"
    DOOR = "door"
    WATER_LEAK = "water_leak"
    BUTTON = "button"
    EMERGENCY = "emergency"

    @property
    def is_event(self) -> bool:
        """Event metrics fire on state == 1 instead of thresholds."""
        return self in (
            AlarmMetric.DOOR,
            AlarmMetric.WATER_LEAK,
            AlarmMetric.BUTTON,
            AlarmMetric.EMERGENCY,
        )


class ZoneCategory(IntEnum):
    """Evaluation strategy selector for an alarm's zone."""
    DEFAULT = 0
    DEFROST = 1
    INDUSTRIAL = 2


class EvaluationOutcome(str, Enum):
    """Result of evaluating a reading against an alarm."""
    NO_BREACH = "no_breach"
    BREACH = "breach"


@dataclass(frozen=True)
class AlarmWindow:
    """Armed window in fractional local hours; day 0 means every day."""
    day_of_week: int
    start_time: float
    end_time: float


@dataclass(frozen=True)
class NotificationChannels:
    sms: bool = False
    email: bool = False
    push: bool = True


@dataclass(frozen=True)
class Alarm:
    """Per-device threshold and schedule rule."""
    id: int
    dev_eui: str
    min_threshold: float | None = None
    max_threshold: float | None = None
    enabled_metrics: frozenset[AlarmMetric] = frozenset()
    windows: tuple[AlarmWindow, ...] = ()
    time_limit_active: bool = False
    zone_category: int = ZoneCategory.DEFAULT
    is_active: bool = True
    defrost_minutes: int = 0
    channels: NotificationChannels = field(default_factory=NotificationChannels)
    recipient_ids: tuple[str, ...] = ()


class TriggerType(str, Enum):
    """What causes an automation rule to run."""
    DEVICE = "device"
    TIME = "time"
    ALARM = "alarm"


@dataclass(frozen=True)
class AutomationRule:
    """Condition/action pair linking a sender device to a receiver device."""
    id: int
    condition: str
    action: str
    sender_dev_eui: str | None = None
    sender_device_type: int | None = None
    receiver_dev_eui: str | None = None
    receiver_device_type: int | None = None
    trigger_type: TriggerType = TriggerType.DEVICE
    is_active: bool = True
    sender_name: str | None = None
    receiver_name: str | None = None
    tenant_id: str | None = None


@dataclass
class Notification:
    """Notification emitted for one breach or trigger event."""
    sender_alarm_id: int
    recipient_ids: list[str]
    message: str
    dev_eui: str
    device_name: str
    created_at: datetime
    category_id: int = 1
    is_read: bool = False
    sender_ip: str = "System"


@dataclass(frozen=True)
class ZoneInfo:
    """Zone and organization a device belongs to."""
    name: str | None = None
    category: int | None = None
    organization: str | None = None


@dataclass(frozen=True)
class UplinkEvent:
    """Decoded-frame event delivered by the network server integration."""
    dev_eui: str
    payload: dict[str, Any]
    device_type: int | None = None
    received_at: datetime | None = None


@dataclass(frozen=True)
class Sample:
    """A single historical numeric sample."""
    time: datetime
    value: float


class Clock(Protocol):
    """Source of the current instant."""

    def now(self) -> datetime:
        ...


class AlarmStore(Protocol):
    """Read access to alarm configuration."""

    async def list_for_device(self, dev_eui: str) -> list[Alarm]:
        """Return active alarms (with windows) configured for a device."""
        ...


class AutomationStore(Protocol):
    """Read access to automation rules."""

    async def list_device_rules(self, sender_dev_eui: str) -> list[AutomationRule]:
        ...

    async def list_time_rules(self) -> list[AutomationRule]:
        ...

    async def list_alarm_rules(self, alarm_id: int) -> list[AutomationRule]:
        ...


class DeviceRegistry(Protocol):
    """Device and zone lookups."""

    async def get_device(self, dev_eui: str) -> DeviceContext | None:
        ...

    async def get_zone(self, dev_eui: str) -> ZoneInfo:
        ...


class TelemetryHistoryStore(Protocol):
    """Historical numeric samples for the trend detector."""

    async def window(
        self, dev_eui: str, metric: str, since: datetime
    ) -> Sequence[Sample]:
        """Samples at or after ``since``, oldest first."""
        ...

    async def latest(self, dev_eui: str, metric: str) -> Sample | None:
        ...


class DeviceStateStore(Protocol):
    """Last-known discrete state (GPIO/relay outputs) of a device."""

    async def latest_state(self, dev_eui: str) -> dict[str, str]:
        """Raises NotFoundError when nothing has been recorded."""
        ...


class NotificationStore(Protocol):
    """Append-only notification sink."""

    async def add(self, notification: Notification) -> None:
        ...


class CommandQueue(Protocol):
    """Downlink queue for actuating receiver devices."""

    async def enqueue(self, dev_eui: str, device_type: int | None, action: str) -> None:
        ...


class AuditSink(Protocol):
    """Append-only audit trail."""

    async def record(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        description: str | None = None,
        dev_eui: str | None = None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> None:
        ...
