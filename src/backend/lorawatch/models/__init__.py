"""LoRaWatch Database Models."""

from lorawatch.models.base import Base, TimestampMixin
from lorawatch.models.device import Device, Tenant, Zone, ZoneDevice
from lorawatch.models.alarm import Alarm, AlarmWindow
from lorawatch.models.automation import AutomationRule
from lorawatch.models.notification import Notification
from lorawatch.models.telemetry import TelemetrySample, DeviceState
from lorawatch.models.audit import AuditLog, AuditAction

__all__ = [
    "Base",
    "TimestampMixin",
    "Device",
    "Tenant",
    "Zone",
    "ZoneDevice",
    "Alarm",
    "AlarmWindow",
    "AutomationRule",
    "Notification",
    "TelemetrySample",
    "DeviceState",
    "AuditLog",
    "AuditAction",
]
