"""Localized notification composition."""

from datetime import datetime, timezone
from enum import Enum

from lorawatch.core.errors import ValidationError
from lorawatch.engine.protocols import Alarm, AlarmMetric, Notification, ZoneInfo


class TemplateKey(str, Enum):
    """Message shapes emitted by the engine."""
    MEASUREMENT = "measurement"
    EMERGENCY = "emergency"
    WATER_LEAK = "water_leak"
    BUTTON = "button"
    DOOR = "door"
    DISTANCE = "distance"


TEMPLATES: dict[str, dict[TemplateKey, str]] = {
    "tr": {
        TemplateKey.MEASUREMENT: (
            "{date} tarihinde {zone} ortamındaki {device} isimli sensör {label} "
            "kritik alarm seviyesini gecti. Şu anki değeri: {value:.2f}"
        ),
        TemplateKey.EMERGENCY: "{zone} deki {device} sensöründe acil durum var",
        TemplateKey.WATER_LEAK: "{zone} deki {device} sensöründe su baskını alarmı var",
        TemplateKey.BUTTON: "{zone} deki {device} sensöründen çağrı var",
        TemplateKey.DOOR: "{date} tarihinde {zone} ortamındaki {device} isimli sensör açıldı",
        TemplateKey.DISTANCE: (
            "{date} tarihinde {zone} ortamındaki {device} isimli sensör "
            "mesafe limitini aştı: {value:.2f}"
        ),
    },
    "en": {
        TemplateKey.MEASUREMENT: (
            "On {date} the {label} reading of sensor {device} in {zone} "
            "crossed its critical alarm level. Current value: {value:.2f}"
        ),
        TemplateKey.EMERGENCY: "Emergency reported by sensor {device} in {zone}",
        TemplateKey.WATER_LEAK: "Water leak alarm on sensor {device} in {zone}",
        TemplateKey.BUTTON: "Call button pressed on sensor {device} in {zone}",
        TemplateKey.DOOR: "On {date} sensor {device} in {zone} was opened",
        TemplateKey.DISTANCE: (
            "On {date} sensor {device} in {zone} exceeded its distance limit: {value:.2f}"
        ),
    },
}

METRIC_LABELS: dict[str, dict[AlarmMetric, str]] = {
    "tr": {
        AlarmMetric.TEMPERATURE: "ısı",
        AlarmMetric.HUMIDITY: "nem",
        AlarmMetric.PRESSURE: "basinc",
        AlarmMetric.CO2: "co2",
        AlarmMetric.EC: "ec",
    },
    "en": {
        AlarmMetric.TEMPERATURE: "temperature",
        AlarmMetric.HUMIDITY: "humidity",
        AlarmMetric.PRESSURE: "pressure",
        AlarmMetric.CO2: "co2",
        AlarmMetric.EC: "conductivity",
    },
}

UNKNOWN_ZONE = {"tr": "Bilinmeyen Alan", "en": "Unknown area"}
UNKNOWN_ORGANIZATION = {"tr": "Bilinmeyen Organizasyon", "en": "Unknown organization"}

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def template_for(metric: AlarmMetric) -> TemplateKey:
    """Template used when an alarm on ``metric`` fires."""
    if metric is AlarmMetric.DOOR:
        return TemplateKey.DOOR
    if metric is AlarmMetric.WATER_LEAK:
        return TemplateKey.WATER_LEAK
    if metric is AlarmMetric.BUTTON:
        return TemplateKey.BUTTON
    if metric is AlarmMetric.EMERGENCY:
        return TemplateKey.EMERGENCY
    if metric is AlarmMetric.DISTANCE:
        return TemplateKey.DISTANCE
    return TemplateKey.MEASUREMENT


class NotificationComposer:
    """Builds one notification per fired alarm."""

    def __init__(self, locale: str = "tr"):
        if locale not in TEMPLATES:
            raise ValueError(f"Unsupported locale: {locale}")
        self.locale = locale

    def render(
        self,
        template_key: TemplateKey,
        *,
        device_name: str,
        zone_name: str | None = None,
        date: datetime | None = None,
        value: float = 0.0,
        metric: AlarmMetric | None = None,
        organization: str | None = None,
        qualify_organization: bool = False,
    ) -> str:
        """Render a template; the organization variant prefixes its name."""
        label = ""
        if metric is not None:
            label = METRIC_LABELS[self.locale].get(metric, metric.value)

        message = TEMPLATES[self.locale][template_key].format(
            date=(date or datetime.now(timezone.utc)).strftime(DATE_FORMAT),
            zone=zone_name or UNKNOWN_ZONE[self.locale],
            device=device_name,
            label=label,
            value=value,
        )

        if qualify_organization:
            org = organization or UNKNOWN_ORGANIZATION[self.locale]
            message = f"{org} - {message}"

        return message

    def compose(
        self,
        alarm: Alarm,
        *,
        device_name: str,
        metric: AlarmMetric,
        value: float,
        zone: ZoneInfo | None = None,
        template_key: TemplateKey | None = None,
        qualify_organization: bool = False,
        at: datetime | None = None,
    ) -> Notification:
        """Compose the notification for a fired alarm.

        Raises:
            ValidationError: The message or the recipient set is empty.
        """
        zone = zone or ZoneInfo()
        created_at = at or datetime.now(timezone.utc)

        message = self.render(
            template_key or template_for(metric),
            device_name=device_name,
            zone_name=zone.name,
            date=created_at,
            value=value,
            metric=metric,
            organization=zone.organization,
            qualify_organization=qualify_organization,
        )

        if not message.strip():
            raise ValidationError("Notification message is empty", dev_eui=alarm.dev_eui)
        if not alarm.recipient_ids:
            raise ValidationError(
                f"Alarm {alarm.id} has no recipients", dev_eui=alarm.dev_eui
            )

        return Notification(
            sender_alarm_id=alarm.id,
            recipient_ids=list(alarm.recipient_ids),
            message=message,
            dev_eui=alarm.dev_eui,
            device_name=device_name,
            created_at=created_at,
        )
