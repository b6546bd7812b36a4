"""Milesight sensor and controller payload decoders."""

from pydantic import BaseModel, ConfigDict

from lorawatch.engine.decoders.registry import register
from lorawatch.engine.protocols import Calibration, FieldValue

PASCALS_PER_HECTOPASCAL = 100.0


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class EM300THPayload(_Payload):
    battery: float | None = None
    humidity: float
    temperature: float


class AM107Payload(_Payload):
    battery: float | None = None
    humidity: float
    temperature: float
    co2: float
    tvoc: float
    pressure: float


class WS101Payload(_Payload):
    press: int


class EM300MCSPayload(_Payload):
    battery: float | None = None
    door_open_status: int


class EM300ZLDPayload(_Payload):
    water_leak: int


class EM500PT100Payload(_Payload):
    battery: float | None = None
    temperature: float


class EM500PPPayload(_Payload):
    battery: float | None = None
    pressure: float


class WS522Payload(_Payload):
    current: float
    factor: float = 0.0
    power: float = 0.0
    voltage: float = 0.0
    state: int
    power_sum: float = 0.0


class WS558Payload(_Payload):
    active_power: float = 0.0
    power_consumption: float = 0.0
    power_factor: float = 0.0
    switch_1: int = 0
    switch_2: int = 0
    switch_3: int = 0
    switch_4: int = 0
    switch_5: int = 0
    switch_6: int = 0
    switch_7: int = 0
    switch_8: int = 0
    voltage: float = 0.0
    total_current: float = 0.0


class UC300Payload(_Payload):
    adc_1: str | None = None
    adc_2: str | None = None
    adv_1: str | None = None
    gpio_in_1: str | None = None
    gpio_in_2: str | None = None
    gpio_in_3: str | None = None
    gpio_in_4: str | None = None
    gpio_out_1: str | None = None
    gpio_out_2: str | None = None


class EM400MUDPayload(_Payload):
    battery: int | None = None
    distance: int
    position: str | None = None
    temperature: float | None = None


class AM103Payload(_Payload):
    battery: int | None = None
    humidity: float
    temperature: float
    co2: float


def _with_battery(fields: dict[str, FieldValue], battery: float | None) -> dict[str, FieldValue]:
    if battery is not None:
        fields["battery"] = battery
    return fields


@register(12, model=EM300THPayload, name="EM300-TH")
def decode_em300th(p: EM300THPayload, cal: Calibration) -> dict[str, FieldValue] | None:
    # Both zero means the sensor sent an empty frame
    if p.temperature == 0 and p.humidity == 0:
        return None

    return _with_battery(
        {
            "temperature": p.temperature + cal.temperature_offset,
            "humidity": p.humidity + cal.humidity_offset,
        },
        p.battery,
    )


@register(13, model=AM107Payload, name="AM107")
def decode_am107(p: AM107Payload, cal: Calibration) -> dict[str, FieldValue]:
    return _with_battery(
        {
            "temperature": p.temperature + cal.temperature_offset,
            "humidity": p.humidity + cal.humidity_offset,
            "co2": p.co2,
            "tvoc": p.tvoc,
            "pressure": p.pressure,
        },
        p.battery,
    )


@register(14, model=WS101Payload, name="WS101")
def decode_ws101(p: WS101Payload, cal: Calibration) -> dict[str, FieldValue]:
    return {"button_pressed": p.press}


@register(16, model=EM300MCSPayload, name="EM300-MCS")
def decode_em300mcs(p: EM300MCSPayload, cal: Calibration) -> dict[str, FieldValue]:
    return _with_battery({"door_status": p.door_open_status}, p.battery)


@register(18, 19, model=EM300ZLDPayload, name="EM300-ZLD")
def decode_em300zld(p: EM300ZLDPayload, cal: Calibration) -> dict[str, FieldValue]:
    return {"water_leak": p.water_leak}


@register(20, model=EM500PT100Payload, name="EM500-PT100")
def decode_em500pt100(p: EM500PT100Payload, cal: Calibration) -> dict[str, FieldValue]:
    return _with_battery(
        {"temperature": p.temperature + cal.temperature_offset},
        p.battery,
    )


@register(21, model=EM500PPPayload, name="EM500-PP")
def decode_em500pp(p: EM500PPPayload, cal: Calibration) -> dict[str, FieldValue]:
    return _with_battery(
        {"pressure": p.pressure / PASCALS_PER_HECTOPASCAL},
        p.battery,
    )


@register(24, model=WS522Payload, name="WS522")
def decode_ws522(p: WS522Payload, cal: Calibration) -> dict[str, FieldValue]:
    if p.current > 0:
        return {
            "current": p.current,
            "power_factor": p.factor,
            "power": p.power,
            "voltage": p.voltage,
            "status": p.state,
            "power_sum": p.power_sum,
        }
    return {"status": p.state}


@register(27, model=WS558Payload, name="WS558")
def decode_ws558(p: WS558Payload, cal: Calibration) -> dict[str, FieldValue]:
    fields: dict[str, FieldValue] = {
        f"switch_{i}": getattr(p, f"switch_{i}") for i in range(1, 9)
    }
    if p.power_factor > 0:
        fields.update(
            {
                "power": p.active_power,
                "power_sum": p.power_consumption,
                "power_factor": p.power_factor,
                "voltage": p.voltage,
                "current": p.total_current,
            }
        )
    return fields


@register(28, model=UC300Payload, name="UC300")
def decode_uc300(p: UC300Payload, cal: Calibration) -> dict[str, FieldValue]:
    return p.model_dump(exclude_none=True)


@register(33, model=EM400MUDPayload, name="EM400-MUD")
def decode_em400mud(p: EM400MUDPayload, cal: Calibration) -> dict[str, FieldValue] | None:
    if p.distance <= 0:
        return None

    # Ultrasonic readings are not calibrated
    fields: dict[str, FieldValue] = {"distance": p.distance}
    if p.position is not None:
        fields["position"] = p.position
    if p.temperature is not None:
        fields["temperature"] = p.temperature
    return _with_battery(fields, p.battery)


@register(35, model=AM103Payload, name="AM103")
def decode_am103(p: AM103Payload, cal: Calibration) -> dict[str, FieldValue] | None:
    if p.temperature == 0 or p.humidity == 0:
        return None

    return _with_battery(
        {
            "temperature": p.temperature + cal.temperature_offset,
            "humidity": p.humidity + cal.humidity_offset,
            "co2": p.co2,
        },
        p.battery,
    )
