"""Dragino sensor payload decoders."""

from pydantic import BaseModel, ConfigDict, Field

from lorawatch.engine.decoders.registry import parse_float, register
from lorawatch.engine.protocols import Calibration, FieldValue

# LSN50V2 reports this temperature while the SHT probe is still warming up
SENSOR_NOT_READY_TEMPERATURE = -45.0

# LTC2LB reports values below this for a disconnected probe
PROBE_DISCONNECTED_BELOW = -200.0

NumericText = str | float


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class LSN50V2Payload(_Payload):
    battery: float | None = Field(default=None, alias="batv")
    humidity: NumericText = Field(alias="hum_sht")
    temperature: NumericText = Field(alias="temp_c_sht")


class LSE01Payload(_Payload):
    battery: float | None = Field(default=None, alias="BatV")
    conductivity: float = Field(alias="conduct_SOIL")
    temperature: NumericText = Field(alias="temp_SOIL")
    water: NumericText = Field(alias="water_SOIL")


class LDS01Payload(_Payload):
    door_status: float = Field(alias="door_open_status")
    door_open_times: float = 0
    last_door_open_duration: float = 0


class LWL01Payload(_Payload):
    battery: float | None = Field(default=None, alias="BatV")
    water_leak: int = Field(alias="WATER_LEAK_STATUS")
    water_leak_times: int = Field(default=0, alias="WATER_LEAK_TIMES")
    last_water_leak_duration: int = Field(default=0, alias="LAST_WATER_LEAK_DURATION")


class LT22222LPayload(_Payload):
    ro1_status: int
    ro2_status: int
    gpio_in_1: str
    gpio_in_2: str
    gpio_out_1: str
    gpio_out_2: str


class LHT65Payload(_Payload):
    battery: float | None = Field(default=None, alias="BatV")
    humidity: NumericText = Field(alias="Hum_SHT")
    temperature: NumericText = Field(alias="TempC_SHT")
    ext_sensor: str | None = Field(default=None, alias="Ext_sensor")


class LAQ4Payload(_Payload):
    battery: float | None = Field(default=None, alias="BatV")
    humidity: float = Field(alias="Hum_SHT")
    temperature: float = Field(alias="TempC_SHT")
    co2: float = Field(alias="CO2_ppm")
    tvoc: float = Field(alias="TVOC_ppm")


class LSPH01Payload(_Payload):
    battery: float | None = Field(default=None, alias="BatV")
    ph: NumericText = Field(alias="PH1_SOIL")
    temperature: NumericText = Field(alias="TEMP_SOIL")


class LTC2LBPayload(_Payload):
    temperature1: float
    temperature2: float
    battery: float | None = Field(default=None, alias="BatV")


class DDS45LBPayload(_Payload):
    battery: float | None = Field(default=None, alias="Bat")
    distance: int = Field(alias="Distance")


def _with_battery(fields: dict[str, FieldValue], battery: float | None) -> dict[str, FieldValue]:
    if battery is not None:
        fields["battery"] = battery
    return fields


@register(1, model=LSN50V2Payload, name="LSN50V2")
def decode_lsn50v2(p: LSN50V2Payload, cal: Calibration) -> dict[str, FieldValue] | None:
    temperature = parse_float(p.temperature)
    if temperature == SENSOR_NOT_READY_TEMPERATURE:
        return None

    return _with_battery(
        {
            "temperature": temperature + cal.temperature_offset,
            "humidity": parse_float(p.humidity) + cal.humidity_offset,
        },
        p.battery,
    )


@register(2, model=LSE01Payload, name="LSE01")
def decode_lse01(p: LSE01Payload, cal: Calibration) -> dict[str, FieldValue] | None:
    temperature = parse_float(p.temperature)
    if temperature == 0.0:
        return None

    return _with_battery(
        {
            "soil_temperature": temperature + cal.temperature_offset,
            "soil_moisture": parse_float(p.water) + cal.humidity_offset,
            "soil_conductivity": p.conductivity,
        },
        p.battery,
    )


@register(3, model=LDS01Payload, name="LDS01")
def decode_lds01(p: LDS01Payload, cal: Calibration) -> dict[str, FieldValue]:
    return {
        "door_status": int(p.door_status),
        "door_open_times": int(p.door_open_times),
        "last_door_open_duration": int(p.last_door_open_duration),
    }


@register(4, model=LWL01Payload, name="LWL01")
def decode_lwl01(p: LWL01Payload, cal: Calibration) -> dict[str, FieldValue]:
    return _with_battery(
        {
            "water_leak": p.water_leak,
            "water_leak_times": p.water_leak_times,
            "last_water_leak_duration": p.last_water_leak_duration,
        },
        p.battery,
    )


@register(6, model=LT22222LPayload, name="LT22222L")
def decode_lt22222l(p: LT22222LPayload, cal: Calibration) -> dict[str, FieldValue]:
    return {
        "ro1_status": p.ro1_status,
        "ro2_status": p.ro2_status,
        "gpio_in_1": p.gpio_in_1,
        "gpio_in_2": p.gpio_in_2,
        "gpio_out_1": p.gpio_out_1,
        "gpio_out_2": p.gpio_out_2,
    }


@register(7, model=LHT65Payload, name="LHT65")
def decode_lht65(p: LHT65Payload, cal: Calibration) -> dict[str, FieldValue]:
    fields: dict[str, FieldValue] = {
        "temperature": parse_float(p.temperature) + cal.temperature_offset,
        "humidity": parse_float(p.humidity) + cal.humidity_offset,
    }
    if p.ext_sensor:
        fields["ext_sensor"] = p.ext_sensor
    return _with_battery(fields, p.battery)


@register(8, model=LAQ4Payload, name="LAQ4")
def decode_laq4(p: LAQ4Payload, cal: Calibration) -> dict[str, FieldValue]:
    return _with_battery(
        {
            "temperature": p.temperature + cal.temperature_offset,
            "humidity": p.humidity + cal.humidity_offset,
            "co2": p.co2,
            "tvoc": p.tvoc,
        },
        p.battery,
    )


@register(9, model=LSPH01Payload, name="LSPH01")
def decode_lsph01(p: LSPH01Payload, cal: Calibration) -> dict[str, FieldValue] | None:
    temperature = parse_float(p.temperature)
    if temperature == 0.0:
        return None

    # pH probes are not calibrated
    return _with_battery(
        {
            "soil_temperature": temperature + cal.temperature_offset,
            "soil_ph": parse_float(p.ph),
        },
        p.battery,
    )


@register(36, model=LTC2LBPayload, name="LTC2LB")
def decode_ltc2lb(p: LTC2LBPayload, cal: Calibration) -> dict[str, FieldValue]:
    temperature_1 = p.temperature1 + cal.temperature_offset
    temperature = (
        temperature_1 if p.temperature1 > PROBE_DISCONNECTED_BELOW else p.temperature2
    )
    return _with_battery(
        {
            "temperature": temperature,
            "temperature_1": temperature_1,
            "temperature_2": p.temperature2,
        },
        p.battery,
    )


@register(37, model=DDS45LBPayload, name="DDS45LB")
def decode_dds45lb(p: DDS45LBPayload, cal: Calibration) -> dict[str, FieldValue] | None:
    if p.distance <= 0:
        return None
    return _with_battery({"distance": p.distance}, p.battery)
